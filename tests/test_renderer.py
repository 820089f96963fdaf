from __future__ import annotations

from fundamentals_rating.domain.models.financials import FinancialState
from fundamentals_rating.domain.models.rating import (
    Completeness,
    MomentumHealth,
    NarrativeSummary,
    RatingResult,
    RuleReason,
)
from fundamentals_rating.domain.models.signals import FilingSignal, ScanMeta
from fundamentals_rating.reports.renderer import ReportRenderer


def _rating() -> RatingResult:
    return RatingResult(
        raw_score=42.5,
        normalized_score=72,
        tier="solid",
        reasons=[
            RuleReason(name="Gross margin", weight=8, score=6, message="65.00%"),
            RuleReason(name="Price / Book", weight=6, score=0, message="n/a", missing=True),
        ],
        completeness=Completeness(total=2, applicable=1, missing=1),
        override_notes=["Economic Climate: test note"],
        filing_score=-3,
        catalog_version="test",
    )


def test_render_rating_report():
    state = FinancialState(ticker="ABC", company_name="ABC Corp", sector_bucket="Tech/Internet", gross_margin=65.0)
    signals = [
        FilingSignal(id="backlog_record", title="Record backlog", score=3, severity="info", snippet="record backlog", form="10-Q", filed="2024-05-02"),
        FilingSignal(id="auditor_clean", title="Clean audit", score=1, severity="info", include_in_score=False),
    ]
    narrative = NarrativeSummary(
        sentences=["Steady compounder."],
        momentum=MomentumHealth(score=68, label="Positive"),
        explainers={"Gross margin": "High profit on every product sold."},
    )

    markdown = ReportRenderer().render_rating(
        "abc",
        _rating(),
        state=state,
        signals=signals,
        scan_meta=ScanMeta(scanner_version="v1", note="Filing fetch failed; showing cached risks."),
        narrative=narrative,
        report_date="2024-06-01",
    )

    assert markdown.startswith("# ABC · ABC Corp Fundamentals Rating")
    assert "**solid**" in markdown
    assert "72 / 100" in markdown
    assert "| Gross margin | 8 | +6 | 65.00% _High profit on every product sold._ |" in markdown
    assert "| Price / Book | 6 | – | n/a |" in markdown
    assert "Record backlog" in markdown
    assert "Clean audit (info only)" in markdown
    assert "showing cached risks" in markdown
    assert "Economic Climate" in markdown
    assert "Not investment advice." in markdown


def test_render_minimal_report_without_state():
    markdown = ReportRenderer().render_rating("xyz", RatingResult(raw_score=0.0, normalized_score=30, tier="danger"))

    assert markdown.startswith("# XYZ Fundamentals Rating")
    assert "No filing signals detected." in markdown
    assert "Key Metrics" not in markdown
