from __future__ import annotations

from datetime import date, timedelta

import pytest

from fundamentals_rating.domain.models.financials import FinancialState
from fundamentals_rating.domain.models.rating import RuleReason
from fundamentals_rating.domain.models.signals import FilingSignal
from fundamentals_rating.domain.services.growth_stage import GrowthStage
from fundamentals_rating.domain.services.rating import (
    EVENT_RISK_CEILING,
    RatingEngine,
    classify_missing,
    growth_phase_adjustment,
    is_penny_stock,
    missing_notes,
    normalize_score,
    rate_entity,
    score_tier,
)


def _signal(score: int, include: bool = True) -> FilingSignal:
    return FilingSignal(id=f"s{score}", title="Test", score=score, severity="info", include_in_score=include)


def test_normalize_and_tier_bounds():
    assert normalize_score(-60) == 0
    assert normalize_score(-500) == 0
    assert normalize_score(20) == 50
    assert normalize_score(400) == 100
    assert score_tier(91) == "elite"
    assert score_tier(76) == "bullish"
    assert score_tier(61) == "solid"
    assert score_tier(46) == "mixed"
    assert score_tier(45) == "spec"
    assert score_tier(0) == "danger"


def test_missing_categories_use_whole_words():
    assert classify_missing("Price / Sales") == "valuation"
    assert classify_missing("Debt / Equity") == "solvency"
    assert classify_missing("Gross margin") == "profitability"
    assert classify_missing("Revenue CAGR (3Y)") == "growth"
    assert classify_missing("Working Capital") == "other"


def test_missing_notes_summarize_large_gaps():
    notes = missing_notes({"valuation": ["Price / Sales", "Price / Earnings", "Price / Book"], "growth": ["Revenue CAGR (3Y)"]})

    assert notes[0].startswith("Valuation blindspot")
    assert notes[1] == "Revenue CAGR (3Y): Data unavailable"


def test_every_rule_reported_in_catalog_order():
    result = RatingEngine().rate(FinancialState(ticker="EMPTY"))

    assert len(result.reasons) == 41
    assert result.reasons[0].name == "Revenue growth YoY"
    assert result.completeness.total == 41
    assert result.completeness.applicable + result.completeness.missing == 41
    assert 0 <= result.normalized_score <= 100


def test_growth_stage_softens_fcf_penalty_for_mid_cap_tech():
    state = FinancialState(
        ticker="GRWT",
        sector="Technology",
        sector_bucket="Tech/Internet",
        quarter_count=8,
        revenue_growth_yoy=55.0,
        capex_to_revenue=60.0,
        fcf_margin=-25.0,
        total_assets=5_000_000_000,
    )

    result = RatingEngine().rate(state)

    # Unsoftened the -25% margin would score -8.
    assert result.reason("FCF margin").score == -4
    assert result.growth_intensity > 0.8
    assert any("FCF margin penalty softened" in note for note in result.override_notes)


def _stage(intensity: float, mid_or_large: bool = True) -> GrowthStage:
    return GrowthStage(intensity=intensity, revenue_ramp=1.0, burn_ramp=1.0, capex_ramp=1.0, mid_or_large=mid_or_large)


def _penalties(*scores: int):
    names = ("ROE", "Gross margin", "Return on Assets")
    return [RuleReason(name=name, weight=10, score=score, message="") for name, score in zip(names, scores)]


@pytest.mark.parametrize(
    "growth, intensity, expected",
    [
        (85.0, 1.0, 12.0),
        (60.0, 1.0, 10.0),
        (35.0, 1.0, 8.0),
        (20.0, 1.0, 0.0),
        (85.0, 0.6, 7.2),
        (60.0, 0.6, 6.0),
        (35.0, 0.6, 4.8),
        (85.0, 0.4, 0.0),
    ],
)
def test_growth_phase_adjustment_bands(growth, intensity, expected):
    state = FinancialState(ticker="GRWT", revenue_growth_yoy=growth)
    reasons = _penalties(-20, -20)

    assert growth_phase_adjustment(state, _stage(intensity), reasons) == pytest.approx(expected)


def test_growth_phase_adjustment_recovers_at_most_half_the_penalties():
    state = FinancialState(ticker="GRWT", revenue_growth_yoy=90.0)
    reasons = _penalties(-6, -4) + [RuleReason(name="Debt/Equity", weight=10, score=-8, message="")]

    # Only profitability penalties count: (6 + 4) * 0.5.
    assert growth_phase_adjustment(state, _stage(1.0), reasons) == pytest.approx(5.0)
    assert growth_phase_adjustment(state, _stage(1.0), _penalties(4, 2)) == 0.0
    assert growth_phase_adjustment(state, _stage(1.0, mid_or_large=False), reasons) == 0.0


def test_filing_signals_shift_score_unless_excluded():
    state = FinancialState(ticker="SIG", sector_bucket="Other")
    engine = RatingEngine(risk_free_rate_pct=3.0)

    baseline = engine.rate(state)
    with_signals = engine.rate(state, [_signal(-10), _signal(5, include=False)])

    assert with_signals.filing_score == -10
    assert with_signals.raw_score == pytest.approx(baseline.raw_score - 10)
    assert any("Regulatory filings signal caution" in note for note in with_signals.override_notes)


def test_macro_penalty_for_unprofitable_in_high_rate_climate():
    state = FinancialState(ticker="LOSS", sector_bucket="Other", net_margin=-12.0)

    high = RatingEngine(risk_free_rate_pct=5.0).rate(state)
    low = RatingEngine(risk_free_rate_pct=3.0).rate(state)

    assert high.raw_score == pytest.approx(low.raw_score - 5)
    assert any(note.startswith("Economic Climate") for note in high.override_notes)


def test_event_risk_caps_small_biotech_after_crash():
    state = FinancialState(
        ticker="BIOX",
        sector="Biotechnology",
        sector_bucket="Biotech/Pharma",
        price_change_5d=-45.0,
        market_cap=800_000_000,
    )

    result = RatingEngine().rate(state, [_signal(30)])

    assert result.normalized_score == EVENT_RISK_CEILING
    assert any(note.startswith("Event risk") for note in result.override_notes)


def test_penny_stock_detection():
    assert is_penny_stock(FinancialState(ticker="P", sector_bucket="Other", last_close=2.5))
    assert is_penny_stock(FinancialState(ticker="P", sector_bucket="Other", market_cap=150_000_000))
    # Biotech only counts below a $50M market cap.
    assert not is_penny_stock(FinancialState(ticker="B", sector_bucket="Biotech/Pharma", market_cap=150_000_000))
    assert not is_penny_stock(FinancialState(ticker="L", sector_bucket="Other", last_close=150.0, market_cap=5e10))


def test_rate_entity_from_raw_records():
    start = date(2022, 3, 31)
    records = []
    for idx in range(9):
        end = start + timedelta(days=91 * idx)
        records.append(
            {
                "periodEnd": end.isoformat(),
                "periodType": "quarter",
                "revenue": 1_000_000_000 * (1 + 0.05 * idx),
                "grossProfit": 700_000_000 * (1 + 0.05 * idx),
                "operatingIncome": 200_000_000,
                "netIncome": 150_000_000,
                "operatingCashFlow": 250_000_000,
                "capex": -50_000_000,
                "sharesOutstanding": 100_000_000,
                "epsBasic": 1.5,
                "totalAssets": 8_000_000_000,
                "totalEquity": 5_000_000_000,
                "totalDebt": 1_000_000_000,
                "cash": 2_000_000_000,
            }
        )

    result = rate_entity("good", records, sector="Technology")

    assert result is not None
    assert result.catalog_version
    assert result.reason("Gross margin").score == 6
    assert rate_entity("none", [{"revenue": 1}]) is None
