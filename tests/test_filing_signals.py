from __future__ import annotations

from datetime import date

from fundamentals_rating.domain.models.signals import FilingDocument, FilingMeta, FilingSignal
from fundamentals_rating.domain.services.filing_signals import (
    SIGNAL_CATALOG,
    FilingScanner,
    amended_filings_signal,
    build_match_context,
    insider_pattern_signal,
    is_foreign_filer,
    resolve_conflicts,
    scan_text,
    strip_html,
    suppression_reason,
)

GOING_CONCERN_TEXT = (
    "Our independent auditor included an explanatory paragraph stating there is substantial doubt "
    "about our ability to continue as a going concern."
)


def _doc(text: str, form: str = "10-K", filed: str = "2024-02-15") -> FilingDocument:
    return FilingDocument(form=form, filed=filed, text=text, accession="0001-24-000001")


def _ids(signals):
    return {signal.id for signal in signals}


def test_catalog_ids_are_unique():
    ids = [definition.id for definition in SIGNAL_CATALOG]
    assert len(ids) == len(set(ids))


def test_going_concern_detected_with_snippet():
    signals = scan_text(_doc(GOING_CONCERN_TEXT))

    going = next(signal for signal in signals if signal.id == "going_concern")
    assert going.score == -10
    assert going.severity == "critical"
    assert "going concern" in going.snippet
    assert going.form == "10-K"
    assert going.filed == "2024-02-15"


def test_negated_going_concern_is_suppressed():
    text = "Management concluded there is no substantial doubt about our ability to continue as a going concern."

    assert "going_concern" not in _ids(scan_text(_doc(text)))


def test_modal_language_without_concrete_event_is_suppressed():
    text = "In the event that lenders lose confidence, we would need to evaluate whether a going concern issue exists."

    assert "going_concern" not in _ids(scan_text(_doc(text)))


def test_boilerplate_risk_factor_section_is_suppressed():
    text = "Item 1A. Risk Factors. Raising funds through issuance of shares caused substantial dilution to existing shareholders."
    match = build_match_context(text, text.index("substantial dilution"), "substantial dilution", "dilution_risk")

    assert suppression_reason(match) == "boilerplate"


def test_lifted_clinical_hold_is_suppressed_as_resolved():
    text = "In June the FDA lifted the clinical hold on our lead program and we resumed enrollment at all sites."
    match = build_match_context(text, text.index("clinical hold"), "clinical hold", "clinical_negative")

    assert suppression_reason(match) == "resolution"


def test_historical_framing_is_suppressed():
    text = "Our auditor previously expressed substantial doubt about our ability to continue as a going concern."
    match = build_match_context(text, text.index("going concern"), "going concern", "going_concern")

    assert suppression_reason(match) == "historical"
    assert "going_concern" not in _ids(scan_text(_doc(text)))


def test_rescanning_the_same_filing_yields_the_same_ids():
    text = (
        GOING_CONCERN_TEXT
        + " We identified a material weakness in our internal control over financial reporting."
        + " The company received a notice of default from its lenders."
    )

    first = [signal.id for signal in scan_text(_doc(text))]
    second = [signal.id for signal in scan_text(_doc(text))]
    merged = [signal.id for signal in FilingScanner().scan([_doc(text), _doc(text)])]

    assert first == second
    assert len(first) == len(set(first))
    assert len(merged) == len(set(merged))
    assert set(merged) <= set(first)


def test_stale_year_suppression_is_opt_in():
    text = "In fiscal 2019 the auditor issued a report with substantial doubt about our ability to continue as a going concern."

    assert "going_concern" in _ids(scan_text(_doc(text)))
    assert "going_concern" not in _ids(scan_text(_doc(text), stale_years=("2019",)))


def test_strip_html_collapses_markup():
    assert strip_html("<p>Hello <b>world</b></p>\n\n<div>again</div>") == "Hello world again"
    assert strip_html(None) == ""


def test_conflicting_positive_signal_is_dropped():
    signals = [
        FilingSignal(id="material_weakness", title="Internal Control Weakness", score=-8, severity="critical"),
        FilingSignal(id="auditor_clean", title="Auditor Clean Opinion", score=2, severity="info"),
        FilingSignal(id="backlog_record", title="Record Backlog", score=3, severity="info"),
    ]

    assert _ids(resolve_conflicts(signals)) == {"material_weakness", "backlog_record"}


def test_scanner_keeps_strongest_hit_and_most_recent_first():
    older = _doc(GOING_CONCERN_TEXT, filed="2023-02-15")
    newer = _doc(GOING_CONCERN_TEXT, form="10-Q", filed="2024-05-10")

    signals = FilingScanner().scan([older, newer])

    going = next(signal for signal in signals if signal.id == "going_concern")
    assert going.form == "10-Q"
    assert going.filed == "2024-05-10"


def test_foreign_filer_drops_going_concern():
    signals = FilingScanner().scan([_doc(GOING_CONCERN_TEXT, form="20-F")])

    assert "going_concern" not in _ids(signals)
    assert is_foreign_filer(["10-K", "6-K"])
    assert not is_foreign_filer(["10-K", None])


def test_amended_filings_within_three_years():
    index = [
        FilingMeta(form="10-K/A", filed="2023-05-01"),
        FilingMeta(form="10-Q/A", filed="2019-01-01"),
    ]

    signal = amended_filings_signal(index, date(2024, 2, 1))

    assert signal is not None
    assert signal.score == -2
    assert signal.form == "10-K/A"
    assert signal.snippet.startswith("1 amended")
    assert amended_filings_signal([FilingMeta(form="10-K", filed="2024-02-01")], date(2024, 2, 1)) is None


def test_old_amendment_alone_is_not_recent():
    index = [FilingMeta(form="10-K/A", filed="2014-03-01")]

    assert amended_filings_signal(index, date(2024, 5, 1)) is None
    # Without an anchor the window ends today.
    assert amended_filings_signal(index) is None


def test_insider_pattern_bands():
    assert insider_pattern_signal([]) is None
    assert insider_pattern_signal(["P", "P", "P"]).score == 3
    assert insider_pattern_signal(["P", "S"]).score == 1
    assert insider_pattern_signal(["S"] * 7).score == -2
    assert insider_pattern_signal(["S"] * 7).title == "Insider Selling"

    mixed = insider_pattern_signal(["P", "S", "S"])
    assert mixed.title == "Mixed Insider Activity"
    assert mixed.score == 0
    assert mixed.include_in_score is False


def test_deep_signals_added_on_finish():
    accumulator = FilingScanner().accumulator()
    accumulator.add(_doc("Quarterly results were in line with guidance."))

    signals = accumulator.finish(
        filing_index=[FilingMeta(form="10-K/A", filed="2024-01-10")],
        insider_codes=["P", "P", "P"],
    )

    assert {"amended_filings", "insider_pattern"} <= _ids(signals)
    assert accumulator.scanned == 1
