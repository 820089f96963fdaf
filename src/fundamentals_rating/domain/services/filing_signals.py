"""Phrase-driven filing signal scanner.

Every catalog entry is a phrase family tagged with a signed score. A match is
accepted only after it survives the ordered suppression predicates below,
which look at the text immediately before the match, the ±160 character
snippet and a wider ±320 character context window.
"""
from __future__ import annotations

import html as html_entities
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from fundamentals_rating.domain.models.signals import (
    FilingDocument,
    FilingMeta,
    FilingSignal,
    SignalDefinition,
)

LOGGER = logging.getLogger(__name__)

SCANNER_VERSION = "2025.12-48"

SNIPPET_RADIUS = 160
CONTEXT_RADIUS = 320
NEGATION_WINDOW = 60

CRITICAL = "critical"
WARNING = "warning"
INFO = "info"

FOREIGN_FORMS = ("20-F", "40-F", "6-K")
AMENDMENT_FORMS = ("10-K/A", "10-Q/A")
AMENDMENT_LOOKBACK = timedelta(days=3 * 365)
INSIDER_BUY_CODE = "P"
INSIDER_SELL_CODE = "S"
INSIDER_BUY_WEIGHT = 2

BOILERPLATE_SECTION_TOKENS = (
    "risk factors",
    "forward-looking statements",
    "cautionary statements",
    "cautionary note",
    "general legal",
    "legal proceedings",
    "liquidity risks may include",
    "cautionary note regarding",
    "cautionary statement regarding",
)
ALLOWED_SECTION_TOKENS = (
    "management's discussion",
    "managements discussion",
    "results of operations",
    "financial condition",
    "liquidity",
    "business",
    "clinical",
    "clinical update",
    "clinical results",
    "regulatory update",
    "subsequent events",
    "material weakness",
    "commitments",
    "contingencies",
    "notes to consolidated financial statements",
    "notes to financial statements",
)
MODAL_HINTS = (" could ", " may ", " might ", " would ", " should ", " in the event that ")
CONCRETE_VERBS = ("received ", "breached", "accelerate", "defaulted", "issued", "announced", "filed")
HISTORICAL_HINTS = (" historically", " in the past", " previously", " prior ", " legacy ")
NEGATION_TOKENS = (
    "no ",
    "not ",
    "without ",
    "does not ",
    "did not ",
    "will not ",
    "hardly ",
    "unlikely ",
    "neither ",
    "never ",
)
RESOLUTION_PHRASES = (
    "lifted clinical hold",
    "lifted the clinical hold",
    "lifted the partial clinical hold",
    "lifted a partial clinical hold",
    "hold has been lifted",
    "hold was lifted",
    "remove the clinical hold",
    "removed the clinical hold",
    "resumed patient enrollment",
    "resume patient enrollment",
    "enrollment has resumed",
    "trial has resumed",
    "resumed enrollment",
)
HYPOTHETICAL_PREFIXES = (
    "imposition of",
    "possibility of",
    "risk of",
    "potential for",
    "investigation into",
    "subject to",
)
GOVERNMENT_TOKENS = ("government", "federal", "state", "non-company-level")
ADVERSE_EVENT_QUALIFIERS = ("prevalence", "severity", "risk")

GOING_CONCERN_PHRASES = (
    "going concern",
    "going-concern",
    "ability to continue as a going concern",
    "continue as a going concern",
    "substantial doubt",
    "substantial doubt about our ability to continue as a going concern",
    "substantial doubt about its ability to continue as a going concern",
    "may not be able to continue operations",
    "ability to meet obligations",
    "doubt regarding continued operation",
    "inability to continue as a going concern",
)


def _signal(id_: str, score: int, title: str, *phrases: str, severity: str = "") -> SignalDefinition:
    return SignalDefinition(id=id_, score=score, title=title, phrases=tuple(phrases), severity=severity)


SIGNAL_CATALOG: Tuple[SignalDefinition, ...] = (
    _signal("going_concern", -10, "Going-Concern Warning", *GOING_CONCERN_PHRASES, severity=CRITICAL),
    _signal(
        "material_weakness",
        -8,
        "Internal Control Weakness",
        "material weakness in internal control",
        "material weakness in our internal control",
        "ineffective internal control",
        "controls over financial reporting were not effective",
        "not effective disclosure controls",
        severity=CRITICAL,
    ),
    _signal(
        "substantial_doubt",
        -5,
        "Funding Uncertainty",
        "substantial doubt about our ability to continue",
        "may not have sufficient capital to fund operations",
        "may not have sufficient liquidity",
        "may not be able to fund operations for the next 12 months",
        severity=WARNING,
    ),
    _signal(
        "liquidity_shortage",
        -6,
        "Liquidity Shortage",
        "insufficient capital",
        "may not have adequate liquidity",
        "we do not have enough cash to fund operations beyond",
        "cash resources are expected to be depleted",
    ),
    _signal(
        "needs_financing",
        -3,
        "External Financing Required",
        "expect to raise additional capital",
        "will need to raise additional capital",
        "financing will be required to sustain operations",
        "may issue additional equity securities",
        "additional financing will be necessary",
        "our business depends on securing additional funding",
        "future financing may not be available",
        "our survival depends on obtaining financing",
        "we expect to raise additional capital",
    ),
    _signal(
        "dilution_risk",
        -4,
        "Shareholder Dilution Risk",
        "we may issue additional equity securities",
        "future equity raises will dilute investors",
        "substantial dilution to existing shareholders",
    ),
    _signal(
        "covenant_risk",
        -5,
        "Covenant Risk",
        "in breach of debt covenants",
        "in violation of covenants",
        "breach of covenants",
        "may breach covenants",
        "lender may accelerate",
        "lender may accelerate repayment",
        "default under our credit agreement",
        "may violate financial covenants",
    ),
    _signal(
        "debt_refinance_risk",
        -4,
        "Refinancing Pressure",
        "unable to refinance existing debt",
        "debt maturities create liquidity pressure",
        "high interest burden",
    ),
    _signal(
        "reverse_split",
        -4,
        "Reverse Split Authorized",
        "reverse split",
        "reverse stock split",
        "amend articles to effect a reverse split",
        "authorization to effect a reverse split",
        "needed to comply with listing requirements",
    ),
    _signal(
        "atm_or_shelf",
        -3,
        "Shelf/ATM Offering",
        "at-the-market equity offering",
        "shelf registration",
        "equity distribution agreement",
    ),
    _signal(
        "auditor_change",
        -4,
        "Auditor Turnover",
        "auditor resigned",
        "auditor withdrawal",
        "change in independent registered public accounting firm",
        "dismissed our independent auditor",
    ),
    _signal(
        "restatement",
        -8,
        "Restatement Warning",
        "financial statements should no longer be relied upon",
        "restatement of prior period results",
    ),
    _signal(
        "audit_opinion_issue",
        -6,
        "Audit Opinion Issue",
        "audit opinion includes an adverse opinion",
        "disagreement with auditor",
        "audit committee raised concerns",
    ),
    _signal(
        "restructuring",
        -2,
        "Restructuring Activity",
        "restructuring charges",
        "restructuring expense",
        "employee reductions",
        "workforce reduction",
        "severance costs",
    ),
    _signal(
        "demand_decline",
        -3,
        "Demand Decline",
        "decline in demand",
        "soft market conditions",
        "reduced customer orders",
    ),
    _signal(
        "supply_chain",
        -3,
        "Supply Chain Disruption",
        "supply chain disruptions",
        "component shortages",
        "inability to source materials",
    ),
    _signal(
        "inventory_problem",
        -3,
        "Inventory Problems",
        "inventory obsolescence",
        "excess inventory",
        "write-downs",
    ),
    _signal(
        "reg_investigation",
        -5,
        "Regulatory Investigation",
        "under investigation by",
        "received a subpoena",
        "regulatory inquiry",
        "doj/ftc/sec investigation",
    ),
    _signal(
        "litigation_risk",
        -4,
        "Litigation Risk",
        "class action lawsuit",
        "material litigation",
        "significant legal exposure",
        "pending litigation could materially affect results",
    ),
    _signal(
        "compliance_penalty",
        -3,
        "Compliance Risk",
        "non-compliance could result in penalties",
        "violation of regulations",
    ),
    _signal(
        "customer_concentration",
        -3,
        "Customer Concentration Risk",
        "customer a accounted for",
        "loss of a major customer would be material",
    ),
    _signal(
        "supplier_dependence",
        -3,
        "Supplier Dependence",
        "single-source supplier risk",
        "dependence on one supplier",
    ),
    _signal(
        "market_shrinkage",
        -3,
        "Market Shrinkage",
        "market size declining",
        "industry contraction",
    ),
    _signal(
        "clinical_failure",
        -6,
        "Clinical Failure",
        "trial did not meet primary endpoint",
        "failure to achieve statistical significance",
    ),
    _signal(
        "regulatory_setback",
        -6,
        "Regulatory Setback",
        "fda placed a clinical hold",
        "complete response letter (crl)",
        "additional data required for approval",
        "fda asked for additional data",
    ),
    _signal(
        "biotech_cash_dependency",
        -5,
        "Funding Needed for Trials",
        "substantial doubt... funding trials",
        "funding trials depends on raising capital",
    ),
    _signal(
        "clinical_negative",
        -12,
        "Clinical Failure",
        "did not meet primary endpoint",
        "failed to achieve significance",
        "failed to achieve statistical significance",
        "trial failed",
        "trial paused",
        "trial terminated",
        "trial discontinued",
        # safety failures
        "dose-limiting toxicity",
        "serious adverse reaction",
        "fda placed a clinical hold",
        "received a complete response letter",
        "complete response letter (crl)",
        "clinical hold",
    ),
    _signal(
        "clinical_positive",
        10,
        "Clinical Pipeline Quality",
        "met primary endpoint",
        "achieved statistical significance",
        "trial success",
        "positive topline results",
        "robust safety profile",
        "well-tolerated",
        "well tolerated",
        "pdufa date scheduled",
        "pdufa date set",
        "phase 2 readout",
        "phase 3 enrollment complete",
        severity=INFO,
    ),
    _signal(
        "safety_bad",
        -6,
        "Safety Concerns",
        "severe adverse events",
        "saes",
        "grade 3 toxicity",
        "grade 4 toxicity",
        "dose reduction required",
    ),
    _signal(
        "safety_good",
        4,
        "Favorable Safety",
        "well tolerated",
        "well-tolerated",
        "no dose-limiting toxicities",
        "no dose limiting toxicities",
    ),
    _signal(
        "regulatory_positive",
        6,
        "Regulatory Tailwind",
        "fast track designation granted",
        "breakthrough therapy designation",
        "priority review",
        "successful type a meeting",
        "successful type b meeting",
        "successful type c meeting",
        "fast track",
        "breakthrough therapy",
        "priority review granted",
    ),
    _signal(
        "regulatory_negative",
        -8,
        "Regulatory Risk",
        "fda clinical hold",
        "crl issued",
        "additional trials required",
        "manufacturing issues",
        "manufacturing deficiencies",
    ),
    _signal(
        "catalyst_upcoming",
        3,
        "Upcoming Catalyst",
        "pdufa date",
        "nda submission planned",
        "phase 2 readout",
        "phase 3 readout",
        "phase 3 enrollment complete",
        "topline data expected",
        "data readout",
        "catalyst",
    ),
    _signal(
        "moa_strength",
        3,
        "Mechanism Strength",
        "first-in-class",
        "best-in-class",
        "novel mechanism of action",
        "addressing unmet medical need",
    ),
    _signal(
        "moa_weak",
        -3,
        "Crowded Mechanism",
        "crowded space",
        "generic competition",
        "biosimilar threat",
        "market dominated by",
    ),
    _signal(
        "trial_execution_risk",
        -3,
        "Trial Execution Risk",
        "slow enrollment",
        "trial delays",
        "enrollment delays",
        "supply issues for investigational product",
        "supply issues for study drug",
    ),
    _signal(
        "non_dilutive_finance",
        4,
        "Non-Dilutive Funding",
        "non-dilutive financing",
        "grant funding",
        "barda",
        "nih grant",
    ),
    _signal(
        "leadership_turnover",
        -3,
        "Leadership Turnover",
        "ceo resigned",
        "cfo departure",
        "executive turnover",
    ),
    _signal(
        "board_conflict",
        -3,
        "Board/Governance Conflict",
        "board investigation",
        "governance concerns",
    ),
    _signal(
        "macro_sensitivity",
        -2,
        "Macro Sensitivity",
        "sensitive to interest rates",
        "limited pricing power",
        "foreign currency headwinds",
    ),
    _signal(
        "buyback_authorized",
        3,
        "Buyback Increased",
        "share repurchase authorization increased",
        "repurchase program increased",
        "expanded share repurchase program",
        "repurchased shares",
        "repurchased common stock",
    ),
    _signal(
        "dividend_raised",
        3,
        "Dividend Raised",
        "dividend increased",
        "raised our dividend",
        "increase our dividend",
        "quarterly dividend of",
        "initiating a dividend",
    ),
    _signal(
        "long_term_contract",
        2,
        "Long-Term Contract Signed",
        "long-term contract",
        "multi-year contract",
        "multi year contract",
        "long-term agreement",
        "multi-year agreement",
        "backlog reached",
        "award of multi-year contract",
    ),
    _signal(
        "backlog_record",
        3,
        "Record Backlog",
        "record backlog",
        "backlog at record",
        "highest backlog",
        "order book strong",
    ),
    _signal(
        "credit_upgrade",
        4,
        "Credit Upgraded",
        "credit rating upgraded",
        "outlook raised to",
        "rating upgraded",
    ),
    _signal(
        "debt_refinance",
        2,
        "Debt Refinanced",
        "refinanced at lower rate",
        "refinanced our debt",
        "reprice our term loan",
        "reprice our credit facility",
        "refinanced debt at lower rates",
        "extended maturities",
    ),
    _signal(
        "material_weakness_remediated",
        4,
        "Controls Remediated",
        "material weakness has been remediated",
        "remediated the material weakness",
        "remediation of material weakness",
        "material weaknesses have been remediated",
    ),
    _signal(
        "auditor_clean",
        2,
        "Auditor Clean Opinion",
        "no issues noted by auditor",
        "unqualified opinion",
        "clean opinion",
        "no material weaknesses identified",
    ),
)

# Negative signal id -> positive ids it overrides when both are present.
CONFLICT_MAP: Mapping[str, Tuple[str, ...]] = {
    "material_weakness": ("material_weakness_remediated", "auditor_clean"),
    "audit_opinion_issue": ("auditor_clean",),
    "restatement": ("auditor_clean",),
    "clinical_negative": ("clinical_positive",),
    "clinical_failure": ("clinical_positive",),
    "safety_bad": ("safety_good",),
    "regulatory_negative": ("regulatory_positive",),
    "regulatory_setback": ("regulatory_positive",),
    "moa_weak": ("moa_strength",),
    "debt_refinance_risk": ("debt_refinance",),
    "dilution_risk": ("buyback_authorized",),
    "demand_decline": ("backlog_record",),
}


# ----------------------------
# Matcher pipeline
# ----------------------------


@dataclass(frozen=True)
class MatchContext:
    """Everything a suppression predicate may look at for one phrase hit."""

    text: str
    index: int
    phrase: str
    signal_id: str
    snippet: str
    context: str
    stale_years: Tuple[str, ...] = ()

    @property
    def snippet_lower(self) -> str:
        return self.snippet.lower()

    @property
    def preceding(self) -> str:
        start = max(0, self.index - NEGATION_WINDOW)
        return self.text[start : self.index].lower()


Predicate = Callable[[MatchContext], bool]


def build_match_context(
    text: str,
    index: int,
    phrase: str,
    signal_id: str,
    stale_years: Sequence[str] = (),
) -> MatchContext:
    snippet = text[max(0, index - SNIPPET_RADIUS) : min(len(text), index + SNIPPET_RADIUS)]
    context = text[max(0, index - CONTEXT_RADIUS) : min(len(text), index + CONTEXT_RADIUS)].lower()
    return MatchContext(
        text=text,
        index=index,
        phrase=phrase,
        signal_id=signal_id,
        snippet=snippet,
        context=context,
        stale_years=tuple(stale_years),
    )


def mentions_stale_year(match: MatchContext) -> bool:
    return any(year in match.context for year in match.stale_years)


def mentions_resolution(match: MatchContext) -> bool:
    return any(phrase in match.context for phrase in RESOLUTION_PHRASES)


def has_hypothetical_prefix(match: MatchContext) -> bool:
    snippet = match.snippet_lower
    for prefix in HYPOTHETICAL_PREFIXES:
        if prefix in snippet:
            return True
        if f"{prefix} a {snippet}" in match.context or f"{prefix} {snippet}" in match.context:
            return True
    return False


def is_boilerplate_section(match: MatchContext) -> bool:
    boilerplate = any(token in match.context for token in BOILERPLATE_SECTION_TOKENS)
    allowed = any(token in match.context for token in ALLOWED_SECTION_TOKENS)
    return boilerplate and not allowed


def is_government_restructuring(match: MatchContext) -> bool:
    snippet = match.snippet_lower
    return "restructuring" in snippet and any(token in snippet for token in GOVERNMENT_TOKENS)


def is_adverse_event_risk_language(match: MatchContext) -> bool:
    snippet = match.snippet_lower
    return "adverse events" in snippet and any(token in snippet for token in ADVERSE_EVENT_QUALIFIERS)


def is_negated(match: MatchContext) -> bool:
    preceding = match.preceding
    return any(token in preceding for token in NEGATION_TOKENS)


def is_hypothetical(match: MatchContext) -> bool:
    snippet = match.snippet_lower
    modal_hits = sum(1 for hint in MODAL_HINTS if hint in snippet)
    concrete_hits = sum(1 for verb in CONCRETE_VERBS if verb in snippet)
    return modal_hits > 0 and concrete_hits == 0


def is_historical(match: MatchContext) -> bool:
    snippet = match.snippet_lower
    return any(hint in snippet for hint in HISTORICAL_HINTS)


SUPPRESSION_PREDICATES: Tuple[Tuple[str, Predicate], ...] = (
    ("stale_year", mentions_stale_year),
    ("resolution", mentions_resolution),
    ("hypothetical_prefix", has_hypothetical_prefix),
    ("boilerplate", is_boilerplate_section),
    ("government_restructuring", is_government_restructuring),
    ("adverse_event_risk", is_adverse_event_risk_language),
    ("negation", is_negated),
    ("modal", is_hypothetical),
    ("historical", is_historical),
)


def suppression_reason(match: MatchContext) -> Optional[str]:
    """Name of the first predicate that rejects the match, or None if it stands."""
    for name, predicate in SUPPRESSION_PREDICATES:
        if predicate(match):
            return name
    return None


def strip_html(html: Optional[str]) -> str:
    if not html:
        return ""
    without_tags = re.sub(r"<[^>]+>", " ", html)
    return re.sub(r"\s+", " ", html_entities.unescape(without_tags)).strip()


def find_signal(
    text: str,
    definition: SignalDefinition,
    *,
    lower: Optional[str] = None,
    stale_years: Sequence[str] = (),
) -> Optional[MatchContext]:
    """First occurrence of any phrase of ``definition`` that is not suppressed."""
    lower = text.lower() if lower is None else lower
    for phrase in definition.phrases:
        needle = phrase.lower()
        position = 0
        while True:
            index = lower.find(needle, position)
            if index == -1:
                break
            match = build_match_context(text, index, phrase, definition.id, stale_years)
            if suppression_reason(match) is None:
                return match
            position = index + len(needle)
    return None


def scan_text(
    document: FilingDocument,
    catalog: Sequence[SignalDefinition] = SIGNAL_CATALOG,
    *,
    stale_years: Sequence[str] = (),
) -> List[FilingSignal]:
    """Signals found in one filing, at most one per catalog id."""
    text = document.text or ""
    if not text:
        return []
    lower = text.lower()
    found: List[FilingSignal] = []
    for definition in catalog:
        match = find_signal(text, definition, lower=lower, stale_years=stale_years)
        if match is None:
            continue
        found.append(
            FilingSignal(
                id=definition.id,
                title=definition.title,
                score=definition.score,
                severity=definition.resolved_severity,
                snippet=match.snippet,
                form=document.form,
                filed=document.filed,
                doc_url=document.doc_url,
                accession=document.accession,
                cik=document.cik,
                include_in_score=definition.include_in_score,
            )
        )
    return found


def resolve_conflicts(
    signals: Iterable[FilingSignal],
    conflicts: Mapping[str, Sequence[str]] = CONFLICT_MAP,
) -> List[FilingSignal]:
    signals = list(signals)
    present = {signal.id for signal in signals}
    dropped = set()
    for negative, positives in conflicts.items():
        if negative in present:
            dropped.update(positives)
    return [signal for signal in signals if signal.id not in dropped]


def is_foreign_filer(forms: Iterable[Optional[str]]) -> bool:
    for form in forms:
        normalized = (form or "").upper().strip()
        if any(normalized.startswith(prefix) for prefix in FOREIGN_FORMS):
            return True
    return False


# ----------------------------
# Deep scan signals
# ----------------------------


def amended_filings_signal(
    filings: Sequence[FilingMeta], as_of: Optional[date] = None
) -> Optional[FilingSignal]:
    """Flag 10-K/A or 10-Q/A filings within three years of ``as_of``, the newest primary filing."""
    dated = [(meta, _parse_date(meta.filed)) for meta in filings]
    cutoff = (as_of or date.today()) - AMENDMENT_LOOKBACK
    amendments = [
        (meta, filed)
        for meta, filed in dated
        if filed is not None and filed >= cutoff and (meta.form or "").upper().strip() in AMENDMENT_FORMS
    ]
    if not amendments:
        return None
    amendments.sort(key=lambda item: item[1], reverse=True)
    latest, _ = amendments[0]
    forms = ", ".join(f"{meta.form} ({meta.filed})" for meta, _ in amendments)
    return FilingSignal(
        id="amended_filings",
        title="Amended Filing History",
        score=-2,
        severity=WARNING,
        snippet=f"{len(amendments)} amended periodic report(s) in the last three years: {forms}",
        form=latest.form,
        filed=latest.filed,
        doc_url=latest.doc_url,
        accession=latest.accession,
        cik=latest.cik,
    )


def insider_pattern_signal(transaction_codes: Sequence[str]) -> Optional[FilingSignal]:
    """Coarse Form 4 read: open-market purchases count double against sales."""
    codes = [(code or "").upper().strip() for code in transaction_codes]
    buys = codes.count(INSIDER_BUY_CODE)
    sells = codes.count(INSIDER_SELL_CODE)
    if buys == 0 and sells == 0:
        return None
    balance = INSIDER_BUY_WEIGHT * buys - sells
    if balance >= 6:
        score, title = 3, "Insider Buying"
    elif balance >= 3:
        score, title = 2, "Insider Buying"
    elif balance >= 1:
        score, title = 1, "Insider Buying"
    elif balance > -3:
        score, title = 0, "Mixed Insider Activity"
    elif balance > -6:
        score, title = -1, "Insider Selling"
    else:
        score, title = -2, "Insider Selling"
    return FilingSignal(
        id="insider_pattern",
        title=title,
        score=score,
        severity=WARNING if score < 0 else INFO,
        snippet=f"Recent Form 4 activity: {buys} purchase(s), {sells} sale(s).",
        form="4",
        include_in_score=score != 0,
    )


# ----------------------------
# Cross-filing accumulation
# ----------------------------


@dataclass
class SignalAccumulator:
    """Merges per-filing hits; feed filings most recent first."""

    catalog: Sequence[SignalDefinition] = SIGNAL_CATALOG
    stale_years: Tuple[str, ...] = ()
    forms_seen: List[str] = field(default_factory=list)
    scanned: int = 0
    newest_filed: Optional[date] = None
    _signals: Dict[str, FilingSignal] = field(default_factory=dict)

    def add(self, document: FilingDocument) -> List[FilingSignal]:
        self.scanned += 1
        self.forms_seen.append(document.form)
        filed = _parse_date(document.filed)
        if filed is not None and (self.newest_filed is None or filed > self.newest_filed):
            self.newest_filed = filed
        hits = scan_text(document, self.catalog, stale_years=self.stale_years)
        for hit in hits:
            existing = self._signals.get(hit.id)
            if existing is None or abs(hit.score) > abs(existing.score):
                self._signals[hit.id] = hit
        return hits

    def finish(
        self,
        *,
        foreign_filer: bool = False,
        filing_index: Sequence[FilingMeta] = (),
        insider_codes: Optional[Sequence[str]] = None,
        as_of: Optional[str] = None,
    ) -> List[FilingSignal]:
        signals = list(self._signals.values())
        if filing_index:
            anchor = _parse_date(as_of) or self.newest_filed
            amended = amended_filings_signal(filing_index, anchor)
            if amended is not None:
                signals.append(amended)
        if insider_codes is not None:
            insider = insider_pattern_signal(insider_codes)
            if insider is not None:
                signals.append(insider)
        signals = resolve_conflicts(signals)
        forms = list(self.forms_seen) + [meta.form for meta in filing_index]
        if foreign_filer or is_foreign_filer(forms):
            signals = [signal for signal in signals if signal.id != "going_concern"]
        return signals


class FilingScanner:
    """Synchronous scanner over already fetched filing text."""

    def __init__(
        self,
        catalog: Sequence[SignalDefinition] = SIGNAL_CATALOG,
        *,
        stale_years: Sequence[str] = (),
    ) -> None:
        self.catalog = tuple(catalog)
        self.stale_years = tuple(stale_years)

    def accumulator(self) -> SignalAccumulator:
        return SignalAccumulator(catalog=self.catalog, stale_years=self.stale_years)

    def scan(
        self,
        documents: Iterable[FilingDocument],
        *,
        foreign_filer: bool = False,
        filing_index: Sequence[FilingMeta] = (),
        insider_codes: Optional[Sequence[str]] = None,
    ) -> List[FilingSignal]:
        ordered = sorted(documents, key=_recency_key, reverse=True)
        accumulator = self.accumulator()
        for document in ordered:
            accumulator.add(document)
        signals = accumulator.finish(
            foreign_filer=foreign_filer,
            filing_index=filing_index,
            insider_codes=insider_codes,
        )
        LOGGER.debug("Scanned %d filings, %d signals", accumulator.scanned, len(signals))
        return signals


# ----------------------------
# Internal helpers
# ----------------------------


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def _recency_key(document: FilingDocument) -> Tuple[int, date]:
    filed = _parse_date(document.filed)
    if filed is None:
        return (0, date.min)
    return (1, filed)
