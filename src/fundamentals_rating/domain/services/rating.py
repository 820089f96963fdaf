"""Rule-based rating engine.

The engine is a stateless pipeline run once per entity::

    evaluate rules -> sector tuning -> penny-stock and lifecycle adjustments
    -> distress caps -> macro adjustment -> filing signals
    -> growth-phase adjustment -> normalisation -> event-risk cap -> tier
"""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from fundamentals_rating.domain.models.financials import FinancialState, PricePoint
from fundamentals_rating.domain.models.rating import (
    Completeness,
    RatingResult,
    RuleOutcome,
    RuleReason,
)
from fundamentals_rating.domain.models.signals import FilingSignal
from fundamentals_rating.domain.services.calculations import is_finite_value
from fundamentals_rating.domain.services.growth_stage import GrowthStage, growth_stage
from fundamentals_rating.domain.services.periods import NoUsablePeriodsError, PeriodNormalizer
from fundamentals_rating.domain.services.rules import RULE_CATALOG_VERSION, RULES, Rule
from fundamentals_rating.domain.services.sector import BIOTECH_PHARMA, TECH_INTERNET, is_biotech
from fundamentals_rating.domain.services.state_builder import FinancialStateBuilder

LOGGER = logging.getLogger(__name__)

RATING_MIN = -60
RATING_MAX = 100
RATING_RANGE = RATING_MAX - RATING_MIN

TIER_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (91, "elite"),
    (76, "bullish"),
    (61, "solid"),
    (46, "mixed"),
    (31, "spec"),
    (0, "danger"),
)

# (sector bucket, rule name) -> multiplier; anything absent scores at 1x.
SECTOR_RULE_MULTIPLIERS: Dict[Tuple[str, str], float] = {}

DEFAULT_RISK_FREE_RATE_PCT = 4.5
HIGH_RATE_THRESHOLD_PCT = 4.0
MACRO_PENALTY = 5

PENNY_PRICE = 5.0
PENNY_MARKET_CAP = 200_000_000
BIOTECH_PENNY_CAP = 50_000_000
SMALL_CAP_THRESHOLD = 2_000_000_000

SOFTENED_RULES = ("FCF margin", "Operating leverage")
SOFTENING_STRENGTH = 0.5
HYPERGROWTH_INTENSITY = 0.6
HYPERGROWTH_PENALTY_FLOOR = -4

GROWTH_ADJUSTMENT_INTENSITY = 0.5
GROWTH_ADJUSTMENT_BANDS: Tuple[Tuple[float, float], ...] = ((80, 12), (50, 10), (30, 8))
GROWTH_ADJUSTMENT_RECOVERY = 0.5
PROFITABILITY_RULES = frozenset(
    {
        "ROE",
        "ROE quality",
        "ROIC",
        "Return on Assets",
        "Gross margin",
        "Gross margin (industrial)",
        "Gross margin (health)",
    }
)

EVENT_RISK_DROP_PCT = -30.0
EVENT_RISK_CEILING = 40

MISSING_CATEGORIES = ("valuation", "solvency", "profitability", "growth", "other")
_CATEGORY_PATTERNS = (
    ("valuation", re.compile(r"\bprice\b|\bvaluation\b|\bev/", re.IGNORECASE)),
    ("solvency", re.compile(r"debt|coverage|solvency|runway", re.IGNORECASE)),
    ("profitability", re.compile(r"margin|\broe\b|\broic\b|return", re.IGNORECASE)),
    ("growth", re.compile(r"growth|trend|cagr", re.IGNORECASE)),
)


class RatingEngine:
    """Evaluate the static rule catalog against a :class:`FinancialState`."""

    def __init__(
        self,
        rules: Sequence[Rule] = RULES,
        *,
        risk_free_rate_pct: float = DEFAULT_RISK_FREE_RATE_PCT,
        sector_multipliers: Optional[Mapping[Tuple[str, str], float]] = None,
    ) -> None:
        self.rules = tuple(rules)
        self.risk_free_rate_pct = risk_free_rate_pct
        self.sector_multipliers = dict(SECTOR_RULE_MULTIPLIERS if sector_multipliers is None else sector_multipliers)

    def rate(self, state: FinancialState, signals: Iterable[FilingSignal] = ()) -> RatingResult:
        bucket = state.sector_bucket
        biotech = is_biotech(bucket, state.sector)
        penny = is_penny_stock(state)
        stage = growth_stage(state)
        dilution = state.dilution_yoy

        reasons: List[RuleReason] = []
        override_notes: List[str] = []
        missing_by_category: Dict[str, List[str]] = {key: [] for key in MISSING_CATEGORIES}
        total = 0.0
        missing_count = 0

        for rule in self.rules:
            outcome = self._evaluate(rule, state)
            score = self._sector_tuned(bucket, rule.name, outcome.score)
            message = outcome.message or rule.name

            if penny:
                score, message = self._penny_adjust(rule, state, score, message, biotech, override_notes)
            if not outcome.skipped and rule.name in SOFTENED_RULES:
                score = self._soften(rule.name, score, stage, override_notes)

            if outcome.skipped:
                if not outcome.not_applicable:
                    missing_count += 1
                    missing_by_category[classify_missing(rule.name)].append(rule.name)
                score = 0
            else:
                total += score

            reasons.append(
                RuleReason(
                    name=rule.name,
                    weight=rule.weight,
                    score=score,
                    message=message,
                    missing=outcome.missing,
                    not_applicable=outcome.not_applicable,
                    basis=rule.basis,
                )
            )
            LOGGER.debug("%s %s -> %s (%s)", state.ticker, rule.name, score, message)

        total = self._distress_caps(state, total, dilution)

        if is_finite_value(state.fcf_margin) and state.fcf_margin < -50:
            burn = abs(state.fcf_margin / 100)
            override_notes.append(f"High Cash Burn: Spends ~${burn:.1f} for every $1 of revenue generated.")

        if self.risk_free_rate_pct > HIGH_RATE_THRESHOLD_PCT and is_finite_value(state.net_margin) and state.net_margin < 0:
            total -= MACRO_PENALTY
            override_notes.append(
                "Economic Climate: High interest rates make it harder and more expensive "
                "for unprofitable companies to borrow money."
            )

        filing_score = sum(signal.score for signal in signals if signal.include_in_score)
        if filing_score:
            total += filing_score
            if filing_score <= -5:
                override_notes.append(f"Regulatory filings signal caution (Net impact: {filing_score} pts).")
            elif filing_score >= 3:
                override_notes.append(
                    f"Regulatory filings suggest positive underlying momentum (Net impact: +{filing_score} pts)."
                )

        adjustment = growth_phase_adjustment(state, stage, reasons)
        if adjustment > 0:
            total += adjustment
            override_notes.append(
                f"Growth-phase adjustment: +{adjustment:.1f} pts offsets part of the profitability "
                f"penalties (intensity {stage.intensity:.2f})."
            )

        normalized = normalize_score(total)
        if is_event_risk(state, biotech) and normalized > EVENT_RISK_CEILING:
            normalized = EVENT_RISK_CEILING
            override_notes.append(
                f"Event risk: price fell {abs(state.price_change_5d):.0f}% in five sessions; "
                f"score capped at {EVENT_RISK_CEILING}."
            )

        applicable = len(reasons) - missing_count
        result = RatingResult(
            raw_score=round(total, 2),
            normalized_score=normalized,
            tier=score_tier(normalized),
            reasons=reasons,
            completeness=Completeness(total=len(reasons), applicable=applicable, missing=missing_count),
            override_notes=override_notes,
            missing_notes=missing_notes(missing_by_category),
            filing_score=filing_score,
            growth_adjustment=round(adjustment, 2),
            growth_intensity=round(stage.intensity, 4),
            penny_stock=penny,
            catalog_version=RULE_CATALOG_VERSION,
        )
        LOGGER.info(
            "Rated %s: raw=%.1f normalized=%s tier=%s penny=%s",
            state.ticker,
            result.raw_score,
            result.normalized_score,
            result.tier,
            penny,
        )
        return result

    # ----------------------------
    # Internal helpers
    # ----------------------------

    @staticmethod
    def _evaluate(rule: Rule, state: FinancialState) -> RuleOutcome:
        try:
            return rule.evaluate(state)
        except (ArithmeticError, TypeError, ValueError) as exc:
            LOGGER.warning("Rule %s failed for %s: %s", rule.name, state.ticker, exc)
            return RuleOutcome(score=0, message="Evaluation failed", missing=True)

    def _sector_tuned(self, bucket: str, rule_name: str, score: int) -> int:
        multiplier = self.sector_multipliers.get((bucket, rule_name), 1.0)
        if multiplier == 1.0:
            return score
        return int(round(score * multiplier))

    @staticmethod
    def _penny_adjust(
        rule: Rule,
        state: FinancialState,
        score: int,
        message: str,
        biotech: bool,
        override_notes: List[str],
    ) -> Tuple[int, str]:
        growth = state.revenue_growth_ttm
        if rule.name == "Revenue growth YoY" and is_finite_value(growth) and growth > 15:
            revenue = state.revenue_latest
            if revenue and revenue < 10_000_000:
                return int(round(score / 2)), f"{message} - Early-Stage Surge (low base)"
            return score, f"{message} - Growth from a low base; sustainability uncertain."
        dilution = state.dilution_yoy
        if rule.name == "Shares dilution YoY" and is_finite_value(dilution) and not biotech:
            if dilution > 50:
                score = min(score, -max(12, abs(rule.weight)))
                message = (
                    f"{message} - Heavy dilution suggests continuous equity raises; "
                    "survival depends on external capital."
                )
            if dilution > 100:
                override_notes.append("Death Spiral Dilution Risk flagged (share count more than doubled YoY).")
        return score, message

    @staticmethod
    def _soften(rule_name: str, score: int, stage: GrowthStage, override_notes: List[str]) -> int:
        if score >= 0 or not stage.applies:
            return score
        softened = int(round(score * (1 - SOFTENING_STRENGTH * stage.intensity)))
        if rule_name == "FCF margin" and stage.intensity >= HYPERGROWTH_INTENSITY:
            softened = max(softened, HYPERGROWTH_PENALTY_FLOOR)
        if softened != score:
            override_notes.append(
                f"{rule_name} penalty softened from {score} to {softened} "
                f"(growth-stage intensity {stage.intensity:.2f})."
            )
        return softened

    @staticmethod
    def _distress_caps(state: FinancialState, total: float, dilution: Optional[float]) -> float:
        bucket = state.sector_bucket
        runway, fcf = state.cash_runway_years, state.fcf_margin
        if bucket == BIOTECH_PHARMA and runway is not None and runway < 1 and fcf is not None and fcf < -80:
            total = min(total, 30)
        growth = state.revenue_growth_ttm
        if (
            bucket == TECH_INTERNET
            and growth is not None and growth < 0
            and fcf is not None and fcf < -10
            and dilution is not None and dilution > 10
        ):
            total = min(total, 45)
        return total


def is_penny_stock(state: FinancialState) -> bool:
    biotech = is_biotech(state.sector_bucket, state.sector)
    last_close, market_cap = state.last_close, state.market_cap
    has_cap = is_finite_value(market_cap) and market_cap > 0
    dilution, runway = state.dilution_yoy, state.cash_runway_years
    return bool(
        (not biotech and is_finite_value(last_close) and last_close < PENNY_PRICE)
        or (not biotech and has_cap and market_cap < PENNY_MARKET_CAP)
        or (biotech and has_cap and market_cap < BIOTECH_PENNY_CAP)
        or (is_finite_value(dilution) and dilution > 25)
        or (is_finite_value(runway) and runway < 1)
    )


def is_event_risk(state: FinancialState, biotech: bool) -> bool:
    """Small-cap biotech that dropped at least 30 % over five sessions."""
    market_cap, change = state.market_cap, state.price_change_5d
    if not biotech or not is_finite_value(change) or change > EVENT_RISK_DROP_PCT:
        return False
    return not is_finite_value(market_cap) or market_cap < SMALL_CAP_THRESHOLD


def growth_phase_adjustment(state: FinancialState, stage: GrowthStage, reasons: Sequence[RuleReason]) -> float:
    """Bounded offset of profitability penalties for companies in a growth phase."""
    growth = state.revenue_growth
    if not stage.applies or stage.intensity < GROWTH_ADJUSTMENT_INTENSITY or growth is None:
        return 0.0
    points = 0.0
    for minimum, value in GROWTH_ADJUSTMENT_BANDS:
        if growth >= minimum:
            points = value * stage.intensity
            break
    penalties = sum(-reason.score for reason in reasons if reason.name in PROFITABILITY_RULES and reason.score < 0)
    return min(points, penalties * GROWTH_ADJUSTMENT_RECOVERY)


def normalize_score(raw: float) -> int:
    normalized = (raw - RATING_MIN) / RATING_RANGE * 100
    return int(round(max(0.0, min(100.0, normalized))))


def score_tier(normalized: float) -> str:
    for threshold, label in TIER_THRESHOLDS:
        if normalized >= threshold:
            return label
    return TIER_THRESHOLDS[-1][1]


def classify_missing(rule_name: str) -> str:
    for category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(rule_name):
            return category
    return "other"


def missing_notes(missing_by_category: Mapping[str, Sequence[str]]) -> List[str]:
    notes: List[str] = []
    for category in MISSING_CATEGORIES:
        items = missing_by_category.get(category, ())
        if len(items) > 2:
            if category == "valuation":
                notes.append("Valuation blindspot: P/E, P/S, and other ratios unavailable (likely negative earnings).")
            else:
                notes.append(f"{category.capitalize()} data limited ({len(items)} metrics missing).")
        else:
            notes.extend(f"{item}: Data unavailable" for item in items)
    return notes


def rate_entity(
    ticker: str,
    records: Iterable[Mapping[str, Any]],
    *,
    signals: Iterable[FilingSignal] = (),
    sector: Optional[str] = None,
    company_name: Optional[str] = None,
    sic_description: Optional[str] = None,
    issuer_type: Optional[str] = None,
    prices: Sequence[PricePoint] = (),
    market_cap: Optional[float] = None,
    as_of: Optional[date] = None,
    engine: Optional[RatingEngine] = None,
) -> Optional[RatingResult]:
    """Normalize raw period records and rate them; None when nothing is usable."""
    try:
        series = PeriodNormalizer().normalize(records)
    except NoUsablePeriodsError as exc:
        LOGGER.warning("Cannot rate %s: %s", ticker, exc)
        return None
    state = FinancialStateBuilder().build(
        ticker,
        series,
        sector=sector,
        company_name=company_name,
        sic_description=sic_description,
        issuer_type=issuer_type,
        prices=prices,
        market_cap=market_cap,
        as_of=as_of,
    )
    if state is None:
        return None
    return (engine or RatingEngine()).rate(state, signals)
