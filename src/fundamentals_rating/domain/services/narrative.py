"""Deterministic narrative sentences and momentum health for a rated ticker.

Each sentence slot has a small pool of equivalent phrasings. The phrasing is
chosen by hashing ``ticker:slot`` so the same ticker always reads the same way
while different tickers get some variety.
"""
from __future__ import annotations

import hashlib
from typing import Dict, List, Optional, Sequence

from fundamentals_rating.domain.models.financials import FinancialState
from fundamentals_rating.domain.models.rating import MomentumHealth, NarrativeSummary, RatingResult
from fundamentals_rating.domain.models.signals import FilingSignal
from fundamentals_rating.domain.services.sector import BIOTECH_PHARMA, TECH_INTERNET

FILING_IMPACT_CAP = 20

SENTENCE_POOLS: Dict[str, Sequence[str]] = {
    "burn_narrowing": (
        "Cash burn is narrowing, indicating improved operational efficiency.",
        "Cash burn is shrinking quarter over quarter, a sign of tighter operations.",
    ),
    "burn_accelerating": (
        "Cash burn is accelerating.",
        "The pace of cash burn is picking up.",
    ),
    "investment_phase": (
        "Aggressive investment phase: Capital is being deployed into R&D to fuel rapid top-line growth.",
        "Investment phase: heavy R&D spending is funding rapid revenue expansion.",
    ),
    "unprofitable_growth": (
        "Unprofitable growth: Revenue is surging, but at the cost of deep cash flow deficits.",
        "Growth at a cost: revenue is climbing quickly while cash flow stays deeply negative.",
    ),
    "mature_profile": (
        "Mature profile: Revenue is soft, but the business generates healthy free cash flow.",
        "Mature profile: sales are flat to down, yet free cash flow remains healthy.",
    ),
    "balanced_compounder": (
        "Balanced compounder: Delivering both double-digit growth and healthy cash flows.",
        "Balanced compounder: double-digit growth backed by solid free cash flow.",
    ),
    "filings_positive": (
        "Regulatory filings suggest positive underlying momentum.",
        "Recent filings lean constructive.",
    ),
    "filings_dilution": (
        "Filings indicate potential shareholder dilution.",
        "Recent filings point to possible shareholder dilution.",
    ),
    "filings_negative": (
        "Regulatory filings contain recent risk factors.",
        "Recent filings flag risks worth reviewing.",
    ),
    "penny_runway": (
        "Speculative: Extremely short cash runway creates high financing risk.",
        "Speculative: the cash runway is very short, so new financing is likely.",
    ),
    "penny_dilution": (
        "Dilution Risk: Micro-cap structure relying heavily on equity financing.",
        "Dilution Risk: a micro-cap that leans heavily on equity raises.",
    ),
    "penny_burn": (
        "Micro-cap profile: High volatility and burn rate.",
        "Micro-cap profile: expect volatility alongside a high burn rate.",
    ),
    "penny_stable": (
        "Micro-cap profile: Volatility expected, but balance sheet appears stable.",
        "Micro-cap profile: volatile, though the balance sheet looks stable.",
    ),
    "distressed": (
        "Financial position appears distressed.",
        "The financial position looks distressed.",
    ),
}

RULE_EXPLAINERS: Dict[str, Dict[str, str]] = {
    "Revenue growth YoY": {"pos": "Sales are growing vs. last year.", "neg": "Sales are shrinking vs. last year."},
    "Gross margin": {"pos": "High profit on every product sold.", "neg": "Low profit per product sold."},
    "Gross margin (health)": {"pos": "Strong margins support R&D.", "neg": "Margins are squeezed."},
    "Gross margin trend": {
        "pos": "Business is becoming more efficient.",
        "neg": "Profitability per unit is dropping.",
    },
    "Operating leverage": {
        "pos": "Converts gross profit into operating profit efficiently.",
        "neg": "Overhead eats into gross profit.",
    },
    "Gross margin (industrial)": {"pos": "Healthy markup on goods.", "neg": "Low markup suggests commodity pricing."},
    "FCF margin": {"pos": "Business generates extra cash for growth.", "neg": "Burning cash to operate."},
    "Cash Runway (years)": {"pos": "Enough cash for the long haul.", "neg": "Might need to raise money soon."},
    "Shares dilution YoY": {"pos": "Share count is stable.", "neg": "New shares reduce your ownership slice."},
    "Capital Return": {
        "pos": "Returns cash to shareholders via buybacks and dividends.",
        "neg": "Capital return is limited or constrained by weak cash generation.",
    },
    "Working Capital": {
        "pos": "Efficient cash cycle; sales turn into cash quickly.",
        "neg": "Cash cycle is inefficient; working capital can trap cash.",
    },
    "Effective Tax Rate": {
        "pos": "Tax rate looks within a normal operating range.",
        "neg": "Tax rate looks distorted (often one-time items or mix effects).",
    },
    "Debt / Equity": {"pos": "Conservative debt levels.", "neg": "High debt increases risk."},
    "Net Debt / FCF": {
        "pos": "Debt can be paid off quickly.",
        "neg": "Debt burden is heavy relative to cash flow.",
    },
    "Debt Maturity Runway": {
        "pos": "More long-term debt reduces near-term refinancing risk.",
        "neg": "More short-term debt increases refinancing risk.",
    },
    "Interest coverage": {"pos": "Profits easily cover interest payments.", "neg": "Struggling to pay interest costs."},
    "Capex intensity": {
        "pos": "Efficient spending on assets.",
        "neg": "Heavy spending required to maintain business.",
    },
    "ROE": {"pos": "Efficiently using shareholder money.", "neg": "Low return on shareholder capital."},
    "ROE quality": {"pos": "High quality returns.", "neg": "Weak returns on capital."},
    "ROIC": {
        "pos": "Creating value on every dollar invested.",
        "neg": "Returns are lower than the cost of capital.",
    },
    "Asset Efficiency": {
        "pos": "Assets are being put to work efficiently.",
        "neg": "Assets are under-productive relative to revenue.",
    },
    "Dividend coverage": {
        "pos": "Dividend is safe and funded by cash.",
        "neg": "Dividend costs more than the cash earned.",
    },
    "Net income trend": {"pos": "Profits are trending up.", "neg": "Profits are shrinking."},
    "Revenue CAGR (3Y)": {"pos": "Consistent long-term growth.", "neg": "Growth has stalled over time."},
    "EPS CAGR (3Y)": {"pos": "Earnings are compounding.", "neg": "Earnings have stagnated."},
    "R&D intensity": {"pos": "Investing heavily in the future.", "neg": "Spending little on innovation."},
    "Price / Sales": {
        "pos": "Valuation is reasonable relative to sales.",
        "neg": "Expensive relative to sales.",
    },
    "Price / Earnings": {
        "pos": "Valuation is reasonable relative to profit.",
        "neg": "Expensive relative to profit.",
    },
    "Price / Book": {
        "pos": "Valuation is reasonable relative to book value.",
        "neg": "Expensive relative to book value.",
    },
    "Return on Assets": {
        "pos": "Profitable relative to total assets.",
        "neg": "Low profit relative to asset base.",
    },
}


def pick_sentence(ticker: str, key: str) -> str:
    """Stable choice from ``SENTENCE_POOLS[key]`` for this ticker."""
    pool = SENTENCE_POOLS[key]
    digest = hashlib.sha256(f"{ticker.upper()}:{key}".encode("utf-8")).hexdigest()
    return pool[int(digest[:8], 16) % len(pool)]


def explain_rule(name: str, score: float) -> str:
    explainer = RULE_EXPLAINERS.get(name)
    if not explainer:
        return ""
    return explainer["pos"] if score >= 0 else explainer["neg"]


def momentum_label(score: int) -> str:
    if score >= 80:
        return "Strong Momentum"
    if score >= 60:
        return "Likely Continuation"
    if score >= 40:
        return "Stable / Mixed"
    if score >= 20:
        return "Weak / Stalling"
    return "Deteriorating"


def momentum_health(state: FinancialState, signals: Sequence[FilingSignal]) -> MomentumHealth:
    """0-100 score from operating trends plus capped filing sentiment, 50 is neutral."""
    score = 50
    revenue_trend = state.revenue_trend or 0.0
    margin_trend = (state.operating_margin_trend or 0.0) / 100
    rnd_trend = state.rnd_trend or 0.0

    if revenue_trend > 0.5:
        score += 15
    elif revenue_trend > 0.2:
        score += 10
    elif revenue_trend > 0.05:
        score += 5
    elif revenue_trend < -0.1:
        score -= 10

    if margin_trend > 0.05:
        score += 10
    elif margin_trend < -0.05:
        score -= 10

    if state.sector_bucket in (BIOTECH_PHARMA, TECH_INTERNET) and rnd_trend > 0.1:
        score += 5

    filing_score = sum(signal.score for signal in signals)
    score += max(-FILING_IMPACT_CAP, min(FILING_IMPACT_CAP, filing_score))
    score = max(0, min(100, score))
    return MomentumHealth(score=score, label=momentum_label(score))


class NarrativeSynthesizer:
    """Compose the short summary shown next to a rating."""

    def compose(
        self,
        ticker: str,
        result: RatingResult,
        state: FinancialState,
        signals: Sequence[FilingSignal],
    ) -> NarrativeSummary:
        keys: List[str] = []
        keys.extend(self._burn_keys(state))
        keys.extend(self._regime_keys(state))
        keys.extend(self._filing_keys(signals))
        keys.extend(self._profile_keys(result, state))

        sentences: List[str] = []
        for key in dict.fromkeys(keys):
            sentences.append(pick_sentence(ticker, key))

        explainers = {
            reason.name: explain_rule(reason.name, reason.score)
            for reason in result.reasons
            if not reason.skipped and reason.name in RULE_EXPLAINERS
        }
        return NarrativeSummary(
            sentences=sentences,
            momentum=momentum_health(state, signals),
            explainers=explainers,
        )

    @staticmethod
    def _burn_keys(state: FinancialState) -> List[str]:
        burn_trend = state.burn_trend
        fcf_margin = state.fcf_margin or 0.0
        if burn_trend is None:
            return []
        if burn_trend > 0.15:
            return ["burn_narrowing"]
        if burn_trend < -0.15 and fcf_margin < -20:
            return ["burn_accelerating"]
        return []

    @staticmethod
    def _regime_keys(state: FinancialState) -> List[str]:
        growth = state.revenue_growth or 0.0
        fcf_margin = state.fcf_margin or 0.0
        if growth > 40 and fcf_margin < 0:
            if state.sector_bucket in (BIOTECH_PHARMA, TECH_INTERNET):
                return ["investment_phase"]
            return ["unprofitable_growth"]
        if growth < 0 and fcf_margin > 10:
            return ["mature_profile"]
        if growth > 15 and fcf_margin > 10:
            return ["balanced_compounder"]
        return []

    @staticmethod
    def _filing_keys(signals: Sequence[FilingSignal]) -> List[str]:
        positive = sum(1 for signal in signals if signal.score > 0)
        negative = sum(1 for signal in signals if signal.score < 0)
        if positive > negative:
            return ["filings_positive"]
        if negative > positive:
            if any(signal.id == "dilution_risk" for signal in signals):
                return ["filings_dilution"]
            return ["filings_negative"]
        return []

    @staticmethod
    def _profile_keys(result: RatingResult, state: FinancialState) -> List[str]:
        if result.penny_stock:
            runway: Optional[float] = state.cash_runway_years
            if runway is not None and runway < 0.75:
                return ["penny_runway"]
            if state.dilution_yoy is not None and state.dilution_yoy > 20:
                return ["penny_dilution"]
            if state.fcf_margin is not None and state.fcf_margin < -50:
                return ["penny_burn"]
            return ["penny_stable"]
        if result.tier == "danger":
            return ["distressed"]
        return []
