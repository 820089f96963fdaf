"""Numeric helpers shared by the state builder, the rules and the narrative.

Every helper treats ``None``, ``NaN`` and unparseable input as "missing" via a
single predicate, :func:`is_finite_value`, and returns ``None`` instead of
raising when an input is absent or a denominator is unusable.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence, Tuple

import numpy as np

from fundamentals_rating.domain.models.financials import FinancialPeriod, TtmSnapshot

SAFE_DIVISION_THRESHOLD = 1e-6
MIN_DEBT_THRESHOLD = 1_000_000
ONE_YEAR = timedelta(days=365)
YEAR_TOLERANCE = timedelta(days=30)

Bands = Sequence[Tuple[float, int]]


@dataclass(frozen=True)
class CoverageResult:
    value: Optional[float]
    periods: int
    status: str


def is_finite_value(value: object) -> bool:
    """Single presence test: None, NaN, +/-inf and non-numbers are missing."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return bool(np.isfinite(float(value)))
    except (TypeError, ValueError, OverflowError):
        return False


def safe_div(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    if not is_finite_value(numerator) or not is_finite_value(denominator):
        return None
    if abs(denominator) < SAFE_DIVISION_THRESHOLD:
        return None
    return numerator / denominator


def clamp(low: float, value: Optional[float], high: float) -> Optional[float]:
    if not is_finite_value(value):
        return None
    return max(low, min(high, float(value)))


def clamp01(value: Optional[float]) -> Optional[float]:
    return clamp(0.0, value, 1.0)


def pct_change(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    """Percent change against the magnitude of the previous value."""
    if not is_finite_value(current) or not is_finite_value(previous) or previous == 0:
        return None
    return (current - previous) / abs(previous) * 100


def calc_margin(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    if not is_finite_value(numerator) or not is_finite_value(denominator):
        return None
    if denominator <= 0:
        return None
    return numerator / denominator * 100


def calc_cagr(latest: Optional[float], older: Optional[float], years: float) -> Optional[float]:
    """Compound annual growth as a ratio (0.12 == 12 %)."""
    if not is_finite_value(latest) or not is_finite_value(older):
        return None
    if older <= 0 or years <= 0:
        return None
    ratio = latest / older
    if ratio < 0:
        return None
    return ratio ** (1 / years) - 1


def band_score(value: float, bands: Bands) -> int:
    """Score of the first band whose lower bound ``value`` reaches."""
    for minimum, score in bands:
        if value >= minimum:
            return score
    return bands[-1][1] if bands else 0


def fmt_pct(value: Optional[float]) -> str:
    if not is_finite_value(value):
        return "n/a"
    return f"{float(value):.2f}%"


def fmt_money(value: Optional[float]) -> str:
    if not is_finite_value(value):
        return "n/a"
    number = float(value)
    magnitude = abs(number)
    if magnitude >= 1e12:
        return f"${number / 1e12:.2f}T"
    if magnitude >= 1e9:
        return f"${number / 1e9:.2f}B"
    if magnitude >= 1e6:
        return f"${number / 1e6:.2f}M"
    if magnitude >= 1e3:
        return f"${number / 1e3:.1f}K"
    return f"${number:.0f}"


# ----------------------------
# Period series helpers
# ----------------------------

def calc_trend(quarters: Sequence[FinancialPeriod], name: str) -> Optional[float]:
    """Latest quarter versus the same quarter a year earlier, as a ratio.

    ``quarters`` must be ascending. Returns None when no period ends within
    30 days of one year before the latest one.
    """
    if len(quarters) < 2:
        return None
    latest = quarters[-1]
    prior = None
    for candidate in quarters:
        gap = latest.period_end - candidate.period_end
        if abs(gap - ONE_YEAR) < YEAR_TOLERANCE:
            prior = candidate
            break
    if prior is None:
        return None
    now_value = latest.get(name)
    prior_value = prior.get(name)
    if not is_finite_value(now_value) or not is_finite_value(prior_value) or prior_value == 0:
        return None
    return (now_value - prior_value) / abs(prior_value)


def sum_abs_last(quarters: Sequence[FinancialPeriod], name: str, count: int = 4) -> Optional[float]:
    """Sum of absolute values over the latest ``count`` ascending quarters."""
    if len(quarters) < count:
        return None
    values = [abs(v) for v in (q.get(name) for q in quarters[-count:]) if is_finite_value(v)]
    if not values:
        return None
    return float(sum(values))


def infer_tax_rate(
    ttm: Optional[TtmSnapshot], latest_annual: Optional[FinancialPeriod]
) -> Optional[float]:
    """Effective tax rate (ratio) clamped to [0, 0.5], TTM first."""
    candidates = []
    if ttm is not None:
        candidates.append((ttm.get("income_before_taxes"), ttm.get("income_tax_expense")))
    if latest_annual is not None:
        candidates.append((latest_annual.income_before_taxes, latest_annual.income_tax_expense))
    for pretax, tax in candidates:
        if not is_finite_value(pretax) or not is_finite_value(tax) or pretax == 0:
            continue
        return clamp(0.0, tax / pretax, 0.5)
    return None


def interest_coverage_ttm(quarters_desc: Sequence[FinancialPeriod]) -> CoverageResult:
    """EBIT over interest for the latest four quarters (descending input)."""
    window = list(quarters_desc[:4])
    ebit_quarters = [q for q in window if is_finite_value(q.operating_income)]
    if len(ebit_quarters) < 2:
        return CoverageResult(None, len(ebit_quarters), "insufficient-data")
    ebit = sum(float(q.operating_income) for q in ebit_quarters)

    interest_quarters = [q for q in window if is_finite_value(q.interest_expense)]
    interest_sum = sum(abs(float(q.interest_expense)) for q in interest_quarters)
    if not interest_quarters or interest_sum < 1:
        debt = window[0].total_debt if window else None
        debt_value = float(debt) if is_finite_value(debt) else 0.0
        if debt_value < MIN_DEBT_THRESHOLD:
            return CoverageResult(math.inf, len(ebit_quarters), "debt-free")
        return CoverageResult(None, len(ebit_quarters), "missing-interest")

    annualized = len(interest_quarters) < 4
    interest = interest_sum / len(interest_quarters) * 4 if annualized else interest_sum
    return CoverageResult(
        ebit / interest,
        len(interest_quarters),
        "annualized-interest" if annualized else "ok",
    )


def interest_coverage_annual(latest: Optional[FinancialPeriod]) -> CoverageResult:
    if latest is None or not is_finite_value(latest.operating_income):
        return CoverageResult(None, 0, "insufficient-data")
    interest = abs(latest.interest_expense) if is_finite_value(latest.interest_expense) else 0.0
    if interest < 1:
        debt = latest.total_debt if is_finite_value(latest.total_debt) else 0.0
        if debt < MIN_DEBT_THRESHOLD:
            return CoverageResult(math.inf, 1, "debt-free")
        return CoverageResult(None, 1, "missing-interest")
    return CoverageResult(latest.operating_income / interest, 1, "ok")


def runway_years(
    sector_bucket: str,
    latest: Optional[FinancialPeriod],
    ttm_fcf: Optional[float],
    ttm_net_income: Optional[float],
) -> Optional[float]:
    """Years of cash left at the current TTM burn; ``inf`` when not burning."""
    if sector_bucket == "Financials" or latest is None:
        return None
    cash = latest.cash
    short_term = latest.short_term_investments
    if not is_finite_value(cash) and not is_finite_value(short_term):
        return None
    total = (cash if is_finite_value(cash) else 0.0) + (
        short_term if is_finite_value(short_term) else 0.0
    )
    if is_finite_value(ttm_fcf) and ttm_fcf >= 0:
        return math.inf
    if not is_finite_value(ttm_fcf):
        if is_finite_value(ttm_net_income) and ttm_net_income > 0:
            return math.inf
        return None
    if total <= 0:
        return 0.0
    return total / abs(ttm_fcf)
