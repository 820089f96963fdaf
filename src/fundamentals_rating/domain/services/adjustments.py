"""Share-count change handling with stock split guards."""
from __future__ import annotations

from typing import Optional, Sequence

from fundamentals_rating.domain.models.financials import FinancialPeriod, ShareChange, SplitSignal
from fundamentals_rating.domain.services.calculations import is_finite_value, pct_change
from fundamentals_rating.domain.services.periods import find_year_ago

SPLIT_TOLERANCE = 0.25
SPLIT_MIN_RATIO = 2.0
REVERSE_SPLIT_MIN_RATIO = 4.0
EPS_FLOOR = 0.01
NET_INCOME_STABILITY = 0.35


def detect_likely_split(
    quarters_desc: Sequence[FinancialPeriod],
    tolerance: float = SPLIT_TOLERANCE,
    min_ratio: float = SPLIT_MIN_RATIO,
) -> Optional[SplitSignal]:
    """Flag a forward split: shares jump >= ``min_ratio`` while EPS moves inversely."""
    for current, prior in zip(quarters_desc, quarters_desc[1:]):
        shares_now, shares_before = current.shares_outstanding, prior.shares_outstanding
        if not is_finite_value(shares_now) or not is_finite_value(shares_before) or shares_before == 0:
            continue
        shares_ratio = shares_now / shares_before
        if shares_ratio < min_ratio:
            continue
        eps_ratio = _eps_ratio(current, prior)
        if eps_ratio is None:
            continue
        if abs(shares_ratio * eps_ratio - 1) > tolerance:
            continue
        if not _net_income_stable(current, prior):
            continue
        return SplitSignal(
            shares_ratio=shares_ratio,
            eps_ratio=eps_ratio,
            current_period=current.period_end,
            prior_period=prior.period_end,
        )
    return None


def detect_likely_reverse_split(
    quarters_desc: Sequence[FinancialPeriod],
    tolerance: float = SPLIT_TOLERANCE,
    min_ratio: float = REVERSE_SPLIT_MIN_RATIO,
) -> Optional[SplitSignal]:
    """Flag a reverse split: shares shrink >= ``min_ratio``x while EPS scales up."""
    for current, prior in zip(quarters_desc, quarters_desc[1:]):
        shares_now, shares_before = current.shares_outstanding, prior.shares_outstanding
        if not is_finite_value(shares_now) or not is_finite_value(shares_before) or shares_now == 0:
            continue
        reverse_ratio = shares_before / shares_now
        if reverse_ratio < min_ratio:
            continue
        eps_ratio = _eps_ratio(current, prior)
        if eps_ratio is None:
            continue
        if abs(eps_ratio / reverse_ratio - 1) > tolerance:
            continue
        if not _net_income_stable(current, prior):
            continue
        return SplitSignal(
            shares_ratio=reverse_ratio,
            eps_ratio=eps_ratio,
            current_period=current.period_end,
            prior_period=prior.period_end,
            reverse=True,
        )
    return None


def compute_share_change(quarters: Sequence[FinancialPeriod]) -> ShareChange:
    """Quarter-over-quarter and year-over-year share change (percent).

    Only periods that report a share count take part. A likely split or
    reverse split voids the YoY figure so it is never scored as dilution or
    as a buyback.
    """
    series = sorted(
        (q for q in quarters if is_finite_value(q.shares_outstanding)),
        key=lambda q: q.period_end,
        reverse=True,
    )
    if not series:
        return ShareChange()
    latest = series[0]
    previous = series[1] if len(series) > 1 else None
    raw_qoq = pct_change(latest.shares_outstanding, previous.shares_outstanding) if previous else None
    year_ago = find_year_ago(series, latest)
    raw_yoy = pct_change(latest.shares_outstanding, year_ago.shares_outstanding) if year_ago else None

    split = detect_likely_split(series)
    reverse_split = detect_likely_reverse_split(series)
    adjusted_yoy = raw_yoy
    if split is not None or reverse_split is not None:
        adjusted_yoy = None
    return ShareChange(
        change_qoq=raw_qoq,
        change_yoy=adjusted_yoy,
        raw_yoy=raw_yoy,
        split=split,
        reverse_split=reverse_split,
    )


def _eps_ratio(current: FinancialPeriod, prior: FinancialPeriod) -> Optional[float]:
    eps_now, eps_before = current.eps_basic, prior.eps_basic
    if not is_finite_value(eps_now) or not is_finite_value(eps_before):
        return None
    if eps_now == 0 or eps_before == 0:
        return None
    if (eps_now > 0) != (eps_before > 0):
        return None
    if abs(eps_now) < EPS_FLOOR or abs(eps_before) < EPS_FLOOR:
        return None
    return eps_now / eps_before


def _net_income_stable(current: FinancialPeriod, prior: FinancialPeriod) -> bool:
    ni_now, ni_before = current.net_income, prior.net_income
    if not is_finite_value(ni_now) or not is_finite_value(ni_before) or abs(ni_before) <= 1e-6:
        return False
    return abs(ni_now / ni_before - 1) < NET_INCOME_STABILITY
