from __future__ import annotations

from datetime import date

import pytest

from fundamentals_rating.domain.models.financials import QUARTER, FinancialPeriod
from fundamentals_rating.domain.services.adjustments import (
    compute_share_change,
    detect_likely_reverse_split,
    detect_likely_split,
)

ENDS = [date(2023, 3, 31), date(2023, 6, 30), date(2023, 9, 30), date(2023, 12, 31), date(2024, 3, 31)]


def _q(end: date, shares: float, eps: float, net_income: float = 100.0) -> FinancialPeriod:
    return FinancialPeriod(
        period_end=end,
        period_type=QUARTER,
        shares_outstanding=shares,
        eps_basic=eps,
        net_income=net_income,
    )


def test_plain_dilution_is_reported_yoy():
    quarters = [_q(end, shares, 1.0) for end, shares in zip(ENDS, [100, 102, 104, 106, 110])]

    change = compute_share_change(quarters)

    assert change.change_yoy == pytest.approx(10.0)
    assert change.raw_yoy == pytest.approx(10.0)
    assert not change.likely_split
    assert not change.likely_reverse_split


def test_forward_split_voids_yoy_dilution():
    # 4:1 split in the latest quarter; EPS drops to a quarter, net income flat.
    quarters = [_q(end, 100, 1.0) for end in ENDS[:4]] + [_q(ENDS[4], 400, 0.25)]

    change = compute_share_change(quarters)

    assert change.likely_split
    assert change.split.shares_ratio == pytest.approx(4.0)
    assert change.change_yoy is None
    assert change.raw_yoy == pytest.approx(300.0)


def test_share_jump_without_inverse_eps_is_not_a_split():
    # Shares doubled but EPS barely moved: an equity raise, not a split.
    quarters_desc = [_q(ENDS[4], 200, 0.95), _q(ENDS[3], 100, 1.0)]

    assert detect_likely_split(quarters_desc) is None


def test_reverse_split_detected():
    quarters_desc = [_q(ENDS[4], 10, 10.0), _q(ENDS[3], 100, 1.0)]

    signal = detect_likely_reverse_split(quarters_desc)

    assert signal is not None
    assert signal.reverse
    assert signal.shares_ratio == pytest.approx(10.0)


def test_split_requires_stable_net_income():
    quarters_desc = [_q(ENDS[4], 400, 0.25, net_income=300.0), _q(ENDS[3], 100, 1.0, net_income=100.0)]

    assert detect_likely_split(quarters_desc) is None


def test_no_share_counts_gives_empty_change():
    quarters = [FinancialPeriod(period_end=end, period_type=QUARTER, revenue=10.0) for end in ENDS]

    change = compute_share_change(quarters)

    assert change.change_yoy is None
    assert change.change_qoq is None
