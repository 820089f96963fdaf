from __future__ import annotations

import pytest

from fundamentals_rating.domain.models.financials import FinancialState
from fundamentals_rating.domain.services.growth_stage import growth_stage, is_mid_or_large, smoothstep


def test_smoothstep_is_continuous_and_clamped():
    assert smoothstep(None, 20, 60) == 0.0
    assert smoothstep(10, 20, 60) == 0.0
    assert smoothstep(80, 20, 60) == 1.0
    assert smoothstep(40, 20, 60) == pytest.approx(0.5)
    # No cliff around a threshold.
    assert abs(smoothstep(39.5, 20, 60) - smoothstep(40.0, 20, 60)) < 0.03


def test_growth_stage_averages_three_ramps():
    state = FinancialState(
        ticker="GRWT",
        revenue_growth_yoy=60.0,
        fcf_margin=-40.0,
        capex_to_revenue=50.0,
        total_assets=2_000_000_000,
    )

    stage = growth_stage(state)

    assert stage.intensity == pytest.approx(1.0)
    assert stage.applies


def test_growth_stage_falls_back_to_revenue_trend():
    state = FinancialState(ticker="T", revenue_trend=0.4)

    stage = growth_stage(state)

    assert stage.revenue_ramp == pytest.approx(0.5)
    assert not stage.applies


def test_size_gate():
    assert is_mid_or_large(FinancialState(ticker="M", market_cap=3e9))
    assert not is_mid_or_large(FinancialState(ticker="S", market_cap=3e8, total_assets=1e8))
    assert not is_mid_or_large(FinancialState(ticker="L", market_cap=8e11, total_assets=9e11))
