"""Continuous growth-stage intensity used to soften reinvestment penalties.

Each input is mapped through a smoothstep ramp between two anchors and the
three ramps are averaged, so a company at 39.5 % growth is treated almost
exactly like one at 40 % instead of falling off a threshold.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fundamentals_rating.domain.models.financials import FinancialState
from fundamentals_rating.domain.services.calculations import clamp01, is_finite_value

REVENUE_GROWTH_RAMP = (20.0, 60.0)
FCF_BURN_RAMP = (0.0, 40.0)
CAPEX_INTENSITY_RAMP = (10.0, 50.0)

MID_CAP_ASSET_FLOOR = 500_000_000
MID_CAP_MARKET_CAP_FLOOR = 1_000_000_000
LARGE_CAP_CEILING = 50_000_000_000


@dataclass(frozen=True)
class GrowthStage:
    intensity: float
    revenue_ramp: float
    burn_ramp: float
    capex_ramp: float
    mid_or_large: bool

    @property
    def applies(self) -> bool:
        return self.mid_or_large and self.intensity > 0


def smoothstep(value: Optional[float], low: float, high: float) -> float:
    """Hermite ramp: 0 at ``low``, 1 at ``high``, zero slope at both ends."""
    if not is_finite_value(value) or high <= low:
        return 0.0
    t = clamp01((value - low) / (high - low)) or 0.0
    return t * t * (3 - 2 * t)


def is_mid_or_large(state: FinancialState) -> bool:
    """Scale gate shared by softening and the Growth Phase Investment rule."""
    assets, market_cap = state.total_assets, state.market_cap
    by_assets = is_finite_value(assets) and MID_CAP_ASSET_FLOOR <= assets < LARGE_CAP_CEILING
    by_cap = is_finite_value(market_cap) and MID_CAP_MARKET_CAP_FLOOR <= market_cap < LARGE_CAP_CEILING
    return bool(by_assets or by_cap)


def growth_stage(state: FinancialState) -> GrowthStage:
    growth = state.revenue_growth
    if growth is None and state.revenue_trend is not None:
        growth = state.revenue_trend * 100
    burn = -state.fcf_margin if is_finite_value(state.fcf_margin) else None

    revenue_ramp = smoothstep(growth, *REVENUE_GROWTH_RAMP)
    burn_ramp = smoothstep(burn, *FCF_BURN_RAMP)
    capex_ramp = smoothstep(state.capex_to_revenue, *CAPEX_INTENSITY_RAMP)
    intensity = (revenue_ramp + burn_ramp + capex_ramp) / 3
    return GrowthStage(
        intensity=intensity,
        revenue_ramp=revenue_ramp,
        burn_ramp=burn_ramp,
        capex_ramp=capex_ramp,
        mid_or_large=is_mid_or_large(state),
    )
