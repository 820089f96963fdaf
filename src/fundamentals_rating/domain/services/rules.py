"""Static, ordered catalog of scoring rules.

Every rule is a pure function of an immutable :class:`FinancialState` that
returns a :class:`RuleOutcome`. Rules never raise for missing inputs; they
return a ``missing(...)`` outcome instead, flagged not-applicable when the
rule does not fit the company's sector or profile.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from fundamentals_rating.domain.models.financials import FinancialState
from fundamentals_rating.domain.models.rating import RuleOutcome, missing
from fundamentals_rating.domain.services.calculations import (
    band_score,
    fmt_money,
    fmt_pct,
    is_finite_value,
)
from fundamentals_rating.domain.services.growth_stage import is_mid_or_large
from fundamentals_rating.domain.services.sector import (
    BIO_DESCRIPTION_PATTERN,
    BIOTECH_PHARMA,
    CONSUMER_SERVICES,
    ENERGY_MATERIALS,
    FINANCIALS,
    INDUSTRIAL,
    REAL_ESTATE,
    RETAIL,
    TECH_INTERNET,
)

RULE_CATALOG_VERSION = "2025.12-41"

UNBOUNDED_THRESHOLD = 1e6


@dataclass(frozen=True)
class Rule:
    """Rule descriptor: the evaluation plus the data window it reads."""

    name: str
    weight: int
    evaluate: Callable[[FinancialState], RuleOutcome]
    window: str = "ttm"
    fields: Tuple[str, ...] = ()

    @property
    def basis(self) -> Dict[str, object]:
        return {"window": self.window, "fields": list(self.fields)}


def _ok(score: int, message: str) -> RuleOutcome:
    return RuleOutcome(score=score, message=message)


def _growth_or_zero(state: FinancialState) -> float:
    growth = state.revenue_growth
    return growth if growth is not None else 0.0


def _unbounded(value: Optional[float]) -> bool:
    return value is not None and (math.isinf(value) and value > 0 or value > UNBOUNDED_THRESHOLD)


# -----------------
# Growth and valuation
# -----------------

def revenue_growth_yoy(state: FinancialState) -> RuleOutcome:
    growth = state.revenue_growth
    if growth is None:
        return missing("No revenue growth data")
    if state.quarter_count < 8 and abs(growth) > 50:
        return RuleOutcome(0, f"{fmt_pct(growth)} (New entity; YoY distorted)", not_applicable=True)
    cagr = state.revenue_cagr_3y
    if growth < -20 and cagr is not None and cagr > 20:
        return RuleOutcome(
            0, f"{fmt_pct(growth)} (CAGR {fmt_pct(cagr)}; one-time distortion)", not_applicable=True
        )
    bucket = state.sector_bucket
    if bucket == TECH_INTERNET:
        bands = ((30, 10), (20, 8), (10, 4), (0, 0), (-10, -4), (-1000, -8))
        return _ok(band_score(growth, bands), f"{fmt_pct(growth)} (YoY)")
    if bucket == BIOTECH_PHARMA:
        return _ok(band_score(growth, ((50, 4), (0, 2), (-1000, -4))), f"{fmt_pct(growth)} (YoY)")
    return _ok(band_score(growth, ((10, 4), (0, 0), (-1000, -4))), f"{fmt_pct(growth)} (Industrial YoY)")


def price_to_sales(state: FinancialState) -> RuleOutcome:
    ps = state.ps_ratio
    if ps is not None and ps < 0.01:
        return missing("Data invalid", True)
    if ps is None:
        return missing("No P/S data")
    bucket = state.sector_bucket
    if bucket == TECH_INTERNET and _growth_or_zero(state) > 40:
        bands = ((-10, 8), (-18, 6), (-25, 4), (-40, 0), (-1000, -4))
        return _ok(band_score(-ps, bands), f"{ps:.1f}x (High Growth)")
    if bucket in (TECH_INTERNET, BIOTECH_PHARMA):
        bands = ((-3, 8), (-6, 5), (-12, 2), (-18, -2), (-1000, -6))
        return _ok(band_score(-ps, bands), f"{ps:.1f}x")
    return _ok(band_score(-ps, ((-1.5, 8), (-3, 6), (-5, 2), (-1000, -4))), f"{ps:.1f}x")


def price_to_earnings(state: FinancialState) -> RuleOutcome:
    pe = state.pe_ratio
    if pe is None or pe <= 0:
        if state.sector_bucket == TECH_INTERNET and _growth_or_zero(state) > 30:
            return _ok(0, "Unprofitable (High Growth)")
        if pe is None and is_finite_value(state.eps_ttm) and state.eps_ttm > 0:
            return missing("Price data unavailable")
        return missing("Unprofitable", True)
    message = "> 1000x" if pe > 1000 else f"{pe:.1f}x"
    if state.is_fintech:
        bands = ((-25, 8), (-40, 5), (-60, 0), (-100, -4), (-1000, -6))
        return _ok(band_score(-pe, bands), f"{message} (Fintech)")
    if state.sector_bucket == FINANCIALS:
        bands = ((-12, 8), (-20, 5), (-35, 0), (-60, -4), (-1000, -6))
    else:
        bands = ((-12, 8), (-20, 5), (-30, 0), (-50, -4), (-1000, -8))
    return _ok(band_score(-pe, bands), message)


def price_to_book(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket not in (FINANCIALS, REAL_ESTATE):
        return missing("Not applicable", True)
    pb = state.pb_ratio
    if pb is None:
        return missing("No P/B data")
    if state.is_fintech:
        bands = ((-2, 4), (-4, 0), (-6, -2), (-1000, -4))
        return _ok(band_score(-pb, bands), f"{pb:.1f}x (Fintech)")
    return _ok(band_score(-pb, ((-1, 8), (-1.5, 5), (-3, 0), (-1000, -4))), f"{pb:.1f}x")


# -----------------
# Margins
# -----------------

def gross_margin(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket != TECH_INTERNET:
        return missing("Not applicable", True)
    gm = state.gross_margin
    if gm is None:
        return missing("No gross margin data")
    bands = ((75, 8), (60, 6), (50, 2), (40, -2), (-1000, -6))
    return _ok(band_score(gm, bands), fmt_pct(gm))


def gross_margin_industrial(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket != INDUSTRIAL:
        return missing("Not applicable", True)
    gm = state.gross_margin
    if gm is None:
        return missing("No gross margin data")
    bands = ((35, 5), (25, 2), (15, 0), (0, -4), (-1000, -6))
    return _ok(band_score(gm, bands), fmt_pct(gm))


def gross_margin_trend(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket != RETAIL:
        return missing("Not applicable", True)
    if state.gross_margin is None or state.gross_margin_prev is None:
        return missing("No gross margin trend data")
    trend = state.gross_margin - state.gross_margin_prev
    score = 6 if trend > 0 else 0 if trend == 0 else -6
    return _ok(score, fmt_pct(trend))


def gross_margin_health(state: FinancialState) -> RuleOutcome:
    bucket = state.sector_bucket
    if bucket not in ("Healthcare", "Staples", BIOTECH_PHARMA):
        return missing("Not applicable", True)
    gm = state.gross_margin
    is_bio = bucket == BIOTECH_PHARMA or bool(
        state.sic_description and BIO_DESCRIPTION_PATTERN.search(state.sic_description)
    )
    if is_bio:
        revenue = state.revenue_ttm if state.revenue_ttm is not None else state.revenue_latest
        if is_finite_value(revenue) and revenue < 50_000_000:
            return missing("Not applicable (early stage)", True)
        if gm is None:
            return missing("No gross margin data")
        return _ok(band_score(gm, ((80, 6), (60, 3), (40, 0), (-1000, -2))), fmt_pct(gm))
    if gm is None:
        return missing("No gross margin data")
    bands = ((55, 6), (45, 3), (35, 0), (0, -4), (-1000, -8))
    return _ok(band_score(gm, bands), fmt_pct(gm))


def operating_leverage(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket in (FINANCIALS, REAL_ESTATE):
        return missing("Not applicable", True)
    value = state.operating_leverage
    if value is None:
        return missing("No operating leverage data")
    score = band_score(value, ((0.6, 5), (0.5, 3), (0.4, 2), (-1000, 0)))
    return _ok(score, f"{value * 100:.1f}%")


def fcf_margin(state: FinancialState) -> RuleOutcome:
    fcf = state.fcf_margin
    if fcf is None:
        return missing("No FCF margin data")
    bucket = state.sector_bucket
    if bucket == BIOTECH_PHARMA:
        mid_or_large = (state.market_cap or 0) > 2e9
        burn_trend = state.burn_trend * 100 if state.burn_trend is not None else None
        growth = state.revenue_growth
        healthy_burn = bool((burn_trend and burn_trend > 15) or (growth and growth > 50))
        if healthy_burn:
            deep = (-2, -2, -2)
        elif mid_or_large:
            deep = (-2, -4, -6)
        else:
            deep = (-4, -6, -8)
        bands = ((10, 2), (0, 0), (-20, -2), (-50, deep[0]), (-100, deep[1]), (-1_000_000, deep[2]))
        message = f"{fmt_pct(fcf)} (Inv. Mode)" if healthy_burn else fmt_pct(fcf)
        return _ok(band_score(fcf, bands), message)
    if bucket in (REAL_ESTATE, FINANCIALS):
        return missing("Not applicable (Use FFO/Book)", True)
    if bucket in (INDUSTRIAL, CONSUMER_SERVICES):
        bands = ((12, 6), (8, 3), (4, 0), (0, -2), (-1_000_000, -6))
        return _ok(band_score(fcf, bands), fmt_pct(fcf))
    if bucket == TECH_INTERNET:
        bands = ((20, 6), (10, 3), (0, 0), (-20, -4), (-50, -8), (-1_000_000, -12))
        return _ok(band_score(fcf, bands), fmt_pct(fcf))
    return _ok(0, fmt_pct(fcf))


# -----------------
# Liquidity and dilution
# -----------------

def cash_runway(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket != BIOTECH_PHARMA:
        return missing("Not applicable", True)
    runway = state.cash_runway_years
    if runway is None:
        return missing("No runway data")
    if math.isinf(runway) or runway > 50:
        return _ok(4, "Self-funded")
    bands = ((3, 3), (1.5, 2), (0.75, 0), (0.5, -3), (-1000, -6))
    return _ok(band_score(runway, bands), f"{runway:.2f}y")


def shares_dilution(state: FinancialState) -> RuleOutcome:
    change = state.share_change
    if change.likely_split:
        return missing("Not applicable (likely split)", True)
    if change.likely_reverse_split:
        return _ok(-4, "Likely reverse split; treated as dilution risk")
    dilution = state.dilution_yoy
    if dilution is None:
        return missing("No share count data")
    message = f"{fmt_pct(dilution)} (YoY)"
    if state.sector_bucket == BIOTECH_PHARMA:
        score = band_score(-dilution, ((20, 2), (0, 0), (-20, -5), (-50, -10), (-1000, -15)))
        if (state.market_cap or 0) > 1e9 and score < -10:
            return _ok(-10, message)
        return _ok(score, message)
    value = -dilution
    if _growth_or_zero(state) > 40:
        return _ok(band_score(value, ((-5, 5), (-10, 3), (-20, 0), (-1000, -6))), message)
    bands = ((1, 8), (-1, 5), (-3, 2), (-5, 0), (-15, -6), (-1000, -12))
    return _ok(band_score(value, bands), message)


def capital_return(state: FinancialState) -> RuleOutcome:
    total = state.shareholder_return_ttm
    ratio = state.shareholder_return_to_fcf
    fcf = state.free_cash_flow_ttm
    if total is None or ratio is None or not is_finite_value(fcf) or fcf <= 0:
        return missing("Not applicable", True)
    score = band_score(ratio, ((0.75, 4), (0.4, 3), (0.2, 2), (0.05, 1), (-1000, 0)))
    message = (
        f"{fmt_money(total)} ({round(ratio * 100)}% of FCF)\n"
        f"Buybacks {fmt_money(state.buybacks_ttm)}\n"
        f"Dividends {fmt_money(state.dividends_ttm)}"
    )
    return _ok(score, message)


def working_capital(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket == FINANCIALS:
        return missing("Not applicable (Sector standard)", True)
    ccc = state.cash_conversion_cycle_days
    if ccc is None:
        return missing("Not applicable", True)
    bands = ((-30, 2), (-60, 1), (-120, 0), (-200, -1), (-100_000, -2))
    message = f"{round(ccc)}d CCC"
    if state.dso_days is not None:
        message += f" • {round(state.dso_days)}d DSO"
    return _ok(band_score(-ccc, bands), message)


def growth_phase_investment(state: FinancialState) -> RuleOutcome:
    if not is_mid_or_large(state):
        return missing("Not applicable (company size)", True)
    growth = state.revenue_growth
    if growth is None and state.revenue_trend is not None:
        growth = state.revenue_trend * 100
    capex = state.capex_to_revenue
    fcf = state.fcf_margin
    investing = (
        growth is not None and growth > 30
        and capex is not None and capex > 40
        and fcf is not None and fcf < -10
    )
    if not investing:
        return missing("Not applicable (no growth phase detected)", True)
    score = band_score(growth, ((80, 8), (60, 6), (40, 4), (30, 2), (-1000, 0)))
    return _ok(score, f"{fmt_pct(capex)} capex intensity")


def fintech_growth_momentum(state: FinancialState) -> RuleOutcome:
    if not state.is_fintech:
        return missing("Not applicable (fintech only)", True)
    growth = state.revenue_growth
    if growth is None and state.revenue_trend is not None:
        growth = state.revenue_trend * 100
    if growth is None or growth < 15:
        return missing("Not applicable (growth threshold not met)", True)
    score = band_score(growth, ((50, 8), (35, 6), (25, 4), (15, 2), (-1000, 0)))
    return _ok(score, f"{fmt_pct(growth)} revenue growth (digital banking scale-up)")


def effective_tax_rate(state: FinancialState) -> RuleOutcome:
    raw = state.effective_tax_rate
    if raw is None:
        return missing("Not applicable", True)
    pct = raw * 100 if abs(raw) <= 1 else raw
    message = fmt_pct(pct)
    pretax = state.pretax_income
    if is_finite_value(pretax) and pretax <= 0:
        message += " (loss-making)"
    elif pct < 5:
        message += " (likely tax credits/loss carryforwards)"
    elif pct > 45:
        message += " (elevated - check for one-time items)"
    elif 15 <= pct <= 35:
        message += " (normal range)"
    return _ok(0, message)


# -----------------
# Leverage
# -----------------

def debt_to_equity(state: FinancialState) -> RuleOutcome:
    ratio = state.debt_to_equity
    if ratio is not None and ratio < 0:
        return _ok(-10, "Negative equity (balance sheet deficit; monitor solvency)")
    total_debt, financial_debt = state.total_debt, state.financial_debt
    assets = state.total_assets
    debt_free = (
        total_debt == 0
        or financial_debt == 0
        or (financial_debt is not None and assets and financial_debt < assets * 0.01)
    )
    if debt_free:
        bonus = 5 if state.sector_bucket == BIOTECH_PHARMA else 10
        leases_only = (total_debt or 0) > 0 and financial_debt == 0
        return _ok(bonus, "No financial debt (leases only)" if leases_only else "No financial debt (debt-free)")
    if state.sector_bucket == FINANCIALS:
        return missing("Not applicable (Sector standard)", True)
    if ratio is None:
        return missing("No leverage data")
    net_ratio = state.net_debt_to_equity
    if net_ratio is not None and net_ratio < 0:
        return _ok(8, f"{net_ratio:.2f}x (Net Cash)")
    return _ok(band_score(-ratio, ((-1.5, 8), (-3, 6), (-4, 2), (-1000, -6))), f"{ratio:.2f}x")


def net_debt_to_fcf(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket not in (ENERGY_MATERIALS, REAL_ESTATE):
        return missing("Not applicable", True)
    if state.total_debt == 0 or state.financial_debt == 0:
        years: Optional[float] = 0.0
    else:
        years = state.net_debt_to_fcf_years
    if years is None or not math.isfinite(years):
        return missing("No data")
    return _ok(band_score(-years, ((-1, 4), (-3, 0), (-1000, -6))), f"{years:.1f}y")


def capex_intensity(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket != ENERGY_MATERIALS:
        return missing("Not applicable", True)
    value = state.capex_to_revenue
    if value is None:
        return missing("No data")
    return _ok(band_score(-value, ((-5, 2), (-10, 0), (-1000, -4))), fmt_pct(value))


# -----------------
# Returns
# -----------------

def return_on_equity(state: FinancialState) -> RuleOutcome:
    roe = state.roe
    if state.is_fintech:
        if roe is None:
            return missing("No ROE data")
        if _growth_or_zero(state) > 20:
            score = band_score(roe, ((12, 8), (5, 4), (0, 0), (-1000, -6)))
            return _ok(score, f"{fmt_pct(roe)} (Growth Phase)")
        return _ok(band_score(roe, ((15, 10), (8, 5), (0, -4), (-1000, -10))), fmt_pct(roe))
    if state.sector_bucket != FINANCIALS:
        return missing("Not applicable (financials only)", True)
    if roe is None:
        return missing("No ROE data")
    return _ok(band_score(roe, ((15, 10), (8, 5), (0, -4), (-1000, -10))), fmt_pct(roe))


def roe_quality(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket == FINANCIALS:
        return missing("Not applicable (use ROE for financials)", True)
    if state.sector_bucket == BIOTECH_PHARMA:
        return missing("Not applicable (pre-profit)", True)
    roe = state.roe
    if roe is None:
        return missing("No ROE data")
    bands = ((80, -4), (40, 6), (15, 4), (10, 2), (0, 0), (-1000, -8))
    return _ok(band_score(roe, bands), fmt_pct(roe))


def return_on_assets(state: FinancialState) -> RuleOutcome:
    net_income, assets = state.net_income, state.total_assets
    if net_income is None or not assets:
        return missing("No ROA data")
    roa = net_income / assets * 100
    bands = ((15, 8), (10, 6), (5, 3), (0, 0), (-1000, -4))
    return _ok(band_score(roa, bands), fmt_pct(roa))


def asset_efficiency(state: FinancialState) -> RuleOutcome:
    bucket = state.sector_bucket
    if bucket == FINANCIALS:
        return missing("Not applicable", True)
    if bucket == BIOTECH_PHARMA:
        return missing("Not applicable (pre-revenue)", True)
    turnover = state.asset_turnover
    if turnover is None:
        return missing("No asset turnover data")
    if bucket in (ENERGY_MATERIALS, INDUSTRIAL, REAL_ESTATE):
        bands = ((0.6, 6), (0.35, 3), (0.2, 1), (0.1, -2), (-1000, -4))
    else:
        bands = ((1.0, 8), (0.7, 5), (0.4, 2), (0.2, 0), (-1000, -4))
    return _ok(band_score(turnover, bands), f"{turnover:.2f}x")


def return_on_invested_capital(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket == FINANCIALS:
        return missing("Not applicable", True)
    if is_finite_value(state.total_equity) and state.total_equity < 0:
        return missing("Not applicable (negative equity)", True)
    roic = state.roic
    if roic is None:
        return missing("No ROIC data")
    if roic > 200:
        return missing("Not applicable (distorted calculation)", True)
    bands = ((25, 8), (15, 4), (6, 1), (0, -4), (-1000, -8))
    return _ok(band_score(roic, bands), fmt_pct(roic))


def net_income_trend(state: FinancialState) -> RuleOutcome:
    trend = state.profit_growth
    if trend is None:
        return missing("Not applicable (insufficient history)", True)
    bucket = state.sector_bucket
    if bucket == FINANCIALS:
        return _ok(band_score(trend, ((10, 4), (0, 0), (-1000, -4))), fmt_pct(trend))
    unprofitable = is_finite_value(state.net_income) and state.net_income < 0
    if unprofitable and bucket in (TECH_INTERNET, INDUSTRIAL):
        score = band_score(trend, ((50, 6), (20, 4), (10, 2), (0, 0), (-1000, -2)))
        message = f"{fmt_pct(trend)} (Loss narrowing)" if score > 0 else fmt_pct(trend)
        return _ok(score, message)
    return missing("Not applicable", True)


def interest_coverage(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket == FINANCIALS:
        return missing("Not applicable (Financials)", True)
    coverage = state.interest_coverage
    if coverage is None:
        if state.debt_to_equity is not None and state.debt_to_equity < 0.2:
            return RuleOutcome(10, "Debt-Free", missing=True, not_applicable=True)
        if state.interest_coverage_status == "missing-interest":
            return missing("Interest expense missing; coverage unknown")
        return missing("Data unavailable")
    if _unbounded(coverage):
        return RuleOutcome(10, "Debt-Free", missing=True, not_applicable=True)
    fcf_positive = is_finite_value(state.fcf_margin) and state.fcf_margin > 5
    if state.issuer_type == "foreign" and fcf_positive and coverage < 3:
        return _ok(-2 if coverage < 1 else 0, f"{coverage:.1f}x (FCF positive; IFRS distortion likely)")
    bands = ((12, 8), (6, 4), (3, 1), (1, -4), (-1000, -8))
    return _ok(band_score(coverage, bands), f"{coverage:.1f}x")


def revenue_cagr(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket == TECH_INTERNET:
        return missing("Not applicable", True)
    cagr = state.revenue_cagr_3y
    if cagr is None:
        return missing("Not applicable (insufficient history)", True)
    bands = ((12, 6), (7, 3), (3, 1), (0, -2), (-1000, -6))
    return _ok(band_score(cagr, bands), fmt_pct(cagr))


def eps_cagr(state: FinancialState) -> RuleOutcome:
    if state.sector_bucket == TECH_INTERNET:
        return missing("Not applicable", True)
    cagr = state.eps_cagr_3y
    if cagr is None:
        return missing("Not applicable (insufficient history)", True)
    bands = ((15, 6), (8, 3), (3, 1), (0, -2), (-1000, -6))
    return _ok(band_score(cagr, bands), fmt_pct(cagr))


def dividend_coverage(state: FinancialState) -> RuleOutcome:
    payout = state.dividend_payout_pct_fcf
    if payout is None:
        return missing("Not applicable (no dividend paid from positive FCF)", True)
    if payout < 20:
        return _ok(2, fmt_pct(payout))
    if payout <= 80:
        return _ok(5, fmt_pct(payout))
    if payout <= 100:
        return _ok(2, fmt_pct(payout))
    if payout <= 130:
        return _ok(-4, fmt_pct(payout))
    return _ok(-6, fmt_pct(payout))


def rd_intensity(state: FinancialState) -> RuleOutcome:
    bucket = state.sector_bucket
    if bucket in (FINANCIALS, REAL_ESTATE):
        return missing("Not applicable", True)
    rd = state.rd_to_revenue
    if rd is None:
        return missing("No R&D data")
    if rd > 100:
        return RuleOutcome(0, f"{fmt_pct(rd)} (R&D exceeds revenue; burn mode)", not_applicable=True)
    if bucket == TECH_INTERNET:
        bands = ((20, 5), (15, 3), (10, 2), (-1000, 0))
    elif bucket == BIOTECH_PHARMA:
        bands = ((30, 5), (20, 3), (15, 2), (-1000, 0))
    elif bucket == INDUSTRIAL:
        bands = ((7, 5), (5, 3), (3, 2), (-1000, 0))
    else:
        return missing("Not applicable", True)
    return _ok(band_score(rd, bands), fmt_pct(rd))


# -----------------
# Scaling companies
# -----------------

def asset_growth_velocity(state: FinancialState) -> RuleOutcome:
    growth = state.asset_growth_yoy
    revenue_growth = _growth_or_zero(state)
    if growth is None:
        if revenue_growth > 50:
            return _ok(2, "Rapid expansion presumed (high rev growth)")
        return missing("Insufficient history", True)
    if revenue_growth <= 30:
        return missing("Not applicable (mature company)", True)
    score = band_score(growth, ((50, 4), (30, 2), (15, 1), (-1000, 0)))
    label = " (Aggressive buildout)" if growth >= 50 else " (Scaling infra)" if growth >= 30 else ""
    return _ok(score, f"{fmt_pct(growth)} YoY{label}")


def revenue_per_asset_efficiency(state: FinancialState) -> RuleOutcome:
    trend = state.revenue_per_asset_change
    if trend is None:
        return missing("Insufficient data", True)
    if _growth_or_zero(state) < 20:
        return missing("Not applicable (low growth)", True)
    score = band_score(trend, ((15, 3), (5, 2), (0, 1), (-15, 0), (-1000, -2)))
    label = " (Strong monetization)" if trend >= 15 else " (Improving)" if trend >= 5 else ""
    return _ok(score, f"{fmt_pct(trend)} QoQ{label}")


def debt_maturity_runway(state: FinancialState) -> RuleOutcome:
    long_term, short_term = state.long_term_debt, state.short_term_debt
    if long_term is None and short_term is None:
        return missing("No debt structure data", True)
    total = (long_term or 0.0) + (short_term or 0.0)
    if total == 0:
        return missing("No debt structure data", True)
    if not (state.total_debt or 0) > 0:
        return missing("Debt-free", True)
    share = (long_term or 0.0) / total * 100
    growth = _growth_or_zero(state) > 20
    if growth:
        bands = ((60, 3), (40, 2), (20, 0), (-1000, -1))
        high, low = 60, 20
    else:
        bands = ((80, 3), (60, 2), (40, 0), (-1000, -2))
        high, low = 80, 40
    label = " (Long-term focused)" if share >= high else " (Near-term refinancing risk)" if share < low else ""
    return _ok(band_score(share, bands), f"{share:.0f}% long-term{label}")


def operating_leverage_inflection(state: FinancialState) -> RuleOutcome:
    ratios = state.opex_to_revenue
    if len(ratios) < 3:
        return missing("Insufficient quarterly history", True)
    growth = _growth_or_zero(state)
    if growth < 15:
        return missing("Not applicable (low growth)", True)
    latest, previous, oldest = ratios
    if latest < previous < oldest:
        improvement = oldest - latest
        score = band_score(improvement, ((10, 4), (5, 3), (2, 2), (-1000, 1)))
        return _ok(score, f"OpEx/Rev declining ({fmt_pct(latest)})")
    if growth > 50:
        return _ok(1, f"OpEx/Rev: {fmt_pct(latest)} (Aggressive scaling)")
    return _ok(0, f"OpEx/Rev: {fmt_pct(latest)} (Not yet inflecting)")


def cash_burn_deceleration(state: FinancialState) -> RuleOutcome:
    change = state.fcf_margin_change_qoq
    if change is None:
        return missing("Insufficient quarterly data", True)
    if state.fcf_margin is None or state.fcf_margin >= 0:
        return missing("Not applicable (FCF positive)", True)
    score = band_score(change, ((30, 4), (15, 3), (5, 2), (0, 0), (-1000, -2)))
    if change >= 30:
        label = " (Rapid improvement)"
    elif change >= 15:
        label = " (Path to profitability)"
    elif change < 0:
        label = " (Worsening)"
    else:
        label = ""
    return _ok(score, f"{fmt_pct(change)} QoQ improvement{label}")


def working_capital_efficiency(state: FinancialState) -> RuleOutcome:
    ratio = state.working_capital_to_capex
    if ratio is None:
        return missing("Insufficient data", True)
    if _growth_or_zero(state) < 20:
        return missing("Not applicable (mature)", True)
    score = band_score(ratio, ((0.5, 2), (0.2, 1), (0, 0), (-1000, -1)))
    label = " (Well-funded)" if ratio >= 0.5 else " (Tight)" if ratio < 0.2 else ""
    return _ok(score, f"{ratio:.2f}x{label}")


def revenue_quality(state: FinancialState) -> RuleOutcome:
    if state.is_fintech or state.sector_bucket == FINANCIALS:
        return missing("Not applicable (Financials)", True)
    dso, dso_prev, growth = state.dso_days, state.dso_prev_days, state.revenue_growth
    if dso is None or dso_prev is None or growth is None:
        return missing("Insufficient DSO data", True)
    change = dso - dso_prev
    if growth > 10 and change <= 0:
        sign = "+" if change >= 0 else ""
        return _ok(3, f"High-quality (DSO {sign}{change:.0f}d, Rev +{growth:.0f}%)")
    if growth > 10 and 0 < change < 5:
        return _ok(1, f"Acceptable quality (DSO +{change:.0f}d, Rev +{growth:.0f}%)")
    if change > 5:
        return _ok(-2, f"Quality concerns (DSO +{change:.0f}d, Rev +{growth:.0f}%)")
    return missing("Not applicable", True)


# -----------------
# Banking and fintech
# -----------------

def _banking_gate(state: FinancialState) -> Optional[RuleOutcome]:
    if not state.is_fintech and state.sector_bucket != FINANCIALS:
        return missing("Not applicable (banking only)", True)
    return None


def deposit_growth(state: FinancialState) -> RuleOutcome:
    gate = _banking_gate(state)
    if gate is not None:
        return gate
    growth = state.deposit_growth_yoy
    if growth is None:
        return missing("No deposit data", True)
    score = band_score(growth, ((40, 8), (25, 5), (15, 3), (5, 1), (-1000, 0)))
    label = " (Franchise expansion)" if growth >= 40 else " (Strong growth)" if growth >= 25 else ""
    return _ok(score, f"{fmt_pct(growth)} YoY{label}")


def net_interest_margin(state: FinancialState) -> RuleOutcome:
    gate = _banking_gate(state)
    if gate is not None:
        return gate
    nim = state.net_interest_margin
    if nim is None:
        return missing("Insufficient interest income data", True)
    score = band_score(nim, ((4, 5), (2.5, 3), (1.5, 1), (0, 0), (-1000, -2)))
    label = " (Strong spread)" if nim >= 4 else " (Thin margins)" if nim < 1.5 else ""
    return _ok(score, f"{fmt_pct(nim)}{label}")


def tech_investment(state: FinancialState) -> RuleOutcome:
    if not state.is_fintech:
        return missing("Not applicable (fintech only)", True)
    share = state.tech_spend_share
    if share is None:
        return missing("Tech spending not disclosed", True)
    score = band_score(share, ((25, 2), (15, 1), (5, 0), (-1000, -1)))
    label = " (Tech-first)" if share >= 25 else " (Tech-enabled)" if share >= 15 else ""
    return _ok(score, f"{fmt_pct(share)} of OpEx{label}")


RULES: Tuple[Rule, ...] = (
    Rule("Revenue growth YoY", 10, revenue_growth_yoy, "quarterly", ("revenue",)),
    Rule("Price / Sales", 8, price_to_sales, "ttm+price", ("revenue", "market_cap")),
    Rule("Price / Earnings", 8, price_to_earnings, "ttm+price", ("net_income", "market_cap")),
    Rule("Price / Book", 6, price_to_book, "latest+price", ("total_equity", "market_cap")),
    Rule("Gross margin", 8, gross_margin, "ttm", ("gross_profit", "revenue")),
    Rule("Gross margin (industrial)", 5, gross_margin_industrial, "ttm", ("gross_profit", "revenue")),
    Rule("Gross margin trend", 6, gross_margin_trend, "latest vs prior", ("gross_profit", "revenue")),
    Rule("Gross margin (health)", 6, gross_margin_health, "ttm", ("gross_profit", "revenue")),
    Rule("Operating leverage", 5, operating_leverage, "ttm", ("operating_income", "gross_profit")),
    Rule("FCF margin", 10, fcf_margin, "ttm", ("free_cash_flow", "revenue")),
    Rule("Cash Runway (years)", 10, cash_runway, "latest+ttm", ("cash", "short_term_investments", "free_cash_flow")),
    Rule("Shares dilution YoY", 10, shares_dilution, "quarterly", ("shares_outstanding", "eps_basic")),
    Rule("Capital Return", 3, capital_return, "ttm", ("treasury_stock_repurchased", "dividends_paid", "free_cash_flow")),
    Rule("Working Capital", 2, working_capital, "latest+ttm", ("accounts_receivable", "inventories", "accounts_payable")),
    Rule("Growth Phase Investment", 15, growth_phase_investment, "ttm", ("revenue", "capex", "free_cash_flow")),
    Rule("Fintech Growth Momentum", 8, fintech_growth_momentum, "quarterly", ("revenue",)),
    Rule("Effective Tax Rate", 0, effective_tax_rate, "ttm", ("income_tax_expense", "income_before_taxes")),
    Rule("Debt / Equity", 8, debt_to_equity, "latest", ("total_debt", "financial_debt", "total_equity")),
    Rule("Net Debt / FCF", 6, net_debt_to_fcf, "latest+ttm", ("total_debt", "cash", "free_cash_flow")),
    Rule("Capex intensity", 4, capex_intensity, "latest", ("capex", "revenue")),
    Rule("ROE", 10, return_on_equity, "ttm+latest", ("net_income", "total_equity")),
    Rule("ROE quality", 8, roe_quality, "ttm+latest", ("net_income", "total_equity")),
    Rule("Return on Assets", 6, return_on_assets, "ttm+latest", ("net_income", "total_assets")),
    Rule("Asset Efficiency", 6, asset_efficiency, "ttm+latest", ("revenue", "total_assets")),
    Rule("ROIC", 8, return_on_invested_capital, "ttm+latest", ("operating_income", "total_equity", "total_debt", "cash")),
    Rule("Net income trend", 6, net_income_trend, "quarterly", ("net_income",)),
    Rule("Interest coverage", 8, interest_coverage, "ttm", ("operating_income", "interest_expense")),
    Rule("Revenue CAGR (3Y)", 6, revenue_cagr, "annual", ("revenue",)),
    Rule("EPS CAGR (3Y)", 6, eps_cagr, "annual", ("eps_basic",)),
    Rule("Dividend coverage", 5, dividend_coverage, "ttm", ("dividends_paid", "free_cash_flow")),
    Rule("R&D intensity", 5, rd_intensity, "ttm", ("research_and_development", "revenue")),
    Rule("Asset Growth Velocity", 4, asset_growth_velocity, "quarterly", ("total_assets",)),
    Rule("Revenue per Asset Efficiency", 3, revenue_per_asset_efficiency, "quarterly", ("revenue", "total_assets")),
    Rule("Debt Maturity Runway", 3, debt_maturity_runway, "latest", ("long_term_debt", "short_term_debt")),
    Rule("Operating Leverage Inflection", 4, operating_leverage_inflection, "quarterly", ("operating_expenses", "revenue")),
    Rule("Cash Burn Deceleration", 4, cash_burn_deceleration, "quarterly", ("free_cash_flow", "revenue")),
    Rule("Working Capital Efficiency", 2, working_capital_efficiency, "latest", ("current_assets", "current_liabilities", "capex")),
    Rule("Revenue Quality", 3, revenue_quality, "quarterly", ("accounts_receivable", "revenue")),
    Rule("Deposit Growth", 8, deposit_growth, "quarterly", ("deposits",)),
    Rule("Net Interest Margin", 5, net_interest_margin, "quarterly", ("interest_income", "interest_expense", "total_assets")),
    Rule("Tech Investment", 2, tech_investment, "latest", ("research_and_development", "technology_expense", "operating_expenses")),
)

RULES_BY_NAME: Dict[str, Rule] = {rule.name: rule for rule in RULES}
