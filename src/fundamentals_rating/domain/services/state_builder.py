"""Assemble the immutable :class:`FinancialState` the rating rules consume."""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional, Sequence

from fundamentals_rating.domain.models.financials import (
    FinancialPeriod,
    FinancialState,
    PeriodSeries,
    PricePoint,
    TtmSnapshot,
)
from fundamentals_rating.domain.services.adjustments import compute_share_change
from fundamentals_rating.domain.services.calculations import (
    calc_margin,
    calc_trend,
    infer_tax_rate,
    interest_coverage_annual,
    interest_coverage_ttm,
    is_finite_value,
    pct_change,
    runway_years,
    safe_div,
    sum_abs_last,
)
from fundamentals_rating.domain.services.periods import TtmAggregator, compute_cagr_3y, yoy_change
from fundamentals_rating.domain.services.sector import is_fintech, resolve_sector_bucket

LOGGER = logging.getLogger(__name__)

DEFAULT_TAX_RATE = 0.21
PERIOD_MISMATCH_DAYS = 65
STALE_DATA_DAYS = 180
EVENT_WINDOW_DAYS = 5


class FinancialStateBuilder:
    """Turn normalized period series, prices and classification into metrics."""

    def __init__(self, aggregator: Optional[TtmAggregator] = None) -> None:
        self._aggregator = aggregator or TtmAggregator()

    def build(
        self,
        ticker: str,
        series: PeriodSeries,
        *,
        ttm: Optional[TtmSnapshot] = None,
        ttm_prior: Optional[TtmSnapshot] = None,
        sector: Optional[str] = None,
        company_name: Optional[str] = None,
        sic_description: Optional[str] = None,
        issuer_type: Optional[str] = None,
        prices: Sequence[PricePoint] = (),
        market_cap: Optional[float] = None,
        as_of: Optional[date] = None,
    ) -> Optional[FinancialState]:
        if series.is_empty():
            return None
        ttm = ttm or self._aggregator.build(series)
        ttm_prior = ttm_prior or self._aggregator.build_prior(series)
        bucket = resolve_sector_bucket(sector)
        annual_mode = not series.quarters or (ttm is not None and ttm.basis == "annual")

        ascending = list(series.primary)
        descending = list(reversed(ascending))
        cur_inc, prev_inc = _first_two(descending, ("revenue", "operating_income", "net_income"))
        cur_bal, prev_bal = _first_two(descending, ("total_assets", "total_debt", "cash"))
        cur_cf, prev_cf = _first_two(descending, ("operating_cash_flow", "capex", "free_cash_flow"))
        latest_annual = series.latest_year()

        ttm_revenue = ttm.get("revenue") if ttm else None
        ttm_fcf = ttm.get("free_cash_flow") if ttm else None
        ttm_net_income = ttm.get("net_income") if ttm else None
        annual_revenue = latest_annual.revenue if latest_annual else None
        annual_net_income = latest_annual.net_income if latest_annual else None
        annual_fcf = latest_annual.free_cash_flow if latest_annual else None

        # Growth
        revenue_growth_qoq = pct_change(_value(cur_inc, "revenue"), _value(prev_inc, "revenue"))
        revenue_trend = calc_trend(ascending, "revenue")
        revenue_growth_ttm = revenue_trend * 100 if revenue_trend is not None else revenue_growth_qoq
        revenue_cagr, eps_cagr = compute_cagr_3y(series.years)
        net_income_trend = calc_trend(ascending, "net_income")
        profit_growth = (
            net_income_trend * 100
            if net_income_trend is not None
            else pct_change(_value(cur_inc, "net_income"), _value(prev_inc, "net_income"))
        )

        # Margins
        gross_margin = _first_not_none(
            calc_margin(ttm.get("gross_profit") if ttm else None, ttm_revenue),
            calc_margin(_value(cur_inc, "gross_profit"), _value(cur_inc, "revenue")),
        )
        operating_margin = _first_not_none(
            calc_margin(ttm.get("operating_income") if ttm else None, ttm_revenue),
            calc_margin(_value(cur_inc, "operating_income"), _value(cur_inc, "revenue")),
        )
        prev_operating_margin = calc_margin(_value(prev_inc, "operating_income"), _value(prev_inc, "revenue"))
        net_margin = _first_not_none(
            calc_margin(ttm_net_income, ttm_revenue),
            calc_margin(_value(cur_inc, "net_income"), _value(cur_inc, "revenue")),
        )
        fcf_margin = _first_not_none(
            _ratio_pct(ttm_fcf, ttm_revenue),
            calc_margin(_value(cur_cf, "free_cash_flow"), _value(cur_inc, "revenue")),
        )
        operating_leverage = safe_div(
            ttm.get("operating_income") if ttm else None, ttm.get("gross_profit") if ttm else None
        )

        # Cash deployment
        buybacks = _trailing_abs(series, "treasury_stock_repurchased")
        dividends = _trailing_abs(series, "dividends_paid")
        shareholder_return = None
        if buybacks is not None or dividends is not None:
            shareholder_return = (buybacks or 0.0) + (dividends or 0.0)
        fcf_positive = is_finite_value(ttm_fcf) and ttm_fcf > 0
        rd_spend = _trailing_abs(series, "research_and_development")
        rd_to_revenue = _first_not_none(
            _ratio_pct(rd_spend, ttm_revenue),
            calc_margin(_value(cur_inc, "research_and_development"), _value(cur_inc, "revenue")),
        )
        capex_latest = _value(cur_cf, "capex")
        capex_to_revenue = calc_margin(
            abs(capex_latest) if is_finite_value(capex_latest) else None, _value(cur_inc, "revenue")
        )

        # Working capital
        cogs = None
        if ttm and is_finite_value(ttm_revenue) and is_finite_value(ttm.get("gross_profit")):
            cogs = ttm_revenue - ttm.get("gross_profit")
        dso = _days(_value(cur_bal, "accounts_receivable"), ttm_revenue)
        dio = _days(_value(cur_bal, "inventories"), cogs)
        dpo = _days(_value(cur_bal, "accounts_payable"), cogs)
        ccc = dso + (dio or 0.0) - dpo if dso is not None and dpo is not None else None

        # Leverage and returns
        equity = _value(cur_bal, "total_equity")
        debt_total = _debt_total(cur_bal)
        net_debt = _net_debt(cur_bal, debt_total)
        debt_to_equity = debt_total / equity if is_finite_value(debt_total) and equity else None
        net_debt_to_equity = (
            net_debt / equity if is_finite_value(net_debt) and is_finite_value(equity) and equity else debt_to_equity
        )
        fcf_years = None
        if is_finite_value(debt_total):
            if fcf_positive:
                fcf_years = debt_total / ttm_fcf
            elif is_finite_value(annual_fcf) and annual_fcf > 0:
                fcf_years = debt_total / annual_fcf

        net_income = _first_not_none(
            ttm_net_income,
            _value(cur_inc, "net_income") if annual_mode else annual_net_income,
        )
        roe = _ratio_pct(net_income, equity)
        tax_rate = infer_tax_rate(ttm, latest_annual)
        ebit = ttm.get("operating_income") if ttm else None
        nopat = ebit * (1 - (tax_rate if tax_rate is not None else DEFAULT_TAX_RATE)) if is_finite_value(ebit) else None
        invested_now, invested_prev = _invested_capital(cur_bal), _invested_capital(prev_bal)
        if invested_now is not None and invested_prev is not None:
            average_invested = (invested_now + invested_prev) / 2
        else:
            average_invested = _first_not_none(invested_now, invested_prev)
        roic = _ratio_pct(nopat, average_invested)

        coverage = (
            interest_coverage_annual(cur_inc) if annual_mode else interest_coverage_ttm(descending)
        )
        interest_coverage = coverage.value
        if interest_coverage is None and is_finite_value(ebit) and latest_annual is not None:
            annual_interest = latest_annual.interest_expense
            if is_finite_value(annual_interest) and annual_interest != 0:
                interest_coverage = ebit / abs(annual_interest)

        # Price and valuation
        ordered_prices = sorted(prices, key=lambda p: p.trade_date)
        last_close = ordered_prices[-1].close if ordered_prices else None
        price_change_5d = None
        if len(ordered_prices) > EVENT_WINDOW_DAYS:
            price_change_5d = pct_change(last_close, ordered_prices[-1 - EVENT_WINDOW_DAYS].close)
        if market_cap is None and ordered_prices and is_finite_value(ordered_prices[-1].market_cap):
            market_cap = ordered_prices[-1].market_cap
        if market_cap is None and is_finite_value(last_close) and is_finite_value(_value(cur_bal, "shares_outstanding")):
            market_cap = last_close * _value(cur_bal, "shares_outstanding")

        if annual_mode:
            revenue_for_value = _value(cur_inc, "revenue")
            fcf_for_value = _value(cur_cf, "free_cash_flow")
            income_for_value = _value(cur_inc, "net_income")
        else:
            revenue_for_value = _first_not_none(ttm_revenue, annual_revenue)
            fcf_for_value = _first_not_none(ttm_fcf, annual_fcf)
            income_for_value = _first_not_none(ttm_net_income, annual_net_income)
        priced = is_finite_value(last_close)
        pb_ratio = None
        if priced and is_finite_value(equity) and equity > 0:
            pb_ratio = safe_div(market_cap, equity)

        share_change = compute_share_change(ascending)
        notes = _data_quality_notes(cur_inc, cur_bal, latest_annual, as_of or date.today())

        state = FinancialState(
            ticker=ticker.upper(),
            sector=sector or "",
            sector_bucket=bucket,
            company_name=company_name,
            sic_description=sic_description,
            is_fintech=is_fintech(ticker, company_name, sic_description, sector),
            issuer_type=issuer_type,
            annual_mode=annual_mode,
            quarter_count=len(series.quarters),
            ttm_basis=ttm.basis if ttm else None,
            last_close=last_close,
            price_change_5d=price_change_5d,
            market_cap=market_cap,
            revenue_latest=_value(cur_inc, "revenue"),
            revenue_ttm=ttm_revenue,
            revenue_ttm_prior=ttm_prior.get("revenue") if ttm_prior else None,
            net_income_ttm_prior=ttm_prior.get("net_income") if ttm_prior else None,
            revenue_growth_yoy=yoy_change(series.quarters, "revenue"),
            revenue_growth_ttm=revenue_growth_ttm,
            revenue_cagr_3y=revenue_cagr * 100 if revenue_cagr is not None else None,
            eps_cagr_3y=eps_cagr * 100 if eps_cagr is not None else None,
            eps_ttm=ttm.get("eps_basic") if ttm else None,
            net_income=net_income,
            pretax_income=ttm.get("income_before_taxes") if ttm else None,
            gross_margin=gross_margin,
            gross_margin_prev=calc_margin(_value(prev_inc, "gross_profit"), _value(prev_inc, "revenue")),
            operating_margin=operating_margin,
            operating_margin_trend=(
                operating_margin - prev_operating_margin
                if operating_margin is not None and prev_operating_margin is not None
                else None
            ),
            net_margin=net_margin,
            fcf_margin=fcf_margin,
            operating_leverage=operating_leverage,
            roe=roe,
            roic=roic,
            total_assets=_value(cur_bal, "total_assets"),
            total_equity=equity,
            asset_turnover=safe_div(_first_not_none(ttm_revenue, _value(cur_inc, "revenue")), _value(cur_bal, "total_assets")),
            total_debt=debt_total,
            financial_debt=_value(cur_bal, "financial_debt"),
            short_term_debt=_value(cur_bal, "short_term_debt"),
            long_term_debt=_value(cur_bal, "long_term_debt"),
            net_debt=net_debt,
            debt_to_equity=debt_to_equity,
            net_debt_to_equity=net_debt_to_equity,
            net_debt_to_fcf_years=fcf_years,
            interest_coverage=interest_coverage,
            interest_coverage_status=coverage.status,
            cash_runway_years=runway_years(bucket, descending[0] if descending else None, ttm_fcf, ttm_net_income),
            dso_days=dso,
            dso_prev_days=_days(_value(prev_bal, "accounts_receivable"), _value(prev_inc, "revenue")),
            dio_days=dio,
            dpo_days=dpo,
            cash_conversion_cycle_days=ccc,
            capex_to_revenue=capex_to_revenue,
            rd_to_revenue=rd_to_revenue,
            free_cash_flow_ttm=ttm_fcf,
            buybacks_ttm=buybacks,
            dividends_ttm=dividends,
            shareholder_return_ttm=shareholder_return,
            shareholder_return_to_fcf=shareholder_return / ttm_fcf if shareholder_return is not None and fcf_positive else None,
            dividend_payout_pct_fcf=dividends / ttm_fcf * 100 if dividends and fcf_positive else None,
            effective_tax_rate=_effective_tax_pct(ttm),
            share_change=share_change,
            pe_ratio=safe_div(market_cap, income_for_value) if priced else None,
            ps_ratio=safe_div(market_cap, revenue_for_value) if priced else None,
            pb_ratio=pb_ratio,
            pfcf_ratio=safe_div(market_cap, fcf_for_value) if priced else None,
            revenue_trend=revenue_trend,
            burn_trend=calc_trend(ascending, "free_cash_flow"),
            rnd_trend=calc_trend(ascending, "research_and_development"),
            profit_growth=profit_growth,
            asset_growth_yoy=_year_back_growth(descending, "total_assets"),
            revenue_per_asset_change=_revenue_per_asset_change(descending),
            opex_to_revenue=_opex_ratios(descending),
            fcf_margin_change_qoq=_burn_deceleration(descending),
            working_capital_to_capex=_working_capital_to_capex(descending),
            deposit_growth_yoy=_year_back_growth(descending, "deposits"),
            net_interest_margin=_net_interest_margin(descending),
            tech_spend_share=_tech_spend_share(descending),
            data_quality_notes=tuple(notes),
        )
        LOGGER.debug("Built financial state for %s (basis=%s)", state.ticker, state.ttm_basis)
        return state


# ----------------------------
# Internal helpers
# ----------------------------

def _value(period: Optional[FinancialPeriod], name: str) -> Optional[float]:
    return period.get(name) if period is not None else None


def _first_not_none(*values: Optional[float]) -> Optional[float]:
    for value in values:
        if value is not None:
            return value
    return None


def _first_two(descending: Sequence[FinancialPeriod], keys: Sequence[str]):
    valid = [p for p in descending if any(is_finite_value(p.get(key)) for key in keys)]
    current = valid[0] if valid else None
    previous = valid[1] if len(valid) > 1 else None
    return current, previous


def _ratio_pct(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    if not is_finite_value(numerator) or not is_finite_value(denominator) or denominator == 0:
        return None
    return numerator / denominator * 100


def _days(balance: Optional[float], flow: Optional[float]) -> Optional[float]:
    if not is_finite_value(balance) or not is_finite_value(flow) or flow <= 0:
        return None
    return balance / flow * 365


def _trailing_abs(series: PeriodSeries, name: str) -> Optional[float]:
    if series.quarters:
        return sum_abs_last(series.quarters, name)
    latest = series.latest_year()
    value = latest.get(name) if latest else None
    return abs(value) if is_finite_value(value) else None


def _debt_total(balance: Optional[FinancialPeriod]) -> Optional[float]:
    if balance is None:
        return None
    total = balance.total_debt
    parts = [v for v in (balance.financial_debt, balance.short_term_debt, balance.lease_liabilities) if is_finite_value(v)]
    parts_sum = sum(parts) if parts else None
    if is_finite_value(total) and parts_sum is not None:
        return max(total, parts_sum)
    return total if is_finite_value(total) else parts_sum


def _net_debt(balance: Optional[FinancialPeriod], debt_total: Optional[float]) -> Optional[float]:
    if balance is None or not is_finite_value(debt_total):
        return None
    cash, short_term = balance.cash, balance.short_term_investments
    if not is_finite_value(cash) and not is_finite_value(short_term):
        return 0.0 if debt_total == 0 else None
    return debt_total - (cash or 0.0) - (short_term or 0.0)


def _invested_capital(balance: Optional[FinancialPeriod]) -> Optional[float]:
    if balance is None:
        return None
    equity, cash = balance.total_equity, balance.cash
    debt = _debt_total(balance)
    if not is_finite_value(equity) or not is_finite_value(debt) or not is_finite_value(cash):
        return None
    return equity + debt - cash - (balance.short_term_investments or 0.0)


def _effective_tax_pct(ttm: Optional[TtmSnapshot]) -> Optional[float]:
    rate = infer_tax_rate(ttm, None)
    return rate * 100 if rate is not None else None


def _year_back_growth(descending: Sequence[FinancialPeriod], name: str) -> Optional[float]:
    if len(descending) < 2:
        return None
    prior = descending[4] if len(descending) >= 5 else descending[1]
    return pct_change(descending[0].get(name), prior.get(name))


def _revenue_per_asset_change(descending: Sequence[FinancialPeriod]) -> Optional[float]:
    if len(descending) < 2:
        return None
    latest = safe_div(descending[0].revenue, descending[0].total_assets)
    previous = safe_div(descending[1].revenue, descending[1].total_assets)
    return pct_change(latest, previous)


def _opex_ratios(descending: Sequence[FinancialPeriod]):
    ratios = [_ratio_pct(p.operating_expenses, p.revenue) for p in descending[:3]]
    if len(ratios) < 3 or any(r is None for r in ratios):
        return ()
    return tuple(ratios)


def _burn_deceleration(descending: Sequence[FinancialPeriod]) -> Optional[float]:
    if len(descending) < 2:
        return None
    latest = _ratio_pct(descending[0].free_cash_flow, descending[0].revenue)
    previous = _ratio_pct(descending[1].free_cash_flow, descending[1].revenue)
    if latest is None or previous is None:
        return None
    if latest < 0 and previous < 0:
        return (previous - latest) / abs(previous) * 100
    return latest - previous


def _working_capital_to_capex(descending: Sequence[FinancialPeriod]) -> Optional[float]:
    if not descending:
        return None
    latest = descending[0]
    capex = abs(latest.capex) if is_finite_value(latest.capex) else 0.0
    if not is_finite_value(latest.current_assets) or not is_finite_value(latest.current_liabilities) or capex == 0:
        return None
    return (latest.current_assets - latest.current_liabilities) / capex


def _net_interest_margin(descending: Sequence[FinancialPeriod]) -> Optional[float]:
    if len(descending) < 2:
        return None
    latest = descending[0]
    assets_now, assets_before = latest.total_assets, descending[1].total_assets
    if not is_finite_value(latest.interest_income) or not is_finite_value(assets_now) or not is_finite_value(assets_before):
        return None
    average_assets = (assets_now + assets_before) / 2
    if average_assets == 0:
        return None
    expense = abs(latest.interest_expense) if is_finite_value(latest.interest_expense) else 0.0
    return (latest.interest_income - expense) / average_assets * 100


def _tech_spend_share(descending: Sequence[FinancialPeriod]) -> Optional[float]:
    if not descending:
        return None
    latest = descending[0]
    opex = abs(latest.operating_expenses) if is_finite_value(latest.operating_expenses) else 0.0
    if opex == 0:
        return None
    spend = sum(abs(v) for v in (latest.research_and_development, latest.technology_expense) if is_finite_value(v))
    return spend / opex * 100


def _data_quality_notes(
    income: Optional[FinancialPeriod],
    balance: Optional[FinancialPeriod],
    latest_annual: Optional[FinancialPeriod],
    today: date,
):
    notes = []
    if income is not None and balance is not None:
        if abs(income.period_end - balance.period_end) > timedelta(days=PERIOD_MISMATCH_DAYS):
            notes.append(
                f"Statement Mismatch: income statement ({income.period_end}) and balance sheet "
                f"({balance.period_end}) are from different periods."
            )
    dates = [p.period_end for p in (income, balance, latest_annual) if p is not None]
    if dates:
        age = (today - max(dates)).days
        if age > STALE_DATA_DAYS:
            notes.append(f"Stale Data: latest reported period is {age} days old.")
    return notes


