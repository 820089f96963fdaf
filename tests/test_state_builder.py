from __future__ import annotations

from datetime import date, timedelta

import pytest

from fundamentals_rating.domain.models.financials import QUARTER, YEAR, FinancialPeriod, PeriodSeries, PricePoint
from fundamentals_rating.domain.services.state_builder import FinancialStateBuilder


def _quarter(end: date) -> FinancialPeriod:
    return FinancialPeriod(
        period_end=end,
        period_type=QUARTER,
        revenue=100.0,
        gross_profit=60.0,
        operating_income=20.0,
        net_income=10.0,
        operating_cash_flow=30.0,
        capex=-10.0,
        free_cash_flow=20.0,
        shares_outstanding=10.0,
        eps_basic=1.0,
        dividends_paid=-4.0,
        treasury_stock_repurchased=-6.0,
        total_assets=400.0,
        total_equity=200.0,
        total_debt=50.0,
        cash=30.0,
    )


def _series() -> PeriodSeries:
    start = date(2022, 3, 31)
    return PeriodSeries(quarters=tuple(_quarter(start + timedelta(days=91 * idx)) for idx in range(8)))


def _prices(latest: date):
    closes = [25.0, 20.0, 20.0, 20.0, 20.0, 20.0]
    return [PricePoint(trade_date=latest - timedelta(days=len(closes) - 1 - idx), close=close) for idx, close in enumerate(closes)]


def test_quarterly_state_metrics():
    series = _series()
    latest = series.quarters[-1].period_end

    state = FinancialStateBuilder().build(
        "abc", series, sector="Software", prices=_prices(latest), as_of=latest
    )

    assert state.ticker == "ABC"
    assert state.sector_bucket == "Tech/Internet"
    assert not state.annual_mode
    assert state.ttm_basis == "ttm"
    assert state.quarter_count == 8
    assert state.revenue_ttm == pytest.approx(400.0)
    assert state.revenue_ttm_prior == pytest.approx(400.0)
    assert state.net_income_ttm_prior == pytest.approx(40.0)
    assert state.gross_margin == pytest.approx(60.0)
    assert state.fcf_margin == pytest.approx(20.0)
    assert state.net_margin == pytest.approx(10.0)
    # Market cap falls back to last close times shares outstanding.
    assert state.market_cap == pytest.approx(200.0)
    assert state.pe_ratio == pytest.approx(5.0)
    assert state.ps_ratio == pytest.approx(0.5)
    assert state.price_change_5d == pytest.approx(-20.0)
    assert state.debt_to_equity == pytest.approx(0.25)
    assert state.net_debt == pytest.approx(20.0)
    assert state.dividends_ttm == pytest.approx(16.0)
    assert state.dividend_payout_pct_fcf == pytest.approx(20.0)
    assert state.shareholder_return_to_fcf == pytest.approx(0.5)
    assert state.dilution_yoy == pytest.approx(0.0)
    assert state.data_quality_notes == ()


def test_annual_only_state():
    years = tuple(
        FinancialPeriod(period_end=date(2020 + idx, 12, 31), period_type=YEAR, revenue=100.0 * (idx + 1), net_income=5.0)
        for idx in range(4)
    )

    state = FinancialStateBuilder().build("XYZ", PeriodSeries(years=years), as_of=date(2024, 1, 31))

    assert state.annual_mode
    assert state.ttm_basis == "annual"
    assert state.sector_bucket == "Other"
    assert state.revenue_cagr_3y == pytest.approx((4 ** (1 / 3) - 1) * 100)
    assert state.revenue_ttm_prior is None
    assert state.pe_ratio is None


def test_stale_data_note_and_empty_series():
    series = _series()

    state = FinancialStateBuilder().build("ABC", series, as_of=series.quarters[-1].period_end + timedelta(days=400))

    assert any(note.startswith("Stale Data") for note in state.data_quality_notes)
    assert FinancialStateBuilder().build("ABC", PeriodSeries()) is None
