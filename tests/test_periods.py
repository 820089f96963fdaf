from __future__ import annotations

from datetime import date

import pytest

from fundamentals_rating.domain.models.financials import QUARTER, YEAR, FinancialPeriod, PeriodSeries
from fundamentals_rating.domain.services.periods import (
    NoUsablePeriodsError,
    PeriodNormalizer,
    TtmAggregator,
    compute_cagr_3y,
    find_year_ago,
    yoy_change,
)


def _q(end: date, revenue: float, net_income: float = 10.0, **extra) -> FinancialPeriod:
    return FinancialPeriod(period_end=end, period_type=QUARTER, revenue=revenue, net_income=net_income, **extra)


QUARTER_ENDS = [
    date(2023, 3, 31),
    date(2023, 6, 30),
    date(2023, 9, 30),
    date(2023, 12, 31),
    date(2024, 3, 31),
]


def test_normalizer_accepts_camel_case_and_string_numbers():
    records = [
        {"periodEnd": "2024-03-31", "periodType": "quarter", "revenue": "100", "netIncome": "12"},
        {"period_end": "2023-12-31", "period_type": "annual", "totalRevenue": 380, "net_income": 40},
    ]

    series = PeriodNormalizer().normalize(records)

    assert len(series.quarters) == 1
    assert len(series.years) == 1
    assert series.quarters[0].revenue == pytest.approx(100.0)
    assert series.quarters[0].net_income == pytest.approx(12.0)
    assert series.years[0].revenue == pytest.approx(380.0)


def test_normalizer_derives_revenue_and_free_cash_flow():
    records = [
        {
            "periodEnd": "2024-03-31",
            "periodType": "quarter",
            "grossProfit": 60,
            "costOfRevenue": 40,
            "operatingCashFlow": 30,
            "capex": -12,
        }
    ]

    period = PeriodNormalizer().normalize(records).quarters[0]

    assert period.revenue == pytest.approx(100.0)
    assert period.free_cash_flow == pytest.approx(18.0)


def test_normalizer_keeps_most_populated_duplicate():
    records = [
        {"periodEnd": "2024-03-31", "periodType": "quarter", "revenue": 100, "filedDate": "2024-05-01"},
        {
            "periodEnd": "2024-03-31",
            "periodType": "quarter",
            "revenue": 101,
            "netIncome": 9,
            "filedDate": "2024-04-20",
        },
    ]

    series = PeriodNormalizer().normalize(records)

    assert len(series.quarters) == 1
    assert series.quarters[0].revenue == pytest.approx(101.0)


def test_normalizer_rejects_records_without_period():
    with pytest.raises(NoUsablePeriodsError):
        PeriodNormalizer().normalize([{"revenue": 100}, {"periodEnd": "2024-03-31", "periodType": "weird"}])


def test_ttm_sums_latest_four_quarters():
    quarters = tuple(_q(end, revenue=100.0 + idx * 10) for idx, end in enumerate(QUARTER_ENDS))

    ttm = TtmAggregator().build(PeriodSeries(quarters=quarters))

    assert ttm is not None
    assert ttm.basis == "ttm"
    assert ttm.quarters_used == 4
    assert ttm.as_of == date(2024, 3, 31)
    assert ttm.get("revenue") == pytest.approx(110 + 120 + 130 + 140)


def test_ttm_derives_missing_fourth_quarter_from_annual():
    quarters = (
        _q(date(2023, 3, 31), 100.0),
        _q(date(2023, 6, 30), 110.0),
        _q(date(2023, 9, 30), 120.0),
    )
    annual = FinancialPeriod(period_end=date(2023, 12, 31), period_type=YEAR, revenue=460.0, net_income=50.0)

    ttm = TtmAggregator().build(PeriodSeries(quarters=quarters, years=(annual,)))

    assert ttm is not None
    assert ttm.basis == "derived"
    assert ttm.derived_period == date(2023, 12, 31)
    assert ttm.get("revenue") == pytest.approx(460.0)
    assert ttm.get("net_income") == pytest.approx(50.0)


def test_ttm_falls_back_to_annual_when_quarters_incomplete():
    annual = FinancialPeriod(period_end=date(2023, 12, 31), period_type=YEAR, revenue=400.0, net_income=40.0)

    ttm = TtmAggregator().build(PeriodSeries(quarters=(_q(date(2022, 3, 31), 90.0),), years=(annual,)))

    assert ttm is not None
    assert ttm.basis == "annual"
    assert ttm.get("revenue") == pytest.approx(400.0)


def test_ttm_rejects_window_spanning_more_than_a_year():
    # A gap in reporting makes the last four quarters span ~15 months.
    quarters = (
        _q(date(2022, 12, 31), 100.0),
        _q(date(2023, 6, 30), 100.0),
        _q(date(2023, 9, 30), 100.0),
        _q(date(2024, 3, 31), 100.0),
    )

    assert TtmAggregator().build(PeriodSeries(quarters=quarters)) is None


def _eight_quarters():
    ends = [date(2022, 3, 31), date(2022, 6, 30), date(2022, 9, 30), date(2022, 12, 31)]
    ends += [date(2023, 3, 31), date(2023, 6, 30), date(2023, 9, 30), date(2023, 12, 31)]
    return tuple(_q(end, 10.0 * (idx + 1), net_income=1.0) for idx, end in enumerate(ends))


def test_prior_ttm_covers_window_a_year_back():
    prior = TtmAggregator().build_prior(PeriodSeries(quarters=_eight_quarters()))

    assert prior is not None
    assert prior.basis == "ttm"
    assert prior.as_of == date(2022, 12, 31)
    assert prior.get("revenue") == pytest.approx(100.0)
    assert prior.get("net_income") == pytest.approx(4.0)


def test_prior_ttm_needs_eight_quarters():
    quarters = _eight_quarters()[1:]

    assert TtmAggregator().build_prior(PeriodSeries(quarters=quarters)) is None


def test_year_ago_needs_five_periods():
    quarters = [_q(end, 100.0) for end in QUARTER_ENDS[:4]]

    assert find_year_ago(quarters, quarters[-1]) is None
    assert yoy_change(quarters, "revenue") is None


def test_yoy_change_against_same_quarter_last_year():
    quarters = [_q(end, revenue) for end, revenue in zip(QUARTER_ENDS, [100, 105, 110, 115, 125])]

    assert yoy_change(quarters, "revenue") == pytest.approx(25.0)


def test_cagr_needs_four_years():
    years = [
        FinancialPeriod(period_end=date(2020 + idx, 12, 31), period_type=YEAR, revenue=rev, eps_basic=eps)
        for idx, (rev, eps) in enumerate([(100.0, 1.0), (110.0, 1.1), (121.0, 1.21), (133.1, 1.331)])
    ]

    revenue_cagr, eps_cagr = compute_cagr_3y(years)
    assert revenue_cagr == pytest.approx(0.10, abs=1e-4)
    assert eps_cagr == pytest.approx(0.10, abs=1e-4)
    assert compute_cagr_3y(years[:3]) == (None, None)
