from __future__ import annotations

import math
from datetime import date

import pytest

from fundamentals_rating.domain.models.financials import QUARTER, FinancialPeriod
from fundamentals_rating.domain.services.calculations import (
    band_score,
    calc_cagr,
    calc_margin,
    calc_trend,
    fmt_money,
    fmt_pct,
    interest_coverage_ttm,
    is_finite_value,
    pct_change,
    runway_years,
    safe_div,
)


def test_finite_value_predicate():
    assert is_finite_value(1.5)
    assert is_finite_value("2.0")
    assert not is_finite_value(None)
    assert not is_finite_value(float("nan"))
    assert not is_finite_value(float("inf"))
    assert not is_finite_value(True)
    assert not is_finite_value("abc")


def test_safe_math_returns_none_on_bad_inputs():
    assert safe_div(1.0, 0.0) is None
    assert safe_div(None, 2.0) is None
    assert safe_div(6.0, 3.0) == pytest.approx(2.0)
    assert pct_change(110.0, 100.0) == pytest.approx(10.0)
    assert pct_change(-50.0, -100.0) == pytest.approx(50.0)
    assert pct_change(1.0, 0.0) is None
    assert calc_margin(25.0, 100.0) == pytest.approx(25.0)
    assert calc_margin(25.0, -100.0) is None
    assert calc_cagr(100.0, -5.0, 3) is None


def test_band_score_picks_first_reached_band():
    bands = ((30, 10), (10, 4), (0, 0), (-1000, -8))
    assert band_score(45.0, bands) == 10
    assert band_score(10.0, bands) == 4
    assert band_score(-5.0, bands) == -8
    assert band_score(-5000.0, bands) == -8


def test_formatters():
    assert fmt_pct(None) == "n/a"
    assert fmt_pct(12.5) == "12.50%"
    assert fmt_money(2.5e9) == "$2.50B"
    assert fmt_money(-3_400_000) == "$-3.40M"


def test_trend_uses_period_a_year_back():
    ends = [date(2023, 3, 31), date(2023, 6, 30), date(2023, 9, 30), date(2023, 12, 31), date(2024, 3, 31)]
    quarters = [
        FinancialPeriod(period_end=end, period_type=QUARTER, revenue=value)
        for end, value in zip(ends, [100.0, 90.0, 95.0, 97.0, 120.0])
    ]

    assert calc_trend(quarters, "revenue") == pytest.approx(0.20)
    assert calc_trend(quarters[:2], "revenue") is None


def test_interest_coverage_debt_free_is_infinite():
    quarters_desc = [
        FinancialPeriod(period_end=date(2024, 3, 31), period_type=QUARTER, operating_income=50.0, total_debt=0.0),
        FinancialPeriod(period_end=date(2023, 12, 31), period_type=QUARTER, operating_income=40.0),
    ]

    result = interest_coverage_ttm(quarters_desc)

    assert result.status == "debt-free"
    assert math.isinf(result.value)


def test_interest_coverage_annualizes_partial_interest():
    quarters_desc = [
        FinancialPeriod(
            period_end=date(2024, 3, 31), period_type=QUARTER, operating_income=100.0, interest_expense=-10.0
        ),
        FinancialPeriod(period_end=date(2023, 12, 31), period_type=QUARTER, operating_income=100.0),
    ]

    result = interest_coverage_ttm(quarters_desc)

    # EBIT 200 over annualized interest 40.
    assert result.status == "annualized-interest"
    assert result.value == pytest.approx(5.0)


def test_runway_years():
    latest = FinancialPeriod(period_end=date(2024, 3, 31), period_type=QUARTER, cash=80.0, short_term_investments=20.0)

    assert runway_years("Biotech/Pharma", latest, -50.0, -60.0) == pytest.approx(2.0)
    assert math.isinf(runway_years("Biotech/Pharma", latest, 10.0, 5.0))
    assert runway_years("Financials", latest, -50.0, -60.0) is None
