from __future__ import annotations

import math
from datetime import date

from fundamentals_rating.domain.models.financials import FinancialState, ShareChange, SplitSignal
from fundamentals_rating.domain.services.rules import (
    RULES,
    RULES_BY_NAME,
    cash_runway,
    debt_to_equity,
    dividend_coverage,
    fcf_margin,
    interest_coverage,
    price_to_book,
    price_to_earnings,
    revenue_growth_yoy,
    shares_dilution,
)

SPLIT = SplitSignal(shares_ratio=4.0, eps_ratio=0.25, current_period=date(2024, 3, 31), prior_period=date(2023, 12, 31))


def _state(**overrides) -> FinancialState:
    values = dict(ticker="TEST", sector="Technology", sector_bucket="Tech/Internet", quarter_count=8)
    values.update(overrides)
    return FinancialState(**values)


def test_catalog_has_41_uniquely_named_rules():
    assert len(RULES) == 41
    assert len(RULES_BY_NAME) == 41
    assert RULES[0].name == "Revenue growth YoY"
    assert all(rule.basis["window"] for rule in RULES)


def test_revenue_growth_bands_by_sector():
    assert revenue_growth_yoy(_state(revenue_growth_yoy=35.0)).score == 10
    assert revenue_growth_yoy(_state(revenue_growth_yoy=-15.0)).score == -8
    industrial = _state(sector_bucket="Industrial/Cyclical", revenue_growth_yoy=12.0)
    assert revenue_growth_yoy(industrial).score == 4
    assert revenue_growth_yoy(_state()).missing


def test_revenue_growth_distorted_for_new_entity():
    outcome = revenue_growth_yoy(_state(quarter_count=4, revenue_growth_yoy=80.0))

    assert outcome.not_applicable
    assert "New entity" in outcome.message


def test_unprofitable_pe_is_not_applicable():
    outcome = price_to_earnings(_state(pe_ratio=-12.0, sector_bucket="Other"))

    assert outcome.not_applicable
    assert outcome.message == "Unprofitable"
    high_growth_tech = price_to_earnings(_state(pe_ratio=None, revenue_growth_yoy=45.0))
    assert high_growth_tech.score == 0
    assert not high_growth_tech.skipped


def test_pe_bands():
    assert price_to_earnings(_state(pe_ratio=10.0)).score == 8
    assert price_to_earnings(_state(pe_ratio=60.0)).score == -8


def test_price_to_book_only_for_financials_and_real_estate():
    assert price_to_book(_state(pb_ratio=1.0)).not_applicable


def test_biotech_fcf_bands_soften_for_healthy_burn():
    base = dict(sector_bucket="Biotech/Pharma", fcf_margin=-120.0, market_cap=500_000_000)
    assert fcf_margin(_state(**base)).score == -8
    assert fcf_margin(_state(**base, burn_trend=0.25)).score == -2


def test_cash_runway_biotech_only():
    assert cash_runway(_state(cash_runway_years=2.0)).not_applicable
    biotech = dict(sector_bucket="Biotech/Pharma")
    assert cash_runway(_state(**biotech, cash_runway_years=math.inf)).score == 4
    assert cash_runway(_state(**biotech, cash_runway_years=0.6)).score == -3


def test_dilution_split_and_reverse_split():
    assert shares_dilution(_state(share_change=ShareChange(split=SPLIT))).not_applicable

    reverse = shares_dilution(_state(share_change=ShareChange(reverse_split=SPLIT)))
    assert reverse.score == -4


def test_dilution_bands():
    assert shares_dilution(_state(share_change=ShareChange(change_yoy=-2.0))).score == 8
    assert shares_dilution(_state(share_change=ShareChange(change_yoy=20.0))).score == -12
    # Biotech raises are normal; large caps are floored at -10.
    biotech = dict(sector_bucket="Biotech/Pharma", market_cap=5e9)
    assert shares_dilution(_state(**biotech, share_change=ShareChange(change_yoy=60.0))).score == -10


def test_debt_free_balance_sheet():
    outcome = debt_to_equity(_state(total_debt=0.0, debt_to_equity=0.0))

    assert outcome.score == 10
    assert "debt-free" in outcome.message
    assert debt_to_equity(_state(debt_to_equity=-0.5)).score == -10


def test_interest_coverage_debt_free_is_flagged_not_applicable():
    outcome = interest_coverage(_state(interest_coverage=math.inf))

    assert outcome.score == 10
    assert outcome.missing and outcome.not_applicable
    assert interest_coverage(_state(interest_coverage=7.0)).score == 4


def test_dividend_coverage_payout_bands():
    assert dividend_coverage(_state()).not_applicable
    assert dividend_coverage(_state(dividend_payout_pct_fcf=50.0)).score == 5
    assert dividend_coverage(_state(dividend_payout_pct_fcf=150.0)).score == -6


def test_rules_never_raise_on_empty_state():
    empty = FinancialState(ticker="EMPTY")

    for rule in RULES:
        outcome = rule.evaluate(empty)
        assert isinstance(outcome.score, int)
