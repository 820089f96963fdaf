"""Domain models describing normalized financial periods and derived state."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date
from typing import Any, Dict, Optional, Tuple

QUARTER = "quarter"
YEAR = "year"

NUMERIC_FIELDS: Tuple[str, ...] = (
    "revenue",
    "cost_of_revenue",
    "gross_profit",
    "operating_income",
    "operating_expenses",
    "net_income",
    "income_before_taxes",
    "income_tax_expense",
    "interest_expense",
    "interest_income",
    "research_and_development",
    "sga_expense",
    "technology_expense",
    "depreciation_amortization",
    "eps_basic",
    "shares_outstanding",
    "total_assets",
    "total_liabilities",
    "total_equity",
    "current_assets",
    "current_liabilities",
    "cash",
    "short_term_investments",
    "accounts_receivable",
    "inventories",
    "accounts_payable",
    "total_debt",
    "financial_debt",
    "short_term_debt",
    "long_term_debt",
    "lease_liabilities",
    "deposits",
    "operating_cash_flow",
    "capex",
    "free_cash_flow",
    "share_based_compensation",
    "treasury_stock_repurchased",
    "dividends_paid",
)


@dataclass(frozen=True)
class FinancialPeriod:
    """A single normalized reporting period (quarter or fiscal year)."""

    period_end: date
    period_type: str
    filed_date: Optional[date] = None
    form: Optional[str] = None
    revenue: Optional[float] = None
    cost_of_revenue: Optional[float] = None
    gross_profit: Optional[float] = None
    operating_income: Optional[float] = None
    operating_expenses: Optional[float] = None
    net_income: Optional[float] = None
    income_before_taxes: Optional[float] = None
    income_tax_expense: Optional[float] = None
    interest_expense: Optional[float] = None
    interest_income: Optional[float] = None
    research_and_development: Optional[float] = None
    sga_expense: Optional[float] = None
    technology_expense: Optional[float] = None
    depreciation_amortization: Optional[float] = None
    eps_basic: Optional[float] = None
    shares_outstanding: Optional[float] = None
    total_assets: Optional[float] = None
    total_liabilities: Optional[float] = None
    total_equity: Optional[float] = None
    current_assets: Optional[float] = None
    current_liabilities: Optional[float] = None
    cash: Optional[float] = None
    short_term_investments: Optional[float] = None
    accounts_receivable: Optional[float] = None
    inventories: Optional[float] = None
    accounts_payable: Optional[float] = None
    total_debt: Optional[float] = None
    financial_debt: Optional[float] = None
    short_term_debt: Optional[float] = None
    long_term_debt: Optional[float] = None
    lease_liabilities: Optional[float] = None
    deposits: Optional[float] = None
    operating_cash_flow: Optional[float] = None
    capex: Optional[float] = None
    free_cash_flow: Optional[float] = None
    share_based_compensation: Optional[float] = None
    treasury_stock_repurchased: Optional[float] = None
    dividends_paid: Optional[float] = None

    def get(self, name: str) -> Optional[float]:
        """Return a numeric field by name (None for unknown fields)."""
        if name not in NUMERIC_FIELDS:
            return None
        return getattr(self, name)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["period_end"] = self.period_end.isoformat()
        payload["filed_date"] = self.filed_date.isoformat() if self.filed_date else None
        return payload


@dataclass(frozen=True)
class PeriodSeries:
    """Quarterly and annual series, both ascending by period end."""

    quarters: Tuple[FinancialPeriod, ...] = ()
    years: Tuple[FinancialPeriod, ...] = ()

    @property
    def primary(self) -> Tuple[FinancialPeriod, ...]:
        """Quarterly series when available, else the annual series."""
        return self.quarters if self.quarters else self.years

    def latest_year(self) -> Optional[FinancialPeriod]:
        return self.years[-1] if self.years else None

    def is_empty(self) -> bool:
        return not self.quarters and not self.years


@dataclass(frozen=True)
class TtmSnapshot:
    """Trailing-twelve-month aggregate (or its derived/annual fallback)."""

    basis: str
    as_of: date
    values: Dict[str, Optional[float]] = field(default_factory=dict)
    quarters_used: int = 0
    derived_period: Optional[date] = None

    def get(self, name: str) -> Optional[float]:
        return self.values.get(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "basis": self.basis,
            "as_of": self.as_of.isoformat(),
            "quarters_used": self.quarters_used,
            "derived_period": self.derived_period.isoformat() if self.derived_period else None,
            "values": dict(self.values),
        }


@dataclass(frozen=True)
class SplitSignal:
    """Evidence that a share-count jump was a (reverse) stock split."""

    shares_ratio: float
    eps_ratio: float
    current_period: date
    prior_period: date
    reverse: bool = False


@dataclass(frozen=True)
class ShareChange:
    """Share-count change metrics with split guards applied (percentages)."""

    change_qoq: Optional[float] = None
    change_yoy: Optional[float] = None
    raw_yoy: Optional[float] = None
    split: Optional[SplitSignal] = None
    reverse_split: Optional[SplitSignal] = None

    @property
    def likely_split(self) -> bool:
        return self.split is not None

    @property
    def likely_reverse_split(self) -> bool:
        return self.reverse_split is not None


@dataclass(frozen=True)
class PricePoint:
    trade_date: date
    close: float
    market_cap: Optional[float] = None


@dataclass(frozen=True)
class FinancialState:
    """Immutable metric bundle the rating rules evaluate.

    Percent-valued metrics are expressed in percentage points (15.0 == 15 %),
    ratios (operating leverage, turnover, D/E) as plain multiples. ``None``
    always means the metric could not be computed.
    """

    ticker: str
    sector: str = ""
    sector_bucket: str = "Other"
    company_name: Optional[str] = None
    sic_description: Optional[str] = None
    is_fintech: bool = False
    issuer_type: Optional[str] = None
    annual_mode: bool = False
    quarter_count: int = 0
    ttm_basis: Optional[str] = None

    last_close: Optional[float] = None
    price_change_5d: Optional[float] = None
    market_cap: Optional[float] = None

    revenue_latest: Optional[float] = None
    revenue_ttm: Optional[float] = None
    revenue_ttm_prior: Optional[float] = None
    net_income_ttm_prior: Optional[float] = None
    revenue_growth_yoy: Optional[float] = None
    revenue_growth_ttm: Optional[float] = None
    revenue_cagr_3y: Optional[float] = None
    eps_cagr_3y: Optional[float] = None
    eps_ttm: Optional[float] = None
    net_income: Optional[float] = None
    pretax_income: Optional[float] = None

    gross_margin: Optional[float] = None
    gross_margin_prev: Optional[float] = None
    operating_margin: Optional[float] = None
    operating_margin_trend: Optional[float] = None
    net_margin: Optional[float] = None
    fcf_margin: Optional[float] = None
    operating_leverage: Optional[float] = None

    roe: Optional[float] = None
    roic: Optional[float] = None
    total_assets: Optional[float] = None
    total_equity: Optional[float] = None
    asset_turnover: Optional[float] = None

    total_debt: Optional[float] = None
    financial_debt: Optional[float] = None
    short_term_debt: Optional[float] = None
    long_term_debt: Optional[float] = None
    net_debt: Optional[float] = None
    debt_to_equity: Optional[float] = None
    net_debt_to_equity: Optional[float] = None
    net_debt_to_fcf_years: Optional[float] = None
    interest_coverage: Optional[float] = None
    interest_coverage_status: Optional[str] = None
    cash_runway_years: Optional[float] = None

    dso_days: Optional[float] = None
    dso_prev_days: Optional[float] = None
    dio_days: Optional[float] = None
    dpo_days: Optional[float] = None
    cash_conversion_cycle_days: Optional[float] = None

    capex_to_revenue: Optional[float] = None
    rd_to_revenue: Optional[float] = None
    free_cash_flow_ttm: Optional[float] = None
    buybacks_ttm: Optional[float] = None
    dividends_ttm: Optional[float] = None
    shareholder_return_ttm: Optional[float] = None
    shareholder_return_to_fcf: Optional[float] = None
    dividend_payout_pct_fcf: Optional[float] = None
    effective_tax_rate: Optional[float] = None

    share_change: ShareChange = field(default_factory=ShareChange)

    pe_ratio: Optional[float] = None
    ps_ratio: Optional[float] = None
    pb_ratio: Optional[float] = None
    pfcf_ratio: Optional[float] = None

    revenue_trend: Optional[float] = None
    burn_trend: Optional[float] = None
    rnd_trend: Optional[float] = None
    profit_growth: Optional[float] = None

    asset_growth_yoy: Optional[float] = None
    revenue_per_asset_change: Optional[float] = None
    opex_to_revenue: Tuple[float, ...] = ()
    fcf_margin_change_qoq: Optional[float] = None
    working_capital_to_capex: Optional[float] = None
    deposit_growth_yoy: Optional[float] = None
    net_interest_margin: Optional[float] = None
    tech_spend_share: Optional[float] = None

    data_quality_notes: Tuple[str, ...] = ()

    @property
    def dilution_yoy(self) -> Optional[float]:
        return self.share_change.change_yoy

    @property
    def revenue_growth(self) -> Optional[float]:
        """Best available revenue growth figure (percent)."""
        if self.revenue_growth_yoy is not None:
            return self.revenue_growth_yoy
        return self.revenue_growth_ttm

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, ShareChange):
                value = asdict(value)
            elif isinstance(value, tuple):
                value = list(value)
            payload[item.name] = value
        return payload

