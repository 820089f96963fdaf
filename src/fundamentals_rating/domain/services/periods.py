"""Period normalization and trailing-twelve-month aggregation.

Raw period records arrive as loosely keyed dicts (camelCase or snake_case,
numbers as strings, duplicated filings). ``PeriodNormalizer`` maps them onto
:class:`FinancialPeriod`, derives safely inferable fields and de-duplicates per
``(period_type, period_end)``. ``TtmAggregator`` builds the TTM snapshot with
the "derive the missing quarter from the annual total" fallback.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from fundamentals_rating.domain.models.financials import (
    NUMERIC_FIELDS,
    QUARTER,
    YEAR,
    FinancialPeriod,
    PeriodSeries,
    TtmSnapshot,
)
from fundamentals_rating.domain.services.calculations import (
    ONE_YEAR,
    YEAR_TOLERANCE,
    calc_cagr,
    is_finite_value,
    pct_change,
)

LOGGER = logging.getLogger(__name__)

AGGREGABLE_FIELDS: Tuple[str, ...] = (
    "revenue",
    "gross_profit",
    "operating_income",
    "net_income",
    "income_before_taxes",
    "income_tax_expense",
    "interest_expense",
    "eps_basic",
    "operating_cash_flow",
    "capex",
    "free_cash_flow",
    "research_and_development",
    "treasury_stock_repurchased",
    "dividends_paid",
)

END_KEYS = ["periodEnd", "period_end", "endDate", "end_date", "date"]
TYPE_KEYS = ["periodType", "period_type", "frequency", "form"]
FILED_KEYS = ["filedDate", "filed_date", "filed", "acceptedDate"]
FORM_KEYS = ["form", "formType", "form_type"]

PERIOD_TYPE_ALIASES: Dict[str, str] = {
    "quarter": QUARTER,
    "quarterly": QUARTER,
    "q": QUARTER,
    "qtr": QUARTER,
    "10-q": QUARTER,
    "year": YEAR,
    "annual": YEAR,
    "fy": YEAR,
    "10-k": YEAR,
}

# Canonical field -> source keys, checked in order. The snake and camel case
# spellings of every canonical field are appended automatically.
EXTRA_ALIASES: Dict[str, List[str]] = {
    "revenue": ["revenues", "totalRevenue", "sales"],
    "cost_of_revenue": ["costOfGoodsSold", "cogs"],
    "operating_expenses": ["totalOperatingExpenses"],
    "income_before_taxes": ["incomeBeforeIncomeTaxes", "pretaxIncome"],
    "income_tax_expense": ["incomeTaxExpenseBenefit", "incomeTaxExpense"],
    "interest_income": ["interestAndDividendIncome"],
    "research_and_development": ["researchAndDevelopmentExpenses", "rnd"],
    "sga_expense": ["sellingGeneralAndAdministrativeExpenses"],
    "technology_expense": ["technologyExpenses", "softwareExpenses"],
    "depreciation_amortization": ["depreciationDepletionAndAmortization"],
    "eps_basic": ["eps", "epsBasic"],
    "shares_outstanding": ["shares", "commonStockSharesOutstanding"],
    "total_equity": ["totalStockholdersEquity", "stockholdersEquity"],
    "cash": ["cashAndCashEquivalents", "cashAndEquivalents"],
    "deposits": ["customerDeposits", "totalDeposits", "depositLiabilities"],
    "operating_cash_flow": ["netCashProvidedByOperatingActivities"],
    "capex": ["capitalExpenditure", "capitalExpenditures"],
}


class NoUsablePeriodsError(ValueError):
    """Raised when no record carries a parseable period end and type."""


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


FIELD_ALIASES: Dict[str, List[str]] = {
    name: [name, _camel(name), *EXTRA_ALIASES.get(name, [])] for name in NUMERIC_FIELDS
}


# -----------------
# Normalization
# -----------------

class PeriodNormalizer:
    """Convert heterogeneous raw records into ascending quarter/year series."""

    def normalize(self, records: Iterable[Mapping[str, Any]]) -> PeriodSeries:
        rows = [row for row in (self._row_from_record(rec) for rec in records) if row]
        if not rows:
            raise NoUsablePeriodsError("No period record carries a usable period end and type.")

        frame = pd.DataFrame(rows)
        frame["period_end"] = pd.to_datetime(frame["period_end"], errors="coerce")
        frame["filed_date"] = pd.to_datetime(frame["filed_date"], errors="coerce")
        for name in NUMERIC_FIELDS:
            frame[name] = pd.to_numeric(frame[name], errors="coerce")
        frame = frame.dropna(subset=["period_end"])
        if frame.empty:
            raise NoUsablePeriodsError("No period record carries a usable period end and type.")

        frame = _apply_derivations(frame)
        frame = _dedup_periods(frame)

        quarters = tuple(_period_from_row(row) for _, row in frame[frame["period_type"] == QUARTER].iterrows())
        years = tuple(_period_from_row(row) for _, row in frame[frame["period_type"] == YEAR].iterrows())
        LOGGER.debug("Normalized %d quarters and %d years", len(quarters), len(years))
        return PeriodSeries(quarters=quarters, years=years)

    @staticmethod
    def _row_from_record(record: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        if not isinstance(record, Mapping):
            return None
        period_end = _first_present(record, END_KEYS)
        period_type = _period_type(_first_present(record, TYPE_KEYS))
        if period_end is None or period_type is None:
            return None
        row: Dict[str, Any] = {
            "period_end": period_end,
            "period_type": period_type,
            "filed_date": _first_present(record, FILED_KEYS),
            "form": _first_present(record, FORM_KEYS),
        }
        for name, candidates in FIELD_ALIASES.items():
            row[name] = _first_present(record, candidates)
        return row


# -----------------
# TTM aggregation
# -----------------

class TtmAggregator:
    """Build trailing-twelve-month snapshots from normalized series."""

    MAX_WINDOW_SPAN = timedelta(days=300)

    def build(self, series: PeriodSeries) -> Optional[TtmSnapshot]:
        quarters = list(series.quarters)
        window = quarters[-4:]
        if len(window) == 4 and _is_complete_window(window):
            return _snapshot_from_window(window, basis="ttm")

        derived = self._derive_missing_quarter(quarters, list(series.years))
        if derived is not None:
            extended = sorted([*quarters, derived], key=lambda p: p.period_end)[-4:]
            if derived in extended and _is_complete_window(extended):
                return _snapshot_from_window(extended, basis="derived", derived_period=derived.period_end)

        latest_year = series.latest_year()
        if latest_year is not None:
            values = {name: latest_year.get(name) for name in AGGREGABLE_FIELDS}
            return TtmSnapshot(basis="annual", as_of=latest_year.period_end, values=values)
        return None

    def build_prior(self, series: PeriodSeries) -> Optional[TtmSnapshot]:
        """Snapshot a year before the latest window; needs eight quarters of history."""
        quarters = list(series.quarters)
        if len(quarters) < 8:
            return None
        cutoff = quarters[-1].period_end - ONE_YEAR + YEAR_TOLERANCE
        earlier = PeriodSeries(
            quarters=tuple(q for q in quarters if q.period_end <= cutoff),
            years=tuple(y for y in series.years if y.period_end <= cutoff),
        )
        if earlier.is_empty():
            return None
        return self.build(earlier)

    def _derive_missing_quarter(
        self, quarters: List[FinancialPeriod], years: List[FinancialPeriod]
    ) -> Optional[FinancialPeriod]:
        if not quarters or not years:
            return None
        latest_quarter = quarters[-1]
        candidates = [
            year
            for year in years
            if abs(year.period_end - latest_quarter.period_end) <= ONE_YEAR + YEAR_TOLERANCE
        ]
        if not candidates:
            return None
        annual = min(candidates, key=lambda year: abs(year.period_end - latest_quarter.period_end))

        known = [
            q
            for q in quarters
            if timedelta(days=-15) <= annual.period_end - q.period_end <= self.MAX_WINDOW_SPAN
        ]
        if len(known) != 3:
            return None

        slot_end = _missing_slot(annual.period_end, known)
        if slot_end is None or any(q.period_end == slot_end for q in quarters):
            return None

        values: Dict[str, Optional[float]] = {}
        for name in AGGREGABLE_FIELDS:
            total = annual.get(name)
            parts = [q.get(name) for q in known]
            if is_finite_value(total) and all(is_finite_value(p) for p in parts):
                values[name] = float(total) - sum(float(p) for p in parts)
        LOGGER.debug("Derived quarter ending %s from annual %s", slot_end, annual.period_end)
        return FinancialPeriod(period_end=slot_end, period_type=QUARTER, form="derived", **values)


# -----------------
# Year-over-year and CAGR
# -----------------

def find_year_ago(series: Sequence[FinancialPeriod], target: FinancialPeriod) -> Optional[FinancialPeriod]:
    """Comparable period one year before ``target`` (365 +/- 30 days).

    Series with fewer than five periods never yield a comparison. When no
    period falls in the window, the fifth most recent period is used.
    """
    if len(series) < 5:
        return None
    for candidate in series:
        if abs((target.period_end - candidate.period_end) - ONE_YEAR) <= YEAR_TOLERANCE:
            return candidate
    ordered = sorted(series, key=lambda p: p.period_end, reverse=True)
    return ordered[4]


def yoy_change(series: Sequence[FinancialPeriod], name: str) -> Optional[float]:
    """Percent change of ``name`` for the latest period versus its year-ago peer."""
    if not series:
        return None
    ordered = sorted(series, key=lambda p: p.period_end)
    latest = ordered[-1]
    prior = find_year_ago(ordered, latest)
    if prior is None:
        return None
    return pct_change(latest.get(name), prior.get(name))


def compute_cagr_3y(years: Sequence[FinancialPeriod]) -> Tuple[Optional[float], Optional[float]]:
    """Revenue and EPS three-year CAGR (ratios) from at least four fiscal years."""
    ordered = sorted(years, key=lambda p: p.period_end, reverse=True)
    if len(ordered) < 4:
        return None, None
    latest, older = ordered[0], ordered[3]
    return (
        calc_cagr(latest.revenue, older.revenue, 3),
        calc_cagr(latest.eps_basic, older.eps_basic, 3),
    )


# ----------------------------
# Internal helpers
# ----------------------------

def _first_present(record: Mapping[str, Any], keys: List[str]) -> Any:
    for key in keys:
        if key in record and record[key] is not None and record[key] != "":
            return record[key]
    return None


def _period_type(value: Any) -> Optional[str]:
    if value is None:
        return None
    return PERIOD_TYPE_ALIASES.get(str(value).strip().lower())


def _safe_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    number = float(value)
    return number if is_finite_value(number) else None


def _safe_date(value: Any) -> Optional[date]:
    if value is None or pd.isna(value):
        return None
    return pd.Timestamp(value).date()


def _apply_derivations(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.copy()
    revenue_missing = frame["revenue"].isna() & frame["gross_profit"].notna() & frame["cost_of_revenue"].notna()
    frame.loc[revenue_missing, "revenue"] = (
        frame.loc[revenue_missing, "gross_profit"] + frame.loc[revenue_missing, "cost_of_revenue"]
    )
    gross_missing = frame["gross_profit"].isna() & frame["revenue"].notna() & frame["cost_of_revenue"].notna()
    frame.loc[gross_missing, "gross_profit"] = (
        frame.loc[gross_missing, "revenue"] - frame.loc[gross_missing, "cost_of_revenue"]
    )
    fcf_missing = frame["free_cash_flow"].isna() & frame["operating_cash_flow"].notna()
    frame.loc[fcf_missing, "free_cash_flow"] = (
        frame.loc[fcf_missing, "operating_cash_flow"] - frame.loc[fcf_missing, "capex"].abs().fillna(0.0)
    )
    return frame


def _dedup_periods(frame: pd.DataFrame) -> pd.DataFrame:
    """Keep one row per (type, end): most populated first, then latest filing."""
    frame = frame.copy()
    numeric = frame[list(NUMERIC_FIELDS)].replace([float("inf"), float("-inf")], pd.NA)
    frame["_populated"] = numeric.notna().sum(axis=1)
    frame["_filed_sort"] = frame["filed_date"].fillna(pd.Timestamp.min)
    frame = frame.sort_values(["period_type", "period_end", "_populated", "_filed_sort"])
    frame = frame.drop_duplicates(subset=["period_type", "period_end"], keep="last")
    frame = frame.sort_values("period_end").reset_index(drop=True)
    return frame.drop(columns=["_populated", "_filed_sort"])


def _period_from_row(row: pd.Series) -> FinancialPeriod:
    values = {name: _safe_float(row[name]) for name in NUMERIC_FIELDS}
    form = row.get("form")
    return FinancialPeriod(
        period_end=_safe_date(row["period_end"]),
        period_type=row["period_type"],
        filed_date=_safe_date(row["filed_date"]),
        form=None if form is None or pd.isna(form) else str(form),
        **values,
    )


def _is_complete_window(window: Sequence[FinancialPeriod]) -> bool:
    if len(window) != 4:
        return False
    if window[-1].period_end - window[0].period_end > TtmAggregator.MAX_WINDOW_SPAN:
        return False
    return all(is_finite_value(q.revenue) and is_finite_value(q.net_income) for q in window)


def _snapshot_from_window(
    window: Sequence[FinancialPeriod], basis: str, derived_period: Optional[date] = None
) -> TtmSnapshot:
    frame = pd.DataFrame([{name: q.get(name) for name in AGGREGABLE_FIELDS} for q in window], dtype="float64")
    totals = frame.sum(min_count=1)
    values = {name: _safe_float(totals[name]) for name in AGGREGABLE_FIELDS}
    return TtmSnapshot(
        basis=basis,
        as_of=window[-1].period_end,
        values=values,
        quarters_used=len(window),
        derived_period=derived_period,
    )


def _missing_slot(year_end: date, known: Sequence[FinancialPeriod]) -> Optional[date]:
    """End date of the fiscal quarter that has no reported period."""
    for offset in (0, 91, 182, 273):
        slot = year_end - timedelta(days=offset)
        if all(abs(q.period_end - slot) > timedelta(days=45) for q in known):
            return slot
    return None
