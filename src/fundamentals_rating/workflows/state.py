"""Workflow state definitions shared by LangGraph nodes."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict

from fundamentals_rating.domain.models.financials import (
    FinancialState,
    PeriodSeries,
    PricePoint,
    TtmSnapshot,
)
from fundamentals_rating.domain.models.rating import NarrativeSummary, RatingResult
from fundamentals_rating.domain.models.signals import FilingSignal, ScanResult


class RatingState(TypedDict, total=False):
    ticker: str
    company_name: Optional[str]
    sector: Optional[str]
    sector_source: Optional[str]
    sic: Optional[str]
    sic_description: Optional[str]
    issuer_type: Optional[str]
    report_date: str

    periods_file: Optional[str]
    filings_dir: Optional[str]
    price_file: Optional[str]
    scan_depth: int
    force_scan: bool
    deep_scan: bool

    raw_periods: List[Dict[str, Any]]
    prices: List[PricePoint]
    market_cap: Optional[float]
    series: Optional[PeriodSeries]
    ttm: Optional[TtmSnapshot]
    ttm_prior: Optional[TtmSnapshot]

    scan: Optional[ScanResult]
    signals: List[FilingSignal]

    financial_state: Optional[FinancialState]
    rating: Optional[RatingResult]
    narrative: Optional[NarrativeSummary]
    markdown_report: Optional[str]
    stage_order: List[str]

    logs: List[str]
    errors: List[str]

    extras: Dict[str, Any]
