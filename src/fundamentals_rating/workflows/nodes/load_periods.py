"""LangGraph node loading raw fundamentals, prices and company profile."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from fundamentals_rating.domain.models.financials import PricePoint
from fundamentals_rating.workflows.context import WorkflowContext
from fundamentals_rating.workflows.state import RatingState


def run(state: RatingState, context: WorkflowContext) -> RatingState:
    """Populate raw period records (file first, then SQLite) and price history."""
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    ticker = state["ticker"]

    logs.append("PeriodLoader -> lookup fundamentals")
    records: List[Dict[str, Any]] = []
    price_rows: List[Dict[str, Any]] = []

    periods_file = state.get("periods_file")
    if periods_file:
        try:
            payload = _read_json(Path(periods_file))
            records, profile, price_rows = _split_payload(payload)
            _apply_profile(state, profile)
            logs.append(f"Loaded {len(records)} period records from {periods_file}")
            if context.repository is not None and records:
                persisted = context.repository.upsert_periods(ticker, records)
                logs.append(f"Cached {persisted} period rows in SQLite")
            context.signal_cache.store_periods(ticker, records)
        except (OSError, ValueError) as exc:
            errors.append(f"Failed to read periods file {periods_file}: {exc}")

    if not records and context.repository is not None:
        records = context.repository.fetch_periods(ticker)
        logs.append(f"Loaded {len(records)} period records from SQLite")
        company = context.repository.fetch_company(ticker)
        if company:
            _apply_profile(state, company)

    if not records:
        errors.append(f"No fundamentals periods available for {ticker}")

    price_file = state.get("price_file")
    if price_file:
        try:
            price_rows = _read_json(Path(price_file))
            if isinstance(price_rows, dict):
                price_rows = price_rows.get("prices") or []
        except (OSError, ValueError) as exc:
            errors.append(f"Failed to read price file {price_file}: {exc}")
            price_rows = []
    if price_rows and context.repository is not None:
        context.repository.upsert_prices(ticker, price_rows)
    elif not price_rows and context.repository is not None:
        price_rows = context.repository.fetch_prices(ticker, limit=260)

    prices = _to_price_points(price_rows)
    state["raw_periods"] = records
    state["prices"] = prices
    if state.get("market_cap") is None and prices:
        state["market_cap"] = prices[-1].market_cap

    if not state.get("sector"):
        sector, source = context.sector_classifier.classify(ticker, state.get("sic"))
        state["sector"] = sector
        state["sector_source"] = source
        logs.append(f"Sector resolved via {source}: {sector}")
    return state


# -----------------
# Helpers
# -----------------


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _split_payload(payload: Any):
    """Accept either a bare list of periods or ``{"periods": [...], "company": {...}, "prices": [...]}``."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)], {}, []
    if not isinstance(payload, dict):
        raise ValueError("periods file must hold a list or an object")
    periods = [item for item in payload.get("periods") or [] if isinstance(item, dict)]
    return periods, payload.get("company") or {}, payload.get("prices") or []


def _apply_profile(state: RatingState, profile: Dict[str, Any]) -> None:
    mapping = {
        "name": "company_name",
        "companyName": "company_name",
        "sector": "sector",
        "sic": "sic",
        "sic_description": "sic_description",
        "sicDescription": "sic_description",
        "issuer_type": "issuer_type",
        "issuerType": "issuer_type",
        "market_cap": "market_cap",
        "marketCap": "market_cap",
    }
    for source, target in mapping.items():
        value = profile.get(source)
        if value not in (None, "") and not state.get(target):
            state[target] = value  # type: ignore[literal-required]


def _to_price_points(rows: List[Dict[str, Any]]) -> List[PricePoint]:
    """Ascending, de-duplicated closes; rows without a date or close are dropped."""
    if not rows:
        return []
    frame = pd.DataFrame(rows)
    if "trade_date" not in frame.columns and "date" in frame.columns:
        frame = frame.rename(columns={"date": "trade_date"})
    if "market_cap" not in frame.columns and "marketCap" in frame.columns:
        frame = frame.rename(columns={"marketCap": "market_cap"})
    if "trade_date" not in frame.columns or "close" not in frame.columns:
        return []
    frame["trade_date"] = pd.to_datetime(frame["trade_date"], errors="coerce")
    frame["close"] = pd.to_numeric(frame["close"], errors="coerce")
    if "market_cap" in frame.columns:
        frame["market_cap"] = pd.to_numeric(frame["market_cap"], errors="coerce")
    else:
        frame["market_cap"] = float("nan")
    frame = frame.dropna(subset=["trade_date", "close"])
    frame = frame.sort_values("trade_date").drop_duplicates(subset="trade_date", keep="last")
    return [
        PricePoint(
            trade_date=row.trade_date.date(),
            close=float(row.close),
            market_cap=_optional_float(row.market_cap),
        )
        for row in frame.itertuples(index=False)
    ]


def _optional_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def latest_filed_date(records: List[Dict[str, Any]]) -> Optional[str]:
    filed = sorted(
        str(record.get("filedDate") or record.get("filed_date"))[:10]
        for record in records
        if record.get("filedDate") or record.get("filed_date")
    )
    return filed[-1] if filed else None
