"""SQLite persistence layer for raw fundamentals periods and price history."""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

PERIOD_END_KEYS = ("periodEnd", "period_end", "endDate")
PERIOD_TYPE_KEYS = ("periodType", "period_type")
FILED_KEYS = ("filedDate", "filed_date", "filed")


class SQLiteRepository:
    """Lightweight gateway for reading and writing fundamentals data."""

    def __init__(self, database_uri: str, *, echo: bool = False) -> None:
        self._engine: Engine = create_engine(database_uri, echo=echo, future=True)
        self._ensure_schema()

    # -----------------
    # Schema management
    # -----------------
    def _ensure_schema(self) -> None:
        """Create core tables if they do not already exist."""
        ddl = [
            # One raw period record per (ticker, periodEnd, periodType)
            """
            CREATE TABLE IF NOT EXISTS periods (
              ticker TEXT NOT NULL,
              period_end DATE NOT NULL,
              period_type TEXT NOT NULL,
              filed_date DATE,
              payload TEXT NOT NULL,
              PRIMARY KEY (ticker, period_type, period_end)
            );
            """,
            """CREATE INDEX IF NOT EXISTS idx_periods_ticker ON periods(ticker);""",
            # Daily closes
            """
            CREATE TABLE IF NOT EXISTS prices (
              ticker TEXT NOT NULL,
              trade_date DATE NOT NULL,
              close REAL,
              market_cap REAL,
              PRIMARY KEY (ticker, trade_date)
            );
            """,
            """CREATE INDEX IF NOT EXISTS idx_prices_ticker ON prices(ticker);""",
            # Company profile used for sector classification
            """
            CREATE TABLE IF NOT EXISTS companies (
              ticker TEXT PRIMARY KEY,
              name TEXT,
              sector TEXT,
              sic TEXT,
              sic_description TEXT,
              issuer_type TEXT,
              updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
            """,
        ]
        with self._engine.begin() as conn:
            for statement in ddl:
                conn.execute(text(statement))

    # ------------
    # Periods CRUD
    # ------------
    def fetch_periods(self, ticker: str) -> List[Dict[str, Any]]:
        """Raw period records for the ticker, oldest first."""
        query = text(
            """
            SELECT period_end, period_type, filed_date, payload
            FROM periods
            WHERE ticker = :ticker
            ORDER BY period_end ASC, period_type ASC
            """
        )
        records: List[Dict[str, Any]] = []
        with self._engine.connect() as conn:
            rows = conn.execute(query, {"ticker": ticker.upper()})
            for row in rows.mappings():
                record = json.loads(row["payload"])
                record["periodEnd"] = str(row["period_end"])
                record["periodType"] = row["period_type"]
                if row["filed_date"]:
                    record["filedDate"] = str(row["filed_date"])
                records.append(record)
        return records

    def upsert_periods(self, ticker: str, records: Iterable[Dict[str, Any]]) -> int:
        """Persist raw period records; rows without an end date or type are skipped."""
        rows = []
        for record in records:
            period_end = _first(record, PERIOD_END_KEYS)
            period_type = _first(record, PERIOD_TYPE_KEYS)
            if not period_end or not period_type:
                continue
            rows.append(
                {
                    "ticker": ticker.upper(),
                    "period_end": str(period_end)[:10],
                    "period_type": str(period_type).lower(),
                    "filed_date": _first(record, FILED_KEYS),
                    "payload": json.dumps(record, default=str),
                }
            )
        if not rows:
            return 0

        stmt = text(
            """
            INSERT INTO periods (ticker, period_end, period_type, filed_date, payload)
            VALUES (:ticker, :period_end, :period_type, :filed_date, :payload)
            ON CONFLICT(ticker, period_type, period_end) DO UPDATE SET
                filed_date=excluded.filed_date,
                payload=excluded.payload
            """
        )
        with self._engine.begin() as conn:
            conn.execute(stmt, rows)
        return len(rows)

    def latest_filed_date(self, ticker: str) -> Optional[str]:
        query = text("SELECT MAX(filed_date) AS filed FROM periods WHERE ticker = :ticker")
        with self._engine.connect() as conn:
            row = conn.execute(query, {"ticker": ticker.upper()}).mappings().first()
            return str(row["filed"]) if row and row["filed"] else None

    # -------------
    # Price history
    # -------------
    def fetch_prices(self, ticker: str, *, limit: int = 260) -> List[Dict[str, Any]]:
        """Most recent closes first."""
        query = text(
            """
            SELECT trade_date, close, market_cap
            FROM prices
            WHERE ticker = :ticker
            ORDER BY trade_date DESC
            LIMIT :limit
            """
        )
        params = {"ticker": ticker.upper(), "limit": int(limit)}
        with self._engine.connect() as conn:
            return [dict(row) for row in conn.execute(query, params).mappings()]

    def upsert_prices(self, ticker: str, rows: Iterable[Dict[str, Any]]) -> int:
        payload = []
        for row in rows:
            trade_date = row.get("trade_date") or row.get("date")
            if trade_date is None:
                continue
            payload.append(
                {
                    "ticker": ticker.upper(),
                    "trade_date": str(trade_date)[:10],
                    "close": row.get("close"),
                    "market_cap": row.get("market_cap", row.get("marketCap")),
                }
            )
        if not payload:
            return 0
        stmt = text(
            """
            INSERT INTO prices (ticker, trade_date, close, market_cap)
            VALUES (:ticker, :trade_date, :close, :market_cap)
            ON CONFLICT(ticker, trade_date) DO UPDATE SET
                close=excluded.close,
                market_cap=excluded.market_cap
            """
        )
        with self._engine.begin() as conn:
            conn.execute(stmt, payload)
        return len(payload)

    # ---------------
    # Company profile
    # ---------------
    def upsert_company(self, profile: Dict[str, Any]) -> None:
        if not profile.get("ticker"):
            return
        stmt = text(
            """
            INSERT INTO companies (ticker, name, sector, sic, sic_description, issuer_type, updated_at)
            VALUES (:ticker, :name, :sector, :sic, :sic_description, :issuer_type, CURRENT_TIMESTAMP)
            ON CONFLICT(ticker) DO UPDATE SET
              name=excluded.name,
              sector=excluded.sector,
              sic=excluded.sic,
              sic_description=excluded.sic_description,
              issuer_type=excluded.issuer_type,
              updated_at=CURRENT_TIMESTAMP
            """
        )
        params = {
            "ticker": str(profile["ticker"]).upper(),
            "name": profile.get("name"),
            "sector": profile.get("sector"),
            "sic": profile.get("sic"),
            "sic_description": profile.get("sic_description"),
            "issuer_type": profile.get("issuer_type"),
        }
        with self._engine.begin() as conn:
            conn.execute(stmt, params)

    def fetch_company(self, ticker: str) -> Optional[Dict[str, Any]]:
        query = text(
            """
            SELECT ticker, name, sector, sic, sic_description, issuer_type, updated_at
            FROM companies
            WHERE ticker = :ticker
            LIMIT 1
            """
        )
        with self._engine.connect() as conn:
            row = conn.execute(query, {"ticker": ticker.upper()}).mappings().first()
            return dict(row) if row else None

    def dispose(self) -> None:
        self._engine.dispose()


def _first(record: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None
