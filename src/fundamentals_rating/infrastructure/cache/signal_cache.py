"""Per-ticker JSON cache for filing scan results."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fundamentals_rating.domain.models.signals import FilingSignal, ScanMeta, ScanResult
from fundamentals_rating.domain.services.filing_signals import SCANNER_VERSION

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=72)


@dataclass
class CachedScan:
    result: ScanResult
    cached_at: Optional[datetime]
    scanner_version: Optional[str]
    latest_period_filed: Optional[str] = None


class SignalCache:
    """One ``{TICKER}-fundamentals.json`` document per ticker, mirrored in memory.

    Other keys in the document (``periods`` and anything written by other
    tools) are preserved on every write.
    """

    def __init__(
        self,
        directory: Path,
        *,
        ttl: timedelta = DEFAULT_TTL,
        scanner_version: str = SCANNER_VERSION,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.directory = Path(directory)
        self.ttl = ttl
        self.scanner_version = scanner_version
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._memory: Dict[str, CachedScan] = {}

    def path_for(self, ticker: str) -> Path:
        return self.directory / f"{ticker.upper()}-fundamentals.json"

    def read(self, ticker: str) -> Optional[CachedScan]:
        """Cached scan regardless of age; None when absent, corrupt or empty."""
        key = ticker.upper()
        if key in self._memory:
            return self._memory[key]
        document = self._load_document(key)
        signals = document.get("filingSignals")
        if not isinstance(signals, list) or not signals:
            return None
        cached = CachedScan(
            result=ScanResult(
                signals=[FilingSignal.from_dict(item) for item in signals if isinstance(item, dict)],
                meta=ScanMeta.from_dict(document.get("filingSignalsMeta")),
            ),
            cached_at=_parse_timestamp(document.get("filingSignalsCachedAt") or document.get("updatedAt")),
            scanner_version=document.get("filingSignalsScannerVersion"),
            latest_period_filed=_latest_period_filed(document.get("periods")),
        )
        self._memory[key] = cached
        return cached

    def lookup(
        self,
        ticker: str,
        *,
        depth: int,
        latest_filed: Optional[str] = None,
    ) -> Optional[ScanResult]:
        """Return the cached result when it may be reused for a scan of ``depth`` filings."""
        cached = self.read(ticker)
        if cached is None:
            return None
        if cached.scanner_version != self.scanner_version:
            LOGGER.debug("Cache for %s has scanner version %s", ticker, cached.scanner_version)
            return None
        if depth > cached.result.meta.scan_depth:
            return None
        known_latest = latest_filed or cached.latest_period_filed
        matches_latest = bool(
            known_latest and cached.result.meta.latest_filed and cached.result.meta.latest_filed == known_latest
        )
        if self.is_fresh(cached) or matches_latest:
            return cached.result
        return None

    def is_fresh(self, cached: CachedScan) -> bool:
        if cached.cached_at is None:
            return False
        return self._clock() - cached.cached_at <= self.ttl

    def store(self, ticker: str, result: ScanResult) -> None:
        """Merge ``result`` into the ticker document; empty signal lists keep prior ones."""
        key = ticker.upper()
        document = self._load_document(key)
        now = self._clock()
        keep_existing = not result.signals and isinstance(document.get("filingSignals"), list)
        if not keep_existing:
            document["filingSignals"] = [signal.to_dict() for signal in result.signals]
            document["filingSignalsMeta"] = result.meta.to_dict()
            document["filingSignalsCachedAt"] = now.isoformat()
            document["filingSignalsScannerVersion"] = self.scanner_version
        self._write_document(key, document)
        self._memory.pop(key, None)
        if not keep_existing and result.signals:
            self._memory[key] = CachedScan(
                result=result,
                cached_at=now,
                scanner_version=self.scanner_version,
                latest_period_filed=_latest_period_filed(document.get("periods")),
            )

    def store_periods(self, ticker: str, periods: List[Dict[str, Any]]) -> None:
        key = ticker.upper()
        document = self._load_document(key)
        document["periods"] = periods
        document["updatedAt"] = self._clock().isoformat()
        self._write_document(key, document)
        self._memory.pop(key, None)

    def load_periods(self, ticker: str) -> List[Dict[str, Any]]:
        periods = self._load_document(ticker.upper()).get("periods")
        return [item for item in periods if isinstance(item, dict)] if isinstance(periods, list) else []

    # ----------------------------
    # Internal helpers
    # ----------------------------

    def _load_document(self, key: str) -> Dict[str, Any]:
        path = self.path_for(key)
        if not path.exists():
            return {}
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Failed to read signal cache %s: %s", path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _write_document(self, key: str, document: Dict[str, Any]) -> None:
        path = self.path_for(key)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(document, handle, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as exc:
            LOGGER.warning("Failed to persist signal cache %s: %s", path, exc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _latest_period_filed(periods: Any) -> Optional[str]:
    if not isinstance(periods, list):
        return None
    filed = sorted(
        str(item.get("filedDate"))
        for item in periods
        if isinstance(item, dict) and item.get("filedDate")
    )
    return filed[-1] if filed else None
