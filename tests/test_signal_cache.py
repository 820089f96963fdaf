from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from fundamentals_rating.domain.models.signals import FilingSignal, ScanMeta, ScanResult
from fundamentals_rating.domain.services.filing_signals import SCANNER_VERSION
from fundamentals_rating.infrastructure.cache.signal_cache import SignalCache

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _result(depth: int = 10, latest_filed: str = "2024-05-01") -> ScanResult:
    return ScanResult(
        signals=[FilingSignal(id="going_concern", title="Going-Concern Warning", score=-10, severity="critical")],
        meta=ScanMeta(latest_form="10-Q", latest_filed=latest_filed, scan_depth=depth, scanner_version=SCANNER_VERSION),
    )


def test_store_then_lookup_within_ttl(tmp_path):
    clock = FakeClock(NOW)
    cache = SignalCache(tmp_path, clock=clock)
    cache.store("abc", _result())

    cached = SignalCache(tmp_path, clock=clock).lookup("ABC", depth=10)

    assert cached is not None
    assert cached.signals[0].id == "going_concern"
    assert cached.meta.latest_filed == "2024-05-01"
    payload = json.loads((tmp_path / "ABC-fundamentals.json").read_text(encoding="utf-8"))
    assert payload["filingSignalsScannerVersion"] == SCANNER_VERSION


def test_lookup_rejects_expired_entries(tmp_path):
    clock = FakeClock(NOW)
    SignalCache(tmp_path, clock=clock).store("ABC", _result())

    clock.now = NOW + timedelta(hours=73)

    assert SignalCache(tmp_path, clock=clock).lookup("ABC", depth=10) is None


def test_entry_without_timestamp_counts_as_stale(tmp_path):
    clock = FakeClock(NOW)
    SignalCache(tmp_path, clock=clock).store("ABC", _result(latest_filed="2024-05-01"))
    path = tmp_path / "ABC-fundamentals.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    payload.pop("filingSignalsCachedAt")
    payload.pop("updatedAt", None)
    path.write_text(json.dumps(payload), encoding="utf-8")
    cache = SignalCache(tmp_path, clock=clock)

    assert cache.lookup("ABC", depth=10, latest_filed="2024-08-01") is None
    assert cache.lookup("ABC", depth=10, latest_filed="2024-05-01") is not None


def test_expired_entry_reused_when_latest_filing_unchanged(tmp_path):
    clock = FakeClock(NOW)
    SignalCache(tmp_path, clock=clock).store("ABC", _result(latest_filed="2024-05-01"))
    clock.now = NOW + timedelta(days=30)
    cache = SignalCache(tmp_path, clock=clock)

    assert cache.lookup("ABC", depth=10, latest_filed="2024-05-01") is not None
    assert cache.lookup("ABC", depth=10, latest_filed="2024-08-01") is None


def test_deeper_scan_or_new_scanner_version_misses(tmp_path):
    clock = FakeClock(NOW)
    SignalCache(tmp_path, clock=clock).store("ABC", _result(depth=5))

    assert SignalCache(tmp_path, clock=clock).lookup("ABC", depth=10) is None
    assert SignalCache(tmp_path, clock=clock).lookup("ABC", depth=5) is not None
    assert SignalCache(tmp_path, clock=clock, scanner_version="old").lookup("ABC", depth=5) is None


def test_empty_scan_keeps_previous_signals_and_other_keys(tmp_path):
    cache = SignalCache(tmp_path, clock=FakeClock(NOW))
    cache.store_periods("ABC", [{"periodEnd": "2024-03-31", "filedDate": "2024-05-01"}])
    cache.store("ABC", _result())

    cache.store("ABC", ScanResult(meta=ScanMeta(scan_depth=10)))

    reread = SignalCache(tmp_path, clock=FakeClock(NOW))
    assert reread.read("ABC").result.signals[0].id == "going_concern"
    assert reread.load_periods("ABC")[0]["filedDate"] == "2024-05-01"
    assert reread.read("ABC").latest_period_filed == "2024-05-01"


def test_corrupt_document_is_ignored(tmp_path):
    (tmp_path / "ABC-fundamentals.json").write_text("{not json", encoding="utf-8")

    cache = SignalCache(tmp_path)

    assert cache.read("ABC") is None
    assert cache.load_periods("ABC") == []
