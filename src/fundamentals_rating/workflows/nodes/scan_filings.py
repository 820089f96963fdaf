"""LangGraph node running the cache-aware filing signal scan."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from fundamentals_rating.domain.models.signals import ScanResult
from fundamentals_rating.infrastructure.data_providers.local_filings import LocalFilingFetcher
from fundamentals_rating.workflows.context import WorkflowContext
from fundamentals_rating.workflows.nodes.load_periods import latest_filed_date
from fundamentals_rating.workflows.scanning import FilingScanService
from fundamentals_rating.workflows.state import RatingState


def run(state: RatingState, context: WorkflowContext) -> RatingState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    ticker = state["ticker"]

    if state.get("scan") is not None:
        scan = state["scan"]
        logs.append(f"FilingScanner -> using pre-computed scan ({len(scan.signals)} signals)")
        state["signals"] = list(scan.signals)
        return state

    filings_dir = state.get("filings_dir")
    if not filings_dir and context.edgar_factory is None:
        logs.append("FilingScanner -> no filing source configured; skipping")
        state["scan"] = None
        state["signals"] = []
        return state

    logs.append("FilingScanner -> scan recent filings")
    try:
        scan = asyncio.run(_scan(state, context, filings_dir))
    except Exception as exc:  # pylint: disable=broad-except
        errors.append(f"Filing scan failed: {exc}")
        state["scan"] = None
        state["signals"] = []
        return state

    state["scan"] = scan
    state["signals"] = list(scan.signals)
    note = f" ({scan.meta.note})" if scan.meta.note else ""
    logs.append(f"Collected {len(scan.signals)} filing signals{note}")
    return state


async def _scan(state: RatingState, context: WorkflowContext, filings_dir: Optional[str]) -> ScanResult:
    config = context.config
    options = dict(
        depth=state.get("scan_depth") or config.scan_depth,
        force=bool(state.get("force_scan")),
        deep=bool(state.get("deep_scan")),
        foreign_filer=(state.get("issuer_type") or "").lower() == "foreign",
        latest_filed=latest_filed_date(state.get("raw_periods") or []),
    )
    if filings_dir:
        service = FilingScanService(LocalFilingFetcher(Path(filings_dir)), context.signal_cache, context.scanner)
        return await service.scan(state["ticker"], **options)

    fetcher = context.edgar_factory()
    try:
        service = FilingScanService(fetcher, context.signal_cache, context.scanner)
        return await service.scan(state["ticker"], **options)
    finally:
        await fetcher.aclose()
