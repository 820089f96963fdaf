"""Async orchestration of filing fetches, scanning and the signal cache."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, Union

import httpx

from fundamentals_rating.domain.models.signals import FilingDocument, FilingMeta, ScanMeta, ScanResult
from fundamentals_rating.domain.services.filing_signals import (
    AMENDMENT_FORMS,
    FOREIGN_FORMS,
    SCANNER_VERSION,
    FilingScanner,
)
from fundamentals_rating.infrastructure.cache.signal_cache import SignalCache
from fundamentals_rating.infrastructure.data_providers.edgar_client import DEFAULT_FORMS, EdgarError

LOGGER = logging.getLogger(__name__)

FETCH_ERRORS = (httpx.HTTPError, EdgarError, ValueError, OSError)
REUSED_NOTE = "No new flags detected; showing prior risks."
STALE_NOTE = "Filing fetch failed; showing cached risks."
INDEX_LIMIT = 40
INSIDER_LIMIT = 20


class FilingFetcher(Protocol):
    async def list_filings(self, ticker: str, forms: Sequence[str], limit: int) -> List[FilingMeta]:
        ...

    async def fetch_document(self, meta: FilingMeta) -> FilingDocument:
        ...


_Fetched = Tuple[FilingMeta, Union[FilingDocument, Exception]]
_DONE = None


class FilingScanService:
    """Scan a ticker's recent filings, reusing the on-disk cache where allowed."""

    def __init__(
        self,
        fetcher: FilingFetcher,
        cache: Optional[SignalCache] = None,
        scanner: Optional[FilingScanner] = None,
        *,
        forms: Sequence[str] = DEFAULT_FORMS,
        depth: int = 10,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.scanner = scanner or FilingScanner()
        self.forms = tuple(forms)
        self.depth = depth

    async def scan(
        self,
        ticker: str,
        *,
        depth: Optional[int] = None,
        force: bool = False,
        deep: bool = False,
        foreign_filer: bool = False,
        latest_filed: Optional[str] = None,
    ) -> ScanResult:
        ticker = ticker.upper()
        depth = depth or self.depth
        if self.cache is not None and not force:
            cached = self.cache.lookup(ticker, depth=depth, latest_filed=latest_filed)
            if cached is not None:
                LOGGER.info("Reusing cached filing signals for %s", ticker)
                return cached

        try:
            metas = await self.fetcher.list_filings(ticker, self.forms, depth)
        except FETCH_ERRORS as exc:
            LOGGER.warning("Filing index unavailable for %s: %s", ticker, exc)
            return self._stale_or_empty(ticker, depth)
        if not metas:
            LOGGER.info("No recent filings for %s", ticker)
            return self._stale_or_empty(ticker, depth)

        accumulator = self.scanner.accumulator()
        async for meta, fetched in self._documents(metas):
            if isinstance(fetched, Exception):
                LOGGER.warning("Failed to scan %s %s for %s: %s", meta.form, meta.accession, ticker, fetched)
                continue
            accumulator.add(fetched)
            await asyncio.sleep(0)

        filing_index: List[FilingMeta] = []
        insider_codes: Optional[List[str]] = None
        if deep:
            filing_index, insider_codes = await self._deep_inputs(ticker)

        latest = metas[0]
        signals = accumulator.finish(
            foreign_filer=foreign_filer,
            filing_index=filing_index,
            insider_codes=insider_codes,
            as_of=latest.filed,
        )
        if not signals:
            prior = self.cache.read(ticker) if self.cache is not None else None
            if prior is not None and prior.result.signals:
                LOGGER.info("No new flags for %s; keeping %d cached signals", ticker, len(prior.result.signals))
                meta = replace(prior.result.meta, reused=True, note=REUSED_NOTE)
                return ScanResult(signals=prior.result.signals, meta=meta)

        latest_doc = next(
            (signal.doc_url for signal in signals if signal.form == latest.form and signal.filed == latest.filed),
            None,
        )
        result = ScanResult(
            signals=signals,
            meta=ScanMeta(
                latest_form=latest.form,
                latest_filed=latest.filed,
                latest_accession=latest.accession,
                latest_doc_url=latest_doc,
                scan_depth=depth,
                scanner_version=SCANNER_VERSION,
            ),
        )
        if self.cache is not None:
            self.cache.store(ticker, result)
        LOGGER.info("Scanned %d filings for %s: %d signals", accumulator.scanned, ticker, len(signals))
        return result

    async def scan_many(
        self,
        tickers: Iterable[str],
        *,
        max_concurrency: int = 4,
        **kwargs,
    ) -> Dict[str, ScanResult]:
        """Scan several tickers concurrently, at most ``max_concurrency`` at a time."""
        semaphore = asyncio.Semaphore(max(1, max_concurrency))
        tickers = [ticker.upper() for ticker in tickers]

        async def _one(ticker: str) -> ScanResult:
            async with semaphore:
                return await self.scan(ticker, **kwargs)

        results = await asyncio.gather(*(_one(ticker) for ticker in tickers))
        return dict(zip(tickers, results))

    # ----------------------------
    # Internal helpers
    # ----------------------------

    async def _documents(self, metas: Sequence[FilingMeta]):
        """Yield fetched filings in order, prefetching at most one ahead."""
        queue: "asyncio.Queue[Optional[_Fetched]]" = asyncio.Queue(maxsize=1)

        async def _produce() -> None:
            for meta in metas:
                try:
                    document: Union[FilingDocument, Exception] = await self.fetcher.fetch_document(meta)
                except FETCH_ERRORS as exc:
                    document = exc
                await queue.put((meta, document))
            await queue.put(_DONE)

        producer = asyncio.ensure_future(_produce())
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, producer}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done and producer.exception() is not None:
                    getter.cancel()
                    raise producer.exception()
                item = await getter
                if item is _DONE:
                    break
                yield item
        finally:
            if not producer.done():
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

    async def _deep_inputs(self, ticker: str) -> Tuple[List[FilingMeta], Optional[List[str]]]:
        index: List[FilingMeta] = []
        codes: Optional[List[str]] = None
        try:
            index = await self.fetcher.list_filings(ticker, AMENDMENT_FORMS + FOREIGN_FORMS, INDEX_LIMIT)
        except FETCH_ERRORS as exc:
            LOGGER.warning("Amendment index unavailable for %s: %s", ticker, exc)
        insider_lookup = getattr(self.fetcher, "insider_transaction_codes", None)
        if insider_lookup is not None:
            try:
                codes = await insider_lookup(ticker, INSIDER_LIMIT)
            except FETCH_ERRORS as exc:
                LOGGER.warning("Insider transactions unavailable for %s: %s", ticker, exc)
        return index, codes

    def _stale_or_empty(self, ticker: str, depth: int) -> ScanResult:
        prior = self.cache.read(ticker) if self.cache is not None else None
        if prior is not None and prior.result.signals:
            meta = replace(prior.result.meta, reused=True, note=STALE_NOTE)
            return ScanResult(signals=prior.result.signals, meta=meta)
        return ScanResult(meta=ScanMeta(scan_depth=depth, scanner_version=SCANNER_VERSION))
