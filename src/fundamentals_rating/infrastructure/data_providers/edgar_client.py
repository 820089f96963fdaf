"""Async SEC EDGAR adapter supplying filing metadata and stripped filing text."""
from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from fundamentals_rating.domain.models.signals import FilingDocument, FilingMeta
from fundamentals_rating.domain.services.filing_signals import strip_html

LOGGER = logging.getLogger(__name__)

SEC_DATA_BASE = "https://data.sec.gov"
SEC_ARCHIVES_BASE = "https://www.sec.gov/Archives/edgar/data"
TICKER_INDEX_URL = "https://www.sec.gov/files/company_tickers.json"

DEFAULT_FORMS = ("10-Q", "10-K", "8-K", "DEF 14A", "DEF14A")
INSIDER_FORM = "4"
TRANSACTION_CODE_PATTERN = re.compile(r"<transactionCode>\s*([A-Za-z])\s*</transactionCode>")
XSL_PREFIX_PATTERN = re.compile(r"^xsl[^/]*/")


class EdgarError(RuntimeError):
    """Raised when EDGAR cannot resolve a ticker or returns unusable data."""


class EdgarFilingFetcher:
    """Resolve tickers to CIKs, list recent filings and download their text."""

    def __init__(
        self,
        user_agent: str,
        *,
        proxy_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        min_interval: float = 0.12,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if client is None:
            client_kwargs: Dict[str, Any] = {
                "timeout": httpx.Timeout(timeout, connect=10.0),
                "headers": {"User-Agent": user_agent, "Accept-Encoding": "gzip, deflate"},
                "follow_redirects": True,
            }
            if proxy_url:
                client_kwargs["proxy"] = proxy_url
            client = httpx.AsyncClient(**client_kwargs)
        self._client = client
        self._max_retries = max_retries
        self._min_interval = min_interval
        self._last_request = 0.0
        self._throttle_lock = asyncio.Lock()
        self._ticker_index: Optional[Dict[str, Dict[str, Any]]] = None

    # ------------------
    # Public API helpers
    # ------------------
    async def lookup_company(self, ticker: str) -> Dict[str, Any]:
        """Return ``{"cik": "0000320193", "title": ...}`` for ``ticker``."""
        if self._ticker_index is None:
            payload = await self._get_json(TICKER_INDEX_URL)
            index: Dict[str, Dict[str, Any]] = {}
            for entry in (payload or {}).values():
                symbol = str(entry.get("ticker") or "").upper()
                if symbol:
                    index[symbol] = {"cik": normalize_cik(entry.get("cik_str")), "title": entry.get("title")}
            self._ticker_index = index
        company = self._ticker_index.get(ticker.upper())
        if not company or not company.get("cik"):
            raise EdgarError(f"CIK not found for ticker {ticker}")
        return company

    async def list_filings(
        self,
        ticker: str,
        forms: Sequence[str] = DEFAULT_FORMS,
        limit: int = 10,
    ) -> List[FilingMeta]:
        """Most recent filings of the requested forms, newest first."""
        company = await self.lookup_company(ticker)
        submissions = await self._get_json(f"{SEC_DATA_BASE}/submissions/CIK{company['cik']}.json")
        return parse_recent_filings(submissions, company["cik"], forms, limit)

    async def fetch_document(self, meta: FilingMeta) -> FilingDocument:
        url = meta.doc_url or document_url(meta)
        html = await self._get_text(url)
        return FilingDocument(
            form=meta.form,
            filed=meta.filed,
            text=strip_html(html),
            accession=meta.accession,
            cik=meta.cik,
            doc_url=url,
        )

    async def insider_transaction_codes(self, ticker: str, limit: int = 20) -> List[str]:
        """Transaction codes (``P`` purchase, ``S`` sale, ...) from recent Form 4 filings."""
        metas = await self.list_filings(ticker, (INSIDER_FORM,), limit)
        codes: List[str] = []
        for meta in metas:
            raw = FilingMeta(
                form=meta.form,
                filed=meta.filed,
                accession=meta.accession,
                cik=meta.cik,
                primary_document=XSL_PREFIX_PATTERN.sub("", meta.primary_document or ""),
            )
            try:
                xml = await self._get_text(document_url(raw))
            except httpx.HTTPError as exc:
                LOGGER.warning("Skipping Form 4 %s: %s", meta.accession, exc)
                continue
            codes.extend(match.upper() for match in TRANSACTION_CODE_PATTERN.findall(xml))
        return codes

    async def aclose(self) -> None:
        await self._client.aclose()

    # -----------------
    # Internal helpers
    # -----------------
    async def _get_json(self, url: str) -> Any:
        response = await self._request(url)
        try:
            return response.json()
        except ValueError as exc:
            raise EdgarError(f"Invalid JSON from {url}") from exc

    async def _get_text(self, url: str) -> str:
        response = await self._request(url)
        return response.text

    async def _request(self, url: str) -> httpx.Response:
        last_exc: Optional[Exception] = None
        for attempt in range(1, self._max_retries + 1):
            await self._throttle()
            try:
                response = await self._client.get(url)
                response.raise_for_status()
                return response
            except httpx.HTTPError as exc:
                last_exc = exc
                if attempt >= self._max_retries:
                    break
                await asyncio.sleep(self._min_interval * attempt * 4)
        if last_exc:
            raise last_exc
        raise EdgarError(f"EDGAR request failed without exception: {url}")

    async def _throttle(self) -> None:
        async with self._throttle_lock:
            wait = self._min_interval - (time.monotonic() - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()


def normalize_cik(value: Any) -> Optional[str]:
    digits = re.sub(r"\D", "", str(value or ""))
    return digits.zfill(10) if digits else None


def parse_recent_filings(
    submissions: Dict[str, Any],
    cik: str,
    forms: Sequence[str],
    limit: int,
) -> List[FilingMeta]:
    recent = ((submissions or {}).get("filings") or {}).get("recent") or {}
    form_list = recent.get("form") or []
    accessions = recent.get("accessionNumber") or []
    filed_dates = recent.get("filingDate") or []
    primary_docs = recent.get("primaryDocument") or []
    wanted = {form.upper() for form in forms}

    metas: List[FilingMeta] = []
    for index, form in enumerate(form_list):
        form = (form or "").upper()
        if form not in wanted or index >= len(accessions) or not accessions[index]:
            continue
        meta = FilingMeta(
            form=form,
            filed=filed_dates[index] if index < len(filed_dates) else None,
            accession=accessions[index],
            cik=cik,
            primary_document=primary_docs[index] if index < len(primary_docs) else None,
        )
        metas.append(meta)
        if len(metas) >= limit:
            break
    return metas


def document_url(meta: FilingMeta) -> str:
    cik = str(int(meta.cik)) if meta.cik else ""
    accession = (meta.accession or "").replace("-", "")
    primary = meta.primary_document or f"{meta.accession}.txt"
    return f"{SEC_ARCHIVES_BASE}/{cik}/{accession}/{primary}"
