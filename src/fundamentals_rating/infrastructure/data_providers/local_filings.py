"""Filing fetcher backed by a directory of saved filing documents.

Either a ``manifest.json`` lists the filings::

    [{"form": "10-K", "filed": "2024-02-01", "file": "10k.htm", "accession": "..."}]

or the file names carry the metadata, e.g. ``10-Q_2024-05-02.htm`` or
``10-K-A_2023-03-01.txt`` (a trailing ``-A`` marks an amendment).
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Sequence

from fundamentals_rating.domain.models.signals import FilingDocument, FilingMeta
from fundamentals_rating.domain.services.filing_signals import strip_html

LOGGER = logging.getLogger(__name__)

FILENAME_PATTERN = re.compile(r"^(?P<form>.+?)_(?P<filed>\d{4}-\d{2}-\d{2})")
DOCUMENT_SUFFIXES = (".htm", ".html", ".txt", ".xml")


class LocalFilingFetcher:
    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    async def list_filings(self, ticker: str, forms: Sequence[str], limit: int) -> List[FilingMeta]:
        wanted = {form.upper() for form in forms}
        metas = [meta for meta in self._index() if meta.form.upper() in wanted]
        metas.sort(key=lambda meta: meta.filed or "", reverse=True)
        return metas[:limit]

    async def fetch_document(self, meta: FilingMeta) -> FilingDocument:
        path = self.directory / (meta.primary_document or "")
        raw = path.read_text(encoding="utf-8", errors="replace")
        return FilingDocument(
            form=meta.form,
            filed=meta.filed,
            text=strip_html(raw),
            accession=meta.accession,
            cik=meta.cik,
            doc_url=path.resolve().as_uri(),
        )

    def _index(self) -> List[FilingMeta]:
        manifest = self.directory / "manifest.json"
        if manifest.exists():
            entries: Any = json.loads(manifest.read_text(encoding="utf-8"))
            return [_meta_from_entry(entry) for entry in entries if isinstance(entry, dict) and entry.get("file")]
        metas: List[FilingMeta] = []
        for path in sorted(self.directory.iterdir()):
            if path.suffix.lower() not in DOCUMENT_SUFFIXES:
                continue
            match = FILENAME_PATTERN.match(path.stem)
            if not match:
                LOGGER.debug("Skipping %s: no form/date in file name", path.name)
                continue
            form = match.group("form").upper()
            if form.endswith("-A"):
                form = form[:-2] + "/A"
            metas.append(FilingMeta(form=form, filed=match.group("filed"), primary_document=path.name))
        return metas


def _meta_from_entry(entry: Dict[str, Any]) -> FilingMeta:
    return FilingMeta(
        form=str(entry.get("form") or "").upper(),
        filed=entry.get("filed"),
        accession=entry.get("accession"),
        cik=entry.get("cik"),
        primary_document=entry.get("file"),
    )
