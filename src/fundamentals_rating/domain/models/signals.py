"""Models exchanged by the filing signal scanner and its cache."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class SignalDefinition:
    """One phrase family of the catalog."""

    id: str
    score: int
    title: str
    phrases: Tuple[str, ...]
    severity: str = ""
    include_in_score: bool = True

    @property
    def resolved_severity(self) -> str:
        if self.severity:
            return self.severity
        return "warning" if self.score < 0 else "info"


@dataclass(frozen=True)
class FilingDocument:
    """Already fetched, HTML-stripped filing text plus its metadata."""

    form: str
    filed: Optional[str]
    text: str = ""
    accession: Optional[str] = None
    cik: Optional[str] = None
    doc_url: Optional[str] = None


@dataclass(frozen=True)
class FilingMeta:
    """Filing index entry as returned by a fetcher, before the text is loaded."""

    form: str
    filed: Optional[str]
    accession: Optional[str] = None
    cik: Optional[str] = None
    doc_url: Optional[str] = None
    primary_document: Optional[str] = None


@dataclass
class FilingSignal:
    id: str
    title: str
    score: int
    severity: str
    snippet: str = ""
    form: Optional[str] = None
    filed: Optional[str] = None
    doc_url: Optional[str] = None
    accession: Optional[str] = None
    cik: Optional[str] = None
    include_in_score: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "score": self.score,
            "severity": self.severity,
            "snippet": self.snippet,
            "form": self.form,
            "filed": self.filed,
            "docUrl": self.doc_url,
            "accession": self.accession,
            "cik": self.cik,
            "includeInScore": self.include_in_score,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FilingSignal":
        return cls(
            id=str(payload.get("id")),
            title=str(payload.get("title") or ""),
            score=int(payload.get("score") or 0),
            severity=str(payload.get("severity") or "info"),
            snippet=str(payload.get("snippet") or ""),
            form=payload.get("form"),
            filed=payload.get("filed"),
            doc_url=payload.get("docUrl"),
            accession=payload.get("accession"),
            cik=payload.get("cik"),
            include_in_score=payload.get("includeInScore", True) is not False,
        )


@dataclass
class ScanMeta:
    latest_form: Optional[str] = None
    latest_filed: Optional[str] = None
    latest_accession: Optional[str] = None
    latest_doc_url: Optional[str] = None
    scan_depth: int = 0
    scanner_version: Optional[str] = None
    reused: bool = False
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latestForm": self.latest_form,
            "latestFiled": self.latest_filed,
            "latestAccession": self.latest_accession,
            "latestDocUrl": self.latest_doc_url,
            "scanDepth": self.scan_depth,
            "scannerVersion": self.scanner_version,
            "reused": self.reused,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "ScanMeta":
        payload = payload or {}
        return cls(
            latest_form=payload.get("latestForm"),
            latest_filed=payload.get("latestFiled"),
            latest_accession=payload.get("latestAccession"),
            latest_doc_url=payload.get("latestDocUrl"),
            scan_depth=int(payload.get("scanDepth") or 0),
            scanner_version=payload.get("scannerVersion"),
            reused=bool(payload.get("reused", False)),
            note=payload.get("note"),
        )


@dataclass
class ScanResult:
    signals: List[FilingSignal] = field(default_factory=list)
    meta: ScanMeta = field(default_factory=ScanMeta)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signals": [signal.to_dict() for signal in self.signals],
            "meta": self.meta.to_dict(),
        }
