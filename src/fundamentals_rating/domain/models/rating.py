"""Rating engine result types."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class RuleOutcome:
    """What a single rule evaluation returns."""

    score: int
    message: str
    missing: bool = False
    not_applicable: bool = False

    @property
    def skipped(self) -> bool:
        return self.missing or self.not_applicable


def missing(message: str, not_applicable: bool = False) -> RuleOutcome:
    """Outcome for a rule that could not (or should not) be computed."""
    return RuleOutcome(score=0, message=message, missing=True, not_applicable=not_applicable)


@dataclass
class RuleReason:
    """Per-rule entry of a rating, in catalog order."""

    name: str
    weight: int
    score: int
    message: str
    missing: bool = False
    not_applicable: bool = False
    basis: Dict[str, Any] = field(default_factory=dict)

    @property
    def skipped(self) -> bool:
        return self.missing or self.not_applicable


@dataclass
class Completeness:
    total: int
    applicable: int
    missing: int

    @property
    def percent(self) -> float:
        if not self.total:
            return 0.0
        return self.applicable / self.total * 100


@dataclass
class RatingResult:
    raw_score: float
    normalized_score: int
    tier: str
    reasons: List[RuleReason] = field(default_factory=list)
    completeness: Completeness = field(default_factory=lambda: Completeness(0, 0, 0))
    override_notes: List[str] = field(default_factory=list)
    missing_notes: List[str] = field(default_factory=list)
    filing_score: int = 0
    growth_adjustment: float = 0.0
    growth_intensity: float = 0.0
    penny_stock: bool = False
    catalog_version: Optional[str] = None

    def reason(self, name: str) -> Optional[RuleReason]:
        for item in self.reasons:
            if item.name == name:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["completeness"]["percent"] = self.completeness.percent
        return payload


@dataclass
class MomentumHealth:
    score: int
    label: str


@dataclass
class NarrativeSummary:
    sentences: List[str] = field(default_factory=list)
    momentum: Optional[MomentumHealth] = None
    explainers: Dict[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return " ".join(self.sentences)
