"""Workflow blueprint describing rating stages and their handlers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, TYPE_CHECKING

from fundamentals_rating.workflows.nodes import (
    build_state,
    load_periods,
    narrative,
    normalize_periods,
    rate,
    render_report,
    scan_filings,
)

if TYPE_CHECKING:
    from fundamentals_rating.workflows.context import WorkflowContext
    from fundamentals_rating.workflows.state import RatingState


@dataclass
class StageSpec:
    """Single LangGraph stage definition."""

    key: str
    description: str
    handler: Callable[["RatingState", "WorkflowContext"], "RatingState"]
    depends_on: List[str] = field(default_factory=list)


def build_default_stages() -> List[StageSpec]:
    """Return the ordered stages for the rating workflow."""
    return [
        StageSpec(
            key="load_periods",
            description="Load raw periods, prices and company profile from a JSON file or SQLite.",
            handler=load_periods.run,
        ),
        StageSpec(
            key="normalize_periods",
            description="Canonicalize periods and build the TTM / derived / annual snapshot.",
            handler=normalize_periods.run,
            depends_on=["load_periods"],
        ),
        StageSpec(
            key="scan_filings",
            description="Scan recent filings for phrase signals (cache-aware, async fetch).",
            handler=scan_filings.run,
            depends_on=["load_periods"],
        ),
        StageSpec(
            key="build_state",
            description="Derive margins, growth, leverage, valuation and share-change metrics.",
            handler=build_state.run,
            depends_on=["normalize_periods"],
        ),
        StageSpec(
            key="rate",
            description="Evaluate the rule catalog, adjustments and filing contribution into a tier.",
            handler=rate.run,
            depends_on=["build_state", "scan_filings"],
        ),
        StageSpec(
            key="narrative",
            description="Compose deterministic summary sentences and momentum health.",
            handler=narrative.run,
            depends_on=["rate"],
        ),
        StageSpec(
            key="render_report",
            description="Render the Markdown rating report.",
            handler=render_report.run,
            depends_on=["narrative"],
        ),
    ]
