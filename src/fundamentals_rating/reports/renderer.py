"""Markdown rating report rendering via Jinja2 templates."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from fundamentals_rating.domain.models.financials import FinancialState
from fundamentals_rating.domain.models.rating import NarrativeSummary, RatingResult
from fundamentals_rating.domain.models.signals import FilingSignal, ScanMeta
from fundamentals_rating.domain.services.calculations import fmt_money, fmt_pct

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


def _fmt_number(value: Optional[float], digits: int = 2) -> str:
    if value is None:
        return "n/a"
    return f"{value:.{digits}f}"


def _signed(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value:+g}"


@dataclass
class ReportRenderer:
    """Render rating reports from structured workflow outputs."""

    template_dir: Path = DEFAULT_TEMPLATE_DIR
    template_name: str = "rating_report.md.j2"

    def __post_init__(self) -> None:
        self._env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["pct"] = fmt_pct
        self._env.filters["money"] = fmt_money
        self._env.filters["num"] = _fmt_number
        self._env.filters["signed"] = _signed

    def render(self, context: Dict[str, Any]) -> str:
        """Render the configured template with supplied context."""
        return self.render_template(self.template_name, context)

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        template = self._env.get_template(template_name)
        return template.render(**context)

    def render_rating(
        self,
        ticker: str,
        rating: RatingResult,
        *,
        state: Optional[FinancialState] = None,
        signals: Sequence[FilingSignal] = (),
        scan_meta: Optional[ScanMeta] = None,
        narrative: Optional[NarrativeSummary] = None,
        report_date: str = "",
    ) -> str:
        return self.render(
            {
                "ticker": ticker.upper(),
                "company_name": state.company_name if state else None,
                "sector_bucket": state.sector_bucket if state else None,
                "report_date": report_date,
                "rating": rating,
                "state": state,
                "signals": list(signals),
                "scan_meta": scan_meta,
                "narrative": narrative,
            }
        )
