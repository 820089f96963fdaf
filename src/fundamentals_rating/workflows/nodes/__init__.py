"""Convenience re-exports for workflow nodes."""
from __future__ import annotations

from . import (
    build_state,
    load_periods,
    narrative,
    normalize_periods,
    rate,
    render_report,
    scan_filings,
)

__all__ = [
    "build_state",
    "load_periods",
    "narrative",
    "normalize_periods",
    "rate",
    "render_report",
    "scan_filings",
]
