"""LangGraph node rendering the Markdown rating report."""
from __future__ import annotations

from fundamentals_rating.workflows.context import WorkflowContext
from fundamentals_rating.workflows.state import RatingState


def run(state: RatingState, context: WorkflowContext) -> RatingState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    rating = state.get("rating")
    if rating is None:
        state["markdown_report"] = None
        return state

    logs.append("WritingAgent -> render Markdown report")
    scan = state.get("scan")
    try:
        state["markdown_report"] = context.renderer.render_rating(
            state["ticker"],
            rating,
            state=state.get("financial_state"),
            signals=state.get("signals") or [],
            scan_meta=scan.meta if scan is not None else None,
            narrative=state.get("narrative"),
            report_date=state.get("report_date", ""),
        )
    except Exception as exc:  # pylint: disable=broad-except
        errors.append(f"Report rendering failed: {exc}")
        state["markdown_report"] = None
    return state
