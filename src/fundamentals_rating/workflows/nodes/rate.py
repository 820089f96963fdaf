"""LangGraph node running the rule-based rating engine."""
from __future__ import annotations

from fundamentals_rating.workflows.context import WorkflowContext
from fundamentals_rating.workflows.state import RatingState


def run(state: RatingState, context: WorkflowContext) -> RatingState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    financial_state = state.get("financial_state")
    if financial_state is None:
        errors.append("No financial state; rating skipped")
        state["rating"] = None
        return state

    logs.append("RatingEngine -> evaluate rule catalog")
    try:
        rating = context.rating_engine.rate(financial_state, state.get("signals") or [])
    except Exception as exc:  # pylint: disable=broad-except
        errors.append(f"Rating failed: {exc}")
        state["rating"] = None
        return state

    state["rating"] = rating
    logs.append(
        f"Rated {state['ticker']}: {rating.normalized_score}/100 ({rating.tier}), "
        f"completeness {rating.completeness.percent:.0f}%"
    )
    return state
