"""LangGraph node composing the narrative summary and momentum health."""
from __future__ import annotations

from fundamentals_rating.workflows.context import WorkflowContext
from fundamentals_rating.workflows.state import RatingState


def run(state: RatingState, context: WorkflowContext) -> RatingState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    rating = state.get("rating")
    financial_state = state.get("financial_state")
    if rating is None or financial_state is None:
        state["narrative"] = None
        return state

    logs.append("NarrativeAgent -> compose summary")
    try:
        summary = context.narrator.compose(
            state["ticker"], rating, financial_state, state.get("signals") or []
        )
    except Exception as exc:  # pylint: disable=broad-except
        errors.append(f"Narrative failed: {exc}")
        state["narrative"] = None
        return state

    state["narrative"] = summary
    if summary.momentum is not None:
        logs.append(f"Momentum health {summary.momentum.score} ({summary.momentum.label})")
    return state
