"""LangGraph node deriving the financial state consumed by the rules."""
from __future__ import annotations

from fundamentals_rating.workflows.context import WorkflowContext
from fundamentals_rating.workflows.state import RatingState


def run(state: RatingState, context: WorkflowContext) -> RatingState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    series = state.get("series")
    if series is None:
        state["financial_state"] = None
        return state

    logs.append("StateBuilder -> derive margins, growth, leverage and valuation")
    try:
        financial_state = context.state_builder.build(
            state["ticker"],
            series,
            ttm=state.get("ttm"),
            ttm_prior=state.get("ttm_prior"),
            sector=state.get("sector"),
            company_name=state.get("company_name"),
            sic_description=state.get("sic_description"),
            issuer_type=state.get("issuer_type"),
            prices=state.get("prices") or [],
            market_cap=state.get("market_cap"),
        )
    except Exception as exc:  # pylint: disable=broad-except
        errors.append(f"Financial state build failed: {exc}")
        financial_state = None

    state["financial_state"] = financial_state
    if financial_state is not None:
        logs.append(f"Sector bucket {financial_state.sector_bucket}; TTM basis {financial_state.ttm_basis}")
        for note in financial_state.data_quality_notes:
            logs.append(f"Data quality: {note}")
    return state
