"""LangGraph node normalizing raw periods and building the TTM snapshot."""
from __future__ import annotations

from fundamentals_rating.domain.services.periods import NoUsablePeriodsError
from fundamentals_rating.workflows.context import WorkflowContext
from fundamentals_rating.workflows.state import RatingState


def run(state: RatingState, context: WorkflowContext) -> RatingState:
    logs = state.setdefault("logs", [])
    errors = state.setdefault("errors", [])
    records = state.get("raw_periods") or []

    logs.append("PeriodNormalizer -> canonicalize periods")
    try:
        series = context.normalizer.normalize(records)
    except NoUsablePeriodsError as exc:
        errors.append(f"Entity cannot be rated: {exc}")
        state["series"] = None
        state["ttm"] = None
        state["ttm_prior"] = None
        return state

    ttm = context.aggregator.build(series)
    state["series"] = series
    state["ttm"] = ttm
    state["ttm_prior"] = context.aggregator.build_prior(series)
    basis = ttm.basis if ttm else "none"
    logs.append(
        f"Normalized {len(series.quarters)} quarters and {len(series.years)} years; TTM basis={basis}"
    )
    return state
