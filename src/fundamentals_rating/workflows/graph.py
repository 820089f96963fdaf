"""LangGraph workflow assembly for the per-ticker rating pipeline."""
from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from langgraph.graph import END, StateGraph

from config import Config
from fundamentals_rating.domain.models.signals import ScanResult
from fundamentals_rating.domain.services.filing_signals import FilingScanner
from fundamentals_rating.domain.services.narrative import NarrativeSynthesizer
from fundamentals_rating.domain.services.periods import PeriodNormalizer, TtmAggregator
from fundamentals_rating.domain.services.rating import RatingEngine
from fundamentals_rating.domain.services.state_builder import FinancialStateBuilder
from fundamentals_rating.infrastructure.cache.signal_cache import SignalCache
from fundamentals_rating.infrastructure.data_providers.edgar_client import EdgarFilingFetcher
from fundamentals_rating.infrastructure.db.sqlite import SQLiteRepository
from fundamentals_rating.infrastructure.sector import SectorClassifier
from fundamentals_rating.reports.renderer import ReportRenderer
from fundamentals_rating.workflows import context as context_module
from fundamentals_rating.workflows.blueprint import StageSpec, build_default_stages
from fundamentals_rating.workflows.state import RatingState


class RatingWorkflow:
    """Compose LangGraph nodes into a runnable rating workflow."""

    def __init__(
        self,
        config: Config,
        *,
        offline: bool = False,
        context: Optional[context_module.WorkflowContext] = None,
    ) -> None:
        self._config = config
        self._context = context or self._build_context(offline=offline)
        self._stages: List[StageSpec] = build_default_stages()
        self._graph = self._build_graph()

    @property
    def context(self) -> context_module.WorkflowContext:
        return self._context

    def _build_context(self, *, offline: bool) -> context_module.WorkflowContext:
        config = self._config
        repository = SQLiteRepository(
            database_uri=f"sqlite:///{config.database_path}",
            echo=config.sqlite_echo,
        )
        edgar_factory: Optional[Callable[[], EdgarFilingFetcher]] = None
        if not offline:

            def edgar_factory() -> EdgarFilingFetcher:
                return EdgarFilingFetcher(
                    config.edgar_user_agent,
                    proxy_url=config.proxy_url,
                    timeout=config.http_timeout,
                )

        aggregator = TtmAggregator()
        return context_module.WorkflowContext(
            config=config,
            repository=repository,
            signal_cache=SignalCache(
                config.signal_cache_dir,
                ttl=timedelta(hours=config.signal_cache_ttl_hours),
            ),
            sector_classifier=SectorClassifier.from_file(config.database_path.parent / "sector_overrides.json"),
            normalizer=PeriodNormalizer(),
            aggregator=aggregator,
            state_builder=FinancialStateBuilder(aggregator),
            scanner=FilingScanner(stale_years=config.filing_stale_years),
            rating_engine=RatingEngine(risk_free_rate_pct=config.risk_free_rate_pct),
            narrator=NarrativeSynthesizer(),
            renderer=ReportRenderer(),
            edgar_factory=edgar_factory,
        )

    def _build_graph(self):
        builder = StateGraph(dict)

        if not self._stages:
            raise RuntimeError("Workflow blueprint is empty; cannot build LangGraph.")

        for stage in self._stages:
            builder.add_node(stage.key, self._wrap(stage.handler))

        # Stages run strictly in declared order; nodes share one mutable state dict.
        builder.set_entry_point(self._stages[0].key)
        for current, nxt in zip(self._stages, self._stages[1:]):
            builder.add_edge(current.key, nxt.key)
        builder.add_edge(self._stages[-1].key, END)

        return builder.compile(checkpointer=None)

    def _wrap(self, func: Callable[[RatingState, context_module.WorkflowContext], RatingState]):
        def wrapper(state: Dict[str, Any]) -> Dict[str, Any]:
            return func(state, self._context)

        return wrapper

    def run(
        self,
        ticker: str,
        *,
        periods_file: Optional[Path] = None,
        filings_dir: Optional[Path] = None,
        price_file: Optional[Path] = None,
        sector: Optional[str] = None,
        scan: Optional[ScanResult] = None,
        scan_depth: Optional[int] = None,
        force_scan: bool = False,
        deep_scan: bool = False,
    ) -> RatingState:
        """Execute the workflow for a single ticker."""
        initial_state: RatingState = {
            "ticker": ticker.upper(),
            "report_date": datetime.utcnow().date().isoformat(),
            "scan_depth": scan_depth or self._config.scan_depth,
            "force_scan": force_scan,
            "deep_scan": deep_scan,
            "logs": [],
            "errors": [],
            "extras": {},
            "stage_order": [stage.key for stage in self._stages],
        }
        if periods_file is not None:
            initial_state["periods_file"] = str(periods_file)
        if filings_dir is not None:
            initial_state["filings_dir"] = str(filings_dir)
        if price_file is not None:
            initial_state["price_file"] = str(price_file)
        if sector:
            initial_state["sector"] = sector
        if scan is not None:
            initial_state["scan"] = scan
        result: RatingState = self._graph.invoke(initial_state)
        return result  # type: ignore[return-value]

    def persist_state(self, state: RatingState, path: Path) -> None:
        """Serialize the workflow state to disk for debugging or auditing."""
        path.parent.mkdir(parents=True, exist_ok=True)
        slim = {key: value for key, value in state.items() if key not in ("series", "raw_periods")}
        payload = json.dumps(slim, default=_json_serializer, indent=2, ensure_ascii=False)
        path.write_text(payload, encoding="utf-8")

    def persist_markdown(self, markdown: str, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(markdown, encoding="utf-8")

    def describe_stages(self) -> List[str]:
        """Return human-readable workflow stage descriptions."""
        return [f"{stage.key}: {stage.description}" for stage in self._stages]

    def close(self) -> None:
        self._context.close()

    def __del__(self) -> None:  # pragma: no cover
        try:
            self._context.close()
        except Exception:  # pylint: disable=broad-except
            pass


def _json_serializer(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "tolist"):
        return value.tolist()
    return str(value)
