"""Workflow dependency container."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from config import Config
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


@dataclass
class WorkflowContext:
    """Holds heavy-weight dependencies shared by LangGraph nodes."""

    config: Config
    repository: Optional[SQLiteRepository]
    signal_cache: SignalCache
    sector_classifier: SectorClassifier
    normalizer: PeriodNormalizer
    aggregator: TtmAggregator
    state_builder: FinancialStateBuilder
    scanner: FilingScanner
    rating_engine: RatingEngine
    narrator: NarrativeSynthesizer
    renderer: ReportRenderer
    # Called once per scan; a fetcher must not outlive its event loop.
    edgar_factory: Optional[Callable[[], EdgarFilingFetcher]] = None

    def close(self) -> None:
        """Release any dependencies that need explicit cleanup."""
        if self.repository is not None:
            self.repository.dispose()
