"""
Ingestion Orchestrator.

Fans a fetch request out to every registered source adapter in parallel,
waits for all outcomes, merges them with app-native events from the event
catalog, deduplicates and sorts by date.
"""

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from event_ingest.ingestion.adapters.base_adapter import BaseSourceAdapter
from event_ingest.ingestion.deduplication import (
    DeduplicationEngine,
    EventDeduplicator,
    get_deduplicator,
)
from event_ingest.ingestion.persist import EventStore
from event_ingest.schemas.event import CanonicalEvent, DuplicateGroup, FetchRequest, FetchResult

logger = logging.getLogger(__name__)

DATABASE_SOURCE = "database"


@dataclass
class IngestionResult:
    """Merged, deduplicated output of one ingestion pass."""

    events: List[CanonicalEvent]
    platform_results: Dict[str, FetchResult]
    counts_by_source: Dict[str, int]
    errors: List[str] = field(default_factory=list)
    duplicates_removed: int = 0
    duplicate_groups: List[DuplicateGroup] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return len(self.events) > 0

    @property
    def total_events(self) -> int:
        return len(self.events)

    @property
    def duration_seconds(self) -> float:
        if not self.completed_at:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def stats(self) -> Dict[str, Any]:
        """Counts of the final events by platform, category and city."""
        return {
            "total": len(self.events),
            "by_platform": dict(Counter(e.source_platform for e in self.events)),
            "by_category": dict(Counter(e.category for e in self.events)),
            "by_city": dict(Counter(e.city for e in self.events)),
            "duplicates_removed": self.duplicates_removed,
            "failed_platforms": sorted(
                name for name, r in self.platform_results.items() if not r.success
            ),
        }


class IngestionOrchestrator:
    """
    Coordinates one ingestion pass across all source adapters.

    Responsibilities:
    - Run every adapter concurrently, isolating failures and late adapters
    - Merge app-native events from the event catalog
    - Deduplicate across sources and sort by event date
    """

    def __init__(
        self,
        adapters: Optional[Dict[str, BaseSourceAdapter]] = None,
        deduplicator: Optional[EventDeduplicator] = None,
        store: Optional[EventStore] = None,
        max_workers: int = 8,
        deadline_s: float = 60.0,
        include_database_events: bool = True,
    ):
        """
        Initialize the orchestrator.

        Args:
            adapters: source name -> adapter
            deduplicator: Defaults to a DeduplicationEngine with default thresholds
            store: Event catalog holding app-native events; optional
            max_workers: Upper bound on concurrent adapter fetches
            deadline_s: Overall deadline for one pass; late adapters count as failed
            include_database_events: Merge app-native events from ``store``
        """
        self.adapters: Dict[str, BaseSourceAdapter] = dict(adapters or {})
        self.deduplicator = deduplicator or DeduplicationEngine()
        self.store = store
        self.max_workers = max_workers
        self.deadline_s = deadline_s
        self.include_database_events = include_database_events

    @classmethod
    def from_factory(cls, factory, store: Optional[EventStore] = None) -> "IngestionOrchestrator":
        """
        Build adapters, the configured deduplicator and limits from an AdapterFactory.

        Args:
            factory: AdapterFactory (its config and settings are used)
            store: Optional event catalog
        """
        section = factory.section("orchestrator")
        deduplicator = get_deduplicator(
            config=factory.section("deduplication"),
            timezone_name=factory.settings.DEFAULT_TIMEZONE,
        )
        return cls(
            adapters=factory.create_all_enabled_adapters(),
            deduplicator=deduplicator,
            store=store,
            max_workers=int(section.get("max_workers", 8)),
            deadline_s=float(section.get("deadline_s", 60)),
            include_database_events=bool(section.get("include_database_events", True)),
        )

    # ========================================================================
    # ADAPTER MANAGEMENT
    # ========================================================================

    def register_adapter(self, source_name: str, adapter: BaseSourceAdapter) -> None:
        self.adapters[source_name] = adapter
        logger.info(f"Registered adapter: {source_name}")

    def list_adapters(self) -> List[str]:
        return list(self.adapters)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def fetch_all(
        self, request: FetchRequest, platforms: Optional[List[str]] = None
    ) -> Dict[str, FetchResult]:
        """
        Run the selected adapters in parallel and collect every outcome.

        Never raises for adapter failures: exceptions and adapters that miss
        the deadline become ``FetchResult(success=False)``.

        Raises:
            ValueError: If ``platforms`` names an unregistered adapter
        """
        names = list(platforms) if platforms is not None else list(self.adapters)
        unknown = [n for n in names if n not in self.adapters]
        if unknown:
            raise ValueError(f"Unknown platforms: {unknown}. Registered: {list(self.adapters)}")
        if not names:
            return {}

        results: Dict[str, FetchResult] = {}
        executor = ThreadPoolExecutor(
            max_workers=max(1, min(self.max_workers, len(names))),
            thread_name_prefix="ingest",
        )
        try:
            futures = {executor.submit(self.adapters[n].fetch, request): n for n in names}
            done, _ = wait(futures, timeout=self.deadline_s)
            for future, name in futures.items():
                if future not in done:
                    logger.warning(f"{name} missed the {self.deadline_s}s deadline")
                    results[name] = FetchResult.failure(
                        name, f"Timed out after {self.deadline_s:g}s"
                    )
                    continue
                try:
                    results[name] = future.result()
                except Exception as e:
                    logger.error(f"Adapter {name} raised during fetch: {e}", exc_info=True)
                    results[name] = FetchResult.failure(name, str(e) or type(e).__name__)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return {name: results[name] for name in names}

    def database_events(self, request: FetchRequest) -> List[CanonicalEvent]:
        """App-native events from the catalog matching the request."""
        if self.store is None or not self.include_database_events:
            return []
        try:
            events = self.store.list_events(
                city=request.city, start_date=request.start_date, end_date=request.end_date
            )
        except Exception as e:
            logger.error(f"Failed to load database events: {e}", exc_info=True)
            return []
        return [e for e in events if e.source != "external"]

    def ingest(self, request: FetchRequest, platforms: Optional[List[str]] = None) -> IngestionResult:
        """
        Run one ingestion pass.

        Args:
            request: City, optional category/date window and per-source limit
            platforms: Restrict to these adapters; all registered when None

        Returns:
            IngestionResult with deduplicated events sorted by date
        """
        started_at = datetime.now(timezone.utc)
        logger.info(f"Ingesting events for {request.city} from {platforms or self.list_adapters()}")

        platform_results = self.fetch_all(request, platforms)

        errors: List[str] = []
        merged: List[CanonicalEvent] = []
        for name, result in platform_results.items():
            if result.success:
                merged.extend(result.events)
                logger.info(f"{name}: {result.event_count} events")
            else:
                errors.append(f"{name}: {result.error}")
                logger.warning(f"{name}: {result.error}")

        native = self.database_events(request)
        native_ids = {id(e) for e in native}
        merged = native + merged

        if isinstance(self.deduplicator, DeduplicationEngine):
            report = self.deduplicator.run(merged)
            unique, groups = report.retained, report.groups
        else:
            unique, groups = self.deduplicator.deduplicate(merged), []

        unique = sorted(unique, key=lambda e: e.event_date)

        counts: Dict[str, int] = {name: 0 for name in platform_results}
        counts[DATABASE_SOURCE] = 0
        for event in unique:
            key = DATABASE_SOURCE if id(event) in native_ids else event.source_platform
            counts[key] = counts.get(key, 0) + 1

        result = IngestionResult(
            events=unique,
            platform_results=platform_results,
            counts_by_source=counts,
            errors=errors,
            duplicates_removed=len(merged) - len(unique),
            duplicate_groups=groups,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )
        succeeded = sum(1 for r in platform_results.values() if r.success)
        logger.info(
            f"Ingestion complete: {result.total_events} events, "
            f"{succeeded}/{len(platform_results)} platforms succeeded, "
            f"{result.duplicates_removed} duplicates removed in {result.duration_seconds:.1f}s"
        )
        return result

    def close(self) -> None:
        for adapter in self.adapters.values():
            adapter.close()
