"""
Multi-city catalog sync.

Runs one ingestion pass per city over a forward window, then validates and
upserts the external events into the event catalog. A failing city is
recorded and skipped; the remaining cities still sync.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from event_ingest.ingestion.orchestrator import IngestionOrchestrator
from event_ingest.ingestion.persist import EventCatalogWriter
from event_ingest.schemas.event import FetchRequest

logger = logging.getLogger(__name__)

SYNC_WINDOW_DAYS = 90
SYNC_LIMIT = 50


@dataclass
class SyncStats:
    """Counts from one sync run, overall and per platform and city."""

    cities: List[str]
    total_fetched: int = 0
    validated: int = 0
    invalid: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    by_platform: Counter = field(default_factory=Counter)
    by_city: Dict[str, int] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        """At least one valid event reached the catalog."""
        return self.validated > 0

    @property
    def duration_seconds(self) -> float:
        if not self.completed_at:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "cities": list(self.cities),
            "total_fetched": self.total_fetched,
            "validated": self.validated,
            "invalid": self.invalid,
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "errors": list(self.errors),
            "validation_errors": list(self.validation_errors),
            "by_platform": dict(self.by_platform),
            "by_city": dict(self.by_city),
            "duration_seconds": round(self.duration_seconds, 3),
        }


def sync_events(
    orchestrator: IngestionOrchestrator,
    writer: EventCatalogWriter,
    cities: Iterable[str],
    days: int = SYNC_WINDOW_DAYS,
    limit: int = SYNC_LIMIT,
    platforms: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> SyncStats:
    """
    Ingest every city and upsert the results into the catalog.

    Args:
        orchestrator: Runs the per-city ingestion passes
        writer: Validates and upserts into the catalog
        cities: Cities to sync, in order
        days: Forward window from ``now``
        limit: Max events per source per city
        platforms: Restrict to these adapters; all registered when None
        now: Window start (defaults to the current time)

    Returns:
        SyncStats; ``by_city`` counts the valid events written per city
    """
    now = now or datetime.now(timezone.utc)
    stats = SyncStats(cities=list(cities))
    logger.info(f"Starting event sync for {len(stats.cities)} cities")

    for city in stats.cities:
        try:
            request = FetchRequest(
                city=city, limit=limit, start_date=now, end_date=now + timedelta(days=days)
            )
            result = orchestrator.ingest(request, platforms=platforms)
        except Exception as e:
            logger.error(f"Error syncing {city}: {e}", exc_info=True)
            stats.errors.append(f"{city}: {e}")
            stats.by_city[city] = 0
            continue

        stats.errors.extend(f"{city}: {error}" for error in result.errors)
        external = [e for e in result.events if e.source == "external"]
        if not external:
            logger.info(f"No events found for {city}")
            stats.by_city[city] = 0
            continue

        stats.total_fetched += len(external)
        stats.by_platform.update(e.source_platform for e in external)

        upsert = writer.upsert_events(external)
        written = upsert.total - upsert.invalid
        stats.validated += written
        stats.invalid += upsert.invalid
        stats.inserted += upsert.inserted
        stats.updated += upsert.updated
        stats.unchanged += upsert.unchanged
        stats.validation_errors.extend(upsert.errors)
        stats.by_city[city] = written
        logger.info(f"{city}: {written}/{len(external)} events synced")

    stats.completed_at = datetime.now(timezone.utc)
    logger.info(
        f"Sync complete: {stats.total_fetched} fetched, {stats.inserted} inserted, "
        f"{stats.updated} updated, {stats.invalid} invalid, {len(stats.errors)} errors "
        f"in {stats.duration_seconds:.1f}s"
    )
    return stats
