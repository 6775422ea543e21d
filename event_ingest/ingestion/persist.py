"""
Event catalog persistence boundary.

The relational store lives outside this package; everything here talks to it
through ``EventStore``. Two implementations ship with the package:

- InMemoryEventStore: thread-safe dict store, used by tests and one-off runs
- JsonFileEventStore: a JSON export of catalog rows, used by the operator
  cleanup command

``EventCatalogWriter`` validates and upserts ingestion output keyed by
``(source_platform, external_id)``; ``cleanup_duplicates`` is the
out-of-band batch deduplication of a whole catalog and ``cleanup_expired``
purges listings whose date has passed.
"""

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from event_ingest.ingestion.deduplication import DeduplicationEngine
from event_ingest.ingestion.normalization.validator import EventValidator
from event_ingest.schemas.event import CanonicalEvent, DuplicateGroup

logger = logging.getLogger(__name__)


# ============================================================================
# STORE INTERFACE
# ============================================================================


class EventStore(ABC):
    """Abstract event catalog."""

    @abstractmethod
    def list_events(
        self,
        city: Optional[str] = None,
        source: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[CanonicalEvent]:
        """
        List stored events in insertion order.

        Args:
            city: Case-insensitive city filter
            source: Origin filter ("external", "artist", ...)
            start_date / end_date: Inclusive event date window
        """

    @abstractmethod
    def get_by_external_id(self, source_platform: str, external_id: str) -> Optional[CanonicalEvent]:
        pass

    @abstractmethod
    def insert(self, event: CanonicalEvent) -> CanonicalEvent:
        """Store a new event; returns it with ``id`` and ``created_at`` set."""

    @abstractmethod
    def update(self, event_id: str, event: CanonicalEvent) -> CanonicalEvent:
        pass

    @abstractmethod
    def delete_many(self, ids: Iterable[str]) -> int:
        """Delete by record id; returns how many rows were removed."""


class InMemoryEventStore(EventStore):
    """Thread-safe in-process event catalog."""

    def __init__(
        self,
        events: Optional[Iterable[CanonicalEvent]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._clock = clock
        self._lock = threading.RLock()
        self._events: Dict[str, CanonicalEvent] = {}
        for event in events or []:
            self._put(event)

    def __len__(self) -> int:
        return len(self._events)

    def _put(self, event: CanonicalEvent) -> CanonicalEvent:
        stored = event.model_copy(
            update={
                "id": event.id or str(uuid.uuid4()),
                "created_at": event.created_at or self._clock(),
            }
        )
        self._events[stored.id] = stored
        return stored

    def list_events(
        self,
        city: Optional[str] = None,
        source: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[CanonicalEvent]:
        with self._lock:
            events = list(self._events.values())

        if city:
            events = [e for e in events if e.city.lower() == city.strip().lower()]
        if source:
            events = [e for e in events if e.source == source]
        if start_date:
            events = [e for e in events if e.event_date >= start_date]
        if end_date:
            events = [e for e in events if e.event_date <= end_date]
        return events

    def get_by_external_id(self, source_platform: str, external_id: str) -> Optional[CanonicalEvent]:
        with self._lock:
            for event in self._events.values():
                if event.source_platform == source_platform and event.external_id == external_id:
                    return event
        return None

    def insert(self, event: CanonicalEvent) -> CanonicalEvent:
        with self._lock:
            if event.id and event.id in self._events:
                raise KeyError(f"Event id already exists: {event.id}")
            stored = self._put(event)
            self._changed()
            return stored

    def update(self, event_id: str, event: CanonicalEvent) -> CanonicalEvent:
        with self._lock:
            current = self._events.get(event_id)
            if current is None:
                raise KeyError(f"Event not found: {event_id}")
            stored = event.model_copy(update={"id": event_id, "created_at": current.created_at})
            self._events[event_id] = stored
            self._changed()
            return stored

    def delete_many(self, ids: Iterable[str]) -> int:
        with self._lock:
            removed = 0
            for event_id in ids:
                if self._events.pop(event_id, None) is not None:
                    removed += 1
            if removed:
                self._changed()
            return removed

    def _changed(self) -> None:
        """Hook called after every mutation, with the lock held."""


class JsonFileEventStore(InMemoryEventStore):
    """
    Event catalog backed by a JSON file of catalog rows.

    Accepts either a bare list of rows or ``{"events": [...]}``; always
    writes the latter. Every mutation rewrites the file.
    """

    def __init__(self, path: Union[str, Path], autosave: bool = True):
        self.path = Path(path)
        self.autosave = autosave
        super().__init__()
        for row in self._read_rows():
            self._put(CanonicalEvent.from_row(row))
        logger.info(f"Loaded {len(self)} events from {self.path}")

    def _read_rows(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        rows = data.get("events", []) if isinstance(data, dict) else data
        if not isinstance(rows, list):
            raise ValueError(f"{self.path} does not contain a list of events")
        return rows

    def save(self) -> None:
        with self._lock:
            rows = [e.to_row() for e in self._events.values()]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump({"events": rows}, f, indent=2, ensure_ascii=False)
        tmp.replace(self.path)

    def _changed(self) -> None:
        if self.autosave:
            self.save()


# ============================================================================
# UPSERT
# ============================================================================


@dataclass
class UpsertStats:
    """Counts from one upsert batch."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    invalid: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.unchanged + self.invalid

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "invalid": self.invalid,
            "errors": list(self.errors),
        }


# Fields that never change on re-ingestion of the same listing
_ROW_IDENTITY_FIELDS = {"id", "created_at"}


class EventCatalogWriter:
    """
    Writes canonical events into an EventStore.

    Re-ingesting the same listing updates the stored row in place, so
    running the same batch twice changes nothing.
    """

    def __init__(self, store: EventStore, validator: Optional[EventValidator] = None):
        self.store = store
        self.validator = validator or EventValidator()

    def upsert_events(self, events: Iterable[CanonicalEvent]) -> UpsertStats:
        stats = UpsertStats()
        for event in events:
            result = self.validator.validate(event)
            if not result.is_valid:
                stats.invalid += 1
                stats.errors.append(f"{event.external_id}: {'; '.join(result.errors)}")
                logger.warning(f"Invalid event {event.external_id}: {result.errors}")
                continue

            existing = self.store.get_by_external_id(event.source_platform, event.external_id)
            if existing is None:
                self.store.insert(event.model_copy(update={"id": None, "created_at": None}))
                stats.inserted += 1
            elif _same_content(existing, event):
                stats.unchanged += 1
            else:
                self.store.update(existing.id, event)
                stats.updated += 1

        logger.info(
            f"Upserted events: {stats.inserted} inserted, {stats.updated} updated, "
            f"{stats.unchanged} unchanged, {stats.invalid} invalid"
        )
        return stats


def _same_content(stored: CanonicalEvent, incoming: CanonicalEvent) -> bool:
    exclude = _ROW_IDENTITY_FIELDS | {"raw_data"}
    return stored.model_dump(exclude=exclude) == incoming.model_dump(exclude=exclude)


# ============================================================================
# CLEANUP
# ============================================================================


@dataclass
class CleanupResult:
    """Outcome of a catalog cleanup pass."""

    events_examined: int
    duplicate_groups: int
    ids_deleted: List[str] = field(default_factory=list)
    dry_run: bool = False
    groups: List[DuplicateGroup] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events_examined": self.events_examined,
            "duplicate_groups": self.duplicate_groups,
            "ids_deleted": list(self.ids_deleted),
            "dry_run": self.dry_run,
            "groups": [g.to_dict() for g in self.groups],
        }


def cleanup_duplicates(
    store: EventStore,
    engine: Optional[DeduplicationEngine] = None,
    dry_run: bool = False,
    city: Optional[str] = None,
) -> CleanupResult:
    """
    Deduplicate the whole catalog and delete the losing records.

    Args:
        store: Catalog to clean
        engine: DeduplicationEngine; default thresholds when omitted
        dry_run: Report what would be deleted without deleting
        city: Limit the pass to one city

    Returns:
        CleanupResult with the ids deleted (or that would be deleted)
    """
    engine = engine or DeduplicationEngine()
    events = store.list_events(city=city)
    report = engine.run(events)

    if report.ids_to_delete and not dry_run:
        deleted = store.delete_many(report.ids_to_delete)
        if deleted != len(report.ids_to_delete):
            logger.warning(f"Expected to delete {len(report.ids_to_delete)} events, deleted {deleted}")

    logger.info(
        f"Cleanup{' (dry run)' if dry_run else ''}: examined {len(events)} events, "
        f"{len(report.groups)} duplicate groups, {len(report.ids_to_delete)} ids to delete"
    )
    return CleanupResult(
        events_examined=len(events),
        duplicate_groups=len(report.groups),
        ids_deleted=list(report.ids_to_delete),
        dry_run=dry_run,
        groups=report.groups,
    )


# ============================================================================
# EXPIRY
# ============================================================================

# Listings stay in the catalog for a day after they start
EXPIRY_GRACE = timedelta(hours=24)


@dataclass
class ExpiryResult:
    """Outcome of an expired-event purge."""

    events_examined: int
    cutoff: datetime
    ids_deleted: List[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events_examined": self.events_examined,
            "cutoff": self.cutoff.isoformat(),
            "ids_deleted": list(self.ids_deleted),
            "dry_run": self.dry_run,
        }


def cleanup_expired(
    store: EventStore,
    now: Optional[datetime] = None,
    grace: timedelta = EXPIRY_GRACE,
    dry_run: bool = False,
    city: Optional[str] = None,
    source: Optional[str] = "external",
) -> ExpiryResult:
    """
    Delete events that started more than ``grace`` before ``now``.

    Args:
        store: Catalog to purge
        now: Reference instant (defaults to the current time)
        grace: How long a listing is kept after its start
        dry_run: Report what would be deleted without deleting
        city: Limit the purge to one city
        source: Only purge this origin; None purges every origin

    Returns:
        ExpiryResult with the ids deleted (or that would be deleted)
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    cutoff = now - grace

    events = store.list_events(city=city, source=source)
    expired = [e.id for e in events if e.id and e.event_date < cutoff]

    if expired and not dry_run:
        store.delete_many(expired)

    logger.info(
        f"Expiry{' (dry run)' if dry_run else ''}: examined {len(events)} events, "
        f"{len(expired)} started before {cutoff.isoformat()}"
    )
    return ExpiryResult(
        events_examined=len(events), cutoff=cutoff, ids_deleted=expired, dry_run=dry_run
    )
