# event_ingest/schemas/event.py
"""
Canonical Event Schema for the event ingestion core.

Every source adapter converts its platform-specific records into
CanonicalEvent before anything else sees them. The same model is used for
rows read back from the event catalog, so ingestion output and persisted
events can be deduplicated together.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

VENUE_PLACEHOLDER = "Venue TBD"
PRICE_PLACEHOLDER = "Check website"
PRICE_FREE = "Free"
DEFAULT_CATEGORY = "event"


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================================
# REQUEST
# ============================================================================


class FetchRequest(BaseModel):
    """
    Immutable fetch descriptor passed to every adapter call.

    Example:
        >>> FetchRequest(city="mumbai", category="music", limit=10)
    """

    model_config = ConfigDict(frozen=True)

    city: str = Field(min_length=1, description="City name or slug, e.g. 'mumbai'")
    category: Optional[str] = Field(default=None, description="Optional category filter")
    limit: int = Field(default=20, ge=1, le=500)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("city")
    @classmethod
    def strip_city(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("city must not be blank")
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_bounds(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else None

    @model_validator(mode="after")
    def validate_window(self) -> "FetchRequest":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def in_window(self, when: datetime) -> bool:
        """Check whether an instant falls inside the requested date window."""
        if self.start_date and when < self.start_date:
            return False
        if self.end_date and when > self.end_date:
            return False
        return True


# ============================================================================
# ADAPTER-INTERNAL RECORD
# ============================================================================


@dataclass
class RawEventRecord:
    """
    Fields extracted from one listing, before canonicalization.

    Values are strings exactly as the source presented them.
    """

    source_platform: str
    title: str
    city: str
    ticket_url: Optional[str] = None
    source_event_id: Optional[str] = None
    date_text: Optional[str] = None
    venue: Optional[str] = None
    location_address: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    price_text: Optional[str] = None
    category_text: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# CANONICAL EVENT
# ============================================================================


class CanonicalEvent(BaseModel):
    """
    The unit of truth after normalization.

    ``external_id`` is derived from stable fields only (see
    ``ingestion.normalization.identity``), so re-fetching the same listing
    yields the same identity. ``raw_data`` is diagnostic and ignored by
    equality.
    """

    model_config = ConfigDict(validate_assignment=True)

    external_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: str = DEFAULT_CATEGORY
    venue: str = VENUE_PLACEHOLDER
    location_address: Optional[str] = None
    city: str = Field(min_length=1)
    event_date: datetime
    image_url: Optional[str] = None
    ticket_url: Optional[str] = None
    price: str = PRICE_PLACEHOLDER
    source_platform: str = Field(min_length=1)
    raw_data: Dict[str, Any] = Field(default_factory=dict)

    # Catalog row fields
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    source: str = Field(default="external", description="'external' or an app-native origin")
    date_is_synthetic: bool = False

    @field_validator("event_date", "created_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else None

    @field_validator("venue", mode="before")
    @classmethod
    def default_venue(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return VENUE_PLACEHOLDER
        return v

    @property
    def has_specific_venue(self) -> bool:
        return bool(self.venue) and self.venue.strip().lower() not in _VENUE_PLACEHOLDERS

    @property
    def record_id(self) -> str:
        """Identifier used when listing this event for deletion."""
        return self.id or self.external_id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CanonicalEvent):
            return NotImplemented
        return self.model_dump(exclude={"raw_data"}) == other.model_dump(exclude={"raw_data"})

    # ------------------------------------------------------------------------
    # Catalog row mapping
    # ------------------------------------------------------------------------

    def to_row(self) -> Dict[str, Any]:
        """Map to the persisted record shape used by event catalogs."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "venue": self.venue,
            "location_address": self.location_address,
            "location_city": self.city,
            "event_date": self.event_date.isoformat(),
            "image_url": self.image_url,
            "external_booking_url": self.ticket_url,
            "source": self.source,
            "source_platform": self.source_platform,
            "external_id": self.external_id,
            "ticket_info": self.price,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "date_is_synthetic": self.date_is_synthetic,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CanonicalEvent":
        """Build from a persisted record (inverse of ``to_row``)."""
        return cls(
            id=row.get("id"),
            external_id=row.get("external_id") or str(row.get("id") or ""),
            title=row["title"],
            description=row.get("description"),
            category=row.get("category") or DEFAULT_CATEGORY,
            venue=row.get("venue"),
            location_address=row.get("location_address"),
            city=row.get("location_city") or row.get("city"),
            event_date=row["event_date"],
            image_url=row.get("image_url"),
            ticket_url=row.get("external_booking_url") or row.get("ticket_url"),
            price=row.get("ticket_info") or row.get("price") or PRICE_PLACEHOLDER,
            source=row.get("source") or "external",
            source_platform=row.get("source_platform") or row.get("source") or "database",
            created_at=row.get("created_at"),
            date_is_synthetic=bool(row.get("date_is_synthetic", False)),
        )


_VENUE_PLACEHOLDERS = {"", "venue tbd", "tbd", "tba", "to be announced", "online"}


# ============================================================================
# RESULT ENVELOPES
# ============================================================================


class FetchVia(str, Enum):
    """Which path produced the events of a fetch."""

    API = "api"
    SCRAPE = "scrape"


@dataclass
class FetchResult:
    """
    Result of one adapter fetch.

    Always returned, never raised: failure is ``success=False`` with an
    error message and no events.
    """

    platform: str
    success: bool
    events: List[CanonicalEvent] = field(default_factory=list)
    error: Optional[str] = None
    fetched_at: datetime = field(default_factory=_utc_now)
    via: Optional[FetchVia] = None
    duration_ms: float = 0.0
    skipped_records: int = 0

    @classmethod
    def failure(cls, platform: str, error: str, **kwargs: Any) -> "FetchResult":
        return cls(platform=platform, success=False, events=[], error=error, **kwargs)

    @property
    def event_count(self) -> int:
        return len(self.events)


@dataclass
class DuplicateGroup:
    """Two or more events judged to describe the same real-world event."""

    representative: CanonicalEvent
    members: List[CanonicalEvent]
    # Completeness score per member, aligned with ``members``
    scores: List[float] = field(default_factory=list)

    @property
    def rejected(self) -> List[CanonicalEvent]:
        return [e for e in self.members if e is not self.representative]

    @property
    def size(self) -> int:
        return len(self.members)

    def score_of(self, event: CanonicalEvent) -> Optional[float]:
        for member, score in zip(self.members, self.scores):
            if member is event:
                return score
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "representative": self.representative.record_id,
            "title": self.representative.title,
            "members": [e.record_id for e in self.members],
            "scores": list(self.scores),
        }


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class PlatformHealth(BaseModel):
    """Health of one platform, created fresh on every check."""

    platform: str
    status: HealthStatus
    event_count: int = 0
    response_time_ms: float = 0.0
    error: Optional[str] = None
    checked_at: datetime = Field(default_factory=_utc_now)
