"""
Module for event deduplication strategies.

Provides multiple deduplication strategies using the Strategy pattern:
- ExactMatchDeduplicator: Match by title + venue + date (exact)
- FuzzyMatchDeduplicator: Fuzzy title match on the same day via difflib
- DeduplicationEngine: Cross-source grouping with completeness-based
  selection, used for ingestion batches and catalog cleanup
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from difflib import SequenceMatcher
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from event_ingest.ingestion.normalization.dates import DEFAULT_TIMEZONE
from event_ingest.ingestion.normalization.identity import normalize_text
from event_ingest.ingestion.normalization.taxonomy import display_city
from event_ingest.runtime.errors import ConfigurationError
from event_ingest.schemas.event import CanonicalEvent, DuplicateGroup

logger = logging.getLogger(__name__)

_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)

DEFAULT_SOURCE_TRUST = {
    "database": 1.0,
    "insider": 0.9,
    "allevents": 0.8,
    "townscript": 0.7,
    "explara": 0.6,
}


class DeduplicationStrategy(str, Enum):
    """Available deduplication strategies."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    COMPLETENESS = "completeness"


class EventDeduplicator(ABC):
    """Abstract base for deduplication strategies."""

    @abstractmethod
    def deduplicate(self, events: List[CanonicalEvent]) -> List[CanonicalEvent]:
        """Deduplicate events and return unique set."""
        pass


# ============================================================================
# SIMPLE STRATEGIES
# ============================================================================


def normalize_title(title: Optional[str]) -> str:
    """Case and punctuation-insensitive form of a title used for comparison."""
    return normalize_text(_PUNCT_RE.sub(" ", title or ""))


def text_similarity(a: str, b: str) -> float:
    """
    difflib ratio of two strings, independent of argument order.

    SequenceMatcher is not strictly symmetric, so the pair is ordered first.
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    first, second = sorted((a, b))
    return SequenceMatcher(None, first, second).ratio()


class ExactMatchDeduplicator(EventDeduplicator):
    """Match by title + venue + date (exact)."""

    def deduplicate(self, events: List[CanonicalEvent]) -> List[CanonicalEvent]:
        """
        Deduplicate events using exact matching on title, venue, and date.

        Returns:
            List of unique events (first occurrence kept)
        """
        seen = set()
        unique_events = []

        for event in events:
            key = (normalize_text(event.title), normalize_text(event.venue), event.event_date)

            if key not in seen:
                seen.add(key)
                unique_events.append(event)

        return unique_events


class FuzzyMatchDeduplicator(EventDeduplicator):
    """
    Fuzzy title match for typos and slight variations in event names.

    Two events are considered duplicates when they share the same local
    calendar day and their normalized titles have a similarity ratio >= threshold.
    """

    def __init__(self, threshold: float = 0.85, timezone_name: str = DEFAULT_TIMEZONE):
        """
        Initialize with similarity threshold.

        Args:
            threshold: Similarity threshold (0.0-1.0) for title matching
            timezone_name: Zone whose calendar day is compared
        """
        self.threshold = threshold
        self.zone: tzinfo = ZoneInfo(timezone_name)

    def deduplicate(self, events: List[CanonicalEvent]) -> List[CanonicalEvent]:
        unique_events: List[CanonicalEvent] = []

        for event in events:
            event_day = event.event_date.astimezone(self.zone).date()
            title = normalize_title(event.title)
            is_duplicate = any(
                kept.event_date.astimezone(self.zone).date() == event_day
                and text_similarity(title, normalize_title(kept.title)) >= self.threshold
                for kept in unique_events
            )
            if not is_duplicate:
                unique_events.append(event)

        return unique_events


# ============================================================================
# SIMILARITY & COMPLETENESS
# ============================================================================


class SimilarityMatcher:
    """
    Pairwise judgment of whether two events describe the same real event.

    Two events match when they carry the same (source_platform, external_id),
    or when all of these hold:
    - normalized titles have a difflib ratio >= title_threshold
    - the dates fall on the same local calendar day, or within
      date_tolerance_hours of each other
    - the cities agree
    - the venues agree: either is a placeholder, one contains the other,
      or their ratio >= venue_threshold
    """

    def __init__(
        self,
        title_threshold: float = 0.85,
        venue_threshold: float = 0.6,
        date_tolerance_hours: float = 2.0,
        timezone_name: str = DEFAULT_TIMEZONE,
    ):
        self.title_threshold = title_threshold
        self.venue_threshold = venue_threshold
        self.date_tolerance = timedelta(hours=date_tolerance_hours)
        self.zone: tzinfo = ZoneInfo(timezone_name)

    def city_key(self, event: CanonicalEvent) -> str:
        return normalize_text(display_city(event.city))

    def local_day(self, event: CanonicalEvent) -> date:
        """Calendar day of the event in the configured local timezone."""
        return event.event_date.astimezone(self.zone).date()

    def same_identity(self, a: CanonicalEvent, b: CanonicalEvent) -> bool:
        return a.source_platform == b.source_platform and a.external_id == b.external_id

    def dates_agree(self, a: CanonicalEvent, b: CanonicalEvent) -> bool:
        if self.local_day(a) == self.local_day(b):
            return True
        return abs(a.event_date - b.event_date) <= self.date_tolerance

    def venues_agree(self, a: CanonicalEvent, b: CanonicalEvent) -> bool:
        if not a.has_specific_venue or not b.has_specific_venue:
            return True
        venue_a = normalize_title(a.venue)
        venue_b = normalize_title(b.venue)
        if venue_a in venue_b or venue_b in venue_a:
            return True
        return text_similarity(venue_a, venue_b) >= self.venue_threshold

    def title_similarity(self, a: CanonicalEvent, b: CanonicalEvent) -> float:
        return text_similarity(normalize_title(a.title), normalize_title(b.title))

    def matches(self, a: CanonicalEvent, b: CanonicalEvent) -> bool:
        if self.same_identity(a, b):
            return True
        return (
            self.city_key(a) == self.city_key(b)
            and self.dates_agree(a, b)
            and self.title_similarity(a, b) >= self.title_threshold
            and self.venues_agree(a, b)
        )


class CompletenessScorer:
    """
    Scores how complete an event record is (0-100).

    Points:
        description (present and not just the title)   25
        image                                          25
        specific venue (not a placeholder)             20
        stable external id (not from a synthetic date) 15
        source trust                                   trust * max_trust_points
    """

    DESCRIPTION_POINTS = 25
    IMAGE_POINTS = 25
    VENUE_POINTS = 20
    STABLE_ID_POINTS = 15

    def __init__(
        self,
        source_trust: Optional[Dict[str, float]] = None,
        default_trust: float = 0.5,
        max_trust_points: float = 15.0,
    ):
        self.source_trust = dict(DEFAULT_SOURCE_TRUST if source_trust is None else source_trust)
        self.default_trust = default_trust
        self.max_trust_points = max_trust_points

    def trust(self, source_platform: str) -> float:
        value = self.source_trust.get(source_platform, self.default_trust)
        return min(max(float(value), 0.0), 1.0)

    def score(self, event: CanonicalEvent) -> float:
        score = 0.0

        description = normalize_text(event.description)
        if description and description != normalize_text(event.title):
            score += self.DESCRIPTION_POINTS

        if event.image_url:
            score += self.IMAGE_POINTS

        if event.has_specific_venue:
            score += self.VENUE_POINTS

        if event.external_id and not event.date_is_synthetic:
            score += self.STABLE_ID_POINTS

        score += self.trust(event.source_platform) * self.max_trust_points
        return round(min(score, 100.0), 2)


# ============================================================================
# ENGINE
# ============================================================================


class _DisjointSet:
    """Union-find over list indices."""

    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        # Smaller index stays root so groups are ordered by first appearance
        if root_b < root_a:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a


@dataclass
class DeduplicationReport:
    """Outcome of one deduplication run."""

    retained: List[CanonicalEvent]
    ids_to_delete: List[str] = field(default_factory=list)
    groups: List[DuplicateGroup] = field(default_factory=list)
    events_examined: int = 0

    @property
    def duplicates_removed(self) -> int:
        return self.events_examined - len(self.retained)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "events_examined": self.events_examined,
            "retained": len(self.retained),
            "duplicate_groups": len(self.groups),
            "ids_to_delete": list(self.ids_to_delete),
            "groups": [g.to_dict() for g in self.groups],
        }


class DeduplicationEngine(EventDeduplicator):
    """
    Groups duplicate events across sources and keeps the most complete one.

    Works on one ingestion cycle's merged output or on a whole persisted
    catalog. Pure and synchronous: safe to run on any consistent snapshot.

    Example:
        >>> engine = DeduplicationEngine()
        >>> report = engine.run(events)
        >>> store.delete_many(report.ids_to_delete)
    """

    def __init__(
        self,
        matcher: Optional[SimilarityMatcher] = None,
        scorer: Optional[CompletenessScorer] = None,
    ):
        self.matcher = matcher or SimilarityMatcher()
        self.scorer = scorer or CompletenessScorer()

    @classmethod
    def from_config(
        cls, section: Optional[Dict[str, Any]] = None, timezone_name: str = DEFAULT_TIMEZONE
    ) -> "DeduplicationEngine":
        """
        Build from the ``deduplication`` block of ingestion.yaml.

        Args:
            section: Dict with thresholds and the source trust table
            timezone_name: Zone used for calendar-day comparison
        """
        section = section or {}
        matcher = SimilarityMatcher(
            title_threshold=float(section.get("title_threshold", 0.85)),
            venue_threshold=float(section.get("venue_threshold", 0.6)),
            date_tolerance_hours=float(section.get("date_tolerance_hours", 2)),
            timezone_name=timezone_name,
        )
        scorer = CompletenessScorer(
            source_trust=section.get("source_trust"),
            default_trust=float(section.get("default_trust", 0.5)),
            max_trust_points=float(section.get("max_trust_points", 15)),
        )
        return cls(matcher=matcher, scorer=scorer)

    def deduplicate(self, events: List[CanonicalEvent]) -> List[CanonicalEvent]:
        return self.run(events).retained

    def run(self, events: Iterable[CanonicalEvent]) -> DeduplicationReport:
        """
        Group, score and select.

        Returns:
            DeduplicationReport with retained events in input order, the
            record ids of rejected duplicates, and one DuplicateGroup per
            group of size >= 2
        """
        events = list(events)
        clusters = self._cluster(events)

        rejected: set = set()
        groups: List[DuplicateGroup] = []
        ids_to_delete: List[str] = []

        for indices in clusters:
            if len(indices) < 2:
                continue
            scores = {i: self.scorer.score(events[i]) for i in indices}
            best = min(indices, key=lambda i: self._rank(events[i], scores[i], i))
            members = [events[i] for i in indices]
            groups.append(
                DuplicateGroup(
                    representative=events[best],
                    members=members,
                    scores=[scores[i] for i in indices],
                )
            )
            keep_id = events[best].record_id
            for i in indices:
                if i == best:
                    continue
                rejected.add(i)
                # A loser sharing the kept record_id is the same stored row
                record_id = events[i].record_id
                if record_id != keep_id and record_id not in ids_to_delete:
                    ids_to_delete.append(record_id)

        retained = [e for i, e in enumerate(events) if i not in rejected]
        if groups:
            logger.info(
                f"Deduplication: {len(events)} events, {len(groups)} duplicate groups, "
                f"{len(rejected)} marked for deletion"
            )
        return DeduplicationReport(
            retained=retained,
            ids_to_delete=ids_to_delete,
            groups=groups,
            events_examined=len(events),
        )

    @staticmethod
    def _rank(event: CanonicalEvent, score: float, index: int) -> Tuple[Any, ...]:
        # Highest score, then earliest created_at (missing sorts last), then input order
        created = event.created_at.timestamp() if event.created_at else float("inf")
        return (-score, created, index)

    def _cluster(self, events: List[CanonicalEvent]) -> List[List[int]]:
        """Transitive-closed groups of matching events, as index lists."""
        sets = _DisjointSet(len(events))

        by_identity: Dict[Tuple[str, str], int] = {}
        for i, event in enumerate(events):
            key = (event.source_platform, event.external_id)
            if key in by_identity:
                sets.union(by_identity[key], i)
            else:
                by_identity[key] = i

        # Blocking by (city, local day); neighbouring days cover the skew tolerance
        blocks: Dict[Tuple[str, date], List[int]] = {}
        for i, event in enumerate(events):
            blocks.setdefault((self.matcher.city_key(event), self.matcher.local_day(event)), []).append(i)

        for (city, day), members in blocks.items():
            for offset in (0, 1):
                other = members if offset == 0 else blocks.get((city, day + timedelta(days=1)), [])
                for pos, i in enumerate(members):
                    candidates = members[pos + 1 :] if offset == 0 else other
                    for j in candidates:
                        if sets.find(i) == sets.find(j):
                            continue
                        if self.matcher.matches(events[i], events[j]):
                            sets.union(i, j)

        clusters: Dict[int, List[int]] = {}
        for i in range(len(events)):
            clusters.setdefault(sets.find(i), []).append(i)
        return list(clusters.values())


def get_deduplicator(
    strategy: Optional[DeduplicationStrategy] = None,
    config: Optional[Dict[str, Any]] = None,
    timezone_name: str = DEFAULT_TIMEZONE,
) -> EventDeduplicator:
    """
    Create a deduplicator instance for the given strategy.

    Args:
        strategy: DeduplicationStrategy enum value; read from
            ``config["strategy"]`` when omitted (default: completeness)
        config: Optional ``deduplication`` config block
        timezone_name: Zone used for calendar-day comparison

    Returns:
        Configured EventDeduplicator instance

    Raises:
        ConfigurationError: If the configured strategy is unknown
    """
    config = config or {}
    if strategy is None:
        name = str(config.get("strategy", DeduplicationStrategy.COMPLETENESS.value)).lower()
        try:
            strategy = DeduplicationStrategy(name)
        except ValueError:
            valid = [s.value for s in DeduplicationStrategy]
            raise ConfigurationError(f"Unknown deduplication strategy '{name}'. Valid: {valid}")

    if strategy == DeduplicationStrategy.EXACT:
        return ExactMatchDeduplicator()
    elif strategy == DeduplicationStrategy.FUZZY:
        return FuzzyMatchDeduplicator(
            threshold=float(config.get("title_threshold", 0.85)), timezone_name=timezone_name
        )
    else:
        return DeduplicationEngine.from_config(config, timezone_name=timezone_name)
