"""
Base Source Adapter.

Abstract base class defining the fetch contract for all event sources.
``fetch`` is a template method: structured API first when a credential is
configured, then robots-checked scraping through the per-source request
queue, then shared canonicalization. Expected failures never escape; they
become ``FetchResult(success=False)``.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from bs4 import BeautifulSoup

from event_ingest.ingestion.normalization.taxonomy import city_slug, display_city, map_category
from event_ingest.ingestion.parsers.selectors import (
    SelectorChain,
    first_attr,
    first_text,
    image_src,
    link_href,
    make_soup,
)
from event_ingest.monitoring import metrics as m
from event_ingest.monitoring.logging import get_adapter_logger, with_context
from event_ingest.runtime.errors import (
    ConfigurationError,
    IngestionError,
    NetworkFailure,
    ParseFailure,
    PolicyDenied,
    ValidationFailure,
)
from event_ingest.runtime.rate_limiter import RateLimitConfig
from event_ingest.schemas.event import (
    DEFAULT_CATEGORY,
    CanonicalEvent,
    FetchRequest,
    FetchResult,
    FetchVia,
    RawEventRecord,
)

if TYPE_CHECKING:
    from event_ingest.ingestion.factory import IngestionRuntime

ROBOTS_DENIED_MESSAGE = "Scraping disallowed by robots.txt"

HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass
class AdapterConfig:
    """
    Configuration for one source adapter.

    Built by the AdapterFactory from ``ingestion.yaml`` plus settings.
    """

    source_id: str
    base_url: str
    api_base_url: Optional[str] = None
    api_key: Optional[str] = None
    enabled: bool = True
    request_timeout: float = 10.0
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    city_slugs: Dict[str, str] = field(default_factory=dict)
    custom_config: Dict[str, Any] = field(default_factory=dict)

    @property
    def api_enabled(self) -> bool:
        return bool(self.api_key and self.api_base_url)


class BaseSourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    Subclasses must implement:
        - listing_urls(): candidate listing pages for a city
        - parse_card(): one listing card -> RawEventRecord

    and may override:
        - card_chain: ordered card selectors
        - find_cards(): card discovery (e.g. JSON-LD before CSS)
        - fetch_api() / api_record(): the structured API path
    """

    card_chain: SelectorChain = SelectorChain.of(".event-card")

    def __init__(self, config: AdapterConfig, runtime: "IngestionRuntime"):
        """
        Initialize the adapter.

        Args:
            config: AdapterConfig with source-specific settings
            runtime: Shared HTTP client, request queue, robots checker,
                metrics and canonicalizer
        """
        self.config = config
        self.runtime = runtime
        self.logger = with_context(get_adapter_logger(config.source_id), source_id=config.source_id)
        self._validate_config()
        runtime.queue.configure(config.source_id, config.rate_limit)

    @property
    def source_id(self) -> str:
        return self.config.source_id

    # =========================================================================
    # FETCH CONTRACT
    # =========================================================================

    def fetch(self, request: FetchRequest) -> FetchResult:
        """
        Fetch canonical events for a request.

        Args:
            request: City, optional category/date window and limit

        Returns:
            FetchResult; ``success=False`` with zero events on total failure
        """
        started = time.perf_counter()
        fetched_at = datetime.now(timezone.utc)
        labels = {"platform": self.source_id}
        self.runtime.metrics.inc(m.FETCH_ATTEMPTS, labels=labels)

        try:
            events, via, skipped = self._fetch_events(request, fetched_at)
        except PolicyDenied as e:
            self.runtime.metrics.inc(m.ROBOTS_VIOLATIONS, labels=labels)
            result = FetchResult.failure(self.source_id, str(e), fetched_at=fetched_at)
        except IngestionError as e:
            result = FetchResult.failure(self.source_id, str(e), fetched_at=fetched_at)
        else:
            result = FetchResult(
                platform=self.source_id,
                success=True,
                events=events,
                fetched_at=fetched_at,
                via=via,
                skipped_records=skipped,
            )

        result.duration_ms = round((time.perf_counter() - started) * 1000.0, 1)
        self.runtime.metrics.observe(m.RESPONSE_TIME_MS, result.duration_ms, labels=labels)
        self.runtime.metrics.inc(m.SKIPPED_RECORDS, result.skipped_records, labels=labels)

        if result.success:
            self.runtime.metrics.inc(m.FETCH_SUCCESSES, labels=labels)
            self.runtime.metrics.inc(m.EVENTS_FETCHED, result.event_count, labels=labels)
            self.logger.info(
                f"Fetched {result.event_count} events for {request.city} "
                f"via {result.via.value if result.via else '-'} in {result.duration_ms}ms"
            )
        else:
            self.runtime.metrics.inc(m.FETCH_FAILURES, labels=labels)
            self.logger.warning(f"Fetch failed for {request.city}: {result.error}")
        return result

    def _fetch_events(
        self, request: FetchRequest, fetched_at: datetime
    ) -> Tuple[List[CanonicalEvent], FetchVia, int]:
        if self.config.api_enabled:
            try:
                items = self.fetch_api(request)
                events, skipped = self._build_events(
                    items, lambda item: self.api_record(item, request), request, fetched_at
                )
                return events, FetchVia.API, skipped
            except IngestionError as e:
                self.logger.warning(f"API path failed ({e}); falling back to scraping")

        events, skipped = self._scrape(request, fetched_at)
        return events, FetchVia.SCRAPE, skipped

    # =========================================================================
    # API PATH
    # =========================================================================

    def fetch_api(self, request: FetchRequest) -> List[Dict[str, Any]]:
        """
        Call the structured API and return its raw event items.

        Raises:
            NetworkFailure / ParseFailure: triggers fallback to scraping
        """
        raise ParseFailure(f"{self.source_id} has no API integration")

    def api_record(self, item: Dict[str, Any], request: FetchRequest) -> Optional[RawEventRecord]:
        raise ParseFailure(f"{self.source_id} has no API integration")

    # =========================================================================
    # SCRAPING PATH
    # =========================================================================

    @abstractmethod
    def listing_urls(self, request: FetchRequest) -> List[str]:
        """Candidate listing pages for the request, in preference order."""

    @abstractmethod
    def parse_card(self, card: Any, page_url: str, request: FetchRequest) -> Optional[RawEventRecord]:
        """
        Extract one listing card.

        Returns:
            RawEventRecord, or None when the element is not an event card

        Raises:
            ParseFailure: the card is malformed (skipped and counted)
        """

    def find_cards(self, soup: BeautifulSoup, page_url: str) -> Optional[List[Any]]:
        """Event cards on a listing page; None when no selector matched."""
        hit = self.card_chain.first_match(soup)
        return hit[1] if hit else None

    def _scrape(self, request: FetchRequest, fetched_at: datetime) -> Tuple[List[CanonicalEvent], int]:
        urls = self.listing_urls(request)
        if not urls:
            raise ParseFailure(f"No listing URL for city '{request.city}'")

        failures: List[IngestionError] = []
        for url in urls:
            decision = self.runtime.robots.check_access(url)
            if not decision.allowed:
                self.logger.warning(f"robots.txt disallows {url}: {decision.reason}")
                raise PolicyDenied(ROBOTS_DENIED_MESSAGE)
            if decision.crawl_delay:
                self.runtime.queue.ensure_min_delay(self.source_id, decision.crawl_delay)

            try:
                html = self.runtime.queue.run(
                    self.source_id,
                    lambda u=url: self.runtime.http.get_text(
                        u, headers=HTML_HEADERS, timeout_s=self.config.request_timeout
                    ),
                )
            except NetworkFailure as e:
                self.logger.info(f"Listing page failed: {e}")
                failures.append(e)
                continue

            cards = self.find_cards(make_soup(html), url)
            if not cards:
                self.logger.info(f"No event cards matched at {url}")
                failures.append(ParseFailure(f"No events found at {url}"))
                continue

            self.logger.debug(f"{len(cards)} candidate cards at {url}")
            return self._build_events(
                cards, lambda card, u=url: self.parse_card(card, u, request), request, fetched_at
            )

        # Prefer reporting a network problem over "nothing matched"
        network = [f for f in failures if isinstance(f, NetworkFailure)]
        raise (network[-1] if network else failures[-1])

    # =========================================================================
    # SHARED
    # =========================================================================

    def _build_events(
        self,
        items: Iterable[Any],
        build: Callable[[Any], Optional[RawEventRecord]],
        request: FetchRequest,
        fetched_at: datetime,
    ) -> Tuple[List[CanonicalEvent], int]:
        """Turn raw items into filtered canonical events, skipping bad ones."""
        canonicalizer = self.runtime.canonicalizer
        events: List[CanonicalEvent] = []
        seen: Set[str] = set()
        skipped = 0

        for item in items:
            if len(events) >= request.limit:
                break
            try:
                record = build(item)
                if record is None:
                    continue
                event = canonicalizer.canonicalize(record, fetched_at)
            except (ParseFailure, ValidationFailure) as e:
                skipped += 1
                self.logger.debug(f"Skipping record: {e}")
                continue
            except Exception as e:
                skipped += 1
                self.logger.warning(f"Skipping malformed record: {e}", exc_info=True)
                continue

            if event.external_id in seen:
                continue
            seen.add(event.external_id)

            if not self._matches_request(event, request):
                continue
            events.append(event)

        return events, skipped

    @staticmethod
    def _matches_request(event: CanonicalEvent, request: FetchRequest) -> bool:
        if request.category:
            wanted = map_category(request.category)
            if wanted != DEFAULT_CATEGORY and event.category != wanted:
                return False
        return request.in_window(event.event_date)

    def city_slug(self, request: FetchRequest) -> str:
        """Source-specific slug for the requested city."""
        key = request.city.strip().lower()
        return self.config.city_slugs.get(key) or city_slug(request.city)

    def city_name(self, request: FetchRequest) -> str:
        return display_city(request.city)

    def _validate_config(self) -> None:
        """
        Validate adapter configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.config.base_url:
            raise ConfigurationError(f"Adapter '{self.source_id}' requires base_url")
        if not self.config.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Adapter '{self.source_id}' base_url must be http(s)")

    def close(self) -> None:
        """Release resources. The shared runtime is owned by the factory."""

    def __enter__(self) -> "BaseSourceAdapter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class CardListingAdapter(BaseSourceAdapter):
    """
    Scrape-only adapter driven by data: listing URL patterns plus field
    selectors. Subclasses set the class attributes below.
    """

    # Formatted with base_url and city slug, tried in order
    url_patterns: Tuple[str, ...] = ("{base_url}/{slug}",)
    title_selectors: Tuple[str, ...] = (".event-title", ".title", "h3", "h4")
    date_selectors: Tuple[str, ...] = (".event-date", ".date", "time")
    venue_selectors: Tuple[str, ...] = (".event-venue", ".venue", ".location")
    price_selectors: Tuple[str, ...] = (".price", ".ticket-price")
    category_selectors: Tuple[str, ...] = (".category", "[class*='category']")

    def listing_urls(self, request: FetchRequest) -> List[str]:
        base_url = self.config.base_url.rstrip("/")
        slug = self.city_slug(request)
        return [p.format(base_url=base_url, slug=slug) for p in self.url_patterns]

    def parse_card(self, card: Any, page_url: str, request: FetchRequest) -> Optional[RawEventRecord]:
        url = link_href(card, page_url)
        title = first_text(card, self.title_selectors)
        if not title and not url:
            return None
        if not title or not url:
            raise ParseFailure(f"Card on {page_url} is missing title or link")

        date_text = first_text(card, self.date_selectors) or first_attr(card, ("time",), ("datetime",))
        return RawEventRecord(
            source_platform=self.source_id,
            title=title,
            city=self.city_name(request),
            ticket_url=url,
            source_event_id=card.get("data-event-id") or card.get("data-event"),
            date_text=date_text,
            venue=first_text(card, self.venue_selectors),
            image_url=image_src(card),
            price_text=first_text(card, self.price_selectors),
            category_text=first_text(card, self.category_selectors),
            raw={"scraped_from": page_url, "city_slug": self.city_slug(request)},
        )
