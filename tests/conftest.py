"""
Shared pytest fixtures for the event ingestion test suite.

Provides factory fixtures for CanonicalEvent objects and an isolated
IngestionRuntime whose HTTP client is a MagicMock routed by URL, plus
stub adapters for orchestrator and health tests.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from event_ingest.ingestion.factory import IngestionRuntime
from event_ingest.ingestion.normalization.canonicalizer import Canonicalizer
from event_ingest.ingestion.normalization.identity import generate_external_id
from event_ingest.monitoring.metrics import MetricsRegistry
from event_ingest.runtime.errors import NetworkFailure
from event_ingest.runtime.http import HttpClient
from event_ingest.runtime.rate_limiter import RateLimitConfig, RequestQueue
from event_ingest.runtime.robots import RobotsChecker
from event_ingest.schemas.event import CanonicalEvent, FetchRequest, FetchResult


@pytest.fixture
def create_event():
    """
    Return a function that creates CanonicalEvent objects with sensible defaults.

    All defaults can be overridden via keyword arguments. When no
    external_id is given one is derived from the other fields.

    Example:
        event = create_event(title="Summer Jazz Night", venue="City Club")
    """

    def _create_event(
        title: str = "Test Event",
        venue: Optional[str] = "Test Venue",
        event_date: Optional[datetime] = None,
        city: str = "Mumbai",
        source_platform: str = "allevents",
        **kwargs: Any,
    ) -> CanonicalEvent:
        if event_date is None:
            event_date = datetime(2025, 6, 15, 14, 30, tzinfo=timezone.utc)

        url = kwargs.pop("ticket_url", f"https://{source_platform}.example/{title.lower().replace(' ', '-')}")
        defaults: Dict[str, Any] = {
            "external_id": generate_external_id(source_platform, url, title, event_date, city),
            "title": title,
            "venue": venue,
            "city": city,
            "event_date": event_date,
            "ticket_url": url,
            "source_platform": source_platform,
        }
        defaults.update(kwargs)
        return CanonicalEvent(**defaults)

    return _create_event


@pytest.fixture
def sample_events(create_event):
    """
    Return a list of varied events with no duplicates among them.
    """
    return [
        create_event(
            title="Electronic Night",
            venue="Club Alpha",
            event_date=datetime(2025, 6, 15, 16, 0, tzinfo=timezone.utc),
        ),
        create_event(
            title="Jazz Evening",
            venue="Jazz Cafe",
            event_date=datetime(2025, 6, 16, 14, 0, tzinfo=timezone.utc),
        ),
        create_event(
            title="Rock Concert",
            venue="Stadium Arena",
            event_date=datetime(2025, 6, 17, 13, 0, tzinfo=timezone.utc),
        ),
        create_event(
            title="Comedy Show",
            venue="Comedy Club",
            event_date=datetime(2025, 6, 18, 15, 0, tzinfo=timezone.utc),
        ),
    ]


# =============================================================================
# RUNTIME
# =============================================================================


def route_http(http: MagicMock, routes: Dict[str, Any]) -> None:
    """
    Route a mocked HttpClient's get_text/get_json by exact URL.

    Route values: a str (text body), a dict/list (JSON body) or an
    exception instance to raise. Unknown URLs raise a 404 NetworkFailure.
    """

    def _lookup(url: str, **kwargs: Any) -> Any:
        if url not in routes:
            raise NetworkFailure(f"HTTP 404 from {url}", status_code=404)
        value = routes[url]
        if isinstance(value, Exception):
            raise value
        return value

    http.get_text.side_effect = _lookup
    http.get_json.side_effect = _lookup


@pytest.fixture
def http_routes() -> Dict[str, Any]:
    """Mutable URL -> response map used by the ``runtime`` fixture."""
    return {}


@pytest.fixture
def runtime(http_routes):
    """
    Isolated IngestionRuntime: mocked HTTP, zero-delay queue, real robots
    checker and canonicalizer.
    """
    http = MagicMock(spec=HttpClient)
    route_http(http, http_routes)
    queue = RequestQueue(RateLimitConfig(min_delay_s=0.0))
    rt = IngestionRuntime(
        http=http,
        queue=queue,
        robots=RobotsChecker(http),
        canonicalizer=Canonicalizer(),
        metrics=MetricsRegistry(),
    )
    yield rt
    queue.close()


# =============================================================================
# STUB ADAPTERS
# =============================================================================


class StubAdapter:
    """
    Adapter double for orchestrator and health tests.

    Returns ``events`` successfully, a failed FetchResult when ``error`` is
    set, raises ``exc``, or blocks on ``gate`` before answering.
    """

    def __init__(
        self,
        name: str,
        events: Optional[List[CanonicalEvent]] = None,
        error: Optional[str] = None,
        exc: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ):
        self.source_id = name
        self.events = list(events or [])
        self.error = error
        self.exc = exc
        self.gate = gate
        self.requests: List[FetchRequest] = []
        self.closed = False

    def fetch(self, request: FetchRequest) -> FetchResult:
        self.requests.append(request)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.exc is not None:
            raise self.exc
        if self.error is not None:
            return FetchResult.failure(self.source_id, self.error)
        return FetchResult(platform=self.source_id, success=True, events=list(self.events))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def stub_adapter():
    """Return a StubAdapter factory; any gates are released on teardown."""
    gates: List[threading.Event] = []

    def _make(name: str, **kwargs: Any) -> StubAdapter:
        adapter = StubAdapter(name, **kwargs)
        if adapter.gate is not None:
            gates.append(adapter.gate)
        return adapter

    yield _make
    for gate in gates:
        gate.set()
