"""
Unit tests for the canonical event schema and result envelopes.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from event_ingest.schemas.event import (
    CanonicalEvent,
    DuplicateGroup,
    FetchRequest,
    FetchResult,
    HealthStatus,
    PlatformHealth,
)


class TestFetchRequest:
    def test_defaults(self):
        """City is trimmed; limit defaults to 20 with no category."""
        request = FetchRequest(city=" Mumbai ")
        assert request.city == "Mumbai"
        assert request.limit == 20
        assert request.category is None

    def test_is_immutable(self):
        """Requests are frozen once built."""
        request = FetchRequest(city="Mumbai")
        with pytest.raises(ValidationError):
            request.limit = 5

    @pytest.mark.parametrize("city", ["", "   "])
    def test_city_required(self, city):
        """Empty or blank cities are rejected."""
        with pytest.raises(ValidationError):
            FetchRequest(city=city)

    def test_limit_must_be_positive(self):
        """A zero limit is rejected."""
        with pytest.raises(ValidationError):
            FetchRequest(city="Mumbai", limit=0)

    def test_window_order_enforced(self):
        """end_date before start_date is rejected."""
        start = datetime(2025, 6, 10, tzinfo=timezone.utc)
        with pytest.raises(ValidationError):
            FetchRequest(city="Mumbai", start_date=start, end_date=start - timedelta(days=1))

    def test_in_window(self):
        """in_window honours both inclusive bounds."""
        start = datetime(2025, 6, 10, tzinfo=timezone.utc)
        request = FetchRequest(city="Mumbai", start_date=start, end_date=start + timedelta(days=7))
        assert request.in_window(start + timedelta(days=1))
        assert not request.in_window(start - timedelta(minutes=1))
        assert not request.in_window(start + timedelta(days=8))

    def test_naive_bounds_are_treated_as_utc(self):
        """Naive window bounds are read as UTC."""
        request = FetchRequest(city="Mumbai", start_date=datetime(2025, 6, 10))
        assert request.start_date.tzinfo == timezone.utc


class TestCanonicalEvent:
    def test_blank_venue_becomes_placeholder(self, create_event):
        """A blank venue is stored as the placeholder."""
        event = create_event(venue="  ")
        assert event.venue == "Venue TBD"
        assert event.has_specific_venue is False

    def test_specific_venue(self, create_event):
        """Placeholder venues do not count as specific."""
        assert create_event(venue="City Club").has_specific_venue
        assert not create_event(venue="TBA").has_specific_venue

    def test_event_date_normalized_to_utc(self, create_event):
        """Offset-aware dates are converted to UTC."""
        ist = timezone(timedelta(hours=5, minutes=30))
        event = create_event(event_date=datetime(2025, 6, 15, 20, 0, tzinfo=ist))
        assert event.event_date == datetime(2025, 6, 15, 14, 30, tzinfo=timezone.utc)
        assert event.event_date.utcoffset() == timedelta(0)

    def test_equality_ignores_raw_data(self, create_event):
        """Events differing only in raw_data compare equal."""
        a = create_event(raw_data={"scraped_from": "a"})
        b = a.model_copy(update={"raw_data": {"scraped_from": "b"}})
        assert a == b

    def test_record_id_prefers_row_id(self, create_event):
        """record_id is the row id when set, else the external id."""
        event = create_event()
        assert event.record_id == event.external_id
        assert create_event(id="row-1").record_id == "row-1"

    def test_row_round_trip_keeps_catalog_fields(self, create_event):
        """to_row and from_row preserve the catalog columns."""
        event = create_event(
            id="row-1",
            description="Live jazz",
            price="Free",
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        row = event.to_row()

        assert row["location_city"] == "Mumbai"
        assert row["external_booking_url"] == event.ticket_url
        assert row["ticket_info"] == "Free"
        assert CanonicalEvent.from_row(row) == event

    def test_from_row_for_app_native_event(self):
        """App-native rows without an external id still load."""
        event = CanonicalEvent.from_row(
            {
                "id": "42",
                "title": "Open Mic",
                "location_city": "Pune",
                "event_date": "2025-06-20T14:00:00+00:00",
                "source": "artist",
            }
        )
        assert event.external_id == "42"
        assert event.source == "artist"
        assert event.source_platform == "artist"
        assert event.venue == "Venue TBD"


class TestEnvelopes:
    def test_fetch_result_failure(self):
        """failure() builds an empty unsuccessful result."""
        result = FetchResult.failure("insider", "Scraping disallowed by robots.txt")
        assert result.success is False
        assert result.events == []
        assert result.event_count == 0

    def test_duplicate_group(self, create_event):
        """Scores line up with members and the losers are the rejected ones."""
        keep = create_event(id="a")
        drop = create_event(id="b")
        group = DuplicateGroup(representative=keep, members=[keep, drop], scores=[90.0, 40.0])

        assert group.size == 2
        assert group.rejected == [drop]
        assert group.score_of(keep) == 90.0
        assert group.score_of(create_event(id="a")) is None
        assert group.to_dict()["members"] == ["a", "b"]
        assert group.to_dict()["scores"] == [90.0, 40.0]

    def test_platform_health_defaults(self):
        """Health entries default to zero events and an aware timestamp."""
        health = PlatformHealth(platform="insider", status=HealthStatus.DOWN, error="boom")
        assert health.event_count == 0
        assert health.checked_at.tzinfo is not None
