"""
Unit tests for Canonicalizer and its field helpers.
"""

from datetime import datetime, timezone

import pytest

from event_ingest.ingestion.normalization.canonicalizer import (
    Canonicalizer,
    clean_url,
    sanitize_price,
    sanitize_string,
)
from event_ingest.runtime.errors import ParseFailure, ValidationFailure
from event_ingest.schemas.event import RawEventRecord

FETCHED_AT = datetime(2025, 3, 10, 6, 30, tzinfo=timezone.utc)


def make_record(**kwargs) -> RawEventRecord:
    defaults = {
        "source_platform": "allevents",
        "title": "Summer Jazz Night",
        "city": "mumbai",
        "ticket_url": "https://allevents.in/mumbai/summer-jazz-night?utm_source=x",
        "date_text": "15 Mar 2025, 8 PM",
        "venue": "City Club",
        "price_text": "₹499 onwards",
        "category_text": "Live Music",
    }
    defaults.update(kwargs)
    return RawEventRecord(**defaults)


@pytest.fixture
def canonicalizer():
    return Canonicalizer()


class TestCanonicalize:
    def test_builds_canonical_event(self, canonicalizer):
        """A full record maps onto every canonical field."""
        event = canonicalizer.canonicalize(make_record(), FETCHED_AT)

        assert event.title == "Summer Jazz Night"
        assert event.city == "Mumbai"
        assert event.category == "concert"
        assert event.venue == "City Club"
        assert event.price == "₹499 onwards"
        assert event.source_platform == "allevents"
        assert event.external_id.startswith("allevents-")
        assert event.event_date == datetime(2025, 3, 15, 14, 30, tzinfo=timezone.utc)
        assert event.date_is_synthetic is False

    def test_identity_is_stable_across_fetches(self, canonicalizer):
        """URL noise and a later fetch keep the same identity."""
        first = canonicalizer.canonicalize(make_record(), FETCHED_AT)
        second = canonicalizer.canonicalize(
            make_record(ticket_url="https://AllEvents.in/mumbai/summer-jazz-night/"),
            datetime(2025, 3, 12, 9, 0, tzinfo=timezone.utc),
        )
        assert first.external_id == second.external_id

    def test_relative_date_identity_is_stable_within_a_local_day(self, canonicalizer):
        """'Today' fetched at 00:30 and 10:00 IST yields one event."""
        record = make_record(date_text="Today")
        early = canonicalizer.canonicalize(record, datetime(2025, 3, 14, 19, 0, tzinfo=timezone.utc))
        late = canonicalizer.canonicalize(record, datetime(2025, 3, 15, 4, 30, tzinfo=timezone.utc))

        assert early.external_id == late.external_id
        assert early.event_date == late.event_date == datetime(2025, 3, 14, 18, 30, tzinfo=timezone.utc)

    def test_identity_uses_the_configured_zone(self):
        """The identity day follows the canonicalizer's timezone."""
        record = make_record(date_text="2025-03-15T00:30:00+05:30")
        local = Canonicalizer().canonicalize(record, FETCHED_AT)
        utc = Canonicalizer(timezone_name="UTC").canonicalize(record, FETCHED_AT)

        assert local.event_date == utc.event_date
        assert local.external_id != utc.external_id

    def test_api_id_is_used_as_locator(self, canonicalizer):
        """Records sharing an API id share an identity whatever their URL."""
        a = canonicalizer.canonicalize(make_record(source_event_id="77", ticket_url="https://a.example/1"))
        b = canonicalizer.canonicalize(make_record(source_event_id="77", ticket_url="https://a.example/2"))
        assert a.external_id == b.external_id

    def test_defaults_for_missing_fields(self, canonicalizer):
        """Missing venue, price, category and description get defaults."""
        event = canonicalizer.canonicalize(
            make_record(venue=None, price_text=None, category_text=None, description="  "),
            FETCHED_AT,
        )
        assert event.venue == "Venue TBD"
        assert event.price == "Check website"
        assert event.category == "event"
        assert event.description is None

    def test_unparseable_date_gets_synthetic_placeholder(self, canonicalizer):
        """Unparseable dates get a flagged near-future placeholder."""
        first = canonicalizer.canonicalize(make_record(date_text="Coming soon"), FETCHED_AT)
        again = canonicalizer.canonicalize(
            make_record(date_text="Date to be announced"),
            datetime(2025, 3, 20, 6, 30, tzinfo=timezone.utc),
        )

        assert first.date_is_synthetic is True
        assert first.event_date > FETCHED_AT
        # Identity does not depend on the placeholder date
        assert first.external_id == again.external_id

    def test_unparseable_date_rejected_when_configured(self):
        """Rejection mode raises instead of substituting a date."""
        canonicalizer = Canonicalizer(reject_unparseable_dates=True)
        with pytest.raises(ValidationFailure):
            canonicalizer.canonicalize(make_record(date_text="sometime"), FETCHED_AT)

    def test_missing_title_raises_parse_failure(self, canonicalizer):
        """A blank title is a parse failure."""
        with pytest.raises(ParseFailure):
            canonicalizer.canonicalize(make_record(title="   "), FETCHED_AT)

    def test_missing_city_raises_parse_failure(self, canonicalizer):
        """A blank city is a parse failure."""
        with pytest.raises(ParseFailure):
            canonicalizer.canonicalize(make_record(city=""), FETCHED_AT)

    def test_malformed_ticket_url_is_dropped(self, canonicalizer):
        """Non-http ticket URLs are dropped."""
        event = canonicalizer.canonicalize(make_record(ticket_url="javascript:void(0)"), FETCHED_AT)
        assert event.ticket_url is None

    def test_keeps_original_text_in_raw_data(self, canonicalizer):
        """Source date and category text survive in raw_data."""
        event = canonicalizer.canonicalize(make_record(), FETCHED_AT)
        assert event.raw_data["original_date_text"] == "15 Mar 2025, 8 PM"
        assert event.raw_data["original_category"] == "Live Music"


class TestHelpers:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Free", "Free"),
            ("FREE ENTRY", "Free"),
            ("₹ 0", "Free"),
            ("Rs. 0", "Free"),
            ("TBA", "Check website"),
            ("", "Check website"),
            (None, "Check website"),
            ("₹1,500", "₹1,500"),
            ("₹ 500", "₹ 500"),
        ],
    )
    def test_sanitize_price(self, text, expected):
        """Free, missing and real prices are normalized."""
        assert sanitize_price(text) == expected

    def test_sanitize_string(self):
        """Control characters are stripped and length capped."""
        assert sanitize_string("  a\x00b \n c  ") == "a b c"
        assert sanitize_string("x" * 10, max_length=4) == "xxxx"
        assert sanitize_string(None) == ""

    def test_clean_url(self):
        """Protocol-relative URLs are upgraded, others rejected."""
        assert clean_url("//cdn.example/img.png") == "https://cdn.example/img.png"
        assert clean_url("/relative/path") is None
        assert clean_url("mailto:a@b.c") is None
        assert clean_url(" https://insider.in/e/1 ") == "https://insider.in/e/1"
