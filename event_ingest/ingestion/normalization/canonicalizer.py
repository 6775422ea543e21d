"""
Canonicalizer: RawEventRecord -> CanonicalEvent.

All sources share this one normalization policy: category mapping, city
display names, venue and price defaults, URL clean-up, date resolution and
identity assignment. Adapters only extract strings.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlsplit

from event_ingest.runtime.errors import ParseFailure, ValidationFailure
from event_ingest.schemas.event import (
    PRICE_FREE,
    PRICE_PLACEHOLDER,
    VENUE_PLACEHOLDER,
    CanonicalEvent,
    RawEventRecord,
)

from .dates import DEFAULT_TIMEZONE, TzLike, parse_event_date, synthetic_event_date
from .identity import build_locator, generate_external_id
from .taxonomy import display_city, map_category

logger = logging.getLogger(__name__)

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_FREE_RE = re.compile(r"free|₹\s*0(?!\d)|rs\.?\s*0(?!\d)|complimentary|no\s*charge", re.I)
_PRICE_PLACEHOLDER_RE = re.compile(
    r"^(?:tbd|tba|to\s*be\s*(?:announced|determined)|coming\s*soon|n/?a)$", re.I
)

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_FIELD_LENGTH = 500


def sanitize_string(value: Optional[str], max_length: int = MAX_FIELD_LENGTH) -> str:
    """Trim, collapse whitespace, strip control characters and cap length."""
    if value is None:
        return ""
    text = _CONTROL_RE.sub(" ", str(value))
    return " ".join(text.split())[:max_length]


def sanitize_price(value: Optional[str]) -> str:
    """
    Normalize free-text prices.

    Example:
        >>> sanitize_price("₹ 0")
        'Free'
        >>> sanitize_price("TBA")
        'Check website'
        >>> sanitize_price("₹499 onwards")
        '₹499 onwards'
    """
    text = sanitize_string(value, 100)
    if not text:
        return PRICE_PLACEHOLDER
    if _FREE_RE.search(text):
        return PRICE_FREE
    if _PRICE_PLACEHOLDER_RE.match(text):
        return PRICE_PLACEHOLDER
    return text


def clean_url(value: Optional[str]) -> Optional[str]:
    """Absolute http(s) URL or None. Protocol-relative URLs get https."""
    text = sanitize_string(value, 2000)
    if not text:
        return None
    if text.startswith("//"):
        text = f"https:{text}"
    parts = urlsplit(text)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return text


class Canonicalizer:
    """
    Turns adapter records into canonical events.

    Args:
        timezone_name: Zone used to read naive source dates
        reject_unparseable_dates: Raise ValidationFailure instead of
            substituting a synthetic near-future date
    """

    def __init__(
        self,
        timezone_name: TzLike = DEFAULT_TIMEZONE,
        reject_unparseable_dates: bool = False,
    ):
        self.timezone_name = timezone_name
        self.reject_unparseable_dates = reject_unparseable_dates

    def canonicalize(
        self,
        record: RawEventRecord,
        fetched_at: Optional[datetime] = None,
    ) -> CanonicalEvent:
        """
        Normalize one record.

        Args:
            record: Strings extracted by an adapter
            fetched_at: Fetch time; relative dates resolve against it

        Returns:
            CanonicalEvent with identity assigned

        Raises:
            ParseFailure: title or city missing
            ValidationFailure: unparseable date while rejection is enabled
        """
        fetched_at = fetched_at or datetime.now(timezone.utc)
        source = sanitize_string(record.source_platform).lower()

        title = sanitize_string(record.title, MAX_TITLE_LENGTH)
        if not title:
            raise ParseFailure(f"{source}: record has no title")
        if not record.city or not sanitize_string(record.city):
            raise ParseFailure(f"{source}: record '{title}' has no city")
        city = display_city(sanitize_string(record.city))

        ticket_url = clean_url(record.ticket_url)
        if record.ticket_url and ticket_url is None:
            logger.debug(f"{source}: dropping malformed ticket URL {record.ticket_url!r}")
        locator = build_locator(record.source_event_id, ticket_url)

        event_date = parse_event_date(record.date_text, now=fetched_at, tz=self.timezone_name)
        synthetic = event_date is None
        if synthetic:
            if self.reject_unparseable_dates:
                raise ValidationFailure(
                    f"{source}: unparseable date {record.date_text!r} for '{title}'"
                )
            event_date = synthetic_event_date(f"{source}|{locator}|{title}|{city}", fetched_at)
            logger.debug(f"{source}: synthetic date for '{title}' (text={record.date_text!r})")

        external_id = generate_external_id(
            source,
            locator,
            title,
            None if synthetic else event_date,
            city,
            tz=self.timezone_name,
        )

        description = sanitize_string(record.description, MAX_DESCRIPTION_LENGTH) or None
        venue = sanitize_string(record.venue) or VENUE_PLACEHOLDER

        raw_data = dict(record.raw)
        raw_data.setdefault("original_date_text", record.date_text or "")
        if record.category_text:
            raw_data.setdefault("original_category", record.category_text)

        return CanonicalEvent(
            external_id=external_id,
            title=title,
            description=description,
            category=map_category(record.category_text),
            venue=venue,
            location_address=sanitize_string(record.location_address) or None,
            city=city,
            event_date=event_date,
            image_url=clean_url(record.image_url),
            ticket_url=ticket_url,
            price=sanitize_price(record.price_text),
            source_platform=source,
            raw_data=raw_data,
            date_is_synthetic=synthetic,
        )
