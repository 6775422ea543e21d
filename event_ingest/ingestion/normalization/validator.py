"""
Pre-storage validation of canonical events.

Errors make an event unfit for the catalog; warnings are reported but do
not block the write.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from event_ingest.schemas.event import PRICE_FREE, PRICE_PLACEHOLDER, CanonicalEvent

_NUMBER_RE = re.compile(r"\d[\d,]*")

PAST_GRACE = timedelta(hours=1)
FAR_FUTURE = timedelta(days=365)
MAX_REASONABLE_PRICE = 100_000


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _is_http_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class EventValidator:
    """Validates canonical events before they are written to a catalog."""

    REQUIRED_FIELDS = ("external_id", "title", "city", "venue", "source_platform")

    def validate(self, event: CanonicalEvent, now: Optional[datetime] = None) -> ValidationResult:
        now = now or datetime.now(timezone.utc)
        errors: List[str] = []
        warnings: List[str] = []

        for name in self.REQUIRED_FIELDS:
            value = getattr(event, name)
            if value is None or not str(value).strip() or str(value).strip() in ("null", "undefined"):
                errors.append(f"Missing required field: {name}")

        title_length = len(event.title.strip())
        if title_length < 3:
            errors.append("Title too short (minimum 3 characters)")
        elif title_length > 200:
            warnings.append("Title very long (over 200 characters)")

        if len(event.city.strip()) < 2:
            errors.append("City name too short")

        if not event.description:
            warnings.append("No description provided")

        if "-" not in event.external_id:
            warnings.append("External ID should include platform prefix")

        if event.ticket_url:
            if not _is_http_url(event.ticket_url):
                errors.append(f"Invalid ticket URL format: {event.ticket_url}")
        elif event.source == "external":
            warnings.append("No ticket URL provided")

        if event.image_url and not _is_http_url(event.image_url):
            warnings.append(f"Invalid image URL format: {event.image_url}")

        self._validate_date(event, now, warnings)
        self._validate_price(event, warnings)

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def validate_batch(
        self, events: List[CanonicalEvent], now: Optional[datetime] = None
    ) -> List[ValidationResult]:
        return [self.validate(e, now) for e in events]

    @staticmethod
    def summary(results: List[ValidationResult]) -> Dict[str, Any]:
        """Aggregate counts over a batch of results."""
        common = Counter(err for r in results for err in r.errors)
        return {
            "total": len(results),
            "valid": sum(1 for r in results if r.is_valid),
            "invalid": sum(1 for r in results if not r.is_valid),
            "total_errors": sum(len(r.errors) for r in results),
            "total_warnings": sum(len(r.warnings) for r in results),
            "common_errors": dict(common.most_common(10)),
        }

    @staticmethod
    def _validate_date(event: CanonicalEvent, now: datetime, warnings: List[str]) -> None:
        if event.date_is_synthetic:
            warnings.append("Event date is a synthetic placeholder")
        if event.event_date < now - PAST_GRACE:
            warnings.append("Event date is in the past")
        if event.event_date > now + FAR_FUTURE:
            warnings.append("Event date is more than 1 year in the future")

    @staticmethod
    def _validate_price(event: CanonicalEvent, warnings: List[str]) -> None:
        if event.price in (PRICE_FREE, PRICE_PLACEHOLDER):
            return
        match = _NUMBER_RE.search(event.price)
        if match and int(match.group(0).replace(",", "")) > MAX_REASONABLE_PRICE:
            warnings.append("Price seems unusually high (over 100,000)")
