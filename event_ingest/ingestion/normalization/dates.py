"""
Event date parsing.

Sources print dates in many shapes ("2025-03-15T19:30:00+05:30",
"Tomorrow, 7 PM", "Sat, 15 Mar", "March 15 2025"). Everything is resolved to
a timezone-aware UTC instant; naive values are read in the source's local
timezone. Relative phrases are resolved against the fetch time.
"""

import hashlib
import logging
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Kolkata"
SYNTHETIC_MIN_DAYS = 1
SYNTHETIC_MAX_DAYS = 30

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_ISO_RE = re.compile(
    r"\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)?"
    r"(?:Z|[+-]\d{2}:?\d{2})?"
)
_DAY_MONTH_RE = re.compile(
    r"\b(\d{1,2})(?:st|nd|rd|th)?\s*(?:of\s+)?([a-z]{3})[a-z]*\.?,?(?:\s+(\d{4}))?\b", re.I
)
_MONTH_DAY_RE = re.compile(
    r"\b([a-z]{3})[a-z]*\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b,?(?:\s+(\d{4}))?", re.I
)
_TIME_12H_RE = re.compile(r"\b(\d{1,2})(?:[:.](\d{2}))?\s*([ap])\.?\s?m\b\.?", re.I)
_TIME_24H_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
# "+0530" -> "+05:30"; fromisoformat only accepts the compact form from 3.11
_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")

TzLike = Union[str, tzinfo, None]


def resolve_zone(tz: TzLike) -> tzinfo:
    """Name or tzinfo to tzinfo; None means the default zone."""
    if tz is None:
        return ZoneInfo(DEFAULT_TIMEZONE)
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def _parse_time(text: str) -> Optional[time]:
    m = _TIME_12H_RE.search(text)
    if m:
        hour = int(m.group(1))
        minute = int(m.group(2) or 0)
        if not 1 <= hour <= 12 or minute > 59:
            return None
        if m.group(3).lower() == "p" and hour != 12:
            hour += 12
        elif m.group(3).lower() == "a" and hour == 12:
            hour = 0
        return time(hour, minute)

    m = _TIME_24H_RE.search(text)
    if m:
        return time(int(m.group(1)), int(m.group(2)))
    return None


def _parse_iso(token: str, zone: tzinfo) -> Optional[datetime]:
    token = _COMPACT_OFFSET_RE.sub(r"\1:\2", token.replace("Z", "+00:00"))
    try:
        value = datetime.fromisoformat(token)
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(timezone.utc)


def _month_day(text: str) -> Optional[Tuple[int, int, Optional[int]]]:
    """Find a (month, day, year?) triple in either "15 Mar" or "Mar 15" order."""
    for m in _DAY_MONTH_RE.finditer(text):
        month = MONTHS.get(m.group(2).lower())
        if month:
            return month, int(m.group(1)), int(m.group(3)) if m.group(3) else None
    for m in _MONTH_DAY_RE.finditer(text):
        month = MONTHS.get(m.group(1).lower())
        if month:
            return month, int(m.group(2)), int(m.group(3)) if m.group(3) else None
    return None


def parse_event_date(
    text: Optional[str],
    now: Optional[datetime] = None,
    tz: TzLike = None,
) -> Optional[datetime]:
    """
    Resolve a source date string to a UTC instant.

    Supported forms: ISO 8601, "today", "tomorrow", "D MonthName [YYYY]",
    "MonthName D [YYYY]", each optionally with "7 PM" / "19:30". Year-less
    dates earlier than today roll over to next year.

    Args:
        text: Date text as shown by the source
        now: Reference instant (defaults to the current time)
        tz: Timezone for naive values (name or tzinfo)

    Returns:
        Timezone-aware UTC datetime, or None if the text is unparseable
    """
    if not text or not text.strip():
        return None

    zone = resolve_zone(tz)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local_now = now.astimezone(zone)
    cleaned = " ".join(text.split())

    iso = _ISO_RE.search(cleaned)
    if iso:
        parsed = _parse_iso(iso.group(0), zone)
        if parsed is not None:
            return parsed

    lowered = cleaned.lower()
    at = _parse_time(cleaned)

    # Without a printed time, relative days resolve to local midnight so
    # the instant does not drift with the fetch time
    if "today" in lowered or "tonight" in lowered:
        return _combine(local_now.date(), at or time(0, 0), zone)
    if "tomorrow" in lowered:
        return _combine(local_now.date() + timedelta(days=1), at or time(0, 0), zone)

    found = _month_day(cleaned)
    if found is None:
        return None

    month, day_num, year = found
    try:
        if year is not None:
            day = date(year, month, day_num)
        else:
            day = date(local_now.year, month, day_num)
            if day < local_now.date():
                day = date(local_now.year + 1, month, day_num)
    except ValueError:
        logger.debug(f"Impossible calendar date in {text!r}")
        return None

    return _combine(day, at or time(0, 0), zone)


def _combine(day: date, at: time, zone: tzinfo) -> datetime:
    return datetime.combine(day, at).replace(tzinfo=zone).astimezone(timezone.utc)


def synthetic_event_date(seed: str, now: Optional[datetime] = None) -> datetime:
    """
    Deterministic near-future placeholder for an unparseable date.

    The offset (1-30 days) is derived from ``seed`` so the same listing gets
    the same offset on every run.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    span = SYNTHETIC_MAX_DAYS - SYNTHETIC_MIN_DAYS + 1
    offset = SYNTHETIC_MIN_DAYS + int(hashlib.sha256(seed.encode("utf-8")).hexdigest()[:8], 16) % span
    placeholder = now.astimezone(timezone.utc) + timedelta(days=offset)
    return placeholder.replace(minute=0, second=0, microsecond=0)
