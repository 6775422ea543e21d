"""
Deterministic event identity.

``external_id`` is a pure function of {source, locator, title, event day,
city}, where the locator is the API-provided id when there is one and the
normalized listing URL otherwise. Re-ingesting the same listing therefore
produces the same id and can be upserted.
"""

import hashlib
import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .dates import TzLike, resolve_zone

_WS_RE = re.compile(r"\s+")

TRACKING_PARAMS = {"fbclid", "gclid", "ref", "ref_src", "mc_cid", "mc_eid"}
UNDATED_MARKER = "undated"
ID_HASH_LENGTH = 16


def normalize_text(value: Optional[str]) -> str:
    """Lower-case and collapse whitespace."""
    if not value:
        return ""
    return _WS_RE.sub(" ", value).strip().lower()


def _is_tracking_param(name: str) -> bool:
    name = name.lower()
    return name.startswith("utm_") or name in TRACKING_PARAMS


def normalize_url(url: Optional[str]) -> str:
    """
    Canonical form of a listing URL for identity purposes.

    Lower-cases scheme and host, drops the fragment, tracking query
    parameters and a trailing slash, and sorts the remaining parameters.

    Example:
        >>> normalize_url("HTTPS://AllEvents.in/mumbai/jazz/?utm_source=x#top")
        'https://allevents.in/mumbai/jazz'
    """
    if not url:
        return ""
    parts = urlsplit(url.strip())
    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(k)
    ]
    path = parts.path.rstrip("/")
    return urlunsplit(
        (
            parts.scheme.lower(),
            parts.netloc.lower(),
            path,
            urlencode(sorted(query)),
            "",
        )
    )


def build_locator(source_event_id: Optional[str] = None, url: Optional[str] = None) -> str:
    """API id wins over URL; both absent yields an empty locator."""
    if source_event_id:
        return f"api:{str(source_event_id).strip()}"
    return normalize_url(url)


def event_day(event_date: Optional[datetime], tz: TzLike = None) -> str:
    """Local calendar day of an instant in ``tz``, or the undated marker."""
    if event_date is None:
        return UNDATED_MARKER
    if event_date.tzinfo is None:
        event_date = event_date.replace(tzinfo=timezone.utc)
    return event_date.astimezone(resolve_zone(tz)).date().isoformat()


def generate_external_id(
    source: str,
    locator: str,
    title: str,
    event_date: Optional[datetime],
    city: str,
    tz: TzLike = None,
) -> str:
    """
    Compute the stable identity of a listing.

    Args:
        source: Source platform name, used as the id prefix
        locator: ``api:<id>`` or normalized URL (see ``build_locator``)
        title: Event title as listed
        event_date: Resolved event instant; None for an undated listing
        city: City the listing was fetched for
        tz: Zone whose calendar day is hashed; defaults to Asia/Kolkata

    Returns:
        ``<source>-<16 hex chars>``
    """
    key = "|".join(
        [
            normalize_text(source),
            locator,
            normalize_text(title),
            event_day(event_date, tz),
            normalize_text(city),
        ]
    )
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:ID_HASH_LENGTH]
    return f"{normalize_text(source)}-{digest}"
