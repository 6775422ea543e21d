"""
AllEvents adapter.

Hybrid source: REST API when ``ALLEVENTS_API_KEY`` is set, HTML listing
page otherwise (or when the API fails).
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import Tag

from event_ingest.ingestion.parsers.selectors import (
    SelectorChain,
    card_title,
    first_attr,
    first_text,
    image_src,
    link_href,
)
from event_ingest.runtime.errors import ParseFailure
from event_ingest.schemas.event import FetchRequest, RawEventRecord

from .base_adapter import BaseSourceAdapter

TITLE_SELECTORS = (".title", "h2", "h3", "[class*='title']")
DATE_SELECTORS = (".date", "time", "[class*='date']")
VENUE_SELECTORS = (".venue", ".location", "[class*='venue']", "[class*='location']")
PRICE_SELECTORS = (".price", "[class*='price']")
CATEGORY_SELECTORS = (".category", "[class*='category']")


class AllEventsAdapter(BaseSourceAdapter):
    """Adapter for allevents.in."""

    card_chain = SelectorChain.of(
        ".event-card",
        "[data-event-id]",
        "a[href*='/events/']",
        ".event-item",
        "[class*='Event']",
    )

    # =========================================================================
    # API
    # =========================================================================

    def fetch_api(self, request: FetchRequest) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"city": self.city_name(request), "limit": request.limit}
        if request.category:
            params["category"] = request.category

        url = f"{self.config.api_base_url.rstrip('/')}/events"
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        data = self.runtime.queue.run(
            self.source_id,
            lambda: self.runtime.http.get_json(
                url, headers=headers, params=params, timeout_s=self.config.request_timeout
            ),
        )
        if not isinstance(data, dict) or not isinstance(data.get("events"), list):
            raise ParseFailure("API response has no 'events' list")
        return data["events"]

    def api_record(self, item: Dict[str, Any], request: FetchRequest) -> Optional[RawEventRecord]:
        if not isinstance(item, dict):
            raise ParseFailure("API event is not an object")

        venue = item.get("venue")
        if isinstance(venue, dict):
            venue_name = venue.get("name")
            address = venue.get("full_address") or venue.get("address")
        else:
            venue_name = venue or item.get("location")
            address = None

        event_id = item.get("id") or item.get("event_id")
        url = item.get("url") or item.get("link") or item.get("event_url")
        if not url and event_id:
            url = f"{self.config.base_url.rstrip('/')}/{event_id}"

        return RawEventRecord(
            source_platform=self.source_id,
            title=str(item.get("title") or item.get("name") or item.get("eventname") or ""),
            city=str(item.get("city") or self.city_name(request)),
            ticket_url=url,
            source_event_id=str(event_id) if event_id else None,
            date_text=str(
                item.get("start_time") or item.get("start_date") or item.get("event_date") or ""
            ),
            venue=venue_name,
            location_address=address,
            description=item.get("description"),
            image_url=item.get("image_url") or item.get("banner_url") or item.get("thumb_url"),
            price_text=str(item.get("price") or item.get("ticket_price") or ""),
            category_text=_category_text(item.get("category") or item.get("categories")),
            raw={"source": "api", "original": item},
        )

    # =========================================================================
    # SCRAPING
    # =========================================================================

    def listing_urls(self, request: FetchRequest) -> List[str]:
        return [urljoin(self.config.base_url.rstrip("/") + "/", self.city_slug(request))]

    def parse_card(self, card: Tag, page_url: str, request: FetchRequest) -> Optional[RawEventRecord]:
        url = link_href(card, page_url)
        if not url:
            return None

        title = card_title(card, TITLE_SELECTORS) or " ".join(card.get_text(" ", strip=True).split())
        if len(title) < 3:
            raise ParseFailure(f"Card at {url} has no usable title")

        date_text = first_text(card, DATE_SELECTORS) or first_attr(card, ("time",), ("datetime",))

        return RawEventRecord(
            source_platform=self.source_id,
            title=title,
            city=self.city_name(request),
            ticket_url=url,
            source_event_id=card.get("data-event-id"),
            date_text=date_text,
            venue=first_text(card, VENUE_SELECTORS),
            image_url=image_src(card) or _background_image(card),
            price_text=first_text(card, PRICE_SELECTORS),
            category_text=first_text(card, CATEGORY_SELECTORS),
            raw={"scraped_from": page_url, "city_slug": self.city_slug(request)},
        )


def _category_text(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    return str(value) if value else None


def _background_image(card: Tag) -> str:
    node = card.select_one("[style*='background']")
    if node is None:
        return ""
    style = str(node.get("style", ""))
    start = style.find("url(")
    if start < 0:
        return ""
    end = style.find(")", start)
    return style[start + 4 : end].strip("'\" ") if end > start else ""
