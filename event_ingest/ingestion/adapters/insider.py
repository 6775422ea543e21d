"""
Insider (insider.in, formerly Paytm Insider) adapter.

Scrape-only. City pages embed schema.org JSON-LD for listed events, which is
far more stable than the card markup, so it is tried before CSS cards.
"""

from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from event_ingest.ingestion.parsers.selectors import (
    SelectorChain,
    card_title,
    extract_json_ld_events,
    first_attr,
    first_text,
    image_src,
    json_ld_image,
    json_ld_location,
    json_ld_price,
    link_href,
)
from event_ingest.runtime.errors import ParseFailure
from event_ingest.schemas.event import FetchRequest, RawEventRecord

from .base_adapter import BaseSourceAdapter

EVENT_LINK_MARKERS = ("/event/", "/e/")

TITLE_SELECTORS = (
    "[class*='title']",
    "[class*='name']",
    "[class*='heading']",
    "h1",
    "h2",
    "h3",
    "h4",
)
VENUE_SELECTORS = ("[class*='venue']", "[class*='location']", "[class*='place']", "[data-testid*='venue']")
DATE_SELECTORS = ("[class*='date']", "time", "[class*='time']")
PRICE_SELECTORS = ("[class*='price']", "[class*='cost']", "[class*='amount']", "[class*='ticket']")
CATEGORY_SELECTORS = ("[class*='category']", "[class*='genre']", "[data-testid*='category']")


def _has_event_link(el: Tag) -> bool:
    anchor = el if el.name == "a" else el.find("a", href=True)
    if anchor is None:
        return False
    href = str(anchor.get("href") or "")
    return any(marker in href for marker in EVENT_LINK_MARKERS)


class InsiderAdapter(BaseSourceAdapter):
    """Adapter for insider.in city listings."""

    card_chain = SelectorChain.of(
        "[class*='event-card']",
        "[class*='EventCard']",
        "[class*='event-item']",
        "[class*='card']",
        "[class*='listing']",
        "a[href*='/event/']",
        "[data-event-id]",
        "article",
        ".event",
        "[role='article']",
        accept=_has_event_link,
    )

    def listing_urls(self, request: FetchRequest) -> List[str]:
        return [f"{self.config.base_url.rstrip('/')}/{self.city_slug(request)}/events"]

    def find_cards(self, soup: BeautifulSoup, page_url: str) -> Optional[List[Any]]:
        structured = extract_json_ld_events(soup)
        if structured:
            self.logger.debug(f"Using {len(structured)} JSON-LD events from {page_url}")
            return structured
        return super().find_cards(soup, page_url)

    def parse_card(self, card: Any, page_url: str, request: FetchRequest) -> Optional[RawEventRecord]:
        if isinstance(card, dict):
            return self._from_json_ld(card, page_url, request)
        return self._from_html(card, page_url, request)

    def _from_json_ld(self, item: Dict[str, Any], page_url: str, request: FetchRequest) -> RawEventRecord:
        title = str(item.get("name") or "").strip()
        url = str(item.get("url") or "")
        if not title or not url:
            raise ParseFailure("JSON-LD event without name or url")

        venue, address = json_ld_location(item)
        category = item.get("eventType") or item.get("genre") or item.get("@type")
        return RawEventRecord(
            source_platform=self.source_id,
            title=title,
            city=self.city_name(request),
            ticket_url=url if url.startswith("http") else f"{self.config.base_url.rstrip('/')}{url}",
            date_text=str(item.get("startDate") or ""),
            venue=venue,
            location_address=address,
            description=item.get("description"),
            image_url=json_ld_image(item),
            price_text=json_ld_price(item),
            category_text=str(category) if category and category != "Event" else None,
            raw={"scraped_from": page_url, "format": "json-ld"},
        )

    def _from_html(self, card: Tag, page_url: str, request: FetchRequest) -> Optional[RawEventRecord]:
        url = link_href(card, page_url, contains=EVENT_LINK_MARKERS)
        if not url:
            return None

        anchor = card if card.name == "a" else card.find("a", href=True)
        title = card_title(card, TITLE_SELECTORS)
        if not title and anchor is not None:
            title = card_title(anchor, ())
        if not title:
            raise ParseFailure(f"Card at {url} has no title")

        date_text = first_text(card, DATE_SELECTORS) or first_attr(card, ("[datetime]",), ("datetime",))
        return RawEventRecord(
            source_platform=self.source_id,
            title=title,
            city=self.city_name(request),
            ticket_url=url,
            date_text=date_text,
            venue=first_text(card, VENUE_SELECTORS),
            image_url=image_src(card),
            price_text=first_text(card, PRICE_SELECTORS),
            category_text=first_text(card, CATEGORY_SELECTORS),
            raw={"scraped_from": page_url, "city_slug": self.city_slug(request)},
        )
