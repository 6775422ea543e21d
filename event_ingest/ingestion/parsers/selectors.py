"""
Tolerant HTML extraction primitives.

Listing markup changes without notice, so every extraction is an ordered
list of candidates tried in sequence. ``SelectorChain`` picks the first
card selector yielding at least one match; the ``first_*`` helpers do the
same for fields inside a card.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

IMAGE_ATTRS = ("src", "data-src", "data-lazy-src", "data-original")


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def _collapse_ws(text: str) -> str:
    return " ".join(text.split())


# ---------------------------------------------------------------------
# Card selection
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class SelectorStrategy:
    """One candidate CSS selector for event cards, with an optional filter."""

    selector: str
    accept: Optional[Callable[[Tag], bool]] = field(default=None, compare=False)

    def match(self, soup: BeautifulSoup | Tag) -> Optional[List[Tag]]:
        """Return matching elements, or None if there are none."""
        nodes = soup.select(self.selector)
        if self.accept is not None:
            nodes = [n for n in nodes if self.accept(n)]
        return nodes or None


class SelectorChain:
    """
    Ordered list of selector strategies; the first with a match wins.

    Example:
        >>> chain = SelectorChain.of(".event-card", "[data-event-id]")
        >>> hit = chain.first_match(make_soup(html))
    """

    def __init__(self, strategies: Sequence[SelectorStrategy]):
        if not strategies:
            raise ValueError("SelectorChain needs at least one strategy")
        self.strategies = list(strategies)

    @classmethod
    def of(cls, *selectors: str, accept: Optional[Callable[[Tag], bool]] = None) -> "SelectorChain":
        return cls([SelectorStrategy(s, accept) for s in selectors])

    def first_match(self, soup: BeautifulSoup | Tag) -> Optional[Tuple[SelectorStrategy, List[Tag]]]:
        for strategy in self.strategies:
            nodes = strategy.match(soup)
            if nodes:
                logger.debug(f"Selector '{strategy.selector}' matched {len(nodes)} element(s)")
                return strategy, nodes
        return None

    @property
    def selectors(self) -> List[str]:
        return [s.selector for s in self.strategies]


# ---------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------


def first_text(el: Tag, selectors: Sequence[str]) -> str:
    """Text of the first selector that matches with non-empty text."""
    for selector in selectors:
        node = el.select_one(selector)
        if node is not None:
            text = _collapse_ws(node.get_text(" ", strip=True))
            if text:
                return text
    return ""


def first_attr(el: Tag, selectors: Sequence[str], attrs: Sequence[str]) -> str:
    """First non-empty attribute among ``attrs`` on the first matching selector."""
    for selector in selectors:
        node = el.select_one(selector)
        if node is None:
            continue
        for attr in attrs:
            value = node.get(attr)
            if value:
                return str(value).strip()
    return ""


def image_src(el: Tag) -> str:
    """Image URL of a card, looking through lazy-loading attributes."""
    img = el if el.name == "img" else el.find("img")
    if img is None:
        return ""
    for attr in IMAGE_ATTRS:
        value = img.get(attr)
        if value and not str(value).startswith("data:"):
            return str(value).strip()
    return ""


def link_href(el: Tag, base_url: str, contains: Optional[Sequence[str]] = None) -> str:
    """
    Absolute link of a card: the element itself when it is an anchor,
    else the first anchor inside (optionally one whose href contains a marker).
    """
    anchors = [el] if el.name == "a" else el.find_all("a", href=True)
    for a in anchors:
        href = a.get("href")
        if not href:
            continue
        href = str(href).strip()
        if contains and not any(marker in href for marker in contains):
            continue
        return urljoin(base_url, href)
    return ""


def card_title(el: Tag, selectors: Sequence[str]) -> str:
    """Title from heading selectors, falling back to the anchor's title/aria label."""
    title = first_text(el, selectors)
    if title:
        return title
    for attr in ("title", "aria-label"):
        value = el.get(attr)
        if value:
            return _collapse_ws(str(value))
    return ""


# ---------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------


def _is_event_type(value: Any) -> bool:
    types = value if isinstance(value, list) else [value]
    return any(isinstance(t, str) and t.endswith("Event") for t in types)


def extract_json_ld_events(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """Collect schema.org ``*Event`` objects from JSON-LD script blocks."""
    found: List[Dict[str, Any]] = []
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError):
            continue

        stack = [data]
        while stack:
            item = stack.pop(0)
            if isinstance(item, list):
                stack.extend(item)
            elif isinstance(item, dict):
                if _is_event_type(item.get("@type")):
                    found.append(item)
                elif "@graph" in item:
                    stack.append(item["@graph"])
                elif item.get("@type") == "ItemList":
                    stack.extend(
                        el.get("item", el) for el in item.get("itemListElement", []) if isinstance(el, dict)
                    )
    return found


def json_ld_location(item: Dict[str, Any]) -> Tuple[str, str]:
    """(venue name, address text) from a JSON-LD event's ``location``."""
    location = item.get("location")
    if isinstance(location, list):
        location = location[0] if location else None
    if isinstance(location, str):
        return location, ""
    if not isinstance(location, dict):
        return "", ""

    name = str(location.get("name") or "")
    address = location.get("address")
    if isinstance(address, dict):
        parts = [
            address.get("streetAddress", ""),
            address.get("addressLocality", ""),
            address.get("postalCode", ""),
        ]
        return name, ", ".join(str(p) for p in parts if p)
    if isinstance(address, str):
        return name, address
    return name, ""


def json_ld_price(item: Dict[str, Any]) -> str:
    offers = item.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if not isinstance(offers, dict):
        return ""
    price = offers.get("price") or offers.get("lowPrice")
    if price in (None, ""):
        return ""
    currency = offers.get("priceCurrency") or ""
    if str(price) in ("0", "0.0", "0.00"):
        return "Free"
    symbol = "₹" if currency == "INR" else (f"{currency} " if currency else "")
    return f"{symbol}{price}"


def json_ld_image(item: Dict[str, Any]) -> str:
    image = item.get("image")
    if isinstance(image, list):
        image = image[0] if image else ""
    if isinstance(image, dict):
        image = image.get("url", "")
    return str(image or "")
