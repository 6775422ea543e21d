"""HTML parsing helpers shared by the scraping adapters."""

from .selectors import (
    SelectorChain,
    SelectorStrategy,
    card_title,
    extract_json_ld_events,
    first_attr,
    first_text,
    image_src,
    json_ld_image,
    json_ld_location,
    json_ld_price,
    link_href,
    make_soup,
)

__all__ = [
    "SelectorChain",
    "SelectorStrategy",
    "card_title",
    "extract_json_ld_events",
    "first_attr",
    "first_text",
    "image_src",
    "json_ld_image",
    "json_ld_location",
    "json_ld_price",
    "link_href",
    "make_soup",
]
