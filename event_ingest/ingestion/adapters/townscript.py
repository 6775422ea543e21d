"""Townscript adapter: scrape-only, online listings first, then the city page."""

from event_ingest.ingestion.parsers.selectors import SelectorChain

from .base_adapter import CardListingAdapter


class TownscriptAdapter(CardListingAdapter):
    """Adapter for townscript.com city listings."""

    card_chain = SelectorChain.of(".event-card", ".event-item", "[data-event-id]", ".listing-card")

    url_patterns = (
        "{base_url}/in/{slug}/online",
        "{base_url}/in/{slug}",
    )
    title_selectors = (".event-title", ".title", "h3", "h4")
    date_selectors = (".event-date", ".date", "time")
    venue_selectors = (".event-venue", ".venue", ".location")
    price_selectors = (".price", ".ticket-price")
