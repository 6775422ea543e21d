"""Explara adapter: scrape-only, three known city listing layouts."""

from event_ingest.ingestion.parsers.selectors import SelectorChain

from .base_adapter import CardListingAdapter


class ExplaraAdapter(CardListingAdapter):
    """Adapter for explara.com city listings."""

    card_chain = SelectorChain.of(".event-item", ".event-card", "[data-event]", ".listing-item", ".event-box")

    url_patterns = (
        "{base_url}/events/{slug}",
        "{base_url}/{slug}/events",
        "{base_url}/e/{slug}",
    )
    title_selectors = (".event-name", ".event-title", ".title", "h3", "h4", "h2")
    date_selectors = (".event-date", ".date", "time", ".event-time")
    venue_selectors = (".event-location", ".venue", ".location")
    price_selectors = (".price", ".event-price", ".ticket-price")
