# ingestion/normalization/taxonomy.py
"""
Fixed internal category vocabulary and city display names.

Source category strings are matched by substring against an ordered lookup
table; the first key found wins and anything unmatched maps to ``event``.
"""

from typing import List, Optional, Tuple

from event_ingest.schemas.event import DEFAULT_CATEGORY

CATEGORIES = (
    "workshop",
    "networking",
    "conference",
    "meetup",
    "exhibition",
    "concert",
    "comedy",
    "sports",
    "food",
    "theatre",
    "festival",
    DEFAULT_CATEGORY,
)

# Ordered: more specific keys first
CATEGORY_LOOKUP: List[Tuple[str, str]] = [
    ("workshop", "workshop"),
    ("masterclass", "workshop"),
    ("seminar", "workshop"),
    ("webinar", "workshop"),
    ("networking", "networking"),
    ("business", "networking"),
    ("conference", "conference"),
    ("summit", "conference"),
    ("meetup", "meetup"),
    ("meet-up", "meetup"),
    ("exhibition", "exhibition"),
    ("gallery", "exhibition"),
    ("comedy", "comedy"),
    ("stand-up", "comedy"),
    ("standup", "comedy"),
    ("concert", "concert"),
    ("music", "concert"),
    ("gig", "concert"),
    ("sport", "sports"),
    ("marathon", "sports"),
    ("fitness", "sports"),
    ("food", "food"),
    ("drink", "food"),
    ("culinary", "food"),
    ("theatre", "theatre"),
    ("theater", "theatre"),
    ("drama", "theatre"),
    ("festival", "festival"),
]

CITY_DISPLAY_NAMES = {
    "mumbai": "Mumbai",
    "bombay": "Mumbai",
    "delhi": "Delhi",
    "new-delhi": "Delhi",
    "new delhi": "Delhi",
    "ncr": "Delhi",
    "bangalore": "Bengaluru",
    "bengaluru": "Bengaluru",
    "hyderabad": "Hyderabad",
    "pune": "Pune",
    "chennai": "Chennai",
    "kolkata": "Kolkata",
    "goa": "Goa",
    "ahmedabad": "Ahmedabad",
    "jaipur": "Jaipur",
    "chandigarh": "Chandigarh",
    "kochi": "Kochi",
}


def map_category(text: Optional[str]) -> str:
    """
    Map a source category string into the internal vocabulary.

    Example:
        >>> map_category("Live Music & Gigs")
        'concert'
        >>> map_category("Other")
        'event'
    """
    if not text:
        return DEFAULT_CATEGORY
    lowered = text.lower()
    if lowered.strip() in CATEGORIES:
        return lowered.strip()
    for key, category in CATEGORY_LOOKUP:
        if key in lowered:
            return category
    return DEFAULT_CATEGORY


def display_city(value: str) -> str:
    """City slug or free text to its display name ("new-delhi" -> "Delhi")."""
    cleaned = " ".join(value.split())
    known = CITY_DISPLAY_NAMES.get(cleaned.lower())
    if known:
        return known
    return " ".join(part.capitalize() for part in cleaned.replace("-", " ").split())


def city_slug(value: str) -> str:
    """Display name or slug to the lower-case hyphenated form sources use."""
    return "-".join(value.strip().lower().split())
