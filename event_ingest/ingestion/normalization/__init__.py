"""
Normalization: date resolution, category mapping, identity assignment and
pre-storage validation.
"""

from .canonicalizer import Canonicalizer, clean_url, sanitize_price, sanitize_string
from .dates import parse_event_date, synthetic_event_date
from .identity import build_locator, generate_external_id, normalize_text, normalize_url
from .taxonomy import display_city, map_category
from .validator import EventValidator, ValidationResult

__all__ = [
    "Canonicalizer",
    "EventValidator",
    "ValidationResult",
    "build_locator",
    "clean_url",
    "display_city",
    "generate_external_id",
    "map_category",
    "normalize_text",
    "normalize_url",
    "parse_event_date",
    "sanitize_price",
    "sanitize_string",
    "synthetic_event_date",
]
