from .event import (
    DEFAULT_CATEGORY,
    PRICE_FREE,
    PRICE_PLACEHOLDER,
    VENUE_PLACEHOLDER,
    CanonicalEvent,
    DuplicateGroup,
    FetchRequest,
    FetchResult,
    FetchVia,
    HealthStatus,
    PlatformHealth,
    RawEventRecord,
)

__all__ = [
    "DEFAULT_CATEGORY",
    "PRICE_FREE",
    "PRICE_PLACEHOLDER",
    "VENUE_PLACEHOLDER",
    "CanonicalEvent",
    "DuplicateGroup",
    "FetchRequest",
    "FetchResult",
    "FetchVia",
    "HealthStatus",
    "PlatformHealth",
    "RawEventRecord",
]
