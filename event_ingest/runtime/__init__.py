"""
Shared runtime state for outbound requests: HTTP client, per-source request
queue and the robots.txt politeness checker.

These are explicit objects with their own lifetime; create one set per
process (see ingestion.factory.IngestionRuntime) or one per test.
"""

from .errors import (
    ConfigurationError,
    IngestionError,
    NetworkFailure,
    ParseFailure,
    PolicyDenied,
    ValidationFailure,
)
from .http import HttpClient
from .rate_limiter import RateLimitConfig, RequestQueue
from .robots import RobotsChecker, RobotsDecision

__all__ = [
    "ConfigurationError",
    "IngestionError",
    "NetworkFailure",
    "ParseFailure",
    "PolicyDenied",
    "ValidationFailure",
    "HttpClient",
    "RateLimitConfig",
    "RequestQueue",
    "RobotsChecker",
    "RobotsDecision",
]
