"""
Error taxonomy for the ingestion runtime.

Expected failure modes (network, politeness, parsing, validation) are raised
inside an adapter and converted into a failed FetchResult at the adapter
boundary. ConfigurationError is a programming error and is allowed to escape.
"""

from typing import Optional


class IngestionError(Exception):
    """Base class for expected ingestion failures."""


class NetworkFailure(IngestionError):
    """Timeout, DNS failure, refused connection or non-success HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PolicyDenied(IngestionError):
    """The source's crawling policy disallows the request."""


class ParseFailure(IngestionError):
    """No selector matched, or a record is missing required fields."""


class ValidationFailure(IngestionError):
    """A field value could not be normalized (unparseable date, bad URL)."""


class ConfigurationError(ValueError):
    """Invalid or missing configuration."""
