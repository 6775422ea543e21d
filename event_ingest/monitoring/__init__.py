from .logging import (
    ContextAdapter,
    JsonFormatter,
    TextFormatter,
    configure_logging,
    get_adapter_logger,
    with_context,
)
from .metrics import MetricsRegistry

__all__ = [
    "ContextAdapter",
    "JsonFormatter",
    "TextFormatter",
    "configure_logging",
    "get_adapter_logger",
    "with_context",
    "MetricsRegistry",
]
