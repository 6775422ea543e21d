"""
Source adapters.

Each adapter implements ``fetch(FetchRequest) -> FetchResult`` for one
external platform.
"""

from .allevents import AllEventsAdapter
from .base_adapter import AdapterConfig, BaseSourceAdapter, CardListingAdapter
from .explara import ExplaraAdapter
from .insider import InsiderAdapter
from .townscript import TownscriptAdapter

__all__ = [
    "AdapterConfig",
    "AllEventsAdapter",
    "BaseSourceAdapter",
    "CardListingAdapter",
    "ExplaraAdapter",
    "InsiderAdapter",
    "TownscriptAdapter",
]
