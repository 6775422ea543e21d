"""
Adapter Factory for config-driven adapter creation.

Reads source configurations from ingestion.yaml and builds adapters that
share one IngestionRuntime (HTTP client, request queue, robots checker,
metrics, canonicalizer).

Usage:
    from event_ingest.ingestion.factory import AdapterFactory

    factory = AdapterFactory()
    adapters = factory.create_all_enabled_adapters()
    result = adapters["allevents"].fetch(FetchRequest(city="Mumbai"))
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from event_ingest.configs.config import Config
from event_ingest.configs.settings import Settings, get_settings
from event_ingest.ingestion.adapters import (
    AdapterConfig,
    AllEventsAdapter,
    BaseSourceAdapter,
    ExplaraAdapter,
    InsiderAdapter,
    TownscriptAdapter,
)
from event_ingest.ingestion.normalization.canonicalizer import Canonicalizer
from event_ingest.monitoring.metrics import MetricsRegistry
from event_ingest.runtime.errors import ConfigurationError
from event_ingest.runtime.http import HttpClient
from event_ingest.runtime.rate_limiter import RateLimitConfig, RequestQueue
from event_ingest.runtime.robots import RobotsChecker

logger = logging.getLogger(__name__)


# ============================================================================
# SHARED RUNTIME
# ============================================================================


@dataclass
class IngestionRuntime:
    """
    Process-scoped collaborators shared by all adapters.

    Create one per process (or one per test); nothing here is a module global.
    """

    http: HttpClient
    queue: RequestQueue
    robots: RobotsChecker
    canonicalizer: Canonicalizer
    metrics: MetricsRegistry = field(default_factory=MetricsRegistry)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        default_rate_limit: Optional[RateLimitConfig] = None,
    ) -> "IngestionRuntime":
        settings = settings or get_settings()
        http = HttpClient(user_agent=settings.USER_AGENT, timeout_s=settings.REQUEST_TIMEOUT_S)
        return cls(
            http=http,
            queue=RequestQueue(default_rate_limit),
            robots=RobotsChecker(
                http,
                ttl_s=settings.ROBOTS_CACHE_TTL_S,
                failure_ttl_s=settings.ROBOTS_FAILURE_TTL_S,
                fail_open=settings.ROBOTS_FAIL_OPEN,
            ),
            canonicalizer=Canonicalizer(
                timezone_name=settings.DEFAULT_TIMEZONE,
                reject_unparseable_dates=settings.REJECT_UNPARSEABLE_DATES,
            ),
        )

    def close(self) -> None:
        self.queue.close()
        self.http.close()


# ============================================================================
# REGISTRY
# ============================================================================

# Maps source names to adapter constructors
AdapterBuilder = Callable[[AdapterConfig, IngestionRuntime], BaseSourceAdapter]
ADAPTER_REGISTRY: Dict[str, AdapterBuilder] = {}


def register_adapter(source_name: str):
    """
    Decorator to register an adapter builder.

    Usage:
        @register_adapter("allevents")
        def create_allevents(config: AdapterConfig, runtime: IngestionRuntime):
            return AllEventsAdapter(config, runtime)
    """

    def decorator(builder: AdapterBuilder) -> AdapterBuilder:
        ADAPTER_REGISTRY[source_name] = builder
        return builder

    return decorator


@register_adapter("allevents")
def create_allevents(config: AdapterConfig, runtime: IngestionRuntime) -> AllEventsAdapter:
    return AllEventsAdapter(config, runtime)


@register_adapter("insider")
def create_insider(config: AdapterConfig, runtime: IngestionRuntime) -> InsiderAdapter:
    return InsiderAdapter(config, runtime)


@register_adapter("townscript")
def create_townscript(config: AdapterConfig, runtime: IngestionRuntime) -> TownscriptAdapter:
    return TownscriptAdapter(config, runtime)


@register_adapter("explara")
def create_explara(config: AdapterConfig, runtime: IngestionRuntime) -> ExplaraAdapter:
    return ExplaraAdapter(config, runtime)


# ============================================================================
# FACTORY
# ============================================================================


def _rate_limit(raw: Optional[Dict[str, Any]], default: RateLimitConfig) -> RateLimitConfig:
    if not raw:
        return default
    try:
        return RateLimitConfig(
            min_delay_s=float(raw.get("min_delay_s", default.min_delay_s)),
            max_concurrent=int(raw.get("max_concurrent", default.max_concurrent)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid rate_limit block {raw}: {e}") from e


class AdapterFactory:
    """
    Factory for creating source adapters from YAML configuration.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        settings: Optional[Settings] = None,
        runtime: Optional[IngestionRuntime] = None,
    ):
        """
        Initialize the factory.

        Args:
            config: Parsed ingestion config. Defaults to ingestion.yaml.
            settings: Settings for API keys and runtime defaults
            runtime: Shared runtime; built from settings when omitted
        """
        self._config = config
        self.settings = settings or get_settings()
        self._runtime = runtime

    @property
    def config(self) -> Dict[str, Any]:
        """Load and cache configuration."""
        if self._config is None:
            self._config = Config.load_ingestion_config()
        return self._config

    @property
    def runtime(self) -> IngestionRuntime:
        if self._runtime is None:
            self._runtime = IngestionRuntime.from_settings(
                self.settings, default_rate_limit=self.default_rate_limit
            )
        return self._runtime

    @property
    def default_rate_limit(self) -> RateLimitConfig:
        return _rate_limit(self.config.get("rate_limit"), RateLimitConfig())

    def section(self, name: str) -> Dict[str, Any]:
        """Top-level config block (deduplication, health, orchestrator...)."""
        return dict(self.config.get(name) or {})

    def get_source_config(self, source_name: str) -> Optional[Dict[str, Any]]:
        return (self.config.get("sources") or {}).get(source_name)

    def list_sources(self) -> Dict[str, Dict[str, Any]]:
        """
        List all configured sources with their status.

        Returns:
            Dict mapping source_name -> {enabled, api}
        """
        sources = self.config.get("sources") or {}
        return {
            name: {
                "enabled": bool(cfg.get("enabled", True)),
                "api": bool(cfg.get("api_base_url") and self.settings.api_key_for(name)),
            }
            for name, cfg in sources.items()
        }

    def list_enabled_sources(self) -> List[str]:
        return [name for name, info in self.list_sources().items() if info["enabled"]]

    def build_adapter_config(self, source_name: str) -> AdapterConfig:
        raw = self.get_source_config(source_name)
        if raw is None:
            raise ConfigurationError(f"Source '{source_name}' not found in configuration")

        request = self.config.get("request") or {}
        timeout = raw.get("timeout_s", request.get("timeout_s", self.settings.REQUEST_TIMEOUT_S))
        return AdapterConfig(
            source_id=source_name,
            base_url=str(raw.get("base_url") or ""),
            api_base_url=raw.get("api_base_url"),
            api_key=self.settings.api_key_for(source_name),
            enabled=bool(raw.get("enabled", True)),
            request_timeout=float(timeout),
            rate_limit=_rate_limit(raw.get("rate_limit"), self.default_rate_limit),
            city_slugs={str(k).lower(): str(v) for k, v in (raw.get("city_slugs") or {}).items()},
            custom_config=dict(raw.get("custom_config") or {}),
        )

    def create_adapter(self, source_name: str) -> BaseSourceAdapter:
        """
        Create an adapter for the specified source.

        Raises:
            ConfigurationError: If source is unknown, unregistered or disabled
        """
        adapter_config = self.build_adapter_config(source_name)
        if not adapter_config.enabled:
            raise ConfigurationError(f"Source '{source_name}' is not enabled")

        builder = ADAPTER_REGISTRY.get(source_name)
        if builder is None:
            raise ConfigurationError(
                f"No adapter registered for '{source_name}'. "
                f"Registered: {sorted(ADAPTER_REGISTRY)}"
            )
        return builder(adapter_config, self.runtime)

    def create_all_enabled_adapters(self) -> Dict[str, BaseSourceAdapter]:
        adapters: Dict[str, BaseSourceAdapter] = {}
        for source_name in self.list_enabled_sources():
            adapters[source_name] = self.create_adapter(source_name)
            logger.info(f"Created adapter: {source_name}")
        return adapters
