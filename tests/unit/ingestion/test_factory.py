"""
Unit tests for the factory module.

Tests for AdapterFactory config handling and the adapter registry.
"""

import pytest

from event_ingest.configs.settings import Settings
from event_ingest.ingestion.adapters import AllEventsAdapter, InsiderAdapter
from event_ingest.ingestion.adapters.base_adapter import CardListingAdapter
from event_ingest.ingestion.factory import ADAPTER_REGISTRY, AdapterFactory, register_adapter
from event_ingest.runtime.errors import ConfigurationError

# =============================================================================
# TEST CONFIG FIXTURES
# =============================================================================


@pytest.fixture
def sample_config():
    """Sample ingestion config for testing."""
    return {
        "sources": {
            "allevents": {
                "enabled": True,
                "base_url": "https://allevents.in",
                "api_base_url": "https://allevents.in/api/v2",
                "rate_limit": {"min_delay_s": 0, "max_concurrent": 2},
                "city_slugs": {"Delhi": "new-delhi"},
            },
            "insider": {
                "enabled": True,
                "base_url": "https://insider.in",
                "timeout_s": 5,
            },
            "explara": {"enabled": False, "base_url": "https://www.explara.com"},
        },
        "rate_limit": {"min_delay_s": 0.5},
        "request": {"timeout_s": 8},
        "deduplication": {"title_threshold": 0.9},
    }


@pytest.fixture
def factory(sample_config, runtime):
    settings = Settings(_env_file=None, ALLEVENTS_API_KEY="secret", INSIDER_API_KEY="unused")
    return AdapterFactory(config=sample_config, settings=settings, runtime=runtime)


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestListSources:
    def test_list_sources(self, factory):
        """Each source reports whether it is enabled and API-capable."""
        assert factory.list_sources() == {
            "allevents": {"enabled": True, "api": True},
            # A key without an API endpoint keeps the source scrape-only
            "insider": {"enabled": True, "api": False},
            "explara": {"enabled": False, "api": False},
        }

    def test_list_enabled_sources(self, factory):
        """Disabled sources are left out."""
        assert factory.list_enabled_sources() == ["allevents", "insider"]

    def test_section_is_a_copy(self, factory):
        """Mutating a returned section does not change the config."""
        section = factory.section("deduplication")
        section["title_threshold"] = 0.1
        assert factory.section("deduplication") == {"title_threshold": 0.9}
        assert factory.section("missing") == {}


class TestBuildAdapterConfig:
    def test_source_values(self, factory):
        """Per-source values override the shared defaults."""
        config = factory.build_adapter_config("allevents")

        assert config.source_id == "allevents"
        assert config.api_key == "secret"
        assert config.api_enabled is True
        assert config.rate_limit.min_delay_s == 0.0
        assert config.rate_limit.max_concurrent == 2
        assert config.city_slugs == {"delhi": "new-delhi"}
        assert config.request_timeout == 8.0

    def test_defaults_and_overrides(self, factory):
        """Unset values fall back to the shared defaults."""
        config = factory.build_adapter_config("insider")

        assert config.rate_limit.min_delay_s == 0.5
        assert config.rate_limit.max_concurrent == 1
        assert config.request_timeout == 5.0
        assert config.api_enabled is False

    def test_unknown_source(self, factory):
        """An unconfigured source is a configuration error."""
        with pytest.raises(ConfigurationError):
            factory.build_adapter_config("eventbrite")

    def test_invalid_rate_limit(self, factory, sample_config):
        """Invalid rate limits are reported as configuration errors."""
        sample_config["sources"]["insider"]["rate_limit"] = {"min_delay_s": -1}
        with pytest.raises(ConfigurationError):
            factory.build_adapter_config("insider")


class TestCreateAdapter:
    def test_creates_registered_adapters(self, factory):
        """Each source name builds its registered adapter class."""
        assert isinstance(factory.create_adapter("allevents"), AllEventsAdapter)
        assert isinstance(factory.create_adapter("insider"), InsiderAdapter)

    def test_disabled_source(self, factory):
        """Creating a disabled source is refused."""
        with pytest.raises(ConfigurationError):
            factory.create_adapter("explara")

    def test_unregistered_source(self, factory, sample_config):
        """A configured source without an adapter class is refused."""
        sample_config["sources"]["meetup"] = {"enabled": True, "base_url": "https://www.meetup.com"}
        with pytest.raises(ConfigurationError, match="No adapter registered"):
            factory.create_adapter("meetup")

    def test_register_adapter_decorator(self, factory, sample_config, monkeypatch):
        """Classes registered with the decorator can be created."""
        monkeypatch.setattr("event_ingest.ingestion.factory.ADAPTER_REGISTRY", dict(ADAPTER_REGISTRY))
        sample_config["sources"]["meetup"] = {"enabled": True, "base_url": "https://www.meetup.com"}

        class MeetupAdapter(CardListingAdapter):
            url_patterns = ("{base_url}/find/?location=in--{slug}",)

        @register_adapter("meetup")
        def create_meetup(config, runtime):
            return MeetupAdapter(config, runtime)

        adapter = factory.create_adapter("meetup")

        assert isinstance(adapter, MeetupAdapter)
        assert adapter.source_id == "meetup"
        assert "meetup" not in ADAPTER_REGISTRY

    def test_create_all_enabled_adapters(self, factory):
        """Every enabled source gets an adapter, in config order."""
        adapters = factory.create_all_enabled_adapters()
        assert list(adapters) == ["allevents", "insider"]

    def test_adapters_share_the_runtime(self, factory, runtime):
        """All adapters share one runtime."""
        adapters = factory.create_all_enabled_adapters()
        assert all(a.runtime is runtime for a in adapters.values())


def test_default_config_loads_all_sources():
    """The shipped config enables every registered source."""
    factory = AdapterFactory(settings=Settings(_env_file=None))
    assert factory.list_enabled_sources() == ["allevents", "insider", "townscript", "explara"]
    assert set(factory.list_enabled_sources()) <= set(ADAPTER_REGISTRY)
