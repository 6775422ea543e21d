"""
Unit tests for the event-ingest command-line interface.

Network-facing commands run against a mocked AdapterFactory serving stub
adapters; the cleanup commands run against a real JSON catalog in tmp_path.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from event_ingest import __version__
from event_ingest.cli import main
from event_ingest.ingestion.persist import JsonFileEventStore
from event_ingest.monitoring import metrics as m
from event_ingest.monitoring.logging import ADAPTER_LOGGER, ROOT_LOGGER
from event_ingest.monitoring.metrics import MetricsRegistry


@pytest.fixture(autouse=True)
def restore_loggers():
    saved = {}
    for name in (ROOT_LOGGER, ADAPTER_LOGGER):
        logger = logging.getLogger(name)
        saved[name] = (logger.level, logger.propagate, list(logger.handlers))
    yield
    for name, (level, propagate, handlers) in saved.items():
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.propagate = propagate
        logger.handlers = handlers


@pytest.fixture
def mock_factory(monkeypatch):
    """Replace AdapterFactory with a MagicMock; set ``adapters`` on the result."""
    factory = MagicMock()
    factory.section.side_effect = lambda name: {}
    factory.settings.DEFAULT_TIMEZONE = "Asia/Kolkata"
    factory.runtime.metrics = MetricsRegistry()
    monkeypatch.setattr(
        "event_ingest.ingestion.factory.AdapterFactory", MagicMock(return_value=factory)
    )
    return factory


class TestGeneral:
    def test_version(self, capsys):
        """--version prints the package version."""
        assert main(["--version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_command_required(self, capsys):
        """Running without a command is an error."""
        assert main([]) == 1
        assert "Command required" in capsys.readouterr().err


class TestSources:
    def test_lists_configured_sources(self, capsys):
        """sources lists every configured platform."""
        assert main(["sources"]) == 0

        out = capsys.readouterr().out
        for name in ("allevents", "insider", "townscript", "explara"):
            assert name in out


class TestIngest:
    def test_save_requires_store(self, capsys):
        """--save without --store is rejected."""
        assert main(["ingest", "--city", "Mumbai", "--save"]) == 1
        assert "--save requires --store" in capsys.readouterr().err

    def test_writes_output(self, tmp_path, capsys, mock_factory, stub_adapter, sample_events):
        """Ingested events are written to --output and the runtime is closed."""
        mock_factory.create_all_enabled_adapters.return_value = {
            "allevents": stub_adapter("allevents", events=sample_events),
            "insider": stub_adapter("insider", error="HTTP 503 from https://insider.in"),
        }
        out_path = tmp_path / "out" / "events.json"

        code = main(["ingest", "--city", "Mumbai", "--output", str(out_path)])

        assert code == 0
        rows = json.loads(out_path.read_text(encoding="utf-8"))["events"]
        assert len(rows) == 4
        assert "Ingestion SUCCESSFUL" in capsys.readouterr().out
        mock_factory.runtime.close.assert_called_once()

    def test_nothing_fetched_exits_nonzero(self, capsys, mock_factory, stub_adapter):
        """An ingest that returns no events exits with 1."""
        mock_factory.create_all_enabled_adapters.return_value = {
            "allevents": stub_adapter("allevents", error="boom"),
        }

        assert main(["ingest", "--city", "Mumbai"]) == 1
        assert "RETURNED NO EVENTS" in capsys.readouterr().out

    def test_save_upserts_into_store(self, tmp_path, mock_factory, stub_adapter, sample_events):
        """--save upserts the external events into the catalog."""
        mock_factory.create_all_enabled_adapters.return_value = {
            "allevents": stub_adapter("allevents", events=sample_events),
        }
        store_path = tmp_path / "catalog.json"

        assert main(["ingest", "--city", "Mumbai", "--store", str(store_path), "--save"]) == 0
        assert len(JsonFileEventStore(store_path)) == 4

    def test_summary_includes_platform_metrics(self, capsys, mock_factory, stub_adapter, sample_events):
        """The ingest summary reports the runtime's fetch counters per platform."""
        mock_factory.runtime.metrics.inc(m.FETCH_ATTEMPTS, 2, labels={"platform": "allevents"})
        mock_factory.create_all_enabled_adapters.return_value = {
            "allevents": stub_adapter("allevents", events=sample_events),
        }

        assert main(["ingest", "--city", "Mumbai"]) == 0

        out = capsys.readouterr().out
        assert '"metrics"' in out
        assert '"attempts": 2' in out


class TestHealth:
    def test_all_down_exits_with_two(self, capsys, mock_factory, stub_adapter):
        """When every platform is down health exits with 2."""
        mock_factory.create_all_enabled_adapters.return_value = {
            "allevents": stub_adapter("allevents", error="boom"),
            "insider": stub_adapter("insider", error="boom"),
        }

        assert main(["health", "--city", "Pune"]) == 2

        report = json.loads(capsys.readouterr().out)
        assert report["overall_status"] == "down"
        assert report["city"] == "Pune"
        mock_factory.runtime.close.assert_called_once()

    def test_healthy_exits_with_zero(self, capsys, mock_factory, stub_adapter, create_event):
        """A healthy run exits with 0."""
        mock_factory.create_all_enabled_adapters.return_value = {
            "allevents": stub_adapter("allevents", events=[create_event()]),
        }

        assert main(["health"]) == 0
        assert json.loads(capsys.readouterr().out)["overall_status"] == "healthy"

    def test_report_includes_platform_metrics(self, capsys, mock_factory, stub_adapter):
        """Health output carries the runtime's per-platform fetch counters."""
        mock_factory.runtime.metrics.inc(m.FETCH_FAILURES, labels={"platform": "insider"})
        mock_factory.create_all_enabled_adapters.return_value = {
            "insider": stub_adapter("insider", error="boom"),
        }

        main(["health"])

        report = json.loads(capsys.readouterr().out)
        assert report["metrics"]["insider"]["failures"] == 1


class TestCleanup:
    @pytest.fixture
    def catalog_path(self, tmp_path, create_event):
        path = tmp_path / "catalog.json"
        store = JsonFileEventStore(path)
        store.insert(
            create_event(
                id="keep",
                title="Summer Jazz Night",
                venue="City Club",
                description="Live jazz quartet",
                image_url="https://img.example/jazz.jpg",
            )
        )
        store.insert(
            create_event(id="drop", title="Summer Jazz Night", venue="City Club", source_platform="insider")
        )
        return path

    def test_dry_run_reports_only(self, catalog_path, capsys):
        """A dry run prints the duplicate ids and leaves the file alone."""
        assert main(["cleanup", "--store", str(catalog_path), "--dry-run"]) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["dry_run"] is True
        assert result["ids_deleted"] == ["drop"]
        assert len(JsonFileEventStore(catalog_path)) == 2

    def test_deletes_duplicates(self, catalog_path):
        """cleanup removes the losing duplicate from the catalog."""
        assert main(["cleanup", "--store", str(catalog_path)]) == 0
        assert [e.id for e in JsonFileEventStore(catalog_path).list_events()] == ["keep"]

    def test_missing_catalog(self, tmp_path, capsys):
        """A missing catalog file is an error."""
        assert main(["cleanup", "--store", str(tmp_path / "none.json")]) == 1
        assert "Event catalog not found" in capsys.readouterr().err


class TestSync:
    def test_syncs_cities_into_store(self, tmp_path, capsys, mock_factory, stub_adapter, sample_events):
        """Every city is synced into the catalog and the stats are printed as JSON."""
        mock_factory.create_all_enabled_adapters.return_value = {
            "allevents": stub_adapter("allevents", events=sample_events),
        }
        store_path = tmp_path / "catalog.json"

        assert main(["sync", "--cities", "Mumbai", "Pune", "--store", str(store_path)]) == 0

        stats = json.loads(capsys.readouterr().out)
        assert stats["inserted"] == 4
        assert stats["unchanged"] == 4
        assert stats["by_city"] == {"Mumbai": 4, "Pune": 4}
        assert stats["metrics"]["allevents"]["platform"] == "allevents"
        assert len(JsonFileEventStore(store_path)) == 4
        mock_factory.runtime.close.assert_called_once()

    def test_days_sets_the_window(self, tmp_path, mock_factory, stub_adapter, sample_events):
        """--days bounds the fetch window of every city."""
        adapter = stub_adapter("allevents", events=sample_events)
        mock_factory.create_all_enabled_adapters.return_value = {"allevents": adapter}

        main(["sync", "--cities", "Mumbai", "--store", str(tmp_path / "c.json"), "--days", "30"])

        request = adapter.requests[0]
        assert request.end_date - request.start_date == timedelta(days=30)
        assert request.limit == 50

    def test_nothing_synced_exits_nonzero(self, tmp_path, mock_factory, stub_adapter):
        """A sync that writes no events exits with 1."""
        mock_factory.create_all_enabled_adapters.return_value = {
            "allevents": stub_adapter("allevents", error="boom"),
        }

        assert main(["sync", "--cities", "Mumbai", "--store", str(tmp_path / "c.json")]) == 1


class TestCleanupExpired:
    @pytest.fixture
    def catalog_path(self, tmp_path, create_event):
        path = tmp_path / "catalog.json"
        store = JsonFileEventStore(path)
        past = datetime.now(timezone.utc) - timedelta(days=3)
        store.insert(create_event(id="past", title="Last Week Gig", event_date=past))
        store.insert(create_event(id="future", title="Next Month Gig", event_date=past + timedelta(days=40)))
        return path

    def test_purges_past_events(self, catalog_path, capsys):
        """Events that started more than a day ago are removed from the catalog."""
        assert main(["cleanup-expired", "--store", str(catalog_path)]) == 0

        assert json.loads(capsys.readouterr().out)["ids_deleted"] == ["past"]
        assert [e.id for e in JsonFileEventStore(catalog_path).list_events()] == ["future"]

    def test_dry_run_reports_only(self, catalog_path, capsys):
        """A dry run prints the expired ids and leaves the file alone."""
        assert main(["cleanup-expired", "--store", str(catalog_path), "--dry-run"]) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["dry_run"] is True
        assert result["ids_deleted"] == ["past"]
        assert len(JsonFileEventStore(catalog_path)) == 2

    def test_missing_catalog(self, tmp_path, capsys):
        """A missing catalog file is an error."""
        assert main(["cleanup-expired", "--store", str(tmp_path / "none.json")]) == 1
        assert "Event catalog not found" in capsys.readouterr().err
