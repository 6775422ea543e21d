#!/usr/bin/env python3
"""Command-line interface for the event ingestion core.

Commands:
  - event-ingest ingest   : Fetch, merge and deduplicate events for a city
  - event-ingest health   : Check every enabled platform and report status
  - event-ingest sync     : Ingest several cities and upsert them into a catalog
  - event-ingest cleanup  : Deduplicate an exported event catalog (JSON)
  - event-ingest cleanup-expired : Purge listings whose date has passed
  - event-ingest sources  : List configured sources

Typical usage:
  event-ingest ingest --city Mumbai --limit 20 --output events.json
  event-ingest health --city Bengaluru
  event-ingest sync --cities Mumbai Pune --store events.json
  event-ingest cleanup --store events.json --dry-run
  event-ingest cleanup-expired --store events.json
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="event-ingest", description="Event ingestion CLI")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    p.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    sub = p.add_subparsers(dest="cmd")

    # ingest
    pi = sub.add_parser("ingest", help="Fetch and deduplicate events for a city")
    pi.add_argument("--city", required=True, help="City name, e.g. Mumbai")
    pi.add_argument("--category", default=None, help="Optional category filter")
    pi.add_argument("--limit", type=int, default=20, help="Max events per source")
    pi.add_argument("--days", type=int, default=None, help="Only events in the next N days")
    pi.add_argument("--only", nargs="*", default=None, help="Run only these sources")
    pi.add_argument(
        "--store",
        default=None,
        help="JSON event catalog; app-native events are merged from it",
    )
    pi.add_argument(
        "--save", action="store_true", help="Upsert the ingested events into --store"
    )
    pi.add_argument("--output", "-o", default=None, help="Write events JSON here")

    # health
    ph = sub.add_parser("health", help="Check health of all platforms")
    ph.add_argument("--city", default="Mumbai", help="City to check")

    # sync
    ps = sub.add_parser("sync", help="Ingest several cities into a JSON catalog")
    ps.add_argument("--cities", nargs="+", required=True, help="Cities to sync")
    ps.add_argument("--store", required=True, help="Path to the JSON event catalog")
    ps.add_argument("--days", type=int, default=None, help="Forward window in days")
    ps.add_argument("--limit", type=int, default=None, help="Max events per source per city")
    ps.add_argument("--only", nargs="*", default=None, help="Run only these sources")

    # cleanup
    pc = sub.add_parser("cleanup", help="Remove duplicate events from a JSON catalog")
    pc.add_argument("--store", required=True, help="Path to the JSON event catalog")
    pc.add_argument("--city", default=None, help="Limit the pass to one city")
    pc.add_argument("--dry-run", action="store_true", help="Report without deleting")

    # cleanup-expired
    pe = sub.add_parser("cleanup-expired", help="Purge past events from a JSON catalog")
    pe.add_argument("--store", required=True, help="Path to the JSON event catalog")
    pe.add_argument("--city", default=None, help="Limit the purge to one city")
    pe.add_argument("--dry-run", action="store_true", help="Report without deleting")

    # sources
    sub.add_parser("sources", help="List configured sources")

    return p.parse_args(argv)


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON in event catalog: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.version:
        from event_ingest import __version__

        print(f"event-ingest version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    from event_ingest.configs.settings import get_settings
    from event_ingest.monitoring.logging import configure_logging

    settings = get_settings()
    configure_logging(args.log_level or settings.LOG_LEVEL, json_logs=args.json_logs or settings.LOG_JSON)

    if args.cmd == "cleanup":
        from event_ingest.ingestion.deduplication import DeduplicationEngine
        from event_ingest.ingestion.factory import AdapterFactory
        from event_ingest.ingestion.persist import JsonFileEventStore, cleanup_duplicates

        path = Path(args.store)
        if not path.exists():
            raise FileNotFoundError(f"Event catalog not found: {path}")

        factory = AdapterFactory(settings=settings)
        engine = DeduplicationEngine.from_config(
            factory.section("deduplication"), timezone_name=settings.DEFAULT_TIMEZONE
        )
        store = JsonFileEventStore(path)
        result = cleanup_duplicates(store, engine, dry_run=bool(args.dry_run), city=args.city)

        print(_dump(result.to_dict()))
        return 0

    if args.cmd == "cleanup-expired":
        from event_ingest.ingestion.factory import AdapterFactory
        from event_ingest.ingestion.persist import JsonFileEventStore, cleanup_expired

        path = Path(args.store)
        if not path.exists():
            raise FileNotFoundError(f"Event catalog not found: {path}")

        section = AdapterFactory(settings=settings).section("sync")
        grace = timedelta(hours=float(section.get("expiry_grace_hours", 24)))
        result = cleanup_expired(
            JsonFileEventStore(path), grace=grace, dry_run=bool(args.dry_run), city=args.city
        )

        print(_dump(result.to_dict()))
        return 0

    from event_ingest.ingestion.factory import AdapterFactory

    factory = AdapterFactory(settings=settings)

    if args.cmd == "sources":
        print(f"{'SOURCE':<15} {'ENABLED':<10} {'MODE'}")
        print("-" * 40)
        for name, info in factory.list_sources().items():
            mode = "api+scrape" if info["api"] else "scrape"
            print(f"{name:<15} {str(info['enabled']):<10} {mode}")
        return 0

    if args.cmd == "health":
        from event_ingest.ingestion.health import PlatformHealthMonitor

        try:
            monitor = PlatformHealthMonitor.from_config(
                factory.create_all_enabled_adapters(),
                factory.section("health"),
                metrics=factory.runtime.metrics,
            )
            report = monitor.check(args.city)
        finally:
            factory.runtime.close()

        print(_dump(report.to_dict()))
        return 0 if report.overall_status.value != "down" else 2

    if args.cmd == "sync":
        from event_ingest.ingestion.orchestrator import IngestionOrchestrator
        from event_ingest.ingestion.persist import EventCatalogWriter, JsonFileEventStore
        from event_ingest.ingestion.sync import SYNC_LIMIT, SYNC_WINDOW_DAYS, sync_events

        section = factory.section("sync")
        store = JsonFileEventStore(args.store)
        try:
            orchestrator = IngestionOrchestrator.from_factory(factory, store=store)
            stats = sync_events(
                orchestrator,
                EventCatalogWriter(store),
                args.cities,
                days=args.days or int(section.get("window_days", SYNC_WINDOW_DAYS)),
                limit=args.limit or int(section.get("limit", SYNC_LIMIT)),
                platforms=args.only,
            )
        finally:
            factory.runtime.close()

        sync_summary = stats.to_dict()
        sync_summary["metrics"] = {
            name: factory.runtime.metrics.platform_summary(name)
            for name in orchestrator.list_adapters()
        }
        print(_dump(sync_summary))
        return 0 if stats.success else 1

    if args.cmd == "ingest":
        from event_ingest.ingestion.orchestrator import IngestionOrchestrator
        from event_ingest.ingestion.persist import EventCatalogWriter, JsonFileEventStore
        from event_ingest.schemas.event import FetchRequest

        if args.save and not args.store:
            print("Error: --save requires --store", file=sys.stderr)
            return 1

        start = end = None
        if args.days:
            start = datetime.now(timezone.utc)
            end = start + timedelta(days=args.days)
        request = FetchRequest(
            city=args.city, category=args.category, limit=args.limit, start_date=start, end_date=end
        )

        store = JsonFileEventStore(args.store) if args.store else None
        try:
            orchestrator = IngestionOrchestrator.from_factory(factory, store=store)
            result = orchestrator.ingest(request, platforms=args.only)
        finally:
            factory.runtime.close()

        summary: dict[str, Any] = {
            "success": result.success,
            "counts_by_source": result.counts_by_source,
            "duplicates_removed": result.duplicates_removed,
            "errors": result.errors,
            "stats": result.stats(),
            "metrics": {
                name: factory.runtime.metrics.platform_summary(name)
                for name in result.platform_results
            },
        }

        if args.save and store is not None:
            external = [e for e in result.events if e.source == "external"]
            summary["upsert"] = EventCatalogWriter(store).upsert_events(external).to_dict()

        if args.output:
            out_path = Path(args.output)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            rows = [e.to_row() for e in result.events]
            out_path.write_text(_dump({"events": rows}), encoding="utf-8")
            summary["output"] = str(out_path)

        print("-" * 40)
        print(f"Ingestion {'SUCCESSFUL' if result.success else 'RETURNED NO EVENTS'}")
        print(f"Events:      {result.total_events}")
        print(f"Summary:     {_dump(summary)}")
        print("-" * 40)
        return 0 if result.success else 1

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
