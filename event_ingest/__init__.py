"""
Event Ingestion core.

Discovers third-party events from several external platforms, normalizes
them into one canonical schema, assigns stable identities, removes
duplicates and reports per-platform health.

Key Components:
- BaseSourceAdapter: API-first / scrape-fallback fetch contract per platform
- RequestQueue, RobotsChecker: per-source pacing and crawl politeness
- Canonicalizer: raw record -> CanonicalEvent with deterministic external_id
- DeduplicationEngine: groups near-duplicates, keeps the most complete record
- IngestionOrchestrator, PlatformHealthMonitor: parallel fan-out over adapters
"""

__version__ = "0.1.0"
