"""
Ingestion layer for the event ingestion core.

This package fetches events from external platforms, normalizes them,
assigns stable identities, removes duplicates and reports source health.

Key Components:
- BaseSourceAdapter: Abstract fetch contract, API-first with scrape fallback
- AdapterFactory: Builds adapters from ingestion.yaml
- IngestionOrchestrator: Parallel fan-out, merge, deduplicate
- DeduplicationEngine: Cross-source duplicate grouping and selection
- PlatformHealthMonitor: On-demand per-platform health checks
"""
