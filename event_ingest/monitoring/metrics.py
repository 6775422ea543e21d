"""Lightweight metrics system with labelled counters and timers.

Adapters record per-platform fetch outcomes from worker threads; health
reports and the CLI read them back through ``platform_summary``.
"""

from __future__ import annotations

import threading
from typing import Any

# Counter / timer names recorded by adapters
FETCH_ATTEMPTS = "fetch_attempts"
FETCH_SUCCESSES = "fetch_successes"
FETCH_FAILURES = "fetch_failures"
ROBOTS_VIOLATIONS = "robots_violations"
SKIPPED_RECORDS = "skipped_records"
EVENTS_FETCHED = "events_fetched"
RESPONSE_TIME_MS = "response_time_ms"


def _key(name: str, labels: dict[str, str] | None) -> str:
    if not labels:
        return name
    parts = [name] + [f"{k}={v}" for k, v in sorted(labels.items())]
    return "|".join(parts)


class MetricsRegistry:
    """Registry for counters and timers."""

    def __init__(self) -> None:
        self.counters: dict[str, float] = {}
        self.timers: dict[str, dict[str, float]] = {}  # sum, count, max, min
        self._lock = threading.Lock()

    def inc(self, name: str, value: float = 1.0, *, labels: dict[str, str] | None = None) -> None:
        """Increment a counter by the given value."""
        k = _key(name, labels)
        with self._lock:
            self.counters[k] = float(self.counters.get(k, 0.0)) + float(value)

    def observe(self, name: str, value: float, *, labels: dict[str, str] | None = None) -> None:
        """Record a timer observation."""
        k = _key(name, labels)
        with self._lock:
            d = self.timers.get(k)
            if d is None:
                d = {"sum": 0.0, "count": 0.0, "max": value, "min": value}
                self.timers[k] = d
            d["sum"] += float(value)
            d["count"] += 1.0
            d["max"] = max(d["max"], float(value))
            d["min"] = min(d["min"], float(value))

    def counter(self, name: str, *, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self.counters.get(_key(name, labels), 0.0)

    def platform_summary(self, platform: str) -> dict[str, Any]:
        """Per-platform roll-up used by health reports and the CLI."""
        labels = {"platform": platform}
        with self._lock:
            timer = dict(self.timers.get(_key(RESPONSE_TIME_MS, labels), {}))

        count = timer.get("count", 0.0)
        return {
            "platform": platform,
            "attempts": int(self.counter(FETCH_ATTEMPTS, labels=labels)),
            "successes": int(self.counter(FETCH_SUCCESSES, labels=labels)),
            "failures": int(self.counter(FETCH_FAILURES, labels=labels)),
            "robots_violations": int(self.counter(ROBOTS_VIOLATIONS, labels=labels)),
            "skipped_records": int(self.counter(SKIPPED_RECORDS, labels=labels)),
            "events_fetched": int(self.counter(EVENTS_FETCHED, labels=labels)),
            "avg_response_time_ms": round(timer["sum"] / count, 1) if count else 0.0,
        }

