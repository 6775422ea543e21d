"""
Platform health monitor.

Runs one small bounded fetch per adapter, in parallel, and classifies each
platform:

- healthy: fetch succeeded with at least one event
- degraded: fetch succeeded with zero events (reachable, but empty or blocking)
- down: fetch failed, raised, or did not finish within the check timeout

A bounded per-platform history lets recommendations flag sources that are
consistently empty or slow rather than reacting to one bad check.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from event_ingest.ingestion.adapters.base_adapter import BaseSourceAdapter
from event_ingest.monitoring.metrics import MetricsRegistry
from event_ingest.schemas.event import FetchRequest, HealthStatus, PlatformHealth

logger = logging.getLogger(__name__)

ALL_HEALTHY_MESSAGE = "All platforms are healthy and functioning correctly."


@dataclass
class HealthReport:
    """Aggregated result of one health check."""

    overall_status: HealthStatus
    city: str
    platforms: List[PlatformHealth]
    recommendations: List[str] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    # Cumulative per-platform fetch counters since the runtime started
    metrics: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in HealthStatus}
        for platform in self.platforms:
            counts[platform.status.value] += 1
        return {"total": len(self.platforms), **counts}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_status": self.overall_status.value,
            "timestamp": self.checked_at.isoformat(),
            "city": self.city,
            "summary": self.summary,
            "platforms": [p.model_dump(mode="json") for p in self.platforms],
            "recommendations": list(self.recommendations),
            "metrics": {name: dict(values) for name, values in self.metrics.items()},
        }


def overall_status(platforms: List[PlatformHealth]) -> HealthStatus:
    """healthy iff every platform is healthy; down iff none is; else degraded."""
    healthy = [p for p in platforms if p.status == HealthStatus.HEALTHY]
    if platforms and len(healthy) == len(platforms):
        return HealthStatus.HEALTHY
    if not healthy:
        return HealthStatus.DOWN
    return HealthStatus.DEGRADED


def classify(success: bool, event_count: int) -> HealthStatus:
    if not success:
        return HealthStatus.DOWN
    return HealthStatus.HEALTHY if event_count > 0 else HealthStatus.DEGRADED


class PlatformHealthMonitor:
    """
    On-demand health checks over a set of adapters.

    Example:
        >>> monitor = PlatformHealthMonitor(factory.create_all_enabled_adapters())
        >>> report = monitor.check("Mumbai")
        >>> report.overall_status
        <HealthStatus.DEGRADED: 'degraded'>
    """

    def __init__(
        self,
        adapters: Dict[str, BaseSourceAdapter],
        check_limit: int = 5,
        check_window_days: int = 7,
        check_timeout_s: float = 30.0,
        slow_threshold_ms: float = 10000.0,
        history_size: int = 10,
        consistency_window: int = 3,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.adapters = dict(adapters)
        self.metrics = metrics
        self.check_limit = check_limit
        self.check_window = timedelta(days=check_window_days)
        self.check_timeout_s = check_timeout_s
        self.slow_threshold_ms = slow_threshold_ms
        self.consistency_window = consistency_window
        self._clock = clock
        self._history: Dict[str, Deque[PlatformHealth]] = {}
        self._history_size = history_size
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        adapters: Dict[str, BaseSourceAdapter],
        section: Optional[Dict[str, Any]] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> "PlatformHealthMonitor":
        """Build from the ``health`` block of ingestion.yaml."""
        section = section or {}
        return cls(
            adapters,
            check_limit=int(section.get("check_limit", 5)),
            check_window_days=int(section.get("check_window_days", 7)),
            check_timeout_s=float(section.get("check_timeout_s", 30)),
            slow_threshold_ms=float(section.get("slow_threshold_ms", 10000)),
            history_size=int(section.get("history_size", 10)),
            consistency_window=int(section.get("consistency_window", 3)),
            metrics=metrics,
        )

    # =========================================================================
    # CHECK
    # =========================================================================

    def check_request(self, city: str) -> FetchRequest:
        now = self._clock()
        return FetchRequest(
            city=city, limit=self.check_limit, start_date=now, end_date=now + self.check_window
        )

    def check(self, city: str = "Mumbai") -> HealthReport:
        """
        Check every adapter in parallel.

        Always returns a full per-platform breakdown, even when every
        platform is down.
        """
        request = self.check_request(city)
        logger.info(f"Running platform health check for {city} ({len(self.adapters)} platforms)")

        results: Dict[str, PlatformHealth] = {}
        if self.adapters:
            executor = ThreadPoolExecutor(
                max_workers=len(self.adapters), thread_name_prefix="health"
            )
            try:
                futures = {
                    executor.submit(self.check_platform, name, adapter, request): name
                    for name, adapter in self.adapters.items()
                }
                done, _ = wait(futures, timeout=self.check_timeout_s)
                for future, name in futures.items():
                    if future in done:
                        results[name] = future.result()
                    else:
                        logger.warning(f"Health check for {name} timed out after {self.check_timeout_s}s")
                        results[name] = PlatformHealth(
                            platform=name,
                            status=HealthStatus.DOWN,
                            response_time_ms=self.check_timeout_s * 1000.0,
                            error=f"Health check timed out after {self.check_timeout_s:g}s",
                            checked_at=self._clock(),
                        )
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        platforms = [results[name] for name in self.adapters]
        for platform in platforms:
            self._remember(platform)

        report = HealthReport(
            overall_status=overall_status(platforms),
            city=city,
            platforms=platforms,
            recommendations=self.recommendations(platforms),
            checked_at=self._clock(),
            metrics=self.platform_metrics(),
        )
        logger.info(f"Health check for {city}: {report.overall_status.value} {report.summary}")
        return report

    def platform_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Fetch counters per platform from the shared registry, when one is set."""
        if self.metrics is None:
            return {}
        return {name: self.metrics.platform_summary(name) for name in self.adapters}

    def check_platform(self, name: str, adapter: BaseSourceAdapter, request: FetchRequest) -> PlatformHealth:
        """Run one bounded fetch; never raises."""
        started = time.perf_counter()
        try:
            result = adapter.fetch(request)
        except Exception as e:
            logger.error(f"Health check for {name} raised: {e}", exc_info=True)
            return PlatformHealth(
                platform=name,
                status=HealthStatus.DOWN,
                response_time_ms=_elapsed_ms(started),
                error=str(e) or type(e).__name__,
                checked_at=self._clock(),
            )

        return PlatformHealth(
            platform=name,
            status=classify(result.success, result.event_count),
            event_count=result.event_count,
            response_time_ms=_elapsed_ms(started),
            error=result.error,
            checked_at=self._clock(),
        )

    # =========================================================================
    # HISTORY & RECOMMENDATIONS
    # =========================================================================

    def _remember(self, health: PlatformHealth) -> None:
        with self._lock:
            history = self._history.get(health.platform)
            if history is None:
                history = deque(maxlen=self._history_size)
                self._history[health.platform] = history
            history.append(health)

    def history(self, platform: str) -> List[PlatformHealth]:
        """Recent checks for a platform, oldest first."""
        with self._lock:
            return list(self._history.get(platform, ()))

    def _recent(self, platform: str) -> List[PlatformHealth]:
        recent = self.history(platform)[-self.consistency_window :]
        return recent if len(recent) >= self.consistency_window else []

    def recommendations(self, platforms: List[PlatformHealth]) -> List[str]:
        recommendations: List[str] = []

        for p in platforms:
            if p.status == HealthStatus.DOWN:
                recommendations.append(
                    f"{p.platform}: Platform is down. Error: {p.error or 'Unknown'}. "
                    "Check scraper code and website accessibility."
                )
            elif p.status == HealthStatus.DEGRADED:
                recommendations.append(
                    f"{p.platform}: Platform returns 0 events. May be blocking requests (HTTP 403), "
                    "selectors outdated, or no events available for the city."
                )

        for p in platforms:
            if p.response_time_ms > self.slow_threshold_ms:
                recommendations.append(
                    f"{p.platform}: Slow response time ({p.response_time_ms:.0f}ms). "
                    "Consider optimizing or adding timeout limits."
                )

        for p in platforms:
            recent = self._recent(p.platform)
            if not recent:
                continue
            if all(h.status != HealthStatus.DOWN and h.event_count == 0 for h in recent):
                recommendations.append(
                    f"{p.platform}: Consistently empty over the last {len(recent)} checks. "
                    "Review the listing selectors and city slug mapping."
                )
            if all(h.response_time_ms > self.slow_threshold_ms for h in recent):
                avg = sum(h.response_time_ms for h in recent) / len(recent)
                recommendations.append(
                    f"{p.platform}: Consistently slow over the last {len(recent)} checks "
                    f"(avg {avg:.0f}ms). Consider lowering the request limit or raising rate-limit spacing."
                )

        if not recommendations:
            recommendations.append(ALL_HEALTHY_MESSAGE)
        return recommendations


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 1)
