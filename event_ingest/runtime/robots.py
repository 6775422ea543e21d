"""
event_ingest.runtime.robots

robots.txt politeness checker with a per-origin TTL cache.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

from .errors import NetworkFailure
from .http import HttpClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RobotsDecision:
    allowed: bool
    reason: str = ""
    crawl_delay: Optional[float] = None
    from_cache: bool = False


@dataclass
class _Policy:
    parser: Optional[RobotFileParser]
    # "parsed" | "allow_all" | "disallow_all" | "unreachable"
    kind: str
    expires_at: float
    detail: str = ""


class RobotsChecker:
    """
    Fetches, caches and evaluates robots.txt before any scrape request.

    Status handling:
    - 2xx: parse the document
    - 401/403: treat the whole origin as disallowed
    - other 4xx (e.g. 404): no policy, everything allowed
    - network error, timeout or 5xx: ``fail_open`` decides; the outcome is
      cached for ``failure_ttl_s`` only, so the document is retried soon
    """

    def __init__(
        self,
        http: HttpClient,
        *,
        user_agent: str = "*",
        ttl_s: float = 3600.0,
        failure_ttl_s: float = 300.0,
        fail_open: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.http = http
        self.user_agent = user_agent
        self.ttl_s = ttl_s
        self.failure_ttl_s = failure_ttl_s
        self.fail_open = fail_open
        self._clock = clock

        self._cache: Dict[str, _Policy] = {}
        self._cache_lock = threading.Lock()
        self._origin_locks: Dict[str, threading.Lock] = {}

    def check_access(self, url: str) -> RobotsDecision:
        """
        Decide whether ``url`` may be fetched.

        Args:
            url: Absolute http(s) URL

        Returns:
            RobotsDecision with the verdict and any Crawl-delay
        """
        origin = self._origin(url)
        if origin is None:
            return RobotsDecision(allowed=False, reason=f"Not an http(s) URL: {url}")

        policy, from_cache = self._policy_for(origin)

        if policy.kind == "allow_all":
            return RobotsDecision(True, policy.detail, from_cache=from_cache)
        if policy.kind == "disallow_all":
            return RobotsDecision(False, policy.detail, from_cache=from_cache)
        if policy.kind == "unreachable":
            return RobotsDecision(self.fail_open, policy.detail, from_cache=from_cache)

        parser = policy.parser
        allowed = parser.can_fetch(self.user_agent, url)
        delay = parser.crawl_delay(self.user_agent)
        return RobotsDecision(
            allowed=allowed,
            reason="allowed by robots.txt" if allowed else "disallowed by robots.txt",
            crawl_delay=float(delay) if delay is not None else None,
            from_cache=from_cache,
        )

    def is_allowed(self, url: str) -> bool:
        return self.check_access(url).allowed

    def clear(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _origin(url: str) -> Optional[str]:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            return None
        return f"{parts.scheme}://{parts.netloc.lower()}"

    def _lock_for(self, origin: str) -> threading.Lock:
        with self._cache_lock:
            lock = self._origin_locks.get(origin)
            if lock is None:
                lock = threading.Lock()
                self._origin_locks[origin] = lock
            return lock

    def _cached(self, origin: str) -> Optional[_Policy]:
        with self._cache_lock:
            policy = self._cache.get(origin)
        if policy is not None and policy.expires_at > self._clock():
            return policy
        return None

    def _policy_for(self, origin: str):
        policy = self._cached(origin)
        if policy is not None:
            return policy, True

        # One fetch per origin even under concurrent checks
        with self._lock_for(origin):
            policy = self._cached(origin)
            if policy is not None:
                return policy, True
            policy = self._fetch(origin)
            with self._cache_lock:
                self._cache[origin] = policy
            return policy, False

    def _fetch(self, origin: str) -> _Policy:
        robots_url = f"{origin}/robots.txt"
        now = self._clock()
        try:
            text = self.http.get_text(robots_url)
        except NetworkFailure as e:
            status = e.status_code
            if status in (401, 403):
                logger.info(f"robots.txt at {origin} returned {status}; disallowing all")
                return _Policy(None, "disallow_all", now + self.ttl_s, f"robots.txt returned {status}")
            if status is not None and 400 <= status < 500:
                return _Policy(None, "allow_all", now + self.ttl_s, f"no robots.txt ({status})")

            verdict = "allowing" if self.fail_open else "denying"
            logger.warning(f"robots.txt unreachable for {origin} ({e}); {verdict} by policy")
            return _Policy(
                None,
                "unreachable",
                now + self.failure_ttl_s,
                f"robots.txt unreachable: {e}",
            )

        parser = RobotFileParser(robots_url)
        parser.parse(text.splitlines())
        logger.debug(f"Cached robots.txt for {origin}")
        return _Policy(parser, "parsed", now + self.ttl_s)
