"""
event_ingest.runtime.rate_limiter

Per-source request queue: FIFO lanes with start spacing and bounded concurrency.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, replace
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimitConfig:
    """Politeness limits for one source."""

    min_delay_s: float = 1.0
    max_concurrent: int = 1

    def __post_init__(self) -> None:
        if self.min_delay_s < 0:
            raise ValueError("min_delay_s must be >= 0")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")


class _Lane:
    """Queue state for one source. Guarded by ``cond``."""

    def __init__(self, source: str, config: RateLimitConfig) -> None:
        self.source = source
        self.config = config
        self.pending: Deque[Tuple[Future, Callable[[], Any]]] = deque()
        self.active = 0
        self.completed = 0
        self.failed = 0
        self.last_start: Optional[float] = None
        self.dispatcher: Optional[threading.Thread] = None
        self.cond = threading.Condition()


class RequestQueue:
    """
    One logical FIFO queue per source name.

    Work submitted for a source starts in submission order, never sooner than
    ``min_delay_s`` after the previous start for that source, and never with
    more than ``max_concurrent`` units of that source in flight. Sources do
    not share any limiter state. Failed work is not retried.

    A dispatcher thread is started for a lane when work arrives and exits
    once the lane drains.
    """

    def __init__(
        self,
        default_config: Optional[RateLimitConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.default_config = default_config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep
        self._lanes: Dict[str, _Lane] = {}
        self._lanes_lock = threading.Lock()
        self._closed = False

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def configure(self, source: str, config: RateLimitConfig) -> None:
        """Set limits for a source. Applies to work not yet started."""
        lane = self._lane(source)
        with lane.cond:
            lane.config = config
            lane.cond.notify_all()

    def ensure_min_delay(self, source: str, seconds: float) -> None:
        """Raise the spacing for a source to at least ``seconds`` (never lowers it)."""
        lane = self._lane(source)
        with lane.cond:
            if seconds > lane.config.min_delay_s:
                logger.info(
                    f"Raising min delay for {source}: "
                    f"{lane.config.min_delay_s}s -> {seconds}s"
                )
                lane.config = replace(lane.config, min_delay_s=float(seconds))

    def config_for(self, source: str) -> RateLimitConfig:
        lane = self._lane(source)
        with lane.cond:
            return lane.config

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def submit(self, source: str, work: Callable[[], T]) -> "Future[T]":
        """
        Enqueue a unit of work for a source.

        Args:
            source: Source name; selects the lane
            work: Zero-argument callable performing the request

        Returns:
            Future resolved with the work's return value or exception
        """
        if self._closed:
            raise RuntimeError("RequestQueue is closed")

        future: Future = Future()
        lane = self._lane(source)
        with lane.cond:
            lane.pending.append((future, work))
            if lane.dispatcher is None:
                lane.dispatcher = threading.Thread(
                    target=self._dispatch,
                    args=(lane,),
                    name=f"request-queue-{source}",
                    daemon=True,
                )
                lane.dispatcher.start()
            lane.cond.notify_all()
        return future

    def run(self, source: str, work: Callable[[], T], timeout: Optional[float] = None) -> T:
        """Submit work and block until that unit completes; re-raises its exception."""
        return self.submit(source, work).result(timeout=timeout)

    # =========================================================================
    # INTROSPECTION / LIFECYCLE
    # =========================================================================

    def stats(self, source: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        """Queue depth and in-flight counts per source."""
        lanes = self._select(source)

        out: Dict[str, Dict[str, Any]] = {}
        for lane in lanes:
            with lane.cond:
                out[lane.source] = {
                    "queued": len(lane.pending),
                    "active": lane.active,
                    "completed": lane.completed,
                    "failed": lane.failed,
                    "min_delay_s": lane.config.min_delay_s,
                    "max_concurrent": lane.config.max_concurrent,
                }
        return out

    def clear(self, source: Optional[str] = None) -> int:
        """
        Cancel queued (not yet started) work.

        Returns:
            Number of cancelled units
        """
        lanes = self._select(source)

        cancelled = 0
        for lane in lanes:
            with lane.cond:
                while lane.pending:
                    future, _ = lane.pending.popleft()
                    if future.cancel():
                        cancelled += 1
                lane.cond.notify_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} queued request(s)")
        return cancelled

    def close(self) -> None:
        """Cancel queued work and refuse new submissions. In-flight work finishes."""
        self._closed = True
        self.clear()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _lane(self, source: str) -> _Lane:
        with self._lanes_lock:
            lane = self._lanes.get(source)
            if lane is None:
                lane = _Lane(source, self.default_config)
                self._lanes[source] = lane
            return lane

    def _select(self, source: Optional[str]) -> List[_Lane]:
        with self._lanes_lock:
            if source is None:
                return list(self._lanes.values())
            lane = self._lanes.get(source)
            return [lane] if lane else []

    def _dispatch(self, lane: _Lane) -> None:
        while True:
            with lane.cond:
                while lane.pending and lane.active >= lane.config.max_concurrent:
                    lane.cond.wait()
                if not lane.pending:
                    lane.dispatcher = None
                    return

                wait_s = 0.0
                if lane.last_start is not None:
                    wait_s = lane.last_start + lane.config.min_delay_s - self._clock()

                if wait_s <= 0:
                    future, work = lane.pending.popleft()
                    if not future.set_running_or_notify_cancel():
                        continue
                    lane.active += 1
                    lane.last_start = self._clock()
                    threading.Thread(
                        target=self._execute,
                        args=(lane, future, work),
                        name=f"request-{lane.source}",
                        daemon=True,
                    ).start()
                    continue

            self._sleep(wait_s)

    def _execute(self, lane: _Lane, future: Future, work: Callable[[], Any]) -> None:
        error: Optional[BaseException] = None
        result: Any = None
        try:
            result = work()
        except Exception as e:
            error = e

        # Free the slot before resolving so callers observe settled stats
        with lane.cond:
            lane.active -= 1
            if error is None:
                lane.completed += 1
            else:
                lane.failed += 1
            lane.cond.notify_all()

        if error is None:
            future.set_result(result)
        else:
            future.set_exception(error)
