"""Cooperative rolling-window rate limiter for outbound chat posts."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_MAX_ACTIONS = 10
DEFAULT_PERIOD_SECONDS = 30.0
RECHECK_SECONDS = 1.0


class RateLimiter:
    """Blocks callers while ``max_actions`` happened in the trailing ``period_seconds``.

    Callers invoke :meth:`delay_if_needed` before acting and :meth:`signal_action`
    after. The limiter never drops work, it only waits.
    """

    def __init__(
        self,
        name: str,
        max_actions: int = DEFAULT_MAX_ACTIONS,
        period_seconds: float = DEFAULT_PERIOD_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.max_actions = max_actions
        self.period_seconds = period_seconds
        self._clock = clock
        self._sleep = sleep
        self._times: list[float] = []
        self._lock = threading.Lock()

    def signal_action(self) -> None:
        with self._lock:
            self._times.append(self._clock())

    def _count_recent(self) -> int:
        cutoff = self._clock() - self.period_seconds
        with self._lock:
            self._times = [t for t in self._times if t >= cutoff]
            return len(self._times)

    def delay_if_needed(self) -> None:
        while True:
            count = self._count_recent()
            if count < self.max_actions:
                return
            logger.warning("Rate limiter '%s' is throttling: %d actions in window", self.name, count)
            self._sleep(RECHECK_SECONDS)


__all__ = ["DEFAULT_MAX_ACTIONS", "DEFAULT_PERIOD_SECONDS", "RateLimiter"]
