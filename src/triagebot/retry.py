"""Centralized retry helper for remote reads and writes.

``run_with_retries`` wraps a single I/O call (never the pure parsing or
state-folding logic) with a fixed backoff delay and a fixed attempt cap.
Failures classified as transient by :func:`triagebot.errors.classify_error`
are retried; anything else propagates immediately. When the attempts are
exhausted the last exception is re-raised unchanged.

Environment overrides:
  TRIAGEBOT_RETRY_ATTEMPTS (default 6)
  TRIAGEBOT_RETRY_DELAY (seconds between attempts, default 10)
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import classify_error

T = TypeVar("T")

DEFAULT_ATTEMPTS = 6
DEFAULT_DELAY_SECONDS = 10.0

logger = logging.getLogger(__name__)


def _env_attempts() -> int:
    return int(os.environ.get("TRIAGEBOT_RETRY_ATTEMPTS", str(DEFAULT_ATTEMPTS)))


def _env_delay() -> float:
    return float(os.environ.get("TRIAGEBOT_RETRY_DELAY", str(DEFAULT_DELAY_SECONDS)))


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=_env_attempts)
    delay: float = field(default_factory=_env_delay)
    sleep: Callable[[float], None] = time.sleep


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc).transient


def run_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig | None = None,
    description: str = "remote call",
) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt >= attempts or not is_transient(exc):
                raise
            logger.warning(
                "[retry] %s failed (%s), attempt %d/%d, sleeping %.2fs",
                description,
                classify_error(exc).message,
                attempt,
                attempts,
                cfg.delay,
            )
            cfg.sleep(cfg.delay)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = ["RetryConfig", "run_with_retries", "is_transient"]
