"""Slack incoming-webhook notifier for reconciliation summaries."""

from __future__ import annotations

from dataclasses import dataclass, field

import requests

from .logging import StructuredLogger, get_logger
from .rate_limit import RateLimiter

HTTP_OK = 200


@dataclass
class ChatNotifier:
    webhook_url: str | None
    rate_limiter: RateLimiter = field(default_factory=lambda: RateLimiter("slack"))
    writes_enabled: bool = True
    session: requests.Session | None = None
    timeout: float = 30
    logger: StructuredLogger = field(default_factory=get_logger)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def post(self, message: str) -> bool:
        """Send ``message`` to the channel; returns True when Slack accepted it."""
        if not self.webhook_url:
            return False
        if not self.writes_enabled:
            self.logger.info(f"Skipping chat post: {message}")
            return False
        self.rate_limiter.delay_if_needed()
        self.rate_limiter.signal_action()
        try:
            response = self._session.post(
                self.webhook_url, json={"text": message}, timeout=self.timeout
            )
        except requests.RequestException as exc:
            self.logger.log_error("chat post failed", error=str(exc))
            return False
        if response.status_code != HTTP_OK:
            self.logger.warning(
                f"chat post rejected with {response.status_code}", body=response.text
            )
            return False
        return True


__all__ = ["ChatNotifier"]
