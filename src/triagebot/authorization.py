"""Allow-list authorization for command authors.

The allow-list is a YAML file::

    userIDs:
      - github: some-login
        mattermost: some-name

and is re-read at most every ``refresh_seconds`` so edits take effect
without a restart.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_SECONDS = 60.0


class TimedFileCache:
    """Caches file contents per path for ``expire_seconds``."""

    def __init__(self, expire_seconds: float, *, clock: Callable[[], float] = time.monotonic):
        self.expire_seconds = expire_seconds
        self._clock = clock
        self._entries: dict[Path, tuple[float, str]] = {}
        self._lock = threading.Lock()

    def read(self, path: Path) -> str:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(path)
            if entry is not None and entry[0] >= now:
                return entry[1]
        contents = path.read_text(encoding="utf-8")
        with self._lock:
            self._entries[path] = (now + self.expire_seconds, contents)
        return contents


def _github_logins(data: Any) -> set[str]:
    logins: set[str] = set()
    if not isinstance(data, dict):
        return logins
    entries = data.get("userIDs")
    if not isinstance(entries, list):
        return logins
    for entry in entries:
        if isinstance(entry, dict) and isinstance(entry.get("github"), str):
            logins.add(entry["github"].lower())
    return logins


class AllowList:
    def __init__(
        self,
        path: Path | str | None,
        *,
        refresh_seconds: float = DEFAULT_REFRESH_SECONDS,
        cache: TimedFileCache | None = None,
    ):
        self.path = Path(path) if path else None
        self._cache = cache or TimedFileCache(refresh_seconds)

    def logins(self) -> set[str] | None:
        """Allowed logins (lowercased); None means every user is allowed."""
        if self.path is None:
            return None
        try:
            data = yaml.safe_load(self._cache.read(self.path))
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Unable to read allow-list %s: %s", self.path, exc)
            return set()
        return _github_logins(data)

    def is_authorized(self, login: str | None) -> bool:
        if not login:
            return False
        allowed = self.logins()
        if allowed is None:
            return True
        return login.lower() in allowed

    __call__ = is_authorized


__all__ = ["AllowList", "TimedFileCache"]
