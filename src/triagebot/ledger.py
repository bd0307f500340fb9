"""Key/value stores and the watermark ledger built on top of them.

The ledger is the only state the bot carries between passes: for each issue
it remembers the creation time of the newest text already interpreted, so a
text is never acted upon twice.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from .models import IssueRef, Watermark

logger = logging.getLogger(__name__)

WATERMARK_PREFIX = "last-command-timestamp-"
KEY_INITIALIZED_AT = "dateDatabaseInitialized"
KEY_LAST_CLEANUP = "lastCleanupInMsecs"
DAY_MSECS = 24 * 60 * 60 * 1000


def now_msecs() -> int:
    return int(time.time() * 1000)


def compute_signature(entries: dict[str, Any]) -> str:
    canonical = json.dumps(entries, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


class KVStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> bool: ...

    def keys(self, prefix: str = "") -> list[str]: ...


class MemoryKVStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._data)


@dataclass
class LedgerDocument:
    entries: dict[str, str]
    version: int = 1
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    signature: str = ""

    def ensure_signature(self) -> None:
        self.signature = compute_signature(self.entries)


def persist_ledger_document(path: Path, document: LedgerDocument) -> None:
    document.ensure_signature()
    payload = {
        "version": document.version,
        "generated_at": document.generated_at,
        "entries": document.entries,
        "signature": document.signature,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)


def load_ledger_document(path: Path) -> LedgerDocument:
    if not path.exists():
        return LedgerDocument(entries={})
    try:
        raw: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Failed to read ledger %s: %s", path, exc)
        return LedgerDocument(entries={})
    if not isinstance(raw, dict) or not isinstance(raw.get("entries"), dict):
        return LedgerDocument(entries={})
    entries = {str(k): str(v) for k, v in raw["entries"].items()}
    doc = LedgerDocument(
        entries=entries,
        version=int(raw.get("version") or 1),
        generated_at=str(raw.get("generated_at") or datetime.now(timezone.utc).isoformat()),
        signature=str(raw.get("signature") or ""),
    )
    if doc.signature and doc.signature != compute_signature(doc.entries):
        logger.warning("Ledger signature mismatch detected at %s; ignoring entries", path)
        return LedgerDocument(entries={}, version=doc.version)
    return doc


class FileKVStore(MemoryKVStore):
    """Memory store that writes one signed JSON document through on every change."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(load_ledger_document(self.path).entries)

    def _flush(self) -> None:
        persist_ledger_document(self.path, LedgerDocument(entries=self.snapshot()))

    def put(self, key: str, value: str) -> None:
        with self._lock:
            super().put(key, value)
            self._flush()

    def remove(self, key: str) -> bool:
        with self._lock:
            removed = super().remove(key)
            if removed:
                self._flush()
            return removed


class EphemeralKVStore(MemoryKVStore):
    """Starts from a copy of ``inner`` and never writes back to it."""

    def __init__(self, inner: KVStore):
        copied: dict[str, str] = {}
        for key in inner.keys():
            value = inner.get(key)
            if value is not None:
                copied[key] = value
        super().__init__(copied)


class WatermarkLedger:
    def __init__(self, store: KVStore, *, clock: Any = now_msecs):
        self.store = store
        self._clock = clock
        self._lock = threading.RLock()
        if self.initialized_at is None:
            self.store.put(KEY_INITIALIZED_AT, str(self._clock()))

    @staticmethod
    def _key(ref: IssueRef) -> str:
        return WATERMARK_PREFIX + ref.key

    @staticmethod
    def _as_int(raw: str | None) -> int | None:
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring non-numeric ledger value %r", raw)
            return None

    @property
    def initialized_at(self) -> int | None:
        return self._as_int(self.store.get(KEY_INITIALIZED_AT))

    def get_watermark(self, ref: IssueRef) -> int | None:
        return self._as_int(self.store.get(self._key(ref)))

    def set_watermark(self, ref: IssueRef, timestamp_msecs: int) -> bool:
        """Persist ``timestamp_msecs`` unless it would move the watermark backwards."""
        with self._lock:
            current = self.get_watermark(ref)
            if current is not None and timestamp_msecs < current:
                logger.warning(
                    "Refusing to move watermark of %s backwards (%d < %d)",
                    ref,
                    timestamp_msecs,
                    current,
                )
                return False
            self.store.put(self._key(ref), str(timestamp_msecs))
            return True

    def watermarks(self) -> list[Watermark]:
        found: list[Watermark] = []
        for key in self.store.keys(WATERMARK_PREFIX):
            value = self._as_int(self.store.get(key))
            if value is not None:
                found.append(Watermark(key[len(WATERMARK_PREFIX) :], value))
        return found

    def cleanup(self, max_age_msecs: int = DAY_MSECS, *, now: int | None = None) -> int:
        """Drop watermarks older than ``max_age_msecs``; runs at most once a day."""
        current = self._clock() if now is None else now
        with self._lock:
            last = self._as_int(self.store.get(KEY_LAST_CLEANUP))
            if last is not None and current - last <= DAY_MSECS:
                return 0
            logger.info("Running ledger cleanup")
            self.store.put(KEY_LAST_CLEANUP, str(current))
            expire_before = current - max_age_msecs
            removed = 0
            for mark in self.watermarks():
                if mark.timestamp_msecs < expire_before:
                    logger.debug("Deleting watermark of %s", mark.issue_key)
                    self.store.remove(WATERMARK_PREFIX + mark.issue_key)
                    removed += 1
            return removed


__all__ = [
    "EphemeralKVStore",
    "FileKVStore",
    "KVStore",
    "LedgerDocument",
    "MemoryKVStore",
    "WatermarkLedger",
    "compute_signature",
    "load_ledger_document",
    "now_msecs",
    "persist_ledger_document",
]
