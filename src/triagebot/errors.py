"""Error taxonomy, redaction and error-reply rendering.

Public API:
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
- render_error_reply(author, error) -> str

Only ``transient`` failures are retried; everything else is surfaced to the
author of the command that caused it, exactly once.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import requests

from .models import ErrorKind, ReconciliationError

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"https://hooks\.slack\.com/services/[A-Za-z0-9/]+"),
    re.compile(r"(?i)(authorization:\s*(?:bearer|token)\s+)\S+"),
]

_REDACTION_PLACEHOLDER = "<redacted>"

HTTP_UNPROCESSABLE = 422
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500

ASSIGNEE_NOTE = (
    "\n\nNote that only org members, repo collaborators and people who have "
    "commented on this issue/PR can be assigned."
)

GENERIC_ERROR_MESSAGE = "A generic error occured. :thinking:"


class TriageError(RuntimeError):
    """Base class for errors raised by triagebot collaborators."""


class UserNotFoundError(TriageError):
    def __init__(self, login: str):
        super().__init__(f"User not found: {login}")
        self.login = login


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    kind: ErrorKind = ErrorKind.TRANSIENT
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Replace credentials (tokens, webhook URLs) in ``text`` with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def _status_of(exc: BaseException) -> int | None:
    status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception raised at the I/O boundary.

    - HTTP 422 -> 'remote.validation' (policy rejection, never retried)
    - HTTP 429 / 5xx, rate limit wording -> transient
    - requests connection errors and timeouts -> 'network', transient
    - Fallback -> 'generic', not retried
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__
    status = _status_of(exc)

    if status == HTTP_UNPROCESSABLE or "validation failed" in low:
        return ErrorInfo("remote.validation", redact(msg), name, kind=ErrorKind.VALIDATION)
    if isinstance(exc, UserNotFoundError):
        return ErrorInfo("remote.not_found", redact(msg), name, kind=ErrorKind.RESOLUTION)
    if status == HTTP_TOO_MANY_REQUESTS or "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if "abuse" in low:
        return ErrorInfo("github.abuse", redact(msg), name, transient=True)
    if status is not None and status >= HTTP_SERVER_ERROR:
        return ErrorInfo("remote.server", redact(msg), name, transient=True)
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return ErrorInfo("network", redact(msg), name, transient=True)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    return ErrorInfo("generic", redact(msg), name)


def render_error_reply(author: str, error: ReconciliationError) -> str:
    """Build the comment posted back to ``author`` for ``error``."""
    message = error.message or GENERIC_ERROR_MESSAGE
    reply = f"@{author}: {message}"
    if error.offending_command:
        reply += "<details>\n"
        if error.source_url:
            reply += f"\n\nIn response to [this]({error.source_url}):\n"
        else:
            reply += "\n\nIn response to this:\n"
        reply += f"> {error.offending_command}\n"
        reply += "</details>\n"
    return reply


__all__ = [
    "ASSIGNEE_NOTE",
    "ErrorInfo",
    "TriageError",
    "UserNotFoundError",
    "classify_error",
    "redact",
    "render_error_reply",
]
