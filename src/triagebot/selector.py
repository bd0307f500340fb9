"""Processed-text selector.

Decides which texts of an issue (its body and its comments) are eligible for
command interpretation: the author must be authorized, the text must be
recent, and it must be newer than the issue's watermark. The body only
counts while the issue has no watermark at all.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence

from .ledger import DAY_MSECS
from .models import IssueComment, IssueRef, ObservedIssue, TextEntry
from .parser import contains_valid_command

logger = logging.getLogger(__name__)


def _eligible(
    author: str | None,
    created_at_msecs: int,
    *,
    is_authorized: Callable[[str], bool],
    cutoff_msecs: int,
) -> bool:
    if not author or created_at_msecs < cutoff_msecs:
        return False
    return is_authorized(author)


def select_texts(
    issue: ObservedIssue,
    comments: Sequence[IssueComment],
    *,
    watermark: int | None,
    is_authorized: Callable[[str], bool],
    now_msecs: int,
    window_msecs: int = DAY_MSECS,
) -> list[TextEntry]:
    cutoff = now_msecs - window_msecs
    selected: list[TextEntry] = []
    if watermark is None and _eligible(
        issue.author, issue.created_at_msecs, is_authorized=is_authorized, cutoff_msecs=cutoff
    ):
        selected.append(
            TextEntry(
                kind="body",
                author=issue.author or "",
                body=issue.body,
                created_at_msecs=issue.created_at_msecs,
                url=issue.body_url,
            )
        )
    for comment in sorted(comments, key=lambda c: c.created_at_msecs):
        if watermark is not None and comment.created_at_msecs <= watermark:
            continue
        if not _eligible(
            comment.author, comment.created_at_msecs, is_authorized=is_authorized, cutoff_msecs=cutoff
        ):
            continue
        selected.append(
            TextEntry(
                kind="comment",
                author=comment.author or "",
                body=comment.body,
                created_at_msecs=comment.created_at_msecs,
                url=comment.url,
                comment_id=comment.comment_id,
            )
        )
    return selected


def find_candidates(
    issues: Iterable[tuple[ObservedIssue, Sequence[IssueComment]]],
    *,
    watermark_of: Callable[[IssueRef], int | None],
    is_authorized: Callable[[str], bool],
    now_msecs: int,
    window_msecs: int = DAY_MSECS,
) -> list[IssueRef]:
    """Refs of the issues with at least one eligible text carrying a command."""
    refs: list[IssueRef] = []
    for issue, comments in issues:
        texts = select_texts(
            issue,
            comments,
            watermark=watermark_of(issue.ref),
            is_authorized=is_authorized,
            now_msecs=now_msecs,
            window_msecs=window_msecs,
        )
        if any(contains_valid_command(t.body) for t in texts):
            refs.append(issue.ref)
        else:
            logger.debug("No pending commands on %s", issue.ref)
    return refs


__all__ = ["DAY_MSECS", "find_candidates", "select_texts"]
