"""Collaborator contracts used by the reconciliation engine, plus the
GitHub/ZenHub backed implementation.

The engine only talks to the protocols below; tests substitute in-memory
fakes and production wires :class:`GitHubZenHubRemote`.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Protocol

from .errors import UserNotFoundError
from .github_rest import GitHubRestClient
from .models import IssueComment, IssueRef, ObservedIssue
from .retry import RetryConfig, run_with_retries
from .zenhub import ZenHubClient

logger = logging.getLogger(__name__)


class IssueReader(Protocol):
    def get_issue(self, ref: IssueRef) -> ObservedIssue: ...

    def get_comments(self, ref: IssueRef) -> list[IssueComment]: ...


class IssueWriter(Protocol):
    def list_labels(self, ref: IssueRef) -> list[str]: ...

    def set_labels(self, ref: IssueRef, add: list[str], remove: list[str]) -> None: ...

    def set_assignees(self, ref: IssueRef, add: list[str], remove: list[str]) -> None: ...

    def set_open_state(self, ref: IssueRef, is_open: bool) -> None: ...

    def find_pipeline(self, ref: IssueRef, name: str) -> str | None: ...

    def move_pipeline(self, ref: IssueRef, pipeline_id: str) -> None: ...

    def find_release(self, ref: IssueRef, title: str) -> str | None: ...

    def update_release(
        self, release_id: str, add: list[IssueRef], remove: list[IssueRef]
    ) -> None: ...


class UserResolver(Protocol):
    def resolve_user(self, login: str) -> str:
        """Return the canonical login, raising UserNotFoundError for unknown users."""
        ...


class ErrorNotifier(Protocol):
    def post_comment(self, ref: IssueRef, message: str) -> None: ...


class GitHubZenHubRemote:
    """Reader, writer, user resolver and notifier over the GitHub and ZenHub APIs."""

    def __init__(
        self,
        github: GitHubRestClient,
        zenhub: ZenHubClient | None = None,
        retry_cfg: RetryConfig | None = None,
    ):
        self.github = github
        self.zenhub = zenhub
        self.retry_cfg = retry_cfg
        self._repo_ids: dict[str, int] = {}
        self._lock = threading.Lock()

    def _repo_id(self, ref: IssueRef) -> int:
        with self._lock:
            cached = self._repo_ids.get(ref.full_name)
        if cached is not None:
            return cached
        repo_id = self.github.get_repository_id(ref)
        with self._lock:
            self._repo_ids[ref.full_name] = repo_id
        return repo_id

    # ---- IssueReader --------------------------------------------------
    def get_issue(self, ref: IssueRef) -> ObservedIssue:
        issue = self.github.get_issue(ref)
        if self.zenhub is None:
            return issue
        pipelines = self.zenhub.get_issue_pipelines(self._repo_id(ref), ref.number)
        return dataclasses.replace(issue, pipelines=tuple(pipelines))

    def get_comments(self, ref: IssueRef) -> list[IssueComment]:
        return self.github.list_comments(ref)

    def list_recent_issues(self, full_name: str, since_msecs: int) -> list[IssueRef]:
        since = datetime.fromtimestamp(since_msecs / 1000, tz=timezone.utc)
        return self.github.list_issues_updated_since(
            full_name, since.strftime("%Y-%m-%dT%H:%M:%SZ")
        )

    # ---- UserResolver -------------------------------------------------
    def resolve_user(self, login: str) -> str:
        resolved = run_with_retries(
            lambda: self.github.get_user(login), cfg=self.retry_cfg, description=f"user {login}"
        )
        if resolved is None:
            raise UserNotFoundError(login)
        return resolved

    # ---- IssueWriter --------------------------------------------------
    def list_labels(self, ref: IssueRef) -> list[str]:
        return self.github.list_labels(ref)

    def set_labels(self, ref: IssueRef, add: list[str], remove: list[str]) -> None:
        self.github.add_labels(ref, add)
        for label in remove:
            self.github.remove_label(ref, label)

    def set_assignees(self, ref: IssueRef, add: list[str], remove: list[str]) -> None:
        self.github.add_assignees(ref, add)
        self.github.remove_assignees(ref, remove)

    def set_open_state(self, ref: IssueRef, is_open: bool) -> None:
        self.github.update_issue(ref, state="open" if is_open else "closed")

    def find_pipeline(self, ref: IssueRef, name: str) -> str | None:
        if self.zenhub is None:
            logger.warning("ZenHub is not configured; cannot resolve pipeline %r", name)
            return None
        for pipeline in self.zenhub.get_board_pipelines(self._repo_id(ref)):
            if pipeline.name.lower() == name.lower():
                return pipeline.pipeline_id
        return None

    def move_pipeline(self, ref: IssueRef, pipeline_id: str) -> None:
        if self.zenhub is None:
            raise RuntimeError("ZenHub is not configured")
        self.zenhub.move_issue(self._repo_id(ref), ref.number, pipeline_id)

    def find_release(self, ref: IssueRef, title: str) -> str | None:
        if self.zenhub is None:
            logger.warning("ZenHub is not configured; cannot resolve release %r", title)
            return None
        for report in self.zenhub.list_release_reports(self._repo_id(ref)):
            if report.title == title:
                return report.release_id
        return None

    def update_release(self, release_id: str, add: list[IssueRef], remove: list[IssueRef]) -> None:
        if self.zenhub is None:
            raise RuntimeError("ZenHub is not configured")
        self.zenhub.update_release_issues(
            release_id,
            add=self._pairs(add),
            remove=self._pairs(remove),
        )

    def _pairs(self, refs: Iterable[IssueRef]) -> list[tuple[int, int]]:
        return [(self._repo_id(ref), ref.number) for ref in refs]

    # ---- ErrorNotifier ------------------------------------------------
    def post_comment(self, ref: IssueRef, message: str) -> None:
        self.github.create_comment(ref, message)


__all__ = [
    "ErrorNotifier",
    "GitHubZenHubRemote",
    "IssueReader",
    "IssueWriter",
    "UserResolver",
]
