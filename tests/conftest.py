"""Pytest configuration for triagebot tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`), and provides an
in-memory stand-in for the GitHub/ZenHub remote.
"""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path
from typing import Any

import pytest

_TEST_START_TIMES: dict[str, float] = {}
_TEST_DURATIONS: list[tuple[str, float]] = []

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Never sleep between retries inside the test session.
os.environ.setdefault("TRIAGEBOT_RETRY_DELAY", "0")

from triagebot.errors import UserNotFoundError  # noqa: E402
from triagebot.logging import configure_logging  # noqa: E402
from triagebot.models import IssueComment, IssueRef, ObservedIssue  # noqa: E402
from triagebot.retry import RetryConfig  # noqa: E402

NOW = 1_700_000_000_000
HOUR = 60 * 60 * 1000


class FakeRemote:
    """Reader, writer, resolver and notifier backed by dictionaries."""

    def __init__(
        self,
        issue: ObservedIssue,
        comments: list[IssueComment] | None = None,
        *,
        catalog: list[str] | None = None,
        pipelines: dict[str, str] | None = None,
        releases: dict[str, str] | None = None,
        users: set[str] | None = None,
    ):
        self.issue = issue
        self.comments = list(comments or [])
        self.catalog = list(catalog or [])
        self.pipelines = dict(pipelines or {})
        self.releases = dict(releases or {})
        self.users = set(users or set())
        self.calls: list[tuple[Any, ...]] = []
        self.replies: list[tuple[IssueRef, str]] = []
        self.failures: dict[str, list[BaseException]] = {}

    def fail(self, method: str, *excs: BaseException) -> None:
        self.failures.setdefault(method, []).extend(excs)

    def _maybe_fail(self, method: str) -> None:
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)

    @property
    def writes(self) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] in WRITE_METHODS]

    # reader
    def get_issue(self, ref: IssueRef) -> ObservedIssue:
        self._maybe_fail("get_issue")
        return self.issue

    def get_comments(self, ref: IssueRef) -> list[IssueComment]:
        self._maybe_fail("get_comments")
        return list(self.comments)

    # resolver
    def resolve_user(self, login: str) -> str:
        self._maybe_fail("resolve_user")
        for known in self.users:
            if known.lower() == login.lower():
                return known
        raise UserNotFoundError(login)

    # writer
    def list_labels(self, ref: IssueRef) -> list[str]:
        self._maybe_fail("list_labels")
        self.calls.append(("list_labels",))
        return list(self.catalog)

    def set_labels(self, ref: IssueRef, add: list[str], remove: list[str]) -> None:
        self.calls.append(("set_labels", list(add), list(remove)))
        self._maybe_fail("set_labels")

    def set_assignees(self, ref: IssueRef, add: list[str], remove: list[str]) -> None:
        self.calls.append(("set_assignees", list(add), list(remove)))
        self._maybe_fail("set_assignees")

    def set_open_state(self, ref: IssueRef, is_open: bool) -> None:
        self.calls.append(("set_open_state", is_open))
        self._maybe_fail("set_open_state")

    def find_pipeline(self, ref: IssueRef, name: str) -> str | None:
        self._maybe_fail("find_pipeline")
        for pipeline_name, pipeline_id in self.pipelines.items():
            if pipeline_name.lower() == name.lower():
                return pipeline_id
        return None

    def move_pipeline(self, ref: IssueRef, pipeline_id: str) -> None:
        self.calls.append(("move_pipeline", pipeline_id))
        self._maybe_fail("move_pipeline")

    def find_release(self, ref: IssueRef, title: str) -> str | None:
        self._maybe_fail("find_release")
        return self.releases.get(title)

    def update_release(self, release_id: str, add: list[IssueRef], remove: list[IssueRef]) -> None:
        self.calls.append(("update_release", release_id, list(add), list(remove)))
        self._maybe_fail("update_release")

    # notifier
    def post_comment(self, ref: IssueRef, message: str) -> None:
        self._maybe_fail("post_comment")
        self.replies.append((ref, message))


WRITE_METHODS = {"set_labels", "set_assignees", "set_open_state", "move_pipeline", "update_release"}


@pytest.fixture(autouse=True)
def _fresh_logger(capsys):
    # handlers bind sys.stdout at creation; rebind for each test's capture
    configure_logging()


@pytest.fixture
def ref() -> IssueRef:
    return IssueRef("acme", "widgets", 7)


@pytest.fixture
def observed(ref: IssueRef) -> ObservedIssue:
    return ObservedIssue(
        ref=ref,
        labels=frozenset({"kind/bug"}),
        assignees=frozenset({"alice"}),
        is_open=True,
        pipelines=("Backlog",),
        body="Steps to reproduce",
        author="carol",
        created_at_msecs=NOW - 2 * HOUR,
        issue_id=99,
    )


@pytest.fixture
def no_wait() -> RetryConfig:
    return RetryConfig(attempts=3, delay=0, sleep=lambda _s: None)


# --- Timing utilities to help identify slow/stalling tests ---


def pytest_runtest_setup(item):  # type: ignore
    _TEST_START_TIMES[item.nodeid] = time.perf_counter()


def pytest_runtest_teardown(item):  # type: ignore
    start = _TEST_START_TIMES.pop(item.nodeid, None)
    if start is not None:
        duration = time.perf_counter() - start
        _TEST_DURATIONS.append((item.nodeid, duration))


def pytest_sessionfinish(session, exitstatus):  # type: ignore
    if not _TEST_DURATIONS:
        return
    slow = sorted(_TEST_DURATIONS, key=lambda x: x[1], reverse=True)[:10]
    print("\n=== Slowest Tests (top 10) ===")
    for nodeid, secs in slow:
        print(f"{secs:0.3f}s  {nodeid}")
    total_time = sum(d for _, d in _TEST_DURATIONS)
    print(f"Total recorded test time: {total_time:0.3f}s over {len(_TEST_DURATIONS)} tests")
