from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

GITHUB_WEB_URL = "https://github.com"


class ErrorKind(str, Enum):
    """Classes of failure surfaced back to the author of a command."""

    ARITY = "arity"
    RESOLUTION = "resolution"
    TRANSIENT = "transient"
    VALIDATION = "validation"


@dataclass(frozen=True)
class IssueRef:
    owner: str
    repo: str
    number: int

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def key(self) -> str:
        return f"{self.owner}_{self.repo}-{self.number}"

    @property
    def html_url(self) -> str:
        return f"{GITHUB_WEB_URL}/{self.owner}/{self.repo}/issues/{self.number}"

    def __str__(self) -> str:
        return f"{self.full_name}#{self.number}"

    @classmethod
    def parse(cls, text: str) -> IssueRef:
        """Parse ``owner/repo#123`` (also accepts ``owner/repo/123``)."""
        raw = text.strip()
        if "#" in raw:
            repo_part, _, num = raw.partition("#")
        else:
            repo_part, _, num = raw.rpartition("/")
        owner, sep, repo = repo_part.partition("/")
        if not sep or not owner or not repo or not num.isdigit():
            raise ValueError(f"Invalid issue reference: {text!r} (expected owner/repo#N)")
        return cls(owner=owner, repo=repo, number=int(num))


@dataclass(frozen=True)
class CommandToken:
    name: str
    params: tuple[str, ...]
    source_line: str


@dataclass(frozen=True)
class AuthorizedActor:
    login: str


@dataclass(frozen=True)
class Watermark:
    issue_key: str
    timestamp_msecs: int


@dataclass
class ReconciliationError:
    """Everything needed to build a reply to the author of a failing command."""

    message: str
    kind: ErrorKind = ErrorKind.RESOLUTION
    offending_command: str | None = None
    source_url: str | None = None

    def with_source(self, command: str | None, url: str | None) -> ReconciliationError:
        return ReconciliationError(
            message=self.message,
            kind=self.kind,
            offending_command=self.offending_command or command,
            source_url=self.source_url or url,
        )


@dataclass(frozen=True)
class IssueComment:
    comment_id: int
    author: str | None
    body: str
    created_at_msecs: int
    url: str | None = None


@dataclass(frozen=True)
class ObservedIssue:
    """Snapshot of the issue as last reported by the remote system."""

    ref: IssueRef
    labels: frozenset[str]
    assignees: frozenset[str]
    is_open: bool
    pipelines: tuple[str, ...] = ()
    body: str = ""
    author: str | None = None
    created_at_msecs: int = 0
    issue_id: int | None = None

    @property
    def body_url(self) -> str:
        suffix = f"#issue-{self.issue_id}" if self.issue_id is not None else ""
        return self.ref.html_url + suffix


@dataclass(frozen=True)
class TextEntry:
    """An issue body or comment whose commands may be interpreted."""

    kind: str  # body | comment
    author: str
    body: str
    created_at_msecs: int
    url: str | None = None
    comment_id: int | None = None


def origin_key(field_name: str, value: str | None = None) -> str:
    """Key of one desired delta, e.g. ``label:kind/bug`` or ``pipeline``."""
    return field_name if value is None else f"{field_name}:{value}"


@dataclass
class DesiredState:
    labels: set[str] = field(default_factory=set)
    assignees: set[str] = field(default_factory=set)
    is_open: bool = True
    pipeline: str | None = None
    releases_to_add: list[str] = field(default_factory=list)
    releases_to_remove: list[str] = field(default_factory=list)
    # delta key -> command line that requested it, for error replies
    origins: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_observed(cls, observed: ObservedIssue) -> DesiredState:
        # A multi-pipeline observation is carried as "no desired pipeline";
        # the reconciler rejects moves for such issues.
        pipeline = observed.pipelines[0] if len(observed.pipelines) == 1 else None
        return cls(
            labels=set(observed.labels),
            assignees=set(observed.assignees),
            is_open=observed.is_open,
            pipeline=pipeline,
        )

    def clone(self) -> DesiredState:
        return DesiredState(
            labels=set(self.labels),
            assignees=set(self.assignees),
            is_open=self.is_open,
            pipeline=self.pipeline,
            releases_to_add=list(self.releases_to_add),
            releases_to_remove=list(self.releases_to_remove),
            origins=dict(self.origins),
        )

    def copy_from(self, other: DesiredState) -> None:
        self.labels = set(other.labels)
        self.assignees = set(other.assignees)
        self.is_open = other.is_open
        self.pipeline = other.pipeline
        self.releases_to_add = list(other.releases_to_add)
        self.releases_to_remove = list(other.releases_to_remove)
        self.origins = dict(other.origins)

    def note(self, key: str, command: str) -> None:
        self.origins[key] = command


__all__ = [
    "AuthorizedActor",
    "CommandToken",
    "DesiredState",
    "ErrorKind",
    "IssueComment",
    "IssueRef",
    "ObservedIssue",
    "ReconciliationError",
    "TextEntry",
    "Watermark",
    "origin_key",
]
