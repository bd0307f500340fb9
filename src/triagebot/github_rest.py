from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import quote

import requests

from .models import IssueComment, IssueRef, ObservedIssue

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "triagebot-rest/0.3.0"
HTTP_ERROR_STATUS = 400
HTTP_NOT_FOUND = 404


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub REST API returns an error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


def parse_timestamp_msecs(value: Any) -> int:
    """Convert a GitHub ISO-8601 timestamp (``2020-01-02T03:04:05Z``) to epoch msecs."""
    if not isinstance(value, str) or not value:
        return 0
    text = value.replace("Z", "+00:00")
    return int(datetime.fromisoformat(text).timestamp() * 1000)


def _login_of(entry: Any) -> str | None:
    if isinstance(entry, dict):
        login = entry.get("login")
        if isinstance(login, str):
            return login
    return None


def _names(entries: Any, key: str) -> frozenset[str]:
    names: set[str] = set()
    if isinstance(entries, list):
        for entry in entries:
            if isinstance(entry, dict) and isinstance(entry.get(key), str):
                names.add(entry[key])
            elif isinstance(entry, str):
                names.add(entry)
    return frozenset(names)


@dataclass
class GitHubRestClient:
    """Lightweight REST client for the issue operations the bot needs."""

    token: str | None
    base_url: str = DEFAULT_API_URL
    session: requests.Session | None = None
    timeout: float = 30
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        if self.token:
            self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    # ---- REST helpers -------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        url = (
            path
            if path.startswith("http")
            else f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        )
        response = self._session.request(
            method,
            url,
            params=params,
            json=json_body,
            headers=self._session.headers,
            timeout=self.timeout,
        )
        if response.status_code >= HTTP_ERROR_STATUS:
            raise GitHubAPIError(
                f"GitHub API {method} {url} failed with {response.status_code}",
                status=response.status_code,
                response_text=response.text,
            )
        if response.text:
            try:
                return response.json()
            except ValueError:
                return response.text
        return None

    def _paginate(
        self, path: str, *, params: dict[str, Any] | None = None
    ) -> list[Any]:
        params = dict(params or {})
        per_page = params.setdefault("per_page", 100)
        params.setdefault("page", 1)
        results: list[Any] = []
        while True:
            data = self._request("GET", path, params=params)
            if not isinstance(data, list):
                break
            results.extend(data)
            if len(data) < per_page:
                break
            params["page"] = params.get("page", 1) + 1
        return results

    @staticmethod
    def _issue_path(ref: IssueRef) -> str:
        return f"/repos/{ref.owner}/{ref.repo}/issues/{ref.number}"

    # ---- Reads --------------------------------------------------------
    def get_issue(self, ref: IssueRef) -> ObservedIssue:
        data = self._request("GET", self._issue_path(ref))
        if not isinstance(data, dict):
            raise GitHubAPIError(f"Unexpected issue payload for {ref}")
        return ObservedIssue(
            ref=ref,
            labels=_names(data.get("labels"), "name"),
            assignees=_names(data.get("assignees"), "login"),
            is_open=data.get("state") == "open",
            body=data.get("body") or "",
            author=_login_of(data.get("user")),
            created_at_msecs=parse_timestamp_msecs(data.get("created_at")),
            issue_id=data.get("id") if isinstance(data.get("id"), int) else None,
        )

    def list_comments(self, ref: IssueRef) -> list[IssueComment]:
        data = self._paginate(self._issue_path(ref) + "/comments")
        comments: list[IssueComment] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            comment_id = entry.get("id")
            comments.append(
                IssueComment(
                    comment_id=comment_id if isinstance(comment_id, int) else 0,
                    author=_login_of(entry.get("user")),
                    body=entry.get("body") or "",
                    created_at_msecs=parse_timestamp_msecs(entry.get("created_at")),
                    url=entry.get("html_url") or f"{ref.html_url}#issuecomment-{comment_id}",
                )
            )
        return comments

    def get_user(self, login: str) -> str | None:
        """Return the canonical login for ``login`` or None when GitHub has no such user."""
        try:
            data = self._request("GET", f"/users/{quote(login, safe='')}")
        except GitHubAPIError as exc:
            if exc.status == HTTP_NOT_FOUND:
                return None
            raise
        return _login_of(data) or login

    def list_issues_updated_since(self, full_name: str, since_iso: str) -> list[IssueRef]:
        """Issues and pull requests of ``full_name`` touched since ``since_iso``."""
        owner, _, repo = full_name.partition("/")
        data = self._paginate(
            f"/repos/{owner}/{repo}/issues",
            params={"state": "all", "since": since_iso, "sort": "updated", "direction": "asc"},
        )
        refs: list[IssueRef] = []
        for entry in data:
            if isinstance(entry, dict) and isinstance(entry.get("number"), int):
                refs.append(IssueRef(owner=owner, repo=repo, number=entry["number"]))
        return refs

    def list_labels(self, ref: IssueRef) -> list[str]:
        data = self._paginate(f"/repos/{ref.owner}/{ref.repo}/labels")
        return sorted(_names(data, "name"))

    def get_repository_id(self, ref: IssueRef) -> int:
        data = self._request("GET", f"/repos/{ref.owner}/{ref.repo}")
        if isinstance(data, dict) and isinstance(data.get("id"), int):
            return int(data["id"])
        raise GitHubAPIError(f"Unable to determine repository id for {ref.full_name}")

    # ---- Writes -------------------------------------------------------
    def add_labels(self, ref: IssueRef, labels: Iterable[str]) -> None:
        label_list = list(labels)
        if label_list:
            self._request("POST", self._issue_path(ref) + "/labels", json_body={"labels": label_list})

    def remove_label(self, ref: IssueRef, label: str) -> None:
        self._request("DELETE", self._issue_path(ref) + f"/labels/{quote(label, safe='')}")

    def add_assignees(self, ref: IssueRef, logins: Iterable[str]) -> None:
        login_list = list(logins)
        if login_list:
            self._request(
                "POST", self._issue_path(ref) + "/assignees", json_body={"assignees": login_list}
            )

    def remove_assignees(self, ref: IssueRef, logins: Iterable[str]) -> None:
        login_list = list(logins)
        if login_list:
            self._request(
                "DELETE", self._issue_path(ref) + "/assignees", json_body={"assignees": login_list}
            )

    def update_issue(self, ref: IssueRef, *, state: str | None = None) -> None:
        payload: dict[str, Any] = {}
        if state is not None:
            payload["state"] = state
        if payload:
            self._request("PATCH", self._issue_path(ref), json_body=payload)

    def create_comment(self, ref: IssueRef, body: str) -> None:
        self._request("POST", self._issue_path(ref) + "/comments", json_body={"body": body})


__all__ = [
    "GitHubAPIError",
    "GitHubRestClient",
    "parse_timestamp_msecs",
]
