"""ZenHub REST client (board pipelines and release reports).

ZenHub addresses repositories by their numeric GitHub id, so callers pass
``repo_id`` rather than ``owner/repo``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

DEFAULT_ZENHUB_URL = "https://api.zenhub.com"
HTTP_ERROR_STATUS = 400


class ZenHubAPIError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None, response_text: str | None = None):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


@dataclass
class BoardPipeline:
    pipeline_id: str
    name: str


@dataclass
class ReleaseReport:
    release_id: str
    title: str


@dataclass
class ZenHubClient:
    token: str
    workspace_id: str | None = None
    base_url: str = DEFAULT_ZENHUB_URL
    session: requests.Session | None = None
    timeout: float = 30
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("X-Authentication-Token", self.token)
        self._session.headers.setdefault("Content-Type", "application/json")

    def _request(self, method: str, path: str, *, json_body: Any | None = None) -> Any:
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        response = self._session.request(
            method,
            url,
            json=json_body,
            headers=self._session.headers,
            timeout=self.timeout,
        )
        if response.status_code >= HTTP_ERROR_STATUS:
            raise ZenHubAPIError(
                f"ZenHub API {method} {url} failed with {response.status_code}",
                status=response.status_code,
                response_text=response.text,
            )
        if response.text:
            try:
                return response.json()
            except ValueError:
                return response.text
        return None

    def _board_path(self, repo_id: int) -> str:
        if not self.workspace_id:
            raise ZenHubAPIError("ZenHub workspace_id is not configured")
        return f"/p2/workspaces/{self.workspace_id}/repositories/{repo_id}"

    def get_issue_pipelines(self, repo_id: int, issue_number: int) -> list[str]:
        """Distinct pipeline names the issue currently sits in (normally one)."""
        data = self._request("GET", f"/p1/repositories/{repo_id}/issues/{issue_number}")
        names: list[str] = []
        if isinstance(data, dict):
            single = data.get("pipeline")
            if isinstance(single, dict) and isinstance(single.get("name"), str):
                names.append(single["name"])
            many = data.get("pipelines")
            if isinstance(many, list):
                for entry in many:
                    if isinstance(entry, dict) and isinstance(entry.get("name"), str):
                        names.append(entry["name"])
        return list(dict.fromkeys(names))

    def get_board_pipelines(self, repo_id: int) -> list[BoardPipeline]:
        data = self._request("GET", self._board_path(repo_id) + "/board")
        pipelines: list[BoardPipeline] = []
        if isinstance(data, dict) and isinstance(data.get("pipelines"), list):
            for entry in data["pipelines"]:
                if isinstance(entry, dict) and entry.get("id") and isinstance(entry.get("name"), str):
                    pipelines.append(BoardPipeline(pipeline_id=str(entry["id"]), name=entry["name"]))
        return pipelines

    def move_issue(self, repo_id: int, issue_number: int, pipeline_id: str, position: str = "bottom") -> None:
        self._request(
            "POST",
            self._board_path(repo_id) + f"/issues/{issue_number}/moves",
            json_body={"pipeline_id": pipeline_id, "position": position},
        )

    def list_release_reports(self, repo_id: int) -> list[ReleaseReport]:
        data = self._request("GET", f"/p1/repositories/{repo_id}/reports/releases")
        reports: list[ReleaseReport] = []
        if isinstance(data, list):
            for entry in data:
                if isinstance(entry, dict) and entry.get("release_id") and isinstance(entry.get("title"), str):
                    reports.append(ReleaseReport(release_id=str(entry["release_id"]), title=entry["title"]))
        return reports

    def update_release_issues(
        self,
        release_id: str,
        *,
        add: list[tuple[int, int]] | None = None,
        remove: list[tuple[int, int]] | None = None,
    ) -> None:
        """Add/remove ``(repo_id, issue_number)`` pairs to a release report in one call."""
        payload = {
            "add_issues": [{"repo_id": r, "issue_number": n} for r, n in (add or [])],
            "remove_issues": [{"repo_id": r, "issue_number": n} for r, n in (remove or [])],
        }
        self._request("PATCH", f"/p1/reports/release/{release_id}/issues", json_body=payload)


__all__ = [
    "BoardPipeline",
    "DEFAULT_ZENHUB_URL",
    "ReleaseReport",
    "ZenHubAPIError",
    "ZenHubClient",
]
