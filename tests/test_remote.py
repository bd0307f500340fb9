from __future__ import annotations

import pytest

from triagebot.errors import UserNotFoundError
from triagebot.models import IssueRef, ObservedIssue
from triagebot.remote import GitHubZenHubRemote
from triagebot.zenhub import BoardPipeline, ReleaseReport

REF = IssueRef("acme", "widgets", 7)


class _GitHub:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.users = {"alice": "Alice"}

    def get_issue(self, ref):
        return ObservedIssue(ref=ref, labels=frozenset(), assignees=frozenset(), is_open=True)

    def get_repository_id(self, ref):
        self.calls.append(("repo_id", ref.full_name))
        return 42

    def get_user(self, login):
        return self.users.get(login)

    def add_labels(self, ref, labels):
        self.calls.append(("add_labels", list(labels)))

    def remove_label(self, ref, label):
        self.calls.append(("remove_label", label))

    def update_issue(self, ref, *, state=None):
        self.calls.append(("update_issue", state))

    def list_issues_updated_since(self, full_name, since_iso):
        self.calls.append(("since", full_name, since_iso))
        return []


class _ZenHub:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def get_issue_pipelines(self, repo_id, number):
        return ["Backlog"]

    def get_board_pipelines(self, repo_id):
        return [BoardPipeline("p1", "Backlog"), BoardPipeline("p2", "In Progress")]

    def list_release_reports(self, repo_id):
        return [ReleaseReport("r1", "v1.0")]

    def update_release_issues(self, release_id, *, add, remove):
        self.calls.append(("release", release_id, add, remove))


def test_issue_is_enriched_with_pipelines_and_repo_id_is_cached():
    github = _GitHub()
    remote = GitHubZenHubRemote(github, _ZenHub())

    assert remote.get_issue(REF).pipelines == ("Backlog",)
    remote.get_issue(REF)

    assert github.calls.count(("repo_id", "acme/widgets")) == 1


def test_resolve_user(no_wait):
    remote = GitHubZenHubRemote(_GitHub(), retry_cfg=no_wait)
    assert remote.resolve_user("alice") == "Alice"
    with pytest.raises(UserNotFoundError):
        remote.resolve_user("ghost")


def test_pipeline_lookup_ignores_case():
    remote = GitHubZenHubRemote(_GitHub(), _ZenHub())
    assert remote.find_pipeline(REF, "in progress") == "p2"
    assert remote.find_pipeline(REF, "Done") is None


def test_release_lookup_is_exact_and_update_uses_repo_ids():
    zenhub = _ZenHub()
    remote = GitHubZenHubRemote(_GitHub(), zenhub)
    assert remote.find_release(REF, "V1.0") is None
    release_id = remote.find_release(REF, "v1.0")
    remote.update_release(release_id, add=[REF], remove=[])
    assert zenhub.calls == [("release", "r1", [(42, 7)], [])]


def test_without_zenhub_lookups_miss_and_writes_fail():
    remote = GitHubZenHubRemote(_GitHub())
    assert remote.find_pipeline(REF, "Backlog") is None
    assert remote.find_release(REF, "v1.0") is None
    with pytest.raises(RuntimeError):
        remote.move_pipeline(REF, "p1")
    with pytest.raises(RuntimeError):
        remote.update_release("r1", add=[REF], remove=[])


def test_label_and_state_writes():
    github = _GitHub()
    remote = GitHubZenHubRemote(github)
    remote.set_labels(REF, ["kind/bug"], ["kind/feature", "triage/needs"])
    remote.set_open_state(REF, False)
    assert github.calls == [
        ("add_labels", ["kind/bug"]),
        ("remove_label", "kind/feature"),
        ("remove_label", "triage/needs"),
        ("update_issue", "closed"),
    ]


def test_recent_issues_converts_msecs_to_iso():
    github = _GitHub()
    GitHubZenHubRemote(github).list_recent_issues("acme/widgets", 1_700_000_000_000)
    assert github.calls == [("since", "acme/widgets", "2023-11-14T22:13:20Z")]
