from __future__ import annotations

import dataclasses

from conftest import HOUR, NOW, FakeRemote

from triagebot.core import TriageBot
from triagebot.errors import TriageError
from triagebot.github_rest import GitHubAPIError
from triagebot.ledger import MemoryKVStore, WatermarkLedger
from triagebot.models import IssueComment, IssueRef


def _comment(cid: int, ts: int, body: str, author: str = "alice") -> IssueComment:
    return IssueComment(
        comment_id=cid,
        author=author,
        body=body,
        created_at_msecs=ts,
        url=f"https://github.com/acme/widgets/issues/7#issuecomment-{cid}",
    )


def _bot(remote: FakeRemote, no_wait, **kw) -> tuple[TriageBot, WatermarkLedger]:
    ledger = WatermarkLedger(MemoryKVStore(), clock=lambda: NOW)
    kw.setdefault("is_authorized", lambda login: login != "mallory")
    bot = TriageBot(
        reader=remote,
        writer=remote,
        users=remote,
        notifier=remote,
        ledger=ledger,
        retry_cfg=no_wait,
        clock=lambda: NOW,
        **kw,
    )
    return bot, ledger


def _remote(observed, comments) -> FakeRemote:
    return FakeRemote(
        observed,
        comments,
        catalog=["kind/bug", "area/ui", "priority/high"],
        pipelines={"Backlog": "p-1", "Verify": "p-3"},
        users={"alice", "bob"},
    )


def test_commands_from_body_and_comments_are_reconciled(observed, ref, no_wait):
    body_issue = dataclasses.replace(observed, body="/area ui")
    remote = _remote(body_issue, [_comment(1, NOW - HOUR, "/assign bob\n/verify")])
    bot, ledger = _bot(remote, no_wait)
    result = bot.process_issue(ref)
    assert result.ok
    assert result.texts_processed == 2
    assert ("set_labels", ["area/ui"], []) in remote.writes
    assert ("set_assignees", ["bob"], []) in remote.writes
    assert ("move_pipeline", "p-3") in remote.writes
    assert ledger.get_watermark(ref) == NOW - HOUR


def test_second_pass_without_new_text_does_nothing(observed, ref, no_wait):
    remote = _remote(observed, [_comment(1, NOW - HOUR, "/kind bug\n/priority high")])
    bot, _ledger = _bot(remote, no_wait)
    bot.process_issue(ref)
    remote.calls.clear()
    again = bot.process_issue(ref)
    assert again.texts_processed == 0
    assert remote.calls == []


def test_interpretation_error_is_replied_once_and_other_texts_still_apply(observed, ref, no_wait):
    comments = [
        _comment(1, NOW - 2 * HOUR, "/close now"),
        _comment(2, NOW - HOUR, "/priority high"),
    ]
    remote = _remote(observed, comments)
    bot, ledger = _bot(remote, no_wait)
    result = bot.process_issue(ref)
    assert len(result.errors) == 1
    assert len(remote.replies) == 1
    _, reply = remote.replies[0]
    assert reply.startswith("@alice: Command 'close' does not support any parameters.")
    assert "> close now" in reply
    assert "issuecomment-1" in reply
    assert ("set_labels", ["priority/high"], []) in remote.writes
    assert ("set_open_state", False) not in remote.writes
    # the failing text is behind the watermark and is not reported again
    remote.replies.clear()
    bot.process_issue(ref)
    assert remote.replies == []
    assert ledger.get_watermark(ref) == NOW - HOUR


def test_reconcile_error_reply_quotes_the_command(observed, ref, no_wait):
    remote = _remote(observed, [_comment(1, NOW - HOUR, "/kind missing", author="bob")])
    bot, _ = _bot(remote, no_wait)
    result = bot.process_issue(ref)
    assert [e.message for e in result.errors] == ["Could not find label: kind/missing"]
    reply = remote.replies[0][1]
    assert reply.startswith("@bob: Could not find label: kind/missing<details>")
    assert "In response to [this](https://github.com/acme/widgets/issues/7#issuecomment-1)" in reply
    assert "> kind missing\n" in reply


def test_each_author_gets_their_own_errors_and_others_still_apply(observed, ref, no_wait):
    comments = [
        _comment(1, NOW - 2 * HOUR, "/kind typo", author="alice"),
        _comment(2, NOW - HOUR, "/assign", author="bob"),
    ]
    remote = _remote(observed, comments)
    bot, _ = _bot(remote, no_wait)
    result = bot.process_issue(ref)
    assert [e.message for e in result.errors] == ["Could not find label: kind/typo"]
    assert len(remote.replies) == 1
    reply = remote.replies[0][1]
    assert reply.startswith("@alice: Could not find label: kind/typo")
    assert "issuecomment-1" in reply
    assert remote.writes == [("set_assignees", ["bob"], [])]
    # nothing is left over for a later pass
    remote.calls.clear()
    assert bot.process_issue(ref).texts_processed == 0
    assert remote.writes == []


def test_later_texts_build_on_earlier_results(observed, ref, no_wait):
    comments = [
        _comment(1, NOW - 2 * HOUR, "/priority high"),
        _comment(2, NOW - HOUR, "/close", author="bob"),
    ]
    remote = _remote(observed, comments)
    bot, _ = _bot(remote, no_wait)
    result = bot.process_issue(ref)
    assert result.ok
    # the label added for the first text is not written again for the second
    assert remote.writes == [("set_labels", ["priority/high"], []), ("set_open_state", False)]


def test_unauthorized_commands_are_ignored(observed, ref, no_wait):
    remote = _remote(observed, [_comment(1, NOW - HOUR, "/close", author="mallory")])
    bot, ledger = _bot(remote, no_wait, is_authorized=lambda login: login == "alice")
    result = bot.process_issue(ref)
    assert result.texts_processed == 0
    assert remote.calls == []
    assert ledger.get_watermark(ref) is None


def test_unreadable_issue_advances_watermark_to_now(observed, ref, no_wait):
    remote = _remote(observed, [])
    remote.fail("get_issue", *[GitHubAPIError("down", status=500) for _ in range(3)])
    bot, ledger = _bot(remote, no_wait)
    result = bot.process_issue(ref)
    assert result.skipped_reason == "unreadable"
    assert ledger.get_watermark(ref) == NOW


def test_dry_run_logs_replies_instead_of_posting(observed, ref, no_wait):
    remote = _remote(observed, [_comment(1, NOW - HOUR, "/close\n/reopen extra")])
    bot, _ = _bot(remote, no_wait, dry_run=True)
    result = bot.process_issue(ref)
    assert len(result.errors) == 1
    assert remote.replies == []
    assert remote.writes == []


def test_disabled_external_writes_skip_writes_and_flag_labels(observed, ref, no_wait):
    remote = _remote(observed, [_comment(1, NOW - HOUR, "/epic\n/close")])
    bot, _ = _bot(remote, no_wait, writes_enabled=False)
    result = bot.process_issue(ref)
    assert remote.writes == []
    assert result.applied == ["state: closed [DRY]"]


def test_only_issue_filters_other_issues(observed, ref, no_wait):
    remote = _remote(observed, [_comment(1, NOW - HOUR, "/close")])
    bot, _ = _bot(remote, no_wait, only_issue=IssueRef("acme", "widgets", 1))
    assert bot.process_issue(ref).skipped_reason == "filtered"
    assert remote.calls == []


def test_run_pass_survives_unexpected_errors(observed, ref, no_wait):
    remote = _remote(observed, [_comment(1, NOW - HOUR, "/assign bob")])
    remote.fail("resolve_user", TriageError("unexpected"))
    bot, _ = _bot(remote, no_wait)
    other = IssueRef("acme", "widgets", 8)
    results = bot.run_pass([ref, other])
    assert [r.ref for r in results] == [ref, other]
    assert results[0].skipped_reason == "error"
    assert results[1].ok
    assert ("set_assignees", ["bob"], []) in remote.writes
