"""Per-issue reconciliation pass and the pass over many issues.

A pass for one issue:

1. read the issue and its comments (retried; on failure the watermark jumps
   to *now* so a broken issue is not hammered every poll cycle);
2. select the eligible texts;
3. for each text, move the watermark to it before anything is written (so a
   text that always fails is reported once), fold its commands into a desired
   state cloned from the current remote state and reconcile right away;
4. report every error back on the issue, addressed to the author of the text
   whose command caused it and quoting that command.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TypeVar

from .chat import ChatNotifier
from .commands import InterpreterContext, interpret_text
from .errors import render_error_reply
from .ledger import WatermarkLedger, now_msecs
from .logging import StructuredLogger, get_logger
from .models import (
    AuthorizedActor,
    DesiredState,
    IssueRef,
    ReconciliationError,
    TextEntry,
)
from .parser import contains_valid_command
from .reconcile import Reconciler
from .remote import ErrorNotifier, IssueReader, IssueWriter, UserResolver
from .retry import RetryConfig, run_with_retries
from .selector import DAY_MSECS, select_texts

T = TypeVar("T")


@dataclass
class IssueResult:
    ref: IssueRef
    texts_processed: int = 0
    applied: list[str] = field(default_factory=list)
    errors: list[ReconciliationError] = field(default_factory=list)
    skipped_reason: str | None = None

    @property
    def ok(self) -> bool:
        return not self.errors and self.skipped_reason is None


class TriageBot:
    def __init__(
        self,
        *,
        reader: IssueReader,
        writer: IssueWriter,
        users: UserResolver,
        notifier: ErrorNotifier,
        ledger: WatermarkLedger,
        is_authorized: Callable[[str], bool],
        retry_cfg: RetryConfig | None = None,
        dry_run: bool = False,
        writes_enabled: bool = True,
        window_msecs: int = DAY_MSECS,
        only_issue: IssueRef | None = None,
        chat: ChatNotifier | None = None,
        clock: Callable[[], int] = now_msecs,
        logger: StructuredLogger | None = None,
    ):
        self.reader = reader
        self.writer = writer
        self.users = users
        self.notifier = notifier
        self.ledger = ledger
        self.is_authorized = is_authorized
        self.retry_cfg = retry_cfg
        self.dry_run = dry_run
        self.writes_enabled = writes_enabled
        self.window_msecs = window_msecs
        self.only_issue = only_issue
        self.chat = chat
        self.clock = clock
        self.logger = logger or get_logger()
        self.reconciler = Reconciler(
            writer,
            retry_cfg=retry_cfg,
            dry_run=dry_run or not writes_enabled,
            logger=self.logger,
        )

    def _retry(self, fn: Callable[[], T], description: str) -> T:
        return run_with_retries(fn, cfg=self.retry_cfg, description=description)

    def process_issue(self, ref: IssueRef) -> IssueResult:
        result = IssueResult(ref=ref)
        if self.only_issue is not None and ref != self.only_issue:
            result.skipped_reason = "filtered"
            return result
        try:
            observed = self._retry(lambda: self.reader.get_issue(ref), f"get issue {ref}")
            comments = self._retry(lambda: self.reader.get_comments(ref), f"get comments {ref}")
        except Exception as exc:  # noqa: BLE001 - unreadable issues are skipped, not fatal
            self.logger.log_error(f"Unable to retrieve issue or issue comments for {ref}", error=str(exc))
            self.ledger.set_watermark(ref, self.clock())
            result.skipped_reason = "unreadable"
            return result

        texts = select_texts(
            observed,
            comments,
            watermark=self.ledger.get_watermark(ref),
            is_authorized=self.is_authorized,
            now_msecs=self.clock(),
            window_msecs=self.window_msecs,
        )
        if not texts:
            return result

        ctx = InterpreterContext(users=self.users, writes_enabled=self.writes_enabled, debug=str(ref))
        current = observed
        for text in texts:
            self.ledger.set_watermark(ref, text.created_at_msecs)
            result.texts_processed += 1
            # fresh desired state per text, cloned from what the remote now holds
            desired = DesiredState.from_observed(current)
            err = interpret_text(text.body, desired, AuthorizedActor(text.author), ctx)
            if err is not None:
                self._report(ref, text, err, result)
                continue
            if not contains_valid_command(text.body):
                continue
            self.reconciler.reconcile(ref, desired, current)
            outcome = self.reconciler.last_outcome
            if outcome is None:
                continue
            current = outcome.achieved
            result.applied.extend(outcome.applied)
            for error in outcome.errors:
                self._report(ref, text, error, result)

        if result.applied:
            self._announce(ref, result.applied)
        return result

    def _report(
        self, ref: IssueRef, text: TextEntry, error: ReconciliationError, result: IssueResult
    ) -> None:
        error = error.with_source(None, text.url)
        result.errors.append(error)
        message = render_error_reply(text.author, error)
        if self.dry_run or not self.writes_enabled:
            self.logger.log_issue_action("reply", ref.key, detail=message, dry_run=True)
            return
        try:
            self._retry(lambda: self.notifier.post_comment(ref, message), f"post reply {ref}")
        except Exception as exc:  # noqa: BLE001
            self.logger.log_error(f"Unable to post error reply on {ref}", error=str(exc))

    def _announce(self, ref: IssueRef, applied: list[str]) -> None:
        if self.dry_run or self.chat is None or not self.chat.enabled:
            return
        lines = [f"{ref}: {ref.html_url}"] + [f"- {entry}" for entry in applied]
        self.chat.post("\n".join(lines))

    def run_pass(self, refs: Iterable[IssueRef]) -> list[IssueResult]:
        results: list[IssueResult] = []
        for ref in refs:
            try:
                results.append(self.process_issue(ref))
            except Exception as exc:  # noqa: BLE001 - one broken issue never stops the pass
                self.logger.log_error(f"Unexpected failure while processing {ref}", error=str(exc))
                results.append(IssueResult(ref=ref, skipped_reason="error"))
        return results


__all__ = ["IssueResult", "TriageBot"]
