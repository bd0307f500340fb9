"""Reconciler: turns the diff between desired and observed state into writes.

Writes happen in a fixed order (assignees, labels, open state, pipeline,
releases). Every remote call goes through :func:`run_with_retries`. A failed
step is recorded and the remaining steps still run, since they do not depend
on each other; :meth:`Reconciler.reconcile` returns the first failure and the
outcome keeps all of them. Already-applied steps are not rolled back.

Each error carries the command line that requested the failed delta (see
:attr:`DesiredState.origins`) so the reply can quote it.

In dry-run mode lookups still run (so unknown labels or pipelines are still
reported) but nothing is written; planned writes are logged with ``[DRY]``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .diffing import compute_plan, format_plan
from .errors import ASSIGNEE_NOTE, classify_error
from .logging import StructuredLogger, get_logger
from .models import (
    DesiredState,
    ErrorKind,
    IssueRef,
    ObservedIssue,
    ReconciliationError,
    origin_key,
)
from .remote import IssueWriter
from .retry import RetryConfig, run_with_retries


@dataclass
class ReconcileOutcome:
    ref: IssueRef
    dry_run: bool
    achieved: ObservedIssue
    plan: dict[str, Any] = field(default_factory=dict)
    applied: list[str] = field(default_factory=list)
    errors: list[ReconciliationError] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied)

    @property
    def error(self) -> ReconciliationError | None:
        return self.errors[0] if self.errors else None


class Reconciler:
    def __init__(
        self,
        writer: IssueWriter,
        *,
        retry_cfg: RetryConfig | None = None,
        dry_run: bool = False,
        logger: StructuredLogger | None = None,
    ):
        self.writer = writer
        self.retry_cfg = retry_cfg
        self.dry_run = dry_run
        self.logger = logger or get_logger()
        self.last_outcome: ReconcileOutcome | None = None

    def _call(self, fn: Callable[[], Any], description: str) -> Any:
        return run_with_retries(fn, cfg=self.retry_cfg, description=description)

    def _attempt(self, fn: Callable[[], Any], description: str) -> Exception | None:
        """Run a write through retry and hand back the final failure, if any."""
        try:
            self._call(fn, description)
        except Exception as exc:  # noqa: BLE001 - every failure becomes a reply or a log line
            self.logger.log_error(f"{description} failed", error=str(exc))
            return exc
        return None

    def _write(self, outcome: ReconcileOutcome, action: str, detail: str, fn: Callable[[], Any]) -> Exception | None:
        self.logger.log_issue_action(action, outcome.ref.key, detail=detail, dry_run=self.dry_run)
        if self.dry_run:
            outcome.applied.append(f"{action}: {detail} [DRY]")
            return None
        exc = self._attempt(fn, f"{action} {outcome.ref}")
        if exc is None:
            outcome.applied.append(f"{action}: {detail}")
        return exc

    @staticmethod
    def _fail(
        outcome: ReconcileOutcome,
        desired: DesiredState,
        message: str,
        kind: ErrorKind,
        *keys: str,
    ) -> None:
        command = next((desired.origins[k] for k in keys if k in desired.origins), None)
        outcome.errors.append(ReconciliationError(message, kind=kind, offending_command=command))

    def reconcile(
        self, ref: IssueRef, desired: DesiredState, observed: ObservedIssue
    ) -> ReconciliationError | None:
        plan = compute_plan(desired, observed)
        outcome = ReconcileOutcome(ref=ref, dry_run=self.dry_run, achieved=observed, plan=plan)
        self.last_outcome = outcome
        if not plan:
            self.logger.debug(f"{ref}: already in desired state")
            return None
        for line in format_plan(plan):
            self.logger.debug(f"{ref} plan: {line}")
        self._sync_assignees(outcome, plan, desired)
        self._sync_labels(outcome, plan, desired)
        self._sync_open_state(outcome, plan)
        self._sync_pipeline(outcome, plan, desired, observed)
        self._sync_releases(outcome, desired)
        return outcome.error

    # ---- labels -------------------------------------------------------
    def _resolve_labels(
        self, outcome: ReconcileOutcome, desired: DesiredState, wanted: list[str]
    ) -> list[str] | None:
        """Map requested label names onto the catalog spelling; None when the catalog is unreadable."""
        ref = outcome.ref
        needs_lookup = [label for label in wanted if " " not in label]
        if not needs_lookup:
            return list(wanted)
        try:
            catalog = self._call(lambda: self.writer.list_labels(ref), f"list labels {ref.full_name}")
        except Exception as exc:  # noqa: BLE001
            self._fail(
                outcome,
                desired,
                f"Unable to retrieve labels: {', '.join(needs_lookup)}",
                classify_error(exc).kind,
                *(origin_key("label", x) for x in needs_lookup),
            )
            return None
        by_lower = {name.lower(): name for name in catalog}
        resolved: list[str] = []
        missing: list[str] = []
        for label in wanted:
            if " " in label:
                resolved.append(label)
            elif label.lower() in by_lower:
                resolved.append(by_lower[label.lower()])
            else:
                missing.append(label)
        if missing:
            self.logger.warning(f"Could not find label(s): {' '.join(missing)}", issue_key=ref.key)
            noun = "label" if len(missing) == 1 else "labels"
            self._fail(
                outcome,
                desired,
                f"Could not find {noun}: {', '.join(missing)}",
                ErrorKind.RESOLUTION,
                *(origin_key("label", x) for x in missing),
            )
        return resolved

    def _sync_labels(self, outcome: ReconcileOutcome, plan: dict[str, Any], desired: DesiredState) -> None:
        wanted = plan.get("labels_added", [])
        remove = plan.get("labels_removed", [])
        if not wanted and not remove:
            return
        add = self._resolve_labels(outcome, desired, wanted) if wanted else []
        if add is None or (not add and not remove):
            return
        detail = " ".join([f"+{x}" for x in add] + [f"-{x}" for x in remove])
        exc = self._write(
            outcome, "labels", detail, lambda: self.writer.set_labels(outcome.ref, add, remove)
        )
        if exc is not None:
            self._fail(
                outcome,
                desired,
                f"The label(s) {' '.join(add) or 'N/A'} cannot be applied.",
                ErrorKind.TRANSIENT,
                *(origin_key("label", x) for x in wanted + remove),
            )
            return
        labels = (set(outcome.achieved.labels) | set(add)) - set(remove)
        outcome.achieved = dataclasses.replace(outcome.achieved, labels=frozenset(labels))

    # ---- assignees ----------------------------------------------------
    def _sync_assignees(self, outcome: ReconcileOutcome, plan: dict[str, Any], desired: DesiredState) -> None:
        add = plan.get("assignees_added", [])
        remove = plan.get("assignees_removed", [])
        if not add and not remove:
            return
        detail = " ".join([f"+{x}" for x in add] + [f"-{x}" for x in remove])
        exc = self._write(
            outcome, "assignees", detail, lambda: self.writer.set_assignees(outcome.ref, add, remove)
        )
        if exc is None:
            assignees = (set(outcome.achieved.assignees) | set(add)) - set(remove)
            outcome.achieved = dataclasses.replace(outcome.achieved, assignees=frozenset(assignees))
            return
        keys = [origin_key("assignee", x) for x in add + remove]
        if classify_error(exc).kind is ErrorKind.VALIDATION:
            names = " ".join(add) or "N/A"
            self._fail(
                outcome,
                desired,
                f"GitHub didn't allow me to assign the following users: {names}{ASSIGNEE_NOTE}",
                ErrorKind.VALIDATION,
                *keys,
            )
            return
        self._fail(outcome, desired, "Unable to update assignees", ErrorKind.TRANSIENT, *keys)

    # ---- open state ---------------------------------------------------
    def _sync_open_state(self, outcome: ReconcileOutcome, plan: dict[str, Any]) -> None:
        target = plan.get("state_to")
        if target is None:
            return
        exc = self._write(
            outcome,
            "state",
            target,
            lambda: self.writer.set_open_state(outcome.ref, target == "open"),
        )
        if exc is not None:
            # The next pass re-diffs and retries the transition.
            self.logger.warning(f"Unable to change issue state to: {target}", issue_key=outcome.ref.key)
            return
        outcome.achieved = dataclasses.replace(outcome.achieved, is_open=target == "open")

    # ---- pipeline -----------------------------------------------------
    def _sync_pipeline(
        self,
        outcome: ReconcileOutcome,
        plan: dict[str, Any],
        desired: DesiredState,
        observed: ObservedIssue,
    ) -> None:
        name = plan.get("pipeline_to")
        if not name:
            return
        key = origin_key("pipeline")
        if len(observed.pipelines) > 1:
            old = " ".join(sorted(set(observed.pipelines)))
            self._fail(
                outcome,
                desired,
                f"Cannot move an issue that is in multiple pipelines - old: {old} new: {name}",
                ErrorKind.RESOLUTION,
                key,
            )
            return
        ref = outcome.ref
        try:
            pipeline_id = self._call(
                lambda: self.writer.find_pipeline(ref, name), f"find pipeline {name!r}"
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.log_error(f"pipeline lookup for {ref} failed", error=str(exc))
            pipeline_id = None
        if pipeline_id is None:
            self._fail(
                outcome,
                desired,
                f"Unable to locate pipeline with name: `{name}`",
                ErrorKind.RESOLUTION,
                key,
            )
            return
        exc = self._write(
            outcome, "pipeline", name, lambda: self.writer.move_pipeline(ref, pipeline_id)
        )
        if exc is not None:
            self._fail(
                outcome, desired, f"Unable to move issue to pipeline: {name}", ErrorKind.TRANSIENT, key
            )
            return
        outcome.achieved = dataclasses.replace(outcome.achieved, pipelines=(name,))

    # ---- releases -----------------------------------------------------
    def _sync_releases(self, outcome: ReconcileOutcome, desired: DesiredState) -> None:
        for title in desired.releases_to_add:
            self._update_release(outcome, desired, title, is_add=True)
        for title in desired.releases_to_remove:
            self._update_release(outcome, desired, title, is_add=False)

    def _update_release(
        self, outcome: ReconcileOutcome, desired: DesiredState, title: str, *, is_add: bool
    ) -> None:
        ref = outcome.ref
        key = origin_key("release" if is_add else "remove-release", title)
        try:
            release_id = self._call(
                lambda: self.writer.find_release(ref, title), f"find release {title!r}"
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.log_error(f"release lookup for {ref} failed", error=str(exc))
            self._fail(outcome, desired, f"Unable to update release: {title}", ErrorKind.TRANSIENT, key)
            return
        if release_id is None:
            self._fail(outcome, desired, f"Unable to find release: {title}", ErrorKind.RESOLUTION, key)
            return
        add = [ref] if is_add else []
        remove = [] if is_add else [ref]
        exc = self._write(
            outcome,
            "release_add" if is_add else "release_remove",
            title,
            lambda: self.writer.update_release(release_id, add, remove),
        )
        if exc is not None:
            self._fail(outcome, desired, f"Unable to update release: {title}", ErrorKind.TRANSIENT, key)


__all__ = ["ReconcileOutcome", "Reconciler"]
