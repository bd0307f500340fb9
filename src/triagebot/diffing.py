"""Pure set diffs between a desired and an observed issue state."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .models import DesiredState, ObservedIssue


def compare_string_lists(desired: Iterable[str], observed: Iterable[str]) -> tuple[list[str], list[str]]:
    """Return ``(to_add, to_remove)`` so that ``observed`` becomes ``desired``."""
    want = set(desired)
    have = set(observed)
    return sorted(want - have), sorted(have - want)


def compute_plan(desired: DesiredState, observed: ObservedIssue) -> dict[str, Any]:
    """Describe every field where ``desired`` differs from ``observed``.

    An empty dict means the issue is already in the desired state.
    """
    d: dict[str, Any] = {}
    added, removed = compare_string_lists(desired.assignees, observed.assignees)
    if added or removed:
        d["assignees_added"] = added
        d["assignees_removed"] = removed
    added, removed = compare_string_lists(desired.labels, observed.labels)
    if added or removed:
        d["labels_added"] = added
        d["labels_removed"] = removed
    if desired.is_open != observed.is_open:
        d["state_to"] = "open" if desired.is_open else "closed"
    current = observed.pipelines[0] if len(observed.pipelines) == 1 else None
    if desired.pipeline and (desired.pipeline != current or len(observed.pipelines) > 1):
        d["pipeline_from"] = list(observed.pipelines)
        d["pipeline_to"] = desired.pipeline
    if desired.releases_to_add:
        d["releases_added"] = list(desired.releases_to_add)
    if desired.releases_to_remove:
        d["releases_removed"] = list(desired.releases_to_remove)
    return d


def format_plan(plan: dict[str, Any]) -> list[str]:
    if not plan:
        return ["no changes"]
    lines: list[str] = []
    for field_name in ("assignees", "labels", "releases"):
        for suffix, sign in (("added", "+"), ("removed", "-")):
            values = plan.get(f"{field_name}_{suffix}")
            if values:
                lines.append(f"{field_name}: " + ", ".join(f"{sign}{v}" for v in values))
    if "state_to" in plan:
        lines.append(f"state: -> {plan['state_to']}")
    if "pipeline_to" in plan:
        before = ", ".join(plan.get("pipeline_from") or []) or "(none)"
        lines.append(f"pipeline: {before} -> {plan['pipeline_to']}")
    return lines


__all__ = ["compare_string_lists", "compute_plan", "format_plan"]
