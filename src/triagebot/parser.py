"""Slash-command extraction from issue bodies and comments.

Only lines whose first non-blank character is ``/`` are considered. Names
outside :data:`VALID_COMMANDS` are skipped without error since ordinary
markdown (paths, for instance) can start with a slash too.
"""

from __future__ import annotations

import logging
import re

from .models import CommandToken

logger = logging.getLogger(__name__)

LABEL_COMMANDS = ("area", "kind", "priority")

FLAG_LABEL_COMMANDS = ("tech-topic", "good-first-issue", "wontfix", "svt", "epic")

VALID_COMMANDS: tuple[str, ...] = (
    "assign",
    "unassign",
    *LABEL_COMMANDS,
    "remove-kind",
    "remove-area",
    "remove-priority",
    "close",
    "reopen",
    "pipeline",
    "release",
    "remove-release",
    "verify",
    *FLAG_LABEL_COMMANDS,
)

NO_PARAM_REMOVE_COMMANDS: tuple[str, ...] = tuple(f"remove-{name}" for name in FLAG_LABEL_COMMANDS)

ALL_COMMANDS = frozenset(VALID_COMMANDS + NO_PARAM_REMOVE_COMMANDS)

_LINE_SPLIT = re.compile(r"[\r\n]+")

# ZenHub shows a "Closed" column that is not a real pipeline.
_CLOSED_PIPELINE_ALIAS = "pipelineclosed"


def _command_lines(text: str) -> list[str]:
    lines: list[str] = []
    for raw in _LINE_SPLIT.split(text or ""):
        line = raw.strip()
        if line.startswith("/"):
            lines.append(line[1:])
    return lines


def _rewrite_alias(line: str) -> str:
    if line.replace(" ", "").strip().lower() == _CLOSED_PIPELINE_ALIAS:
        return "close"
    return line


def parse(text: str) -> list[CommandToken]:
    """Return the recognised commands of ``text`` in line order."""
    tokens: list[CommandToken] = []
    for line in _command_lines(text):
        line = _rewrite_alias(line)
        parts = line.split()
        if not parts:
            continue
        name = parts[0].lower()
        if name not in ALL_COMMANDS:
            logger.debug("ignoring unrecognised command line %r", line)
            continue
        tokens.append(CommandToken(name=name, params=tuple(parts[1:]), source_line=line))
    return tokens


def contains_valid_command(text: str | None) -> bool:
    if not text:
        return False
    return bool(parse(text))


__all__ = [
    "ALL_COMMANDS",
    "FLAG_LABEL_COMMANDS",
    "LABEL_COMMANDS",
    "NO_PARAM_REMOVE_COMMANDS",
    "VALID_COMMANDS",
    "contains_valid_command",
    "parse",
]
