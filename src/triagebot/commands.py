"""Command interpreter: folds parsed slash commands into a DesiredState.

Each command name maps to one :class:`CommandKind`; every kind has exactly
one handler in ``_HANDLERS``. Handlers validate arity before touching the
state and return a :class:`ReconciliationError` on the first problem.

``interpret_text`` applies all commands of one text to a clone of the state
and only copies the clone back when every command succeeded, so a failing
text never leaves half of its commands applied.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .errors import ASSIGNEE_NOTE, UserNotFoundError
from .models import (
    AuthorizedActor,
    CommandToken,
    DesiredState,
    ErrorKind,
    ReconciliationError,
    origin_key,
)
from .parser import FLAG_LABEL_COMMANDS, LABEL_COMMANDS, NO_PARAM_REMOVE_COMMANDS, parse
from .remote import UserResolver

logger = logging.getLogger(__name__)

VERIFY_PIPELINE = "Verify"


class CommandKind(Enum):
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    LABEL = "label"
    REMOVE_LABEL = "remove-label"
    REMOVE_FLAG_LABEL = "remove-flag-label"
    CLOSE = "close"
    REOPEN = "reopen"
    VERIFY = "verify"
    PIPELINE = "pipeline"
    RELEASE = "release"
    REMOVE_RELEASE = "remove-release"
    FLAG_LABEL = "flag-label"
    GENERIC_LABEL = "generic-label"


_KIND_BY_NAME: dict[str, CommandKind] = {
    "assign": CommandKind.ASSIGN,
    "unassign": CommandKind.UNASSIGN,
    "close": CommandKind.CLOSE,
    "reopen": CommandKind.REOPEN,
    "verify": CommandKind.VERIFY,
    "pipeline": CommandKind.PIPELINE,
    "release": CommandKind.RELEASE,
    "remove-release": CommandKind.REMOVE_RELEASE,
    **{name: CommandKind.LABEL for name in LABEL_COMMANDS},
    **{f"remove-{name}": CommandKind.REMOVE_LABEL for name in LABEL_COMMANDS},
    **{name: CommandKind.FLAG_LABEL for name in FLAG_LABEL_COMMANDS},
    **{name: CommandKind.REMOVE_FLAG_LABEL for name in NO_PARAM_REMOVE_COMMANDS},
}


def classify(name: str) -> CommandKind:
    return _KIND_BY_NAME.get(name, CommandKind.GENERIC_LABEL)


@dataclass
class InterpreterContext:
    users: UserResolver
    writes_enabled: bool = True
    debug: str = ""


def _arity_error(message: str, token: CommandToken) -> ReconciliationError:
    logger.info("%s  [%s]", message, token.source_line)
    return ReconciliationError(message, kind=ErrorKind.ARITY, offending_command=token.source_line)


def _require_no_params(token: CommandToken) -> ReconciliationError | None:
    if not token.params:
        return None
    return _arity_error(f"Command '{token.name}' does not support any parameters.", token)


def _require_params(token: CommandToken) -> ReconciliationError | None:
    if token.params:
        return None
    return _arity_error(f"Command '{token.name}' requires at least one parameter.", token)


def _normalize_login(param: str, actor: AuthorizedActor) -> str:
    login = param.strip()
    while login.startswith("@"):
        login = login[1:].strip()
    if login == "me":
        return actor.login
    return login


def _handle_assignment(
    token: CommandToken, state: DesiredState, actor: AuthorizedActor, ctx: InterpreterContext
) -> ReconciliationError | None:
    logins: list[str] = []
    if not token.params:
        logins.append(actor.login)
    for param in token.params:
        requested = _normalize_login(param, actor)
        try:
            logins.append(ctx.users.resolve_user(requested))
        except UserNotFoundError:
            logger.info("User not found: %s  [%s]", requested, ctx.debug)
            return ReconciliationError(
                f"GitHub didn't allow me to assign the following users: {requested}{ASSIGNEE_NOTE}",
                kind=ErrorKind.RESOLUTION,
                offending_command=token.source_line,
            )
    if token.name == "assign":
        state.assignees.update(logins)
    else:
        state.assignees.difference_update(logins)
    for login in logins:
        state.note(origin_key("assignee", login), token.source_line)
    return None


def _remove_matching(
    token: CommandToken, state: DesiredState, targets: list[str], ctx: InterpreterContext
) -> ReconciliationError | None:
    not_found = list(dict.fromkeys(targets))
    for label in sorted(state.labels):
        if label.lower() in targets:
            logger.info("Removing label: %s  [%s]", label, ctx.debug)
            state.labels.discard(label)
            state.note(origin_key("label", label), token.source_line)
            if label.lower() in not_found:
                not_found.remove(label.lower())
    if not_found:
        message = "Those labels are not set on the issue: " + " ".join(not_found)
        logger.info("%s  [%s]", message, ctx.debug)
        return ReconciliationError(
            message, kind=ErrorKind.RESOLUTION, offending_command=token.source_line
        )
    return None


def _handle_remove_label(
    token: CommandToken, state: DesiredState, actor: AuthorizedActor, ctx: InterpreterContext
) -> ReconciliationError | None:
    err = _require_params(token)
    if err:
        return err
    prefix = token.name.split("-", 1)[1]
    targets = [f"{prefix}/{param}".lower() for param in token.params]
    return _remove_matching(token, state, targets, ctx)


def _handle_remove_flag_label(
    token: CommandToken, state: DesiredState, actor: AuthorizedActor, ctx: InterpreterContext
) -> ReconciliationError | None:
    flag = token.name.split("-", 1)[1]
    if token.params:
        targets = [f"{flag}/{param}".lower() for param in token.params]
    else:
        targets = [flag]
    return _remove_matching(token, state, targets, ctx)


def _handle_label(
    token: CommandToken, state: DesiredState, actor: AuthorizedActor, ctx: InterpreterContext
) -> ReconciliationError | None:
    if len(token.params) != 1:
        return _arity_error(f"Unexpected command format: {token.source_line}", token)
    label = f"{token.name}/{token.params[0]}"
    state.labels.add(label)
    state.note(origin_key("label", label), token.source_line)
    logger.info("Adding label: %s  [%s]", label, ctx.debug)
    return None


def _handle_flag_label(
    token: CommandToken, state: DesiredState, actor: AuthorizedActor, ctx: InterpreterContext
) -> ReconciliationError | None:
    if not ctx.writes_enabled:
        logger.info("Skipping adding label: %s  [%s]", token.name, ctx.debug)
        return None
    logger.info("Adding label: %s  [%s]", token.name, ctx.debug)
    state.labels.add(token.name)
    state.note(origin_key("label", token.name), token.source_line)
    return None


def _handle_open_state(
    token: CommandToken, state: DesiredState, actor: AuthorizedActor, ctx: InterpreterContext
) -> ReconciliationError | None:
    err = _require_no_params(token)
    if err:
        return err
    state.is_open = token.name == "reopen"
    state.note(origin_key("state"), token.source_line)
    return None


def _handle_verify(
    token: CommandToken, state: DesiredState, actor: AuthorizedActor, ctx: InterpreterContext
) -> ReconciliationError | None:
    err = _require_no_params(token)
    if err:
        return err
    state.pipeline = VERIFY_PIPELINE
    state.note(origin_key("pipeline"), token.source_line)
    return None


def _handle_pipeline(
    token: CommandToken, state: DesiredState, actor: AuthorizedActor, ctx: InterpreterContext
) -> ReconciliationError | None:
    err = _require_params(token)
    if err:
        return err
    name = " ".join(param.strip('"') for param in token.params).strip()
    state.pipeline = name
    state.note(origin_key("pipeline"), token.source_line)
    return None


def _handle_release(
    token: CommandToken, state: DesiredState, actor: AuthorizedActor, ctx: InterpreterContext
) -> ReconciliationError | None:
    err = _require_params(token)
    if err:
        return err
    target = state.releases_to_add if token.name == "release" else state.releases_to_remove
    for param in token.params:
        if param not in target:
            target.append(param)
        state.note(origin_key(token.name, param), token.source_line)
    return None


_Handler = Callable[
    [CommandToken, DesiredState, AuthorizedActor, InterpreterContext],
    ReconciliationError | None,
]

_HANDLERS: dict[CommandKind, _Handler] = {
    CommandKind.ASSIGN: _handle_assignment,
    CommandKind.UNASSIGN: _handle_assignment,
    CommandKind.LABEL: _handle_label,
    CommandKind.REMOVE_LABEL: _handle_remove_label,
    CommandKind.REMOVE_FLAG_LABEL: _handle_remove_flag_label,
    CommandKind.CLOSE: _handle_open_state,
    CommandKind.REOPEN: _handle_open_state,
    CommandKind.VERIFY: _handle_verify,
    CommandKind.PIPELINE: _handle_pipeline,
    CommandKind.RELEASE: _handle_release,
    CommandKind.REMOVE_RELEASE: _handle_release,
    CommandKind.FLAG_LABEL: _handle_flag_label,
    CommandKind.GENERIC_LABEL: _handle_label,
}

def apply(
    token: CommandToken,
    state: DesiredState,
    actor: AuthorizedActor,
    ctx: InterpreterContext,
) -> ReconciliationError | None:
    """Apply one command to ``state`` in place."""
    logger.info("- Processing command '%s'  [%s]", token.source_line, ctx.debug)
    return _HANDLERS[classify(token.name)](token, state, actor, ctx)


def interpret_text(
    text: str,
    state: DesiredState,
    actor: AuthorizedActor,
    ctx: InterpreterContext,
) -> ReconciliationError | None:
    """Fold every command of ``text`` into ``state``; all-or-nothing per text."""
    working = state.clone()
    for token in parse(text):
        err = apply(token, working, actor, ctx)
        if err is not None:
            return err
    state.copy_from(working)
    return None


__all__ = [
    "CommandKind",
    "InterpreterContext",
    "VERIFY_PIPELINE",
    "apply",
    "classify",
    "interpret_text",
]
