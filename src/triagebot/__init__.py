"""triagebot - slash-command triage for GitHub issues.

High-level public API:

from triagebot import load_config, parse, TriageBot

cfg = load_config('triagebot.config.yaml')
for token in parse('/kind bug\n/assign @me'):
    print(token.name, token.params)

The CLI (``triagebot run``) wires a TriageBot from the configuration and polls
the configured repositories.
"""

from __future__ import annotations

from .config import BotConfig, load_config
from .core import IssueResult, TriageBot
from .models import DesiredState, IssueRef, ReconciliationError
from .parser import contains_valid_command, parse

# Version constant (sync manually with pyproject)
__version__ = "0.3.0"

__all__ = [
    "BotConfig",
    "DesiredState",
    "IssueRef",
    "IssueResult",
    "ReconciliationError",
    "TriageBot",
    "__version__",
    "contains_valid_command",
    "load_config",
    "parse",
]
