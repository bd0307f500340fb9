"""triagebot CLI.

Subcommands:
  run        -> poll the configured repositories (or a single pass with --once)
  process    -> run one reconciliation pass for a single issue
  parse      -> print the commands found in a text as JSON
  watermark  -> inspect or adjust the watermark of an issue
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from triagebot.commands import classify
from triagebot.config import BotConfig, ConfigError
from triagebot.logging import configure_logging
from triagebot.models import IssueRef
from triagebot.parser import parse
from triagebot.runtime import (
    build_runtime,
    execute_command,
    poll_forever,
    prepare_config,
    run_once,
)

CONFIG_DEFAULT = "triagebot.config.yaml"

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="triagebot", description="Slash-command triage bot for GitHub issues"
    )
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress informational logging (env: TRIAGEBOT_QUIET=1)",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pr = sub.add_parser("run", help="Poll repositories and reconcile issues")
    pr.add_argument("--config", default=CONFIG_DEFAULT)
    pr.add_argument("--dry-run", action="store_true", help="Compute and log changes, write nothing")
    pr.add_argument("--once", action="store_true", help="Run a single pass and exit")

    pp = sub.add_parser("process", help="Reconcile a single issue")
    pp.add_argument("--config", default=CONFIG_DEFAULT)
    pp.add_argument("--dry-run", action="store_true")
    pp.add_argument("issue", help="Issue reference (owner/repo#N)")

    pa = sub.add_parser("parse", help="Print the commands found in a text as JSON")
    pa.add_argument("file", nargs="?", default="-", help="Input file ('-' reads stdin)")

    pw = sub.add_parser("watermark", help="Show or set the watermark of an issue")
    pw.add_argument("--config", default=CONFIG_DEFAULT)
    pw.add_argument("issue", help="Issue reference (owner/repo#N)")
    pw.add_argument("--set", dest="set_value", type=int, metavar="MSECS")
    return p


def _require_cfg(cfg: BotConfig | None) -> BotConfig:
    if cfg is None:
        raise ConfigError("configuration required for this command")
    return cfg


def _parse_ref(text: str) -> IssueRef | None:
    try:
        return IssueRef.parse(text)
    except ValueError as exc:
        print(f"[triagebot] {exc}", file=sys.stderr)
        return None


def _cmd_run(cfg: BotConfig, args: argparse.Namespace) -> int:
    rt = build_runtime(cfg)
    if args.once:
        results = run_once(rt)
        return 1 if any(r.errors for r in results) else 0
    poll_forever(rt)
    return 0


def _cmd_process(cfg: BotConfig, args: argparse.Namespace) -> int:
    ref = _parse_ref(args.issue)
    if ref is None:
        return 1
    rt = build_runtime(cfg)
    result = rt.bot.process_issue(ref)
    payload = {
        "issue": str(ref),
        "texts_processed": result.texts_processed,
        "applied": result.applied,
        "errors": [{"kind": e.kind.value, "message": e.message} for e in result.errors],
        "skipped": result.skipped_reason,
    }
    print(json.dumps(payload, indent=2))
    return 0 if result.ok else 1


def _cmd_parse(args: argparse.Namespace) -> int:
    if args.file == "-":
        text = sys.stdin.read()
    else:
        text = Path(args.file).read_text(encoding="utf-8")
    commands = [
        {
            "name": token.name,
            "kind": classify(token.name).value,
            "params": list(token.params),
            "line": token.source_line,
        }
        for token in parse(text)
    ]
    print(json.dumps(commands, indent=2))
    return 0


def _cmd_watermark(cfg: BotConfig, args: argparse.Namespace) -> int:
    ref = _parse_ref(args.issue)
    if ref is None:
        return 1
    rt = build_runtime(cfg)
    if args.set_value is not None and not rt.ledger.set_watermark(ref, args.set_value):
        print(f"[watermark] refusing to move {ref} backwards", file=sys.stderr)
        return 1
    print(json.dumps({"issue": str(ref), "watermark": rt.ledger.get_watermark(ref)}))
    return 0


def _build_handlers(args: argparse.Namespace, cfg: BotConfig | None) -> dict[str, Any]:
    return {
        "run": lambda: _cmd_run(_require_cfg(cfg), args),
        "process": lambda: _cmd_process(_require_cfg(cfg), args),
        "parse": lambda: _cmd_parse(args),
        "watermark": lambda: _cmd_watermark(_require_cfg(cfg), args),
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "quiet", False) and os.environ.get("TRIAGEBOT_QUIET") == "1":
        args.quiet = True
    try:
        cfg = prepare_config(args)
    except ConfigError as exc:
        print(f"[triagebot] {exc}", file=sys.stderr)
        return 1
    level = "WARNING" if args.quiet else (cfg.logging_level if cfg else "INFO")
    configure_logging(json_logging=bool(cfg and cfg.logging_json_enabled), level=level)
    handler = _build_handlers(args, cfg).get(args.cmd)
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return 1
    return execute_command(handler, args.cmd)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
