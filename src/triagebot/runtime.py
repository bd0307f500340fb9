"""Runtime helpers: build the bot from configuration and drive the poll loop."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .authorization import AllowList
from .chat import ChatNotifier
from .config import BotConfig, load_config
from .core import IssueResult, TriageBot
from .github_rest import GitHubRestClient
from .ledger import EphemeralKVStore, FileKVStore, KVStore, WatermarkLedger, now_msecs
from .logging import get_logger
from .models import IssueRef
from .rate_limit import RateLimiter
from .remote import GitHubZenHubRemote
from .retry import RetryConfig, run_with_retries
from .selector import find_candidates
from .zenhub import ZenHubClient


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


@dataclass
class BotRuntime:
    config: BotConfig
    bot: TriageBot
    remote: GitHubZenHubRemote
    ledger: WatermarkLedger


def prepare_config(
    args: Any, *, loader: Callable[[str], BotConfig] = load_config
) -> BotConfig | None:
    """Load the BotConfig for the given argparse namespace (None for config-free commands)."""
    if not getattr(args, "config", None):
        return None
    cfg = loader(args.config)
    if getattr(args, "dry_run", False):
        cfg.dry_run_default = True
    return cfg


def open_store(cfg: BotConfig, *, dry_run: bool = False) -> KVStore:
    store: KVStore = FileKVStore(cfg.database_path)
    if dry_run or cfg.feature_flags.ephemeral_db_writes:
        store = EphemeralKVStore(store)
    return store


def build_runtime(cfg: BotConfig, *, session: Any = None) -> BotRuntime:
    retry_cfg = RetryConfig(attempts=cfg.retry_attempts, delay=cfg.retry_delay_seconds)
    github = GitHubRestClient(token=cfg.github_token, base_url=cfg.github_api_url, session=session)
    zenhub = (
        ZenHubClient(
            token=cfg.zenhub_token,
            workspace_id=cfg.zenhub_workspace_id,
            base_url=cfg.zenhub_api_url,
            session=session,
        )
        if cfg.zenhub_token
        else None
    )
    remote = GitHubZenHubRemote(github, zenhub, retry_cfg=retry_cfg)
    ledger = WatermarkLedger(open_store(cfg, dry_run=cfg.dry_run_default))
    chat = ChatNotifier(
        cfg.slack_webhook,
        rate_limiter=RateLimiter("slack", cfg.slack_max_actions, cfg.slack_period_seconds),
        writes_enabled=cfg.writes_enabled,
    )
    bot = TriageBot(
        reader=remote,
        writer=remote,
        users=remote,
        notifier=remote,
        ledger=ledger,
        is_authorized=AllowList(cfg.auth_file),
        retry_cfg=retry_cfg,
        dry_run=cfg.dry_run_default,
        writes_enabled=cfg.writes_enabled,
        window_msecs=cfg.recency_window_msecs,
        only_issue=cfg.only_issue,
        chat=chat,
    )
    return BotRuntime(config=cfg, bot=bot, remote=remote, ledger=ledger)


def collect_candidates(rt: BotRuntime, *, now: int | None = None) -> list[IssueRef]:
    """Recently updated issues across the configured repos that carry a pending command."""
    logger = get_logger()
    current = now_msecs() if now is None else now
    since = current - rt.config.recency_window_msecs
    bot = rt.bot
    if rt.config.only_issue is not None:
        return [rt.config.only_issue]
    refs: list[IssueRef] = []
    for full_name in rt.config.repos:
        try:
            recent = run_with_retries(
                lambda: rt.remote.list_recent_issues(full_name, since),
                cfg=bot.retry_cfg,
                description=f"list issues {full_name}",
            )
        except Exception as exc:  # noqa: BLE001 - one unreachable repo never stops the scan
            logger.log_error(f"Unable to list issues for {full_name}", error=str(exc))
            continue
        snapshots = []
        for ref in recent:
            try:
                snapshots.append((rt.remote.get_issue(ref), rt.remote.get_comments(ref)))
            except Exception as exc:  # noqa: BLE001
                logger.log_error(f"Unable to read {ref} during scan", error=str(exc))
        refs.extend(
            find_candidates(
                snapshots,
                watermark_of=rt.ledger.get_watermark,
                is_authorized=bot.is_authorized,
                now_msecs=current,
                window_msecs=rt.config.recency_window_msecs,
            )
        )
    return refs


def run_once(rt: BotRuntime) -> list[IssueResult]:
    logger = get_logger()
    with logger.timed_operation("poll_pass", repos=len(rt.config.repos)):
        rt.ledger.cleanup(rt.config.recency_window_msecs)
        results = rt.bot.run_pass(collect_candidates(rt))
    for result in results:
        if result.applied or result.errors:
            logger.log_operation(
                "issue_processed",
                issue=str(result.ref),
                applied=len(result.applied),
                errors=len(result.errors),
            )
    return results


def poll_forever(
    rt: BotRuntime,
    *,
    sleep: Callable[[float], None] = time.sleep,
    max_passes: int | None = None,
) -> int:
    """Run passes separated by the configured poll interval. Returns passes run."""
    logger = get_logger()
    passes = 0
    while max_passes is None or passes < max_passes:
        try:
            run_once(rt)
        except Exception as exc:  # noqa: BLE001 - the poll loop never dies
            logger.log_error("poll pass failed", error=str(exc))
        passes += 1
        if max_passes is not None and passes >= max_passes:
            break
        sleep(rt.config.poll_interval_seconds)
    return passes


def execute_command(handler: _HandlerCallable, command: str) -> int:
    """Execute a command handler and log its duration and exit code."""
    logger = get_logger()
    start = time.monotonic()
    exit_code = 1
    try:
        result = handler()
        exit_code = int(result) if result is not None else 0
    finally:
        logger.log_performance(
            f"cli_{command}", (time.monotonic() - start) * 1000, exit_code=exit_code
        )
    return exit_code


__all__ = [
    "BotRuntime",
    "build_runtime",
    "collect_candidates",
    "execute_command",
    "open_store",
    "poll_forever",
    "prepare_config",
    "run_once",
]
