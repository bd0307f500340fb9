from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml

from .env_auth import EnvAuthConfig, EnvironmentAuthManager
from .github_rest import DEFAULT_API_URL
from .models import IssueRef
from .zenhub import DEFAULT_ZENHUB_URL


class ConfigError(RuntimeError):
    pass


DISABLE_EXTERNAL_WRITES = "DisableExternalWrites"
EPHEMERAL_DB_WRITES = "EphemeralDBWrites"
KNOWN_FEATURE_FLAGS = (DISABLE_EXTERNAL_WRITES, EPHEMERAL_DB_WRITES)


@dataclass(frozen=True)
class FeatureFlags:
    disable_external_writes: bool = False
    ephemeral_db_writes: bool = False

    @classmethod
    def from_list(cls, flags: list[str] | None) -> FeatureFlags:
        enabled: set[str] = set()
        for flag in flags or []:
            name = str(flag).strip()
            if not name:
                continue
            match = next((k for k in KNOWN_FEATURE_FLAGS if k.lower() == name.lower()), None)
            if match is None:
                raise ConfigError(f"Unrecognized feature flag: {name}")
            enabled.add(match)
        return cls(
            disable_external_writes=DISABLE_EXTERNAL_WRITES in enabled,
            ephemeral_db_writes=EPHEMERAL_DB_WRITES in enabled,
        )


@dataclass
class BotConfig:
    version: int
    source_file: Path | None
    github_api_url: str
    github_token: str | None
    repos: list[str]
    zenhub_api_url: str
    zenhub_token: str | None
    zenhub_workspace_id: str | None
    slack_webhook: str | None
    slack_max_actions: int
    slack_period_seconds: float
    database_path: Path
    auth_file: Path | None
    recency_window_days: float
    poll_interval_seconds: float
    retry_attempts: int
    retry_delay_seconds: float
    only_issue: IssueRef | None
    dry_run_default: bool
    feature_flags: FeatureFlags = field(default_factory=FeatureFlags)
    # Logging configuration
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    # Environment authentication configuration
    env_auth_load_dotenv: bool = True
    env_auth_dotenv_path: str | None = None

    @property
    def recency_window_msecs(self) -> int:
        return int(self.recency_window_days * 24 * 60 * 60 * 1000)

    @property
    def writes_enabled(self) -> bool:
        return not self.feature_flags.disable_external_writes


def _resolve_env_var(value: Any, env_var_name: str | None = None) -> Any:
    """Resolve environment variable if value starts with $; unresolved references become None."""
    if isinstance(value, str) and value.startswith("$"):
        env_name = env_var_name or value[1:]
        return os.getenv(env_name) or None
    return value


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return cast(dict[str, Any], value)


def _env_bool(name: str) -> bool | None:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _relative(base: Path, value: str | None) -> Path | None:
    if not value:
        return None
    p = Path(value)
    return p if p.is_absolute() else base / p


def _parse_repos(raw: Any) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("github.repos must be a list of owner/repo strings")
    repos: list[str] = []
    for entry in raw:
        text = str(entry).strip()
        if text.count("/") != 1 or text.startswith("/") or text.endswith("/"):
            raise ConfigError(f"Invalid repository name: {text!r}")
        repos.append(text)
    return repos


def load_config(path: str | Path) -> BotConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {p}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration root must be a mapping: {p}")
    gh = _section(raw, "github")
    zh = _section(raw, "zenhub")
    slack = _section(raw, "slack")
    slack_limit = _section(slack, "rate_limit")
    database = _section(raw, "database")
    behavior = _section(raw, "behavior")
    logging_config = _section(raw, "logging")
    env_auth = _section(raw, "environment")

    # .env has to be loaded before $VAR references are resolved.
    auth = EnvironmentAuthManager(
        EnvAuthConfig(
            load_dotenv=bool(env_auth.get("load_dotenv", True)),
            dotenv_path=env_auth.get("dotenv_path"),
        )
    )

    only_issue_raw = behavior.get("only_issue")
    try:
        only_issue = IssueRef.parse(str(only_issue_raw)) if only_issue_raw else None
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    retry_attempts = os.getenv("TRIAGEBOT_RETRY_ATTEMPTS") or behavior.get("retry_attempts", 6)
    retry_delay = os.getenv("TRIAGEBOT_RETRY_DELAY") or behavior.get("retry_delay_seconds", 10)
    dry_run_env = _env_bool("TRIAGEBOT_DRY_RUN")

    base = p.parent
    return BotConfig(
        version=int(raw.get("version", 1)),
        source_file=p,
        github_api_url=gh.get("api_url", DEFAULT_API_URL),
        github_token=_resolve_env_var(gh.get("token")) or auth.get_github_token(),
        repos=_parse_repos(gh.get("repos")),
        zenhub_api_url=zh.get("api_url", DEFAULT_ZENHUB_URL),
        zenhub_token=_resolve_env_var(zh.get("token")) or auth.get_zenhub_token(),
        zenhub_workspace_id=_resolve_env_var(zh.get("workspace_id")),
        slack_webhook=_resolve_env_var(slack.get("webhook")) or auth.get_slack_webhook(),
        slack_max_actions=int(slack_limit.get("max_actions", 10)),
        slack_period_seconds=float(slack_limit.get("period_seconds", 30)),
        database_path=_relative(base, database.get("path")) or base / ".triagebot" / "ledger.json",
        auth_file=_relative(base, raw.get("auth_file")),
        recency_window_days=float(behavior.get("recency_window_days", 1)),
        poll_interval_seconds=float(behavior.get("poll_interval_seconds", 15)),
        retry_attempts=int(retry_attempts),
        retry_delay_seconds=float(retry_delay),
        only_issue=only_issue,
        dry_run_default=dry_run_env if dry_run_env is not None else bool(behavior.get("dry_run", False)),
        feature_flags=FeatureFlags.from_list(raw.get("feature_flags")),
        logging_json_enabled=bool(logging_config.get("json_enabled", False)),
        logging_level=str(logging_config.get("level", "INFO")),
        env_auth_load_dotenv=bool(env_auth.get("load_dotenv", True)),
        env_auth_dotenv_path=env_auth.get("dotenv_path"),
    )


__all__ = ["BotConfig", "ConfigError", "FeatureFlags", "load_config"]
