"""Credential discovery from environment variables and ``.env`` files."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .logging import get_logger

DOTENV_LOCATIONS = (".env", ".env.local")


@dataclass
class EnvAuthConfig:
    """Configuration for environment-based authentication."""

    load_dotenv: bool = True
    dotenv_path: str | None = None
    github_token_var: str = "GITHUB_TOKEN"
    zenhub_token_var: str = "ZENHUB_TOKEN"
    slack_webhook_var: str = "SLACK_WEBHOOK"


class EnvironmentAuthManager:
    """Looks up bot credentials in the environment, loading ``.env`` first when asked."""

    def __init__(self, config: EnvAuthConfig | None = None):
        self.config = config or EnvAuthConfig()
        self.logger = get_logger()
        self.dotenv_loaded = False
        if self.config.load_dotenv:
            self._load_dotenv()

    def _load_dotenv(self) -> None:
        candidates = [self.config.dotenv_path] if self.config.dotenv_path else list(DOTENV_LOCATIONS)
        for location in candidates:
            env_path = Path(location)
            if env_path.exists():
                # Values already in the process environment win over the file.
                load_dotenv(str(env_path), override=False)
                self.dotenv_loaded = True
                self.logger.debug(f"Loaded environment variables from {env_path}")
                return

    def get_github_token(self) -> str | None:
        token = os.getenv(self.config.github_token_var)
        if token:
            return token
        for alt_var in ("GH_TOKEN", "GITHUB_ACCESS_TOKEN", "GITHUB_PAT"):
            token = os.getenv(alt_var)
            if token:
                self.logger.debug(f"Found GitHub token in {alt_var}")
                return token
        return None

    def get_zenhub_token(self) -> str | None:
        return os.getenv(self.config.zenhub_token_var) or None

    def get_slack_webhook(self) -> str | None:
        return os.getenv(self.config.slack_webhook_var) or None


__all__ = ["EnvAuthConfig", "EnvironmentAuthManager"]
