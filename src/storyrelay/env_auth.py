"""Environment-based authentication for storyrelay.

Secrets (API tokens, webhook credentials) are read from environment
variables, optionally seeded from a ``.env`` file, rather than from the YAML
configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .config import RelayConfig
from .logging import get_logger

_DOTENV_FALLBACKS = ('.env', '.env.local')


@dataclass
class EnvAuthConfig:
    """Configuration for environment-based authentication."""

    load_dotenv: bool = True
    dotenv_path: str | None = None
    github_token_var: str = "GITHUB_TOKEN"
    tracker_token_var: str = "TRACKER_API_TOKEN"


class EnvironmentAuthManager:
    """Resolves tokens and deployment settings from the environment."""

    def __init__(self, config: EnvAuthConfig):
        self.config = config
        self.logger = get_logger()
        self._dotenv_loaded = False

        if config.load_dotenv:
            self._load_dotenv()

    @property
    def dotenv_loaded(self) -> bool:
        return self._dotenv_loaded

    def _load_dotenv(self) -> None:
        """Load .env file if available; existing variables win."""
        candidates = [self.config.dotenv_path] if self.config.dotenv_path else list(_DOTENV_FALLBACKS)
        for location in candidates:
            env_path = Path(location)
            if env_path.exists():
                load_dotenv(str(env_path))
                self._dotenv_loaded = True
                self.logger.debug(f"Loaded environment variables from {env_path}")
                return

    def get_github_token(self) -> str | None:
        """Get GitHub token from environment variables."""
        token = os.getenv(self.config.github_token_var)
        if token and token.strip():
            return token.strip()

        for alt_var in ("GH_TOKEN", "GITHUB_ACCESS_TOKEN", "GITHUB_PAT"):
            token = os.getenv(alt_var)
            if token and token.strip():
                self.logger.debug(f"Found GitHub token in {alt_var}")
                return token.strip()
        return None

    def get_tracker_token(self) -> str | None:
        token = os.getenv(self.config.tracker_token_var)
        if token and token.strip():
            return token.strip()
        return None

    def apply_to(self, cfg: RelayConfig) -> RelayConfig:
        """Fill settings the config file left empty from the environment.

        Runs after ``.env`` loading, so values defined there are picked up
        too. Values present in the config file are never overridden.
        """
        cfg.github_org = cfg.github_org or os.getenv("GITHUB_ORG") or None
        cfg.github_repo = cfg.github_repo or os.getenv("GITHUB_REPO") or None
        cfg.webhook_username = cfg.webhook_username or os.getenv("WEBHOOK_USERNAME") or None
        cfg.webhook_password = cfg.webhook_password or os.getenv("WEBHOOK_PASSWORD") or None
        return cfg

    def get_missing_settings(self, cfg: RelayConfig, *, tracker: bool = True) -> list[str]:
        missing: list[str] = []
        if not cfg.github_org:
            missing.append("GITHUB_ORG")
        if not cfg.github_repo:
            missing.append("GITHUB_REPO")
        if not self.get_github_token():
            missing.append(self.config.github_token_var)
        if tracker and not self.get_tracker_token():
            missing.append(self.config.tracker_token_var)
        return missing


def create_env_auth_manager(config: EnvAuthConfig | None = None) -> EnvironmentAuthManager:
    """Factory function to create environment authentication manager."""
    if config is None:
        config = EnvAuthConfig()
    return EnvironmentAuthManager(config)


def env_auth_for(cfg: RelayConfig) -> EnvironmentAuthManager:
    return create_env_auth_manager(
        EnvAuthConfig(load_dotenv=cfg.env_auth_load_dotenv, dotenv_path=cfg.env_auth_dotenv_path)
    )


__all__ = [
    "EnvAuthConfig",
    "EnvironmentAuthManager",
    "create_env_auth_manager",
    "env_auth_for",
]
