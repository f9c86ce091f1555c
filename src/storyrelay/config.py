from __future__ import annotations

import base64
import binascii
import hmac
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml

from .errors import ConfigError

DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_TRACKER_API_URL = "https://www.pivotaltracker.com/services/v5"
DEFAULT_WEBHOOK_HOST = "0.0.0.0"  # nosec B104 - container deployments bind all interfaces
DEFAULT_WEBHOOK_PORT = 8080
USER_MAPPING_KEY = "tracker_id_to_github_username_mapping"


@dataclass
class BasicAuthCredentials:
    username: str
    password: str

    def matches(self, authorization: str | None, query: Mapping[str, list[str]]) -> bool:
        """Check the Authorization header, falling back to query parameters.

        Tracker web hooks cannot send basic auth headers but do allow
        arbitrary query parameters on the hook URL.
        """
        supplied = _parse_basic_auth(authorization)
        if supplied is None:
            users = query.get("username") or []
            passwords = query.get("password") or []
            if not users or not passwords:
                return False
            supplied = (users[0], passwords[0])
        user_ok = hmac.compare_digest(supplied[0].encode(), self.username.encode())
        pass_ok = hmac.compare_digest(supplied[1].encode(), self.password.encode())
        return user_ok and pass_ok


def _parse_basic_auth(header: str | None) -> tuple[str, str] | None:
    if not header:
        return None
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user, sep, password = decoded.partition(":")
    if not sep:
        return None
    return user, password


@dataclass
class RelayConfig:
    source_file: Path | None
    # None disables owner -> assignee reconciliation entirely
    user_id_mapping: dict[int, str] | None
    github_org: str | None
    github_repo: str | None
    github_api_url: str
    tracker_api_url: str
    webhook_host: str
    webhook_port: int
    webhook_username: str | None
    webhook_password: str | None
    # Logging configuration
    logging_json_enabled: bool
    logging_level: str
    # Environment authentication configuration
    env_auth_load_dotenv: bool
    env_auth_dotenv_path: str | None

    @property
    def github_repo_slug(self) -> str | None:
        if not self.github_org or not self.github_repo:
            return None
        return f"{self.github_org}/{self.github_repo}"

    @property
    def webhook_credentials(self) -> BasicAuthCredentials | None:
        if not self.webhook_username or not self.webhook_password:
            return None
        return BasicAuthCredentials(self.webhook_username, self.webhook_password)


def _resolve_env_var(value: Any, env_var_name: str | None = None) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        env_name = env_var_name or value[1:]
        return os.getenv(env_name, value)
    return value


def _setting(section: Mapping[str, Any], key: str) -> str | None:
    """Config value with $ENV expansion; unresolved references count as unset."""
    value = _resolve_env_var(section.get(key))
    if value in (None, '') or (isinstance(value, str) and value.startswith('$')):
        return None
    return str(value)


def parse_user_mapping(raw: Any) -> dict[int, str] | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ConfigError(f'{USER_MAPPING_KEY} must be a mapping of Tracker user id to GitHub username')
    mapping: dict[int, str] = {}
    for key, value in raw.items():
        try:
            tracker_id = int(key)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f'{USER_MAPPING_KEY}: Tracker user id {key!r} is not an integer') from exc
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f'{USER_MAPPING_KEY}: GitHub username for {tracker_id} must be a non-empty string')
        mapping[tracker_id] = value.strip()
    return mapping


def config_from_mapping(raw: Mapping[str, Any], source_file: Path | None = None) -> RelayConfig:
    gh = cast(dict[str, Any], raw.get('github', {}) or {})
    tracker = cast(dict[str, Any], raw.get('tracker', {}) or {})
    webhook = cast(dict[str, Any], raw.get('webhook', {}) or {})
    logging_config = cast(dict[str, Any], raw.get('logging', {}) or {})
    env_auth = cast(dict[str, Any], raw.get('environment', {}) or {})

    try:
        port = int(webhook.get('port', DEFAULT_WEBHOOK_PORT))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"webhook.port must be an integer: {webhook.get('port')!r}") from exc

    return RelayConfig(
        source_file=source_file,
        user_id_mapping=parse_user_mapping(raw.get(USER_MAPPING_KEY)),
        github_org=_setting(gh, 'org'),
        github_repo=_setting(gh, 'repo'),
        github_api_url=gh.get('api_url') or DEFAULT_GITHUB_API_URL,
        tracker_api_url=tracker.get('api_url') or DEFAULT_TRACKER_API_URL,
        webhook_host=str(webhook.get('host') or DEFAULT_WEBHOOK_HOST),
        webhook_port=port,
        webhook_username=_setting(webhook, 'username'),
        webhook_password=_setting(webhook, 'password'),
        logging_json_enabled=bool(logging_config.get('json_enabled', False)),
        logging_level=str(logging_config.get('level', 'INFO')),
        env_auth_load_dotenv=bool(env_auth.get('load_dotenv', True)),
        env_auth_dotenv_path=env_auth.get('dotenv_path'),
    )


def load_config(path: str | Path) -> RelayConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f'Configuration file not found: {p}')
    try:
        loaded = yaml.safe_load(p.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f'could not parse config file ({p}) as YAML: {exc}') from exc
    if not isinstance(loaded, dict):
        raise ConfigError(f'Configuration file must contain a mapping: {p}')
    return config_from_mapping(cast(dict[str, Any], loaded), source_file=p)


__all__ = [
    "BasicAuthCredentials",
    "RelayConfig",
    "ConfigError",
    "config_from_mapping",
    "load_config",
    "parse_user_mapping",
]
