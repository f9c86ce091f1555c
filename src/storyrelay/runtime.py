"""Runtime helpers wiring configuration into clients for the CLI."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from .config import RelayConfig, config_from_mapping, load_config
from .env_auth import EnvironmentAuthManager, env_auth_for
from .errors import ConfigError, classify_error
from .github_rest import DEFAULT_TIMEOUT, GitHubRestClient
from .logging import configure_logging, get_logger
from .processor import ChangeProcessor
from .tracker_api import TrackerClient
from .webhook import RelayApp

# Tracker gives up on the import URL after a while; answer before it does.
IMPORT_TIMEOUT = 20.0

# Commands that never touch the network and tolerate a missing config file
_OFFLINE_COMMANDS = {"plan"}


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def prepare_config(
    args: Any, *, loader: Callable[[str], RelayConfig] = load_config
) -> RelayConfig | None:
    """Load and post-process RelayConfig for the given argparse namespace."""
    command = getattr(args, "cmd", None)
    if command == "schema":
        return None
    if not hasattr(args, "config"):
        raise AttributeError("Command namespace is missing 'config' attribute")
    if command in _OFFLINE_COMMANDS and not Path(args.config).exists():
        cfg = config_from_mapping({})
    else:
        cfg = loader(args.config)
    repo_override = getattr(args, "repo", None)
    if repo_override:
        org, sep, repo = str(repo_override).partition("/")
        if not sep or not org or not repo:
            raise ConfigError(f"--repo must look like owner/repo, got {repo_override!r}")
        cfg.github_org, cfg.github_repo = org, repo
    json_logs = getattr(args, "json_logs", False) or cfg.logging_json_enabled
    level = getattr(args, "log_level", None) or cfg.logging_level
    configure_logging(json_logging=json_logs, level=level)
    return cfg


def prepare_auth(cfg: RelayConfig) -> EnvironmentAuthManager:
    auth = env_auth_for(cfg)
    auth.apply_to(cfg)
    return auth


def _require(auth: EnvironmentAuthManager, cfg: RelayConfig, *, tracker: bool) -> None:
    missing = auth.get_missing_settings(cfg, tracker=tracker)
    if missing:
        raise ConfigError(f"missing required settings: {', '.join(missing)}")


def build_github_client(
    cfg: RelayConfig,
    auth: EnvironmentAuthManager,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> GitHubRestClient:
    _require(auth, cfg, tracker=False)
    return GitHubRestClient(
        token=auth.get_github_token() or "",
        repo=cfg.github_repo_slug or "",
        base_url=cfg.github_api_url,
        timeout=timeout,
    )


def build_processor(
    cfg: RelayConfig, auth: EnvironmentAuthManager, *, dry_run: bool = False
) -> ChangeProcessor:
    """Processor talking to the real Tracker and GitHub APIs.

    With ``dry_run`` the GitHub side is read but never written.
    """
    _require(auth, cfg, tracker=True)
    tracker = TrackerClient(
        token=auth.get_tracker_token() or "", base_url=cfg.tracker_api_url
    )
    github = build_github_client(cfg, auth)
    return ChangeProcessor(tracker, github, cfg.user_id_mapping, dry_run=dry_run)


def build_app(cfg: RelayConfig, auth: EnvironmentAuthManager) -> RelayApp:
    credentials = cfg.webhook_credentials
    if credentials is None:
        raise ConfigError("webhook username and password must be configured (WEBHOOK_USERNAME / WEBHOOK_PASSWORD)")
    return RelayApp(
        processor=build_processor(cfg, auth),
        credentials=credentials,
        import_source=build_github_client(cfg, auth, timeout=IMPORT_TIMEOUT),
    )


def execute_command(handler: _HandlerCallable, command: str) -> int:
    """Run a command handler, logging its outcome and duration."""
    logger = get_logger()
    start = time.perf_counter()
    try:
        result = handler()
        exit_code = int(result) if result is not None else 0
    except Exception as exc:
        duration_ms = (time.perf_counter() - start) * 1000
        info = classify_error(exc)
        logger.log_error(
            f"command {command} failed",
            error=info.message,
            category=info.category,
            transient=info.transient,
            duration_ms=round(duration_ms, 2),
        )
        raise
    logger.log_performance(f"command_{command}", (time.perf_counter() - start) * 1000, exit_code=exit_code)
    return exit_code


__all__ = [
    "prepare_config",
    "prepare_auth",
    "build_github_client",
    "build_processor",
    "build_app",
    "execute_command",
]
