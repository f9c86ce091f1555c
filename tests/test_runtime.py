from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from storyrelay import runtime
from storyrelay.config import RelayConfig, config_from_mapping
from storyrelay.errors import ConfigError
from storyrelay.logging import get_logger
from storyrelay.processor import ChangeProcessor

FULL_SETTINGS = {
    "github": {"org": "acme", "repo": "widgets"},
    "webhook": {"username": "tracker", "password": "s3cret"},
    "environment": {"load_dotenv": False},
}


def test_prepare_config_returns_none_for_schema_command() -> None:
    assert runtime.prepare_config(SimpleNamespace(cmd="schema")) is None


def test_prepare_config_requires_config_attribute() -> None:
    with pytest.raises(AttributeError):
        runtime.prepare_config(SimpleNamespace(cmd="relay"))


def test_prepare_config_applies_repo_override() -> None:
    args = SimpleNamespace(cmd="relay", config="config.yml", repo="owner/repo")

    def loader(path: str) -> RelayConfig:
        assert path == "config.yml"
        return config_from_mapping({"github": {"org": "acme", "repo": "widgets"}})

    cfg = runtime.prepare_config(args, loader=loader)

    assert cfg is not None
    assert cfg.github_repo_slug == "owner/repo"


def test_plan_tolerates_missing_config() -> None:
    def loader(path: str) -> RelayConfig:
        raise AssertionError("loader should not run")

    cfg = runtime.prepare_config(SimpleNamespace(cmd="plan", config="absent.yml"), loader=loader)

    assert cfg is not None
    assert cfg.user_id_mapping is None


def test_build_processor_and_app(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "ghs_token")
    monkeypatch.setenv("TRACKER_API_TOKEN", "trk")
    cfg = config_from_mapping(FULL_SETTINGS)
    auth = runtime.prepare_auth(cfg)

    assert isinstance(runtime.build_processor(cfg, auth), ChangeProcessor)
    app = runtime.build_app(cfg, auth)
    assert app.credentials.username == "tracker"
    assert app.import_source is not None
    assert app.import_source.timeout == runtime.IMPORT_TIMEOUT


def test_build_app_requires_webhook_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "ghs_token")
    monkeypatch.setenv("TRACKER_API_TOKEN", "trk")
    cfg = config_from_mapping({"github": {"org": "acme", "repo": "widgets"}})

    with pytest.raises(ConfigError, match="WEBHOOK_USERNAME"):
        runtime.build_app(cfg, runtime.prepare_auth(cfg))


def test_export_client_does_not_need_tracker_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "ghs_token")
    cfg = config_from_mapping(FULL_SETTINGS)

    client = runtime.build_github_client(cfg, runtime.prepare_auth(cfg))

    assert client.repo == "acme/widgets"


def test_execute_command_propagates_failures() -> None:
    def boom() -> int:
        raise RuntimeError("nope")

    assert runtime.execute_command(lambda: 3, "relay") == 3
    assert runtime.execute_command(lambda: None, "relay") == 0
    with pytest.raises(RuntimeError):
        runtime.execute_command(boom, "relay")


def test_execute_command_logs_error_category(caplog: pytest.LogCaptureFixture) -> None:
    def missing() -> int:
        raise ConfigError("missing required settings: GITHUB_TOKEN")

    get_logger()
    logger = logging.getLogger("storyrelay")
    logger.addHandler(caplog.handler)
    try:
        with pytest.raises(ConfigError):
            runtime.execute_command(missing, "relay")
    finally:
        logger.removeHandler(caplog.handler)

    [record] = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert record.getMessage() == "command relay failed"
    assert record.category == "config"
