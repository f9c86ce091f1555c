"""Pytest configuration for storyrelay tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`), and provides the
recording fakes that stand in for Tracker and GitHub.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
FIXTURES = Path(__file__).resolve().parent / "fixtures"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from storyrelay.models import IssueSnapshot, MutationRequest  # noqa: E402


def read_fixture(name: str) -> bytes:
    return (FIXTURES / f"{name}.json").read_bytes()


def load_fixture(name: str) -> Any:
    return json.loads(read_fixture(name))


@dataclass
class FakeResolver:
    """Returns queued issue numbers (or raises queued errors) in call order."""

    issue_ids: Sequence[int] = ()
    errors: Sequence[Exception | None] = ()
    calls: list[tuple[int, int]] = field(default_factory=list)

    def resolve_linked_id(self, project_id: int, story_id: int) -> int:
        index = len(self.calls)
        self.calls.append((project_id, story_id))
        if index < len(self.errors) and self.errors[index] is not None:
            raise self.errors[index]  # type: ignore[misc]
        if index < len(self.issue_ids):
            return self.issue_ids[index]
        raise AssertionError(f"unexpected Tracker lookup for story {story_id}")


@dataclass
class FakeIssues:
    """Serves queued label lists and records every PATCH."""

    labels: Sequence[Sequence[str] | None] = ()
    fetch_errors: Sequence[Exception | None] = ()
    update_errors: Sequence[Exception | None] = ()
    fetched: list[int] = field(default_factory=list)
    updates: list[tuple[int, MutationRequest]] = field(default_factory=list)

    def fetch_snapshot(self, number: int) -> IssueSnapshot:
        index = len(self.fetched)
        self.fetched.append(number)
        if index < len(self.fetch_errors) and self.fetch_errors[index] is not None:
            raise self.fetch_errors[index]  # type: ignore[misc]
        if index >= len(self.labels):
            raise AssertionError(f"unexpected GitHub fetch for issue #{number}")
        return IssueSnapshot(number=number, labels=tuple(self.labels[index] or ()))

    def apply_mutation(self, number: int, mutation: MutationRequest) -> None:
        index = len(self.updates)
        self.updates.append((number, mutation))
        if index < len(self.update_errors) and self.update_errors[index] is not None:
            raise self.update_errors[index]  # type: ignore[misc]

    @property
    def updated_numbers(self) -> list[int]:
        return [number for number, _ in self.updates]


@pytest.fixture
def fixture_bytes():
    return read_fixture


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep real tokens and .env files out of the tests."""
    for var in (
        "GITHUB_TOKEN",
        "GH_TOKEN",
        "GITHUB_ACCESS_TOKEN",
        "GITHUB_PAT",
        "TRACKER_API_TOKEN",
        "GITHUB_ORG",
        "GITHUB_REPO",
        "WEBHOOK_USERNAME",
        "WEBHOOK_PASSWORD",
        "STORYRELAY_OTEL_EXPORTER",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    # fresh logger per test so its handler writes to the current stderr
    monkeypatch.setattr("storyrelay.logging._GLOBAL", None)


@dataclass
class DummyResponse:
    status_code: int
    payload: Any

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    @property
    def text(self) -> str:
        payload = self.payload
        if payload is None:
            return ""
        if isinstance(payload, (dict, list)):
            return json.dumps(payload)
        return str(payload)


class DummySession:
    """Stands in for ``requests.Session``; replays queued responses."""

    def __init__(self, responses: list[DummyResponse | Exception]):
        self._responses = responses
        self.request_log: list[tuple[str, str, dict[str, Any]]] = []
        self.headers: dict[str, str] = {}

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> DummyResponse:
        self.request_log.append(
            (
                method,
                url,
                {"headers": dict(headers), "json": json, "params": dict(params or {}), "timeout": timeout},
            )
        )
        if not self._responses:
            raise AssertionError("No response queued for request")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response
