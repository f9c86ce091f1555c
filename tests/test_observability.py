from __future__ import annotations

import pytest
from conftest import FakeIssues, FakeResolver, read_fixture

from storyrelay import observability, orchestrator
from storyrelay.orchestrator import relay_event
from storyrelay.parser import parse_event
from storyrelay.processor import ChangeProcessor


@pytest.fixture(autouse=True)
def reset_configured():
    observability._telemetry_configured["configured"] = False
    yield
    observability._telemetry_configured["configured"] = False


def test_configure_telemetry_without_sdk(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(observability, "_load_sdk", lambda: None)
    monkeypatch.setattr(
        observability.trace,
        "set_tracer_provider",
        lambda provider: pytest.fail("no provider should be installed"),
    )

    assert observability.configure_telemetry(service_name="storyrelay") is False
    assert observability._telemetry_configured["configured"] is False


def _dummy_runtime(calls: dict[str, object]) -> dict[str, object]:
    class DummyResource:
        @classmethod
        def create(cls, attrs: dict[str, str]) -> str:
            calls["resource"] = attrs
            return "resource"

    class DummyTracerProvider:
        def __init__(self, resource: str) -> None:
            calls["resource_arg"] = resource

        def add_span_processor(self, processor: object) -> None:
            calls["processor"] = processor

    class DummyBatchSpanProcessor:
        def __init__(self, exporter: object) -> None:
            calls["exporter"] = exporter

    class DummyConsoleExporter:
        pass

    class DummyOTLPExporter:
        def __init__(self, endpoint: str | None = None) -> None:
            calls["endpoint"] = endpoint

    return {
        "Resource": DummyResource,
        "TracerProvider": DummyTracerProvider,
        "BatchSpanProcessor": DummyBatchSpanProcessor,
        "ConsoleSpanExporter": DummyConsoleExporter,
        "OTLPSpanExporter": DummyOTLPExporter,
    }


def test_configure_telemetry_with_otlp_exporter(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: dict[str, object] = {}
    monkeypatch.setattr(observability, "_load_sdk", lambda: _dummy_runtime(calls))
    monkeypatch.setattr(
        observability.trace,
        "set_tracer_provider",
        lambda provider: calls.update({"provider": provider}),
    )

    assert observability.configure_telemetry(
        service_name="storyrelay", exporter="otlp", endpoint="https://otel"
    )

    assert calls["resource"] == {"service.name": "storyrelay"}
    assert calls["endpoint"] == "https://otel"
    assert "provider" in calls
    assert observability._telemetry_configured["configured"] is True


def test_configure_telemetry_runs_once(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: dict[str, object] = {}
    installs: list[object] = []
    monkeypatch.setattr(observability, "_load_sdk", lambda: _dummy_runtime(calls))
    monkeypatch.setattr(observability.trace, "set_tracer_provider", installs.append)

    observability.configure_telemetry(service_name="storyrelay")
    observability.configure_telemetry(service_name="storyrelay")

    assert len(installs) == 1
    assert "endpoint" not in calls


class _RecordingSpan:
    def __init__(self, name: str, spans: list[_RecordingSpan]) -> None:
        self.name = name
        self.attributes: dict[str, object] = {}
        spans.append(self)

    def __enter__(self) -> _RecordingSpan:
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def set_attribute(self, key: str, value: object) -> None:
        self.attributes[key] = value


class _RecordingTracer:
    def __init__(self) -> None:
        self.spans: list[_RecordingSpan] = []

    def start_as_current_span(self, name: str) -> _RecordingSpan:
        return _RecordingSpan(name, self.spans)


def test_relay_event_emits_spans(monkeypatch: pytest.MonkeyPatch) -> None:
    tracer = _RecordingTracer()
    monkeypatch.setattr(orchestrator, "get_tracer", lambda: tracer)
    event = parse_event(read_fixture("move_multiple_stories_from_icebox_to_backlog"))
    processor = ChangeProcessor(FakeResolver(issue_ids=[0, 0]), FakeIssues())

    relay_event(event, processor)

    names = [span.name for span in tracer.spans]
    assert names == ["relay_event", "relay_change", "relay_change"]
