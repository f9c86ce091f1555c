"""Batch driver: relay every change of one activity event.

Stories are processed strictly in event order, one at a time. A failure on
one story is recorded and the loop moves on; the aggregate only reports
failure once every story has had its turn. When any story failed, the
summary carries the first failure's fixed category message and a 502 status
for the webhook response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypedDict

from .errors import RelayError, classify_error
from .logging import get_logger
from .models import ChangeEvent
from .observability import get_tracer
from .processor import (
    ACTION_FAILED,
    ACTION_IGNORED,
    ACTION_PLANNED,
    ACTION_SKIPPED,
    ACTION_UNCHANGED,
    ACTION_UPDATED,
    ChangeProcessor,
    EntityOutcome,
)

HTTP_OK = 200
HTTP_BAD_GATEWAY = 502

_ACTIONS = (
    ACTION_UPDATED,
    ACTION_PLANNED,
    ACTION_UNCHANGED,
    ACTION_SKIPPED,
    ACTION_IGNORED,
    ACTION_FAILED,
)


class Totals(TypedDict):
    updated: int
    planned: int
    unchanged: int
    skipped: int
    ignored: int
    failed: int


@dataclass
class RelaySummary:
    project_id: int
    event_kind: str
    outcomes: list[EntityOutcome] = field(default_factory=list)
    generated_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def errors(self) -> list[RelayError]:
        return [o.error for o in self.outcomes if o.error is not None]

    @property
    def first_error(self) -> RelayError | None:
        errors = self.errors
        return errors[0] if errors else None

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def status_code(self) -> int:
        return HTTP_OK if self.ok else HTTP_BAD_GATEWAY

    @property
    def message(self) -> str:
        first = self.first_error
        return first.public_message if first is not None else ""

    def totals(self) -> Totals:
        counts = {action: 0 for action in _ACTIONS}
        for outcome in self.outcomes:
            counts[outcome.action] = counts.get(outcome.action, 0) + 1
        return Totals(
            updated=counts[ACTION_UPDATED],
            planned=counts[ACTION_PLANNED],
            unchanged=counts[ACTION_UNCHANGED],
            skipped=counts[ACTION_SKIPPED],
            ignored=counts[ACTION_IGNORED],
            failed=counts[ACTION_FAILED],
        )

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "generated_at": self.generated_at,
            "project_id": self.project_id,
            "event_kind": self.event_kind,
            "ok": self.ok,
            "status_code": self.status_code,
            "message": self.message,
            "totals": dict(self.totals()),
            "outcomes": [o.to_dict() for o in self.outcomes if o.action != ACTION_IGNORED],
        }
        first = self.first_error
        if first is not None:
            doc["last_error"] = classify_error(first).to_dict()
        return doc


def relay_event(event: ChangeEvent, processor: ChangeProcessor) -> RelaySummary:
    logger = get_logger()
    tracer = get_tracer()
    summary = RelaySummary(project_id=event.project_id, event_kind=event.kind)
    logger.info(
        f"Saw event: kind {event.kind}, project {event.project_id}",
        project_id=event.project_id,
        change_count=len(event.changes),
    )
    with tracer.start_as_current_span("relay_event") as span:
        span.set_attribute("tracker.project_id", event.project_id)
        span.set_attribute("tracker.event_kind", event.kind)
        for change in event.changes:
            with tracer.start_as_current_span("relay_change") as change_span:
                change_span.set_attribute("tracker.story_id", change.entity_id)
                outcome = processor.process(event.project_id, change)
                change_span.set_attribute("relay.action", outcome.action)
            summary.outcomes.append(outcome)
        totals = summary.totals()
        for action, count in totals.items():
            span.set_attribute(f"relay.{action}", count)
    logger.log_operation(
        "relay_event",
        project_id=event.project_id,
        ok=summary.ok,
        **{f"total_{k}": v for k, v in totals.items()},
    )
    return summary


__all__ = ["HTTP_OK", "HTTP_BAD_GATEWAY", "Totals", "RelaySummary", "relay_event"]
