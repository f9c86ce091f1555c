"""In-memory representation of Tracker activity events and issue mutations.

``OptionalField`` carries the three-way distinction Tracker payloads rely on:
a key missing from ``new_values`` means "no opinion", a key sent as ``null``
means "explicitly cleared", anything else is an explicit value. Keeping the
state as a tag rather than a sentinel default means callers cannot confuse
the first two cases by accident.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

STORY_KIND = "story"
CHANGE_CREATE = "create"
CHANGE_UPDATE = "update"
CHANGE_DELETE = "delete"

ISSUE_OPEN = "open"
ISSUE_CLOSED = "closed"


class FieldState(Enum):
    ABSENT = "absent"
    NULL = "null"
    VALUE = "value"


@dataclass(frozen=True)
class OptionalField(Generic[T]):
    state: FieldState = FieldState.ABSENT
    value: T | None = None

    @classmethod
    def absent(cls) -> OptionalField[Any]:
        return cls(FieldState.ABSENT)

    @classmethod
    def null(cls) -> OptionalField[Any]:
        return cls(FieldState.NULL)

    @classmethod
    def of(cls, value: T) -> OptionalField[T]:
        if value is None:
            raise ValueError("use OptionalField.null() for explicit null values")
        return cls(FieldState.VALUE, value)

    @property
    def present(self) -> bool:
        return self.state is not FieldState.ABSENT

    @property
    def is_null(self) -> bool:
        return self.state is FieldState.NULL


@dataclass(frozen=True)
class ChangedValues:
    """Snapshot of the mutable story fields named by one change.

    Text fields use ``None`` for both "absent" and "empty string"; only
    ``estimate`` and ``owner_ids`` need the full three-state treatment.
    """

    title: str | None = None
    description: str | None = None
    item_type: str | None = None
    lifecycle_state: str | None = None
    estimate: OptionalField[int] = field(default_factory=OptionalField.absent)
    owner_ids: OptionalField[tuple[int, ...]] = field(default_factory=OptionalField.absent)


@dataclass(frozen=True)
class Change:
    entity_kind: str
    entity_id: int
    change_type: str
    story_type: str = ""
    original_values: ChangedValues = field(default_factory=ChangedValues)
    new_values: ChangedValues = field(default_factory=ChangedValues)


@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    project_id: int
    changes: tuple[Change, ...] = ()


@dataclass(frozen=True)
class IssueSnapshot:
    """Current state of a GitHub issue, fetched just before reconciliation.

    Labels keep GitHub's ordering so that rewritten label lists stay stable,
    but they are only ever compared as sets.
    """

    number: int
    labels: tuple[str, ...] = ()
    title: str | None = None
    state: str | None = None

    @property
    def label_set(self) -> frozenset[str]:
        return frozenset(self.labels)


_MUTATION_FIELDS = ("labels", "assignees", "title", "body", "state")


@dataclass
class MutationRequest:
    """PATCH-style issue update. ``None`` means "leave this field alone"."""

    labels: list[str] | None = None
    assignees: list[str] | None = None
    title: str | None = None
    body: str | None = None
    state: str | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in _MUTATION_FIELDS)

    def fields_set(self) -> list[str]:
        return [name for name in _MUTATION_FIELDS if getattr(self, name) is not None]

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name in _MUTATION_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            payload[name] = list(value) if isinstance(value, list) else value
        return payload


__all__ = [
    "STORY_KIND",
    "CHANGE_CREATE",
    "CHANGE_UPDATE",
    "CHANGE_DELETE",
    "ISSUE_OPEN",
    "ISSUE_CLOSED",
    "FieldState",
    "OptionalField",
    "ChangedValues",
    "Change",
    "ChangeEvent",
    "IssueSnapshot",
    "MutationRequest",
]
