from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any, TypeVar

from jsonschema import Draft7Validator

from .errors import EventParseError
from .models import Change, ChangedValues, ChangeEvent, OptionalField
from .schemas import get_schemas

T = TypeVar("T")

_MAX_REPORTED_ERRORS = 3


@lru_cache(maxsize=1)
def _validator() -> Draft7Validator:
    return Draft7Validator(get_schemas()["activity_event"])


def _decode(raw: bytes | bytearray | str | Mapping[str, Any]) -> Any:
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EventParseError(f"request body is not UTF-8: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise EventParseError(f"request body is not valid JSON: {exc}") from exc


def _validate(data: Any) -> None:
    errors = sorted(_validator().iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return
    problems = []
    for err in errors[:_MAX_REPORTED_ERRORS]:
        where = "/".join(str(p) for p in err.absolute_path) or "<root>"
        problems.append(f"{where}: {err.message}")
    raise EventParseError("activity event failed validation: " + "; ".join(problems))


def _text(values: Mapping[str, Any], key: str) -> str | None:
    value = values.get(key)
    return value if isinstance(value, str) and value else None


def _optional(
    values: Mapping[str, Any], key: str, convert: Callable[[Any], T]
) -> OptionalField[T]:
    if key not in values:
        return OptionalField.absent()
    value = values[key]
    if value is None:
        return OptionalField.null()
    return OptionalField.of(convert(value))


def _owner_ids(value: Any) -> tuple[int, ...]:
    return tuple(int(v) for v in value)


def parse_changed_values(values: Mapping[str, Any] | None) -> ChangedValues:
    values = values or {}
    return ChangedValues(
        title=_text(values, "name"),
        description=_text(values, "description"),
        item_type=_text(values, "story_type"),
        lifecycle_state=_text(values, "current_state"),
        estimate=_optional(values, "estimate", int),
        owner_ids=_optional(values, "owner_ids", _owner_ids),
    )


def _parse_change(entry: Mapping[str, Any]) -> Change:
    return Change(
        entity_kind=str(entry.get("kind", "")),
        entity_id=int(entry["id"]),
        change_type=str(entry.get("change_type", "")),
        story_type=str(entry.get("story_type", "")),
        original_values=parse_changed_values(entry.get("original_values")),
        new_values=parse_changed_values(entry.get("new_values")),
    )


def parse_event(raw: bytes | bytearray | str | Mapping[str, Any]) -> ChangeEvent:
    """Parse and validate a Tracker activity web hook payload.

    Raises ``EventParseError`` for anything that is not a structurally valid
    event; nothing has been relayed at that point.
    """
    data = _decode(raw)
    _validate(data)
    changes = tuple(_parse_change(entry) for entry in data.get("changes") or [])
    return ChangeEvent(kind=data["kind"], project_id=int(data["project"]["id"]), changes=changes)


__all__ = ["parse_event", "parse_changed_values"]
