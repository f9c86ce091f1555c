"""JSON Schemas for the documents storyrelay consumes and produces.

The activity event schema is deliberately shallow: it checks the structure
the relay depends on (project id, change list, per-change identity and the
types of the fields it reads) and leaves every other Tracker attribute open.
"""

from __future__ import annotations

from typing import Any

SCHEMA_KEY = "$schema"
SCHEMA_URL = "http://json-schema.org/draft-07/schema#"
SCHEMA_VERSION = "20240301"

_NULLABLE_STRING = {"type": ["string", "null"]}

_CHANGED_VALUES: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": _NULLABLE_STRING,
        "description": _NULLABLE_STRING,
        "story_type": _NULLABLE_STRING,
        "current_state": _NULLABLE_STRING,
        "estimate": {"type": ["integer", "null"]},
        "owner_ids": {
            "type": ["array", "null"],
            "items": {"type": "integer"},
        },
    },
}


def get_schemas() -> dict[str, Any]:
    """Return a mapping of schema name -> JSON Schema dictionary.

    Keys:
        activity_event: Tracker activity web hook payload (input).
        relay_summary:  Summary document produced for each relayed event.
    """
    activity_event: dict[str, Any] = {
        SCHEMA_KEY: SCHEMA_URL,
        "$comment": f"storyrelay activity event schema v{SCHEMA_VERSION}",
        "title": "TrackerActivityEvent",
        "type": "object",
        "required": ["kind", "project"],
        "properties": {
            "kind": {"type": "string"},
            "project": {
                "type": "object",
                "required": ["id"],
                "properties": {"id": {"type": "integer"}},
            },
            "changes": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["kind", "id"],
                    "properties": {
                        "kind": {"type": "string"},
                        "id": {"type": "integer"},
                        "change_type": {"type": "string"},
                        "story_type": {"type": "string"},
                        "original_values": _CHANGED_VALUES,
                        "new_values": _CHANGED_VALUES,
                    },
                },
            },
        },
    }

    relay_summary: dict[str, Any] = {
        SCHEMA_KEY: SCHEMA_URL,
        "$comment": f"storyrelay relay summary schema v{SCHEMA_VERSION}",
        "title": "RelaySummary",
        "type": "object",
        "required": [
            "generated_at",
            "project_id",
            "event_kind",
            "ok",
            "status_code",
            "message",
            "totals",
            "outcomes",
        ],
        "properties": {
            "generated_at": {"type": "string"},
            "project_id": {"type": "integer"},
            "event_kind": {"type": "string"},
            "ok": {"type": "boolean"},
            "status_code": {"enum": [200, 502]},
            "message": {"type": "string"},
            "totals": {
                "type": "object",
                "properties": {
                    k: {"type": "integer"}
                    for k in ("updated", "planned", "unchanged", "skipped", "ignored", "failed")
                },
            },
            "outcomes": {"type": "array", "items": {"type": "object"}},
            "last_error": {
                "type": "object",
                "description": "Present only when at least one story failed",
                "properties": {
                    "category": {"enum": ["lookup", "fetch", "update"]},
                    "transient": {"type": "boolean"},
                    "original_type": {"type": "string"},
                    "message": {"type": "string"},
                },
            },
        },
    }

    return {"activity_event": activity_event, "relay_summary": relay_summary}


__all__ = ["get_schemas", "SCHEMA_VERSION"]
