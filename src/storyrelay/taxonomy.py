"""Label vocabulary managed per Tracker story dimension.

Each table maps one value of a dimension to the complete set of labels the
linked issue should carry while the story holds that value. The union of a
table's values is the dimension's *owned* vocabulary: every owned label is
stripped before the labels for the new value are added, so a stale label
from the same dimension never survives a transition. Labels outside the
owned vocabularies are never touched.

The labels are assumed to exist in the GitHub repository already.

See https://www.pivotaltracker.com/help/api/rest/v5#story_resource
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from functools import lru_cache
from types import MappingProxyType


class Dimension(str, Enum):
    LIFECYCLE_STATE = "lifecycle_state"
    ITEM_TYPE = "item_type"
    ESTIMATE = "estimate"


# Terminal story state; reaching it closes the linked issue.
ACCEPTED_STATE = "accepted"

LIFECYCLE_STATE_LABELS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "unscheduled": ("priority/undecided",),
        "unstarted": ("priority/backlog",),
        # Automatic planning is rarely used; a planned story is effectively unstarted.
        "planned": ("priority/backlog",),
        "started": ("priority/backlog", "state/started"),
        "finished": ("priority/backlog", "state/finished"),
        "delivered": ("priority/backlog", "state/delivered"),
        "rejected": ("priority/backlog", "state/rejected"),
        ACCEPTED_STATE: ("state/accepted",),
    }
)

ITEM_TYPE_LABELS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "feature": ("enhancement",),
        "bug": ("bug",),
        "chore": ("chore",),
        "release": (),  # only strips the other type labels
    }
)

# Keyed by the stringified point value (Fibonacci scale).
ESTIMATE_LABELS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "0": ("estimate/XS",),
        "1": ("estimate/S",),
        "2": ("estimate/M",),
        "3": ("estimate/L",),
        "5": ("estimate/XL",),
        "8": ("estimate/XXL",),
    }
)

_TABLES: Mapping[Dimension, Mapping[str, tuple[str, ...]]] = MappingProxyType(
    {
        Dimension.LIFECYCLE_STATE: LIFECYCLE_STATE_LABELS,
        Dimension.ITEM_TYPE: ITEM_TYPE_LABELS,
        Dimension.ESTIMATE: ESTIMATE_LABELS,
    }
)


def table(dimension: Dimension) -> Mapping[str, tuple[str, ...]]:
    return _TABLES[dimension]


def is_mapped(dimension: Dimension, value: str | None) -> bool:
    return value is not None and value in _TABLES[dimension]


def labels_for(dimension: Dimension, value: str | None) -> tuple[str, ...]:
    """Labels asserted for ``value``; empty when ``value`` is None or unmapped."""
    if value is None:
        return ()
    return _TABLES[dimension].get(value, ())


@lru_cache(maxsize=None)
def owned_labels(dimension: Dimension) -> frozenset[str]:
    owned: set[str] = set()
    for labels in _TABLES[dimension].values():
        owned.update(labels)
    return frozenset(owned)


__all__ = [
    "Dimension",
    "ACCEPTED_STATE",
    "LIFECYCLE_STATE_LABELS",
    "ITEM_TYPE_LABELS",
    "ESTIMATE_LABELS",
    "table",
    "is_mapped",
    "labels_for",
    "owned_labels",
]
