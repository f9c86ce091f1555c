from __future__ import annotations

from collections.abc import Iterable
from typing import Any, TypedDict


class _LabelDict(TypedDict, total=False):
    name: str


class _IssueDict(TypedDict, total=False):
    labels: list[_LabelDict]


def extract_label_names(issue: dict[str, Any] | _IssueDict) -> list[str]:
    """Label names of a GitHub issue payload, in the order GitHub returned them."""
    names: list[str] = []
    labels_any = issue.get("labels")
    if isinstance(labels_any, list):
        for entry in labels_any:
            name_val: Any = entry.get("name") if isinstance(entry, dict) else entry
            if isinstance(name_val, str) and name_val not in names:
                names.append(name_val)
    return names


def has_label(issue: dict[str, Any] | _IssueDict, name: str) -> bool:
    return name in extract_label_names(issue)


def label_delta(before: Iterable[str], after: Iterable[str]) -> dict[str, list[str]]:
    old = set(before)
    new = set(after)
    return {
        "labels_added": sorted(new - old),
        "labels_removed": sorted(old - new),
    }


__all__ = ["extract_label_names", "has_label", "label_delta"]
