"""Label reconciliation across story dimensions.

``reconcile`` takes the labels currently on an issue and an ordered list of
dimension transitions, and returns the label list the issue should carry
afterwards:

```
labels = current
for (dimension, value) in transitions:
    labels -= owned_labels(dimension)
    labels += labels_for(dimension, value)
```

A dimension with no new value contributes no transition at all; that is
"no opinion", not "clear". A transition whose value is unmapped (or None,
e.g. an explicit un-estimate) strips the dimension's labels and adds none.

The function is pure: the same inputs always produce the same output, and
the result keeps the input ordering with new labels appended, so the label
list sent to GitHub is stable across deliveries.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .taxonomy import Dimension, labels_for, owned_labels


@dataclass(frozen=True)
class Transition:
    dimension: Dimension
    value: str | None


@dataclass(frozen=True)
class LabelReconciliation:
    labels: tuple[str, ...]
    changed: bool

    @property
    def label_set(self) -> frozenset[str]:
        return frozenset(self.labels)


def _unique(labels: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for label in labels:
        if label not in seen:
            seen.add(label)
            out.append(label)
    return out


def apply_transition(labels: Iterable[str], transition: Transition) -> list[str]:
    owned = owned_labels(transition.dimension)
    result = [label for label in labels if label not in owned]
    for label in labels_for(transition.dimension, transition.value):
        if label not in result:
            result.append(label)
    return result


def reconcile(
    current_labels: Iterable[str], transitions: Iterable[Transition]
) -> LabelReconciliation:
    """Apply ``transitions`` in order; ``changed`` compares membership only."""
    before = _unique(current_labels)
    labels = list(before)
    for transition in transitions:
        labels = apply_transition(labels, transition)
    return LabelReconciliation(labels=tuple(labels), changed=set(labels) != set(before))


__all__ = ["Transition", "LabelReconciliation", "apply_transition", "reconcile"]
