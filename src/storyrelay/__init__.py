"""storyrelay - keep GitHub issues in step with their Pivotal Tracker stories.

High-level public API:

from storyrelay import ChangeProcessor, parse_event, relay_event

processor = ChangeProcessor(tracker_client, github_client, {3344177: 'octocat'})
summary = relay_event(parse_event(payload_bytes), processor)
print(summary.status_code, summary.totals())

The pure pieces (``reconcile``, ``plan_mutation``) need no network access and
can be used on their own to preview what a change would do to an issue.
"""

from __future__ import annotations

from .config import RelayConfig, load_config
from .models import ChangeEvent, IssueSnapshot, MutationRequest, OptionalField
from .orchestrator import RelaySummary, relay_event
from .parser import parse_event
from .processor import ChangeProcessor, EntityOutcome, plan_mutation
from .reconcile import LabelReconciliation, Transition, reconcile

# Version constant (keep in sync with pyproject.toml)
__version__ = "0.1.0"

__all__ = [
    "ChangeEvent",
    "ChangeProcessor",
    "EntityOutcome",
    "IssueSnapshot",
    "LabelReconciliation",
    "MutationRequest",
    "OptionalField",
    "RelayConfig",
    "RelaySummary",
    "Transition",
    "load_config",
    "parse_event",
    "plan_mutation",
    "reconcile",
    "relay_event",
    "__version__",
]
