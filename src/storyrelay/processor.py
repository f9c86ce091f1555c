"""Per-story reconciliation of a Tracker change against its linked issue.

For each story change the processor resolves the linked GitHub issue, reads
its current labels, and builds a ``MutationRequest`` holding only the fields
that need to change. Nothing is sent when the request ends up empty.

Failures talking to Tracker or GitHub are turned into ``RelayError``
subclasses and returned as a ``failed`` outcome so the batch driver can keep
going with the next story.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .diffing import label_delta
from .errors import (
    IssueUpdateError,
    LinkLookupError,
    RelayError,
    SnapshotFetchError,
    classify_error,
)
from .logging import StructuredLogger, get_logger
from .models import (
    CHANGE_CREATE,
    CHANGE_DELETE,
    ISSUE_CLOSED,
    ISSUE_OPEN,
    STORY_KIND,
    Change,
    ChangedValues,
    MutationRequest,
)
from .ports import IssueGateway, LinkResolver
from .reconcile import LabelReconciliation, Transition, reconcile
from .taxonomy import ACCEPTED_STATE, Dimension, is_mapped

ACTION_IGNORED = "ignored"
ACTION_SKIPPED = "skipped"
ACTION_UNCHANGED = "unchanged"
ACTION_UPDATED = "updated"
ACTION_PLANNED = "planned"
ACTION_FAILED = "failed"


@dataclass
class EntityOutcome:
    story_id: int
    action: str
    reason: str | None = None
    issue_number: int | None = None
    mutation: MutationRequest | None = None
    labels_changed: dict[str, list[str]] | None = None
    error: RelayError | None = None

    @property
    def failed(self) -> bool:
        return self.action == ACTION_FAILED

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"story_id": self.story_id, "action": self.action}
        if self.reason:
            out["reason"] = self.reason
        if self.issue_number:
            out["issue_number"] = self.issue_number
        if self.mutation is not None and not self.mutation.is_empty():
            out["mutation"] = self.mutation.to_payload()
        if self.labels_changed:
            out["labels_changed"] = self.labels_changed
        if self.error is not None:
            out["error"] = classify_error(self.error).to_dict()
        return out


def build_transitions(values: ChangedValues) -> list[Transition]:
    """Dimension transitions named by ``values``, in a fixed order.

    Estimate is keyed on presence rather than emptiness: an explicit
    ``null`` estimate is a transition to "no estimate".
    """
    transitions: list[Transition] = []
    if values.lifecycle_state:
        transitions.append(Transition(Dimension.LIFECYCLE_STATE, values.lifecycle_state))
    if values.item_type:
        transitions.append(Transition(Dimension.ITEM_TYPE, values.item_type))
    if values.estimate.present:
        estimate = values.estimate.value
        transitions.append(
            Transition(Dimension.ESTIMATE, None if estimate is None else str(estimate))
        )
    return transitions


def map_assignees(
    change: Change, user_id_mapping: Mapping[int, str] | None
) -> tuple[list[str] | None, str]:
    """Return ``(assignees, note)``; ``None`` means leave assignees alone."""
    owners = change.new_values.owner_ids
    if not owners.present:
        return None, "owners unchanged"
    if user_id_mapping is None:
        return None, "no user id mapping configured"
    # Tracker reports an empty owner list on every create; it is not a clear.
    if change.change_type == CHANGE_CREATE:
        return None, "owners on a newly created story are ignored"
    owner_ids = owners.value or ()
    if not owner_ids:
        return [], "all story owners removed"
    usernames: list[str] = []
    for owner_id in owner_ids:
        username = user_id_mapping.get(owner_id)
        if username and username not in usernames:
            usernames.append(username)
    if not usernames:
        return None, f"none of the story owners have a GitHub username configured: {list(owner_ids)}"
    return usernames, "owners mapped"


def issue_state_for(change: Change) -> str | None:
    new_state = change.new_values.lifecycle_state
    if not new_state:
        return None
    if new_state == ACCEPTED_STATE:
        return ISSUE_CLOSED
    if change.original_values.lifecycle_state == ACCEPTED_STATE:
        return ISSUE_OPEN
    return None


@dataclass
class MutationPlan:
    mutation: MutationRequest
    labels: LabelReconciliation
    transitions: list[Transition]
    assignee_note: str


def build_plan(
    change: Change,
    current_labels: tuple[str, ...] | list[str],
    user_id_mapping: Mapping[int, str] | None = None,
) -> MutationPlan:
    """Compute the issue update for ``change`` without talking to any service."""
    values = change.new_values
    mutation = MutationRequest()

    transitions = build_transitions(values)
    result = reconcile(current_labels, transitions)
    if result.changed:
        mutation.labels = list(result.labels)

    assignees, note = map_assignees(change, user_id_mapping)
    if assignees is not None:
        mutation.assignees = assignees

    if values.title:
        mutation.title = values.title
    if values.description:
        mutation.body = values.description

    mutation.state = issue_state_for(change)
    return MutationPlan(mutation, result, transitions, note)


def plan_mutation(
    change: Change,
    current_labels: tuple[str, ...] | list[str],
    user_id_mapping: Mapping[int, str] | None = None,
) -> tuple[MutationRequest, LabelReconciliation]:
    plan = build_plan(change, current_labels, user_id_mapping)
    return plan.mutation, plan.labels


class ChangeProcessor:
    def __init__(
        self,
        resolver: LinkResolver,
        issues: IssueGateway,
        user_id_mapping: Mapping[int, str] | None = None,
        *,
        dry_run: bool = False,
        logger: StructuredLogger | None = None,
    ) -> None:
        """With ``dry_run`` issues are still read, but planned updates are only logged."""
        self._resolver = resolver
        self._issues = issues
        self._user_id_mapping = user_id_mapping
        self._dry_run = dry_run
        self._logger = logger or get_logger()

    def process(self, project_id: int, change: Change) -> EntityOutcome:
        if change.entity_kind != STORY_KIND:
            return EntityOutcome(
                change.entity_id, ACTION_IGNORED, reason=f"{change.entity_kind} change"
            )
        self._logger.info(
            f"Saw story change: kind {change.change_type}, story {change.entity_id}, "
            f"story_type {change.story_type}",
            story_id=change.entity_id,
            project_id=project_id,
        )
        if change.change_type == CHANGE_DELETE:
            # A deleted story can no longer be queried, so its link is unknowable.
            self._logger.info(
                f"Story was deleted, so skipping: story {change.entity_id}",
                story_id=change.entity_id,
            )
            return EntityOutcome(change.entity_id, ACTION_SKIPPED, reason="story deleted")
        try:
            return self._process_story(project_id, change)
        except RelayError as exc:
            self._logger.log_error(
                f"Relaying story {change.entity_id} failed ({exc.category})",
                error=str(classify_error(exc).message),
                story_id=change.entity_id,
                issue_number=exc.issue_number,
            )
            return EntityOutcome(
                change.entity_id,
                ACTION_FAILED,
                reason=exc.public_message,
                issue_number=exc.issue_number,
                error=exc,
            )

    def _process_story(self, project_id: int, change: Change) -> EntityOutcome:
        story_id = change.entity_id
        number = self._resolve(project_id, story_id)
        if number == 0:
            self._logger.info(
                f"Story is not linked to GitHub issue: story {story_id}", story_id=story_id
            )
            return EntityOutcome(story_id, ACTION_SKIPPED, reason="not linked")
        self._logger.info(
            f"Story is linked to GitHub issue: story {story_id}, GitHub issue {number}",
            story_id=story_id,
            issue_number=number,
        )

        try:
            snapshot = self._issues.fetch_snapshot(number)
        except Exception as exc:  # noqa: BLE001 - any gateway failure is a fetch error
            raise SnapshotFetchError(
                f"could not get issue #{number} from GitHub: {exc}",
                story_id=story_id,
                issue_number=number,
            ) from exc
        self._logger.debug(
            f"issue #{number} had labels before update: {list(snapshot.labels)}",
            issue_number=number,
        )

        plan = build_plan(change, snapshot.labels, self._user_id_mapping)
        self._warn_unmapped(plan.transitions, story_id)
        mutation, labels = plan.mutation, plan.labels
        delta = label_delta(snapshot.labels, labels.labels) if labels.changed else None
        if labels.changed:
            self._logger.info(
                f"New labels for issue #{number}: {list(labels.labels)}",
                issue_number=number,
                **(delta or {}),
            )
        else:
            self._logger.debug(f"No label updates needed for issue #{number}", issue_number=number)
        self._logger.debug(
            f"Assignees for issue #{number}: {plan.assignee_note}", issue_number=number
        )

        if mutation.is_empty():
            self._logger.info(
                f"No updates planned. Skipping GitHub API call for issue #{number}",
                issue_number=number,
            )
            return EntityOutcome(
                story_id, ACTION_UNCHANGED, issue_number=number, mutation=mutation
            )

        if self._dry_run:
            self._logger.log_issue_action(
                "planned",
                story_id,
                issue_number=number,
                dry_run=True,
                fields=mutation.fields_set(),
                payload=mutation.to_payload(),
            )
            return EntityOutcome(
                story_id,
                ACTION_PLANNED,
                issue_number=number,
                mutation=mutation,
                labels_changed=delta,
            )

        self._logger.info(
            f"Calling GitHub API to update issue #{number}",
            issue_number=number,
            fields=mutation.fields_set(),
        )
        try:
            self._issues.apply_mutation(number, mutation)
        except Exception as exc:  # noqa: BLE001 - any gateway failure is an update error
            raise IssueUpdateError(
                f"could not update issue #{number} via GitHub: {exc}",
                story_id=story_id,
                issue_number=number,
            ) from exc
        self._logger.log_issue_action(
            "updated", story_id, issue_number=number, fields=mutation.fields_set()
        )
        return EntityOutcome(
            story_id,
            ACTION_UPDATED,
            issue_number=number,
            mutation=mutation,
            labels_changed=delta,
        )

    def _resolve(self, project_id: int, story_id: int) -> int:
        try:
            number = self._resolver.resolve_linked_id(project_id, story_id)
        except Exception as exc:  # noqa: BLE001 - any resolver failure is a lookup error
            raise LinkLookupError(
                f"could not resolve story {story_id} in project {project_id}: {exc}",
                story_id=story_id,
            ) from exc
        return int(number or 0)

    def _warn_unmapped(self, transitions: list[Transition], story_id: int) -> None:
        # An unmapped value still strips that dimension's labels.
        for transition in transitions:
            if transition.value is not None and not is_mapped(
                transition.dimension, transition.value
            ):
                self._logger.warning(
                    f"Unmapped {transition.dimension.value} '{transition.value}' "
                    "removes its labels without adding any",
                    story_id=story_id,
                    dimension=transition.dimension.value,
                )


__all__ = [
    "ACTION_IGNORED",
    "ACTION_SKIPPED",
    "ACTION_UNCHANGED",
    "ACTION_UPDATED",
    "ACTION_PLANNED",
    "ACTION_FAILED",
    "EntityOutcome",
    "MutationPlan",
    "ChangeProcessor",
    "build_transitions",
    "map_assignees",
    "issue_state_for",
    "build_plan",
    "plan_mutation",
]
