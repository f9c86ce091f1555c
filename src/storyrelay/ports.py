"""Collaborator contracts consumed by the change processor.

Production implementations live in ``tracker_api`` and ``github_rest``;
tests substitute recording fakes. Implementations signal failure by raising;
the processor maps whatever they raise onto the relay error taxonomy.
"""

from __future__ import annotations

from typing import Any, Protocol

from .models import IssueSnapshot, MutationRequest


class LinkResolver(Protocol):
    def resolve_linked_id(self, project_id: int, story_id: int) -> int:
        """Return the GitHub issue number linked to a story, or 0 if none."""
        ...


class IssueGateway(Protocol):
    def fetch_snapshot(self, number: int) -> IssueSnapshot: ...

    def apply_mutation(self, number: int, mutation: MutationRequest) -> None:
        """PATCH the issue; fields left as None must not be sent."""
        ...


class OpenIssueSource(Protocol):
    def list_open_issues(self) -> list[dict[str, Any]]: ...


__all__ = ["LinkResolver", "IssueGateway", "OpenIssueSource"]
