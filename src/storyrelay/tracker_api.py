"""Pivotal Tracker REST client, reduced to what the relay needs.

A Tracker story that was imported from (or linked to) a GitHub issue carries
the issue number in its ``external_id`` attribute.

See https://www.pivotaltracker.com/help/api/rest/v5#Story
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

from .config import DEFAULT_TRACKER_API_URL

USER_AGENT = "storyrelay/0.1.0"
HTTP_OK = 200
DEFAULT_TIMEOUT = 30.0


class TrackerAPIError(RuntimeError):
    """Raised when the Tracker API call fails or returns something unusable."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


@dataclass
class TrackerClient:
    token: str
    base_url: str = DEFAULT_TRACKER_API_URL
    session: requests.Session | None = None
    timeout: float = DEFAULT_TIMEOUT
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:  # pragma: no cover - simple wiring
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("X-TrackerToken", self.token)
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def _get(self, path: str) -> Any:
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        try:
            response = self._session.request(
                "GET",
                url,
                headers=self._session.headers,
                json=None,
                params=None,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TrackerAPIError(f"Tracker API request failed: {exc}") from exc
        if response.status_code != HTTP_OK:
            raise TrackerAPIError(
                f"Tracker API at {url} returned status {response.status_code}",
                status=response.status_code,
                response_text=response.text,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise TrackerAPIError(
                f"Tracker API at {url} returned body which cannot be parsed as json: {response.text}",
                status=response.status_code,
                response_text=response.text,
            ) from exc

    def get_story(self, project_id: int, story_id: int) -> dict[str, Any]:
        data = self._get(f"/projects/{project_id}/stories/{story_id}")
        if not isinstance(data, dict):
            raise TrackerAPIError(f"Tracker API returned unexpected story payload: {data!r}")
        return data

    def resolve_linked_id(self, project_id: int, story_id: int) -> int:
        """GitHub issue number linked to the story, or 0 when not linked."""
        story = self.get_story(project_id, story_id)
        external_id = story.get("external_id")
        if external_id in (None, ""):
            return 0
        try:
            return int(external_id)
        except (TypeError, ValueError) as exc:
            raise TrackerAPIError(
                f"Tracker story {story_id} has non-integer external_id: {external_id!r}"
            ) from exc


__all__ = ["TrackerAPIError", "TrackerClient"]
