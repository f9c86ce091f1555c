from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

from .config import DEFAULT_GITHUB_API_URL
from .diffing import extract_label_names
from .models import IssueSnapshot, MutationRequest

USER_AGENT = "storyrelay/0.1.0"
HTTP_ERROR_STATUS = 400
DEFAULT_TIMEOUT = 30.0
MAX_PER_PAGE = 100


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub REST API returns an error."""

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
class GitHubRestClient:
    """Lightweight REST client for the issue operations storyrelay performs."""

    token: str
    repo: str  # owner/repo
    base_url: str = DEFAULT_GITHUB_API_URL
    session: requests.Session | None = None
    timeout: float = DEFAULT_TIMEOUT
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:  # pragma: no cover - simple wiring
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    # ---- REST helpers -------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        url = (
            path
            if path.startswith("http")
            else f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        )
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._session.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GitHubAPIError(f"GitHub API {method} {url} failed: {exc}") from exc
        if response.status_code >= HTTP_ERROR_STATUS:
            raise GitHubAPIError(
                f"GitHub API {method} {url} failed with {response.status_code}",
                status=response.status_code,
                response_text=response.text,
            )
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise GitHubAPIError(
                f"GitHub API {method} {url} returned non-JSON body",
                status=response.status_code,
                response_text=response.text,
            ) from exc

    def _paginate(
        self, path: str, *, params: dict[str, Any] | None = None
    ) -> list[Any]:
        params = dict(params or {})
        per_page = params.setdefault("per_page", MAX_PER_PAGE)
        params.setdefault("page", 1)
        results: list[Any] = []
        while True:
            data = self._request("GET", path, params=params)
            if not isinstance(data, list):
                break
            results.extend(data)
            if len(data) < per_page:
                break
            params["page"] = params.get("page", 1) + 1
        return results

    # ---- Issue operations --------------------------------------------
    def get_issue(self, number: int) -> dict[str, Any]:
        data = self._request("GET", f"/repos/{self.repo}/issues/{number}")
        if not isinstance(data, dict):
            raise GitHubAPIError(f"GitHub API returned unexpected issue payload for #{number}")
        return data

    def fetch_snapshot(self, number: int) -> IssueSnapshot:
        issue = self.get_issue(number)
        title = issue.get("title")
        state = issue.get("state")
        return IssueSnapshot(
            number=number,
            labels=tuple(extract_label_names(issue)),
            title=title if isinstance(title, str) else None,
            state=state if isinstance(state, str) else None,
        )

    def update_issue(self, number: int, payload: dict[str, Any]) -> None:
        if not payload:
            return
        self._request("PATCH", f"/repos/{self.repo}/issues/{number}", json_body=payload)

    def apply_mutation(self, number: int, mutation: MutationRequest) -> None:
        self.update_issue(number, mutation.to_payload())

    def list_issues(self, *, state: str = "open") -> list[dict[str, Any]]:
        params = {
            "state": state,
            "sort": "created",
            "direction": "desc",
            "per_page": MAX_PER_PAGE,
            "page": 1,
        }
        data = self._paginate(f"/repos/{self.repo}/issues", params=params)
        return [entry for entry in data if isinstance(entry, dict)]

    def list_open_issues(self) -> list[dict[str, Any]]:
        return self.list_issues(state="open")


__all__ = ["GitHubAPIError", "GitHubRestClient"]
