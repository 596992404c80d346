"""Minimal Jira Cloud REST client for transitions, comments and issue lookups."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote

import requests

from jira_slack_approvals.errors import TrackerError, TransitionConflictError

API_PREFIX = "/rest/api/3"

# Jira answers 400 with one of these when the transition is not available
# from the issue's current status.
_CONFLICT_MARKERS = ("not valid", "is not available", "no longer valid")


def _error_messages(response: requests.Response) -> list[str]:
    try:
        data = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return [text] if text else []
    if not isinstance(data, Mapping):
        return []
    messages = [str(item) for item in data.get("errorMessages") or []]
    errors = data.get("errors") or {}
    if isinstance(errors, Mapping):
        messages.extend(f"{key}: {value}" for key, value in errors.items())
    return messages


def _is_conflict(response: requests.Response, messages: list[str]) -> bool:
    if response.status_code == 409:
        return True
    if response.status_code != 400:
        return False
    lowered = " ".join(messages).lower()
    return "transition" in lowered and any(marker in lowered for marker in _CONFLICT_MARKERS)


def comment_document(text: str) -> dict[str, Any]:
    """Wrap plain *text* in the Atlassian Document Format Jira v3 expects."""

    paragraphs = text.split("\n")
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": line}] if line else [],
            }
            for line in paragraphs
        ],
    }


class JiraClient:
    """Issue tracker collaborator backed by the Jira Cloud REST API v3."""

    def __init__(
        self,
        *,
        base_url: str | None,
        email: str | None = None,
        api_token: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if email and api_token:
            self._session.auth = (email, api_token)
        elif api_token:
            self._session.headers["Authorization"] = f"Bearer {api_token}"

    @property
    def base_url(self) -> str:
        return self._base_url

    def browse_url(self, issue_key: str) -> str:
        """Return the human-facing URL of *issue_key*."""

        return f"{self._base_url}/browse/{issue_key}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        if not self._base_url:
            raise TrackerError("Jira base URL is not configured")
        url = f"{self._base_url}{API_PREFIX}{path}"
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise TrackerError(f"Jira request failed: {exc}") from exc
        if response.status_code >= 400:
            messages = _error_messages(response)
            detail = "; ".join(messages) or response.reason or "error"
            message = f"Jira {method} {path} failed: HTTP {response.status_code} {detail}"
            if _is_conflict(response, messages):
                raise TransitionConflictError(message, status_code=response.status_code)
            raise TrackerError(message, status_code=response.status_code)
        return response

    def transition(self, issue_key: str, transition_id: str) -> None:
        """Apply *transition_id* to *issue_key*.

        Raises :class:`TransitionConflictError` when Jira reports that the
        transition does not apply to the issue's current status, which is
        what a repeated transition looks like.
        """

        self._request(
            "POST",
            f"/issue/{quote(issue_key)}/transitions",
            json={"transition": {"id": str(transition_id)}},
        )

    def add_comment(self, issue_key: str, text: str) -> Mapping[str, Any]:
        response = self._request(
            "POST",
            f"/issue/{quote(issue_key)}/comment",
            json={"body": comment_document(text)},
        )
        return response.json() if response.content else {}

    def get_issue(self, issue_key: str, fields: tuple[str, ...] = ("summary", "status")) -> Mapping[str, Any]:
        """Return the requested ``fields`` mapping of *issue_key*."""

        response = self._request(
            "GET",
            f"/issue/{quote(issue_key)}",
            params={"fields": ",".join(fields)},
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise TrackerError(f"Jira returned invalid JSON for {issue_key}") from exc
        if not isinstance(data, Mapping):
            raise TrackerError(f"Unexpected Jira response for {issue_key}")
        return data.get("fields") or {}
