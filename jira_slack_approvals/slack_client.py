"""Thin wrapper utilities around the Slack WebClient."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError


@dataclass(frozen=True)
class UserProfile:
    """The subset of a Slack user profile used for attribution."""

    user_id: str
    real_name: str | None = None
    display_name: str | None = None
    email: str | None = None

    def best_name(self) -> str:
        """Return the first non-empty of full name, display name, email, user id."""

        for candidate in (self.real_name, self.display_name, self.email):
            if candidate and candidate.strip():
                return candidate.strip()
        return self.user_id


def slack_error_code(exc: SlackApiError) -> str:
    """Extract Slack's error code from *exc*, falling back to its message."""

    response = getattr(exc, "response", None)
    if response is not None:
        try:
            code = response.get("error")
        except AttributeError:
            code = None
        if code:
            return str(code)
    return str(exc)


def slack_status_code(exc: SlackApiError) -> int | None:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None) if response is not None else None


class SlackClient:
    """Encapsulate Slack WebClient interactions for easier testing."""

    def __init__(self, *, token: str | None = None, client: WebClient | None = None) -> None:
        if client is None and token is None:
            raise ValueError("Either an instantiated client or a bot token must be provided.")
        self._client = client or WebClient(token=token)

    @property
    def client(self) -> WebClient:
        """Expose the underlying WebClient for advanced use cases."""

        return self._client

    def post_message(
        self,
        *,
        channel: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]],
    ) -> Mapping[str, Any]:
        """Post a Block Kit message; a user id as *channel* opens a DM."""

        return self._client.chat_postMessage(channel=channel, text=text, blocks=list(blocks))

    def update_message(
        self,
        *,
        channel: str,
        ts: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]],
    ) -> Mapping[str, Any]:
        """Update an existing Slack message."""

        return self._client.chat_update(channel=channel, ts=ts, text=text, blocks=list(blocks))

    def lookup_user_id(self, email: str) -> str:
        """Return the Slack user id registered for *email*."""

        response = self._client.users_lookupByEmail(email=email)
        return response["user"]["id"]

    def fetch_profile(self, user_id: str) -> UserProfile:
        """Fetch the naming fields of *user_id* via ``users.info``."""

        response = self._client.users_info(user=user_id)
        user = response.get("user") or {}
        profile = user.get("profile") or {}
        return UserProfile(
            user_id=user_id,
            real_name=profile.get("real_name") or user.get("real_name"),
            display_name=profile.get("display_name"),
            email=profile.get("email"),
        )
