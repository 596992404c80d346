"""Encode and decode the decision context carried by approval buttons.

Slack stores the button ``value`` between send time and click time, possibly
across restarts of this service, so a token carries everything the click
handler needs and never refers to server-side state.
"""

from __future__ import annotations

import json
from typing import Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from jira_slack_approvals.errors import MalformedTokenError

# Slack rejects button values longer than this.
MAX_TOKEN_LENGTH = 2000

Decision = Literal["approve", "reject"]


class ActionToken(BaseModel):
    """Decision context embedded in a single approval button."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ticket_key: str
    transition_id: str
    decision: Decision
    url: str | None = None
    origin_channel: str | None = None
    origin_ts: str | None = None

    @field_validator("ticket_key", "transition_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


def encode_action_token(token: ActionToken) -> str:
    """Return the compact JSON string stored as the button value."""

    payload = token.model_dump(exclude_none=True)
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    if len(encoded) > MAX_TOKEN_LENGTH:
        raise ValueError(f"Action token for {token.ticket_key} exceeds {MAX_TOKEN_LENGTH} characters")
    return encoded


def decode_action_token(raw_value: str) -> ActionToken:
    """Parse a button value back into an :class:`ActionToken`."""

    if not isinstance(raw_value, str) or not raw_value:
        raise MalformedTokenError("Empty action token.")
    try:
        payload = json.loads(raw_value)
    except json.JSONDecodeError as exc:
        raise MalformedTokenError("Action token is not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise MalformedTokenError("Action token must be a JSON object.")
    try:
        return ActionToken.model_validate(payload, strict=True)
    except ValidationError as exc:
        raise MalformedTokenError(f"Invalid action token: {exc.error_count()} error(s).") from exc
