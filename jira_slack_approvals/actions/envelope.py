"""Pull the fields of one approval click out of a Bolt ``block_actions`` body."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from jira_slack_approvals.errors import MalformedPayloadError


@dataclass(frozen=True)
class ActionEnvelope:
    """What the executor needs from one button click."""

    actor_id: str
    action_id: str
    token_value: str
    origin_channel: str | None = None
    origin_ts: str | None = None
    original_blocks: List[Dict[str, Any]] = field(default_factory=list)


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _mapping(body: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = body.get(key)
    return value if isinstance(value, Mapping) else {}


def parse_action_envelope(body: Mapping[str, Any]) -> ActionEnvelope:
    """Extract actor, origin message and clicked decision from *body*.

    Origin coordinates come from ``container`` and fall back to ``channel``
    and ``message``.
    """

    if not isinstance(body, Mapping):
        raise MalformedPayloadError("Interaction payload must be a JSON object.")

    actor_id = _text(_mapping(body, "user").get("id"))
    if not actor_id:
        raise MalformedPayloadError("Interaction payload has no acting user.")

    actions = body.get("actions")
    if not isinstance(actions, list) or not actions or not isinstance(actions[0], Mapping):
        raise MalformedPayloadError("Interaction payload has no actions.")
    action = actions[0]
    action_id = _text(action.get("action_id"))
    if not action_id:
        raise MalformedPayloadError("Interaction action has no action_id.")
    token_value = _text(action.get("value"))
    if not token_value:
        raise MalformedPayloadError("Decision action carries no token.")

    container = _mapping(body, "container")
    message = _mapping(body, "message")
    blocks = message.get("blocks")
    return ActionEnvelope(
        actor_id=actor_id,
        action_id=action_id,
        token_value=token_value,
        origin_channel=_text(container.get("channel_id")) or _text(_mapping(body, "channel").get("id")),
        origin_ts=_text(container.get("message_ts")) or _text(message.get("ts")),
        original_blocks=[dict(block) for block in blocks if isinstance(block, Mapping)]
        if isinstance(blocks, list)
        else [],
    )
