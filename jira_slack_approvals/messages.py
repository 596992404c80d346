"""Block Kit message builders for approval requests and decisions."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping

from .models import TransitionOutcome
from .tokens import ActionToken, encode_action_token

APPROVE_ACTION_ID = "approval_approve"
REJECT_ACTION_ID = "approval_reject"
OPEN_TICKET_ACTION_ID = "approval_open_ticket"

_MISSING_VALUE = "_Not provided_"
_FAILURE_NOTICE_BLOCK_ID = "approval_failure_notice"

_DECISION_EMOJI = {
    "approve": ":white_check_mark:",
    "reject": ":no_entry_sign:",
}


def _ticket_link(ticket_key: str, url: str | None) -> str:
    return f"<{url}|{ticket_key}>" if url else ticket_key


def _field(label: str, value: Any) -> Dict[str, str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        value = _MISSING_VALUE
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}


def _fields_sections(fields: List[Dict[str, str]]) -> List[Dict[str, Any]]:
    # Slack caps a section at ten fields.
    return [{"type": "section", "fields": fields[i : i + 10]} for i in range(0, len(fields), 10)]


def _decision_buttons(approve_token: ActionToken, reject_token: ActionToken, url: str | None) -> Dict[str, Any]:
    elements: List[Dict[str, Any]] = [
        {
            "type": "button",
            "text": {"type": "plain_text", "text": "Approve", "emoji": True},
            "style": "primary",
            "action_id": APPROVE_ACTION_ID,
            "value": encode_action_token(approve_token),
        },
        {
            "type": "button",
            "text": {"type": "plain_text", "text": "Reject", "emoji": True},
            "style": "danger",
            "action_id": REJECT_ACTION_ID,
            "value": encode_action_token(reject_token),
            "confirm": {
                "title": {"type": "plain_text", "text": "Reject request"},
                "text": {
                    "type": "mrkdwn",
                    "text": f"Are you sure you want to reject {approve_token.ticket_key}?",
                },
                "confirm": {"type": "plain_text", "text": "Reject"},
                "deny": {"type": "plain_text", "text": "Cancel"},
            },
        },
    ]
    if url:
        elements.append(
            {
                "type": "button",
                "text": {"type": "plain_text", "text": "Open in Jira"},
                "action_id": OPEN_TICKET_ACTION_ID,
                "url": url,
            }
        )
    return {"type": "actions", "block_id": "approval_decision_buttons", "elements": elements}


def build_approval_message(
    *,
    ticket_key: str,
    summary: str | None,
    url: str | None,
    requester: str | None,
    approver_id: str,
    approve_token: ActionToken,
    reject_token: ActionToken,
    extra_fields: Mapping[str, str] | None = None,
) -> Dict[str, Any]:
    """Build the DM sent to one approver for one ticket."""

    fields = [
        _field("Ticket", _ticket_link(ticket_key, url)),
        _field("Summary", summary),
        _field("Requester", requester),
        _field("Approver", f"<@{approver_id}>"),
    ]
    fields.extend(_field(label, value) for label, value in (extra_fields or {}).items())

    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": ":large_blue_circle: Approval Requested", "emoji": True},
        },
        *_fields_sections(fields),
        _decision_buttons(approve_token, reject_token, url),
        {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": "Your decision is applied to the Jira ticket and recorded as a comment."}
            ],
        },
    ]
    text = f"Approval requested for {ticket_key}"
    if summary:
        text = f"{text}: {summary}"
    return {"text": text, "blocks": blocks}


def _without_failure_notice(blocks: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    return [
        dict(block)
        for block in blocks
        if isinstance(block, Mapping) and block.get("block_id") != _FAILURE_NOTICE_BLOCK_ID
    ]


def strip_controls(blocks: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Return *blocks* without any interactive ``actions`` block."""

    return [dict(block) for block in blocks if isinstance(block, Mapping) and block.get("type") != "actions"]


def _minimal_blocks(token: ActionToken) -> List[Dict[str, Any]]:
    return [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": "Approval Request", "emoji": True},
        },
        {"type": "section", "fields": [_field("Ticket", _ticket_link(token.ticket_key, token.url))]},
    ]


def build_decision_update(
    *,
    token: ActionToken,
    outcome: TransitionOutcome,
    original_blocks: Iterable[Mapping[str, Any]] | None = None,
) -> Dict[str, Any]:
    """Return the payload that replaces an approval DM once a decision is made."""

    blocks = strip_controls(_without_failure_notice(original_blocks or []))
    if not blocks:
        blocks = _minimal_blocks(token)

    emoji = _DECISION_EMOJI.get(outcome.decision, ":information_source:")
    summary = f"{outcome.decision_label} by {outcome.acting_identity}"
    blocks.append(
        {
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"{emoji} *{summary}*"}],
        }
    )
    return {
        "text": f"{token.ticket_key} {summary}.",
        "blocks": blocks,
    }


def build_failure_update(
    *,
    token: ActionToken,
    acting_identity: str,
    original_blocks: Iterable[Mapping[str, Any]] | None = None,
) -> Dict[str, Any]:
    """Return the payload shown when a decision could not be applied in Jira.

    The buttons stay in place so the approver can try again. A notice left by
    an earlier failed attempt is replaced, not stacked.
    """

    blocks = _without_failure_notice(original_blocks or [])
    if not blocks:
        blocks = _minimal_blocks(token)

    verb = "approve" if token.decision == "approve" else "reject"
    notice = f"Could not {verb} {token.ticket_key} for {acting_identity}. Jira did not accept the change; try again."
    blocks.append(
        {
            "type": "context",
            "block_id": _FAILURE_NOTICE_BLOCK_ID,
            "elements": [{"type": "mrkdwn", "text": f":warning: {notice}"}],
        }
    )
    return {"text": notice, "blocks": blocks}
