"""Request and result models for approval notifications and decisions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ApprovalRequest(BaseModel):
    """A ticket awaiting sign-off and the people asked to give it.

    Accepts the camelCase body of ``POST /notify-approver`` as well as the
    field names sent by the older Jira automation rule.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ticket_key: str = Field(..., validation_alias=AliasChoices("ticketKey", "issueKey", "ticket_key"))
    summary: str | None = Field(None, validation_alias=AliasChoices("summary", "issueSummary"))
    url: str | None = Field(None, validation_alias=AliasChoices("url", "issueUrl"))
    requester: str | None = Field(None, validation_alias=AliasChoices("requesterAddress", "requester"))
    approver_addresses: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("approverAddresses", "approverEmails", "approver_addresses"),
    )
    extra_fields: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("extraFields", "extra_fields"),
    )

    @field_validator("ticket_key")
    @classmethod
    def _require_key(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("ticketKey must not be empty")
        return value

    @field_validator("approver_addresses", mode="before")
    @classmethod
    def _normalise_addresses(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            value = [value]
        cleaned: list[str] = []
        for item in value:
            if not item:
                continue
            if not isinstance(item, str):
                raise ValueError("approver addresses must be strings")
            item = item.strip()
            if item:
                cleaned.append(item)
        return cleaned

    @field_validator("extra_fields", mode="before")
    @classmethod
    def _stringify_extra(cls, value: Any) -> dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("extraFields must be an object")
        return {str(key): "" if item is None else str(item) for key, item in value.items()}


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of notifying one approver."""

    address: str
    success: bool
    error: str | None = None
    user_id: str | None = None
    channel: str | None = None
    ts: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"address": self.address, "ok": self.success}
        if self.error is not None:
            payload["error"] = self.error
        return payload


class ActionState(str, Enum):
    """Lifecycle of one delivery of an approval button click."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransitionOutcome:
    """The decision that was recorded for a ticket, used for the comment and message update."""

    ticket_key: str
    decision: str
    acting_identity: str
    actor_id: str
    timestamp: datetime
    already_applied: bool = False

    @property
    def decision_label(self) -> str:
        return "Approved" if self.decision == "approve" else "Rejected"

    def comment_text(self) -> str:
        stamp = self.timestamp.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
        return f"{self.decision_label} by {self.acting_identity} via Slack on {stamp}."


@dataclass(frozen=True)
class ActionResult:
    """Terminal state reached by the executor for one delivery."""

    state: ActionState
    outcome: TransitionOutcome | None = None
    errors: tuple[str, ...] = ()
