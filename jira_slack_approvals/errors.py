"""Exception types shared across the approval bridge."""

from __future__ import annotations


class ApprovalBridgeError(Exception):
    """Base class for errors raised by the approval bridge."""


class InvalidRequestError(ApprovalBridgeError):
    """Raised when a notification request cannot be dispatched as given."""


class AuthError(ApprovalBridgeError):
    """Raised when the shared-secret bearer credential is missing or wrong."""


class IdentityNotFoundError(ApprovalBridgeError):
    """Raised when no Slack user matches an address."""


class MalformedPayloadError(ApprovalBridgeError):
    """Raised when an interactive envelope cannot be parsed."""


class MalformedTokenError(ApprovalBridgeError):
    """Raised when an action token cannot be decoded."""


class TrackerError(ApprovalBridgeError):
    """Raised when a Jira call fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransitionConflictError(TrackerError):
    """Raised when Jira rejects a transition that no longer applies to the issue."""
