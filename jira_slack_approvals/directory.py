"""Resolve approver email addresses to Slack user ids."""

from __future__ import annotations

from slack_sdk.errors import SlackApiError

from jira_slack_approvals.errors import IdentityNotFoundError
from jira_slack_approvals.slack_client import SlackClient, slack_error_code

_NOT_FOUND_CODES = {"users_not_found", "user_not_found"}


class IdentityResolver:
    """Look up Slack users by email. Every call goes to Slack; nothing is cached."""

    def __init__(self, slack_client: SlackClient) -> None:
        self._slack = slack_client

    def resolve(self, address: str) -> str:
        """Return the Slack user id for *address*.

        Raises :class:`IdentityNotFoundError` when Slack has no matching user;
        other Slack failures propagate as :class:`SlackApiError`.
        """

        address = (address or "").strip()
        if not address:
            raise IdentityNotFoundError("empty address")
        try:
            return self._slack.lookup_user_id(address)
        except SlackApiError as exc:
            code = slack_error_code(exc)
            if code in _NOT_FOUND_CODES:
                raise IdentityNotFoundError(f"lookupByEmail({address}) failed: {code}") from exc
            raise
