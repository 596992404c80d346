"""Send one approval DM per approver, pacing sends and isolating failures."""

from __future__ import annotations

import time
from typing import Callable, List

import structlog
from slack_sdk.errors import SlackApiError

from jira_slack_approvals.config import AppSettings
from jira_slack_approvals.directory import IdentityResolver
from jira_slack_approvals.errors import IdentityNotFoundError, InvalidRequestError
from jira_slack_approvals.jira_client import JiraClient
from jira_slack_approvals.messages import build_approval_message
from jira_slack_approvals.models import ApprovalRequest, DispatchResult
from jira_slack_approvals.slack_client import SlackClient, slack_error_code
from jira_slack_approvals.tokens import ActionToken


class NotificationDispatcher:
    """Fan an :class:`ApprovalRequest` out to its approvers one at a time.

    Recipients are handled sequentially in request order with a fixed pause
    between sends to stay under Slack's per-method rate limit. A failure for
    one recipient is recorded in that recipient's result and never stops the
    batch.
    """

    def __init__(
        self,
        *,
        settings: AppSettings,
        slack_client: SlackClient,
        resolver: IdentityResolver,
        tracker: JiraClient,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._slack = slack_client
        self._resolver = resolver
        self._tracker = tracker
        self._sleep = sleep

    def _shared_fields(self, request: ApprovalRequest) -> tuple[str | None, str | None]:
        summary = request.summary
        if not summary:
            # Lookup failures here are fatal for the whole batch.
            fields = self._tracker.get_issue(request.ticket_key, fields=("summary",))
            summary = fields.get("summary")
        url = request.url
        if not url and self._tracker.base_url:
            url = self._tracker.browse_url(request.ticket_key)
        return summary, url

    def _tokens(self, request: ApprovalRequest, url: str | None) -> tuple[ActionToken, ActionToken]:
        approve = ActionToken(
            ticket_key=request.ticket_key,
            transition_id=self._settings.approve_transition_id,
            decision="approve",
            url=url,
        )
        reject = ActionToken(
            ticket_key=request.ticket_key,
            transition_id=self._settings.reject_transition_id,
            decision="reject",
            url=url,
        )
        return approve, reject

    def _notify_one(
        self,
        address: str,
        *,
        request: ApprovalRequest,
        summary: str | None,
        url: str | None,
        log,
    ) -> DispatchResult:
        try:
            user_id = self._resolver.resolve(address)
        except IdentityNotFoundError as exc:
            log.warning("dispatch_recipient_failed", address=address, stage="resolve", error=str(exc))
            return DispatchResult(address=address, success=False, error=str(exc))
        except SlackApiError as exc:
            error = f"lookupByEmail({address}) failed: {slack_error_code(exc)}"
            log.warning("dispatch_recipient_failed", address=address, stage="resolve", error=error)
            return DispatchResult(address=address, success=False, error=error)

        approve_token, reject_token = self._tokens(request, url)
        payload = build_approval_message(
            ticket_key=request.ticket_key,
            summary=summary,
            url=url,
            requester=request.requester,
            approver_id=user_id,
            approve_token=approve_token,
            reject_token=reject_token,
            extra_fields=request.extra_fields,
        )
        try:
            response = self._slack.post_message(channel=user_id, text=payload["text"], blocks=payload["blocks"])
        except SlackApiError as exc:
            error = f"chat.postMessage failed: {slack_error_code(exc)}"
            log.warning("dispatch_recipient_failed", address=address, user_id=user_id, stage="send", error=error)
            return DispatchResult(address=address, success=False, error=error, user_id=user_id)

        log.info("dispatch_recipient_sent", address=address, user_id=user_id)
        return DispatchResult(
            address=address,
            success=True,
            user_id=user_id,
            channel=response.get("channel"),
            ts=response.get("ts"),
        )

    def dispatch(self, request: ApprovalRequest) -> List[DispatchResult]:
        """Notify every approver of *request* and return one result per address, in order.

        Raises :class:`InvalidRequestError` before any external call when no
        approver address was supplied.
        """

        addresses = list(request.approver_addresses)
        if not addresses:
            raise InvalidRequestError("no approverAddresses provided")

        log = structlog.get_logger().bind(ticket_key=request.ticket_key)
        log.info("dispatch_started", recipients=len(addresses))
        summary, url = self._shared_fields(request)

        results: List[DispatchResult] = []
        for index, address in enumerate(addresses):
            if index:
                self._sleep(self._settings.rate_limit_seconds)
            try:
                result = self._notify_one(address, request=request, summary=summary, url=url, log=log)
            except Exception as exc:
                log.exception("dispatch_recipient_failed", address=address, stage="unexpected")
                result = DispatchResult(address=address, success=False, error=str(exc) or type(exc).__name__)
            results.append(result)

        sent = sum(1 for result in results if result.success)
        log.info("dispatch_completed", recipients=len(results), sent=sent, failed=len(results) - sent)
        return results
