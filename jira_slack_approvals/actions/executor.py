"""Apply approval decisions to Jira after the click has been acknowledged."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Callable, List

import structlog
from slack_sdk.errors import SlackApiError

from jira_slack_approvals.errors import MalformedTokenError, TrackerError, TransitionConflictError
from jira_slack_approvals.jira_client import JiraClient
from jira_slack_approvals.messages import build_decision_update, build_failure_update
from jira_slack_approvals.models import ActionResult, ActionState, TransitionOutcome
from jira_slack_approvals.slack_client import SlackClient, slack_error_code, slack_status_code
from jira_slack_approvals.tokens import ActionToken, decode_action_token

from .dedup import ActionDeduplicator
from .envelope import ActionEnvelope


def _describe(exc: Exception) -> str:
    if isinstance(exc, SlackApiError):
        return slack_error_code(exc)
    return str(exc) or type(exc).__name__


class ActionExecutor:
    """Run the work behind an approval click.

    The HTTP layer acknowledges the click first and only then hands the
    envelope to :meth:`process`, which decodes the token, transitions the
    issue, comments on it and rewrites the Slack message. Nothing it does is
    reported back to Slack's request; failures are logged and never retried.

    The same click may arrive more than once. Jira refusing a transition
    that was already applied is the signal for a repeat: the write and the
    comment are skipped but the message is still rewritten.
    """

    def __init__(
        self,
        *,
        slack_client: SlackClient,
        tracker: JiraClient,
        deduplicator: ActionDeduplicator | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._slack = slack_client
        self._tracker = tracker
        self._deduplicator = deduplicator
        self._clock = clock or (lambda: datetime.now(UTC))

    def resolve_actor_name(self, actor_id: str, log=None) -> str:
        """Return full name, display name, email or raw id of *actor_id*, first available."""

        try:
            profile = self._slack.fetch_profile(actor_id)
        except Exception as exc:  # users.info also fails with transport errors from WebClient
            (log or structlog.get_logger()).warning(
                "actor_profile_unavailable", actor_id=actor_id, error=_describe(exc)
            )
            return actor_id
        return profile.best_name()

    def _apply_transition(self, token: ActionToken, dedup_key, log) -> tuple[bool, str | None]:
        """Return ``(already_applied, error)`` for the tracker transition."""

        if self._deduplicator is not None and self._deduplicator.seen(dedup_key):
            log.info("transition_deduplicated")
            return True, None
        try:
            self._tracker.transition(token.ticket_key, token.transition_id)
        except TransitionConflictError as exc:
            log.info("transition_already_applied", status_code=exc.status_code)
            already_applied = True
        except TrackerError as exc:
            log.error("transition_failed", error=str(exc), status_code=exc.status_code)
            return False, f"transition: {exc}"
        else:
            log.info("transition_applied")
            already_applied = False
        if self._deduplicator is not None:
            self._deduplicator.remember(dedup_key)
        return already_applied, None

    def _update_message(self, *, channel, ts, payload, log) -> str | None:
        try:
            self._slack.update_message(channel=channel, ts=ts, text=payload["text"], blocks=payload["blocks"])
        except SlackApiError as exc:
            log.error("message_update_failed", error=slack_error_code(exc), status_code=slack_status_code(exc))
            return f"update: {slack_error_code(exc)}"
        except Exception as exc:
            log.error("message_update_failed", error=_describe(exc), exc_info=exc)
            return f"update: {_describe(exc)}"
        log.info("message_updated")
        return None

    def process(self, envelope: ActionEnvelope) -> ActionResult:
        log = structlog.get_logger().bind(actor_id=envelope.actor_id, action_id=envelope.action_id)
        log.info("action_processing", state=ActionState.PROCESSING.value)

        try:
            token = decode_action_token(envelope.token_value or "")
        except MalformedTokenError as exc:
            log.warning("action_token_invalid", error=str(exc), state=ActionState.FAILED.value)
            return ActionResult(state=ActionState.FAILED, errors=(str(exc),))

        channel = token.origin_channel or envelope.origin_channel
        ts = token.origin_ts or envelope.origin_ts
        log = log.bind(
            ticket_key=token.ticket_key,
            decision=token.decision,
            transition_id=token.transition_id,
            channel=channel,
            ts=ts,
        )

        actor_name = self.resolve_actor_name(envelope.actor_id, log)
        already_applied, transition_error = self._apply_transition(
            token, (token.ticket_key, token.transition_id, ts), log
        )

        errors: List[str] = []
        outcome = None
        if transition_error is not None:
            errors.append(transition_error)
            payload = build_failure_update(
                token=token, acting_identity=actor_name, original_blocks=envelope.original_blocks
            )
        else:
            outcome = TransitionOutcome(
                ticket_key=token.ticket_key,
                decision=token.decision,
                acting_identity=actor_name,
                actor_id=envelope.actor_id,
                timestamp=self._clock(),
                already_applied=already_applied,
            )
            if not already_applied:
                try:
                    self._tracker.add_comment(token.ticket_key, outcome.comment_text())
                    log.info("comment_added")
                except TrackerError as exc:
                    log.error("comment_failed", error=str(exc), status_code=exc.status_code)
                    errors.append(f"comment: {exc}")
            payload = build_decision_update(token=token, outcome=outcome, original_blocks=envelope.original_blocks)

        if channel and ts:
            update_error = self._update_message(channel=channel, ts=ts, payload=payload, log=log)
            if update_error is not None:
                errors.append(update_error)
        else:
            log.warning("message_origin_missing")
            errors.append("update: origin message unknown")

        state = ActionState.FAILED if errors else ActionState.COMPLETED
        log.info("action_completed", state=state.value, already_applied=already_applied)
        return ActionResult(state=state, outcome=outcome, errors=tuple(errors))
