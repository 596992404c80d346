"""Application entry point for the Jira approval bridge."""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Callable
from uuid import uuid4

from flask import Flask, copy_current_request_context, jsonify, make_response, request
from pydantic import ValidationError
from slack_bolt import App as SlackApp
from slack_bolt.adapter.flask import SlackRequestHandler
from slack_sdk import WebClient
from werkzeug.exceptions import HTTPException

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from jira_slack_approvals.actions import ActionDeduplicator, ActionExecutor, parse_action_envelope
from jira_slack_approvals.background import run_async
from jira_slack_approvals.config import AppSettings, get_settings
from jira_slack_approvals.directory import IdentityResolver
from jira_slack_approvals.dispatch import NotificationDispatcher
from jira_slack_approvals.errors import AuthError, InvalidRequestError, MalformedPayloadError
from jira_slack_approvals.jira_client import JiraClient
from jira_slack_approvals.logging_config import configure_logging
from jira_slack_approvals.messages import APPROVE_ACTION_ID, OPEN_TICKET_ACTION_ID, REJECT_ACTION_ID
from jira_slack_approvals.models import ApprovalRequest
from jira_slack_approvals.security import (
    SLACK_SIGNATURE_HEADER,
    SLACK_TIMESTAMP_HEADER,
    is_valid_slack_request,
    verify_bearer,
)
from jira_slack_approvals.slack_client import SlackClient

# Paths reachable without the shared-secret bearer token.
_BEARER_EXEMPT_PATHS = {"/interactive-action", "/healthz"}


@dataclass(frozen=True)
class Services:
    """Collaborators wired once at startup and shared by every request."""

    dispatcher: NotificationDispatcher
    executor: ActionExecutor
    bolt_app: SlackApp


def _create_bolt_app(settings: AppSettings, *, client: WebClient | None = None) -> SlackApp:
    """Initialise the Slack Bolt application that routes button clicks.

    Signatures are checked by the Flask route before Bolt sees the request,
    and listeners run inline because the route already acknowledged Slack.
    """

    return SlackApp(
        client=client or WebClient(token=settings.bot_token),
        signing_secret=settings.signing_secret or "",
        token_verification_enabled=False,
        request_verification_enabled=False,
        process_before_response=True,
    )


def build_services(
    settings: AppSettings,
    *,
    web_client: WebClient | None = None,
    jira_session=None,
    sleep: Callable[[float], None] = time.sleep,
) -> Services:
    """Construct the dispatcher, executor and Bolt app from *settings*."""

    slack_client = SlackClient(token=settings.bot_token, client=web_client)
    tracker = JiraClient(
        base_url=settings.jira_base_url,
        email=settings.jira_email,
        api_token=settings.jira_api_token,
        timeout=settings.jira_timeout_seconds,
        session=jira_session,
    )
    deduplicator = None
    if settings.dedup_window_seconds > 0:
        deduplicator = ActionDeduplicator(window=timedelta(seconds=settings.dedup_window_seconds))
    dispatcher = NotificationDispatcher(
        settings=settings,
        slack_client=slack_client,
        resolver=IdentityResolver(slack_client),
        tracker=tracker,
        sleep=sleep,
    )
    executor = ActionExecutor(slack_client=slack_client, tracker=tracker, deduplicator=deduplicator)
    return Services(
        dispatcher=dispatcher,
        executor=executor,
        bolt_app=_create_bolt_app(settings, client=web_client),
    )


def _error_response(message: str, status_code: int, **extra):
    response = jsonify({"ok": False, "error": message, **extra})
    response.status_code = status_code
    return response


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "body"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts) or "invalid request body"


def _register_error_handlers(flask_app: Flask) -> None:
    """Map bridge errors to JSON responses; anything unexpected becomes a 500 with a trace id."""

    @flask_app.errorhandler(AuthError)
    def handle_auth_error(error: AuthError):
        return _error_response("unauthorized", 401)

    @flask_app.errorhandler(InvalidRequestError)
    def handle_invalid_request(error: InvalidRequestError):
        return _error_response(str(error), 400)

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        if isinstance(error, HTTPException):
            return error
        trace_id = str(uuid4())
        structlog.get_logger().error(
            "unhandled_error",
            trace_id=trace_id,
            path=request.path,
            error=str(error),
            exc_info=error,
        )
        return _error_response("internal_server_error", 500, trace_id=trace_id)


def _register_auth(flask_app: Flask, settings: AppSettings) -> None:
    @flask_app.before_request
    def require_shared_secret():
        if request.path in _BEARER_EXEMPT_PATHS:
            return None
        verify_bearer(request.headers.get("Authorization"), settings.shared_secret)
        return None


def _handle_decision_action(ack, body, executor: ActionExecutor) -> None:
    ack()
    log = structlog.get_logger()
    try:
        envelope = parse_action_envelope(body)
    except MalformedPayloadError as exc:
        log.warning("interaction_payload_invalid", error=str(exc))
        return
    executor.process(envelope)


def _register_action_handlers(bolt_app: SlackApp, executor: ActionExecutor) -> None:
    @bolt_app.action(APPROVE_ACTION_ID)
    def handle_approve(ack, body):
        _handle_decision_action(ack=ack, body=body, executor=executor)

    @bolt_app.action(REJECT_ACTION_ID)
    def handle_reject(ack, body):
        _handle_decision_action(ack=ack, body=body, executor=executor)

    @bolt_app.action(OPEN_TICKET_ACTION_ID)
    def handle_open_ticket(ack):
        # Link buttons open Jira in the browser; Slack still reports the click.
        ack()

    @bolt_app.error
    def handle_listener_error(error):
        structlog.get_logger().error("interaction_listener_failed", error=str(error), exc_info=error)


def _register_routes(
    flask_app: Flask,
    settings: AppSettings,
    services: Services,
    handler: SlackRequestHandler,
) -> None:
    @flask_app.route("/notify-approver", methods=["POST"])
    def notify_approver():
        trace_id = str(uuid4())
        bind_contextvars(trace_id=trace_id)
        log = structlog.get_logger()
        try:
            body = request.get_json(silent=True)
            if not isinstance(body, dict):
                raise InvalidRequestError("request body must be a JSON object")
            try:
                approval = ApprovalRequest.model_validate(body)
            except ValidationError as exc:
                raise InvalidRequestError(_describe_validation_error(exc)) from exc

            log.info(
                "notify_request_received",
                ticket_key=approval.ticket_key,
                recipients=len(approval.approver_addresses),
            )
            results = services.dispatcher.dispatch(approval)
            return jsonify({"ok": True, "results": [result.to_dict() for result in results]})
        finally:
            unbind_contextvars("trace_id")

    @flask_app.route("/interactive-action", methods=["POST"])
    def interactive_action():
        raw_body = request.get_data(as_text=True)
        if settings.signing_secret and not is_valid_slack_request(
            signing_secret=settings.signing_secret,
            timestamp=request.headers.get(SLACK_TIMESTAMP_HEADER, ""),
            body=raw_body,
            signature=request.headers.get(SLACK_SIGNATURE_HEADER, ""),
        ):
            structlog.get_logger().warning("interaction_signature_invalid")
            return _error_response("invalid_signature", 401)

        trace_id = str(uuid4())

        @copy_current_request_context
        def process_request():
            handler.handle(request)

        response = make_response("", 200)
        # Bolt only sees the click once the empty acknowledgment has been handed to the server.
        response.call_on_close(lambda: run_async(process_request, trace_id=trace_id))
        structlog.get_logger().info("interaction_acknowledged", trace_id=trace_id)
        return response

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        return jsonify(
            {
                "ok": True,
                "version": flask_app.config.get("APP_VERSION", "unknown"),
                "config": "valid",
                "jira": "configured" if settings.jira_base_url else "missing",
            }
        )


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def create_app(settings: AppSettings | None = None, *, services: Services | None = None) -> Flask:
    """Create and configure the Flask application.

    Raises ``RuntimeError`` when required settings such as ``SLACK_BOT_TOKEN``
    are missing from the environment.
    """

    settings = settings or get_settings()

    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        configure_logging(settings.log_level)
        _LOGGING_CONFIGURED = True

    services = services or build_services(settings)

    log = structlog.get_logger()
    if not settings.shared_secret:
        log.warning("shared_secret_missing", detail="/notify-approver accepts unauthenticated calls")
    if not settings.jira_base_url:
        log.warning("jira_base_url_missing", detail="transitions and comments will fail")

    _register_action_handlers(services.bolt_app, services.executor)
    handler = SlackRequestHandler(services.bolt_app)

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    _register_error_handlers(flask_app)
    _register_auth(flask_app, settings)
    _register_routes(flask_app, settings, services, handler)
    return flask_app


def main() -> int:
    configure_logging()
    try:
        settings = get_settings()
    except RuntimeError as exc:
        structlog.get_logger().error("startup_failed", error=str(exc))
        return 1
    application = create_app(settings)
    application.run(host="0.0.0.0", port=settings.port)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    sys.exit(main())
