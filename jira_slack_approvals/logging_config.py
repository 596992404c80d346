"""Structlog setup for the approval bridge's JSON event stream."""

from __future__ import annotations

import logging

import structlog

SERVICE_NAME = "jira-slack-approvals"
LOG_LEVEL = logging.INFO

# Client libraries whose INFO chatter would bury the approval events.
_NOISY_LOGGERS = ("slack_bolt", "slack_sdk", "urllib3")


def _add_service(logger, method_name, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level '{level}'")
    return resolved


def configure_logging(level: int | str = LOG_LEVEL) -> None:
    """Emit every event as one JSON line tagged with the service name.

    Slack and HTTP client libraries are held at WARNING or above so the
    stream stays readable when the bridge logs at INFO.
    """

    resolved = _resolve_level(level)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _add_service,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s")
    logging.getLogger().setLevel(resolved)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
