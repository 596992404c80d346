"""Jira approval requests delivered and decided through Slack DMs."""

from .background import run_async  # noqa: F401
from .config import AppSettings, get_settings  # noqa: F401
from .logging_config import configure_logging  # noqa: F401
from .tokens import ActionToken, decode_action_token, encode_action_token  # noqa: F401

__all__ = [
    "AppSettings",
    "get_settings",
    "run_async",
    "configure_logging",
    "ActionToken",
    "encode_action_token",
    "decode_action_token",
]
