"""Handling of approval button clicks delivered by Slack."""

from .dedup import ActionDeduplicator
from .envelope import ActionEnvelope, parse_action_envelope
from .executor import ActionExecutor

__all__ = [
    "ActionDeduplicator",
    "ActionEnvelope",
    "ActionExecutor",
    "parse_action_envelope",
]
