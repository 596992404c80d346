"""Tests for configuration helpers."""

from pathlib import Path
import sys

import pytest
from pydantic import ValidationError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from jira_slack_approvals import config  # noqa: E402

_ALL_VARS = (
    "SLACK_BOT_TOKEN",
    "SLACK_SIGNING_SECRET",
    "SHARED_SECRET",
    "RATE_LIMIT_MS",
    "JIRA_BASE_URL",
    "JIRA_EMAIL",
    "JIRA_API_TOKEN",
    "APPROVE_TRANSITION_ID",
    "REJECT_TRANSITION_ID",
    "DEDUP_WINDOW_SECONDS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in _ALL_VARS:
        monkeypatch.delenv(var, raising=False)
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


def test_get_settings_parses_expected_fields(monkeypatch):
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-token")
    monkeypatch.setenv("SHARED_SECRET", " s3cret ")
    monkeypatch.setenv("RATE_LIMIT_MS", "350")
    monkeypatch.setenv("JIRA_BASE_URL", "https://example.atlassian.net/")
    monkeypatch.setenv("APPROVE_TRANSITION_ID", "61")

    settings = config.get_settings()

    assert settings.bot_token == "xoxb-token"
    assert settings.shared_secret == "s3cret"
    assert settings.rate_limit_ms == 350
    assert settings.rate_limit_seconds == pytest.approx(0.35)
    assert settings.jira_base_url == "https://example.atlassian.net"
    assert settings.signing_secret is None
    assert settings.dedup_window_seconds == 0


def test_defaults_apply_when_optional_vars_absent(monkeypatch):
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-token")

    settings = config.get_settings()

    assert settings.rate_limit_ms == 200
    assert settings.approve_transition_id == "61"
    assert settings.transition_id_for("approve") == "61"
    assert settings.transition_id_for("reject") == settings.reject_transition_id
    assert settings.log_level == "INFO"


def test_missing_bot_token_raises_runtime_error():
    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    assert "SLACK_BOT_TOKEN" in str(err.value)


def test_settings_are_immutable(monkeypatch):
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-token")
    settings = config.get_settings()

    with pytest.raises(ValidationError):
        settings.bot_token = "other"


def test_negative_rate_limit_rejected(monkeypatch):
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-token")
    monkeypatch.setenv("RATE_LIMIT_MS", "-5")

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    assert "Invalid configuration" in str(err.value)


def test_unknown_decision_has_no_transition():
    settings = config.AppSettings(bot_token="xoxb-token")

    with pytest.raises(ValueError):
        settings.transition_id_for("escalate")


def test_log_level_is_normalised_and_checked(monkeypatch):
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-token")
    monkeypatch.setenv("LOG_LEVEL", " debug ")

    assert config.get_settings().log_level == "DEBUG"

    config.get_settings.cache_clear()
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    assert "LOG_LEVEL" in str(err.value)
