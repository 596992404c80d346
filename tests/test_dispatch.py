"""Tests for the approval notification fan-out."""

import pytest
import structlog
from slack_sdk.errors import SlackApiError
from structlog.testing import capture_logs

from jira_slack_approvals.config import AppSettings
from jira_slack_approvals.directory import IdentityResolver
from jira_slack_approvals.dispatch import NotificationDispatcher
from jira_slack_approvals.errors import InvalidRequestError, TrackerError
from jira_slack_approvals.messages import APPROVE_ACTION_ID
from jira_slack_approvals.models import ApprovalRequest
from jira_slack_approvals.slack_client import SlackClient
from jira_slack_approvals.tokens import decode_action_token


class DummyResponse(dict):
    def __init__(self, error: str, status_code: int = 200) -> None:
        super().__init__({"ok": False, "error": error})
        self.status_code = status_code


class DummyWebClient:
    def __init__(self, users, failing_sends=()):
        self.users = users
        self.failing_sends = set(failing_sends)
        self.calls = []

    def users_lookupByEmail(self, *, email):
        self.calls.append(("lookup", email))
        if email not in self.users:
            raise SlackApiError("not found", DummyResponse("users_not_found"))
        return {"ok": True, "user": {"id": self.users[email]}}

    def chat_postMessage(self, *, channel, text, blocks):
        self.calls.append(("post", channel))
        if channel in self.failing_sends:
            raise SlackApiError("send failed", DummyResponse("channel_not_found"))
        return {"ok": True, "channel": f"D{channel}", "ts": "1700000000.000100", "blocks": blocks}


class FakeTracker:
    base_url = "https://example.atlassian.net"

    def __init__(self, summary="VPN access", error=None):
        self.summary = summary
        self.error = error
        self.calls = []

    def get_issue(self, issue_key, fields=("summary", "status")):
        self.calls.append(("get_issue", issue_key))
        if self.error:
            raise self.error
        return {"summary": self.summary}

    def browse_url(self, issue_key):
        return f"{self.base_url}/browse/{issue_key}"


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def _dispatcher(web_client, tracker=None, sleep=None, rate_limit_ms=200):
    settings = AppSettings(bot_token="xoxb-test", rate_limit_ms=rate_limit_ms)
    slack_client = SlackClient(client=web_client)
    return NotificationDispatcher(
        settings=settings,
        slack_client=slack_client,
        resolver=IdentityResolver(slack_client),
        tracker=tracker or FakeTracker(),
        sleep=sleep or RecordingSleep(),
    )


def _request(addresses, **overrides):
    body = {
        "ticketKey": "IAM-100",
        "summary": "VPN access",
        "url": "https://example.atlassian.net/browse/IAM-100",
        "requesterAddress": "bob@example.com",
        "approverAddresses": addresses,
    }
    body.update(overrides)
    return ApprovalRequest.model_validate(body)


def test_results_match_recipients_in_order():
    web = DummyWebClient({"a@x.com": "UA", "b@x.com": "UB", "c@x.com": "UC"})

    results = _dispatcher(web).dispatch(_request(["c@x.com", "a@x.com", "b@x.com"]))

    assert [result.address for result in results] == ["c@x.com", "a@x.com", "b@x.com"]
    assert all(result.success for result in results)
    assert [call for call in web.calls if call[0] == "post"] == [("post", "UC"), ("post", "UA"), ("post", "UB")]


def test_failed_recipient_does_not_abort_batch():
    web = DummyWebClient({"b@x.com": "UB"})

    results = _dispatcher(web).dispatch(_request(["a@x.com", "b@x.com"]))

    assert [result.to_dict() for result in results] == [
        {"address": "a@x.com", "ok": False, "error": "lookupByEmail(a@x.com) failed: users_not_found"},
        {"address": "b@x.com", "ok": True},
    ]


def test_send_failure_is_recorded_for_that_recipient():
    web = DummyWebClient({"a@x.com": "UA", "b@x.com": "UB"}, failing_sends={"UA"})

    results = _dispatcher(web).dispatch(_request(["a@x.com", "b@x.com"]))

    assert results[0].success is False
    assert results[0].error == "chat.postMessage failed: channel_not_found"
    assert results[1].success is True
    assert results[1].channel == "DUB"


def test_unexpected_error_for_one_recipient_is_isolated(monkeypatch):
    web = DummyWebClient({"a@x.com": "UA", "b@x.com": "UB"})
    dispatcher = _dispatcher(web)
    original = dispatcher._resolver.resolve

    def flaky_resolve(address):
        if address == "a@x.com":
            raise KeyError("user")
        return original(address)

    monkeypatch.setattr(dispatcher._resolver, "resolve", flaky_resolve)

    results = dispatcher.dispatch(_request(["a@x.com", "b@x.com"]))

    assert [result.success for result in results] == [False, True]


@pytest.mark.parametrize("addresses", [[], [""], [None, ""], "", None])
def test_empty_recipients_rejected_before_external_calls(addresses):
    web = DummyWebClient({})
    tracker = FakeTracker()

    with pytest.raises(InvalidRequestError):
        _dispatcher(web, tracker=tracker).dispatch(_request(addresses))

    assert web.calls == []
    assert tracker.calls == []


def test_sends_are_paced_between_recipients():
    web = DummyWebClient({"a@x.com": "UA", "b@x.com": "UB", "c@x.com": "UC"})
    sleep = RecordingSleep()

    _dispatcher(web, sleep=sleep, rate_limit_ms=250).dispatch(_request(["a@x.com", "b@x.com", "c@x.com"]))

    assert sleep.calls == [0.25, 0.25]


def test_wall_clock_respects_rate_limit():
    import time

    web = DummyWebClient({"a@x.com": "UA", "b@x.com": "UB", "c@x.com": "UC"})
    dispatcher = _dispatcher(web, sleep=time.sleep, rate_limit_ms=20)

    started = time.monotonic()
    dispatcher.dispatch(_request(["a@x.com", "b@x.com", "c@x.com"]))

    assert time.monotonic() - started >= 2 * 0.02


def test_buttons_carry_configured_transition_tokens():
    web = DummyWebClient({"a@x.com": "UA"})
    captured = {}

    def post(*, channel, text, blocks):
        captured["blocks"] = blocks
        return {"ok": True, "channel": "DUA", "ts": "1.1"}

    web.chat_postMessage = post

    _dispatcher(web).dispatch(_request(["a@x.com"]))

    actions = next(block for block in captured["blocks"] if block["type"] == "actions")
    approve = next(element for element in actions["elements"] if element["action_id"] == APPROVE_ACTION_ID)
    token = decode_action_token(approve["value"])
    assert token.ticket_key == "IAM-100"
    assert token.transition_id == "61"
    assert token.decision == "approve"


def test_missing_summary_is_fetched_from_tracker():
    web = DummyWebClient({"a@x.com": "UA"})
    tracker = FakeTracker(summary="Fetched summary")

    _dispatcher(web, tracker=tracker).dispatch(_request(["a@x.com"], summary=None, url=None))

    assert tracker.calls == [("get_issue", "IAM-100")]


def test_shared_field_lookup_failure_is_fatal():
    web = DummyWebClient({"a@x.com": "UA"})
    tracker = FakeTracker(error=TrackerError("Jira down"))

    with pytest.raises(TrackerError):
        _dispatcher(web, tracker=tracker).dispatch(_request(["a@x.com"], summary=None))

    assert web.calls == []


def test_dispatch_logs_summary():
    web = DummyWebClient({"b@x.com": "UB"})

    with capture_logs(processors=[structlog.contextvars.merge_contextvars]) as logs:
        _dispatcher(web).dispatch(_request(["a@x.com", "b@x.com"]))

    completed = [entry for entry in logs if entry["event"] == "dispatch_completed"]
    assert completed and completed[0]["sent"] == 1 and completed[0]["failed"] == 1
    assert completed[0]["ticket_key"] == "IAM-100"


def test_legacy_field_names_accepted():
    request = ApprovalRequest.model_validate(
        {
            "issueKey": "IAM-7",
            "issueSummary": "AWS console",
            "issueUrl": "https://jira/browse/IAM-7",
            "requester": "bob",
            "approverEmails": "a@x.com",
        }
    )

    assert request.ticket_key == "IAM-7"
    assert request.approver_addresses == ["a@x.com"]
