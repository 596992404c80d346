"""Request authentication: shared-secret bearer tokens and Slack signatures."""

from __future__ import annotations

import hmac
import time
from hashlib import sha256

from jira_slack_approvals.errors import AuthError

SLACK_SIGNATURE_HEADER = "X-Slack-Signature"
SLACK_TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
VERSION = "v0"
DEFAULT_TOLERANCE = 60 * 5  # five minutes


def verify_bearer(authorization: str | None, shared_secret: str | None) -> None:
    """Raise :class:`AuthError` unless *authorization* carries the shared secret.

    With no shared secret configured every caller is accepted.
    """

    if not shared_secret:
        return
    supplied = (authorization or "").strip()
    expected = f"Bearer {shared_secret}"
    if not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise AuthError("unauthorized")


def compute_signature(signing_secret: str, timestamp: str, body: str) -> str:
    """Return Slack-compatible signature for the provided payload."""

    basestring = f"{VERSION}:{timestamp}:{body}".encode("utf-8")
    secret = signing_secret.encode("utf-8")
    digest = hmac.new(secret, basestring, sha256).hexdigest()
    return f"{VERSION}={digest}"


def is_valid_slack_request(
    *, signing_secret: str, timestamp: str, body: str, signature: str, tolerance: int = DEFAULT_TOLERANCE
) -> bool:
    """Validate Slack signature and timestamp to guard against replay attacks."""

    if not timestamp or not signature:
        return False
    try:
        request_ts = int(timestamp)
    except (TypeError, ValueError):
        return False
    if abs(int(time.time()) - request_ts) > tolerance:
        return False
    expected = compute_signature(signing_secret, timestamp, body)
    return hmac.compare_digest(expected, signature)
