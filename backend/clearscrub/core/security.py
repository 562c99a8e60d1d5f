"""Webhook authentication.

Single source of truth for:
- Shared-secret verification (`x-webhook-secret`)
- Replay-window verification (`x-clearscrub-timestamp`, epoch millis)

The service-role path used by the extraction pipeline has no user session; the
shared secret is the only gate in front of it.
"""

from __future__ import annotations

import hmac
import time
from typing import Optional

from clearscrub.config import settings
from clearscrub.core.errors import IntakeRejected, unauthorized

SECRET_HEADER = "x-webhook-secret"
TIMESTAMP_HEADER = "x-clearscrub-timestamp"


def verify_webhook_secret(provided: Optional[str]) -> None:
    expected = settings.webhook_secret
    if not provided or not expected:
        raise unauthorized()
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise unauthorized()


def verify_request_timestamp(raw: Optional[str], *, now: Optional[float] = None) -> int:
    """Reject requests whose timestamp header is absent or outside the skew window.

    Returns the parsed timestamp in epoch milliseconds.
    """

    if raw is None or not str(raw).strip():
        raise IntakeRejected(
            "missing_timestamp", f"Missing {TIMESTAMP_HEADER} header", status_code=401
        )
    try:
        ts_ms = int(str(raw).strip())
    except ValueError:
        raise IntakeRejected(
            "missing_timestamp", f"Invalid {TIMESTAMP_HEADER} header", status_code=401
        ) from None

    now_ms = int((time.time() if now is None else now) * 1000)
    max_skew_ms = int(settings.webhook_max_skew_seconds) * 1000
    if abs(now_ms - ts_ms) > max_skew_ms:
        raise IntakeRejected(
            "replay_window_exceeded",
            "Request timestamp outside allowed window",
            status_code=401,
        )
    return ts_ms
