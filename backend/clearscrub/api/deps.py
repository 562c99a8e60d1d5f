import json
from typing import Optional

from fastapi import Depends, Header, Request

from clearscrub.core.errors import IntakeRejected
from clearscrub.core.security import verify_request_timestamp, verify_webhook_secret


def require_service_secret(
    x_webhook_secret: Optional[str] = Header(default=None),
) -> None:
    """Gate for service-role callers (extraction pipeline, internal tools)."""

    verify_webhook_secret(x_webhook_secret)


def require_signed_webhook(
    _secret: None = Depends(require_service_secret),
    x_clearscrub_timestamp: Optional[str] = Header(default=None),
) -> int:
    """Secret plus replay window; returns the request timestamp in epoch millis."""

    return verify_request_timestamp(x_clearscrub_timestamp)


def _too_large(max_bytes: int) -> IntakeRejected:
    return IntakeRejected(
        "payload_too_large",
        f"Payload exceeds {max_bytes} bytes",
        extra={"max_bytes": max_bytes},
    )


async def read_json_body(request: Request, max_bytes: int) -> object:
    """Size-capped JSON body; oversized payloads are rejected before parsing."""

    declared = request.headers.get("content-length")
    if declared is not None:
        try:
            if int(declared) > max_bytes:
                raise _too_large(max_bytes)
        except ValueError:
            pass

    raw = await request.body()
    if len(raw) > max_bytes:
        raise _too_large(max_bytes)
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise IntakeRejected("invalid_json", "Request body must be valid JSON") from None
