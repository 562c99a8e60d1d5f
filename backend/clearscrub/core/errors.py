"""Machine-readable rejections for the intake webhooks.

The caller is the extraction pipeline, not a person, so every rejection carries a
stable `error_code` its retry logic can branch on:

    {"meta": {"error_code": "invalid_amount", "status": "error"}, "message": "..."}
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from clearscrub.services.entity_resolution import ResolutionFailure

logger = logging.getLogger("clearscrub.intake")


class IntakeRejected(Exception):
    def __init__(
        self,
        error_code: str,
        message: str,
        *,
        status_code: int = 400,
        extra: dict[str, Any] | None = None,
    ):
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
        self.extra = dict(extra or {})
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "meta": {"error_code": self.error_code, "status": "error"},
            "message": self.message,
        }
        body.update(self.extra)
        return body


def unauthorized(message: str = "Invalid or missing webhook secret") -> IntakeRejected:
    return IntakeRejected("unauthorized", message, status_code=401)


def missing_field(field: str) -> IntakeRejected:
    return IntakeRejected("missing_field", f"Missing required field: {field}", extra={"field": field})


async def intake_rejected_handler(request: Request, exc: IntakeRejected) -> JSONResponse:
    logger.warning(
        exc.error_code,
        extra={
            "path": request.url.path,
            "status_code": exc.status_code,
            "error": exc.message,
        },
    )
    headers = {}
    request_id = request.headers.get("x-request-id")
    if request_id:
        headers["X-Request-ID"] = request_id
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


async def resolution_failure_handler(request: Request, exc: ResolutionFailure) -> JSONResponse:
    # The stage goes to the log only; callers get the same 500 contract for all stages.
    logger.error(
        "internal_error",
        extra={"path": request.url.path, "stage": exc.stage, "error": str(exc)},
    )
    rejected = IntakeRejected("internal_error", "Internal server error", status_code=500)
    headers = {}
    request_id = request.headers.get("x-request-id")
    if request_id:
        headers["X-Request-ID"] = request_id
    return JSONResponse(status_code=500, content=rejected.to_body(), headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IntakeRejected, intake_rejected_handler)
    app.add_exception_handler(ResolutionFailure, resolution_failure_handler)
