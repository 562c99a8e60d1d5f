# ruff: noqa: B008

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from clearscrub.api.deps import read_json_body, require_service_secret
from clearscrub.config import settings
from clearscrub.database import get_db
from clearscrub.schemas.application_intake import ApplicationIntakeResponse
from clearscrub.services.application_intake import ingest_application, parse_application_intake

router = APIRouter(tags=["intake"])


@router.post("/application-schema-intake", response_model=ApplicationIntakeResponse)
async def application_schema_intake(
    request: Request,
    db: Session = Depends(get_db),
    _secret: None = Depends(require_service_secret),
):
    payload = await read_json_body(request, settings.intake_max_payload_bytes)
    parsed = parse_application_intake(payload)
    return await run_in_threadpool(ingest_application, db, parsed)
