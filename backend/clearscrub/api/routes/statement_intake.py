# ruff: noqa: B008

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from clearscrub.api.deps import read_json_body, require_signed_webhook
from clearscrub.config import settings
from clearscrub.database import get_db
from clearscrub.schemas.statement_intake import StatementIntakeResponse
from clearscrub.services.rollups import refresh_all_rollups_safely
from clearscrub.services.statement_ingestion import ingest_statement, parse_statement_intake

router = APIRouter(tags=["intake"])


@router.post(
    "/statement-schema-intake",
    response_model=StatementIntakeResponse,
    response_model_exclude_none=True,
)
async def statement_schema_intake(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _timestamp_ms: int = Depends(require_signed_webhook),
):
    payload = await read_json_body(request, settings.intake_max_payload_bytes)
    parsed = parse_statement_intake(payload)
    result = await run_in_threadpool(ingest_statement, db, parsed)
    if not result.idempotent_replay:
        background_tasks.add_task(refresh_all_rollups_safely, result.document_id)
    return result
