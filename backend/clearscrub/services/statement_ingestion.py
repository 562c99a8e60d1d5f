"""Statement extraction intake.

One extraction payload in, one canonical Statement out:

    validate -> idempotency check -> classify + metrics -> resolve company
    -> resolve account -> upsert statement -> finalize document -> commit

Everything from resolution to document finalisation shares the caller's session
and is committed once, so a failure part-way leaves nothing behind. Rollup
refresh is the caller's concern and happens after the commit.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clearscrub import models
from clearscrub.config import settings
from clearscrub.core.errors import IntakeRejected, missing_field
from clearscrub.schemas.statement_intake import (
    ExtractedTransaction,
    StatementIntakeRequest,
    StatementIntakeResponse,
    StatementSummary,
)
from clearscrub.services.entity_resolution import (
    DEFAULT_MAX_RETRIES,
    ResolutionFailure,
    resolve_account,
    resolve_company,
)
from clearscrub.services.normalization import normalize_account_number, normalize_company_name
from clearscrub.services.statement_metrics import StatementMetrics, compute_statement_metrics
from clearscrub.services.transaction_classifier import classify_transaction

logger = logging.getLogger("clearscrub.intake")

REQUIRED_FIELDS = (
    "document_id",
    "submission_id",
    "org_id",
    "file_path",
    "llama_job_id",
    "extracted_data",
)

SUMMARY_PATH = "extracted_data.statement.summary"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_amount(value: Any) -> float | None:
    """Finite float from a JSON number or numeric string; None when unparseable."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            out = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        s = value.strip().replace(",", "")
        if not s:
            return None
        try:
            out = float(s)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(out):
        return None
    return out


def parse_calendar_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    s = value.strip()
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        return None


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, dict, list)) and not value:
        return False
    return True


def _parse_summary(raw: Any) -> StatementSummary:
    if not isinstance(raw, dict):
        raise missing_field(SUMMARY_PATH)

    for key in ("company", "account_number", "statement_start_date", "statement_end_date"):
        if not _present(raw.get(key)):
            raise missing_field(f"{SUMMARY_PATH}.{key}")

    cleaned: dict[str, Any] = dict(raw)
    for key in ("statement_start_date", "statement_end_date"):
        parsed = parse_calendar_date(raw.get(key))
        if parsed is None:
            raise IntakeRejected(
                "invalid_date",
                f"Invalid {key}: {raw.get(key)}",
                extra={"field": f"{SUMMARY_PATH}.{key}"},
            )
        cleaned[key] = parsed

    for key in ("start_balance", "end_balance", "total_credits", "total_debits"):
        if not _present(raw.get(key)):
            cleaned[key] = None
            continue
        parsed_amount = parse_amount(raw.get(key))
        if parsed_amount is None:
            raise IntakeRejected(
                "invalid_summary",
                f"Invalid {key}: {raw.get(key)}",
                extra={"field": f"{SUMMARY_PATH}.{key}"},
            )
        cleaned[key] = parsed_amount

    cleaned["company"] = str(raw["company"]).strip()
    cleaned["account_number"] = str(raw["account_number"]).strip()
    for key in ("bank_name", "ein"):
        if not _present(raw.get(key)):
            cleaned[key] = None
        else:
            cleaned[key] = str(raw[key]).strip()

    try:
        summary = StatementSummary.model_validate(cleaned)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise IntakeRejected(
            "invalid_summary",
            f"Invalid statement summary field {loc}: {first.get('msg')}",
            extra={"field": f"{SUMMARY_PATH}.{loc}"},
        ) from None

    if summary.statement_end_date < summary.statement_start_date:
        raise IntakeRejected(
            "invalid_date",
            "statement_end_date is before statement_start_date",
            extra={"field": f"{SUMMARY_PATH}.statement_end_date"},
        )
    if not normalize_company_name(summary.company):
        raise IntakeRejected(
            "invalid_company_name",
            f"Company name has no identifying characters: {summary.company}",
            extra={"field": f"{SUMMARY_PATH}.company"},
        )
    if not normalize_account_number(summary.account_number):
        raise IntakeRejected(
            "invalid_account_number",
            "Account number has no digits",
            extra={"field": f"{SUMMARY_PATH}.account_number"},
        )
    return summary


def _parse_transactions(document_id: str, rows: list[Any]) -> list[ExtractedTransaction]:
    out: list[ExtractedTransaction] = []
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            raise IntakeRejected(
                "invalid_transaction",
                f"Transaction {i} is not an object",
                extra={"index": i},
            )

        amount = parse_amount(row.get("amount"))
        if amount is None:
            raise IntakeRejected(
                "invalid_amount",
                f"Invalid amount format at transaction {i}: {row.get('amount')}",
                extra={"index": i},
            )

        tx_date = parse_calendar_date(row.get("date"))
        if tx_date is None:
            raise IntakeRejected(
                "invalid_date",
                f"Invalid date format at transaction {i}: {row.get('date')}",
                extra={"index": i},
            )

        balance = None
        if _present(row.get("balance")):
            balance = parse_amount(row.get("balance"))
            if balance is None:
                raise IntakeRejected(
                    "invalid_balance",
                    f"Invalid balance format at transaction {i}: {row.get('balance')}",
                    extra={"index": i},
                )

        description = row.get("description")
        description = "" if description is None else str(description)

        out.append(
            ExtractedTransaction(
                id=f"{document_id}-{i:04d}",
                index=i,
                date=tx_date,
                description=description,
                amount=amount,
                balance=balance,
                type=classify_transaction(amount, description),
            )
        )
    return out


def parse_statement_intake(
    payload: Any, *, max_transactions: int | None = None
) -> StatementIntakeRequest:
    """Validate a raw webhook body into a strongly-typed request.

    The first failing gate raises `IntakeRejected`; nothing here touches the database.
    """

    if not isinstance(payload, dict):
        raise IntakeRejected("invalid_json", "Request body must be a JSON object")

    for field in REQUIRED_FIELDS:
        if not _present(payload.get(field)):
            raise missing_field(field)

    extracted_data = payload["extracted_data"]
    if not isinstance(extracted_data, dict):
        raise IntakeRejected(
            "invalid_json", "extracted_data must be an object", extra={"field": "extracted_data"}
        )
    statement = extracted_data.get("statement")
    if not isinstance(statement, dict):
        raise missing_field("extracted_data.statement")

    rows = statement.get("transactions")
    if rows is None:
        rows = []
    if not isinstance(rows, list):
        raise IntakeRejected(
            "invalid_json",
            "extracted_data.statement.transactions must be a list",
            extra={"field": "extracted_data.statement.transactions"},
        )

    cap = int(settings.intake_max_transactions if max_transactions is None else max_transactions)
    if len(rows) > cap:
        raise IntakeRejected(
            "too_many_transactions",
            f"Too many transactions: {len(rows)} (max {cap})",
            extra={"transaction_count": len(rows), "max_transactions": cap},
        )

    document_id = str(payload["document_id"]).strip()
    summary = _parse_summary(statement.get("summary"))
    transactions = _parse_transactions(document_id, rows)

    extraction_errors = payload.get("extraction_errors") or []
    if not isinstance(extraction_errors, list):
        extraction_errors = [extraction_errors]

    return StatementIntakeRequest(
        document_id=document_id,
        submission_id=str(payload["submission_id"]).strip(),
        org_id=str(payload["org_id"]).strip(),
        file_path=str(payload["file_path"]),
        llama_job_id=str(payload["llama_job_id"]).strip(),
        partial_success=bool(payload.get("partial_success")),
        extraction_errors=[str(e) for e in extraction_errors],
        summary=summary,
        transactions=transactions,
        extracted_data=extracted_data,
    )


def _replay_response(db: Session, document: models.Document) -> StatementIntakeResponse:
    statement = (
        db.query(models.Statement)
        .filter(models.Statement.document_id == document.id)
        .order_by(models.Statement.updated_at.desc())
        .first()
    )
    meta = {"status": "success", "idempotent_replay": True}
    if statement is None:
        return StatementIntakeResponse(
            meta=meta,
            document_id=document.id,
            company_id=document.company_id,
            idempotent_replay=True,
            message="Already processed",
        )
    return StatementIntakeResponse(
        meta=meta,
        document_id=document.id,
        statement_id=statement.id,
        company_id=statement.company_id,
        account_id=statement.account_id,
        metrics={
            "deposit_count": statement.deposit_count,
            "nsf_count": statement.nsf_count,
            "negative_balance_days": statement.negative_balance_days,
            "true_revenue": statement.true_revenue,
        },
        idempotent_replay=True,
        message="Already processed",
    )


def _conflict(existing_job_id: str | None) -> IntakeRejected:
    return IntakeRejected(
        "statement_conflict",
        "Document already processed by a different extraction job",
        status_code=409,
        extra={"existing_job_id": existing_job_id},
    )


def check_idempotency(
    db: Session, request: StatementIntakeRequest
) -> tuple[models.Document, StatementIntakeResponse | None]:
    """Load the target document and decide replay vs. conflict vs. fresh work.

    Returns the document and, for an exact replay, the response to send back.
    """

    document = (
        db.query(models.Document)
        .filter(models.Document.id == request.document_id)
        .filter(models.Document.org_id == request.org_id)
        .first()
    )
    if document is None:
        raise IntakeRejected(
            "document_not_found",
            f"Document not found: {request.document_id}",
            status_code=404,
        )

    existing_job_id = document.schema_job_id
    if not existing_job_id:
        return document, None

    if existing_job_id == request.llama_job_id:
        logger.info(
            "statement_intake_replay",
            extra={"document_id": document.id, "llama_job_id": request.llama_job_id},
        )
        return document, _replay_response(db, document)

    logger.warning(
        "statement_conflict",
        extra={
            "document_id": document.id,
            "existing_job_id": existing_job_id,
            "llama_job_id": request.llama_job_id,
        },
    )
    raise _conflict(existing_job_id)


def _statement_values(
    request: StatementIntakeRequest,
    metrics: StatementMetrics,
    *,
    account_id: str,
    company_id: str,
) -> dict[str, Any]:
    summary = request.summary
    transaction_count = summary.num_transactions
    if transaction_count is None:
        transaction_count = len(request.transactions)
    return {
        "account_id": account_id,
        "company_id": company_id,
        "document_id": request.document_id,
        "submission_id": request.submission_id,
        "statement_period_start": summary.statement_start_date,
        "statement_period_end": summary.statement_end_date,
        "statement_date": summary.statement_end_date,
        "opening_balance": summary.start_balance,
        "closing_balance": summary.end_balance,
        "total_deposits": summary.total_credits,
        "total_withdrawals": summary.total_debits,
        "deposit_count": metrics.deposit_count,
        "nsf_count": metrics.nsf_count,
        "negative_balance_days": metrics.negative_balance_days,
        "true_revenue": metrics.true_revenue,
        "true_revenue_count": metrics.deposit_count,
        "transaction_count": int(transaction_count),
        "largest_deposit": metrics.largest_deposit,
        "largest_withdrawal": metrics.largest_withdrawal,
        "raw_transactions": [tx.as_stored() for tx in request.transactions],
    }


def _lookup_statement(
    db: Session, *, account_id: str, period_start: date, period_end: date
) -> models.Statement | None:
    return (
        db.query(models.Statement)
        .filter(models.Statement.account_id == account_id)
        .filter(models.Statement.statement_period_start == period_start)
        .filter(models.Statement.statement_period_end == period_end)
        .one_or_none()
    )


def upsert_statement(
    db: Session,
    *,
    request: StatementIntakeRequest,
    metrics: StatementMetrics,
    account_id: str,
    company_id: str,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> tuple[models.Statement, bool]:
    """Write the statement for (account, period); the latest extraction wins.

    Returns the row and whether it was newly inserted.
    """

    values = _statement_values(request, metrics, account_id=account_id, company_id=company_id)
    period_start = values["statement_period_start"]
    period_end = values["statement_period_end"]

    try:
        for attempt in range(max_retries):
            existing = _lookup_statement(
                db, account_id=account_id, period_start=period_start, period_end=period_end
            )
            if existing is not None:
                for key, value in values.items():
                    setattr(existing, key, value)
                db.flush()
                logger.info(
                    "statement_update",
                    extra={"statement_id": existing.id, "document_id": request.document_id},
                )
                return existing, False

            statement = models.Statement(**values)
            try:
                with db.begin_nested():
                    db.add(statement)
            except IntegrityError:
                logger.info(
                    "statement_upsert_conflict",
                    extra={"account_id": account_id, "attempt": attempt + 1},
                )
                continue

            logger.info(
                "statement_insert",
                extra={"statement_id": statement.id, "document_id": request.document_id},
            )
            return statement, True
    except SQLAlchemyError as exc:
        logger.error(
            "statement_upsert_failed",
            extra={"document_id": request.document_id, "error": str(exc)},
        )
        raise ResolutionFailure("statement", str(exc), cause=exc) from exc

    raise ResolutionFailure(
        "statement", f"no stable row for account {account_id} after {max_retries} attempts"
    )


def finalize_document(
    db: Session,
    *,
    request: StatementIntakeRequest,
    company_id: str,
) -> None:
    """Claim the document for this job and mark it completed.

    The job-id guard sits in the UPDATE itself, so of two different jobs racing
    past the idempotency check only the first to write wins; the other gets
    `statement_conflict`.
    """

    now = _utcnow()
    result = db.execute(
        update(models.Document)
        .where(models.Document.id == request.document_id)
        .where(
            or_(
                models.Document.schema_job_id.is_(None),
                models.Document.schema_job_id == request.llama_job_id,
            )
        )
        .values(
            schema_job_id=request.llama_job_id,
            structured_json=request.extracted_data,
            status=models.DocumentStatus.completed.value,
            structured_at=now,
            processing_completed_at=now,
            company_id=company_id,
            error_text=None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    existing_job_id = (
        db.query(models.Document.schema_job_id)
        .filter(models.Document.id == request.document_id)
        .scalar()
    )
    logger.warning(
        "statement_conflict",
        extra={
            "document_id": request.document_id,
            "existing_job_id": existing_job_id,
            "llama_job_id": request.llama_job_id,
        },
    )
    raise _conflict(existing_job_id)


def ingest_statement(db: Session, request: StatementIntakeRequest) -> StatementIntakeResponse:
    """Run a validated request through resolution and persistence, committing once."""

    _document, replay = check_idempotency(db, request)
    if replay is not None:
        return replay

    meta: dict[str, Any] = {"status": "success"}
    if request.partial_success:
        logger.warning(
            "statement_intake_partial_success",
            extra={
                "document_id": request.document_id,
                "extraction_errors": request.extraction_errors,
            },
        )
        meta["partial_success"] = True
        meta["warnings"] = list(request.extraction_errors)

    metrics = compute_statement_metrics(request.transactions)
    summary = request.summary

    try:
        company = resolve_company(
            db, org_id=request.org_id, legal_name=summary.company, ein=summary.ein
        )
        account = resolve_account(
            db,
            company_id=company.company_id,
            account_number=summary.account_number,
            bank_name=summary.bank_name,
        )
        statement, created = upsert_statement(
            db,
            request=request,
            metrics=metrics,
            account_id=account.account_id,
            company_id=company.company_id,
        )
        finalize_document(db, request=request, company_id=company.company_id)
        statement_id = statement.id
        db.commit()
    except IntakeRejected:
        db.rollback()
        raise
    except ResolutionFailure as exc:
        db.rollback()
        logger.error(
            "statement_intake_failed",
            extra={"document_id": request.document_id, "stage": exc.stage, "error": str(exc)},
        )
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "statement_intake_failed",
            extra={"document_id": request.document_id, "stage": "finalize", "error": str(exc)},
        )
        raise ResolutionFailure("statement", str(exc), cause=exc) from exc

    logger.info(
        "statement_intake_completed",
        extra={
            "document_id": request.document_id,
            "statement_id": statement_id,
            "company_id": company.company_id,
            "account_id": account.account_id,
            "company_match": company.match_type,
            "account_match": account.match_type,
            "statement_created": created,
            "transaction_count": len(request.transactions),
        },
    )

    return StatementIntakeResponse(
        meta=meta,
        document_id=request.document_id,
        statement_id=statement_id,
        company_id=company.company_id,
        account_id=account.account_id,
        status=models.DocumentStatus.completed.value,
        metrics=metrics.as_response(),
    )
