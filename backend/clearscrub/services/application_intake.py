"""Loan application intake.

Thin sibling of statement intake: resolve the company with the same resolver,
enrich it with the application's business details, then record a Submission and
an Application for it.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clearscrub import models
from clearscrub.core.errors import IntakeRejected, missing_field
from clearscrub.schemas.application_intake import (
    ApplicationDetails,
    ApplicationIntakeData,
    ApplicationIntakeRequest,
    ApplicationIntakeResponse,
    OwnerAddress,
)
from clearscrub.services.entity_resolution import ResolutionFailure, resolve_company

logger = logging.getLogger("clearscrub.intake")

# Company columns an application may fill in. Identity columns (legal_name,
# normalized_legal_name, ein) belong to the resolver.
ENRICHABLE_COMPANY_FIELDS = (
    "dba_name",
    "industry",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip",
    "phone",
    "email",
    "website",
)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_application_intake(payload: Any) -> ApplicationIntakeRequest:
    if not isinstance(payload, dict):
        raise IntakeRejected("invalid_json", "Request body must be a JSON object")

    company = payload.get("company") if isinstance(payload.get("company"), dict) else {}
    application = payload.get("application") if isinstance(payload.get("application"), dict) else {}

    if _blank(company.get("legal_name")):
        raise missing_field("company.legal_name")
    for field in ("owner_1_first_name", "owner_1_last_name"):
        if _blank(application.get(field)):
            raise missing_field(f"application.{field}")
    if _blank(payload.get("org_id")):
        raise missing_field("org_id")

    try:
        return ApplicationIntakeRequest.model_validate({**payload, "raw": payload})
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise IntakeRejected(
            "invalid_application",
            f"Invalid application field {loc}: {first.get('msg')}",
            extra={"field": loc},
        ) from None


def owner_full_name(first: Optional[str], middle: Optional[str], last: Optional[str]) -> Optional[str]:
    if _blank(first) or _blank(last):
        return None
    parts = [first.strip()]
    if not _blank(middle):
        parts.append(middle.strip())
    parts.append(last.strip())
    return " ".join(parts)


def ssn_last4(ssn: Optional[str]) -> Optional[str]:
    if _blank(ssn):
        return None
    digits = re.sub(r"\D", "", ssn)
    return digits[-4:] or None


def ownership_fraction(pct: Optional[float]) -> Optional[float]:
    """Percent (0-100) as submitted, stored as a 0-1 fraction."""

    if pct is None:
        return None
    return pct / 100


def _address(addr: Optional[OwnerAddress]) -> Optional[str]:
    if addr is None:
        return None
    return addr.formatted() or None


def redact_raw_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Copy of the submitted payload with full SSNs reduced to their last four digits."""

    out = dict(payload)
    application = out.get("application")
    if isinstance(application, dict):
        application = dict(application)
        for n in (1, 2):
            key = f"owner_{n}_ssn"
            if not _blank(application.get(key)):
                application[key] = ssn_last4(str(application[key]))
        out["application"] = application
    return out


def _owner_columns(app: ApplicationDetails, n: int) -> dict[str, Any]:
    def g(name: str) -> Any:
        return getattr(app, f"owner_{n}_{name}")

    return {
        f"owner_{n}_name": owner_full_name(g("first_name"), g("middle_name"), g("last_name")),
        f"owner_{n}_ssn_last4": ssn_last4(g("ssn")),
        f"owner_{n}_ownership_pct": ownership_fraction(g("ownership_pct")),
        f"owner_{n}_address": _address(g("address")),
        f"owner_{n}_phone": g("cell_phone") or g("home_phone"),
        f"owner_{n}_email": g("email"),
    }


def enrich_company(db: Session, company_id: str, request: ApplicationIntakeRequest) -> list[str]:
    """Copy supplied business details onto the company. Returns the updated column names."""

    company = db.get(models.Company, company_id)
    if company is None:
        raise ResolutionFailure("company", f"resolved company {company_id} disappeared")
    updated: list[str] = []
    for field in ENRICHABLE_COMPANY_FIELDS:
        value = getattr(request.company, field)
        if _blank(value):
            continue
        value = value.strip()
        if getattr(company, field) != value:
            setattr(company, field, value)
            updated.append(field)
    db.add(company)
    return updated


def ingest_application(db: Session, request: ApplicationIntakeRequest) -> ApplicationIntakeResponse:
    org = db.get(models.Organization, request.org_id)
    if org is None:
        raise IntakeRejected(
            "organization_not_found",
            f"Organization not found: {request.org_id}",
            status_code=404,
        )

    logger.info(
        "application_intake_received",
        extra={"org_id": request.org_id, "company_name": request.company.legal_name},
    )

    try:
        company = resolve_company(
            db,
            org_id=request.org_id,
            legal_name=request.company.legal_name,
            ein=request.company.ein,
        )
        updated = enrich_company(db, company.company_id, request)

        submission = models.Submission(
            org_id=request.org_id,
            ingestion_method="api",
            status=models.SubmissionStatus.completed.value,
        )
        db.add(submission)
        db.flush()

        app = request.application
        application = models.Application(
            submission_id=submission.id,
            company_id=company.company_id,
            business_name=request.company.legal_name.strip(),
            business_structure=app.business_structure,
            years_in_business=app.years_in_business,
            number_of_employees=app.number_of_employees,
            annual_revenue=app.annual_revenue,
            funding_amount=app.amount_requested,
            funding_purpose=app.loan_purpose,
            confidence_score=request.confidence_score,
            raw_extracted_data=redact_raw_payload(request.raw),
            **_owner_columns(app, 1),
            **_owner_columns(app, 2),
        )
        db.add(application)
        db.flush()
        data = ApplicationIntakeData(
            application_id=application.id,
            company_id=company.company_id,
            submission_id=submission.id,
        )
        db.commit()
    except ResolutionFailure:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "application_intake_failed",
            extra={"org_id": request.org_id, "error": str(exc)},
        )
        raise ResolutionFailure("company", str(exc), cause=exc) from exc

    logger.info(
        "application_intake_completed",
        extra={
            "application_id": data.application_id,
            "company_id": data.company_id,
            "submission_id": data.submission_id,
            "company_match": company.match_type,
            "company_fields_updated": updated,
        },
    )
    return ApplicationIntakeResponse(data=data)
