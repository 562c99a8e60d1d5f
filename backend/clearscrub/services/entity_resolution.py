from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clearscrub import models
from clearscrub.services.normalization import (
    hash_account_number,
    mask_account_number,
    normalize_company_name,
)

logger = logging.getLogger("clearscrub.resolution")

ResolutionStage = Literal["company", "account", "statement"]
CompanyMatchType = Literal["ein", "normalized_name", "alias", "created"]
AccountMatchType = Literal["existing", "created"]

DEFAULT_MAX_RETRIES = 3


class ResolutionFailure(Exception):
    """Persistence failure while resolving or writing a canonical record.

    `stage` names who failed so diagnostics can tell company resolution, account
    resolution and statement upsert apart; callers map all of them to a 500.
    """

    def __init__(self, stage: ResolutionStage, message: str, cause: BaseException | None = None):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} resolution failed: {message}")


@dataclass(frozen=True)
class CompanyResolution:
    company_id: str
    match_type: CompanyMatchType


@dataclass(frozen=True)
class AccountResolution:
    account_id: str
    match_type: AccountMatchType
    account_number_masked: str


def _clean_ein(ein: str | None) -> str | None:
    if ein is None:
        return None
    s = str(ein).strip()
    return s or None


def _lookup_company(
    db: Session, *, org_id: str, normalized_name: str, ein: str | None
) -> CompanyResolution | None:
    # Fixed priority: EIN is a government identifier and wins, the normalized
    # name is the fallback, aliases are the manual-override escape hatch.
    if ein:
        company_id = (
            db.query(models.Company.id)
            .filter(models.Company.org_id == org_id)
            .filter(models.Company.ein == ein)
            .scalar()
        )
        if company_id is not None:
            return CompanyResolution(company_id=company_id, match_type="ein")

    company_id = (
        db.query(models.Company.id)
        .filter(models.Company.org_id == org_id)
        .filter(models.Company.normalized_legal_name == normalized_name)
        .scalar()
    )
    if company_id is not None:
        return CompanyResolution(company_id=company_id, match_type="normalized_name")

    company_id = (
        db.query(models.CompanyAlias.company_id)
        .filter(models.CompanyAlias.org_id == org_id)
        .filter(models.CompanyAlias.normalized_alias_name == normalized_name)
        .scalar()
    )
    if company_id is not None:
        return CompanyResolution(company_id=company_id, match_type="alias")

    return None


def _backfill_ein(db: Session, *, company_id: str, ein: str) -> None:
    """Record a newly supplied EIN on a company that was matched without one."""

    company = db.get(models.Company, company_id)
    if company is None or company.ein:
        return
    try:
        with db.begin_nested():
            company.ein = ein
    except IntegrityError:
        # Another company in the tenant already owns this EIN; keep the match as is.
        logger.warning(
            "entity_resolution_ein_backfill_conflict",
            extra={"company_id": company_id},
        )


def resolve_company(
    db: Session,
    *,
    org_id: str,
    legal_name: str,
    ein: str | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> CompanyResolution:
    """Find or create the canonical company for a name/EIN within one tenant.

    Matching order: EIN -> normalized legal name -> alias -> create. The insert runs
    in a SAVEPOINT; losing a race against a concurrent insert trips the unique
    constraint, and the lookup is repeated instead of failing the request.
    Callers control commit/rollback.
    """

    normalized_name = normalize_company_name(legal_name)
    ein = _clean_ein(ein)

    logger.info(
        "entity_resolution_start",
        extra={
            "org_id": org_id,
            "company_name": legal_name,
            "normalized_name": normalized_name,
            "has_ein": bool(ein),
        },
    )

    try:
        for attempt in range(max_retries):
            match = _lookup_company(db, org_id=org_id, normalized_name=normalized_name, ein=ein)
            if match is not None:
                if ein and match.match_type != "ein":
                    _backfill_ein(db, company_id=match.company_id, ein=ein)
                logger.info(
                    "entity_resolution_success",
                    extra={"match_type": match.match_type, "company_id": match.company_id},
                )
                return match

            company = models.Company(
                org_id=org_id,
                legal_name=legal_name.strip(),
                normalized_legal_name=normalized_name,
                ein=ein,
            )
            try:
                with db.begin_nested():
                    db.add(company)
            except IntegrityError:
                logger.info(
                    "entity_resolution_conflict",
                    extra={"normalized_name": normalized_name, "attempt": attempt + 1},
                )
                continue

            logger.info(
                "entity_resolution_success",
                extra={"match_type": "created", "company_id": company.id},
            )
            return CompanyResolution(company_id=company.id, match_type="created")
    except SQLAlchemyError as exc:
        logger.error(
            "entity_resolution_failed",
            extra={"company_name": legal_name, "error": str(exc)},
        )
        raise ResolutionFailure("company", str(exc), cause=exc) from exc

    raise ResolutionFailure(
        "company", f"no stable match for {normalized_name!r} after {max_retries} attempts"
    )


def _lookup_account(db: Session, *, company_id: str, account_hash: str) -> str | None:
    return (
        db.query(models.Account.id)
        .filter(models.Account.company_id == company_id)
        .filter(models.Account.account_number_hash == account_hash)
        .scalar()
    )


def resolve_account(
    db: Session,
    *,
    company_id: str,
    account_number: str,
    bank_name: str | None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> AccountResolution:
    """Find or create the account identified by the hash of its digits.

    The plaintext number is never stored; only the `****1234` mask and the hash.
    """

    account_hash = hash_account_number(account_number)
    masked = mask_account_number(account_number)

    logger.info(
        "account_resolution_start",
        extra={"company_id": company_id, "account_number_masked": masked, "bank_name": bank_name},
    )

    try:
        for attempt in range(max_retries):
            account_id = _lookup_account(db, company_id=company_id, account_hash=account_hash)
            if account_id is not None:
                logger.info(
                    "account_resolution_success",
                    extra={"match_type": "existing", "account_id": account_id},
                )
                return AccountResolution(
                    account_id=account_id, match_type="existing", account_number_masked=masked
                )

            account = models.Account(
                company_id=company_id,
                bank_name=bank_name,
                account_number_masked=masked,
                account_number_hash=account_hash,
                account_type=models.AccountType.checking.value,
                status=models.AccountStatus.active.value,
            )
            try:
                with db.begin_nested():
                    db.add(account)
            except IntegrityError:
                logger.info(
                    "account_resolution_conflict",
                    extra={"company_id": company_id, "attempt": attempt + 1},
                )
                continue

            logger.info(
                "account_resolution_success",
                extra={"match_type": "created", "account_id": account.id},
            )
            return AccountResolution(
                account_id=account.id, match_type="created", account_number_masked=masked
            )
    except SQLAlchemyError as exc:
        logger.error(
            "account_resolution_failed",
            extra={"account_number_masked": masked, "error": str(exc)},
        )
        raise ResolutionFailure("account", str(exc), cause=exc) from exc

    raise ResolutionFailure("account", f"no stable match for {masked} after {max_retries} attempts")
