# ruff: noqa: B008

import math
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clearscrub import models
from clearscrub.api.deps import require_service_secret
from clearscrub.core.errors import IntakeRejected
from clearscrub.database import get_db
from clearscrub.schemas.companies import (
    AccountRead,
    CompanyDetailRead,
    CompanyDetailResponse,
    CompanyListResponse,
    CompanyRead,
    MonthlyRollupRead,
    Pagination,
    StatementTransactionsResponse,
)

router = APIRouter(tags=["companies"], dependencies=[Depends(require_service_secret)])

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_period(month_start: date) -> str:
    return f"{_MONTHS[month_start.month - 1]} {month_start.year}"


@router.get("/companies", response_model=CompanyListResponse)
def list_companies(
    org_id: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    query = db.query(models.Company).filter(models.Company.org_id == org_id)
    total = query.count()
    rows = (
        query.order_by(models.Company.created_at.desc(), models.Company.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return CompanyListResponse(
        companies=[CompanyRead.model_validate(c) for c in rows],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    )


@router.get("/companies/{company_id}", response_model=CompanyDetailResponse)
def get_company_detail(
    company_id: str,
    org_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    company = (
        db.query(models.Company)
        .filter(models.Company.id == company_id)
        .filter(models.Company.org_id == org_id)
        .first()
    )
    if company is None:
        raise IntakeRejected(
            "company_not_found",
            "Company not found",
            status_code=404,
            extra={"company_id": company_id},
        )

    accounts = {
        a.id: AccountRead.model_validate(a)
        for a in db.query(models.Account)
        .filter(models.Account.company_id == company.id)
        .order_by(models.Account.created_at.asc())
        .all()
    }
    rollups = (
        db.query(models.AccountMonthlyRollup)
        .filter(models.AccountMonthlyRollup.company_id == company.id)
        .order_by(models.AccountMonthlyRollup.month_start.asc())
        .all()
    )
    monthly = [
        MonthlyRollupRead(
            period=format_period(r.month_start),
            period_key=r.month_start,
            account_id=r.account_id,
            deposits=r.total_deposits,
            deposit_count=r.deposit_count,
            withdrawals=r.total_withdrawals,
            nsf_count=r.nsf_count,
            neg_ending_days=r.negative_balance_days,
            true_revenue=r.true_revenue,
            ending_balance=r.ending_balance,
            account=accounts.get(r.account_id),
        )
        for r in rollups
    ]
    return CompanyDetailResponse(
        company=CompanyDetailRead.model_validate(company),
        accounts=list(accounts.values()),
        monthly_data=monthly,
    )


@router.get("/statements/{statement_id}/transactions", response_model=StatementTransactionsResponse)
def get_statement_transactions(
    statement_id: str,
    org_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    statement = (
        db.query(models.Statement)
        .join(models.Company, models.Company.id == models.Statement.company_id)
        .filter(models.Statement.id == statement_id)
        .filter(models.Company.org_id == org_id)
        .first()
    )
    if statement is None:
        raise IntakeRejected(
            "statement_not_found",
            "Statement not found",
            status_code=404,
            extra={"statement_id": statement_id},
        )
    return StatementTransactionsResponse(
        statement_id=statement.id,
        transactions=list(statement.raw_transactions or []),
    )
