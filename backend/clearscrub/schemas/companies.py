from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict


class CompanyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    legal_name: str
    dba_name: Optional[str] = None
    ein: Optional[str] = None
    industry: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CompanyDetailRead(CompanyRead):
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    website: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class CompanyListResponse(BaseModel):
    companies: List[CompanyRead]
    pagination: Pagination


class AccountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    bank_name: Optional[str] = None
    account_type: str
    account_number_masked: str
    status: str


class MonthlyRollupRead(BaseModel):
    period: str
    period_key: date
    account_id: str
    deposits: float
    deposit_count: int
    withdrawals: float
    nsf_count: int
    neg_ending_days: int
    true_revenue: float
    ending_balance: Optional[float] = None
    account: Optional[AccountRead] = None


class CompanyDetailResponse(BaseModel):
    company: CompanyDetailRead
    accounts: List[AccountRead]
    monthly_data: List[MonthlyRollupRead]


class StatementTransactionsResponse(BaseModel):
    statement_id: str
    transactions: List[dict[str, Any]]
