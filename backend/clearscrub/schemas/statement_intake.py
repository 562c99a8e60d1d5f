from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from clearscrub.models.domain import TransactionType


class StatementSummary(BaseModel):
    """`extracted_data.statement.summary` as emitted by the extractor."""

    model_config = ConfigDict(extra="ignore")

    # Caps mirror the column sizes in models/domain.py.
    company: str = Field(..., min_length=1, max_length=255)
    account_number: str = Field(..., min_length=1, max_length=64)
    bank_name: Optional[str] = Field(None, max_length=255)
    ein: Optional[str] = Field(None, max_length=20)
    statement_start_date: date
    statement_end_date: date
    start_balance: Optional[float] = None
    end_balance: Optional[float] = None
    total_credits: Optional[float] = None
    total_debits: Optional[float] = None
    num_credits: Optional[int] = None
    num_debits: Optional[int] = None
    num_transactions: Optional[int] = None


class ExtractedTransaction(BaseModel):
    """One validated transaction row; never built from unchecked input."""

    model_config = ConfigDict(frozen=True)

    id: str
    index: int
    date: date
    description: str = ""
    amount: float
    balance: Optional[float] = None
    type: TransactionType

    def as_stored(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": self.amount,
            "balance": self.balance,
            "type": self.type.value,
        }


class StatementIntakeRequest(BaseModel):
    document_id: str
    submission_id: str
    org_id: str
    file_path: str
    llama_job_id: str
    partial_success: bool = False
    extraction_errors: list[str] = Field(default_factory=list)
    summary: StatementSummary
    transactions: list[ExtractedTransaction]
    extracted_data: dict[str, Any]


class StatementMetricsRead(BaseModel):
    deposit_count: int
    nsf_count: int
    negative_balance_days: int
    true_revenue: float


class StatementIntakeResponse(BaseModel):
    meta: dict[str, Any]
    document_id: str
    statement_id: Optional[str] = None
    company_id: Optional[str] = None
    account_id: Optional[str] = None
    status: str = "completed"
    metrics: Optional[StatementMetricsRead] = None
    idempotent_replay: bool = False
    message: Optional[str] = None
