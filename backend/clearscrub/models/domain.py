# ruff: noqa: E501
import uuid
from datetime import date, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from clearscrub.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class DocumentStatus(PyEnum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    deleted = "deleted"


class AccountType(PyEnum):
    checking = "checking"
    savings = "savings"
    money_market = "money_market"
    unknown = "unknown"


class AccountStatus(PyEnum):
    active = "active"
    closed = "closed"


class TransactionType(PyEnum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    fee = "fee"


class SubmissionStatus(PyEnum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class Organization(Base):
    """Tenant. Created by the signup flow, never by intake."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Company(Base):
    __tablename__ = "companies"
    __table_args__ = (
        UniqueConstraint("org_id", "normalized_legal_name", name="ux_companies_org_normalized"),
        UniqueConstraint("org_id", "ein", name="ux_companies_org_ein"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    ein: Mapped[str | None] = mapped_column(String(20), nullable=True)

    dba_name: Mapped[str | None] = mapped_column(String(255))
    industry: Mapped[str | None] = mapped_column(String(128))
    address_line1: Mapped[str | None] = mapped_column(String(255))
    address_line2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(128))
    state: Mapped[str | None] = mapped_column(String(32))
    zip: Mapped[str | None] = mapped_column(String(16))
    phone: Mapped[str | None] = mapped_column(String(32))
    email: Mapped[str | None] = mapped_column(String(255))
    website: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    accounts = relationship("Account", back_populates="company", cascade="all, delete-orphan")
    aliases = relationship("CompanyAlias", back_populates="company", cascade="all, delete-orphan")


class CompanyAlias(Base):
    """Operator-maintained mapping of a name variant to a canonical company."""

    __tablename__ = "company_aliases"
    __table_args__ = (
        UniqueConstraint("org_id", "normalized_alias_name", name="ux_company_aliases_org_normalized"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    alias_name: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_alias_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    company = relationship("Company", back_populates="aliases")


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("company_id", "account_number_hash", name="ux_accounts_company_hash"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    bank_name: Mapped[str | None] = mapped_column(String(255))
    account_number_masked: Mapped[str] = mapped_column(String(16), nullable=False)
    account_number_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    account_type: Mapped[str] = mapped_column(String(32), nullable=False, default=AccountType.checking.value)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=AccountStatus.active.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    company = relationship("Company", back_populates="accounts")
    statements = relationship("Statement", back_populates="account", cascade="all, delete-orphan")

    @validates("account_number_hash", "account_number_masked", "company_id")
    def _validate_identity_immutable(self, key, value):
        current = getattr(self, key, None)
        if current is not None and current != value:
            raise ValueError(f"Account.{key} is immutable once set")
        return value

    @validates("account_type")
    def _validate_account_type(self, _key, value):
        if isinstance(value, AccountType):
            value = value.value
        allowed = {t.value for t in AccountType}
        if value not in allowed:
            raise ValueError(f"Invalid account type: {value}")
        return value


class Statement(Base):
    __tablename__ = "statements"
    __table_args__ = (
        UniqueConstraint(
            "account_id",
            "statement_period_start",
            "statement_period_end",
            name="ux_statements_account_period",
        ),
        Index("idx_statements_company_period", "company_id", "statement_period_start"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    account_id: Mapped[str] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    # Denormalized for read efficiency; Account is the owner.
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False)
    document_id: Mapped[str | None] = mapped_column(ForeignKey("documents.id"), nullable=True, index=True)
    submission_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    statement_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    statement_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    statement_date: Mapped[date | None] = mapped_column(Date)

    opening_balance: Mapped[float | None] = mapped_column(Float)
    closing_balance: Mapped[float | None] = mapped_column(Float)
    total_deposits: Mapped[float | None] = mapped_column(Float)
    total_withdrawals: Mapped[float | None] = mapped_column(Float)

    deposit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    nsf_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    negative_balance_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    true_revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    true_revenue_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    largest_deposit: Mapped[float | None] = mapped_column(Float)
    largest_withdrawal: Mapped[float | None] = mapped_column(Float)

    raw_transactions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    account = relationship("Account", back_populates="statements")


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    ingestion_method: Mapped[str] = mapped_column(String(32), nullable=False, default="dashboard")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SubmissionStatus.pending.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Document(Base):
    """Provenance record of one uploaded file.

    Created by the upload flow. Intake only reads it and records the outcome of
    the extraction job on it.
    """

    __tablename__ = "documents"
    __table_args__ = (Index("idx_documents_schema_job_id", "schema_job_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    submission_id: Mapped[str | None] = mapped_column(ForeignKey("submissions.id"), nullable=True, index=True)
    company_id: Mapped[str | None] = mapped_column(ForeignKey("companies.id"), nullable=True)
    file_path: Mapped[str | None] = mapped_column(String(1024))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=DocumentStatus.pending.value)

    schema_job_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    structured_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_text: Mapped[str | None] = mapped_column(Text)

    structured_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    processing_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Application(Base):
    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    submission_id: Mapped[str] = mapped_column(ForeignKey("submissions.id"), nullable=False, index=True)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)

    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_structure: Mapped[str | None] = mapped_column(String(64))
    years_in_business: Mapped[float | None] = mapped_column(Float)
    number_of_employees: Mapped[int | None] = mapped_column(Integer)
    annual_revenue: Mapped[float | None] = mapped_column(Float)
    funding_amount: Mapped[float | None] = mapped_column(Float)
    funding_purpose: Mapped[str | None] = mapped_column(String(255))

    owner_1_name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_1_ssn_last4: Mapped[str | None] = mapped_column(String(4))
    owner_1_ownership_pct: Mapped[float | None] = mapped_column(Float)
    owner_1_address: Mapped[str | None] = mapped_column(String(512))
    owner_1_phone: Mapped[str | None] = mapped_column(String(32))
    owner_1_email: Mapped[str | None] = mapped_column(String(255))
    owner_2_name: Mapped[str | None] = mapped_column(String(255))
    owner_2_ssn_last4: Mapped[str | None] = mapped_column(String(4))
    owner_2_ownership_pct: Mapped[float | None] = mapped_column(Float)
    owner_2_address: Mapped[str | None] = mapped_column(String(512))
    owner_2_phone: Mapped[str | None] = mapped_column(String(32))
    owner_2_email: Mapped[str | None] = mapped_column(String(255))

    confidence_score: Mapped[float | None] = mapped_column(Float)
    raw_extracted_data: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
