from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from clearscrub.database import Base


class AccountMonthlyRollup(Base):
    __tablename__ = "account_monthly_rollups"
    __table_args__ = (
        UniqueConstraint("account_id", "month_start", name="ux_account_monthly_rollups_lookup"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    month_start: Mapped[date] = mapped_column(Date, nullable=False)
    month_end: Mapped[date | None] = mapped_column(Date)

    total_deposits: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_withdrawals: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    ending_balance: Mapped[float | None] = mapped_column(Float)
    true_revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    true_revenue_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deposit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    negative_balance_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    nsf_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    largest_deposit: Mapped[float | None] = mapped_column(Float)
    largest_withdrawal: Mapped[float | None] = mapped_column(Float)

    refreshed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class CompanyMonthlyRollup(Base):
    __tablename__ = "company_monthly_rollups"
    __table_args__ = (
        UniqueConstraint("company_id", "month_start", name="ux_company_monthly_rollups_lookup"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    month_start: Mapped[date] = mapped_column(Date, nullable=False)
    month_end: Mapped[date | None] = mapped_column(Date)
    account_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_deposits: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_withdrawals: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_ending_balance: Mapped[float | None] = mapped_column(Float)
    true_revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    true_revenue_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deposit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    negative_balance_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    nsf_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    largest_deposit: Mapped[float | None] = mapped_column(Float)
    largest_withdrawal: Mapped[float | None] = mapped_column(Float)

    refreshed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
