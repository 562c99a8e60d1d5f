"""add monthly rollup tables

Revision ID: 20251016_0002
Revises: 20251016_0001
Create Date: 2025-10-16
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20251016_0002_add_monthly_rollups"
down_revision = "20251016_0001_init_intake_tables"
branch_labels = None
depends_on = None


def _aggregate_columns() -> list[sa.Column]:
    return [
        sa.Column("total_deposits", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_withdrawals", sa.Float(), nullable=False, server_default="0"),
        sa.Column("true_revenue", sa.Float(), nullable=False, server_default="0"),
        sa.Column("true_revenue_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deposit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("negative_balance_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("nsf_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("largest_deposit", sa.Float()),
        sa.Column("largest_withdrawal", sa.Float()),
        sa.Column(
            "refreshed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "account_monthly_rollups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.String(36), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("company_id", sa.String(36), nullable=False),
        sa.Column("month_start", sa.Date(), nullable=False),
        sa.Column("month_end", sa.Date()),
        sa.Column("ending_balance", sa.Float()),
        *_aggregate_columns(),
        sa.UniqueConstraint("account_id", "month_start", name="ux_account_monthly_rollups_lookup"),
    )
    op.create_index(
        "ix_account_monthly_rollups_account_id", "account_monthly_rollups", ["account_id"]
    )
    op.create_index(
        "ix_account_monthly_rollups_company_id", "account_monthly_rollups", ["company_id"]
    )

    op.create_table(
        "company_monthly_rollups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("month_start", sa.Date(), nullable=False),
        sa.Column("month_end", sa.Date()),
        sa.Column("account_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_ending_balance", sa.Float()),
        *_aggregate_columns(),
        sa.UniqueConstraint("company_id", "month_start", name="ux_company_monthly_rollups_lookup"),
    )
    op.create_index(
        "ix_company_monthly_rollups_company_id", "company_monthly_rollups", ["company_id"]
    )


def downgrade() -> None:
    op.drop_table("company_monthly_rollups")
    op.drop_table("account_monthly_rollups")
