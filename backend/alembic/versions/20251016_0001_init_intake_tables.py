"""init intake tables

Revision ID: 20251016_0001
Revises: None
Create Date: 2025-10-16
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20251016_0001_init_intake_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "companies",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("org_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("legal_name", sa.String(255), nullable=False),
        sa.Column("normalized_legal_name", sa.String(255), nullable=False),
        sa.Column("ein", sa.String(20), nullable=True),
        sa.Column("dba_name", sa.String(255)),
        sa.Column("industry", sa.String(128)),
        sa.Column("address_line1", sa.String(255)),
        sa.Column("address_line2", sa.String(255)),
        sa.Column("city", sa.String(128)),
        sa.Column("state", sa.String(32)),
        sa.Column("zip", sa.String(16)),
        sa.Column("phone", sa.String(32)),
        sa.Column("email", sa.String(255)),
        sa.Column("website", sa.String(255)),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("org_id", "normalized_legal_name", name="ux_companies_org_normalized"),
        sa.UniqueConstraint("org_id", "ein", name="ux_companies_org_ein"),
    )
    op.create_index("ix_companies_org_id", "companies", ["org_id"])

    op.create_table(
        "company_aliases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("org_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("alias_name", sa.String(255), nullable=False),
        sa.Column("normalized_alias_name", sa.String(255), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "org_id", "normalized_alias_name", name="ux_company_aliases_org_normalized"
        ),
    )
    op.create_index("ix_company_aliases_org_id", "company_aliases", ["org_id"])
    op.create_index("ix_company_aliases_company_id", "company_aliases", ["company_id"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("bank_name", sa.String(255)),
        sa.Column("account_number_masked", sa.String(16), nullable=False),
        sa.Column("account_number_hash", sa.String(64), nullable=False),
        sa.Column("account_type", sa.String(32), nullable=False, server_default="checking"),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "account_number_hash", name="ux_accounts_company_hash"),
    )
    op.create_index("ix_accounts_company_id", "accounts", ["company_id"])

    op.create_table(
        "submissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("org_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("ingestion_method", sa.String(32), nullable=False, server_default="dashboard"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        *_timestamps(),
    )
    op.create_index("ix_submissions_org_id", "submissions", ["org_id"])

    op.create_table(
        "documents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("org_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("submission_id", sa.String(36), sa.ForeignKey("submissions.id"), nullable=True),
        sa.Column("company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=True),
        sa.Column("file_path", sa.String(1024)),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("schema_job_id", sa.String(128), nullable=True),
        sa.Column("structured_json", sa.JSON(), nullable=True),
        sa.Column("error_text", sa.Text()),
        sa.Column("structured_at", sa.DateTime(timezone=True)),
        sa.Column("processing_completed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_documents_org_id", "documents", ["org_id"])
    op.create_index("ix_documents_submission_id", "documents", ["submission_id"])
    op.create_index("idx_documents_schema_job_id", "documents", ["schema_job_id"])

    op.create_table(
        "statements",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("account_id", sa.String(36), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("document_id", sa.String(36), sa.ForeignKey("documents.id"), nullable=True),
        sa.Column("submission_id", sa.String(36), nullable=True),
        sa.Column("statement_period_start", sa.Date(), nullable=False),
        sa.Column("statement_period_end", sa.Date(), nullable=False),
        sa.Column("statement_date", sa.Date()),
        sa.Column("opening_balance", sa.Float()),
        sa.Column("closing_balance", sa.Float()),
        sa.Column("total_deposits", sa.Float()),
        sa.Column("total_withdrawals", sa.Float()),
        sa.Column("deposit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("nsf_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("negative_balance_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("true_revenue", sa.Float(), nullable=False, server_default="0"),
        sa.Column("true_revenue_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("largest_deposit", sa.Float()),
        sa.Column("largest_withdrawal", sa.Float()),
        sa.Column("raw_transactions", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "account_id",
            "statement_period_start",
            "statement_period_end",
            name="ux_statements_account_period",
        ),
    )
    op.create_index("ix_statements_account_id", "statements", ["account_id"])
    op.create_index("ix_statements_document_id", "statements", ["document_id"])
    op.create_index("ix_statements_submission_id", "statements", ["submission_id"])
    op.create_index(
        "idx_statements_company_period", "statements", ["company_id", "statement_period_start"]
    )

    op.create_table(
        "applications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("submission_id", sa.String(36), sa.ForeignKey("submissions.id"), nullable=False),
        sa.Column("company_id", sa.String(36), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("business_structure", sa.String(64)),
        sa.Column("years_in_business", sa.Float()),
        sa.Column("number_of_employees", sa.Integer()),
        sa.Column("annual_revenue", sa.Float()),
        sa.Column("funding_amount", sa.Float()),
        sa.Column("funding_purpose", sa.String(255)),
        sa.Column("owner_1_name", sa.String(255), nullable=False),
        sa.Column("owner_1_ssn_last4", sa.String(4)),
        sa.Column("owner_1_ownership_pct", sa.Float()),
        sa.Column("owner_1_address", sa.String(512)),
        sa.Column("owner_1_phone", sa.String(32)),
        sa.Column("owner_1_email", sa.String(255)),
        sa.Column("owner_2_name", sa.String(255)),
        sa.Column("owner_2_ssn_last4", sa.String(4)),
        sa.Column("owner_2_ownership_pct", sa.Float()),
        sa.Column("owner_2_address", sa.String(512)),
        sa.Column("owner_2_phone", sa.String(32)),
        sa.Column("owner_2_email", sa.String(255)),
        sa.Column("confidence_score", sa.Float()),
        sa.Column("raw_extracted_data", sa.JSON()),
        *_timestamps(),
    )
    op.create_index("ix_applications_submission_id", "applications", ["submission_id"])
    op.create_index("ix_applications_company_id", "applications", ["company_id"])


def downgrade() -> None:
    op.drop_table("applications")
    op.drop_table("statements")
    op.drop_table("documents")
    op.drop_table("submissions")
    op.drop_table("accounts")
    op.drop_table("company_aliases")
    op.drop_table("companies")
    op.drop_table("organizations")
