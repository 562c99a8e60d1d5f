from clearscrub.models.domain import (
    Account,
    AccountStatus,
    AccountType,
    Application,
    Company,
    CompanyAlias,
    Document,
    DocumentStatus,
    Organization,
    Statement,
    Submission,
    SubmissionStatus,
    TransactionType,
)
from clearscrub.models.rollups import AccountMonthlyRollup, CompanyMonthlyRollup

__all__ = [
    "Account",
    "AccountMonthlyRollup",
    "AccountStatus",
    "AccountType",
    "Application",
    "Company",
    "CompanyAlias",
    "CompanyMonthlyRollup",
    "Document",
    "DocumentStatus",
    "Organization",
    "Statement",
    "Submission",
    "SubmissionStatus",
    "TransactionType",
]
