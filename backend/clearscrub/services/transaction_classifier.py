from __future__ import annotations

import re

from clearscrub.models.domain import TransactionType

# Broader than the NSF metric vocabulary in statement_metrics: bank service
# charges count as fees but are not NSF events.
FEE_DESCRIPTION_PATTERN = re.compile(r"NSF|FEE|OVERDRAFT|SERVICE|CHARGE", re.IGNORECASE)


def classify_transaction(amount: float, description: str | None) -> TransactionType:
    """Label one transaction from its signed amount and description.

    Zero amounts are labelled deposits.
    """

    if amount > 0:
        return TransactionType.deposit
    if amount < 0:
        if FEE_DESCRIPTION_PATTERN.search(description or ""):
            return TransactionType.fee
        return TransactionType.withdrawal
    return TransactionType.deposit
