from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from clearscrub.schemas.statement_intake import ExtractedTransaction

# Matched against descriptions directly; deliberately not the classifier's fee bucket.
NSF_DESCRIPTION_PATTERN = re.compile(r"NSF|INSUFFICIENT|OVERDRAFT", re.IGNORECASE)


@dataclass(frozen=True)
class StatementMetrics:
    deposit_count: int
    nsf_count: int
    negative_balance_days: int
    true_revenue: float
    largest_deposit: float | None
    largest_withdrawal: float | None

    def as_response(self) -> dict:
        return {
            "deposit_count": self.deposit_count,
            "nsf_count": self.nsf_count,
            "negative_balance_days": self.negative_balance_days,
            "true_revenue": self.true_revenue,
        }


def compute_statement_metrics(transactions: Iterable[ExtractedTransaction]) -> StatementMetrics:
    """Per-statement aggregates over the extracted rows, in source order.

    `negative_balance_days` counts rows whose running balance is below zero, not
    distinct calendar days; several rows on one overdrawn day each count.
    """

    deposit_count = 0
    nsf_count = 0
    negative_balance_days = 0
    true_revenue = 0.0
    largest_deposit: float | None = None
    largest_withdrawal: float | None = None

    for tx in transactions:
        if tx.amount > 0:
            deposit_count += 1
            true_revenue += tx.amount
            if largest_deposit is None or tx.amount > largest_deposit:
                largest_deposit = tx.amount
        elif tx.amount < 0:
            magnitude = abs(tx.amount)
            if largest_withdrawal is None or magnitude > largest_withdrawal:
                largest_withdrawal = magnitude
        if NSF_DESCRIPTION_PATTERN.search(tx.description or ""):
            nsf_count += 1
        if tx.balance is not None and tx.balance < 0:
            negative_balance_days += 1

    return StatementMetrics(
        deposit_count=deposit_count,
        nsf_count=nsf_count,
        negative_balance_days=negative_balance_days,
        true_revenue=round(true_revenue, 2),
        largest_deposit=largest_deposit,
        largest_withdrawal=largest_withdrawal,
    )
