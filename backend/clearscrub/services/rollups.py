"""Monthly rollups over statements.

Both tables are derived data: every refresh rebuilds them from scratch, so a
refresh is idempotent and a missed one is repaired by the next.

- account_monthly_rollups: statements grouped by (account, month of period start)
- company_monthly_rollups: account rollups grouped by (company, month)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import text
from sqlalchemy.orm import Session

from clearscrub import models
from clearscrub.config import settings
from clearscrub.database import SessionLocal

logger = logging.getLogger("clearscrub.rollups")

ROLLUP_LOCK_KEY = 734101

_SUMMED = (
    "total_deposits",
    "total_withdrawals",
    "true_revenue",
    "true_revenue_count",
    "deposit_count",
    "negative_balance_days",
    "nsf_count",
    "transaction_count",
)


_STATEMENT_COLUMNS = (
    models.Statement.account_id,
    models.Statement.company_id,
    models.Statement.statement_period_start,
    models.Statement.statement_period_end,
    models.Statement.closing_balance,
    models.Statement.largest_deposit,
    models.Statement.largest_withdrawal,
    *(getattr(models.Statement, k) for k in _SUMMED),
)


@dataclass(frozen=True)
class RollupRefreshResult:
    account_rows: int
    company_rows: int


def month_start(d: date) -> date:
    return d.replace(day=1)


def _max(current, value):
    if value is None:
        return current
    if current is None:
        return value
    return max(current, value)


def refresh_account_rollups(db: Session) -> int:
    """Rebuild account_monthly_rollups from statements. Returns the row count.

    Sums treat missing totals as zero; ending_balance, month_end and the largest_*
    columns keep the maximum seen in the month. Caller commits.
    """

    groups: dict[tuple[str, date], dict] = {}
    # Scalar columns only; raw_transactions stays in the database.
    rows = db.query(*_STATEMENT_COLUMNS).order_by(models.Statement.statement_period_start)
    for st in rows:
        key = (st.account_id, month_start(st.statement_period_start))
        row = groups.get(key)
        if row is None:
            row = {
                "account_id": st.account_id,
                "company_id": st.company_id,
                "month_start": key[1],
                "month_end": None,
                "ending_balance": None,
                "largest_deposit": None,
                "largest_withdrawal": None,
                **{k: 0 for k in _SUMMED},
            }
            groups[key] = row
        for k in _SUMMED:
            row[k] += getattr(st, k) or 0
        row["month_end"] = _max(row["month_end"], st.statement_period_end)
        row["ending_balance"] = _max(row["ending_balance"], st.closing_balance)
        row["largest_deposit"] = _max(row["largest_deposit"], st.largest_deposit)
        row["largest_withdrawal"] = _max(row["largest_withdrawal"], st.largest_withdrawal)

    now = datetime.now(timezone.utc)
    db.query(models.AccountMonthlyRollup).delete()
    for row in groups.values():
        db.add(models.AccountMonthlyRollup(refreshed_at=now, **row))
    db.flush()
    return len(groups)


def refresh_company_rollups(db: Session) -> int:
    """Rebuild company_monthly_rollups from the account rollups. Returns the row count.

    Run after `refresh_account_rollups`; caller commits.
    """

    groups: dict[tuple[str, date], dict] = {}
    accounts: dict[tuple[str, date], set[str]] = {}
    for ar in db.query(models.AccountMonthlyRollup).all():
        key = (ar.company_id, ar.month_start)
        row = groups.get(key)
        if row is None:
            row = {
                "company_id": ar.company_id,
                "month_start": ar.month_start,
                "month_end": None,
                "total_ending_balance": None,
                "largest_deposit": None,
                "largest_withdrawal": None,
                **{k: 0 for k in _SUMMED},
            }
            groups[key] = row
            accounts[key] = set()
        accounts[key].add(ar.account_id)
        for k in _SUMMED:
            row[k] += getattr(ar, k) or 0
        row["month_end"] = _max(row["month_end"], ar.month_end)
        if ar.ending_balance is not None:
            row["total_ending_balance"] = (row["total_ending_balance"] or 0.0) + ar.ending_balance
        row["largest_deposit"] = _max(row["largest_deposit"], ar.largest_deposit)
        row["largest_withdrawal"] = _max(row["largest_withdrawal"], ar.largest_withdrawal)

    now = datetime.now(timezone.utc)
    db.query(models.CompanyMonthlyRollup).delete()
    for key, row in groups.items():
        db.add(models.CompanyMonthlyRollup(account_count=len(accounts[key]), refreshed_at=now, **row))
    db.flush()
    return len(groups)


def _try_pg_advisory_xact_lock(db: Session, key: int) -> bool:
    """Transaction-scoped Postgres lock, released by the commit or rollback that
    ends the refresh. On other DBs, returns True (no-op)."""

    if db.get_bind().dialect.name != "postgresql":
        return True
    locked = db.execute(text("SELECT pg_try_advisory_xact_lock(:k)"), {"k": int(key)}).scalar()
    return bool(locked)


def refresh_all_rollups(db: Session) -> RollupRefreshResult | None:
    """Refresh both tables in one transaction; None when another worker holds the lock."""

    if not _try_pg_advisory_xact_lock(db, ROLLUP_LOCK_KEY):
        db.rollback()
        logger.info("rollup_refresh_skipped_locked")
        return None
    try:
        account_rows = refresh_account_rollups(db)
        company_rows = refresh_company_rollups(db)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(
        "rollup_refresh_ok",
        extra={"account_rows": account_rows, "company_rows": company_rows},
    )
    return RollupRefreshResult(account_rows=account_rows, company_rows=company_rows)


def refresh_all_rollups_safely(document_id: str | None = None) -> None:
    """Fire-and-forget entry point for request background tasks.

    Opens its own session; failures are logged and never propagate, stale
    aggregates are repaired by the periodic runner.
    """

    db = SessionLocal()
    try:
        refresh_all_rollups(db)
    except Exception as exc:
        logger.exception(
            "rollup_refresh_failed",
            extra={"document_id": document_id, "error": str(exc)},
        )
    finally:
        db.close()


class RollupRefreshRunner:
    """
    Periodic rollup refresh on a daemon thread.
    NOTE: In multi-worker setups, each worker will start this thread.
    We mitigate duplicates via a Postgres advisory lock.
    """

    def __init__(self, interval_seconds: float = 900.0) -> None:
        self.interval_seconds = float(interval_seconds)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="rollup-refresh-runner", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)

    def _loop(self) -> None:
        while not self._stop.is_set():
            logger.info("rollup_scheduler_wait", extra={"wait_seconds": int(self.interval_seconds)})
            if self._stop.wait(self.interval_seconds):
                break
            refresh_all_rollups_safely()


# Singleton runner for FastAPI lifecycle
runner = RollupRefreshRunner(interval_seconds=settings.rollup_refresh_interval_seconds)
