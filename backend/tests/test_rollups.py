from datetime import date

import pytest
from sqlalchemy import event

from clearscrub import models
from clearscrub.database import engine
from clearscrub.services import rollups
from clearscrub.services.rollups import RollupRefreshRunner, refresh_all_rollups


def _account(db, company_id: str, digits: str) -> str:
    account = models.Account(
        company_id=company_id,
        account_number_masked=f"****{digits[-4:]}",
        account_number_hash=f"hash-{digits}",
    )
    db.add(account)
    db.flush()
    return account.id


def _statement(db, account_id, company_id, start, end, **values) -> None:
    defaults = {
        "total_deposits": 0.0,
        "total_withdrawals": 0.0,
        "deposit_count": 0,
        "nsf_count": 0,
        "negative_balance_days": 0,
        "true_revenue": 0.0,
        "transaction_count": 0,
    }
    defaults.update(values)
    db.add(
        models.Statement(
            account_id=account_id,
            company_id=company_id,
            statement_period_start=start,
            statement_period_end=end,
            **defaults,
        )
    )
    db.flush()


@pytest.fixture
def company_with_accounts(db_session, org):
    company = models.Company(org_id=org, legal_name="ABC Corp", normalized_legal_name="ABC")
    db_session.add(company)
    db_session.flush()
    checking = _account(db_session, company.id, "11112222")
    savings = _account(db_session, company.id, "33334444")
    db_session.commit()
    return company.id, checking, savings


def test_account_rollup_groups_statements_by_month(db_session, company_with_accounts):
    company_id, checking, _ = company_with_accounts
    _statement(
        db_session, checking, company_id, date(2025, 1, 1), date(2025, 1, 15),
        total_deposits=1000.0, deposit_count=2, true_revenue=1000.0, closing_balance=500.0,
        largest_deposit=700.0, nsf_count=1,
    )
    _statement(
        db_session, checking, company_id, date(2025, 1, 16), date(2025, 1, 31),
        total_deposits=250.0, deposit_count=1, true_revenue=250.0, closing_balance=300.0,
        largest_deposit=250.0, negative_balance_days=3,
    )
    _statement(
        db_session, checking, company_id, date(2025, 2, 1), date(2025, 2, 28),
        total_deposits=80.0, deposit_count=1, true_revenue=80.0, closing_balance=-20.0,
    )
    db_session.commit()

    result = refresh_all_rollups(db_session)

    assert result.account_rows == 2
    jan, feb = (
        db_session.query(models.AccountMonthlyRollup)
        .order_by(models.AccountMonthlyRollup.month_start)
        .all()
    )
    assert jan.month_start == date(2025, 1, 1)
    assert jan.month_end == date(2025, 1, 31)
    assert jan.total_deposits == pytest.approx(1250.0)
    assert jan.deposit_count == 3
    assert jan.nsf_count == 1
    assert jan.negative_balance_days == 3
    assert jan.ending_balance == pytest.approx(500.0)
    assert jan.largest_deposit == pytest.approx(700.0)
    assert feb.ending_balance == pytest.approx(-20.0)
    assert feb.largest_deposit is None


def test_company_rollup_sums_accounts(db_session, company_with_accounts):
    company_id, checking, savings = company_with_accounts
    _statement(
        db_session, checking, company_id, date(2025, 1, 1), date(2025, 1, 31),
        total_deposits=1000.0, deposit_count=2, true_revenue=1000.0, closing_balance=500.0,
    )
    _statement(
        db_session, savings, company_id, date(2025, 1, 1), date(2025, 1, 31),
        total_deposits=40.0, deposit_count=1, true_revenue=40.0, closing_balance=9000.0,
    )
    db_session.commit()

    result = refresh_all_rollups(db_session)

    assert result.company_rows == 1
    row = db_session.query(models.CompanyMonthlyRollup).one()
    assert row.company_id == company_id
    assert row.account_count == 2
    assert row.total_deposits == pytest.approx(1040.0)
    assert row.deposit_count == 3
    assert row.total_ending_balance == pytest.approx(9500.0)


def test_refresh_rebuilds_from_scratch(db_session, company_with_accounts):
    company_id, checking, _ = company_with_accounts
    _statement(db_session, checking, company_id, date(2025, 1, 1), date(2025, 1, 31), deposit_count=2)
    db_session.commit()
    refresh_all_rollups(db_session)

    db_session.query(models.Statement).delete()
    db_session.commit()
    result = refresh_all_rollups(db_session)

    assert result.account_rows == 0
    assert db_session.query(models.AccountMonthlyRollup).count() == 0
    assert db_session.query(models.CompanyMonthlyRollup).count() == 0


def test_refresh_is_idempotent(db_session, company_with_accounts):
    company_id, checking, _ = company_with_accounts
    _statement(db_session, checking, company_id, date(2025, 1, 1), date(2025, 1, 31), deposit_count=2)
    db_session.commit()

    refresh_all_rollups(db_session)
    refresh_all_rollups(db_session)

    row = db_session.query(models.AccountMonthlyRollup).one()
    assert row.deposit_count == 2


def test_background_refresh_logs_and_swallows_failures(monkeypatch, caplog):
    def broken(db):
        raise RuntimeError("boom")

    monkeypatch.setattr(rollups, "refresh_all_rollups", broken)

    rollups.refresh_all_rollups_safely("doc-1")

    assert any(r.getMessage() == "rollup_refresh_failed" for r in caplog.records)


def test_runner_start_and_stop():
    runner = RollupRefreshRunner(interval_seconds=3600)

    runner.start()
    assert runner.running
    runner.start()

    runner.stop(timeout=2)
    assert not runner.running


def test_refresh_reads_only_scalar_statement_columns(db_session, company_with_accounts):
    company_id, checking, _ = company_with_accounts
    _statement(db_session, checking, company_id, date(2025, 1, 1), date(2025, 1, 31), deposit_count=2)
    db_session.commit()
    selects = []

    def capture(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("SELECT"):
            selects.append(statement)

    event.listen(engine, "before_cursor_execute", capture)
    try:
        refresh_all_rollups(db_session)
    finally:
        event.remove(engine, "before_cursor_execute", capture)

    assert any("FROM statements" in s for s in selects)
    assert not any("raw_transactions" in s for s in selects)


class _PostgresStub:
    """Just enough Session for the advisory-lock path."""

    def __init__(self, lock_granted: bool):
        self.lock_granted = lock_granted
        self.sql: list[str] = []
        self.commits = 0
        self.rollbacks = 0

    def get_bind(self):
        return type("Bind", (), {"dialect": type("Dialect", (), {"name": "postgresql"})()})()

    def execute(self, clause, params=None):
        self.sql.append(str(clause))
        granted = self.lock_granted
        return type("Result", (), {"scalar": lambda _self: granted})()

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def test_postgres_lock_is_transaction_scoped(monkeypatch):
    monkeypatch.setattr(rollups, "refresh_account_rollups", lambda db: 3)
    monkeypatch.setattr(rollups, "refresh_company_rollups", lambda db: 1)
    db = _PostgresStub(lock_granted=True)

    result = refresh_all_rollups(db)

    assert result == rollups.RollupRefreshResult(account_rows=3, company_rows=1)
    assert db.sql == ["SELECT pg_try_advisory_xact_lock(:k)"]
    assert db.commits == 1


def test_postgres_refresh_skipped_while_another_worker_holds_lock(monkeypatch):
    def unexpected(db):
        raise AssertionError("refresh ran without the lock")

    monkeypatch.setattr(rollups, "refresh_account_rollups", unexpected)
    db = _PostgresStub(lock_granted=False)

    assert refresh_all_rollups(db) is None
    assert db.rollbacks == 1
    assert not any("unlock" in s for s in db.sql)
