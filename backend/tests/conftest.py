import os
import tempfile
import time
import uuid

# CRITICAL: Set environment variables BEFORE any clearscrub imports
# These must be set before clearscrub.config.settings is loaded
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), f"test_clearscrub_{os.getpid()}.db")
WEBHOOK_SECRET = "test-webhook-secret"
os.environ["WEBHOOK_SECRET"] = WEBHOOK_SECRET
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TEST_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = ""

import pytest
from fastapi.testclient import TestClient

# Now import clearscrub modules - they will use the test DATABASE_URL
from clearscrub import models
from clearscrub.database import Base, SessionLocal, get_db
from clearscrub.database import engine as app_engine
from clearscrub.main import app

# Use the same engine that the app uses
TEST_ENGINE = app_engine
TestingSessionLocal = SessionLocal


def override_get_db():
    """Test database session that uses the test engine."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    """
    Create all tables before each test and clean up after.
    Also restores dependency overrides so tests stay isolated.
    """
    original_overrides = dict(app.dependency_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)

    yield

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db_session():
    """Session for direct service calls. Tests that mix it with HTTP calls must
    end its read transactions (commit/rollback) before posting again; SQLite
    blocks writers while another connection holds a read transaction."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def count_rows():
    """Row count in a short-lived session, so no read lock outlives the call."""

    def _count(model, **filters) -> int:
        with TestingSessionLocal() as db:
            q = db.query(model)
            for key, value in filters.items():
                q = q.filter(getattr(model, key) == value)
            return q.count()

    return _count


@pytest.fixture
def org():
    with TestingSessionLocal() as db:
        tenant = models.Organization(name="Acme Lending")
        db.add(tenant)
        db.commit()
        return tenant.id


@pytest.fixture
def other_org():
    with TestingSessionLocal() as db:
        tenant = models.Organization(name="Other Lending")
        db.add(tenant)
        db.commit()
        return tenant.id


@pytest.fixture
def make_document(org):
    """Uploaded document awaiting extraction results."""

    def _make(org_id: str | None = None) -> str:
        with TestingSessionLocal() as db:
            doc = models.Document(
                org_id=org_id or org,
                file_path=f"statements/{uuid.uuid4()}.pdf",
                status=models.DocumentStatus.processing.value,
            )
            db.add(doc)
            db.commit()
            return doc.id

    return _make


def now_ms() -> int:
    return int(time.time() * 1000)


@pytest.fixture
def webhook_headers():
    def _headers(timestamp_ms: int | None = None, secret: str | None = WEBHOOK_SECRET) -> dict:
        headers = {"x-clearscrub-timestamp": str(now_ms() if timestamp_ms is None else timestamp_ms)}
        if secret is not None:
            headers["x-webhook-secret"] = secret
        return headers

    return _headers


DEFAULT_TRANSACTIONS = [
    {"date": "2025-01-02", "description": "ACH DEPOSIT STRIPE", "amount": 1500.00, "balance": 2500.00},
    {"date": "2025-01-05", "description": "CARD PURCHASE OFFICE DEPOT", "amount": -200.00, "balance": 2300.00},
    {"date": "2025-01-09", "description": "MOBILE DEPOSIT", "amount": "2,250.50", "balance": 4550.50},
    {"date": "2025-01-15", "description": "MONTHLY SERVICE FEE", "amount": -15.00, "balance": 4535.50},
    {"date": "2025-01-20", "description": "WIRE OUT PAYROLL", "amount": -4700.00, "balance": -164.50},
    {"date": "2025-01-21", "description": "NSF RETURNED ITEM FEE", "amount": -35.00, "balance": -199.50},
    {"date": "2025-01-28", "description": "ACH DEPOSIT SQUARE", "amount": 800.00, "balance": 600.50},
]


@pytest.fixture
def statement_payload(org):
    def _payload(
        document_id: str,
        *,
        org_id: str | None = None,
        llama_job_id: str = "llama-job-1",
        company: str = "ABC Corp.",
        account_number: str = "1234-5678-9012",
        ein: str | None = None,
        start: str = "2025-01-01",
        end: str = "2025-01-31",
        transactions: list | None = None,
        **extra,
    ) -> dict:
        summary = {
            "company": company,
            "account_number": account_number,
            "bank_name": "First Example Bank",
            "statement_start_date": start,
            "statement_end_date": end,
            "start_balance": 1000.00,
            "end_balance": 600.50,
            "total_credits": 4550.50,
            "total_debits": 4950.00,
        }
        if ein is not None:
            summary["ein"] = ein
        body = {
            "document_id": document_id,
            "submission_id": str(uuid.uuid4()),
            "org_id": org_id or org,
            "file_path": f"statements/{document_id}.pdf",
            "llama_job_id": llama_job_id,
            "extracted_data": {
                "statement": {
                    "summary": summary,
                    "transactions": list(DEFAULT_TRANSACTIONS if transactions is None else transactions),
                }
            },
        }
        body.update(extra)
        return body

    return _payload
