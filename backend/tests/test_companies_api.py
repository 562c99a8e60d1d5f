from datetime import date, datetime, timedelta, timezone

import pytest

from clearscrub import models
from clearscrub.api.routes.companies import format_period
from clearscrub.database import SessionLocal

from conftest import WEBHOOK_SECRET

HEADERS = {"x-webhook-secret": WEBHOOK_SECRET}


def _seed_companies(org_id: str, names: list[str]) -> list[str]:
    base = datetime(2025, 3, 1, tzinfo=timezone.utc)
    ids = []
    with SessionLocal() as db:
        for i, name in enumerate(names):
            company = models.Company(
                org_id=org_id,
                legal_name=name,
                normalized_legal_name=name.upper(),
                created_at=base + timedelta(days=i),
            )
            db.add(company)
            db.flush()
            ids.append(company.id)
        db.commit()
    return ids


def test_format_period():
    assert format_period(date(2025, 6, 1)) == "Jun 2025"
    assert format_period(date(2024, 12, 1)) == "Dec 2024"


def test_list_is_tenant_scoped_newest_first_and_paginated(client, org, other_org):
    ids = _seed_companies(org, ["Alpha", "Bravo", "Charlie"])
    _seed_companies(other_org, ["Delta"])

    resp = client.get("/companies", params={"org_id": org, "limit": 2}, headers=HEADERS)

    assert resp.status_code == 200
    body = resp.json()
    assert [c["id"] for c in body["companies"]] == [ids[2], ids[1]]
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

    page_two = client.get(
        "/companies", params={"org_id": org, "limit": 2, "page": 2}, headers=HEADERS
    ).json()
    assert [c["id"] for c in page_two["companies"]] == [ids[0]]


def test_list_rejects_out_of_range_limit(client, org):
    resp = client.get("/companies", params={"org_id": org, "limit": 501}, headers=HEADERS)

    assert resp.status_code == 422


def test_read_endpoints_require_service_secret(client, org):
    resp = client.get("/companies", params={"org_id": org})

    assert resp.status_code == 401
    assert resp.json()["meta"]["error_code"] == "unauthorized"


def test_company_detail_includes_accounts_and_monthly_rollups(
    client, org, make_document, statement_payload, webhook_headers
):
    posted = client.post(
        "/statement-schema-intake", json=statement_payload(make_document()), headers=webhook_headers()
    ).json()

    resp = client.get(
        f"/companies/{posted['company_id']}", params={"org_id": org}, headers=HEADERS
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["company"]["legal_name"] == "ABC Corp."
    assert [a["account_number_masked"] for a in body["accounts"]] == ["****9012"]

    (month,) = body["monthly_data"]
    assert month["period"] == "Jan 2025"
    assert month["period_key"] == "2025-01-01"
    assert month["account_id"] == posted["account_id"]
    assert month["deposits"] == pytest.approx(4550.5)
    assert month["withdrawals"] == pytest.approx(4950.0)
    assert month["deposit_count"] == 3
    assert month["nsf_count"] == 1
    assert month["neg_ending_days"] == 2
    assert month["true_revenue"] == pytest.approx(4550.5)
    assert month["ending_balance"] == pytest.approx(600.5)
    assert month["account"]["id"] == posted["account_id"]


def test_company_detail_of_another_tenant_is_not_found(client, org, other_org):
    (company_id,) = _seed_companies(other_org, ["Delta"])

    resp = client.get(f"/companies/{company_id}", params={"org_id": org}, headers=HEADERS)

    assert resp.status_code == 404
    assert resp.json()["meta"]["error_code"] == "company_not_found"


def test_statement_transactions(client, org, other_org, make_document, statement_payload, webhook_headers):
    doc_id = make_document()
    posted = client.post(
        "/statement-schema-intake", json=statement_payload(doc_id), headers=webhook_headers()
    ).json()
    url = f"/statements/{posted['statement_id']}/transactions"

    resp = client.get(url, params={"org_id": org}, headers=HEADERS)

    assert resp.status_code == 200
    body = resp.json()
    assert body["statement_id"] == posted["statement_id"]
    assert len(body["transactions"]) == 7
    assert body["transactions"][0] == {
        "id": f"{doc_id}-0000",
        "date": "2025-01-02",
        "description": "ACH DEPOSIT STRIPE",
        "amount": 1500.0,
        "balance": 2500.0,
        "type": "deposit",
    }

    hidden = client.get(url, params={"org_id": other_org}, headers=HEADERS)
    assert hidden.status_code == 404
    assert hidden.json()["meta"]["error_code"] == "statement_not_found"
