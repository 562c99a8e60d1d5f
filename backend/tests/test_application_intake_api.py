import pytest

from clearscrub import models
from clearscrub.database import SessionLocal
from clearscrub.services.application_intake import (
    owner_full_name,
    ownership_fraction,
    redact_raw_payload,
    ssn_last4,
)

from conftest import WEBHOOK_SECRET

URL = "/application-schema-intake"
HEADERS = {"x-webhook-secret": WEBHOOK_SECRET}


def _application_payload(org_id: str, **company_overrides) -> dict:
    company = {
        "legal_name": "ABC Corporation",
        "dba_name": "ABC Supply",
        "ein": "12-3456789",
        "industry": "Wholesale",
        "address_line1": "100 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip": "62701",
        "phone": "217-555-0100",
        "email": "info@acme.com",
        "website": "",
    }
    company.update(company_overrides)
    return {
        "org_id": org_id,
        "confidence_score": 0.93,
        "company": company,
        "application": {
            "business_structure": "LLC",
            "years_in_business": 6,
            "number_of_employees": 14,
            "annual_revenue": 1250000,
            "amount_requested": 75000,
            "loan_purpose": "Inventory",
            "owner_1_first_name": "Jordan",
            "owner_1_middle_name": "A",
            "owner_1_last_name": "Rivera",
            "owner_1_ssn": "123-45-6789",
            "owner_1_ownership_pct": 51,
            "owner_1_address": {
                "address_line1": "12 Oak Ave",
                "city": "Springfield",
                "state": "IL",
                "zip": "62704",
            },
            "owner_1_home_phone": "217-555-0111",
            "owner_1_email": "jordan@acme.com",
            "owner_2_first_name": "Sam",
            "owner_2_last_name": "Lee",
            "owner_2_ssn": "987654321",
            "owner_2_ownership_pct": 49,
            "owner_2_cell_phone": "217-555-0122",
        },
    }


def test_helpers():
    assert owner_full_name("Jordan", None, "Rivera") == "Jordan Rivera"
    assert owner_full_name("Jordan", "A", "Rivera") == "Jordan A Rivera"
    assert owner_full_name("Jordan", None, "  ") is None
    assert ssn_last4("123-45-6789") == "6789"
    assert ssn_last4("") is None
    assert ownership_fraction(51) == pytest.approx(0.51)
    assert ownership_fraction(None) is None


def test_redaction_keeps_only_last_four_ssn_digits():
    payload = {"application": {"owner_1_ssn": "123-45-6789", "owner_2_ssn": None}}

    redacted = redact_raw_payload(payload)

    assert redacted["application"]["owner_1_ssn"] == "6789"
    assert redacted["application"]["owner_2_ssn"] is None
    assert payload["application"]["owner_1_ssn"] == "123-45-6789"


def test_application_creates_company_submission_and_application(client, org, count_rows):
    resp = client.post(URL, json=_application_payload(org), headers=HEADERS)

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["meta"] == {"status": "success"}
    assert body["message"] == "Application intake successful"
    data = body["data"]

    with SessionLocal() as db:
        application = db.get(models.Application, data["application_id"])
        assert application.company_id == data["company_id"]
        assert application.submission_id == data["submission_id"]
        assert application.business_name == "ABC Corporation"
        assert application.funding_amount == 75000
        assert application.funding_purpose == "Inventory"
        assert application.owner_1_name == "Jordan A Rivera"
        assert application.owner_1_ssn_last4 == "6789"
        assert application.owner_1_ownership_pct == pytest.approx(0.51)
        assert application.owner_1_address == "12 Oak Ave, Springfield, IL 62704"
        assert application.owner_1_phone == "217-555-0111"
        assert application.owner_2_name == "Sam Lee"
        assert application.owner_2_ssn_last4 == "4321"
        assert application.owner_2_phone == "217-555-0122"
        assert application.raw_extracted_data["application"]["owner_1_ssn"] == "6789"

        submission = db.get(models.Submission, data["submission_id"])
        assert submission.ingestion_method == "api"
        assert submission.status == "completed"

        company = db.get(models.Company, data["company_id"])
        assert company.normalized_legal_name == "ABC"
        assert company.ein == "12-3456789"
        assert company.dba_name == "ABC Supply"
        assert company.website is None

    assert count_rows(models.Company) == 1


def test_application_matches_company_from_statement_and_enriches_it(
    client, org, make_document, statement_payload, webhook_headers, count_rows
):
    statement = client.post(
        "/statement-schema-intake", json=statement_payload(make_document()), headers=webhook_headers()
    ).json()

    resp = client.post(URL, json=_application_payload(org), headers=HEADERS)

    assert resp.status_code == 200
    assert resp.json()["data"]["company_id"] == statement["company_id"]
    assert count_rows(models.Company) == 1
    with SessionLocal() as db:
        company = db.get(models.Company, statement["company_id"])
        # Identity stays as first seen; business details are filled in.
        assert company.legal_name == "ABC Corp."
        assert company.phone == "217-555-0100"
        assert company.industry == "Wholesale"
        assert company.ein == "12-3456789"


def test_missing_owner_name(client, org, count_rows):
    payload = _application_payload(org)
    del payload["application"]["owner_1_last_name"]

    resp = client.post(URL, json=payload, headers=HEADERS)

    assert resp.status_code == 400
    body = resp.json()
    assert body["meta"]["error_code"] == "missing_field"
    assert body["field"] == "application.owner_1_last_name"
    assert count_rows(models.Application) == 0


def test_missing_company_name(client, org):
    resp = client.post(URL, json=_application_payload(org, legal_name="  "), headers=HEADERS)

    assert resp.status_code == 400
    assert resp.json()["field"] == "company.legal_name"


def test_invalid_email_is_rejected(client, org, count_rows):
    resp = client.post(URL, json=_application_payload(org, email="not-an-email"), headers=HEADERS)

    assert resp.status_code == 400
    body = resp.json()
    assert body["meta"]["error_code"] == "invalid_application"
    assert body["field"] == "company.email"
    assert count_rows(models.Company) == 0


def test_unknown_organization(client):
    resp = client.post(URL, json=_application_payload("no-such-org"), headers=HEADERS)

    assert resp.status_code == 404
    assert resp.json()["meta"]["error_code"] == "organization_not_found"


def test_requires_service_secret(client, org):
    resp = client.post(URL, json=_application_payload(org))

    assert resp.status_code == 401
    assert resp.json()["meta"]["error_code"] == "unauthorized"


def test_overlong_company_name_is_rejected(client, org, count_rows):
    resp = client.post(URL, json=_application_payload(org, legal_name="A" * 256), headers=HEADERS)

    assert resp.status_code == 400
    body = resp.json()
    assert body["meta"]["error_code"] == "invalid_application"
    assert body["field"] == "company.legal_name"
    assert count_rows(models.Company) == 0
