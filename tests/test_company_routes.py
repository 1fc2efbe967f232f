"""Tests for the company settings and subscription endpoints."""

from __future__ import annotations

from datetime import timedelta

from flask.testing import FlaskClient

from models.company import COMPANIES
from models.managed_user import MANAGED_USERS, hash_credential
from utils.dates import parse_iso, to_iso, utcnow


def _owner_token(client: FlaskClient) -> str:
    response = client.post(
        "/auth/register",
        json={
            "email": "owner@atlas.example",
            "password": "OwnerPass1",
            "company": {"name": "Atlas Conseil", "phone": "0600"},
        },
    )
    return response.get_json()["access_token"]


def _owner_uid(app) -> str:
    with app.app_context():
        store = app.extensions["document_store"]
        return store.query(COMPANIES, ownerEmail="owner@atlas.example")[0].key


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_get_company_returns_status(client: FlaskClient):
    token = _owner_token(client)

    response = client.get("/company", headers=_bearer(token))

    assert response.status_code == 200
    data = response.get_json()
    assert data["company"]["phone"] == "0600"
    assert data["company"]["default_template"] == "template1"
    assert data["subscription_status"]["is_expired"] is False


def test_update_settings_merges_fields(app, client: FlaskClient):
    token = _owner_token(client)

    response = client.patch(
        "/company/settings",
        json={"address": "12 Rue Atlas", "invoicePrefix": "AT-"},
        headers=_bearer(token),
    )

    assert response.status_code == 200
    company = response.get_json()["session"]["company"]
    assert company["address"] == "12 Rue Atlas"
    assert company["invoice_prefix"] == "AT-"
    assert company["phone"] == "0600"
    with app.app_context():
        stored = app.extensions["document_store"].get(COMPANIES, _owner_uid(app))
        assert stored["address"] == "12 Rue Atlas"
        assert stored["updatedAt"].endswith("Z")


def test_update_settings_rejects_subscription_fields(client: FlaskClient):
    token = _owner_token(client)

    response = client.patch(
        "/company/settings", json={"subscription": "pro"}, headers=_bearer(token)
    )

    assert response.status_code == 400


def test_upgrade_starts_paid_period(client: FlaskClient):
    token = _owner_token(client)

    response = client.post("/company/subscription/upgrade", headers=_bearer(token))

    assert response.status_code == 200
    company = response.get_json()["session"]["company"]
    assert company["subscription"] == "pro"
    remaining = parse_iso(company["expiry_date"]) - parse_iso(company["subscription_date"])
    assert remaining == timedelta(days=30)
    status = response.get_json()["session"]["subscription_status"]
    assert status["days_remaining"] == 30


def test_check_subscription_downgrades_lapsed_company(app, client: FlaskClient):
    token = _owner_token(client)
    uid = _owner_uid(app)
    lapsed = to_iso(utcnow() - timedelta(days=1))
    with app.app_context():
        app.extensions["document_store"].update(
            COMPANIES, uid, {"subscription": "pro", "expiryDate": lapsed}
        )

    response = client.post("/company/subscription/check", headers=_bearer(token))

    assert response.status_code == 200
    session = response.get_json()["session"]
    assert session["company"]["subscription"] == "free"
    assert session["expired_on"] == lapsed
    with app.app_context():
        assert app.extensions["document_store"].get(COMPANIES, uid)["subscription"] == "free"


def test_operator_cannot_change_settings_or_subscription(client: FlaskClient):
    token = client.post(
        "/auth/login", json={"email": "operator@example.com", "password": "OperatorPass123"}
    ).get_json()["access_token"]

    settings = client.patch("/company/settings", json={"name": "X"}, headers=_bearer(token))
    upgrade = client.post("/company/subscription/upgrade", headers=_bearer(token))

    assert settings.status_code == 403
    assert upgrade.status_code == 403


def test_managed_user_needs_settings_permission(app, client: FlaskClient):
    _owner_token(client)
    uid = _owner_uid(app)
    with app.app_context():
        store = app.extensions["document_store"]
        store.update(
            COMPANIES,
            uid,
            {"subscription": "pro", "expiryDate": to_iso(utcnow() + timedelta(days=20))},
        )
        store.add(
            MANAGED_USERS,
            {
                "email": "staff@atlas.example",
                "passwordHash": hash_credential("StaffPass1"),
                "status": "active",
                "permissions": {"reports": True},
                "entrepriseId": uid,
            },
        )
    token = client.post(
        "/auth/login", json={"email": "staff@atlas.example", "password": "StaffPass1"}
    ).get_json()["access_token"]

    settings = client.patch("/company/settings", json={"name": "X"}, headers=_bearer(token))
    upgrade = client.post("/company/subscription/upgrade", headers=_bearer(token))
    company = client.get("/company", headers=_bearer(token))

    assert settings.status_code == 403
    assert upgrade.status_code == 403
    assert company.status_code == 200
    assert company.get_json()["company"]["name"] == "Atlas Conseil"


def test_company_requires_token(client: FlaskClient):
    assert client.get("/company").status_code == 401
