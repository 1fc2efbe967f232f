"""Tests for the Flask application factory."""
from __future__ import annotations

from storage.sql_store import SqlDocumentStore


def test_health_endpoint_returns_ok(client):
    """The health endpoint should respond with an OK payload."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_blueprints_registered(app):
    """Application factory should register expected blueprints."""
    assert {"auth", "company", "reports"}.issubset(app.blueprints.keys())


def test_document_store_is_attached(app):
    assert isinstance(app.extensions["document_store"], SqlDocumentStore)


def test_unknown_route_returns_json_error(client):
    response = client.get("/nope")
    assert response.status_code == 404
    payload = response.get_json()
    assert payload["error"] == "Not Found"
    assert payload["request_id"]
