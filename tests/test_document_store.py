"""Tests for the SQL-backed document store."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from errors import DocumentNotFound, PersistenceError
from models import db
from storage.sql_store import SqlDocumentStore


def test_set_get_and_overwrite(app):
    with app.app_context():
        store = SqlDocumentStore(db)
        store.set("entreprises", "owner-1", {"name": "Atlas", "phone": "1"})
        store.set("entreprises", "owner-1", {"name": "Atlas Conseil"})

        assert store.get("entreprises", "owner-1") == {"name": "Atlas Conseil"}
        assert store.get("entreprises", "missing") is None
        assert store.get("managedUsers", "owner-1") is None


def test_update_merges_and_persists(app):
    with app.app_context():
        store = SqlDocumentStore(db)
        store.set("entreprises", "owner-1", {"name": "Atlas", "subscription": "pro"})

        merged = store.update("entreprises", "owner-1", {"subscription": "free"})

        assert merged == {"name": "Atlas", "subscription": "free"}
        db.session.expire_all()
        assert store.get("entreprises", "owner-1")["subscription"] == "free"


def test_update_missing_document_raises(app):
    with app.app_context():
        store = SqlDocumentStore(db)

        with pytest.raises(DocumentNotFound):
            store.update("entreprises", "ghost", {"name": "x"})


def test_query_filters_by_equality_in_insertion_order(app):
    with app.app_context():
        store = SqlDocumentStore(db)
        first = store.add("invoices", {"entrepriseId": "a", "total": 1})
        store.add("invoices", {"entrepriseId": "b", "total": 2})
        third = store.add("invoices", {"entrepriseId": "a", "total": 3})
        store.add("entreprises", {"entrepriseId": "a"})

        results = store.query("invoices", entrepriseId="a")

        assert [doc.key for doc in results] == [first, third]
        assert [doc.data["total"] for doc in results] == [1, 3]
        assert len(store.query("invoices")) == 3
        assert store.query("invoices", entrepriseId="a", total=2) == []


def test_database_errors_become_persistence_errors(app, monkeypatch):
    with app.app_context():
        store = SqlDocumentStore(db)

        def _broken(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(db.session, "query", _broken)

        with pytest.raises(PersistenceError):
            store.get("entreprises", "owner-1")
        with pytest.raises(PersistenceError):
            store.query("invoices")
