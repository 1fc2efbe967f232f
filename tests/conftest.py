"""Shared pytest fixtures for the application tests."""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest
from flask import Flask
from flask.testing import FlaskClient
from werkzeug.security import generate_password_hash

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import create_app  # noqa: E402
from config import Config  # noqa: E402
from errors import DocumentNotFound, InvalidCredentials, PopupBlocked, ProviderError  # noqa: E402
from identity.base import Identity, IdentityProvider  # noqa: E402
from models import db  # noqa: E402
from services.session import OperatorCredentials, SessionService  # noqa: E402
from storage.abstract_store import DocumentStore, StoredDocument  # noqa: E402

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)
OPERATOR_EMAIL = "operator@example.com"
OPERATOR_PASSWORD = "OperatorPass123"


class _BaseTestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key-with-enough-length-for-hmac"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length-for-hmac"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    OPERATOR_EMAIL = OPERATOR_EMAIL
    OPERATOR_PASSWORD_HASH = generate_password_hash(OPERATOR_PASSWORD)
    FEDERATED_REDIRECT_URL = "https://accounts.example/authorize"
    RATE_LIMIT = "1000 per minute"


@pytest.fixture()
def app() -> Flask:
    """Create a Flask application instance for tests."""

    application = create_app(_BaseTestConfig)
    outbox: list[tuple[str, str, str]] = []
    application.extensions["mail_sender"] = lambda kind, email, token: outbox.append(
        (kind, email, token)
    )
    application.extensions["test_outbox"] = outbox

    with application.app_context():
        db.create_all()

    yield application

    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    """Return a test client for the Flask app."""

    return app.test_client()


@pytest.fixture()
def outbox(app: Flask) -> list:
    """Messages handed to the mail sender as ``(kind, email, token)``."""

    return app.extensions["test_outbox"]


class MemoryStore(DocumentStore):
    """Dict-backed store that records every write."""

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = {}
        self.writes: list[tuple[str, str, str, dict]] = []
        self._counter = 0

    def get(self, collection, key):
        data = self.collections.get(collection, {}).get(key)
        return dict(data) if data is not None else None

    def set(self, collection, key, data):
        self.collections.setdefault(collection, {})[key] = dict(data)
        self.writes.append(("set", collection, key, dict(data)))

    def update(self, collection, key, changes):
        records = self.collections.setdefault(collection, {})
        if key not in records:
            raise DocumentNotFound(collection, key)
        records[key] = {**records[key], **changes}
        self.writes.append(("update", collection, key, dict(changes)))
        return dict(records[key])

    def add(self, collection, data):
        self._counter += 1
        key = f"{collection}-{self._counter}"
        self.set(collection, key, data)
        return key

    def query(self, collection, **equals):
        return [
            StoredDocument(key, dict(data))
            for key, data in self.collections.get(collection, {}).items()
            if all(data.get(name) == value for name, value in equals.items())
        ]


class FakeProvider(IdentityProvider):
    """Identity provider keeping accounts in a dict keyed by email."""

    def __init__(self):
        super().__init__()
        self.accounts: dict[str, tuple[str, Identity]] = {}
        self.sent: list[tuple[str, str]] = []
        self.redirects = 0

    def add_account(self, uid, email, password, **extra) -> Identity:
        identity = Identity(uid=uid, email=email, **extra)
        self.accounts[email] = (password, identity)
        return identity

    def sign_in_with_password(self, email, password):
        stored = self.accounts.get(email)
        if stored is None or stored[0] != password:
            raise InvalidCredentials("Invalid email or password.")
        self._set_current(stored[1])
        return stored[1]

    def sign_in_with_popup(self, assertion=None):
        if assertion is None:
            raise PopupBlocked()
        if not isinstance(assertion, Identity):
            raise ProviderError("bad assertion", code="auth/invalid-credential")
        self._set_current(assertion)
        return assertion

    def sign_in_with_redirect(self):
        self.redirects += 1
        return "https://accounts.example/authorize?state=abc"

    def complete_redirect(self, state, assertion):
        if state != "abc":
            raise ProviderError("bad state", code="auth/invalid-action-code")
        return self.sign_in_with_popup(assertion)

    def create_account(self, email, password):
        if email in self.accounts:
            raise ProviderError("exists", code="auth/email-already-in-use")
        identity = self.add_account(f"uid-{len(self.accounts) + 1}", email, password)
        self._set_current(identity)
        return identity

    def send_email_verification(self, identity):
        self.sent.append(("verify_email", identity.email))

    def send_password_reset_email(self, email):
        if email not in self.accounts:
            raise ProviderError("missing", code="auth/user-not-found")
        self.sent.append(("password_reset", email))

    def confirm_email_verification(self, token):
        password, identity = self.accounts[token]
        return identity

    def confirm_password_reset(self, token, new_password):
        _, identity = self.accounts[token]
        self.accounts[token] = (new_password, identity)

    def restore(self, uid):
        identity = next(
            (identity for _, identity in self.accounts.values() if identity.uid == uid),
            None,
        )
        self._set_current(identity)
        return identity


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def operator() -> OperatorCredentials:
    return OperatorCredentials(
        OPERATOR_EMAIL, generate_password_hash(OPERATOR_PASSWORD), "Operator HQ"
    )


@pytest.fixture()
def service(store, provider, operator) -> SessionService:
    """Session service on in-memory collaborators with a frozen clock."""

    session_service = SessionService(store, provider, operator=operator, clock=lambda: NOW)
    yield session_service
    session_service.close()


@pytest.fixture()
def now() -> datetime:
    """The instant the ``service`` fixture's clock is frozen at."""

    return NOW
