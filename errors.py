"""Domain errors raised by the session, identity and storage layers."""

from __future__ import annotations


class SessionError(Exception):
    """Base class for authentication and persistence failures."""


class InvalidCredentials(SessionError):
    """The email/password pair did not match any account."""


class AccountBlocked(SessionError):
    """A managed user's company subscription has lapsed."""

    code = "ACCOUNT_BLOCKED_EXPIRED"

    def __init__(self, company_id: str | None, expiry_date: str | None = None):
        super().__init__("The company subscription has expired.")
        self.company_id = company_id
        self.expiry_date = expiry_date


class ProviderError(SessionError):
    """The identity provider rejected or failed an operation."""

    def __init__(self, message: str, code: str = "auth/internal-error"):
        super().__init__(message)
        self.code = code


class PopupBlocked(ProviderError):
    """Interactive sign-in produced no result."""

    def __init__(self, message: str = "The sign-in popup was blocked."):
        super().__init__(message, code="auth/popup-blocked")


class PersistenceError(SessionError):
    """The document store failed to read or write a record."""


class DocumentNotFound(PersistenceError):
    """A merge-update targeted a record that does not exist."""

    def __init__(self, collection: str, key: str | None):
        super().__init__(f"No document {key!r} in {collection!r}.")
        self.collection = collection
        self.key = key
