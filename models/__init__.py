"""Database initialization and model exports."""

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()

# Import models to register them with SQLAlchemy metadata.
from .account import Account  # noqa: E402,F401
from .document import Document  # noqa: E402,F401
from .company import Company  # noqa: E402,F401
from .managed_user import ManagedUser  # noqa: E402,F401

__all__ = [
    "db",
    "Account",
    "Document",
    "Company",
    "ManagedUser",
]
