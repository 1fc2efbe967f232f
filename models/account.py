"""Accounts owned by the local identity provider."""

from datetime import datetime
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from . import db


class Account(db.Model):
    """A sign-in identity: email/password, federated, or both."""

    __tablename__ = "accounts"

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(64), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=True)
    display_name = db.Column(db.String(255), nullable=True)
    photo_url = db.Column(db.String(1024), nullable=True)
    email_verified = db.Column(
        db.Boolean,
        nullable=False,
        default=False,
        server_default=db.text("false"),
    )
    federated_subject = db.Column(db.String(255), unique=True, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def set_password(self, password: str) -> None:
        """Hash and store the password."""

        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Verify a password against the stored hash.

        Federated-only accounts have no hash and never match.
        """

        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def mark_email_verified(self, verified: Optional[bool] = True) -> None:
        self.email_verified = bool(verified)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<Account {self.email}>"
