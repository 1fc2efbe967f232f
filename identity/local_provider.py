"""Identity provider backed by the ``accounts`` table."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlencode

from flask import Flask
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from errors import InvalidCredentials, PopupBlocked, ProviderError
from models import db
from models.account import Account

from .base import Identity, IdentityProvider

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

FEDERATED_SALT = "federated-sign-in"
REDIRECT_SALT = "federated-redirect"
VERIFY_SALT = "email-verification"
RESET_SALT = "password-reset"

MailSender = Callable[[str, str, str], object]


def _to_identity(account: Account) -> Identity:
    return Identity(
        uid=account.uid,
        email=account.email,
        display_name=account.display_name,
        photo_url=account.photo_url,
        email_verified=bool(account.email_verified),
    )


def _find_by_email(email: str) -> Account | None:
    return Account.query.filter(func.lower(Account.email) == email.strip().lower()).first()


class LocalIdentityProvider(IdentityProvider):
    """Email/password and signed federated sign-in against local accounts.

    Tokens for federated assertions, verification and password reset are
    signed with ``itsdangerous`` using the application's secret key.
    """

    def __init__(
        self,
        secret_key: str,
        *,
        redirect_url: Optional[str] = None,
        mail_sender: Optional[MailSender] = None,
        assertion_max_age: int = 300,
        verification_max_age: int = 86400,
        reset_max_age: int = 3600,
        redirect_max_age: int = 600,
    ):
        super().__init__()
        self.secret_key = secret_key
        self.redirect_url = redirect_url
        self.mail_sender = mail_sender
        self.assertion_max_age = assertion_max_age
        self.verification_max_age = verification_max_age
        self.reset_max_age = reset_max_age
        self.redirect_max_age = redirect_max_age

    @classmethod
    def from_app(cls, app: Flask) -> "LocalIdentityProvider":
        config = app.config
        return cls(
            config["SECRET_KEY"],
            redirect_url=config.get("FEDERATED_REDIRECT_URL"),
            mail_sender=app.extensions.get("mail_sender"),
            assertion_max_age=int(config.get("FEDERATED_ASSERTION_MAX_AGE", 300)),
            verification_max_age=int(config.get("EMAIL_VERIFICATION_MAX_AGE", 86400)),
            reset_max_age=int(config.get("PASSWORD_RESET_MAX_AGE", 3600)),
            redirect_max_age=int(config.get("FEDERATED_REDIRECT_MAX_AGE", 600)),
        )

    def _serializer(self, salt: str) -> URLSafeTimedSerializer:
        return URLSafeTimedSerializer(self.secret_key, salt=salt)

    def sign_assertion(self, profile: Mapping[str, Any]) -> str:
        """Sign a federated profile as the provider returns it to the popup and redirect flows."""

        return self._serializer(FEDERATED_SALT).dumps(dict(profile))

    def _load_token(self, salt: str, token: str, max_age: int) -> dict:
        try:
            return self._serializer(salt).loads(token, max_age=max_age)
        except SignatureExpired as exc:
            raise ProviderError("The link has expired.", code="auth/expired-action-code") from exc
        except BadSignature as exc:
            raise ProviderError("The link is invalid.", code="auth/invalid-action-code") from exc

    def _commit(self) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to persist identity account")
            raise ProviderError("Account storage failed.") from exc

    def _deliver(self, kind: str, email: str, token: str) -> None:
        logger.info("Sending %s message to %s", kind, email)
        if self.mail_sender is not None:
            self.mail_sender(kind, email, token)

    def sign_in_with_password(self, email: str, password: str) -> Identity:
        account = _find_by_email(email)
        if account is None or not account.check_password(password):
            raise InvalidCredentials("Invalid email or password.")
        identity = _to_identity(account)
        self._set_current(identity)
        return identity

    def sign_in_with_popup(self, assertion: str | None = None) -> Identity:
        if not assertion:
            raise PopupBlocked()
        return self._sign_in_federated(assertion)

    def _sign_in_federated(self, assertion: str) -> Identity:
        try:
            profile = self._serializer(FEDERATED_SALT).loads(
                assertion, max_age=self.assertion_max_age
            )
        except BadSignature as exc:
            raise ProviderError(
                "The federated assertion is invalid.", code="auth/invalid-credential"
            ) from exc

        subject = str(profile.get("sub") or "")
        email = (profile.get("email") or "").strip().lower()
        if not subject or not email:
            raise ProviderError(
                "The federated assertion is incomplete.", code="auth/invalid-credential"
            )

        account = Account.query.filter_by(federated_subject=subject).first()
        if account is None:
            account = _find_by_email(email)
            if account is not None and account.federated_subject:
                raise ProviderError(
                    "The email is linked to another federated account.",
                    code="auth/account-exists-with-different-credential",
                )
        if account is None:
            account = Account(uid=uuid.uuid4().hex, email=email)
            db.session.add(account)

        account.federated_subject = subject
        account.display_name = profile.get("name") or account.display_name
        account.photo_url = profile.get("picture") or account.photo_url
        if profile.get("email_verified"):
            account.mark_email_verified()
        self._commit()

        identity = _to_identity(account)
        self._set_current(identity)
        return identity

    def sign_in_with_redirect(self) -> str:
        if not self.redirect_url:
            raise ProviderError(
                "Redirect sign-in is not configured.", code="auth/operation-not-allowed"
            )
        state = self._serializer(REDIRECT_SALT).dumps({"nonce": uuid.uuid4().hex})
        separator = "&" if "?" in self.redirect_url else "?"
        return f"{self.redirect_url}{separator}{urlencode({'state': state})}"

    def complete_redirect(self, state: str, assertion: str) -> Identity:
        self._load_token(REDIRECT_SALT, state, self.redirect_max_age)
        if not assertion:
            raise ProviderError(
                "The federated assertion is missing.", code="auth/invalid-credential"
            )
        return self._sign_in_federated(assertion)

    def create_account(self, email: str, password: str) -> Identity:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ProviderError("The email address is invalid.", code="auth/invalid-email")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ProviderError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
                code="auth/weak-password",
            )
        if _find_by_email(email) is not None:
            raise ProviderError(
                "A user with that email already exists.", code="auth/email-already-in-use"
            )

        account = Account(uid=uuid.uuid4().hex, email=email)
        account.set_password(password)
        db.session.add(account)
        self._commit()

        identity = _to_identity(account)
        self._set_current(identity)
        return identity

    def send_email_verification(self, identity: Identity) -> None:
        token = self._serializer(VERIFY_SALT).dumps({"uid": identity.uid, "email": identity.email})
        self._deliver("verify_email", identity.email, token)

    def confirm_email_verification(self, token: str) -> Identity:
        payload = self._load_token(VERIFY_SALT, token, self.verification_max_age)
        account = Account.query.filter_by(uid=payload.get("uid")).first()
        if account is None or account.email != payload.get("email"):
            raise ProviderError("No matching account.", code="auth/user-not-found")
        account.mark_email_verified()
        self._commit()
        return _to_identity(account)

    def send_password_reset_email(self, email: str) -> None:
        account = _find_by_email(email or "")
        if account is None:
            raise ProviderError("No account for that email.", code="auth/user-not-found")
        # Binding the current hash makes the token single-use.
        token = self._serializer(RESET_SALT).dumps(
            {"uid": account.uid, "fingerprint": (account.password_hash or "")[-12:]}
        )
        self._deliver("password_reset", account.email, token)

    def confirm_password_reset(self, token: str, new_password: str) -> None:
        payload = self._load_token(RESET_SALT, token, self.reset_max_age)
        account = Account.query.filter_by(uid=payload.get("uid")).first()
        if account is None:
            raise ProviderError("No matching account.", code="auth/user-not-found")
        if (account.password_hash or "")[-12:] != payload.get("fingerprint"):
            raise ProviderError("The link has already been used.", code="auth/invalid-action-code")
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ProviderError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
                code="auth/weak-password",
            )
        account.set_password(new_password)
        self._commit()

    def restore(self, uid: str) -> Identity | None:
        account = Account.query.filter_by(uid=uid).first()
        identity = _to_identity(account) if account is not None else None
        self._set_current(identity)
        return identity
