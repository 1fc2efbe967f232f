"""Session ownership and the two authentication paths.

A :class:`SessionService` owns at most one :class:`Session`. Sessions for
identity-provider accounts are only ever built by :meth:`SessionService.resolve_session`,
which the service registers as the provider's state-change listener.
Operator and managed-user sessions are built directly by their matchers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union

from werkzeug.security import check_password_hash

from errors import (
    AccountBlocked,
    DocumentNotFound,
    InvalidCredentials,
    PersistenceError,
    PopupBlocked,
    ProviderError,
)
from identity.base import Identity, IdentityProvider
from models.company import COMPANIES, Company
from models.managed_user import MANAGED_USERS, PERMISSION_NAMES, ManagedUser
from services.subscription import (
    DEFAULT_PERIOD_DAYS,
    DEFAULT_WARNING_DAYS,
    SubscriptionStatus,
    compute_subscription_status,
    downgrade_fields,
    new_company_fields,
    upgrade_fields,
)
from storage.abstract_store import DocumentStore
from utils.dates import to_iso, utcnow
from utils.request_validation import normalize_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrivilegedAccount:
    email: str
    name: str
    kind: str = field(default="privileged", init=False)

    @property
    def subject(self) -> str:
        return self.email


@dataclass(frozen=True)
class ManagedAccount:
    id: str
    email: str
    name: str
    entreprise_id: str
    permissions: Mapping[str, bool]
    kind: str = field(default="managed", init=False)

    @property
    def subject(self) -> str:
        return self.id


@dataclass(frozen=True)
class ProviderAccount:
    uid: str
    email: str
    name: str
    kind: str = field(default="provider", init=False)

    @property
    def subject(self) -> str:
        return self.uid


SessionAccount = Union[PrivilegedAccount, ManagedAccount, ProviderAccount]


def _is_usable_hash(password_hash: str) -> bool:
    """Return whether werkzeug can check passwords against ``password_hash``."""

    if password_hash.count("$") < 2:
        return False
    try:
        check_password_hash(password_hash, "")
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class OperatorCredentials:
    """The configured super-account that bypasses the document store."""

    email: str
    password_hash: str
    company_name: str = "Operator"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> Optional["OperatorCredentials"]:
        email = normalize_email(config.get("OPERATOR_EMAIL"))
        password_hash = config.get("OPERATOR_PASSWORD_HASH") or ""
        if not email or not password_hash:
            return None
        if not _is_usable_hash(password_hash):
            logger.error("OPERATOR_PASSWORD_HASH is not a werkzeug password hash; operator disabled")
            return None
        return cls(email, password_hash, config.get("OPERATOR_COMPANY_NAME") or "Operator")

    def matches(self, email: str, password: str) -> bool:
        return email == self.email and check_password_hash(self.password_hash, password)


@dataclass(frozen=True)
class ProviderRedirect:
    """Interactive sign-in fell back to a redirect that is still in progress."""

    url: str


@dataclass
class Session:
    account: SessionAccount
    company_id: Optional[str]
    company: Company
    status: SubscriptionStatus
    identity: Optional[Identity] = None
    expiry_notice: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.account.kind

    @property
    def subject(self) -> str:
        return self.account.subject

    @property
    def is_admin(self) -> bool:
        return self.kind != "managed"

    @property
    def is_blocked(self) -> bool:
        return self.kind == "managed" and self.status.should_block_users

    @property
    def permissions(self) -> dict[str, bool]:
        if isinstance(self.account, ManagedAccount):
            return dict(self.account.permissions)
        return {name: True for name in PERMISSION_NAMES}

    def has_permission(self, name: str) -> bool:
        return self.permissions.get(name, False)

    def pop_expiry_notice(self) -> Optional[str]:
        """Return the lapsed expiry date once, then forget it."""

        notice, self.expiry_notice = self.expiry_notice, None
        return notice

    def to_dict(self) -> dict:
        return {
            "id": self.subject,
            "kind": self.kind,
            "name": self.account.name,
            "email": self.account.email,
            "role": "admin" if self.is_admin else "user",
            "is_admin": self.is_admin,
            "entreprise_id": self.company_id,
            "permissions": self.permissions,
            "company": self.company.to_dict(),
            "subscription_status": self.status.to_dict(),
        }


def _display_name(company: Company, identity: Identity) -> str:
    return (
        company.owner_name
        or identity.display_name
        or (identity.email.split("@")[0] if identity.email else "")
        or "User"
    )


class SessionService:
    """Owns the current session and mediates every authentication path."""

    def __init__(
        self,
        store: DocumentStore,
        provider: IdentityProvider,
        *,
        operator: Optional[OperatorCredentials] = None,
        clock: Callable[[], Any] = utcnow,
        subscription_days: int = DEFAULT_PERIOD_DAYS,
        warning_days: int = DEFAULT_WARNING_DAYS,
    ):
        self.store = store
        self.provider = provider
        self.operator = operator
        self.clock = clock
        self.subscription_days = subscription_days
        self.warning_days = warning_days
        self.session: Optional[Session] = None
        self._matchers = (
            self._match_privileged,
            self._match_managed,
            self._match_provider,
        )
        self._unsubscribe = provider.on_state_changed(self.resolve_session)

    def close(self) -> None:
        """Stop listening to the identity provider."""

        self._unsubscribe()

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    def _status(self, company: Company, now=None) -> SubscriptionStatus:
        return compute_subscription_status(company, now or self.clock(), self.warning_days)

    # Provider state changes

    def resolve_session(self, identity: Optional[Identity]) -> Optional[Session]:
        """Build the session for a provider identity, or clear it."""

        if identity is None:
            self.session = None
            return None

        try:
            data = self.store.get(COMPANIES, identity.uid)
        except PersistenceError:
            logger.exception("Could not load company for %s", identity.uid)
            self.session = None
            return None

        if data is None:
            logger.info("No company record for identity %s", identity.uid)
            self.session = None
            return None

        now = self.clock()
        company = Company.from_document(data)
        session = Session(
            account=ProviderAccount(
                uid=identity.uid,
                email=identity.email,
                name=_display_name(company, identity),
            ),
            company_id=identity.uid,
            company=company,
            status=self._status(company, now),
            identity=identity,
        )
        self.session = session
        if session.status.is_expired:
            self._expire(session, now)
        return session

    def _expire(self, session: Session, now) -> None:
        """Downgrade a lapsed company once and keep the lapsed date for display."""

        changes = downgrade_fields(now)
        try:
            self.store.update(COMPANIES, session.company_id, changes)
        except PersistenceError:
            logger.exception("Could not downgrade expired company %s", session.company_id)
            return
        logger.info(
            "Subscription for %s expired on %s; downgraded to free",
            session.company_id,
            session.company.expiry_date,
        )
        session.expiry_notice = session.company.expiry_date
        session.company = session.company.merge(changes)

    def check_subscription_expiry(self) -> Optional[Session]:
        """Reload the company and run the expiry write-back if it lapsed."""

        session = self.session
        if session is None or session.company_id is None:
            return session
        try:
            data = self.store.get(COMPANIES, session.company_id)
        except PersistenceError:
            logger.exception("Could not check expiry for %s", session.company_id)
            return session
        if data is None:
            return session

        now = self.clock()
        session.company = Company.from_document(data)
        session.status = self._status(session.company, now)
        if session.status.is_expired:
            self._expire(session, now)
        return session

    # Email/password authentication

    def authenticate(self, email: str, password: str) -> Optional[Session]:
        """Sign in through the first matching account kind.

        Returns ``None`` for any failure except a lapsed company subscription
        on a managed account, which raises ``AccountBlocked``.
        """

        email = normalize_email(email)
        if not email or not password:
            return None

        try:
            for matcher in self._matchers:
                session = matcher(email, password)
                if session is not None:
                    return session
        except AccountBlocked:
            logger.info("Blocked login for %s: company subscription lapsed", email)
            raise
        except (InvalidCredentials, ProviderError, PersistenceError) as exc:
            logger.warning("Login failed for %s: %s", email, exc)
            return None
        return None

    def _match_privileged(self, email: str, password: str) -> Optional[Session]:
        if self.operator is None or not self.operator.matches(email, password):
            return None
        self.session = self._operator_session()
        return self.session

    def _operator_session(self) -> Session:
        company = Company(
            name=self.operator.company_name,
            email=self.operator.email,
            subscription="pro",
        )
        return Session(
            account=PrivilegedAccount(email=self.operator.email, name=self.operator.company_name),
            company_id=None,
            company=company,
            status=self._status(company),
        )

    def _match_managed(self, email: str, password: str) -> Optional[Session]:
        try:
            candidates = self.store.query(MANAGED_USERS, status="active")
        except PersistenceError:
            logger.exception("Managed user lookup failed for %s", email)
            return None

        # Stored addresses may carry any case; from_document normalizes them.
        managed = next(
            (
                user
                for user in (ManagedUser.from_document(doc.key, doc.data) for doc in candidates)
                if user.email == email and user.check_password(password)
            ),
            None,
        )
        if managed is None:
            return None

        session = self._managed_session(managed)
        self.store.update(MANAGED_USERS, managed.id, {"lastLogin": to_iso(self.clock())})
        self.session = session
        return session

    def _managed_session(self, managed: ManagedUser) -> Session:
        data = self.store.get(COMPANIES, managed.entreprise_id) if managed.entreprise_id else None
        if data is None:
            raise InvalidCredentials(f"Managed user {managed.id} has no company.")

        company = Company.from_document(data)
        status = self._status(company)
        if status.should_block_users or company.subscription != "pro":
            raise AccountBlocked(managed.entreprise_id, company.expiry_date)

        return Session(
            account=ManagedAccount(
                id=managed.id,
                email=managed.email,
                name=managed.name,
                entreprise_id=managed.entreprise_id,
                permissions=managed.permissions,
            ),
            company_id=managed.entreprise_id,
            company=company,
            status=status,
        )

    def _match_provider(self, email: str, password: str) -> Optional[Session]:
        identity = self.provider.sign_in_with_password(email, password)
        # resolve_session has run as the provider's listener by now.
        if self.session is None or self.session.subject != identity.uid:
            logger.warning("Signed in %s but no session could be resolved", identity.uid)
            return None
        return self.session

    # Federated authentication

    def _popup_sign_in(self, assertion: Optional[str]) -> Union[Identity, ProviderRedirect]:
        try:
            return self.provider.sign_in_with_popup(assertion)
        except PopupBlocked:
            logger.info("Sign-in popup blocked; falling back to redirect")
            return ProviderRedirect(self.provider.sign_in_with_redirect())
        except ProviderError:
            logger.exception("Federated sign-in failed")
            raise

    def authenticate_with_provider(
        self, assertion: Optional[str] = None
    ) -> Union[Session, ProviderRedirect, None]:
        """Sign in with a federated account, provisioning a free company on first use."""

        result = self._popup_sign_in(assertion)
        if isinstance(result, ProviderRedirect):
            return result
        return self._provisioned_session(result)

    def complete_provider_redirect(self, state: str, assertion: str) -> Optional[Session]:
        """Finish a redirect sign-in started by :meth:`authenticate_with_provider`."""

        try:
            identity = self.provider.complete_redirect(state, assertion)
        except ProviderError:
            logger.exception("Redirect sign-in could not be completed")
            raise
        return self._provisioned_session(identity)

    def _provisioned_session(self, identity: Identity) -> Optional[Session]:
        if self.store.get(COMPANIES, identity.uid) is None:
            fallback_name = identity.email.split("@")[0] if identity.email else ""
            self.store.set(
                COMPANIES,
                identity.uid,
                {
                    "name": identity.display_name or fallback_name or "My Company",
                    "ice": "",
                    "if": "",
                    "rc": "",
                    "cnss": "",
                    "address": "",
                    "phone": "",
                    "email": identity.email,
                    "patente": "",
                    "website": "",
                    "logo": identity.photo_url or "",
                    "ownerEmail": identity.email,
                    "ownerName": identity.display_name or fallback_name or "User",
                    "emailVerified": identity.email_verified,
                    **new_company_fields(self.clock()),
                },
            )
            logger.info("Provisioned free company for %s", identity.uid)
        return self.resolve_session(identity)

    # Registration and account emails

    def register(
        self, email: str, password: str, company_fields: Mapping[str, Any]
    ) -> Optional[Session]:
        """Create a provider account and its free-tier company."""

        email = normalize_email(email)
        try:
            identity = self.provider.create_account(email, password)
            self.provider.send_email_verification(identity)
            self.store.set(
                COMPANIES,
                identity.uid,
                {
                    **company_fields,
                    "ownerEmail": email,
                    "ownerName": email.split("@")[0],
                    "emailVerified": False,
                    **new_company_fields(self.clock()),
                },
            )
        except (ProviderError, PersistenceError):
            logger.exception("Registration failed for %s", email)
            raise
        return self.resolve_session(identity)

    def register_with_provider(
        self, company_fields: Mapping[str, Any], assertion: Optional[str] = None
    ) -> Union[Session, ProviderRedirect, None]:
        """Create a company for a federated account, replacing any existing record."""

        result = self._popup_sign_in(assertion)
        if isinstance(result, ProviderRedirect):
            return result

        identity = result
        try:
            self.store.set(
                COMPANIES,
                identity.uid,
                {
                    **company_fields,
                    "ownerEmail": identity.email,
                    "ownerName": identity.display_name or identity.email.split("@")[0] or "User",
                    "emailVerified": identity.email_verified,
                    **new_company_fields(self.clock()),
                },
            )
        except PersistenceError:
            logger.exception("Federated registration failed for %s", identity.uid)
            raise
        return self.resolve_session(identity)

    def send_email_verification(self) -> None:
        identity = self.session.identity if self.session is not None else None
        if identity is None:
            raise ProviderError("No signed-in user.", code="auth/no-current-user")
        try:
            self.provider.send_email_verification(identity)
        except ProviderError:
            logger.exception("Could not send verification email to %s", identity.email)
            raise

    def confirm_email_verification(self, token: str) -> Identity:
        try:
            identity = self.provider.confirm_email_verification(token)
        except ProviderError:
            logger.exception("Email verification failed")
            raise
        try:
            if self.store.get(COMPANIES, identity.uid) is not None:
                self.store.update(COMPANIES, identity.uid, {"emailVerified": True})
        except PersistenceError:
            logger.exception("Could not flag %s as verified", identity.uid)
            raise
        return identity

    def send_password_reset(self, email: str) -> None:
        try:
            self.provider.send_password_reset_email(normalize_email(email))
        except ProviderError:
            logger.exception("Could not send password reset to %s", email)
            raise

    def confirm_password_reset(self, token: str, new_password: str) -> None:
        try:
            self.provider.confirm_password_reset(token, new_password)
        except ProviderError:
            logger.exception("Password reset failed")
            raise

    def logout(self) -> None:
        session = self.session
        try:
            if session is not None and session.kind == "provider":
                self.provider.sign_out()
        except ProviderError:
            logger.exception("Provider sign-out failed")
        self.session = None

    # Company updates

    def _require_company(self) -> Session:
        session = self.session
        if session is None or session.company_id is None:
            raise DocumentNotFound(COMPANIES, None)
        return session

    def upgrade(self) -> Session:
        """Start a new paid period of ``subscription_days`` from now."""

        session = self._require_company()
        now = self.clock()
        changes = upgrade_fields(now, self.subscription_days)
        try:
            self.store.update(COMPANIES, session.company_id, changes)
        except PersistenceError:
            logger.exception("Upgrade failed for %s", session.company_id)
            raise
        session.company = session.company.merge(changes)
        session.status = self._status(session.company, now)
        return session

    def update_settings(self, changes: Mapping[str, Any]) -> Session:
        """Shallow-merge ``changes`` into the stored company and the projection."""

        session = self._require_company()
        now = self.clock()
        try:
            self.store.update(
                COMPANIES, session.company_id, {**changes, "updatedAt": to_iso(now)}
            )
        except PersistenceError:
            logger.exception("Settings update failed for %s", session.company_id)
            raise
        session.company = session.company.merge(changes)
        session.status = self._status(session.company, now)
        return session

    # Token restoration

    def restore(self, kind: str, subject: str) -> Optional[Session]:
        """Rebuild the session an access token was issued for.

        Managed sessions whose company has lapsed raise ``AccountBlocked``.
        """

        if kind == "privileged":
            if self.operator is None or subject != self.operator.email:
                return None
            self.session = self._operator_session()
            return self.session

        if kind == "managed":
            data = self.store.get(MANAGED_USERS, subject)
            if data is None:
                return None
            managed = ManagedUser.from_document(subject, data)
            if not managed.is_active:
                return None
            try:
                self.session = self._managed_session(managed)
            except InvalidCredentials:
                return None
            return self.session

        if kind == "provider":
            identity = self.provider.restore(subject)
            if identity is None:
                return None
            return self.session

        return None
