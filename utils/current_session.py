"""Per-request session service and token helpers for the blueprints."""

from __future__ import annotations

from functools import wraps

from flask import current_app, g
from flask_jwt_extended import (
    create_access_token,
    get_jwt,
    get_jwt_identity,
    verify_jwt_in_request,
)
from werkzeug.exceptions import Forbidden, Unauthorized

from identity.local_provider import LocalIdentityProvider
from services.session import OperatorCredentials, Session, SessionService


def get_session_service() -> SessionService:
    """Return the request's session service, building it on first use."""

    service = g.get("session_service")
    if service is None:
        app = current_app._get_current_object()
        service = SessionService(
            app.extensions["document_store"],
            LocalIdentityProvider.from_app(app),
            operator=OperatorCredentials.from_config(app.config),
            subscription_days=app.config.get("SUBSCRIPTION_PERIOD_DAYS", 30),
            warning_days=app.config.get("EXPIRY_WARNING_DAYS", 5),
        )
        g.session_service = service
    return service


def close_session_service(exc: BaseException | None = None) -> None:
    service = g.pop("session_service", None)
    if service is not None:
        service.close()


def issue_access_token(session: Session) -> str:
    return create_access_token(
        identity=session.subject,
        additional_claims={"kind": session.kind, "company_id": session.company_id},
    )


def session_payload(session: Session) -> dict:
    """Serialize a session, consuming its one-shot expiry notice."""

    payload = session.to_dict()
    payload["expired_on"] = session.pop_expiry_notice()
    return payload


def load_session() -> Session:
    """Restore the session for the request's access token or raise 401."""

    verify_jwt_in_request()
    claims = get_jwt()
    session = get_session_service().restore(claims.get("kind", ""), get_jwt_identity())
    if session is None:
        raise Unauthorized("Session is no longer valid.")
    return session


def session_required(permission: str | None = None):
    """Require a valid session, and optionally one holding ``permission``."""

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            session = load_session()
            if permission and not session.has_permission(permission):
                raise Forbidden(f"The {permission} permission is required.")
            g.current_session = session
            return view(*args, **kwargs)

        return wrapper

    return decorator


def current_session() -> Session:
    return g.current_session
