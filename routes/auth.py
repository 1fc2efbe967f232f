"""Authentication blueprint: sign-in paths, registration and account emails."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt
from werkzeug.exceptions import BadGateway, BadRequest, Conflict, Unauthorized

from errors import ProviderError
from models.company import SETTINGS_FIELDS
from services.session import ProviderRedirect
from utils.current_session import (
    current_session,
    get_session_service,
    issue_access_token,
    session_payload,
    session_required,
)
from utils.dates import to_iso, utcnow
from utils.request_validation import normalize_email, optional_object, parse_json_request

REVOKED_TOKENS = "revokedTokens"

CLIENT_ERROR_CODES = {
    "auth/weak-password",
    "auth/invalid-email",
    "auth/invalid-credential",
    "auth/invalid-action-code",
    "auth/expired-action-code",
    "auth/account-exists-with-different-credential",
}

auth_bp = Blueprint("auth", __name__)


def _http_error(error: ProviderError) -> Exception:
    """Translate a provider error code into the matching HTTP error."""
    if error.code == "auth/email-already-in-use":
        return Conflict(str(error))
    if error.code in CLIENT_ERROR_CODES:
        return BadRequest(str(error))
    if error.code == "auth/no-current-user":
        return Unauthorized(str(error))
    return BadGateway("The identity provider is unavailable.")


def _company_fields(payload: dict) -> dict:
    company = optional_object(payload, "company")
    unknown = set(company) - SETTINGS_FIELDS
    if unknown:
        raise BadRequest(f"Unknown company fields: {', '.join(sorted(unknown))}.")
    return company


def _signed_in(session, status=HTTPStatus.OK) -> tuple:
    return (
        jsonify({"access_token": issue_access_token(session), "session": session_payload(session)}),
        status,
    )


def _redirect(result: ProviderRedirect) -> tuple:
    return jsonify({"status": "redirect", "redirect_url": result.url}), HTTPStatus.ACCEPTED


@auth_bp.route("/register", methods=["POST"])
def register() -> tuple:
    """Create an owner account with a free-tier company."""
    payload = parse_json_request(request)
    email = normalize_email(payload.get("email"))
    password = payload.get("password") or ""
    if not email or not password:
        raise BadRequest("Email and password are required.")
    company = _company_fields(payload)

    try:
        session = get_session_service().register(email, password, company)
    except ProviderError as exc:
        raise _http_error(exc) from exc
    if session is None:
        raise BadGateway("The account was created but could not be loaded.")
    return _signed_in(session, HTTPStatus.CREATED)


@auth_bp.route("/login", methods=["POST"])
def login() -> tuple:
    """Authenticate with email and password and return a JWT access token."""
    payload = parse_json_request(request)
    email = normalize_email(payload.get("email"))
    password = payload.get("password") or ""

    if not email or not password:
        raise BadRequest("Email and password are required.")

    # AccountBlocked propagates to the app-level 403 handler.
    session = get_session_service().authenticate(email, password)
    if session is None:
        raise Unauthorized("Invalid email or password.")
    return _signed_in(session)


@auth_bp.route("/provider", methods=["POST"])
def provider_login() -> tuple:
    """Sign in with a federated account, or start the redirect flow."""
    payload = parse_json_request(request, allow_empty=True)
    try:
        result = get_session_service().authenticate_with_provider(payload.get("assertion"))
    except ProviderError as exc:
        raise _http_error(exc) from exc
    if isinstance(result, ProviderRedirect):
        return _redirect(result)
    if result is None:
        raise BadGateway("The account could not be loaded.")
    return _signed_in(result)


@auth_bp.route("/provider/callback", methods=["POST"])
def provider_callback() -> tuple:
    """Finish a redirect sign-in with the returned ``state`` and assertion."""
    payload = parse_json_request(request, required_keys=["state", "assertion"])
    try:
        session = get_session_service().complete_provider_redirect(
            payload["state"], payload["assertion"]
        )
    except ProviderError as exc:
        raise _http_error(exc) from exc
    if session is None:
        raise BadGateway("The account could not be loaded.")
    return _signed_in(session)


@auth_bp.route("/provider/register", methods=["POST"])
def provider_register() -> tuple:
    """Create a company for a federated account."""
    payload = parse_json_request(request, allow_empty=True)
    company = _company_fields(payload)
    try:
        result = get_session_service().register_with_provider(company, payload.get("assertion"))
    except ProviderError as exc:
        raise _http_error(exc) from exc
    if isinstance(result, ProviderRedirect):
        return _redirect(result)
    if result is None:
        raise BadGateway("The account could not be loaded.")
    return _signed_in(result, HTTPStatus.CREATED)


@auth_bp.route("/verify-email", methods=["POST"])
@session_required()
def send_verification() -> tuple:
    try:
        get_session_service().send_email_verification()
    except ProviderError as exc:
        raise _http_error(exc) from exc
    return jsonify({"message": "Verification email sent."}), HTTPStatus.ACCEPTED


@auth_bp.route("/verify-email/confirm", methods=["POST"])
def confirm_verification() -> tuple:
    payload = parse_json_request(request, required_keys=["token"])
    try:
        identity = get_session_service().confirm_email_verification(payload["token"])
    except ProviderError as exc:
        raise _http_error(exc) from exc
    return jsonify({"message": "Email verified.", "email": identity.email}), HTTPStatus.OK


@auth_bp.route("/password-reset", methods=["POST"])
def request_password_reset() -> tuple:
    payload = parse_json_request(request, required_keys=["email"])
    try:
        get_session_service().send_password_reset(payload["email"])
    except ProviderError as exc:
        # Unknown addresses get the same answer as known ones.
        if exc.code != "auth/user-not-found":
            raise _http_error(exc) from exc
    return (
        jsonify({"message": "If the account exists, a reset email has been sent."}),
        HTTPStatus.ACCEPTED,
    )


@auth_bp.route("/password-reset/confirm", methods=["POST"])
def confirm_password_reset() -> tuple:
    payload = parse_json_request(request, required_keys=["token", "password"])
    try:
        get_session_service().confirm_password_reset(payload["token"], payload["password"])
    except ProviderError as exc:
        raise _http_error(exc) from exc
    return jsonify({"message": "Password updated."}), HTTPStatus.OK


@auth_bp.route("/logout", methods=["POST"])
@session_required()
def logout() -> tuple:
    """End the session and revoke the access token."""
    session = current_session()
    claims = get_jwt()
    current_app.extensions["document_store"].set(
        REVOKED_TOKENS,
        claims["jti"],
        {"revokedAt": to_iso(utcnow()), "subject": session.subject},
    )
    get_session_service().logout()
    return jsonify({"message": "Signed out."}), HTTPStatus.OK


@auth_bp.route("/session", methods=["GET"])
@session_required()
def get_current_session() -> tuple:
    return jsonify({"session": session_payload(current_session())}), HTTPStatus.OK
