"""Company settings and subscription lifecycle endpoints."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import Forbidden

from models.company import SETTINGS_FIELDS
from utils.current_session import (
    current_session,
    get_session_service,
    session_payload,
    session_required,
)
from utils.request_validation import parse_json_request

company_bp = Blueprint("company", __name__)


def _require_company_session():
    session = current_session()
    if session.company_id is None:
        raise Forbidden("This account is not attached to a company.")
    return session


@company_bp.route("", methods=["GET"])
@session_required()
def get_company():
    """Return the company and its subscription status."""

    session = current_session()
    return jsonify(
        {
            "company": session.company.to_dict(),
            "subscription_status": session.status.to_dict(),
        }
    )


@company_bp.route("/settings", methods=["PATCH"])
@session_required("settings")
def update_settings():
    """Merge company fields; subscription fields are not editable here."""

    _require_company_session()
    changes = parse_json_request(request, allowed_keys=SETTINGS_FIELDS)
    session = get_session_service().update_settings(changes)
    return jsonify({"session": session_payload(session)}), HTTPStatus.OK


@company_bp.route("/subscription/upgrade", methods=["POST"])
@session_required()
def upgrade_subscription():
    """Start a new paid period. Company owners only."""

    session = _require_company_session()
    if session.kind != "provider":
        raise Forbidden("Only the company owner can change the subscription.")
    session = get_session_service().upgrade()
    return jsonify({"session": session_payload(session)}), HTTPStatus.OK


@company_bp.route("/subscription/check", methods=["POST"])
@session_required()
def check_subscription():
    """Re-run the expiry check against the stored company."""

    _require_company_session()
    session = get_session_service().check_subscription_expiry()
    return jsonify({"session": session_payload(session)}), HTTPStatus.OK
