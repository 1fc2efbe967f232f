"""Financial report endpoints backed by the aggregation service."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from services.reports import (
    INVOICES,
    PERIOD_BUCKETS,
    summarize_cashflow,
    summarize_clients,
    summarize_payment_status,
    summarize_revenue,
)
from utils.current_session import current_session, session_required

reports_bp = Blueprint("reports", __name__)


def _company_id() -> str:
    session = current_session()
    if session.kind == "privileged":
        company_id = request.args.get("company_id")
        if not company_id:
            raise BadRequest("company_id is required for operator reports.")
        return company_id
    return session.company_id


def _invoices() -> list[dict]:
    store = current_app.extensions["document_store"]
    return [doc.data for doc in store.query(INVOICES, entrepriseId=_company_id())]


def _period() -> str:
    period = request.args.get("period", "month")
    if period not in PERIOD_BUCKETS:
        raise BadRequest(f"period must be one of: {', '.join(PERIOD_BUCKETS)}.")
    return period


@reports_bp.route("/overview", methods=["GET"])
@session_required("reports")
def overview():
    period = _period()
    invoices = _invoices()
    return jsonify(
        {
            "period": period,
            "top_clients": [summary.to_dict() for summary in summarize_clients(invoices)],
            "payment_status": summarize_payment_status(invoices),
            "revenue": summarize_revenue(invoices, period),
            "cashflow": summarize_cashflow(invoices, period),
        }
    )


@reports_bp.route("/top-clients", methods=["GET"])
@session_required("reports")
def top_clients():
    summaries = summarize_clients(_invoices())
    return jsonify({"results": [summary.to_dict() for summary in summaries]})


@reports_bp.route("/payment-status", methods=["GET"])
@session_required("reports")
def payment_status():
    return jsonify(summarize_payment_status(_invoices()))


@reports_bp.route("/revenue", methods=["GET"])
@session_required("reports")
def revenue():
    period = _period()
    return jsonify({"period": period, "points": summarize_revenue(_invoices(), period)})


@reports_bp.route("/cashflow", methods=["GET"])
@session_required("reports")
def cashflow():
    period = _period()
    return jsonify({"period": period, "points": summarize_cashflow(_invoices(), period)})
