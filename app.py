"""Application factory."""

import json
import os
import uuid

from flask import Flask, current_app, jsonify, g, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from config import Config
from errors import AccountBlocked, PersistenceError
from models import db
from routes.auth import REVOKED_TOKENS, auth_bp
from routes.company import company_bp
from routes.reports import reports_bp
from storage.sql_store import SqlDocumentStore
from utils.current_session import close_session_service

migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)


def create_app(config_class: type[Config] = Config) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Core subsystems
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    app.extensions["document_store"] = SqlDocumentStore(db)
    app.extensions.setdefault("mail_sender", None)
    app.teardown_appcontext(close_session_service)

    @jwt.token_in_blocklist_loader
    def _token_revoked(jwt_header, jwt_payload) -> bool:
        store = current_app.extensions["document_store"]
        return store.get(REVOKED_TOKENS, jwt_payload["jti"]) is not None

    # CORS
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        supports_credentials=True,
    )

    # Rate limiting
    storage_uri = app.config.get("RATELIMIT_STORAGE_URI", "memory://")
    headers_enabled = app.config.get("RATELIMIT_HEADERS_ENABLED", True)
    key_prefix = app.config.get("RATELIMIT_KEY_PREFIX") or str(uuid.uuid4())

    global limiter
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[lambda: app.config.get("RATE_LIMIT", "60 per minute")],
        storage_uri=storage_uri,
        headers_enabled=headers_enabled,
        key_prefix=key_prefix,
    )
    limiter.init_app(app)
    app.config["RATELIMIT_KEY_PREFIX"] = key_prefix

    # Blueprints
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(company_bp, url_prefix="/company")
    app.register_blueprint(reports_bp, url_prefix="/reports")

    # Health
    @app.route("/health", methods=["GET"])
    def health_check():
        return jsonify({"status": "ok"})

    # Errors
    _register_error_handlers(app)

    return app


def _register_error_handlers(app: Flask) -> None:
    """Register JSON error handlers with request IDs."""

    @app.before_request
    def _assign_request_id():  # pragma: no cover
        g.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    @app.after_request
    def _add_request_id_header(response):  # pragma: no cover
        request_id = g.get("request_id")
        if request_id:
            response.headers.setdefault("X-Request-ID", request_id)
        return response

    @app.errorhandler(AccountBlocked)
    def _handle_account_blocked(error: AccountBlocked):
        request_id = g.get("request_id") or str(uuid.uuid4())
        app.logger.info("Rejected managed user of lapsed company %s", error.company_id)
        response = jsonify(
            {
                "error": "Account Blocked",
                "code": error.code,
                "detail": str(error),
                "expiry_date": error.expiry_date,
                "request_id": request_id,
            }
        )
        response.status_code = 403
        response.headers.setdefault("X-Request-ID", request_id)
        return response

    @app.errorhandler(PersistenceError)
    def _handle_persistence_error(error: PersistenceError):
        request_id = g.get("request_id") or str(uuid.uuid4())
        app.logger.error("Document store failure: %s", error)
        response = jsonify(
            {
                "error": "Bad Gateway",
                "detail": "The record store is unavailable. Please try again.",
                "request_id": request_id,
            }
        )
        response.status_code = 502
        response.headers.setdefault("X-Request-ID", request_id)
        return response

    @app.errorhandler(HTTPException)
    def _handle_http_exception(error: HTTPException):
        request_id = g.get("request_id") or str(uuid.uuid4())
        response = error.get_response()
        payload = {
            "error": getattr(error, "name", "Error"),
            "detail": error.description,
            "request_id": request_id,
        }
        response.data = json.dumps(payload)
        response.content_type = "application/json"
        response.headers.setdefault("X-Request-ID", request_id)
        return response

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):  # pragma: no cover
        request_id = g.get("request_id") or str(uuid.uuid4())
        app.logger.exception("Unhandled application error", exc_info=error)
        payload = {
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred.",
            "request_id": request_id,
        }
        response = jsonify(payload)
        response.status_code = 500
        response.headers.setdefault("X-Request-ID", request_id)
        return response


if __name__ == "__main__":
    application = create_app()
    application.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
