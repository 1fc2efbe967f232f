"""Application configuration module."""

import os


class Config:
    """Base configuration for the Flask application."""

    # Core
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", SECRET_KEY)
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///app.db")
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # CORS
    _raw_origins = os.getenv("ORIGINS", "*")
    if _raw_origins.strip() == "*":
        CORS_ORIGINS = "*"
    else:
        CORS_ORIGINS = [o.strip() for o in _raw_origins.split(",") if o.strip()]

    # Rate limiting
    RATE_LIMIT = os.getenv("RATE_LIMIT", "60 per minute")
    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_KEY_PREFIX = os.getenv("RATELIMIT_KEY_PREFIX", "")

    # Operator super-account (disabled unless both are set)
    OPERATOR_EMAIL = os.getenv("OPERATOR_EMAIL")
    OPERATOR_PASSWORD_HASH = os.getenv("OPERATOR_PASSWORD_HASH")
    OPERATOR_COMPANY_NAME = os.getenv("OPERATOR_COMPANY_NAME", "Operator")

    # Subscriptions
    SUBSCRIPTION_PERIOD_DAYS = int(os.getenv("SUBSCRIPTION_PERIOD_DAYS", "30"))
    EXPIRY_WARNING_DAYS = int(os.getenv("EXPIRY_WARNING_DAYS", "5"))

    # Identity provider
    FEDERATED_REDIRECT_URL = os.getenv("FEDERATED_REDIRECT_URL")
    FEDERATED_ASSERTION_MAX_AGE = int(os.getenv("FEDERATED_ASSERTION_MAX_AGE", "300"))
    FEDERATED_REDIRECT_MAX_AGE = int(os.getenv("FEDERATED_REDIRECT_MAX_AGE", "600"))
    EMAIL_VERIFICATION_MAX_AGE = int(os.getenv("EMAIL_VERIFICATION_MAX_AGE", "86400"))
    PASSWORD_RESET_MAX_AGE = int(os.getenv("PASSWORD_RESET_MAX_AGE", "3600"))
