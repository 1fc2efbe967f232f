"""Utilities for validating incoming Flask requests."""

from __future__ import annotations

from typing import Iterable

from flask import Request
from werkzeug.exceptions import BadRequest


def normalize_email(raw_email: str | None) -> str:
    """Normalize an email string by stripping whitespace and lowering case."""

    return (raw_email or "").strip().lower()


def parse_json_request(
    req: Request,
    *,
    required_keys: Iterable[str] | None = None,
    allowed_keys: Iterable[str] | None = None,
    allow_empty: bool = False,
) -> dict:
    """Return the parsed JSON body or raise a 400 error."""

    if not req.is_json:
        raise BadRequest("Request content type must be application/json.")

    data = req.get_json(silent=True)
    if data is None:
        raise BadRequest("Request JSON body is required.")

    if not isinstance(data, dict):
        raise BadRequest("Request JSON payload must be an object.")

    if not data and not allow_empty:
        raise BadRequest("Request JSON body must not be empty.")

    if required_keys:
        missing = [key for key in required_keys if not data.get(key)]
        if missing:
            raise BadRequest(f"Missing required fields: {', '.join(sorted(missing))}.")

    if allowed_keys is not None:
        unknown = set(data) - set(allowed_keys)
        if unknown:
            raise BadRequest(f"Unknown fields: {', '.join(sorted(unknown))}.")

    return data


def optional_object(data: dict, key: str) -> dict:
    """Return ``data[key]`` when it is an object, ``{}`` when absent."""

    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise BadRequest(f"{key} must be an object.")
    return value
