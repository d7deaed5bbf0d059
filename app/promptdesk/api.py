"""
Shared helpers for the JSON blueprints: request context in, status codes out.
"""
from __future__ import annotations

from typing import Any

from flask import g, jsonify, request

from app.promptdesk.models import User
from app.promptdesk.modules.primary_flag.results import FlagError, FlagResult
from app.promptdesk.utils import parse_bool

FLAG_ERROR_STATUS = {
    FlagError.OWNERSHIP_VIOLATION: (403, "You do not own this record."),
    FlagError.NOT_FOUND: (404, "Record not found."),
    FlagError.CONFLICT: (409, "The record was changed concurrently; reload and retry."),
}


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def optional_user() -> User | None:
    return getattr(g, "current_user", None)


def json_payload() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def wants_primary(payload: dict[str, Any]) -> bool:
    """The flag arrives as `is_primary` (snake case) or `isPrimary` (JS clients)."""
    if "is_primary" in payload:
        return parse_bool(payload.get("is_primary"))
    return parse_bool(payload.get("isPrimary"))


def validation_error(errors: list[str]):
    return jsonify({"errors": errors}), 400


def flag_result_response(result: FlagResult, **extra: Any):
    if result.error is not None:
        status, message = FLAG_ERROR_STATUS[result.error]
        return jsonify({"error": result.error.value, "message": message, "id": result.entity_id}), status
    body = {"id": result.entity_id, "is_primary": result.is_primary}
    body.update(extra)
    return jsonify(body)
