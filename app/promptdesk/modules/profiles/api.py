from __future__ import annotations

from flask import Blueprint, jsonify

from app.promptdesk.api import current_user, json_payload, validation_error
from app.promptdesk.db import db_session
from app.promptdesk.modules.profiles.service import (
    get_profile,
    serialize_profile,
    update_profile,
    validate_profile_payload,
)
from app.promptdesk.rbac import require_api_permission

bp = Blueprint("profiles", __name__)


@bp.get("/profile")
@require_api_permission()
def profile_get():
    s = db_session()
    u = current_user()
    return jsonify(serialize_profile(u, get_profile(s, u)))


@bp.put("/profile")
@require_api_permission()
def profile_update():
    s = db_session()
    u = current_user()
    payload = json_payload()

    errors = validate_profile_payload(payload)
    if errors:
        return validation_error(errors)

    update_profile(s, u, payload)
    s.commit()
    return jsonify({"success": True})
