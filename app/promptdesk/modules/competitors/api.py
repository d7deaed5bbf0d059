from __future__ import annotations

from flask import Blueprint, jsonify

from app.promptdesk.api import (
    current_user,
    flag_result_response,
    json_payload,
    validation_error,
    wants_primary,
)
from app.promptdesk.db import db_session
from app.promptdesk.modules.competitors.service import (
    create_competitor,
    delete_competitor,
    get_competitor,
    list_competitors,
    serialize_competitor,
    update_competitor,
    validate_competitor_payload,
)
from app.promptdesk.modules.primary_flag.results import FlagResult
from app.promptdesk.rbac import require_api_permission

bp = Blueprint("competitors", __name__)


@bp.get("/competitor")
@require_api_permission("competitors.manage")
def competitors_list():
    s = db_session()
    u = current_user()
    return jsonify([serialize_competitor(c) for c in list_competitors(s, u.owner_id)])


@bp.get("/competitor/<int:competitor_id>")
@require_api_permission("competitors.manage")
def competitor_detail(competitor_id: int):
    s = db_session()
    u = current_user()
    competitor, error = get_competitor(s, u.owner_id, competitor_id)
    if error is not None:
        return flag_result_response(FlagResult.failure(error, competitor_id))
    return jsonify(serialize_competitor(competitor))


@bp.post("/competitor")
@require_api_permission("competitors.manage")
def competitor_create():
    s = db_session()
    u = current_user()
    payload = json_payload()

    errors = validate_competitor_payload(payload)
    if errors:
        return validation_error(errors)

    result = create_competitor(s, u.owner_id, payload, wants_primary(payload), u)
    return flag_result_response(result)


@bp.put("/competitor/<int:competitor_id>")
@require_api_permission("competitors.manage")
def competitor_update(competitor_id: int):
    s = db_session()
    u = current_user()
    payload = json_payload()

    errors = validate_competitor_payload(payload)
    if errors:
        return validation_error(errors)

    result = update_competitor(s, u.owner_id, competitor_id, payload, wants_primary(payload), u)
    return flag_result_response(result)


@bp.delete("/competitor/<int:competitor_id>")
@require_api_permission("competitors.manage")
def competitor_delete(competitor_id: int):
    s = db_session()
    u = current_user()
    result = delete_competitor(s, u.owner_id, competitor_id, u)
    if result.ok:
        return jsonify({"id": competitor_id, "deleted": True})
    return flag_result_response(result)
