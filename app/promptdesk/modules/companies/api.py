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
from app.promptdesk.modules.companies.service import (
    create_company,
    delete_company,
    get_company,
    list_companies,
    serialize_company,
    update_company,
    validate_company_payload,
)
from app.promptdesk.modules.primary_flag.results import FlagResult
from app.promptdesk.rbac import require_api_permission

bp = Blueprint("companies", __name__)


@bp.get("/company")
@require_api_permission("companies.manage")
def companies_list():
    s = db_session()
    u = current_user()
    return jsonify([serialize_company(c) for c in list_companies(s, u.owner_id)])


@bp.get("/company/<int:company_id>")
@require_api_permission("companies.manage")
def company_detail(company_id: int):
    s = db_session()
    u = current_user()
    company, error = get_company(s, u.owner_id, company_id)
    if error is not None:
        return flag_result_response(FlagResult.failure(error, company_id))
    return jsonify(serialize_company(company))


@bp.post("/company")
@require_api_permission("companies.manage")
def company_create():
    s = db_session()
    u = current_user()
    payload = json_payload()

    errors = validate_company_payload(payload)
    if errors:
        return validation_error(errors)

    result = create_company(s, u.owner_id, payload, wants_primary(payload), u)
    return flag_result_response(result)


@bp.put("/company/<int:company_id>")
@require_api_permission("companies.manage")
def company_update(company_id: int):
    s = db_session()
    u = current_user()
    payload = json_payload()

    errors = validate_company_payload(payload)
    if errors:
        return validation_error(errors)

    result = update_company(s, u.owner_id, company_id, payload, wants_primary(payload), u)
    return flag_result_response(result)


@bp.delete("/company/<int:company_id>")
@require_api_permission("companies.manage")
def company_delete(company_id: int):
    s = db_session()
    u = current_user()
    result = delete_company(s, u.owner_id, company_id, u)
    if result.ok:
        return jsonify({"id": company_id, "deleted": True})
    return flag_result_response(result)
