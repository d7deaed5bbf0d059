from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.promptdesk.api import current_user, json_payload, optional_user, validation_error
from app.promptdesk.db import db_session
from app.promptdesk.modules.prompts.service import (
    add_comment,
    create_prompt,
    generate_preview,
    get_visible_prompt,
    is_liked_by,
    search_prompts,
    serialize_comment,
    serialize_prompt,
    toggle_like,
    validate_comment,
    validate_prompt_payload,
)
from app.promptdesk.rbac import require_api_permission

bp = Blueprint("prompts", __name__)


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name) or default)
    except ValueError:
        return default


@bp.get("/prompts")
def prompts_search():
    s = db_session()
    u = optional_user()
    page = search_prompts(
        s,
        owner_id=u.owner_id if u else None,
        user_id=u.id if u else None,
        query=(request.args.get("q") or "").strip() or None,
        category=(request.args.get("category") or "").strip() or None,
        page=_int_arg("page", 1),
        per_page=_int_arg("per_page", int(current_app.config.get("PROMPTS_PAGE_SIZE", 20))),
    )
    return jsonify(
        {
            "items": [serialize_prompt(p, liked=p.id in page.liked_ids) for p in page.items],
            "total": page.total,
            "page": page.page,
            "per_page": page.per_page,
            "pages": page.pages,
        }
    )


@bp.get("/prompts/<int:prompt_id>")
def prompt_detail(prompt_id: int):
    s = db_session()
    u = optional_user()
    prompt = get_visible_prompt(s, prompt_id, u.owner_id if u else None)
    if prompt is None:
        return jsonify({"error": "Prompt not found."}), 404
    body = serialize_prompt(prompt, liked=is_liked_by(s, prompt.id, u.id if u else None))
    body["comments"] = [serialize_comment(c) for c in prompt.comments]
    return jsonify(body)


@bp.post("/prompts")
@require_api_permission("prompts.create")
def prompt_create():
    s = db_session()
    u = current_user()
    payload = json_payload()

    errors = validate_prompt_payload(payload)
    if errors:
        return validation_error(errors)

    prompt = create_prompt(s, payload, u)
    s.commit()
    return jsonify({"id": prompt.id}), 201


@bp.post("/prompts/<int:prompt_id>/like")
@require_api_permission("prompts.engage")
def prompt_toggle_like(prompt_id: int):
    s = db_session()
    u = current_user()
    prompt = get_visible_prompt(s, prompt_id, u.owner_id)
    if prompt is None:
        return jsonify({"success": False, "message": "Prompt not found."}), 404
    is_liked = toggle_like(s, prompt, u)
    return jsonify({"success": True, "is_liked": is_liked})


@bp.post("/prompts/<int:prompt_id>/comments")
@require_api_permission("prompts.engage")
def prompt_add_comment(prompt_id: int):
    s = db_session()
    u = current_user()
    prompt = get_visible_prompt(s, prompt_id, u.owner_id)
    if prompt is None:
        return jsonify({"success": False, "message": "Prompt not found."}), 404

    body = json_payload().get("body")
    errors = validate_comment(body if isinstance(body, str) else None)
    if errors:
        return jsonify({"success": False, "errors": errors}), 400

    add_comment(s, prompt, body, u)
    s.commit()
    return jsonify({"success": True})


@bp.post("/prompts/preview")
def prompt_preview():
    s = db_session()
    u = optional_user()
    payload = json_payload()
    try:
        data = generate_preview(
            s,
            payload.get("prompt_template_id"),
            payload.get("variables"),
            u.owner_id if u else None,
        )
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)})
    return jsonify({"success": True, "data": data})
