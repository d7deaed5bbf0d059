"""
Append-only audit trail. Events ride in the caller's transaction, so a rolled-back change
leaves no event behind.
"""
from __future__ import annotations

import json
from typing import Any

from flask import g, has_app_context, has_request_context, request
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.promptdesk.models import AuditEvent, User


def _client_ip() -> str | None:
    if not has_request_context():
        return None
    # gunicorn sits behind the platform proxy; the first hop is the client.
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return forwarded or request.remote_addr


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity: Any = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Add an audit event to `s`; it is committed (or discarded) with the caller's work.
    Pass `entity` (a flushed model instance) instead of entity_type/entity_id to derive both.
    """
    if entity is not None:
        entity_type = entity_type or type(entity).__name__
        entity_id = entity_id or str(entity.id)
    rid = request_id or (getattr(g, "request_id", None) if has_app_context() else None)
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=_client_ip(),
    )
    s.add(ev)
    return ev


def events_for(s: Session, entity_type: str, entity_id: Any) -> list[AuditEvent]:
    """Events recorded against one entity, oldest first."""
    stmt = (
        select(AuditEvent)
        .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == str(entity_id))
        .order_by(AuditEvent.id)
    )
    return list(s.execute(stmt).scalars())
