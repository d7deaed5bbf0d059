"""
Exclusive primary flag: at most one entity per owner carries is_primary.

Every write goes through one transaction that locks the owner's partition row, so two
concurrent promotions for the same owner can never both commit with their flags set.
Business failures come back as FlagResult errors; the caller decides how to surface them.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

from flask import current_app, has_app_context
from sqlalchemy import func, select

from app.promptdesk.audit import record_event
from app.promptdesk.modules.primary_flag.models import OwnedEntityMixin
from app.promptdesk.modules.primary_flag.repository import OwnedEntityRepository, is_conflict_error
from app.promptdesk.modules.primary_flag.results import FlagError, FlagResult
from app.promptdesk.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.promptdesk.models import User

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=OwnedEntityMixin)

# Never writable through `changes`.
PROTECTED_FIELDS = frozenset({"id", "owner_id", "is_primary", "version", "created_at", "updated_at"})


def _repository(s: "Session", model: type[EntityT]) -> OwnedEntityRepository[EntityT]:
    timeout_ms = 5000
    if has_app_context():
        timeout_ms = int(current_app.config.get("PRIMARY_LOCK_TIMEOUT_MS", timeout_ms))
    return OwnedEntityRepository(s, model, lock_timeout_ms=timeout_ms)


def _apply_changes(entity: OwnedEntityMixin, changes: dict[str, Any] | None) -> dict[str, Any]:
    applied: dict[str, Any] = {}
    for key, value in (changes or {}).items():
        if key in PROTECTED_FIELDS:
            continue
        if not hasattr(type(entity), key):
            raise ValueError(f"{type(entity).__name__} has no attribute {key!r}")
        if getattr(entity, key) != value:
            applied[key] = {"old": getattr(entity, key), "new": value}
            setattr(entity, key, value)
    return applied


def _stage_flag(
    repo: OwnedEntityRepository[EntityT],
    owner_id: str,
    target: EntityT,
    wants_primary: bool,
    now: datetime,
) -> list[EntityT]:
    """
    Compute the rows to write for the flag change. Clears every other primary row for the
    owner, not just one: a single-row update would leave earlier violations in place.
    """
    batch: list[EntityT] = []
    if wants_primary:
        for other in repo.list_by_owner(owner_id, primary_only=True, for_update=True):
            if other.id == target.id:
                continue
            other.is_primary = False
            other.updated_at = now
            batch.append(other)
    target.is_primary = wants_primary
    target.updated_at = now
    batch.append(target)
    return batch


def _conflict(s: "Session", entity_type: str, owner_id: str, target_id: int | None) -> FlagResult:
    s.rollback()
    logger.warning("Primary flag conflict: type=%s owner=%s target=%s", entity_type, owner_id, target_id)
    return FlagResult.failure(FlagError.CONFLICT, target_id)


def set_primary(
    s: "Session",
    model: type[EntityT],
    owner_id: str,
    target_id: int,
    wants_primary: bool,
    *,
    changes: dict[str, Any] | None = None,
    actor: "User | None" = None,
    now: datetime | None = None,
) -> FlagResult:
    """
    Update `target_id` (optionally applying `changes`) and set its primary flag.

    Runs as one transaction and commits it. Returns NOT_FOUND / OWNERSHIP_VIOLATION without
    writing anything, or CONFLICT after rolling back when a concurrent write won the race.
    """
    repo = _repository(s, model)
    now = now or utcnow()
    try:
        repo.lock_partition(owner_id)
        target = repo.get(target_id)
        if target is None:
            s.rollback()
            return FlagResult.failure(FlagError.NOT_FOUND, target_id)
        if target.owner_id != owner_id:
            s.rollback()
            logger.warning(
                "Ownership violation: type=%s owner=%s target=%s", repo.entity_type, owner_id, target_id
            )
            return FlagResult.failure(FlagError.OWNERSHIP_VIOLATION, target_id)

        applied = _apply_changes(target, changes)
        was_primary = target.is_primary
        batch = _stage_flag(repo, owner_id, target, wants_primary, now)
        if not repo.upsert_batch(batch):
            return _conflict(s, repo.entity_type, owner_id, target_id)

        cleared = [e.id for e in batch if e.id != target.id]
        flag_changed = wants_primary != was_primary or bool(cleared)
        record_event(
            s,
            actor=actor,
            action=f"{repo.entity_type.lower()}.{'set_primary' if flag_changed else 'update'}",
            entity_type=repo.entity_type,
            entity_id=str(target.id),
            metadata={"is_primary": wants_primary, "cleared_ids": cleared, "changes": applied},
        )
        s.commit()
    except Exception as e:
        if is_conflict_error(e):
            return _conflict(s, repo.entity_type, owner_id, target_id)
        s.rollback()
        raise

    if cleared:
        logger.info("%s %s is now primary for owner=%s; cleared %s", repo.entity_type, target_id, owner_id, cleared)
    return FlagResult.success(target_id, wants_primary)


def create_owned(
    s: "Session",
    model: type[EntityT],
    owner_id: str,
    attrs: dict[str, Any],
    wants_primary: bool,
    *,
    actor: "User | None" = None,
    now: datetime | None = None,
) -> FlagResult:
    """
    Insert a new entity for `owner_id` and apply the flag in the same transaction.
    Not primary unless `wants_primary` is set.
    """
    repo = _repository(s, model)
    now = now or utcnow()
    try:
        repo.lock_partition(owner_id)
        entity = model(**{k: v for k, v in attrs.items() if k not in PROTECTED_FIELDS})
        entity.owner_id = owner_id
        entity.is_primary = False
        entity.created_at = now
        entity.updated_at = now
        s.add(entity)
        s.flush()

        batch = _stage_flag(repo, owner_id, entity, wants_primary, now)
        if not repo.upsert_batch(batch):
            return _conflict(s, repo.entity_type, owner_id, None)

        record_event(
            s,
            actor=actor,
            action=f"{repo.entity_type.lower()}.create",
            entity_type=repo.entity_type,
            entity_id=str(entity.id),
            metadata={"is_primary": wants_primary, "cleared_ids": [e.id for e in batch if e.id != entity.id]},
        )
        s.commit()
    except Exception as e:
        if is_conflict_error(e):
            return _conflict(s, repo.entity_type, owner_id, None)
        s.rollback()
        raise

    return FlagResult.success(entity.id, wants_primary)


def delete_owned(
    s: "Session",
    model: type[EntityT],
    owner_id: str,
    target_id: int,
    *,
    actor: "User | None" = None,
) -> FlagResult:
    """
    Delete an owned entity. Deleting the primary leaves the owner with no primary;
    nothing is promoted in its place.
    """
    repo = _repository(s, model)
    try:
        repo.lock_partition(owner_id)
        target = repo.get(target_id)
        if target is None:
            s.rollback()
            return FlagResult.failure(FlagError.NOT_FOUND, target_id)
        if target.owner_id != owner_id:
            s.rollback()
            logger.warning(
                "Ownership violation on delete: type=%s owner=%s target=%s", repo.entity_type, owner_id, target_id
            )
            return FlagResult.failure(FlagError.OWNERSHIP_VIOLATION, target_id)

        was_primary = target.is_primary
        if not repo.delete(target):
            return _conflict(s, repo.entity_type, owner_id, target_id)

        record_event(
            s,
            actor=actor,
            action=f"{repo.entity_type.lower()}.delete",
            entity_type=repo.entity_type,
            entity_id=str(target_id),
            metadata={"was_primary": was_primary},
        )
        s.commit()
    except Exception as e:
        if is_conflict_error(e):
            return _conflict(s, repo.entity_type, owner_id, target_id)
        s.rollback()
        raise

    return FlagResult.success(target_id, False)


def count_primary(s: "Session", model: type[OwnedEntityMixin], owner_id: str) -> int:
    stmt = select(func.count()).select_from(model).where(model.owner_id == owner_id, model.is_primary.is_(True))
    return int(s.execute(stmt).scalar_one())
