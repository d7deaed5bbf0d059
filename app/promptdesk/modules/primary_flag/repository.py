from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.promptdesk.db import set_local_lock_timeout
from app.promptdesk.modules.primary_flag.models import OwnedEntityMixin, PrimaryPartition
from app.promptdesk.utils import utcnow

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=OwnedEntityMixin)

PARTITION_CONSTRAINT = "uq_primary_partitions_owner_type"

# Postgres SQLSTATEs for lock_not_available, serialization_failure and deadlock_detected.
_RETRYABLE_SQLSTATES = frozenset({"55P03", "40001", "40P01"})


def is_conflict_error(exc: BaseException) -> bool:
    """
    True when `exc` means another transaction got to the owner's partition first.

    Any other database error propagates to the caller.
    """
    if isinstance(exc, StaleDataError):
        return True
    orig = getattr(exc, "orig", None)
    if isinstance(exc, IntegrityError):
        diag = getattr(orig, "diag", None)
        if diag is not None and getattr(diag, "constraint_name", None):
            return diag.constraint_name == PARTITION_CONSTRAINT
        # SQLite names the columns instead of the constraint.
        return "UNIQUE constraint failed: primary_partitions.owner_id" in str(orig)
    if isinstance(exc, OperationalError):
        if getattr(orig, "sqlstate", None) in _RETRYABLE_SQLSTATES:
            return True
        return "database is locked" in str(orig)
    return False


class OwnedEntityRepository(Generic[EntityT]):
    """
    Persistence for one owned-entity model inside a caller-controlled transaction.

    Nothing here commits or rolls back; the service owns the transaction boundary.
    """

    def __init__(self, s: Session, model: type[EntityT], *, lock_timeout_ms: int = 5000):
        self.s = s
        self.model = model
        self.lock_timeout_ms = lock_timeout_ms
        self._partition: PrimaryPartition | None = None

    @property
    def entity_type(self) -> str:
        return self.model.entity_type_label or self.model.__name__

    def lock_partition(self, owner_id: str) -> PrimaryPartition:
        """
        Lock (creating on first use) the owner's partition row for this entity type.

        Postgres: SELECT ... FOR UPDATE, bounded by lock_timeout; the second writer waits and then
        reads committed data. SQLite renders no FOR UPDATE; the version bump in upsert_batch
        rejects stale writers instead.
        """
        set_local_lock_timeout(self.s, self.lock_timeout_ms)
        stmt = (
            select(PrimaryPartition)
            .where(PrimaryPartition.owner_id == owner_id, PrimaryPartition.entity_type == self.entity_type)
            .with_for_update()
        )
        partition = self.s.execute(stmt).scalar_one_or_none()
        if partition is None:
            partition = PrimaryPartition(owner_id=owner_id, entity_type=self.entity_type, updated_at=utcnow())
            self.s.add(partition)
            # Concurrent first writers collide on uq_primary_partitions_owner_type here.
            self.s.flush()
        self._partition = partition
        return partition

    def list_by_owner(self, owner_id: str, *, primary_only: bool = False, for_update: bool = False) -> list[EntityT]:
        stmt = select(self.model).where(self.model.owner_id == owner_id)
        if primary_only:
            stmt = stmt.where(self.model.is_primary.is_(True))
        if for_update:
            stmt = stmt.with_for_update()
        stmt = stmt.order_by(self.model.is_primary.desc(), self.model.id.asc())
        return list(self.s.execute(stmt).scalars().all())

    def get(self, entity_id: int) -> EntityT | None:
        return self.s.get(self.model, entity_id)

    def upsert_batch(self, entities: Iterable[EntityT]) -> bool:
        """
        Stage every changed row plus a partition version bump and flush them together.

        Returns False when the flush detects a concurrent write (stale version, partition
        creation race, lock timeout, busy database). The caller must roll back. Other
        database errors propagate.
        """
        for entity in entities:
            self.s.add(entity)
        if self._partition is not None:
            # Dirtying the row makes the ORM emit UPDATE ... WHERE version = <read version>.
            self._partition.updated_at = utcnow()
        try:
            self.s.flush()
        except (StaleDataError, IntegrityError, OperationalError) as e:
            if not is_conflict_error(e):
                raise
            logger.warning("%s partition write conflict: %s", self.entity_type, e)
            return False
        return True

    def delete(self, entity: EntityT) -> bool:
        self.s.delete(entity)
        return self.upsert_batch(())
