from __future__ import annotations

from datetime import datetime
from typing import ClassVar

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.promptdesk.models import Base
from app.promptdesk.utils import utcnow


class OwnedEntityMixin:
    """
    Columns shared by every record whose primary flag is exclusive per owner.

    Concrete models also declare `version` and map it as `version_id_col`, so every
    UPDATE/DELETE is conditional on the version that was read.
    """

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    # Audit/log label, e.g. "Company"; also the partition's entity_type.
    entity_type_label: ClassVar[str] = ""


class PrimaryPartition(Base):
    """
    One row per (owner, entity type). Every write to the owner's entity set locks this row
    and bumps its version, which is what serializes competing primary changes.
    """

    __tablename__ = "primary_partitions"
    __table_args__ = (
        UniqueConstraint("owner_id", "entity_type", name="uq_primary_partitions_owner_type"),
        Index("idx_primary_partitions_owner", "owner_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version}
