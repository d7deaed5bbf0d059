from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.promptdesk.models import Base
from app.promptdesk.modules.primary_flag.models import OwnedEntityMixin


class Competitor(OwnedEntityMixin, Base):
    __tablename__ = "competitors"
    __table_args__ = (
        Index("idx_competitors_owner_primary", "owner_id", "is_primary"),
    )
    entity_type_label = "Competitor"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    strengths: Mapped[str | None] = mapped_column(Text, nullable=True)
    weaknesses: Mapped[str | None] = mapped_column(Text, nullable=True)
    pricing_strategy: Mapped[str | None] = mapped_column(Text, nullable=True)
    market_position: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
