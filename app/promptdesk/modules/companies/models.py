from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.promptdesk.models import Base
from app.promptdesk.modules.primary_flag.models import OwnedEntityMixin


class Company(OwnedEntityMixin, Base):
    __tablename__ = "companies"
    __table_args__ = (
        Index("idx_companies_owner_primary", "owner_id", "is_primary"),
    )
    entity_type_label = "Company"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Required
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Optional profile fields (free text)
    industry: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    products_services: Mapped[str | None] = mapped_column(Text, nullable=True)
    value_proposition: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_market: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    company_size: Mapped[str | None] = mapped_column(String(64), nullable=True)  # e.g. "11-50"

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
