from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.promptdesk.models import Base
from app.promptdesk.utils import utcnow


class PromptTemplate(Base):
    __tablename__ = "prompt_templates"
    __table_args__ = (
        Index("idx_prompt_templates_category", "category"),
        Index("idx_prompt_templates_author", "author_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)  # User.owner_id

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Marketing"
    template_text: Mapped[str] = mapped_column(Text, nullable=False)  # with {{placeholder}} slots
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Denormalized; recomputed from prompt_likes on every toggle.
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    comments: Mapped[list["PromptComment"]] = relationship(
        "PromptComment",
        back_populates="prompt",
        cascade="all, delete-orphan",
        order_by="PromptComment.created_at",
        lazy="selectin",
    )


class PromptLike(Base):
    __tablename__ = "prompt_likes"
    __table_args__ = (
        UniqueConstraint("prompt_id", "user_id", name="uq_prompt_likes_prompt_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    prompt_id: Mapped[int] = mapped_column(ForeignKey("prompt_templates.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)


class PromptComment(Base):
    __tablename__ = "prompt_comments"
    __table_args__ = (
        Index("idx_prompt_comments_prompt_id", "prompt_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    prompt_id: Mapped[int] = mapped_column(ForeignKey("prompt_templates.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    author_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    prompt: Mapped[PromptTemplate] = relationship("PromptTemplate", back_populates="comments", lazy="selectin")
