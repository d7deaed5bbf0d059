from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from app.promptdesk.audit import record_event
from app.promptdesk.modules.prompts.models import PromptComment, PromptLike, PromptTemplate
from app.promptdesk.modules.prompts.utils import extract_placeholders, render_template_text
from app.promptdesk.utils import clean_str, parse_bool, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.promptdesk.models import User

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000
MAX_PER_PAGE = 100


@dataclass(frozen=True)
class SearchPage:
    items: list[PromptTemplate]
    total: int
    page: int
    per_page: int
    liked_ids: frozenset[int]

    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.per_page))


def _visible_to(owner_id: str | None):
    if owner_id:
        return or_(PromptTemplate.is_public.is_(True), PromptTemplate.author_id == owner_id)
    return PromptTemplate.is_public.is_(True)


def validate_prompt_payload(payload: dict) -> list[str]:
    """Validate prompt creation payload. Returns list of errors."""
    errors = []
    title = clean_str(payload.get("title"))
    if not title:
        errors.append("Title is required.")
    elif len(title) > 255:
        errors.append("Title must be 255 characters or fewer.")
    if not clean_str(payload.get("template_text")):
        errors.append("Template text is required.")
    category = clean_str(payload.get("category"))
    if category and len(category) > 128:
        errors.append("Category must be 128 characters or fewer.")
    return errors


def create_prompt(s: "Session", payload: dict, user: "User") -> PromptTemplate:
    now = utcnow()
    prompt = PromptTemplate(
        author_id=user.owner_id,
        title=clean_str(payload.get("title")) or "",
        description=clean_str(payload.get("description")),
        category=clean_str(payload.get("category")),
        template_text=(payload.get("template_text") or "").strip(),
        is_public=parse_bool(payload.get("is_public", True)),
        like_count=0,
        created_at=now,
        updated_at=now,
    )
    s.add(prompt)
    s.flush()

    record_event(
        s,
        actor=user,
        action="prompt.create",
        entity=prompt,
        metadata={"title": prompt.title, "is_public": prompt.is_public},
    )
    return prompt


def search_prompts(
    s: "Session",
    *,
    owner_id: str | None,
    user_id: int | None,
    query: str | None = None,
    category: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> SearchPage:
    page = max(1, page)
    per_page = min(max(1, per_page), MAX_PER_PAGE)

    stmt = select(PromptTemplate).where(_visible_to(owner_id))
    if query:
        like = f"%{query}%"
        stmt = stmt.where(
            or_(
                PromptTemplate.title.ilike(like),
                PromptTemplate.description.ilike(like),
                PromptTemplate.template_text.ilike(like),
            )
        )
    if category:
        stmt = stmt.where(PromptTemplate.category == category)

    total = int(s.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    items = list(
        s.execute(
            stmt.order_by(PromptTemplate.like_count.desc(), PromptTemplate.created_at.desc(), PromptTemplate.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        .scalars()
        .all()
    )

    liked: frozenset[int] = frozenset()
    if user_id is not None and items:
        rows = s.execute(
            select(PromptLike.prompt_id).where(
                PromptLike.user_id == user_id, PromptLike.prompt_id.in_([p.id for p in items])
            )
        ).scalars()
        liked = frozenset(rows)
    return SearchPage(items=items, total=total, page=page, per_page=per_page, liked_ids=liked)


def get_visible_prompt(s: "Session", prompt_id: int, owner_id: str | None) -> PromptTemplate | None:
    return s.execute(
        select(PromptTemplate).where(PromptTemplate.id == prompt_id, _visible_to(owner_id))
    ).scalar_one_or_none()


def is_liked_by(s: "Session", prompt_id: int, user_id: int | None) -> bool:
    if user_id is None:
        return False
    stmt = select(PromptLike.id).where(PromptLike.prompt_id == prompt_id, PromptLike.user_id == user_id)
    return s.execute(stmt).first() is not None


def toggle_like(s: "Session", prompt: PromptTemplate, user: "User") -> bool:
    """Flip the user's like on `prompt` and commit. Returns whether the prompt is now liked."""
    existing = s.execute(
        select(PromptLike).where(PromptLike.prompt_id == prompt.id, PromptLike.user_id == user.id)
    ).scalar_one_or_none()
    if existing is not None:
        # rowcount is 0 when a parallel unlike from the same user already removed it.
        delta = -s.execute(delete(PromptLike).where(PromptLike.id == existing.id)).rowcount
        is_liked = False
    else:
        s.add(PromptLike(prompt_id=prompt.id, user_id=user.id, created_at=utcnow()))
        try:
            s.flush()
        except IntegrityError:
            # A parallel request from the same user inserted the like first.
            s.rollback()
            logger.info("Duplicate like ignored: prompt=%s user=%s", prompt.id, user.id)
            return True
        delta = 1
        is_liked = True

    if delta:
        # Adjust the stored counter in SQL; the loaded value may already be stale.
        s.execute(
            update(PromptTemplate)
            .where(PromptTemplate.id == prompt.id)
            .values(like_count=PromptTemplate.like_count + delta)
            .execution_options(synchronize_session=False)
        )
        s.expire(prompt, ["like_count"])
    s.commit()
    return is_liked


def validate_comment(body: str | None) -> list[str]:
    errors = []
    text = clean_str(body)
    if not text:
        errors.append("Comment text is required.")
    elif len(text) > MAX_COMMENT_LENGTH:
        errors.append(f"Comment must be {MAX_COMMENT_LENGTH} characters or fewer.")
    return errors


def add_comment(s: "Session", prompt: PromptTemplate, body: str, user: "User") -> PromptComment:
    comment = PromptComment(
        prompt_id=prompt.id,
        user_id=user.id,
        author_email=user.email,
        body=body.strip(),
        created_at=utcnow(),
    )
    s.add(comment)
    s.flush()
    record_event(
        s,
        actor=user,
        action="prompt.comment",
        entity=comment,
        metadata={"prompt_id": prompt.id},
    )
    return comment


def _parse_prompt_id(value: Any) -> int:
    """Accept a JSON integer or a string of digits; booleans and floats are rejected."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value)
    raise ValueError("prompt_template_id must be an integer.")


def generate_preview(s: "Session", prompt_id: Any, variables: Any, owner_id: str | None) -> dict[str, Any]:
    """
    Render a prompt with caller-supplied values.
    Raises ValueError with a user-facing message when the prompt or a value is missing.
    """
    prompt = get_visible_prompt(s, _parse_prompt_id(prompt_id), owner_id)
    if prompt is None:
        raise ValueError("Prompt not found.")
    if variables is None:
        variables = {}
    if not isinstance(variables, dict):
        raise ValueError("variables must be an object.")

    rendered, missing = render_template_text(prompt.template_text, variables)
    if missing:
        raise ValueError(f"Missing values for: {', '.join(missing)}")
    return {
        "prompt_template_id": prompt.id,
        "rendered": rendered,
        "placeholders": extract_placeholders(prompt.template_text),
    }


def serialize_prompt(p: PromptTemplate, *, liked: bool = False) -> dict[str, Any]:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "category": p.category,
        "template_text": p.template_text,
        "placeholders": extract_placeholders(p.template_text),
        "is_public": p.is_public,
        "like_count": p.like_count,
        "liked_by_me": liked,
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


def serialize_comment(c: PromptComment) -> dict[str, Any]:
    return {
        "id": c.id,
        "body": c.body,
        "author": c.author_email,
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }
