from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.promptdesk.modules.competitors.models import Competitor
from app.promptdesk.modules.primary_flag.repository import OwnedEntityRepository
from app.promptdesk.modules.primary_flag.results import FlagError, FlagResult
from app.promptdesk.modules.primary_flag.service import create_owned, delete_owned, set_primary
from app.promptdesk.utils import clean_str, length_errors

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.promptdesk.models import User


COMPETITOR_FIELDS = (
    "name",
    "website",
    "strengths",
    "weaknesses",
    "pricing_strategy",
    "market_position",
)

_CAMEL_ALIASES = {
    "pricingStrategy": "pricing_strategy",
    "marketPosition": "market_position",
}

COMPETITOR_MAX_LENGTHS = {
    "name": ("Name", 255),
    "website": ("Website", 512),
}


def validate_competitor_payload(payload: dict) -> list[str]:
    attrs = competitor_attrs(payload)
    if not attrs["name"]:
        return ["Name is required."]
    return length_errors(attrs, COMPETITOR_MAX_LENGTHS)


def competitor_attrs(payload: dict) -> dict[str, Any]:
    data = dict(payload)
    for camel, snake in _CAMEL_ALIASES.items():
        if camel in data and snake not in data:
            data[snake] = data[camel]
    return {field: clean_str(data.get(field)) for field in COMPETITOR_FIELDS}


def serialize_competitor(c: Competitor) -> dict[str, Any]:
    out: dict[str, Any] = {"id": c.id}
    for field in COMPETITOR_FIELDS:
        out[field] = getattr(c, field)
    out["is_primary"] = c.is_primary
    out["updated_at"] = c.updated_at.isoformat() if c.updated_at else None
    return out


def list_competitors(s: "Session", owner_id: str) -> list[Competitor]:
    competitors = OwnedEntityRepository(s, Competitor).list_by_owner(owner_id)
    return sorted(competitors, key=lambda c: (not c.is_primary, c.name.lower()))


def get_competitor(s: "Session", owner_id: str, competitor_id: int) -> tuple[Competitor | None, FlagError | None]:
    competitor = s.get(Competitor, competitor_id)
    if competitor is None:
        return None, FlagError.NOT_FOUND
    if competitor.owner_id != owner_id:
        return None, FlagError.OWNERSHIP_VIOLATION
    return competitor, None


def create_competitor(s: "Session", owner_id: str, payload: dict, wants_primary: bool, user: "User | None") -> FlagResult:
    return create_owned(s, Competitor, owner_id, competitor_attrs(payload), wants_primary, actor=user)


def update_competitor(
    s: "Session", owner_id: str, competitor_id: int, payload: dict, wants_primary: bool, user: "User | None"
) -> FlagResult:
    return set_primary(
        s, Competitor, owner_id, competitor_id, wants_primary, changes=competitor_attrs(payload), actor=user
    )


def delete_competitor(s: "Session", owner_id: str, competitor_id: int, user: "User | None") -> FlagResult:
    return delete_owned(s, Competitor, owner_id, competitor_id, actor=user)
