from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.promptdesk.modules.companies.models import Company
from app.promptdesk.modules.primary_flag.repository import OwnedEntityRepository
from app.promptdesk.modules.primary_flag.results import FlagError, FlagResult
from app.promptdesk.modules.primary_flag.service import create_owned, delete_owned, set_primary
from app.promptdesk.utils import clean_str, length_errors

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.promptdesk.models import User


COMPANY_FIELDS = (
    "name",
    "industry",
    "description",
    "products_services",
    "value_proposition",
    "target_market",
    "website",
    "company_size",
)

# Accept the camelCase keys browser clients send.
_CAMEL_ALIASES = {
    "productsServices": "products_services",
    "valueProposition": "value_proposition",
    "targetMarket": "target_market",
    "companySize": "company_size",
}

# Bounded String columns on Company: field -> (label, max length).
COMPANY_MAX_LENGTHS = {
    "name": ("Name", 255),
    "industry": ("Industry", 255),
    "website": ("Website", 512),
    "company_size": ("Company size", 64),
}


def validate_company_payload(payload: dict) -> list[str]:
    """Validate company creation/update payload. Returns list of errors."""
    attrs = company_attrs(payload)
    if not attrs["name"]:
        return ["Name is required."]
    return length_errors(attrs, COMPANY_MAX_LENGTHS)


def company_attrs(payload: dict) -> dict[str, Any]:
    data = dict(payload)
    for camel, snake in _CAMEL_ALIASES.items():
        if camel in data and snake not in data:
            data[snake] = data[camel]
    return {field: clean_str(data.get(field)) for field in COMPANY_FIELDS}


def serialize_company(c: Company) -> dict[str, Any]:
    out: dict[str, Any] = {"id": c.id}
    for field in COMPANY_FIELDS:
        out[field] = getattr(c, field)
    out["is_primary"] = c.is_primary
    out["updated_at"] = c.updated_at.isoformat() if c.updated_at else None
    return out


def list_companies(s: "Session", owner_id: str) -> list[Company]:
    companies = OwnedEntityRepository(s, Company).list_by_owner(owner_id)
    return sorted(companies, key=lambda c: (not c.is_primary, c.name.lower()))


def create_company(s: "Session", owner_id: str, payload: dict, wants_primary: bool, user: "User | None") -> FlagResult:
    return create_owned(s, Company, owner_id, company_attrs(payload), wants_primary, actor=user)


def update_company(
    s: "Session", owner_id: str, company_id: int, payload: dict, wants_primary: bool, user: "User | None"
) -> FlagResult:
    return set_primary(s, Company, owner_id, company_id, wants_primary, changes=company_attrs(payload), actor=user)


def delete_company(s: "Session", owner_id: str, company_id: int, user: "User | None") -> FlagResult:
    return delete_owned(s, Company, owner_id, company_id, actor=user)


def get_company(s: "Session", owner_id: str, company_id: int) -> tuple[Company | None, FlagError | None]:
    company = s.get(Company, company_id)
    if company is None:
        return None, FlagError.NOT_FOUND
    if company.owner_id != owner_id:
        return None, FlagError.OWNERSHIP_VIOLATION
    return company, None
