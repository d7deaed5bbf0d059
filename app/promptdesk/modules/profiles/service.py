from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.promptdesk.audit import record_event
from app.promptdesk.modules.profiles.models import UserProfile
from app.promptdesk.utils import clean_str, length_errors, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.promptdesk.models import User


PROFILE_FIELDS = ("display_name", "job_title", "bio", "website")

PROFILE_MAX_LENGTHS = {
    "display_name": ("Display name", 120),
    "job_title": ("Job title", 255),
    "website": ("Website", 512),
}


def get_profile(s: "Session", user: "User") -> UserProfile | None:
    return s.execute(select(UserProfile).where(UserProfile.user_id == user.id)).scalar_one_or_none()


def validate_profile_payload(payload: dict) -> list[str]:
    errors = length_errors(payload, PROFILE_MAX_LENGTHS)
    website = clean_str(payload.get("website"))
    if website and not website.lower().startswith(("http://", "https://")):
        errors.append("Website must start with http:// or https://.")
    return errors


def update_profile(s: "Session", user: "User", payload: dict) -> UserProfile:
    """Create or update the user's profile. Caller commits."""
    now = utcnow()
    profile = get_profile(s, user)
    if profile is None:
        profile = UserProfile(user_id=user.id, created_at=now)
        s.add(profile)

    changes = {}
    for field in PROFILE_FIELDS:
        new_value = clean_str(payload.get(field))
        if new_value != getattr(profile, field):
            changes[field] = {"old": getattr(profile, field), "new": new_value}
            setattr(profile, field, new_value)
    profile.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action="profile.update",
        entity=profile,
        metadata={"changes": changes},
    )
    return profile


def serialize_profile(user: "User", profile: UserProfile | None) -> dict[str, Any]:
    out: dict[str, Any] = {"user_id": user.id, "email": user.email}
    for field in PROFILE_FIELDS:
        out[field] = getattr(profile, field) if profile else None
    out["updated_at"] = profile.updated_at.isoformat() if profile and profile.updated_at else None
    return out
