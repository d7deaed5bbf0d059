import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.promptdesk.db import create_db_engine
from app.promptdesk.models import Permission, Role, User

PERMISSIONS = (
    ("companies.manage", "Companies: manage own"),
    ("competitors.manage", "Competitors: manage own"),
    ("prompts.create", "Prompts: create"),
    ("prompts.engage", "Prompts: like and comment"),
)

# role key -> (display name, permission keys)
ROLES = {
    "member": ("Member", ("companies.manage", "competitors.manage", "prompts.create", "prompts.engage")),
    "viewer": ("Viewer", ("prompts.engage",)),
}


@contextmanager
def _session_scope(database_url: str):
    engine = create_db_engine(database_url)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def seed_roles(s: Session) -> dict[str, Role]:
    """Idempotently create permissions and roles; returns roles by key."""
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    roles: dict[str, Role] = {}
    for role_key, (role_name, perm_keys) in ROLES.items():
        role = s.query(Role).filter(Role.key == role_key).one_or_none()
        if not role:
            role = Role(key=role_key, name=role_name)
            s.add(role)
        for perm_key in perm_keys:
            if perms[perm_key] not in role.permissions:
                role.permissions.append(perms[perm_key])
        roles[role_key] = role
    return roles


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles and the first member account in an idempotent way.
    Does NOT overwrite an existing user's password.
    """
    seed_email = (os.environ.get("SEED_USER_EMAIL") or "owner@promptdesk.local").strip().lower()
    seed_password = os.environ.get("SEED_USER_PASSWORD") or "change-me"
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and seed_password == "change-me":
        raise RuntimeError("SEED_USER_PASSWORD must be set in production.")

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///promptdesk.db").strip()

    # Direct engine/session so this runs in release without building the Flask app.
    with _session_scope(db_url) as s:
        roles = seed_roles(s)

        user = s.query(User).filter(User.email == seed_email).one_or_none()
        if not user:
            user = User(email=seed_email, password_hash=generate_password_hash(seed_password), is_active=True)
            s.add(user)
        if roles["member"] not in user.roles:
            user.roles.append(roles["member"])

    print("Initialized database (seed_only).")
    print(f"Seed user email: {seed_email}")
    print("Seed user password: (from SEED_USER_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
