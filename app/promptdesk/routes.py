from flask import Blueprint, g, render_template

from app.promptdesk.rbac import permissions_for
from app.promptdesk.security import ensure_csrf_token

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return render_template("public/index.html")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/session")
def api_session():
    """CSRF token for JSON clients (send back as X-CSRF-Token) plus who is logged in and what they may do."""
    user = getattr(g, "current_user", None)
    body = {"csrf_token": ensure_csrf_token(), "user": None}
    if user:
        body["user"] = {"id": user.id, "email": user.email, "permissions": sorted(permissions_for(user))}
    return body
