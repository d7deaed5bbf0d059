from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash

from app.promptdesk.audit import record_event
from app.promptdesk.db import db_session
from app.promptdesk.models import User
from app.promptdesk.security import rotate_csrf_token
from app.promptdesk.utils import utcnow

bp = Blueprint("auth", __name__)

# client ip -> recent login attempt times (per worker process)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)


def _rate_limited(ip: str) -> bool:
    window = timedelta(seconds=int(current_app.config.get("LOGIN_RATE_WINDOW_SECONDS", 300)))
    limit = int(current_app.config.get("LOGIN_RATE_LIMIT", 5))
    cutoff = utcnow() - window
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= limit


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    user_id = session.get("user_id")
    if not user_id:
        return
    try:
        user = db_session().get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        return
    if not user or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user


def _credentials() -> tuple[str, str, str]:
    if request.is_json:
        data = request.get_json(silent=True)
        data = data if isinstance(data, dict) else {}
    else:
        data = request.form
    email = str(data.get("email") or "").strip().lower()
    return email, str(data.get("password") or ""), str(data.get("next") or "").strip()


def _authenticate(email: str, password: str) -> User | None:
    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if user and user.is_active and check_password_hash(user.password_hash, password):
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return user
    record_event(
        s,
        actor=None,
        action="auth.login_failed",
        entity_type="User",
        entity_id=email,
        reason="Invalid credentials",
        metadata={"email": email},
    )
    s.commit()
    return None


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    """Form login redirects; JSON login answers with the user and a fresh CSRF token."""
    email, password, nxt = _credentials()
    ip = request.remote_addr or "unknown"

    if _rate_limited(ip):
        current_app.logger.warning("Login rate limit hit (ip=%s)", ip)
        if request.is_json:
            return jsonify({"error": "Too many login attempts. Try again later."}), 429
        flash("Too many login attempts. Please wait a few minutes.", "danger")
        return redirect(url_for("auth.login_get"))
    _login_attempts[ip].append(utcnow())

    user = _authenticate(email, password)
    if user is None:
        if request.is_json:
            return jsonify({"error": "Invalid credentials."}), 401
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get"))

    session["user_id"] = user.id
    _login_attempts.pop(ip, None)
    token = rotate_csrf_token()
    if request.is_json:
        return jsonify({"user": {"id": user.id, "email": user.email}, "csrf_token": token})
    # Only local paths, to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("routes.index"))


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return redirect(url_for("routes.index"))
