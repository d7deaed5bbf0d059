"""
Session-bound CSRF tokens.

Browsers get the token in a <meta> tag, JSON clients from GET /api/session; both send it back
as the X-CSRF-Token header (HTML forms may use a `csrf_token` field instead).
"""
from __future__ import annotations

import secrets

from flask import Request, jsonify, render_template, request, session

UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
_SESSION_KEY = "csrf_token"
_EXEMPT_PATHS = ("/static/", "/health", "/healthz")


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get(_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[_SESSION_KEY] = token
    return token


def rotate_csrf_token() -> str:
    """Issue a fresh token; called when the session changes hands (login)."""
    session[_SESSION_KEY] = secrets.token_urlsafe(32)
    return session[_SESSION_KEY]


def _submitted_token(req: Request) -> str | None:
    token = req.headers.get("X-CSRF-Token")
    if token:
        return token
    if req.is_json:
        data = req.get_json(silent=True)
        return data.get(_SESSION_KEY) if isinstance(data, dict) else None
    return req.form.get(_SESSION_KEY)


def validate_csrf(req: Request) -> bool:
    token = _submitted_token(req)
    expected = session.get(_SESSION_KEY)
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))


def csrf_protect():
    """
    before_request hook. Returns a 400 response for unsafe requests without a valid token,
    otherwise None. The login endpoint is exempt: its form may predate the session.
    """
    if request.path.startswith(_EXEMPT_PATHS):
        return None
    ensure_csrf_token()
    session.permanent = True
    if request.method not in UNSAFE_METHODS or request.endpoint == "auth.login_post":
        return None
    if validate_csrf(request):
        return None
    message = "CSRF token missing or invalid."
    if request.path.startswith("/api/"):
        return jsonify({"error": message}), 400
    return render_template("errors/400.html", message=message), 400
