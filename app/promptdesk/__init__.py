import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, render_template, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.promptdesk.config import load_config
from app.promptdesk.db import init_db, missing_columns, teardown_db_session
from app.promptdesk.routes import bp as routes_bp
from app.promptdesk.security import csrf_protect, ensure_csrf_token
from app.promptdesk.auth import bp as auth_bp, load_current_user
from app.promptdesk.modules.companies.api import bp as companies_bp
from app.promptdesk.modules.competitors.api import bp as competitors_bp
from app.promptdesk.modules.prompts.api import bp as prompts_bp
from app.promptdesk.modules.profiles.api import bp as profiles_bp

logger = logging.getLogger(__name__)

# Short JSON messages for HTTP errors raised outside the handlers' own responses.
_HTTP_ERROR_MESSAGES = {
    400: "Bad request.",
    403: "Forbidden.",
    404: "Not found.",
    405: "Method not allowed.",
    413: "Request body too large.",
}


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def _check_production_config(app: Flask) -> None:
    """Fail fast on settings that are only acceptable in development."""
    if (app.config.get("ENV") or "").strip().lower() not in ("prod", "production"):
        return
    db_url = str(app.config.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if db_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if str(app.config.get("SECRET_KEY") or "") in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")


def _dispose_engine_after_fork(app: Flask) -> None:
    # gunicorn --preload forks after the engine exists; pooled connections must not be shared.
    if not hasattr(os, "register_at_fork"):
        return

    def _after_fork_child() -> None:
        engine = app.extensions.get("sqlalchemy_engine")
        if engine is not None:
            engine.dispose()
            app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

    os.register_at_fork(after_in_child=_after_fork_child)


def _install_schema_guard(app: Flask) -> None:
    """
    Compare the models with the live database once at startup. While columns are missing,
    API calls get a 503 instead of failing deep inside a query.
    """
    from app.promptdesk.models import Base

    try:
        missing = missing_columns(app.extensions["sqlalchemy_engine"], Base.metadata)
    except Exception as e:
        app.logger.exception("Schema health check failed: %s", e)
        missing = []
    app.config["_schema_health_ok"] = not missing
    app.config["_schema_health_missing"] = missing
    if missing:
        app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))

    @app.before_request
    def _schema_health_guardrail():  # type: ignore[no-redef]
        if app.config["_schema_health_ok"] or not _wants_json():
            return None
        return jsonify({"error": "Database schema out of date.", "missing": app.config["_schema_health_missing"]}), 503


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        code = e.code or 500
        if code == 403:
            app.logger.warning(
                "Forbidden: missing_permission=%s request_id=%s",
                getattr(g, "missing_permission", None),
                getattr(g, "request_id", None),
            )
        if _wants_json():
            return jsonify({"error": _HTTP_ERROR_MESSAGES.get(code, e.name)}), code
        if code in (400, 403, 404):
            return render_template(f"errors/{code}.html", message=e.description), code
        return e

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        if _wants_json():
            return jsonify({"error": "Internal server error.", "request_id": rid}), 500
        return render_template("errors/500.html"), 500


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    _check_production_config(app)
    init_db(app)
    _dispose_engine_after_fork(app)

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    app.before_request(csrf_protect)
    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    for api_bp in (companies_bp, competitors_bp, prompts_bp, profiles_bp):
        app.register_blueprint(api_bp, url_prefix="/api")

    _install_schema_guard(app)
    _register_error_handlers(app)

    logger.info("create_app() complete (env=%s)", app.config.get("ENV"))
    return app
