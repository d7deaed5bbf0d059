import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    primary_lock_timeout_ms: int
    sqlite_busy_timeout: float
    prompts_page_size: int
    login_rate_limit: int
    login_rate_window_seconds: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///promptdesk.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        primary_lock_timeout_ms=_getenv_int("PRIMARY_LOCK_TIMEOUT_MS", 5000),
        sqlite_busy_timeout=float(_getenv_int("SQLITE_BUSY_TIMEOUT", 5)),
        prompts_page_size=_getenv_int("PROMPTS_PAGE_SIZE", 20),
        login_rate_limit=_getenv_int("LOGIN_RATE_LIMIT", 5),
        login_rate_window_seconds=_getenv_int("LOGIN_RATE_WINDOW_SECONDS", 300),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "PRIMARY_LOCK_TIMEOUT_MS": s.primary_lock_timeout_ms,
        "SQLITE_BUSY_TIMEOUT": s.sqlite_busy_timeout,
        "PROMPTS_PAGE_SIZE": s.prompts_page_size,
        "LOGIN_RATE_LIMIT": s.login_rate_limit,
        "LOGIN_RATE_WINDOW_SECONDS": s.login_rate_window_seconds,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # JSON payloads only; no uploads
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
