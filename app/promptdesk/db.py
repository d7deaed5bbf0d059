from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator

from flask import Flask, g
from sqlalchemy import Engine, MetaData, create_engine, event, inspect, text
from sqlalchemy.orm import Session, sessionmaker


def normalize_database_url(url: str) -> str:
    """
    Point Postgres URLs at the psycopg (v3) driver.
    Hosting providers hand out `postgres://` which SQLAlchemy no longer accepts, and a bare
    `postgresql://` would select psycopg2, which is not installed.
    """
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def _engine_kwargs(db_url: str, sqlite_busy_timeout: float) -> dict[str, object]:
    kwargs: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgresql"):
        kwargs.update(pool_recycle=1800, pool_size=5, max_overflow=10, pool_timeout=30)
    elif db_url.startswith("sqlite"):
        # Pooled connections move between request threads; `timeout` is the busy wait on a locked file.
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": sqlite_busy_timeout}
    return kwargs


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    # SQLite enforces FOREIGN KEY clauses, ON DELETE CASCADE included, only when asked per connection.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore[no-redef]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_db_engine(db_url: str, *, sqlite_busy_timeout: float = 5.0) -> Engine:
    db_url = normalize_database_url(db_url)
    engine = create_engine(db_url, **_engine_kwargs(db_url, sqlite_busy_timeout))
    if engine.dialect.name == "sqlite":
        _enable_sqlite_foreign_keys(engine)
    return engine


def init_db(app: Flask) -> None:
    engine = create_db_engine(
        app.config["DATABASE_URL"],
        sqlite_busy_timeout=float(app.config.get("SQLITE_BUSY_TIMEOUT", 5)),
    )
    app.logger.info("Database engine ready (dialect=%s)", engine.dialect.name)
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
    )


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session. Use inside request handlers.
    """
    if getattr(g, "db_session", None) is not None:
        return g.db_session
    if app is None:
        from flask import current_app

        app = current_app
    g.db_session = app.extensions["sqlalchemy_sessionmaker"]()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is not None:
        s.close()
        g.db_session = None


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for scripts and tests: yields a session and commits/rolls back.
    """
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def set_local_lock_timeout(s: Session, timeout_ms: int) -> None:
    """
    Bound how long row locks taken in the current transaction may wait (Postgres only).
    SQLite serializes writers on the file and uses the connection busy timeout instead.
    """
    if s.get_bind().dialect.name != "postgresql":
        return
    # SET does not accept bind parameters; the value is an int from config.
    s.execute(text(f"SET LOCAL lock_timeout = {int(timeout_ms)}"))


def missing_columns(engine: Engine, metadata: MetaData) -> list[str]:
    """
    `table.column` names the models declare but the database lacks.
    Tables that do not exist yet are skipped (fresh database before `create_all`/migrations).
    """
    insp = inspect(engine)
    missing: list[str] = []
    for table in metadata.sorted_tables:
        if not insp.has_table(table.name):
            continue
        present = {c["name"] for c in insp.get_columns(table.name)}
        missing.extend(f"{table.name}.{col.name}" for col in table.columns if col.name not in present)
    return missing
