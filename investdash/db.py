from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from investdash.config import settings

SQLITE_JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


def sqlite_journal_mode(value: str) -> str:
    mode = value.strip().upper()
    return mode if mode in SQLITE_JOURNAL_MODES else "WAL"


def make_engine(
    url: str,
    *,
    busy_timeout_ms: int = 30000,
    journal_mode: str = "WAL",
) -> Engine:
    """Build an engine; SQLite connections get a busy timeout and journal mode."""
    if not url.startswith("sqlite"):
        return create_engine(url, future=True)

    busy_timeout_ms = max(busy_timeout_ms, 0)
    mode = sqlite_journal_mode(journal_mode)
    sqlite_engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": busy_timeout_ms / 1000.0},
        future=True,
    )

    @event.listens_for(sqlite_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
        cursor.execute(f"PRAGMA journal_mode={mode}")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return sqlite_engine


engine = make_engine(
    settings.database_url,
    busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    journal_mode=settings.sqlite_journal_mode,
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    from investdash import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a request-scoped SQLAlchemy session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
