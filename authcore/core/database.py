"""Database engine and session management."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator
from urllib.parse import urlparse

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from authcore.core.config import get_settings

SessionFactory = Callable[[], Session]


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""

    parsed = urlparse(database_url)
    if parsed.scheme != "sqlite" or ":///" not in database_url:
        return

    # Everything after "sqlite:///" is the filesystem path, relative or absolute.
    raw_path = database_url.split(":///", 1)[1]
    if raw_path in ("", ":memory:"):
        return
    db_dir = Path(raw_path).expanduser().resolve().parent
    db_dir.mkdir(parents=True, exist_ok=True)


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine with dialect-appropriate pooling."""

    if database_url.startswith("sqlite"):
        _ensure_sqlite_directory(database_url)
        engine_kwargs: dict[str, object] = {
            "future": True,
            "echo": echo,
            "connect_args": {"check_same_thread": False},
        }
        if database_url.endswith(":memory:") or database_url == "sqlite://":
            engine_kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **engine_kwargs)

    return create_engine(
        database_url,
        future=True,
        echo=echo,
        pool_pre_ping=True,
    )


_settings = get_settings()
engine: Engine = build_engine(_settings.database_url, echo=_settings.sql_echo)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    future=True,
    class_=Session,
)


def get_session() -> Iterator[Session]:
    """FastAPI dependency for acquiring a database session."""

    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def session_scope(factory: SessionFactory = SessionLocal) -> Iterator[Session]:
    """Provide a transactional scope for scripts and background jobs."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
