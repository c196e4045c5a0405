"""SQLAlchemy engine, session factory and declarative base."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from starter.core.config import DatabaseConfig


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # Stored as naive UTC so SQLite and server databases compare the same way.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Create engine for ``config.url``, preparing local SQLite files."""
    url = make_url(config.url)
    connect_args: dict[str, object] = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        config.url,
        echo=config.echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    if url.get_backend_name() == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Return session factory bound to ``engine``."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create all ORM tables that do not exist yet."""
    # Tables register themselves on Base.metadata when imported.
    import starter.auth.tables  # noqa: F401

    Base.metadata.create_all(engine)
