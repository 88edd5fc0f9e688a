"""Database engine & session utilities.

The DB helper is deliberately minimal: sync engine + classic session maker.
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from voxscribe.config import settings
from voxscribe.db.base import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(engine: Engine) -> Engine:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are enabled per connection.
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine, applying the SQLite specifics where needed."""
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 20}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # One shared connection, otherwise every session sees an empty DB.
            engine = create_engine(
                database_url,
                echo=echo,
                connect_args=connect_args,
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        return _enable_sqlite_foreign_keys(engine)
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def build_session_factory(bind: Engine) -> sessionmaker:
    # expire_on_commit=False keeps returned rows readable after the session closes.
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


# ---------------------------------------------------------------------------
# Engine & session factory
# ---------------------------------------------------------------------------

logger.info("Creating database engine for %s", settings.DATABASE_URL.split('@')[-1])
engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

SessionLocal = build_session_factory(engine)


def create_tables(bind: Engine = engine) -> None:
    """Create all tables if they do not yet exist. Harmless when they do."""
    import voxscribe.models  # noqa: F401 - registers every mapped class

    Base.metadata.create_all(bind=bind)
    logger.info("Database tables ensured")
