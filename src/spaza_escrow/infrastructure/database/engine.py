"""Database engine and session management.

Provides:
    - create_db_engine: Build an engine for a URL (SQLite by default).
    - make_session_factory: A sessionmaker bound to the engine.
    - init_db: Create tables if they don't exist.

Usage:
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    storage = SqlStorage(make_session_factory(engine))
"""

from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from spaza_escrow.infrastructure.database.orm_models import Base
from spaza_escrow.logging_config import get_logger

logger = get_logger(__name__)

_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:", "sqlite+pysqlite:///:memory:"}


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create a synchronous engine.

    In-memory SQLite gets a single shared connection so every session sees
    the same database.
    """
    if database_url in _IN_MEMORY_URLS:
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 5},
        )
    else:
        engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

    logger.info("database.engine_created", dialect=engine.dialect.name)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


def init_db(engine: Engine) -> None:
    """Create all tables. Safe to call on an existing database."""
    Base.metadata.create_all(engine)
    logger.info("database.tables_created")
