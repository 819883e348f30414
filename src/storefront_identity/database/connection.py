"""
Database Connection Management

Engine and session factory construction for the identity store.
SQLite URLs (used for development and tests) get thread-safe settings;
in-memory SQLite shares one connection across threads.
"""

import logging

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import DatabaseConfig
from ..models import Base

logger = logging.getLogger(__name__)


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Create engine for the configured database URL."""
    url = config.url

    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=config.echo, **kwargs)
    else:
        engine = create_engine(url, echo=config.echo, pool_pre_ping=config.pool_pre_ping)

    logger.info(f"Database engine created for dialect {engine.dialect.name}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory; objects stay readable after commit."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_schema(engine: Engine) -> None:
    """Create all identity tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)
    logger.info("Identity schema ensured")


def check_connection(engine: Engine) -> bool:
    """Return True when the database answers a trivial query."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False
