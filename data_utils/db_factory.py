from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from data_models.base import Base
from data_utils.settings import DatabaseSettings

# 1. Global storage
_engine: Optional[Engine] = None
_SessionLocal = None


def get_db_url(original_dsn: str) -> str:
    url = make_url(original_dsn)
    if url.drivername == "postgresql":
        url = url.set(drivername="postgresql+psycopg")
    return url.render_as_string(hide_password=False)


def build_engine(database_url: str) -> Engine:
    url = get_db_url(database_url)
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            # In-memory SQLite only exists on one connection
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        # Writers wait on the file lock instead of failing with "database is locked"
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=10,
    )


def init_db(settings: DatabaseSettings, create_tables: bool = True) -> Engine:
    global _engine, _SessionLocal
    if _engine:
        return _engine

    _engine = build_engine(settings.database_url)
    if create_tables:
        Base.metadata.create_all(_engine)

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )
    return _engine


def get_session() -> Session:
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db(settings) first.")
    return _SessionLocal()

