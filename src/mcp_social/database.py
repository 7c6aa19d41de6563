"""Database connection and session management."""
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from .config import settings
from .errors import ConfigurationError


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""
    pass


SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None


def make_engine(database_url: str) -> Engine:
    """Create an engine with bounded lock / pool waits."""
    if database_url.startswith("sqlite"):
        kwargs = {
            "connect_args": {
                "check_same_thread": False,  # SQLite specific
                "timeout": settings.store_timeout_seconds,
            }
        }
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            # One shared connection, otherwise every checkout sees an empty db
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_timeout=settings.store_timeout_seconds,
        pool_pre_ping=True,
    )


def init_engine(database_url: str = None) -> Engine:
    """Bind SessionLocal to the configured database."""
    global _engine
    url = database_url or settings.database_url
    if not url:
        raise ConfigurationError(
            "MCP_SOCIAL_DATABASE_URL is required (e.g. sqlite:///./social.db)"
        )
    _engine = make_engine(url)
    SessionLocal.configure(bind=_engine)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        return init_engine()
    return _engine


def get_db():
    """Dependency for FastAPI - yields database session."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Engine = None):
    """Initialize database tables."""
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine or get_engine())
