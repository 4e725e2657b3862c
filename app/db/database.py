"""
Database connection and initialization utilities.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


# Process-wide engine for command-line tooling (python -m app.db.init_db).
# The web application builds its own engine in create_app().
_settings = get_settings()
engine = create_db_engine(_settings.database_url, echo=_settings.db_echo)


def init_db(bind: Engine = None):
    """Initialize database - create all tables."""
    from app.db.models import Base
    Base.metadata.create_all(bind=bind or engine)
