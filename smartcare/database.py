from contextlib import contextmanager
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.pool import StaticPool
import os
import logging

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_FILE = os.path.join(os.path.dirname(__file__), "smartcare_dev.db")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_SQLITE_FILE}")

# SECURITY: Disable SQL echo in production to prevent sensitive data leakage
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"


def build_engine(database_url: str, echo: bool = False):
    """Create an engine with the pool settings that suit the backend"""
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            return create_engine(database_url, echo=echo, connect_args=connect_args, poolclass=StaticPool)
        return create_engine(database_url, echo=echo, connect_args=connect_args)

    return create_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Handle stale connections
        pool_recycle=300,
    )


engine = build_engine(DATABASE_URL, DB_ECHO)


def get_session():
    with Session(engine) as session:
        yield session


@contextmanager
def session_scope():
    """Session for code running outside a request (scheduler jobs, scripts)"""
    with Session(engine) as session:
        yield session


def create_db_and_tables(bind=None):
    from smartcare import models  # noqa: F401 - registers tables on SQLModel.metadata
    from smartcare.services.sequences import ensure_sequences

    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    with Session(bind) as session:
        ensure_sequences(session)
    logger.info("Database tables ready")
