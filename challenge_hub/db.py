from typing import Optional
import os
import logging

from sqlmodel import create_engine, SQLModel, Session
from sqlalchemy import event
from sqlalchemy.engine import Engine

from challenge_hub.core.config import settings
from challenge_hub.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None

PG_VARIABLES = ("PGHOST", "PGDATABASE", "PGUSER", "PGPASSWORD")


def is_database_configured() -> tuple[bool, list[str]]:
    """Return (valid, missing variable names) for the database settings."""
    if settings.DATABASE_URL:
        return True, []
    missing = [name for name in PG_VARIABLES if not os.getenv(name)]
    if not missing:
        return True, []
    return False, ["DATABASE_URL"] + missing


def get_database_url() -> str:
    if settings.DATABASE_URL:
        return settings.DATABASE_URL

    valid, missing = is_database_configured()
    if not valid:
        raise ConfigurationError(
            f"Missing database configuration: {', '.join(missing)}", missing=missing
        )

    host = os.getenv("PGHOST")
    db = os.getenv("PGDATABASE")
    user = os.getenv("PGUSER")
    password = os.getenv("PGPASSWORD")
    ssl_mode = os.getenv("PGSSLMODE", "require")
    return f"postgresql://{user}:{password}@{host}/{db}?sslmode={ssl_mode}"


def _set_statement_timeout(dbapi_connection, connection_record):
    """Cap query time so a slow aggregation cannot hold a connection forever."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("SET statement_timeout = '30s'")
    except Exception as e:
        logger.warning(f"Could not set statement timeout: {e}")
    finally:
        cursor.close()


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=300,  # Managed Postgres drops idle connections
        pool_timeout=30,
        connect_args={
            "connect_timeout": 10,
            "keepalives": 1,
            "keepalives_idle": 30,
            "keepalives_interval": 10,
            "keepalives_count": 5,
        },
    )
    event.listen(engine, "connect", _set_statement_timeout)
    return engine


def get_engine() -> Engine:
    """Build the engine on first use; raises ConfigurationError without credentials."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_database_url())
    return _engine


def get_session():
    with Session(get_engine()) as session:
        yield session


def create_db_and_tables(engine: Optional[Engine] = None):
    # Register every table on the metadata
    import challenge_hub.models  # noqa: F401

    SQLModel.metadata.create_all(engine or get_engine())


def get_optional_session():
    """Like get_session, but yields None when no database is configured."""
    valid, _ = is_database_configured()
    if not valid:
        yield None
        return
    with Session(get_engine()) as session:
        yield session
