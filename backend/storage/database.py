"""
Database engine and session management.

The URL comes from Settings: DATABASE_URL, or a SQLite file in the data
directory. SQLite connections run in WAL mode; any other backend gets a
bounded connection pool.
"""
import logging
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from config.settings import get_settings

logger = logging.getLogger(__name__)

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def engine_options(url: str) -> Dict[str, Any]:
    """Connection arguments and pool sizing for a database URL."""
    if is_sqlite(url):
        # FastAPI hands sessions across threads.
        return {"connect_args": {"check_same_thread": False}, "pool_pre_ping": True}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for url, switching SQLite connections to WAL on connect."""
    built = create_engine(url, echo=echo, **engine_options(url))
    if is_sqlite(url):
        @event.listens_for(built, "connect")
        def _apply_sqlite_pragmas(dbapi_conn, _connection_record):
            cursor = dbapi_conn.cursor()
            for pragma in SQLITE_PRAGMAS:
                cursor.execute(pragma)
            cursor.close()
    return built


_settings = get_settings()
DATABASE_URL: str = _settings.database_url
engine = build_engine(DATABASE_URL, echo=_settings.sql_echo)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create any missing tables for the registered models."""
    from storage import models  # noqa: F401  # Import to register models
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ensured at %s", engine.url.render_as_string(hide_password=True))


def check_db_connection() -> bool:
    """Return True when a trivial query succeeds."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.warning("Database connectivity check failed", exc_info=True)
        return False


def check_integrity() -> tuple[bool, str]:
    """
    Run PRAGMA integrity_check on SQLite databases.

    Returns:
        (ok, result_text); other backends report (True, "not sqlite")
    """
    if not is_sqlite(DATABASE_URL):
        return True, "not sqlite"
    try:
        with engine.connect() as conn:
            result = str(conn.execute(text("PRAGMA integrity_check")).scalar())
    except SQLAlchemyError as exc:
        logger.critical("Database integrity check error: %s", exc)
        return False, str(exc)

    ok = result.strip().lower() == "ok"
    if ok:
        logger.info("Database integrity check passed")
    else:
        logger.critical("Database integrity check FAILED: %s", result)
    return ok, result
