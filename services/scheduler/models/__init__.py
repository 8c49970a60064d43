from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Generator, Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from services.scheduler.models.base import Base as Base
from services.scheduler.models.meeting import BusyIntervalRecord as BusyIntervalRecord
from services.scheduler.models.meeting import MeetingRecord as MeetingRecord
from services.scheduler.models.meeting import ParticipantRecord as ParticipantRecord
from services.scheduler.settings import get_settings

ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"

# Global engine and session factory - created once and reused
_engine: Optional[Engine] = None
_session_maker: Optional[sessionmaker] = None

# Thread-safe initialization locks
_engine_lock = Lock()
_session_maker_lock = Lock()


def _create_engine(db_url: str) -> Engine:
    if db_url.startswith("sqlite"):
        # SQLite picks its own pool; the sizing options below do not apply to it
        return create_engine(db_url, echo=False, future=True)
    return create_engine(
        db_url,
        echo=False,
        future=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


def get_engine() -> Engine:
    """Get or create the shared database engine in a thread-safe manner."""
    global _engine
    if _engine is None:
        with _engine_lock:
            # Double-check pattern to prevent race conditions
            if _engine is None:
                _engine = _create_engine(get_settings().db_url_scheduler)
    return _engine


def get_sessionmaker() -> sessionmaker:
    """Get or create the shared session maker in a thread-safe manner.

    Acquire locks in sessionmaker -> engine order to avoid races with reset/close.
    """
    global _session_maker, _engine
    if _session_maker is None:
        with _session_maker_lock:
            if _session_maker is None:
                with _engine_lock:
                    if _engine is None:
                        _engine = _create_engine(get_settings().db_url_scheduler)
                    current_engine = _engine
                _session_maker = sessionmaker(
                    bind=current_engine,
                    autoflush=False,
                    autocommit=False,
                    future=True,
                    expire_on_commit=False,
                )
    return _session_maker


@contextmanager
def get_session() -> Generator[Session, None, None]:
    Session = get_sessionmaker()
    session = Session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables() -> None:
    """Create all tables straight from the models, without migration history. Used by tests."""
    Base.metadata.create_all(get_engine())


def alembic_config(db_url: Optional[str] = None) -> Config:
    """Alembic config for the scheduler migrations, pointed at ``db_url`` or the configured database."""
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    config.set_main_option(
        "sqlalchemy.url", (db_url or get_settings().db_url_scheduler).replace("%", "%%")
    )
    config.attributes["configure_logging"] = False
    return config


def upgrade_database(db_url: Optional[str] = None, revision: str = "head") -> None:
    """Apply the scheduler migrations up to ``revision``."""
    command.upgrade(alembic_config(db_url), revision)


def close_db() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_maker
    engine_to_dispose: Optional[Engine] = None
    with _session_maker_lock:
        _session_maker = None
        with _engine_lock:
            if _engine is not None:
                engine_to_dispose = _engine
                _engine = None
    if engine_to_dispose is not None:
        engine_to_dispose.dispose()


def reset_db() -> None:
    """Reset database globals without disposing; use close_db() to dispose."""
    global _engine, _session_maker
    with _session_maker_lock:
        with _engine_lock:
            _session_maker = None
            _engine = None
