"""SQLModel engine singleton and session dependency."""
from pathlib import Path
from typing import Generator

from sqlalchemy.engine import make_url
from sqlmodel import Session, SQLModel, create_engine

from pipesync.config import get_settings

_engine = None


def _is_sqlite(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def _ensure_sqlite_dir(database_url: str) -> None:
    database = make_url(database_url).database
    if _is_sqlite(database_url) and database not in (None, "", ":memory:"):
        Path(database).parent.mkdir(parents=True, exist_ok=True)


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _ensure_sqlite_dir(settings.database_url)
        _engine = create_engine(
            settings.database_url,
            # SQLite only; safe for FastAPI
            connect_args=(
                {"check_same_thread": False}
                if _is_sqlite(settings.database_url)
                else {}
            ),
        )
        # Import all models so metadata is populated before create_all
        from pipesync.models.record import ExternalRef, RecordKey, SyncedRecord  # noqa
        from pipesync.models.sync import StoredMapping, SyncRun, SyncState  # noqa
        SQLModel.metadata.create_all(_engine)
    return _engine


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
