"""SQLModel engine singletons and session dependency."""
from typing import Dict, Generator

from sqlmodel import Session, SQLModel, create_engine

from timeaudit.config import get_settings

_engine = None
_remote_engines: Dict[str, object] = {}


def _create(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def get_engine():
    """Return the local client engine (queue slot + sync log), creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = _create(settings.database_url)
        # Import local models so metadata is populated before create_all
        from timeaudit.models.storage import StorageSlot  # noqa
        from timeaudit.models.sync import SyncLog  # noqa
        SQLModel.metadata.create_all(
            _engine,
            tables=[StorageSlot.__table__, SyncLog.__table__],
        )
    return _engine


def get_remote_engine(url: str):
    """Return the engine for the self-hosted activity backend at `url`."""
    if url not in _remote_engines:
        engine = _create(url)
        from timeaudit.models.activity import ActivityRow  # noqa
        SQLModel.metadata.create_all(engine, tables=[ActivityRow.__table__])
        _remote_engines[url] = engine
    return _remote_engines[url]


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a local DB session."""
    with Session(get_engine()) as session:
        yield session
