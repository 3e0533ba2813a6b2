from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker


_engine = None
_SessionLocal = None


def init_engine(database_url: str) -> None:
    global _engine, _SessionLocal
    connect_args = {}
    if database_url.startswith("sqlite"):
        # node generation writes from worker threads
        connect_args = {"check_same_thread": False, "timeout": 30}
    _engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False, autocommit=False, future=True)


def get_engine():
    if _engine is None:
        raise RuntimeError("Database engine is not initialized")
    return _engine


def get_sessionmaker():
    if _SessionLocal is None:
        raise RuntimeError("Database sessionmaker is not initialized")
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    SessionLocal = get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """Commit on success, roll back on error, always close."""
    db = (factory or get_sessionmaker())()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
