"""Sessions and transactions.

Routes get a Session per request through the get_db dependency. Code that
runs outside a request's session (post-stream chat persistence in the
threadpool) asks get_session_factory() for its own.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from murmur.db.engine import get_engine


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """sessionmaker bound to `engine` (default: the shared engine).

    Objects stay readable after commit; services return ORM rows that are
    serialized after their transaction ends.
    """
    return sessionmaker(
        bind=engine if engine is not None else get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


_session_factory: sessionmaker[Session] | None = None


def get_session_factory() -> sessionmaker[Session]:
    """The shared sessionmaker, created on first use."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one Session per request, closed afterwards."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Generator[None, None, None]:
    """Commit when the block succeeds; roll back and re-raise otherwise.

        with transaction(db):
            db.add(row)
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise
