"""
Module: envelope_ledger.db.engine
Responsibility: Build the SQLAlchemy engine for a ledger database URL, hold
    the process-wide engine/session factory, and provide the unit-of-work
    scope every façade call runs in.
Architecture position: Ledger > DB.  MUST NOT import from services/,
    selectors/ or domain/ (table creation imports models/ only to register
    tables on Base.metadata).

Invariants enforced:
    - Document writes are linearized by the version-checked UPDATE in the
      Entity Store, never by client-side locks; PostgreSQL therefore runs at
      READ COMMITTED.
    - SQLite waits up to SQLITE_BUSY_TIMEOUT_SECONDS for the file lock, so
      concurrent request workers queue instead of failing with
      "database is locked".
    - A unit of work either commits as a whole or is rolled back as a whole;
      a transfer that fails midway leaves no balance change behind.

Failure modes:
    - RuntimeError from get_engine/get_session_factory before
      init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from envelope_ledger.logging_config import get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Create an engine for *database_url* without registering it."""
    if database_url.startswith("sqlite"):
        # Request workers share the engine across threads.
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Build and register the process-wide engine; replaces any earlier one."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = build_engine(database_url, echo=echo, **pool_options)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Ledger engine not initialized; call init_engine_from_url() first")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("Ledger engine not initialized; call init_engine_from_url() first")
    return _session_factory


def get_session() -> Session:
    """New session from the registered factory; the caller closes it."""
    return get_session_factory()()


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    One unit of work: commit on success, roll back on any exception.

    Services only flush; this is the single place a ledger write commits.
    The exception is re-raised after rollback.

    Usage:
        with session_scope(factory) as session:
            TransactionProcessor(session, clock).apply(command, actor_id)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
        logger.debug("unit_of_work_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every ledger table, including the budget membership index."""
    from envelope_ledger.db.base import Base
    import envelope_ledger.models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every ledger table. Tests and local resets only."""
    from envelope_ledger.db.base import Base
    import envelope_ledger.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose and forget the registered engine."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
