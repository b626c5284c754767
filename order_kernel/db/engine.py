"""
Engine and session management for the order kernel.

One engine per process, held at module level and (re)built by
``init_engine_from_url`` or ``init_engine_from_config``.  Services never call
into this module; they receive a ``Session`` from whoever owns the
transaction.

Backends:
    - PostgreSQL (psycopg2) in production: ``QueuePool`` with pre-ping and
      ``READ COMMITTED``.  Order and stock rows are serialized with explicit
      ``SELECT ... FOR UPDATE`` rather than a stricter isolation level.
    - SQLite for local runs and the default test suite: one shared
      connection (``StaticPool``), so there are no row locks to rely on.

Failure modes:
    - RuntimeError when a session or the engine is requested before init.
    - OperationalError from trigger installation once its deadlock retries
      are spent.
"""

import atexit
import time
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from order_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

TRIGGER_INSTALL_ATTEMPTS = 3

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _engine_options(
    backend: str,
    pool_size: int,
    max_overflow: int,
    pool_timeout: int,
    pool_recycle: int,
) -> dict[str, Any]:
    if backend == "sqlite":
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_timeout": pool_timeout,
        "pool_recycle": pool_recycle,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build the process engine and session factory for ``database_url``.

    Replaces any engine built earlier (the old one is not disposed; call
    ``reset_engine()`` first for that).  Pool settings only apply to
    PostgreSQL.
    """
    global _engine, _SessionFactory

    backend = make_url(database_url).get_backend_name()
    _engine = create_engine(
        database_url,
        echo=echo,
        **_engine_options(backend, pool_size, max_overflow, pool_timeout, pool_recycle),
    )
    # Loaded state stays readable after commit.
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"backend": backend, "pool_size": pool_size, "echo": echo},
    )
    return _engine


def init_engine_from_config(config) -> Engine:
    """Build the engine from an ``order_config.EngineConfig``, applying its log level."""
    configure_logging(level=config.log_level)
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
    )


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database engine is not initialized; call init_engine_from_url()")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """The shared ``sessionmaker``; worker threads each build their own session from it."""
    if _SessionFactory is None:
        raise RuntimeError("Database engine is not initialized; call init_engine_from_url()")
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit-or-rollback scope for callers that own a whole unit of work.

    Usage:
        with session_scope() as session:
            service = OrderLifecycleService.from_config(session, config, auto_commit=False)
            service.confirm(actor, order_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(install_triggers: bool = True) -> None:
    """
    Create every mapped table; on PostgreSQL also install the immutability triggers.

    Parallel test workers can deadlock on ``CREATE OR REPLACE`` of the
    trigger functions, so installation is retried with a growing pause.
    """
    from order_kernel.db.base import Base
    import order_kernel.models  # noqa: F401  registers every table on Base.metadata

    engine = get_engine()
    Base.metadata.create_all(engine)
    if not (install_triggers and is_postgres()):
        return

    from order_kernel.db.triggers import install_immutability_triggers

    for attempt in range(1, TRIGGER_INSTALL_ATTEMPTS + 1):
        try:
            install_immutability_triggers(engine)
            return
        except OperationalError as exc:
            if "deadlock" not in str(exc).lower() or attempt == TRIGGER_INSTALL_ATTEMPTS:
                raise
            logger.warning("trigger_install_retry", extra={"attempt": attempt})
            engine.dispose()
            time.sleep(0.5 * attempt)


def drop_tables() -> None:
    """Drop every mapped table (and the triggers on PostgreSQL).  Tests and local resets only."""
    from order_kernel.db.base import Base
    import order_kernel.models  # noqa: F401

    engine = get_engine()
    if is_postgres():
        from order_kernel.db.triggers import uninstall_immutability_triggers

        uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
