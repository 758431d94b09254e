"""
Database Session Management

Provides the engine factory, connection pooling and session management.
The engine is built on first use so that importing the package never opens
a connection or requires a database driver.
"""
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy import create_engine, event, exc, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

_engine: Optional[Engine] = None

# Session factory, bound to the default engine by get_engine()
SessionLocal = sessionmaker(
    autoflush=False,
    expire_on_commit=False
)


def _receive_connect(dbapi_conn, connection_record):
    logger.debug("database_connection_established")


def _receive_invalidate(dbapi_conn, connection_record, exception):
    logger.warning(
        "database_connection_invalidated",
        exception=str(exception) if exception else None
    )


def create_db_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create a database engine with connection pooling.

    Pool sizing options are only applied to server databases; SQLite
    engines use SQLAlchemy's defaults.

    Args:
        database_url: Database URL (defaults to settings.database_url)
        echo: Log SQL statements (defaults to settings.database_echo)

    Returns:
        SQLAlchemy engine
    """
    url = database_url or settings.database_url
    kwargs = {
        "echo": settings.database_echo if echo is None else echo,
        "pool_pre_ping": True,  # Verify connections before using
    }
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
        )

    engine = create_engine(url, **kwargs)
    event.listen(engine, "connect", _receive_connect)
    event.listen(engine.pool, "invalidate", _receive_invalidate)

    logger.info("database_engine_created", dialect=engine.dialect.name)
    return engine


def get_engine() -> Engine:
    """
    Return the default engine, creating it on first use.

    Returns:
        SQLAlchemy engine bound to SessionLocal
    """
    global _engine

    if _engine is None:
        _engine = create_db_engine()
        SessionLocal.configure(bind=_engine)
    return _engine


@contextmanager
def get_db_session(
    session_factory: Optional[Callable[[], Session]] = None,
) -> Generator[Session, None, None]:
    """
    Get database session with automatic cleanup.

    Usage:
        with get_db_session() as session:
            result = session.execute(select(Unit)).scalars().all()

    Args:
        session_factory: Session factory (defaults to SessionLocal on the default engine)

    Yields:
        Database session

    Raises:
        Exception: Re-raises any exception after rollback
    """
    if session_factory is None:
        get_engine()
        session_factory = SessionLocal

    session = session_factory()
    try:
        logger.debug("database_session_created")
        yield session
        session.commit()
        logger.debug("database_session_committed")
    except exc.SQLAlchemyError as e:
        session.rollback()
        logger.error(
            "database_session_rollback",
            error=str(e),
            error_type=type(e).__name__
        )
        raise
    except Exception as e:
        session.rollback()
        logger.error(
            "database_session_error",
            error=str(e),
            error_type=type(e).__name__
        )
        raise
    finally:
        session.close()
        logger.debug("database_session_closed")


def health_check(session: Session) -> bool:
    """
    Check database connection health.

    Args:
        session: Database session

    Returns:
        True if database is accessible, False otherwise
    """
    try:
        session.execute(text("SELECT 1"))
        logger.info("database_health_check_success")
        return True
    except exc.SQLAlchemyError as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        return False


def close_connections():
    """
    Close all database connections and dispose of the engine.

    Should be called on application shutdown.
    """
    global _engine

    if _engine is None:
        return
    logger.info("closing_database_connections")
    _engine.dispose()
    _engine = None
    logger.info("database_connections_closed")


def create_all_tables(engine: Optional[Engine] = None):
    """
    Create all database tables defined in models.

    WARNING: Use Alembic migrations instead in production.
    This is only for testing and initial setup.
    """
    from src.gridrisk.db.base import Base, import_all_models

    logger.info("creating_database_tables")
    import_all_models()
    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("database_tables_created")


def drop_all_tables(engine: Optional[Engine] = None):
    """
    Drop all database tables.

    WARNING: This will delete all data! Only use in development/testing.
    """
    from src.gridrisk.db.base import Base, import_all_models

    logger.warning("dropping_all_database_tables")
    import_all_models()
    Base.metadata.drop_all(bind=engine or get_engine())
    logger.warning("all_database_tables_dropped")


def with_retry(max_retries: int = 3, retry_delay: int = 1):
    """
    Decorator to retry database operations on transient failures.

    Args:
        max_retries: Maximum number of retry attempts
        retry_delay: Delay between retries in seconds

    Usage:
        @with_retry(max_retries=3)
        def my_database_operation(session):
            pass
    """
    import time
    from functools import wraps

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except (exc.OperationalError, exc.DisconnectionError) as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        logger.warning(
                            "database_operation_retry",
                            attempt=attempt + 1,
                            max_retries=max_retries,
                            error=str(e)
                        )
                        time.sleep(retry_delay * (attempt + 1))
                    else:
                        logger.error(
                            "database_operation_failed_after_retries",
                            max_retries=max_retries,
                            error=str(e)
                        )

            raise last_exception

        return wrapper
    return decorator
