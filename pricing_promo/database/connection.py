"""
Database Connection Management

SQLAlchemy 2.0 engine for the BI sink database. The batch run holds one
engine for its lifetime and disposes of it on shutdown.
"""

from typing import Optional

import structlog
from sqlalchemy import Engine, create_engine, text

from pricing_promo.config import get_settings

logger = structlog.get_logger(__name__)

# Global engine
_engine: Optional[Engine] = None


def init_database(url: Optional[str] = None) -> Engine:
    """
    Initialize the database engine and verify connectivity.

    Args:
        url: SQLAlchemy URL; defaults to the DATABASE_URL setting

    Returns:
        Engine: The initialized database engine
    """
    global _engine

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = get_settings()
    engine = create_engine(
        url or settings.database.sync_url,
        echo=settings.database.echo,
        pool_pre_ping=True,  # Verify connections before use
    )

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection established", dialect=engine.dialect.name)
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        engine.dispose()
        raise

    _engine = engine
    return _engine


def close_database() -> None:
    """Dispose of all pooled connections"""
    global _engine

    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Database connection pool closed")


def get_engine() -> Engine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine
