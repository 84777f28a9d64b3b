"""
Database connection and session management with centralized configuration.

This module provides database connectivity using the centralized configuration
system, with proper error handling and logging integration.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DatabaseConfig, get_settings
from .exceptions import ConfigurationError, handle_database_error
from .logging import get_logger

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_database_engine(config: DatabaseConfig | None = None) -> Engine:
    """
    Create SQLAlchemy engine with proper configuration.

    An in-memory SQLite database is shared by all sessions of the engine.

    Raises:
        ConfigurationError: If the driver for the backend is not installed
        DatabaseError: If the engine cannot be created

    Example:
        >>> engine = create_database_engine(DatabaseConfig(sqlite_path=":memory:"))
    """
    if config is None:
        config = get_settings().database

    connection_url = config.get_connection_url()
    engine_options = config.get_engine_options()

    logger.info("Creating database engine for %s backend", config.backend)
    logger.debug("Connection URL: %s@***", connection_url.split("@")[0])  # Hide credentials in logs

    if config.backend == "sqlite":
        engine_options["connect_args"] = {"check_same_thread": False}
        if config.sqlite_path == ":memory:":
            engine_options["poolclass"] = StaticPool
            engine_options.pop("pool_recycle", None)

    try:
        engine = create_engine(connection_url, **engine_options)
    except ImportError as e:
        raise ConfigurationError(
            f"Database driver for the {config.backend} backend is not installed: {e}",
            config_key="DB_BACKEND",
        ) from e
    except (SQLAlchemyError, ValueError) as e:
        logger.error("Failed to create database engine: %s", e)
        raise handle_database_error(e, "create engine") from e

    if config.backend == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    logger.info("Database engine created successfully")
    return engine


def create_session_factory(engine: Engine | None = None) -> sessionmaker:
    """
    Create SQLAlchemy session factory.

    Example:
        >>> SessionLocal = create_session_factory()
        >>> with SessionLocal() as session:
        ...     pass
    """
    if engine is None:
        engine = create_database_engine()

    logger.debug("Creating session factory")
    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )
