"""Database engine builder.

- Default pool: QueuePool with pre-ping (webhook bursts reuse connections)
- ENV: PAYHOOK_DB_POOL=queuepool|nullpool (default: queuepool)
- ENV: PAYHOOK_DB_STATEMENT_TIMEOUT_MS (PostgreSQL only, default: 5000)
- ENV: PAYHOOK_DB_APPLICATION_NAME (PostgreSQL only, default: payhook-api)
"""

import logging
import os
import re
from typing import Any

from sqlalchemy import Engine, NullPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from payhook_api.config.env import get_database_url

logger = logging.getLogger(__name__)


def _mask_password(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


def _is_postgres(url: str) -> bool:
    return url.startswith(("postgresql", "postgres"))


def _postgres_connect_args() -> dict[str, Any]:
    """Connection tagging and a server-side statement bound for PostgreSQL."""
    connect_args: dict[str, Any] = {}

    app_name = os.getenv("PAYHOOK_DB_APPLICATION_NAME", "payhook-api")
    if app_name:
        connect_args["application_name"] = app_name

    timeout_ms = int(os.getenv("PAYHOOK_DB_STATEMENT_TIMEOUT_MS", "5000"))
    if timeout_ms > 0:
        connect_args["options"] = f"-c statement_timeout={timeout_ms}"

    return connect_args


def build_engine(database_url: str | None = None) -> Engine:
    """
    Build SQLAlchemy engine.

    Args:
        database_url: Database URL. If None, resolved via get_database_url().

    Returns:
        SQLAlchemy Engine instance.

    Raises:
        ValueError: If PAYHOOK_DB_POOL has an unknown value.
        RuntimeError: If DATABASE_URL is missing in production.
    """
    url = database_url or get_database_url()
    connect_args = _postgres_connect_args() if _is_postgres(url) else {}

    pool_mode = os.getenv("PAYHOOK_DB_POOL", "queuepool").lower()

    if pool_mode == "queuepool":
        pool_size = int(os.getenv("PAYHOOK_DB_POOL_SIZE", "5"))
        max_overflow = int(os.getenv("PAYHOOK_DB_MAX_OVERFLOW", "10"))
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=pool_size,
            max_overflow=max_overflow,
            connect_args=connect_args,
        )
    elif pool_mode == "nullpool":
        # External pooler (pgbouncer / transaction mode) in front of the database
        engine = create_engine(
            url,
            poolclass=NullPool,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
    else:
        raise ValueError(
            f"Invalid PAYHOOK_DB_POOL value: {pool_mode}. "
            "Must be 'queuepool' or 'nullpool'."
        )

    logger.debug(
        "Database engine created: pool=%s, url=%s",
        engine.pool.__class__.__name__,
        _mask_password(url),
    )
    return engine


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """
    Build SQLAlchemy sessionmaker.

    Args:
        engine: SQLAlchemy Engine instance.

    Returns:
        sessionmaker instance configured with autocommit=False, autoflush=False.
    """
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
