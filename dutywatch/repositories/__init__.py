"""
Session store strategies.

`build_session_store` picks PostgreSQL when DATABASE_URL is set and the
in-memory store otherwise.
"""

from dutywatch.config import Settings, settings
from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.repositories.base import SessionStore
from dutywatch.repositories.memory_store import InMemorySessionStore

logger = get_logger(__name__)


def build_session_store(config: Settings | None = None) -> SessionStore:
    config = config or settings
    if config.use_database():
        from dutywatch.db.pool import DatabasePoolManager
        from dutywatch.repositories.postgres_store import PostgresSessionStore

        logger.info("Using PostgreSQL session store")
        return PostgresSessionStore(DatabasePoolManager(config.DATABASE_URL))

    logger.warning("No DATABASE_URL provided, using in-memory session store")
    return InMemorySessionStore()


__all__ = ["SessionStore", "InMemorySessionStore", "build_session_store"]
