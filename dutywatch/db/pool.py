"""
PostgreSQL connection pool for the session store.

Opened by PostgresSessionStore.initialize() when DATABASE_URL is set; the
in-memory store never touches it.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from dutywatch.config import settings
from dutywatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0


class DatabasePoolManager:
    """Owns one AsyncConnectionPool; connections come back as dict rows in autocommit."""

    def __init__(self, conninfo: str | None = None):
        self.conninfo = conninfo
        self.pool: AsyncConnectionPool | None = None
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self.pool is not None and not self._closed

    async def initialize(self) -> None:
        """
        Open the pool and prove one connection works.

        Raises:
            RuntimeError: No DATABASE_URL, pool already closed, or the database is unreachable
        """
        if self.initialized:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reopen a closed database pool")

        conninfo = self.conninfo or settings.DATABASE_URL
        if not conninfo:
            raise RuntimeError("DATABASE_URL is not configured")

        pool_config = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=conninfo,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **pool_config,
        )
        try:
            await pool.open(wait=True)
            self.pool = pool
            await self._ping()
        except Exception as e:
            logger.error("Failed to open database pool", error=str(e))
            self.pool = None
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info(
            "Database pool ready",
            min_size=pool_config["min_size"],
            max_size=pool_config["max_size"],
        )

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"dutywatch-{settings.environment}")
            )
        )
        # Session timestamps are stored and compared in UTC
        await conn.execute("SET timezone = 'UTC'")

    async def _ping(self) -> None:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT 1 AS ok")
            row = await cursor.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError("Database ping returned an unexpected result")

    async def close(self) -> None:
        if self.pool is None or self._closed:
            return
        self._closed = True
        try:
            await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out", timeout=CLOSE_TIMEOUT_SECONDS)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        if not self.initialized:
            raise RuntimeError("Database pool is not open")
        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[psycopg.AsyncConnection]:
        """Connection inside a transaction: commit on success, rollback on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        if not self.initialized:
            return {"healthy": False, "service": "postgres", "error": "Pool not open"}

        started = time.monotonic()
        try:
            await self._ping()
        except (psycopg.Error, RuntimeError) as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "postgres",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "service": "postgres",
            "latency_ms": round((time.monotonic() - started) * 1000, 2),
            "pool_size": stats.get("pool_size", 0),
            "pool_available": stats.get("pool_available", 0),
            "requests_waiting": stats.get("requests_waiting", 0),
        }
