"""
Query helpers for the PostgreSQL store.

Driver and pool failures surface as DatabaseError tagged with the operation.
"""

from typing import Any

import psycopg

from dutywatch.db.pool import DatabasePoolManager
from dutywatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def fetch_one(
    pool: DatabasePoolManager, query: Any, params: tuple = ()
) -> dict[str, Any] | None:
    """
    Execute query and return the first row as a dict.

    Args:
        pool: Open pool manager
        query: SQL string or psycopg.sql composition with %s placeholders
        params: Query parameters

    Returns:
        Row dict, or None when the query returned nothing
    """
    try:
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()
    except (psycopg.Error, RuntimeError) as e:
        logger.error("Database fetch_one error", error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_one") from e


async def fetch_all(
    pool: DatabasePoolManager, query: Any, params: tuple = ()
) -> list[dict[str, Any]]:
    try:
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()
    except (psycopg.Error, RuntimeError) as e:
        logger.error("Database fetch_all error", error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_all") from e


async def execute_script(pool: DatabasePoolManager, statements: list[str]) -> None:
    """Run DDL statements in a single transaction."""
    try:
        async with pool.transaction() as conn:
            for statement in statements:
                await conn.execute(statement)
    except (psycopg.Error, RuntimeError) as e:
        logger.error("Schema script failed", statement_count=len(statements), error=str(e))
        raise DatabaseError(f"Script failed: {e}", operation="execute_script") from e

    logger.debug("Schema script applied", statement_count=len(statements))
