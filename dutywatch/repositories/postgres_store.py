"""
PostgreSQL SessionStore backed by its own psycopg connection pool.

The partial unique index on duty_sessions enforces the single active session
per (subject_id, scope_id) at the database level.
"""

from typing import Any

from psycopg import sql

from dutywatch.db.helpers import DatabaseError, execute_script, fetch_all, fetch_one
from dutywatch.db.pool import DatabasePoolManager
from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.models.domain.duty_domain import DutySession, NewDutySession
from dutywatch.models.domain.identity_domain import (
    IdentityRecord,
    NewVerificationAttempt,
    VerificationAttempt,
)
from dutywatch.repositories.base import (
    ATTEMPT_MUTABLE_FIELDS,
    SESSION_MUTABLE_FIELDS,
    SessionStore,
    check_fields,
)
from dutywatch.services.errors import StorageUnavailableError

logger = get_logger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS duty_sessions (
        id BIGSERIAL PRIMARY KEY,
        subject_id TEXT NOT NULL,
        scope_id TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('on_duty', 'paused', 'off_duty')),
        start_time TIMESTAMPTZ NOT NULL,
        end_time TIMESTAMPTZ,
        total_duration_seconds INTEGER,
        active_duration_seconds INTEGER NOT NULL DEFAULT 0 CHECK (active_duration_seconds >= 0),
        last_paused_at TIMESTAMPTZ,
        last_resumed_at TIMESTAMPTZ
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS duty_sessions_one_active
        ON duty_sessions (subject_id, scope_id)
        WHERE status IN ('on_duty', 'paused')
    """,
    """
    CREATE TABLE IF NOT EXISTS identities (
        subject_id TEXT PRIMARY KEY,
        display_name TEXT NOT NULL,
        scope_id TEXT NOT NULL,
        is_verified BOOLEAN NOT NULL DEFAULT FALSE,
        external_id TEXT,
        external_name TEXT,
        pending_challenge_code TEXT,
        verified_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS verification_attempts (
        id BIGSERIAL PRIMARY KEY,
        subject_id TEXT NOT NULL,
        scope_id TEXT NOT NULL,
        external_name TEXT NOT NULL,
        external_id TEXT,
        challenge_code TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        verified_at TIMESTAMPTZ,
        is_verified BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS verification_attempts_subject_created
        ON verification_attempts (subject_id, created_at DESC)
    """,
]

SESSION_COLUMNS = """
    id, subject_id, scope_id, status, start_time, end_time, total_duration_seconds,
    active_duration_seconds, last_paused_at, last_resumed_at
"""

ATTEMPT_COLUMNS = """
    id, subject_id, scope_id, external_name, external_id, challenge_code, created_at,
    verified_at, is_verified
"""


def _unavailable(e: DatabaseError) -> StorageUnavailableError:
    return StorageUnavailableError(f"Session store unavailable: {e}", operation=e.operation)


def _update_statement(table: str, columns: str, fields: dict[str, Any]) -> sql.Composed:
    assignments = sql.SQL(", ").join(
        sql.SQL("{} = {}").format(sql.Identifier(name), sql.Placeholder()) for name in fields
    )
    return sql.SQL("UPDATE {} SET {} WHERE id = %s RETURNING " + columns).format(
        sql.Identifier(table), assignments
    )


class PostgresSessionStore(SessionStore):
    name = "postgres"

    def __init__(self, pool: DatabasePoolManager | None = None):
        self._pool = pool or DatabasePoolManager()

    async def initialize(self) -> None:
        await self._pool.initialize()
        try:
            await execute_script(self._pool, SCHEMA_STATEMENTS)
        except DatabaseError as e:
            raise _unavailable(e) from e
        logger.info("PostgreSQL session store ready")

    async def close(self) -> None:
        await self._pool.close()

    async def get_active_session(self, subject_id: str, scope_id: str) -> DutySession | None:
        query = f"""
            SELECT {SESSION_COLUMNS}
            FROM duty_sessions
            WHERE subject_id = %s AND scope_id = %s AND status IN ('on_duty', 'paused')
            LIMIT 1
        """
        try:
            row = await fetch_one(self._pool, query, (subject_id, scope_id))
        except DatabaseError as e:
            raise _unavailable(e) from e
        return DutySession(**row) if row else None

    async def list_active_sessions(self, scope_id: str) -> list[DutySession]:
        query = f"""
            SELECT {SESSION_COLUMNS}
            FROM duty_sessions
            WHERE scope_id = %s AND status IN ('on_duty', 'paused')
            ORDER BY start_time
        """
        try:
            rows = await fetch_all(self._pool, query, (scope_id,))
        except DatabaseError as e:
            raise _unavailable(e) from e
        return [DutySession(**row) for row in rows]

    async def create_session(self, session: NewDutySession) -> DutySession:
        query = f"""
            INSERT INTO duty_sessions (subject_id, scope_id, status, start_time, active_duration_seconds)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {SESSION_COLUMNS}
        """
        params = (
            session.subject_id,
            session.scope_id,
            session.status,
            session.start_time,
            session.active_duration_seconds,
        )
        try:
            row = await fetch_one(self._pool, query, params)
        except DatabaseError as e:
            raise _unavailable(e) from e
        return DutySession(**row)

    async def update_session(self, session_id: int, **fields: Any) -> DutySession | None:
        check_fields(fields, SESSION_MUTABLE_FIELDS)
        if not fields:
            return await self.get_session(session_id)

        query = _update_statement("duty_sessions", SESSION_COLUMNS, fields)
        try:
            row = await fetch_one(self._pool, query, (*fields.values(), session_id))
        except DatabaseError as e:
            raise _unavailable(e) from e
        return DutySession(**row) if row else None

    async def get_session(self, session_id: int) -> DutySession | None:
        query = f"SELECT {SESSION_COLUMNS} FROM duty_sessions WHERE id = %s"
        try:
            row = await fetch_one(self._pool, query, (session_id,))
        except DatabaseError as e:
            raise _unavailable(e) from e
        return DutySession(**row) if row else None

    async def get_session_history(
        self, subject_id: str, scope_id: str, limit: int = 10
    ) -> list[DutySession]:
        query = f"""
            SELECT {SESSION_COLUMNS}
            FROM duty_sessions
            WHERE subject_id = %s AND scope_id = %s AND status = 'off_duty'
            ORDER BY end_time DESC NULLS LAST
            LIMIT %s
        """
        try:
            rows = await fetch_all(self._pool, query, (subject_id, scope_id, limit))
        except DatabaseError as e:
            raise _unavailable(e) from e
        return [DutySession(**row) for row in rows]

    async def get_identity(self, subject_id: str) -> IdentityRecord | None:
        query = """
            SELECT subject_id, display_name, scope_id, is_verified, external_id,
                   external_name, pending_challenge_code, verified_at
            FROM identities
            WHERE subject_id = %s
        """
        try:
            row = await fetch_one(self._pool, query, (subject_id,))
        except DatabaseError as e:
            raise _unavailable(e) from e
        return IdentityRecord(**row) if row else None

    async def upsert_identity(self, record: IdentityRecord) -> IdentityRecord:
        query = """
            INSERT INTO identities (
                subject_id, display_name, scope_id, is_verified, external_id,
                external_name, pending_challenge_code, verified_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (subject_id)
            DO UPDATE SET
                display_name = EXCLUDED.display_name,
                scope_id = EXCLUDED.scope_id,
                is_verified = EXCLUDED.is_verified,
                external_id = EXCLUDED.external_id,
                external_name = EXCLUDED.external_name,
                pending_challenge_code = EXCLUDED.pending_challenge_code,
                verified_at = EXCLUDED.verified_at
            RETURNING subject_id, display_name, scope_id, is_verified, external_id,
                      external_name, pending_challenge_code, verified_at
        """
        params = (
            record.subject_id,
            record.display_name,
            record.scope_id,
            record.is_verified,
            record.external_id,
            record.external_name,
            record.pending_challenge_code,
            record.verified_at,
        )
        try:
            row = await fetch_one(self._pool, query, params)
        except DatabaseError as e:
            raise _unavailable(e) from e
        return IdentityRecord(**row)

    async def create_attempt(self, attempt: NewVerificationAttempt) -> VerificationAttempt:
        query = f"""
            INSERT INTO verification_attempts (
                subject_id, scope_id, external_name, external_id, challenge_code, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {ATTEMPT_COLUMNS}
        """
        params = (
            attempt.subject_id,
            attempt.scope_id,
            attempt.external_name,
            attempt.external_id,
            attempt.challenge_code,
            attempt.created_at,
        )
        try:
            row = await fetch_one(self._pool, query, params)
        except DatabaseError as e:
            raise _unavailable(e) from e
        return VerificationAttempt(**row)

    async def update_attempt(self, attempt_id: int, **fields: Any) -> VerificationAttempt | None:
        check_fields(fields, ATTEMPT_MUTABLE_FIELDS)
        if not fields:
            return None

        query = _update_statement("verification_attempts", ATTEMPT_COLUMNS, fields)
        try:
            row = await fetch_one(self._pool, query, (*fields.values(), attempt_id))
        except DatabaseError as e:
            raise _unavailable(e) from e
        return VerificationAttempt(**row) if row else None

    async def get_latest_attempt(self, subject_id: str) -> VerificationAttempt | None:
        query = f"""
            SELECT {ATTEMPT_COLUMNS}
            FROM verification_attempts
            WHERE subject_id = %s
            ORDER BY created_at DESC, id DESC
            LIMIT 1
        """
        try:
            row = await fetch_one(self._pool, query, (subject_id,))
        except DatabaseError as e:
            raise _unavailable(e) from e
        return VerificationAttempt(**row) if row else None

    async def health_check(self) -> dict[str, Any]:
        return await self._pool.health_check()
