"""
In-memory SessionStore used when no DATABASE_URL is configured.

State lives for the process lifetime only. All methods run without awaiting
anything, so each call is atomic with respect to other asyncio tasks.
"""

import itertools
from datetime import UTC, datetime
from typing import Any

from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.models.domain.duty_domain import OFF_DUTY, DutySession, NewDutySession
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

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


class InMemorySessionStore(SessionStore):
    name = "memory"

    def __init__(self):
        self._ids = itertools.count(1)
        self._sessions: dict[int, DutySession] = {}
        self._identities: dict[str, IdentityRecord] = {}
        self._attempts: dict[int, VerificationAttempt] = {}

    async def get_active_session(self, subject_id: str, scope_id: str) -> DutySession | None:
        for session in self._sessions.values():
            if session.subject_id == subject_id and session.scope_id == scope_id and session.is_active():
                return session
        return None

    async def list_active_sessions(self, scope_id: str) -> list[DutySession]:
        return [s for s in self._sessions.values() if s.scope_id == scope_id and s.is_active()]

    async def create_session(self, session: NewDutySession) -> DutySession:
        if session.status != OFF_DUTY and await self.get_active_session(
            session.subject_id, session.scope_id
        ):
            raise ValueError("An active session already exists for this subject and scope")

        created = DutySession(id=next(self._ids), **session.model_dump())
        self._sessions[created.id] = created
        return created

    async def update_session(self, session_id: int, **fields: Any) -> DutySession | None:
        check_fields(fields, SESSION_MUTABLE_FIELDS)
        current = self._sessions.get(session_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        self._sessions[session_id] = updated
        return updated

    async def get_session(self, session_id: int) -> DutySession | None:
        return self._sessions.get(session_id)

    async def get_session_history(
        self, subject_id: str, scope_id: str, limit: int = 10
    ) -> list[DutySession]:
        finished = [
            s
            for s in self._sessions.values()
            if s.subject_id == subject_id and s.scope_id == scope_id and s.status == OFF_DUTY
        ]
        finished.sort(key=lambda s: s.end_time or _EPOCH, reverse=True)
        return finished[:limit]

    async def get_identity(self, subject_id: str) -> IdentityRecord | None:
        return self._identities.get(subject_id)

    async def upsert_identity(self, record: IdentityRecord) -> IdentityRecord:
        self._identities[record.subject_id] = record
        return record

    async def create_attempt(self, attempt: NewVerificationAttempt) -> VerificationAttempt:
        created = VerificationAttempt(id=next(self._ids), **attempt.model_dump())
        self._attempts[created.id] = created
        return created

    async def update_attempt(self, attempt_id: int, **fields: Any) -> VerificationAttempt | None:
        check_fields(fields, ATTEMPT_MUTABLE_FIELDS)
        current = self._attempts.get(attempt_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields)
        self._attempts[attempt_id] = updated
        return updated

    async def get_latest_attempt(self, subject_id: str) -> VerificationAttempt | None:
        attempts = [a for a in self._attempts.values() if a.subject_id == subject_id]
        if not attempts:
            return None
        # id breaks ties between attempts created in the same instant
        return max(attempts, key=lambda a: (a.created_at, a.id))

    async def health_check(self) -> dict[str, Any]:
        return {
            "healthy": True,
            "service": "memory_store",
            "sessions": len(self._sessions),
            "identities": len(self._identities),
            "attempts": len(self._attempts),
        }
