"""
SessionStore contract.

The engines are written only against this interface. Implementations raise
StorageUnavailableError for any backend failure and never cache across calls.
"""

from abc import ABC, abstractmethod
from typing import Any

from dutywatch.models.domain.duty_domain import DutySession, NewDutySession
from dutywatch.models.domain.identity_domain import (
    IdentityRecord,
    NewVerificationAttempt,
    VerificationAttempt,
)

# Columns an engine may change after creation
SESSION_MUTABLE_FIELDS = frozenset(
    {
        "status",
        "end_time",
        "total_duration_seconds",
        "active_duration_seconds",
        "last_paused_at",
        "last_resumed_at",
    }
)
ATTEMPT_MUTABLE_FIELDS = frozenset({"is_verified", "verified_at", "external_id"})


class SessionStore(ABC):
    """Keyed persistence for duty sessions, identities and verification attempts."""

    name: str = "store"

    # Duty sessions

    @abstractmethod
    async def get_active_session(self, subject_id: str, scope_id: str) -> DutySession | None:
        """The on_duty or paused session for the key, if any."""

    @abstractmethod
    async def list_active_sessions(self, scope_id: str) -> list[DutySession]: ...

    @abstractmethod
    async def create_session(self, session: NewDutySession) -> DutySession: ...

    @abstractmethod
    async def update_session(self, session_id: int, **fields: Any) -> DutySession | None:
        """Apply a partial update; returns None if the id is unknown."""

    @abstractmethod
    async def get_session(self, session_id: int) -> DutySession | None: ...

    @abstractmethod
    async def get_session_history(
        self, subject_id: str, scope_id: str, limit: int = 10
    ) -> list[DutySession]:
        """Completed sessions, most recently ended first."""

    # Identities and attempts

    @abstractmethod
    async def get_identity(self, subject_id: str) -> IdentityRecord | None: ...

    @abstractmethod
    async def upsert_identity(self, record: IdentityRecord) -> IdentityRecord: ...

    @abstractmethod
    async def create_attempt(self, attempt: NewVerificationAttempt) -> VerificationAttempt: ...

    @abstractmethod
    async def update_attempt(self, attempt_id: int, **fields: Any) -> VerificationAttempt | None: ...

    @abstractmethod
    async def get_latest_attempt(self, subject_id: str) -> VerificationAttempt | None:
        """Attempt with the greatest created_at for the subject."""

    # Lifecycle

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def health_check(self) -> dict[str, Any]: ...


def check_fields(fields: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Fields not updatable: {', '.join(sorted(unknown))}")
