"""
Roblox profile verification workflow.

A subject claims a Roblox username, receives a challenge code, pastes it into
the profile description, and asks for a check. Lookups and profile reads are
retried with exponential backoff; progress callbacks let the front end show
"still looking" messages while that happens.

When Roblox cannot be reached at all during a check, verification succeeds
through the fallback path (if enabled) instead of blocking the subject on an
outage. A profile that was read but lacks the code is never accepted.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Protocol

from dutywatch.config import settings
from dutywatch.infrastructure.observability.logging import get_logger, log_state_transition
from dutywatch.models.domain.events import verify_event
from dutywatch.models.domain.identity_domain import (
    ExternalIdentity,
    IdentityRecord,
    NewVerificationAttempt,
    VerificationAttempt,
    VerificationChallengeResult,
    VerificationCheckResult,
    VerificationProgress,
)
from dutywatch.repositories.base import SessionStore
from dutywatch.services.broadcaster import UpdateBroadcaster
from dutywatch.services.duty_session_service import NowFn, utc_now
from dutywatch.services.errors import (
    AlreadyVerifiedError,
    CodeNotFoundError,
    CouldNotVerifyError,
    ExternalIdentityNotFoundError,
    ExternalServiceUnavailableError,
    NoPendingAttemptError,
    NotVerifiedError,
)
from dutywatch.services.locks import KeyedLocks
from dutywatch.services.profile_lookup.errors import (
    CooldownActiveError,
    ProfileLookupError,
    ProfileNotFoundError,
)
from dutywatch.services.verification.challenge import (
    code_matches,
    generate_code,
    verification_instructions,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[VerificationProgress], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


class ProfileLookup(Protocol):
    async def find_by_name(self, name: str) -> ExternalIdentity | None: ...

    async def fetch_profile_text(self, external_id: str) -> str | None: ...

    async def fetch_avatar(self, external_id: str) -> str | None: ...


class VerificationService:
    """
    Service for binding subjects to Roblox accounts.

    Only this service writes identity and verification attempt records.
    """

    def __init__(
        self,
        store: SessionStore,
        lookup: ProfileLookup,
        broadcaster: UpdateBroadcaster,
        now_fn: NowFn = utc_now,
        sleep: SleepFn = asyncio.sleep,
        max_attempts: int | None = None,
        backoff_base: float | None = None,
        allow_fallback: bool | None = None,
    ):
        self.store = store
        self.lookup = lookup
        self.broadcaster = broadcaster
        self.now_fn = now_fn
        self._sleep = sleep
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.VERIFICATION_MAX_ATTEMPTS
        )
        self.backoff_base = (
            backoff_base if backoff_base is not None else settings.VERIFICATION_BACKOFF_BASE_SECONDS
        )
        self.allow_fallback = (
            allow_fallback if allow_fallback is not None else settings.VERIFICATION_ALLOW_FALLBACK
        )
        self._locks = KeyedLocks()

    async def _notify(
        self, on_progress: ProgressCallback | None, progress: VerificationProgress
    ) -> None:
        if on_progress is None:
            return
        try:
            await on_progress(progress)
        except Exception as e:
            # A dead progress channel must not abort the verification itself
            logger.warning(
                "Progress callback failed", stage=progress.stage, error=str(e), exc_info=True
            )

    async def _backoff(
        self, stage: str, attempt: int, message: str, on_progress: ProgressCallback | None
    ) -> None:
        """Announce and wait before retry number `attempt` (2..max_attempts)."""
        delay = self.backoff_base * (2 ** (attempt - 2))
        await self._notify(
            on_progress,
            VerificationProgress(
                stage=stage,
                attempt=attempt,
                max_attempts=self.max_attempts,
                message=f"Retry {attempt - 1}/{self.max_attempts - 1}: {message}",
            ),
        )
        logger.info("Retrying Roblox call", stage=stage, attempt=attempt, delay_seconds=delay)
        await self._sleep(delay)

    async def _resolve_identity(
        self, subject_id: str, external_name: str, on_progress: ProgressCallback | None
    ) -> ExternalIdentity:
        """
        Look up a username, retrying up to max_attempts times.

        Raises:
            ExternalIdentityNotFoundError: Roblox answered and never found the name
            ExternalServiceUnavailableError: Every attempt failed with an error
        """
        answered = False
        last_error: ProfileLookupError | None = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                await self._backoff(
                    "lookup", attempt, f"Looking up Roblox user {external_name}...", on_progress
                )
            try:
                found = await self.lookup.find_by_name(external_name)
            except ProfileNotFoundError:
                answered = True
                continue
            except ProfileLookupError as e:
                last_error = e
                logger.warning(
                    "Roblox user lookup failed",
                    subject_id=subject_id,
                    external_name=external_name,
                    attempt=attempt,
                    error=str(e),
                )
                if not e.recoverable:
                    break
                continue

            answered = True
            if found is not None:
                return found

        if answered:
            raise ExternalIdentityNotFoundError(subject_id, external_name, self.max_attempts)
        raise ExternalServiceUnavailableError(
            subject_id, self.max_attempts, str(last_error) if last_error else None
        )

    async def request_verification(
        self,
        subject_id: str,
        scope_id: str,
        claimed_external_name: str,
        display_name: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> VerificationChallengeResult:
        """
        Resolve the claimed username and issue a fresh challenge code.

        Args:
            subject_id: Chat user id
            scope_id: Community id
            claimed_external_name: Roblox username the subject claims
            display_name: Chat display name stored on the identity record
            on_progress: Awaited before each lookup retry

        Returns:
            VerificationChallengeResult with code and instructions

        Raises:
            AlreadyVerifiedError: Subject is already bound to an account
            ExternalIdentityNotFoundError: No such Roblox user
            ExternalServiceUnavailableError: Roblox unreachable for every attempt
        """
        async with self._locks.hold(subject_id):
            existing = await self.store.get_identity(subject_id)
            if existing is not None and existing.is_verified:
                raise AlreadyVerifiedError(subject_id, existing.external_name)

            external = await self._resolve_identity(
                subject_id, claimed_external_name.strip(), on_progress
            )
            avatar_url = await self._avatar(external.external_id)
            if avatar_url:
                external = external.model_copy(update={"avatar_url": avatar_url})

            code = generate_code()
            now = self.now_fn()

            if existing is None:
                record = IdentityRecord(
                    subject_id=subject_id,
                    display_name=display_name or subject_id,
                    scope_id=scope_id,
                    pending_challenge_code=code,
                )
            else:
                record = existing.model_copy(
                    update={
                        "display_name": display_name or existing.display_name,
                        "scope_id": scope_id,
                        "pending_challenge_code": code,
                    }
                )
            await self.store.upsert_identity(record)

            attempt = await self.store.create_attempt(
                NewVerificationAttempt(
                    subject_id=subject_id,
                    scope_id=scope_id,
                    external_name=external.external_name,
                    external_id=external.external_id,
                    challenge_code=code,
                    created_at=now,
                )
            )

            logger.info(
                "Verification challenge issued",
                subject_id=subject_id,
                scope_id=scope_id,
                external_name=external.external_name,
                external_id=external.external_id,
                attempt_id=attempt.id,
            )
            return VerificationChallengeResult(
                subject_id=subject_id,
                external_identity=external,
                challenge_code=code,
                instructions=verification_instructions(code),
                attempt_id=attempt.id,
            )

    async def check_verification(
        self, subject_id: str, on_progress: ProgressCallback | None = None
    ) -> VerificationCheckResult:
        """
        Confirm the challenge code is in the subject's Roblox profile.

        Checking an already verified attempt returns the existing binding
        without emitting another event.

        Raises:
            NoPendingAttemptError: No attempt to check
            CodeNotFoundError: Profile was read and lacks the code
            CouldNotVerifyError: Profile unreadable and fallback disabled
            ExternalIdentityNotFoundError: The Roblox account no longer exists
            ExternalServiceUnavailableError: The account id could not be resolved, Roblox
                rejected the request outright, or no request ever left the client
        """
        async with self._locks.hold(subject_id):
            attempt = await self.store.get_latest_attempt(subject_id)
            if attempt is None:
                raise NoPendingAttemptError(subject_id)

            identity = await self.store.get_identity(subject_id)
            if attempt.is_verified:
                if identity is not None and identity.is_verified:
                    return self._already_verified(identity, attempt)
                # Consumed by an earlier check and since reset
                raise NoPendingAttemptError(subject_id)

            external_id = attempt.external_id
            if external_id is None:
                resolved = await self._resolve_identity(
                    subject_id, attempt.external_name, on_progress
                )
                external_id = resolved.external_id

            fetched = False
            reached = False
            last_error: ProfileLookupError | None = None
            for number in range(1, self.max_attempts + 1):
                if number > 1:
                    await self._backoff(
                        "check", number, "Checking your Roblox profile...", on_progress
                    )
                try:
                    profile_text = await self.lookup.fetch_profile_text(external_id)
                except ProfileNotFoundError as e:
                    raise ExternalIdentityNotFoundError(
                        subject_id, attempt.external_name, number
                    ) from e
                except ProfileLookupError as e:
                    last_error = e
                    logger.warning(
                        "Roblox profile read failed",
                        subject_id=subject_id,
                        external_id=external_id,
                        attempt=number,
                        error=str(e),
                    )
                    if not isinstance(e, CooldownActiveError):
                        reached = True
                    if not e.recoverable:
                        raise ExternalServiceUnavailableError(subject_id, number, str(e)) from e
                    continue

                fetched = True
                if code_matches(profile_text, attempt.challenge_code):
                    return await self._complete(identity, attempt, external_id, via_fallback=False)
                logger.info(
                    "Challenge code not in profile",
                    subject_id=subject_id,
                    external_id=external_id,
                    attempt=number,
                )

            if fetched:
                raise CodeNotFoundError(subject_id, attempt.challenge_code)

            if not reached:
                # Every attempt was refused locally by the rate limit cooldown
                raise ExternalServiceUnavailableError(
                    subject_id, self.max_attempts, str(last_error) if last_error else None
                )

            if not self.allow_fallback:
                logger.warning(
                    "Profile unreadable, fallback disabled",
                    subject_id=subject_id,
                    last_error=str(last_error) if last_error else None,
                )
                raise CouldNotVerifyError(subject_id, self.max_attempts)

            logger.warning(
                "Profile unreadable, verifying through fallback",
                subject_id=subject_id,
                external_id=external_id,
                last_error=str(last_error) if last_error else None,
            )
            return await self._complete(identity, attempt, external_id, via_fallback=True)

    async def _complete(
        self,
        identity: IdentityRecord | None,
        attempt: VerificationAttempt,
        external_id: str,
        via_fallback: bool,
    ) -> VerificationCheckResult:
        now = self.now_fn()
        external = ExternalIdentity(
            external_id=external_id,
            external_name=attempt.external_name,
            avatar_url=await self._avatar(external_id),
        )

        if identity is None:
            identity = IdentityRecord(
                subject_id=attempt.subject_id,
                display_name=attempt.subject_id,
                scope_id=attempt.scope_id,
            )
        verified = identity.model_copy(
            update={
                "is_verified": True,
                "external_id": external_id,
                "external_name": attempt.external_name,
                "verified_at": now,
                "pending_challenge_code": None,
            }
        )
        await self.store.upsert_identity(IdentityRecord.model_validate(verified.model_dump()))
        await self.store.update_attempt(
            attempt.id, is_verified=True, verified_at=now, external_id=external_id
        )

        log_state_transition(
            "verify",
            attempt.subject_id,
            attempt.scope_id,
            external_id=external_id,
            external_name=attempt.external_name,
            via_fallback=via_fallback,
        )
        self.broadcaster.publish(
            verify_event(attempt.subject_id, attempt.scope_id, external, via_fallback)
        )

        return VerificationCheckResult(
            subject_id=attempt.subject_id,
            scope_id=attempt.scope_id,
            external_identity=external,
            verified_at=now,
            via_fallback=via_fallback,
        )

    def _already_verified(
        self, identity: IdentityRecord, attempt: VerificationAttempt
    ) -> VerificationCheckResult:
        return VerificationCheckResult(
            subject_id=identity.subject_id,
            scope_id=identity.scope_id,
            external_identity=ExternalIdentity(
                external_id=identity.external_id,
                external_name=identity.external_name,
            ),
            verified_at=identity.verified_at or attempt.verified_at,
            already_verified=True,
        )

    async def _avatar(self, external_id: str) -> str | None:
        try:
            return await self.lookup.fetch_avatar(external_id)
        except ProfileLookupError as e:
            logger.info("Avatar unavailable", external_id=external_id, error=str(e))
            return None

    async def cancel_verification(self, subject_id: str) -> dict[str, Any]:
        """Acknowledge a cancellation. Pending attempts expire on their own."""
        attempt = await self.store.get_latest_attempt(subject_id)
        pending = attempt is not None and not attempt.is_verified
        logger.info("Verification cancelled", subject_id=subject_id, had_pending_attempt=pending)
        return {
            "subject_id": subject_id,
            "cancelled": True,
            "had_pending_attempt": pending,
            "message": "Verification cancelled. You can start again at any time.",
        }

    async def reset_verification(self, subject_id: str) -> IdentityRecord:
        """
        Clear the Roblox binding so the subject can verify another account.

        Raises:
            NotVerifiedError: Subject is not currently verified
        """
        async with self._locks.hold(subject_id):
            identity = await self.store.get_identity(subject_id)
            if identity is None or not identity.is_verified:
                raise NotVerifiedError(subject_id)

            previous_name = identity.external_name
            cleared = identity.model_copy(
                update={
                    "is_verified": False,
                    "external_id": None,
                    "external_name": None,
                    "verified_at": None,
                    "pending_challenge_code": None,
                }
            )
            await self.store.upsert_identity(cleared)
            logger.info(
                "Verification reset", subject_id=subject_id, previous_external_name=previous_name
            )
            return cleared

    async def get_identity(self, subject_id: str) -> IdentityRecord | None:
        return await self.store.get_identity(subject_id)
