"""
Error taxonomy for the duty and verification engines.

Every failure that crosses the engine boundary is one of these. `recoverable`
tells the caller whether retrying the same operation later can succeed.
"""


class DutyWatchError(Exception):
    """Base exception for engine-level failures."""

    code = "dutywatch_error"

    def __init__(self, message: str, subject_id: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.subject_id = subject_id
        self.recoverable = recoverable


class StorageUnavailableError(DutyWatchError):
    """The session store could not complete the operation."""

    code = "storage_unavailable"

    def __init__(self, message: str, operation: str = "unknown", subject_id: str | None = None):
        super().__init__(message, subject_id=subject_id, recoverable=True)
        self.operation = operation


class NoActiveSessionError(DutyWatchError):
    code = "no_active_session"

    def __init__(self, subject_id: str, scope_id: str):
        super().__init__("You don't have an active duty session.", subject_id=subject_id)
        self.scope_id = scope_id


class NoPendingAttemptError(DutyWatchError):
    code = "no_pending_attempt"

    def __init__(self, subject_id: str):
        super().__init__(
            "No verification attempt found. Start verification with your Roblox username first.",
            subject_id=subject_id,
        )


class AlreadyVerifiedError(DutyWatchError):
    code = "already_verified"

    def __init__(self, subject_id: str, external_name: str | None):
        super().__init__(
            f"You are already verified as {external_name}. Reset your verification to use a "
            "different account.",
            subject_id=subject_id,
        )
        self.external_name = external_name


class NotVerifiedError(DutyWatchError):
    code = "not_verified"

    def __init__(self, subject_id: str):
        super().__init__("You are not verified yet.", subject_id=subject_id)


class ExternalIdentityNotFoundError(DutyWatchError):
    code = "external_identity_not_found"

    def __init__(self, subject_id: str, external_name: str, attempts: int):
        super().__init__(
            f"Could not find a Roblox user with the username {external_name} after "
            f"{attempts} attempts. Please check the spelling and try again later.",
            subject_id=subject_id,
        )
        self.external_name = external_name
        self.attempts = attempts


class CodeNotFoundError(DutyWatchError):
    """The profile was fetched but does not contain the challenge code."""

    code = "code_not_found"

    GUIDANCE = (
        "Put the exact code in your About section",
        "Save your profile after adding the code",
        "If Roblox filters the code, try adding spaces between characters",
        "Check that you are verifying the correct Roblox account",
    )

    def __init__(self, subject_id: str, challenge_code: str):
        super().__init__(
            "Verification code not found in your profile.",
            subject_id=subject_id,
        )
        self.challenge_code = challenge_code
        self.guidance = list(self.GUIDANCE)


class ExternalServiceUnavailableError(DutyWatchError):
    """The profile service kept failing for the whole retry budget."""

    code = "external_service_unavailable"

    def __init__(self, subject_id: str, attempts: int, last_error: str | None = None):
        super().__init__(
            "Roblox is not responding right now. Please try again in a few minutes.",
            subject_id=subject_id,
        )
        self.attempts = attempts
        self.last_error = last_error


class CouldNotVerifyError(DutyWatchError):
    """Profile text was unreachable and fallback verification is disabled."""

    code = "could_not_verify"

    def __init__(self, subject_id: str, attempts: int):
        super().__init__(
            "Your Roblox profile could not be read. Your code is still valid, please check again "
            "later.",
            subject_id=subject_id,
        )
        self.attempts = attempts
