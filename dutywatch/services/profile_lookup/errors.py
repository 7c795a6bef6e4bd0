"""
Typed failures for the Roblox profile lookup client.
"""


class ProfileLookupError(Exception):
    """Base exception for profile lookup failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        operation: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.operation = operation
        self.recoverable = recoverable


class ProfileNotFoundError(ProfileLookupError):
    """The requested Roblox user does not exist."""

    def __init__(self, message: str = "Roblox user not found", operation: str | None = None):
        super().__init__(message, status_code=404, operation=operation, recoverable=False)


class RateLimitedError(ProfileLookupError):
    """Roblox answered 429, or the client is cooling down after repeated 429s."""

    def __init__(
        self,
        message: str = "Too many requests to Roblox",
        retry_after: float | None = None,
        operation: str | None = None,
    ):
        super().__init__(message, status_code=429, operation=operation, recoverable=True)
        self.retry_after = retry_after


class TransientLookupError(ProfileLookupError):
    """Network failure, timeout, 5xx or unreadable response."""


class AuthInvalidError(ProfileLookupError):
    """The privileged credential was rejected."""

    def __init__(
        self,
        message: str = "Roblox credential rejected",
        status_code: int | None = None,
        operation: str | None = None,
    ):
        super().__init__(message, status_code=status_code, operation=operation, recoverable=False)


class CooldownActiveError(RateLimitedError):
    """The client refused to send: a rate limit cooldown is still running."""

    def __init__(self, retry_after: float, operation: str | None = None):
        super().__init__(
            "Roblox rate limit cooldown in effect", retry_after=retry_after, operation=operation
        )
