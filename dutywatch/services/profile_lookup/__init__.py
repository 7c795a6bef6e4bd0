"""
Roblox profile lookup: rate-limited HTTP client and its typed failures.
"""

from .client import ProfileLookupClient
from .errors import (
    AuthInvalidError,
    CooldownActiveError,
    ProfileLookupError,
    ProfileNotFoundError,
    RateLimitedError,
    TransientLookupError,
)
from .rate_limiter import ProfileRateLimiter, RateLimitState

__all__ = [
    "ProfileLookupClient",
    "ProfileRateLimiter",
    "RateLimitState",
    "ProfileLookupError",
    "ProfileNotFoundError",
    "RateLimitedError",
    "TransientLookupError",
    "AuthInvalidError",
    "CooldownActiveError",
]
