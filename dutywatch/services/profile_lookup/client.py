"""
Roblox profile lookup client.

Looks up users by name, reads profile descriptions and avatar thumbnails.
Every request passes through the shared ProfileRateLimiter. When ROBLOX_COOKIE
is configured, requests are first sent with the .ROBLOSECURITY cookie, which
Roblox rate limits less harshly; the first authorization failure disables the
cookie for the rest of the process and the call is repeated on the public path.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from dutywatch.config import Settings, settings
from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.models.domain.identity_domain import ExternalIdentity
from dutywatch.services.profile_lookup.errors import (
    AuthInvalidError,
    ProfileLookupError,
    ProfileNotFoundError,
    RateLimitedError,
    TransientLookupError,
)
from dutywatch.services.profile_lookup.rate_limiter import ProfileRateLimiter

logger = get_logger(__name__)

SEARCH_LIMIT = 10
AVATAR_SIZE = "150x150"

# Transport-level retries inside a single client call
MAX_TRANSPORT_RETRIES = 2
BACKOFF_FACTOR = 1.0

USER_AGENT = "dutywatch/0.1 (+profile verification)"


class ProfileLookupClient:
    """
    Client for the Roblox users and thumbnails APIs.

    Operations raise ProfileLookupError subclasses; fetch_avatar never raises.
    """

    def __init__(
        self,
        config: Settings | None = None,
        *,
        rate_limiter: ProfileRateLimiter | None = None,
        cookie: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        config = config or settings
        self.users_api_url = config.ROBLOX_USERS_API_URL.rstrip("/")
        self.thumbnails_api_url = config.ROBLOX_THUMBNAILS_API_URL.rstrip("/")
        self.cookie = cookie if cookie is not None else config.ROBLOX_COOKIE
        self.rate_limiter = rate_limiter or ProfileRateLimiter(
            min_interval=config.PROFILE_MIN_REQUEST_INTERVAL_SECONDS,
            threshold=config.PROFILE_RATE_LIMIT_THRESHOLD,
            cooldown_seconds=config.PROFILE_RATE_LIMIT_COOLDOWN_SECONDS,
        )
        self._sleep = sleep
        self._client = self._create_client(config.PROFILE_REQUEST_TIMEOUT_SECONDS)

        # None until the cookie has been checked; False for the rest of the process once rejected
        self._privileged_valid: bool | None = None if self.cookie else False
        self._auth_lock = asyncio.Lock()
        self._csrf_token: str | None = None

    def _create_client(self, timeout_seconds: float) -> httpx.AsyncClient:
        timeout = httpx.Timeout(timeout_seconds)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @property
    def privileged_enabled(self) -> bool:
        return bool(self.cookie) and self._privileged_valid is not False

    def _headers(self, privileged: bool) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        if privileged:
            headers["Cookie"] = f".ROBLOSECURITY={self.cookie}"
            if self._csrf_token:
                headers["X-CSRF-TOKEN"] = self._csrf_token
        return headers

    async def _send(
        self, method: str, url: str, operation: str, *, privileged: bool, **kwargs
    ) -> httpx.Response:
        """Send one logical request, retrying transport errors and 5xx a bounded number of times."""
        for attempt in range(1, MAX_TRANSPORT_RETRIES + 1):
            await self.rate_limiter.acquire(operation)
            try:
                response = await self._client.request(
                    method, url, headers=self._headers(privileged), **kwargs
                )
            except httpx.RequestError as e:
                if attempt >= MAX_TRANSPORT_RETRIES:
                    logger.warning(
                        "Roblox request failed", operation=operation, error=str(e), attempt=attempt
                    )
                    raise TransientLookupError(
                        f"Roblox request failed: {type(e).__name__}", operation=operation
                    ) from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Roblox request error, retrying",
                    operation=operation,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await self._sleep(backoff)
                continue

            if response.status_code >= 500 and attempt < MAX_TRANSPORT_RETRIES:
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Roblox server error, retrying",
                    operation=operation,
                    attempt=attempt,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await self._sleep(backoff)
                continue

            return response

        raise TransientLookupError("Roblox retry loop exhausted", operation=operation)

    async def _handle_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Map a Roblox response to parsed JSON or a typed failure.

        Raises:
            RateLimitedError: 429
            ProfileNotFoundError: 404
            AuthInvalidError: 401/403
            TransientLookupError: 5xx or unparseable body
            ProfileLookupError: any other non-success status
        """
        status = response.status_code

        if response.is_success:
            await self.rate_limiter.record_success()
            try:
                return response.json() if response.content else {}
            except ValueError as e:
                logger.error("Failed to parse Roblox response", operation=operation, error=str(e))
                raise TransientLookupError(
                    f"Invalid response format: {e}", status_code=status, operation=operation
                ) from e

        if status == 429:
            retry_after = _retry_after_seconds(response)
            cooldown = await self.rate_limiter.record_rate_limited(retry_after)
            logger.warning(
                "Roblox rate limited request",
                operation=operation,
                retry_after=retry_after,
                cooldown_seconds=cooldown,
            )
            raise RateLimitedError(retry_after=cooldown or retry_after, operation=operation)

        if status == 404:
            raise ProfileNotFoundError(operation=operation)

        if status in (401, 403):
            raise AuthInvalidError(status_code=status, operation=operation)

        if status >= 500:
            raise TransientLookupError(
                f"Roblox service error (HTTP {status})", status_code=status, operation=operation
            )

        logger.error(
            "Roblox request rejected",
            operation=operation,
            status_code=status,
            response_text=response.text[:200] if response.text else "",
        )
        raise ProfileLookupError(
            f"Roblox request rejected (HTTP {status})",
            status_code=status,
            operation=operation,
            recoverable=False,
        )

    async def _validate_cookie(self) -> bool | None:
        """True/False when Roblox gave a definitive answer, None when it could not be asked."""
        url = f"{self.users_api_url}/v1/users/authenticated"
        try:
            response = await self._send("GET", url, "validate_cookie", privileged=True)
            await self._handle_response(response, "validate_cookie")
            return True
        except AuthInvalidError:
            return False
        except ProfileLookupError as e:
            logger.warning("Could not validate Roblox cookie", error=str(e))
            return None

    async def _privileged_available(self) -> bool:
        if not self.cookie or self._privileged_valid is False:
            return False
        if self._privileged_valid is None:
            async with self._auth_lock:
                if self._privileged_valid is None:
                    valid = await self._validate_cookie()
                    if valid is None:
                        return False
                    if valid:
                        self._privileged_valid = True
                        logger.info("Using authenticated Roblox API")
                    else:
                        self._disable_privileged("cookie validation failed")
        return bool(self._privileged_valid)

    def _disable_privileged(self, reason: str) -> None:
        if self._privileged_valid is False:
            return
        self._privileged_valid = False
        logger.warning("Roblox cookie rejected, falling back to public API", reason=reason)

    async def _privileged_request(self, method: str, url: str, operation: str, **kwargs) -> dict:
        response = await self._send(method, url, operation, privileged=True, **kwargs)

        # Roblox hands out a fresh CSRF token on 403; retry once with it
        token = response.headers.get("x-csrf-token")
        if response.status_code == 403 and token and token != self._csrf_token:
            self._csrf_token = token
            logger.debug("Received new Roblox CSRF token, retrying", operation=operation)
            response = await self._send(method, url, operation, privileged=True, **kwargs)

        return await self._handle_response(response, operation)

    async def _request(self, method: str, url: str, operation: str, **kwargs) -> dict:
        if await self._privileged_available():
            try:
                return await self._privileged_request(method, url, operation, **kwargs)
            except AuthInvalidError:
                self._disable_privileged(f"{operation} returned an authorization error")

        response = await self._send(method, url, operation, privileged=False, **kwargs)
        return await self._handle_response(response, operation)

    async def find_by_name(self, name: str) -> ExternalIdentity | None:
        """
        Find a Roblox user by exact (case-insensitive) username.

        Args:
            name: Username the subject claims to own

        Returns:
            ExternalIdentity or None when the search has no exact match
        """
        name = name.strip()
        if not name:
            return None

        data = await self._request(
            "GET",
            f"{self.users_api_url}/v1/users/search",
            "find_by_name",
            params={"keyword": name, "limit": SEARCH_LIMIT},
        )

        wanted = name.lower()
        for user in data.get("data") or []:
            if str(user.get("name", "")).lower() == wanted:
                logger.info("Roblox user found", external_name=user["name"], external_id=user["id"])
                return ExternalIdentity(
                    external_id=str(user["id"]),
                    external_name=user["name"],
                    display_name=user.get("displayName"),
                )

        logger.info("No exact Roblox username match", name=name)
        return None

    async def fetch_profile_text(self, external_id: str) -> str | None:
        """
        Read a user's profile description.

        Returns:
            The description; "" or None when the user has none
        """
        data = await self._request(
            "GET", f"{self.users_api_url}/v1/users/{external_id}", "fetch_profile_text"
        )
        return data.get("description")

    async def fetch_avatar(self, external_id: str) -> str | None:
        """Headshot thumbnail URL. Best effort: failures are logged and return None."""
        try:
            data = await self._request(
                "GET",
                f"{self.thumbnails_api_url}/v1/users/avatar-headshot",
                "fetch_avatar",
                params={"userIds": external_id, "size": AVATAR_SIZE, "format": "Png"},
            )
        except ProfileLookupError as e:
            logger.info("Avatar lookup failed", external_id=external_id, error=str(e))
            return None

        entries = data.get("data") or []
        if entries:
            return entries[0].get("imageUrl")
        return None

    async def health_check(self) -> dict[str, Any]:
        return {
            "healthy": True,
            "service": "roblox_profile_lookup",
            "privileged_configured": bool(self.cookie),
            "privileged_enabled": self.privileged_enabled,
            "rate_limit": await self.rate_limiter.snapshot(),
        }


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
