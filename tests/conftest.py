from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI

from dutywatch.middleware.request_context import RequestContextMiddleware
from dutywatch.models.domain.identity_domain import ExternalIdentity
from dutywatch.repositories.memory_store import InMemorySessionStore
from dutywatch.routes import duty, health, updates, verification
from dutywatch.routes.errors import register_error_handlers
from dutywatch.services.broadcaster import UpdateBroadcaster
from dutywatch.services.duty_session_service import DutySessionService
from dutywatch.services.verification.service import VerificationService

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingBroadcaster(UpdateBroadcaster):
    def __init__(self):
        super().__init__(queue_size=10)
        self.events = []

    def publish(self, event):
        self.events.append(event)
        return super().publish(event)

    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]


class ScriptedLookup:
    """
    Stand-in for ProfileLookupClient.

    Each script entry is a return value, or an exception instance to raise.
    The last entry repeats once the script runs out.
    """

    def __init__(self, find=None, profile=None, avatar="https://tr.rbxcdn.com/avatar.png"):
        self.find_script = list(find or [])
        self.profile_script = list(profile or [])
        self.avatar = avatar
        self.find_calls: list[str] = []
        self.profile_calls: list[str] = []

    @staticmethod
    def _next(script):
        value = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(value, Exception):
            raise value
        return value

    async def find_by_name(self, name: str):
        self.find_calls.append(name)
        return self._next(self.find_script)

    async def fetch_profile_text(self, external_id: str):
        self.profile_calls.append(external_id)
        return self._next(self.profile_script)

    async def fetch_avatar(self, external_id: str):
        return self.avatar


def roblox_user(name: str = "Builderman", external_id: str = "156") -> ExternalIdentity:
    return ExternalIdentity(external_id=external_id, external_name=name, display_name=name)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def duty_service(store, broadcaster, clock):
    return DutySessionService(store, broadcaster, now_fn=clock)


@pytest.fixture
def lookup():
    return ScriptedLookup(find=[roblox_user()], profile=[""])


@pytest.fixture
def make_verification_service(store, broadcaster, clock, sleep):
    def _make(lookup, allow_fallback: bool = True):
        return VerificationService(
            store,
            lookup,
            broadcaster,
            now_fn=clock,
            sleep=sleep,
            max_attempts=3,
            backoff_base=3.0,
            allow_fallback=allow_fallback,
        )

    return _make


@pytest.fixture
def verification_service(make_verification_service, lookup):
    return make_verification_service(lookup)


@pytest.fixture
def make_app(store, broadcaster):
    """FastAPI app with every router wired to the test services, without the lifespan."""

    def _make(duty_service, verification_service, lookup_client=None):
        app = FastAPI()
        app.add_middleware(RequestContextMiddleware)
        register_error_handlers(app)
        app.include_router(health.router)
        app.include_router(duty.router)
        app.include_router(verification.router)
        app.include_router(updates.router)

        app.state.store = store
        app.state.broadcaster = broadcaster
        app.state.lookup_client = lookup_client
        app.state.duty_service = duty_service
        app.state.verification_service = verification_service
        return app

    return _make


@pytest.fixture
def make_lookup():
    return ScriptedLookup


@pytest.fixture
def make_user():
    return roblox_user
