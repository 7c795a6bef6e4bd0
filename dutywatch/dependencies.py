"""
FastAPI dependencies resolving the services built during startup.

Typed on HTTPConnection so they work for both HTTP routes and the WebSocket.
Tests swap services through `app.dependency_overrides`.
"""

from starlette.requests import HTTPConnection

from dutywatch.config import settings
from dutywatch.repositories.base import SessionStore
from dutywatch.services.broadcaster import UpdateBroadcaster
from dutywatch.services.duty_session_service import DutySessionService
from dutywatch.services.profile_lookup.client import ProfileLookupClient
from dutywatch.services.verification.service import VerificationService


def get_store(connection: HTTPConnection) -> SessionStore:
    return connection.app.state.store


def get_broadcaster(connection: HTTPConnection) -> UpdateBroadcaster:
    return connection.app.state.broadcaster


def get_lookup_client(connection: HTTPConnection) -> ProfileLookupClient | None:
    return getattr(connection.app.state, "lookup_client", None)


def get_duty_service(connection: HTTPConnection) -> DutySessionService:
    return connection.app.state.duty_service


def get_verification_service(connection: HTTPConnection) -> VerificationService:
    return connection.app.state.verification_service


def resolve_scope(scope_id: str | None) -> str:
    """Map a missing or blank community id to the default partition."""
    if scope_id is None or not scope_id.strip():
        return settings.DEFAULT_SCOPE_ID
    return scope_id
