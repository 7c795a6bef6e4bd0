"""
Tests for the in-memory session store.
"""

from datetime import UTC, datetime, timedelta

import pytest

from dutywatch.models.domain.duty_domain import NewDutySession
from dutywatch.models.domain.identity_domain import IdentityRecord, NewVerificationAttempt

T0 = datetime(2024, 1, 1, tzinfo=UTC)


@pytest.mark.asyncio
async def test_one_active_session_per_key(store):
    await store.create_session(NewDutySession(subject_id="U1", scope_id="G1", start_time=T0))

    with pytest.raises(ValueError):
        await store.create_session(NewDutySession(subject_id="U1", scope_id="G1", start_time=T0))

    other_scope = await store.create_session(
        NewDutySession(subject_id="U1", scope_id="G2", start_time=T0)
    )
    assert other_scope.scope_id == "G2"


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(store):
    session = await store.create_session(
        NewDutySession(subject_id="U1", scope_id="G1", start_time=T0)
    )

    with pytest.raises(ValueError):
        await store.update_session(session.id, subject_id="U2")

    assert await store.update_session(9999, status="paused") is None


@pytest.mark.asyncio
async def test_latest_attempt_is_most_recent(store):
    for offset, code in ((0, "VERIFYAAAAAA"), (60, "VERIFYBBBBBB")):
        await store.create_attempt(
            NewVerificationAttempt(
                subject_id="U1",
                scope_id="G1",
                external_name="Builderman",
                challenge_code=code,
                created_at=T0 + timedelta(seconds=offset),
            )
        )

    latest = await store.get_latest_attempt("U1")

    assert latest.challenge_code == "VERIFYBBBBBB"
    assert await store.get_latest_attempt("U2") is None


@pytest.mark.asyncio
async def test_upsert_identity_replaces_record(store):
    await store.upsert_identity(IdentityRecord(subject_id="U1", display_name="A", scope_id="G1"))
    await store.upsert_identity(IdentityRecord(subject_id="U1", display_name="B", scope_id="G1"))

    assert (await store.get_identity("U1")).display_name == "B"
    health = await store.health_check()
    assert health["healthy"] is True
    assert health["identities"] == 1


def test_verified_identity_requires_binding():
    with pytest.raises(ValueError):
        IdentityRecord(subject_id="U1", display_name="A", scope_id="G1", is_verified=True)
