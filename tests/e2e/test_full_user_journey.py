import httpx
from fastapi.testclient import TestClient

from dutywatch.services.profile_lookup.client import ProfileLookupClient
from dutywatch.services.profile_lookup.rate_limiter import ProfileRateLimiter

USERS = "https://users.roblox.com"
AVATAR_URL = (
    "https://thumbnails.roblox.com/v1/users/avatar-headshot?userIds=156&size=150x150&format=Png"
)


def test_verify_then_work_a_shift(
    httpx_mock, make_app, make_verification_service, duty_service, clock, sleep
):
    lookup = ProfileLookupClient(
        rate_limiter=ProfileRateLimiter(min_interval=0.0, sleep=sleep), cookie="", sleep=sleep
    )
    app = make_app(duty_service, make_verification_service(lookup), lookup_client=lookup)
    profile = {"description": ""}

    httpx_mock.add_response(
        method="GET",
        url=f"{USERS}/v1/users/search?keyword=builderman&limit=10",
        json={"data": [{"id": 156, "name": "Builderman", "displayName": "Builderman"}]},
    )
    for _ in range(2):
        httpx_mock.add_response(
            method="GET",
            url=AVATAR_URL,
            json={"data": [{"targetId": 156, "imageUrl": "https://tr.rbxcdn.com/156.png"}]},
        )
    httpx_mock.add_callback(
        lambda request: httpx.Response(200, json={"id": 156, **profile}),
        method="GET",
        url=f"{USERS}/v1/users/156",
    )

    with TestClient(app) as client, client.websocket_connect("/ws?scope_id=G1") as websocket:
        assert websocket.receive_json()["active_sessions"] == []

        challenge = client.post(
            "/verification/request",
            json={"subject_id": "U1", "scope_id": "G1", "external_name": "builderman"},
        )
        assert challenge.status_code == 200
        assert challenge.json()["external_identity"]["avatar_url"] == "https://tr.rbxcdn.com/156.png"

        profile["description"] = f"Verifying for the group: {challenge.json()['challenge_code']}"
        checked = client.post("/verification/U1/check")
        assert checked.status_code == 200
        assert checked.json()["external_identity"]["external_id"] == "156"

        verify = websocket.receive_json()
        assert verify["type"] == "verification_update"
        assert verify["payload"]["external_name"] == "Builderman"

        client.post("/duty/G1/U1/start")
        clock.advance(30)
        client.post("/duty/G1/U1/pause")
        clock.advance(60)
        client.post("/duty/G1/U1/resume")
        clock.advance(10)
        ended = client.post("/duty/G1/U1/end").json()

        actions = [websocket.receive_json()["action"] for _ in range(4)]
        assert actions == ["start", "pause", "resume", "end"]

        readiness = client.get("/readyz").json()
        assert readiness["checks"]["roblox"]["privileged_enabled"] is False

    assert ended["session"]["elapsed_seconds"] == 40
    assert ended["message"] == "You are now off duty. Total time: 40 seconds."
