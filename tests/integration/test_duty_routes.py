from fastapi.testclient import TestClient


def test_duty_shift_over_http(make_app, duty_service, verification_service, clock):
    client = TestClient(make_app(duty_service, verification_service))

    started = client.post("/duty/G1/U1/start")
    assert started.status_code == 200
    assert started.json()["action"] == "start"
    assert started.json()["changed"] is True

    clock.advance(90)
    status = client.get("/duty/G1/U1")
    assert status.status_code == 200
    assert status.json()["on_duty"] is True
    assert status.json()["session"]["elapsed_seconds"] == 90
    assert status.json()["session"]["formatted_duration"] == "1 minute, 30 seconds"

    paused = client.post("/duty/G1/U1/pause")
    assert paused.json()["session"]["status"] == "paused"

    active = client.get("/duty/G1/sessions/active")
    assert active.json()["total_count"] == 1
    assert active.json()["sessions"][0]["subject_id"] == "U1"

    clock.advance(600)
    client.post("/duty/G1/U1/resume")
    clock.advance(30)
    ended = client.post("/duty/G1/U1/end")
    assert ended.status_code == 200
    assert ended.json()["session"]["elapsed_seconds"] == 120
    assert "2 minutes" in ended.json()["message"]

    history = client.get("/duty/G1/U1/history", params={"limit": 5})
    assert [s["status"] for s in history.json()["sessions"]] == ["off_duty"]
    assert client.get("/duty/G1/U1").json() == {"on_duty": False, "session": None}


def test_repeated_start_reports_noop(make_app, duty_service, verification_service):
    client = TestClient(make_app(duty_service, verification_service))

    client.post("/duty/G1/U1/start")
    again = client.post("/duty/G1/U1/start")

    assert again.status_code == 200
    assert again.json()["action"] == "noop"
    assert again.json()["changed"] is False
    assert again.json()["message"].startswith("You are already on duty")


def test_pause_without_session_is_404(make_app, duty_service, verification_service):
    client = TestClient(make_app(duty_service, verification_service))

    response = client.post("/duty/G1/U1/pause")

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "no_active_session"
    assert body["recoverable"] is True
    assert "active duty session" in body["detail"]


def test_history_limit_is_validated(make_app, duty_service, verification_service):
    client = TestClient(make_app(duty_service, verification_service))

    assert client.get("/duty/G1/U1/history", params={"limit": 0}).status_code == 422


def test_subject_named_active_gets_own_status(make_app, duty_service, verification_service):
    client = TestClient(make_app(duty_service, verification_service))

    client.post("/duty/G1/active/start")
    status = client.get("/duty/G1/active")

    assert status.status_code == 200
    assert status.json()["on_duty"] is True
    assert status.json()["session"]["subject_id"] == "active"
