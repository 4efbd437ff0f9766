"""HTTP-level tests for the Flask blueprints."""

import pytest

SF = {"latitude": 37.7749, "longitude": -122.4194}


def _session(client):
    resp = client.post("/api/auth/anonymous-session")
    assert resp.status_code == 201
    return resp.get_json()["sessionId"]


def _register(client, username="walker", email="walker@example.com", **extra):
    resp = client.post("/api/auth/register", json={
        "username": username, "email": email, "password": "password123", **extra,
    })
    return resp


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token(client):
    resp = _register(client)
    assert resp.status_code == 201
    return resp.get_json()["token"]


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"


def test_unknown_endpoint_is_json(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "not_found"


def test_create_and_find_nearby(client):
    sid = _session(client)
    resp = client.post("/api/whispers", json={
        "text": "hello from the pier", "tone": "Joy", "location": SF,
        "whyHere": "sunset", "sessionId": sid,
    })
    assert resp.status_code == 201
    created = resp.get_json()
    assert created["creatorId"] is None

    resp = client.get("/api/whispers/nearby?lat=37.7750&lng=-122.4194&radius=100")
    assert resp.status_code == 200
    found = resp.get_json()
    assert [w["id"] for w in found] == [created["id"]]
    assert found[0]["unlockable"] is True

    resp = client.get("/api/whispers/nearby?lat=37.8199&lng=-122.4194&radius=1")
    assert resp.get_json() == []


def test_create_accepts_geojson_coordinates(client):
    sid = _session(client)
    resp = client.post("/api/whispers", json={
        "text": "geojson", "tone": "Longing", "sessionId": sid,
        "coordinates": {"type": "Point", "coordinates": [-122.4194, 37.7749]},
    })
    assert resp.status_code == 201
    assert resp.get_json()["location"] == SF


def test_create_validation_error(client):
    sid = _session(client)
    resp = client.post("/api/whispers", json={
        "text": "x" * 281, "tone": "Joy", "location": SF, "sessionId": sid,
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"


def test_create_without_body(client):
    resp = client.post("/api/whispers", data="not json", content_type="text/plain")
    assert resp.status_code == 400


def test_nearby_requires_coordinates(client):
    assert client.get("/api/whispers/nearby").status_code == 400
    assert client.get("/api/whispers/nearby?lat=abc&lng=1").status_code == 400
    assert client.get("/api/whispers/nearby?lat=1&lng=1&radius=-5").status_code == 400


def test_authenticated_create_links_account(client, token):
    sid = _session(client)
    resp = client.post("/api/whispers", headers=_auth(token), json={
        "text": "signed", "tone": "Gratitude", "location": SF, "sessionId": sid,
    })
    whisper_id = resp.get_json()["id"]

    profile = client.get("/api/auth/profile", headers=_auth(token)).get_json()["user"]
    assert profile["createdWhispers"] == [whisper_id]
    assert profile["stats"]["whispersCreated"] == 1
    assert "passwordHash" not in profile


def test_discover_is_idempotent(client, token):
    sid = _session(client)
    whisper_id = client.post("/api/whispers", json={
        "text": "hidden", "tone": "Joy", "location": SF, "sessionId": sid,
    }).get_json()["id"]
    finder = _session(client)

    first = client.post(f"/api/whispers/{whisper_id}/discover", headers=_auth(token), json={"sessionId": finder})
    second = client.post(f"/api/whispers/{whisper_id}/discover", headers=_auth(token), json={"sessionId": finder})

    assert first.get_json() == {"success": True, "firstDiscovery": True}
    assert second.get_json() == {"success": True, "firstDiscovery": False}
    stats = client.get("/api/auth/profile", headers=_auth(token)).get_json()["user"]["stats"]
    assert stats["whispersDiscovered"] == 1


def test_discover_too_far(client):
    sid = _session(client)
    whisper_id = client.post("/api/whispers", json={
        "text": "hidden", "tone": "Joy", "location": SF, "sessionId": sid,
    }).get_json()["id"]

    resp = client.post(f"/api/whispers/{whisper_id}/discover", json={
        "sessionId": sid, "location": {"latitude": 37.8199, "longitude": -122.4194},
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "not_unlockable"


def test_discover_enforces_dwell_when_configured(app, client):
    app.config["ENFORCE_DWELL_TIME"] = True
    sid = _session(client)
    whisper_id = client.post("/api/whispers", json={
        "text": "wait for it", "tone": "Joy", "location": SF, "sessionId": sid,
        "unlockConditions": {"proximityRequired": 50, "dwellTime": 0},
    }).get_json()["id"]

    resp = client.post(f"/api/whispers/{whisper_id}/discover", json={"sessionId": sid})
    assert resp.status_code == 400

    arrival = client.post(f"/api/whispers/{whisper_id}/arrive", json={"sessionId": sid, "location": SF})
    assert arrival.status_code == 200
    assert arrival.get_json()["dwellSatisfied"] is True

    resp = client.post(f"/api/whispers/{whisper_id}/discover", json={"sessionId": sid})
    assert resp.status_code == 200


def test_react_twice_returns_already_reacted(client, token):
    creator_session = _session(client)
    whisper_id = client.post("/api/whispers", headers=_auth(token), json={
        "text": "react to me", "tone": "Apology", "location": SF, "sessionId": creator_session,
    }).get_json()["id"]
    fan = _session(client)

    assert client.post(f"/api/whispers/{whisper_id}/react", json={"sessionId": fan}).status_code == 200
    resp = client.post(f"/api/whispers/{whisper_id}/react", json={"sessionId": fan})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_reacted"

    assert client.get(f"/api/whispers/{whisper_id}").get_json()["reactionCount"] == 1
    stats = client.get("/api/auth/profile", headers=_auth(token)).get_json()["user"]["stats"]
    assert stats["likesReceived"] == 1


def test_react_missing_whisper(client):
    sid = _session(client)
    resp = client.post("/api/whispers/missing/react", json={"sessionId": sid})
    assert resp.status_code == 404


def test_register_duplicate_email(client):
    assert _register(client).status_code == 201
    resp = _register(client, username="someone_else")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "duplicate_principal"


def test_login_and_logout(client):
    _register(client)
    resp = client.post("/api/auth/login", json={"email": "walker@example.com", "password": "password123"})
    assert resp.status_code == 200
    token = resp.get_json()["token"]
    assert resp.get_json()["user"]["username"] == "walker"

    assert client.post("/api/auth/logout", headers=_auth(token)).status_code == 200
    assert client.get("/api/auth/profile", headers=_auth(token)).status_code == 401


def test_login_failures_look_the_same(client):
    _register(client)
    wrong = client.post("/api/auth/login", json={"email": "walker@example.com", "password": "nope-nope"})
    unknown = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "password123"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.get_json() == unknown.get_json()


def test_repeated_failures_lock_ip(client):
    _register(client)
    for _ in range(10):
        client.post("/api/auth/login", json={"email": "walker@example.com", "password": "wrong-pass"})
    resp = client.post("/api/auth/login", json={"email": "walker@example.com", "password": "password123"})
    assert resp.status_code == 423


def test_profile_requires_auth(client):
    assert client.get("/api/auth/profile").status_code == 401
    assert client.get("/api/auth/profile", headers=_auth("garbage")).status_code == 401


def test_account_reset(client, token):
    sid = _session(client)
    client.post("/api/whispers", headers=_auth(token), json={
        "text": "erase me", "tone": "Heartbreak", "location": SF, "sessionId": sid,
    })

    resp = client.post("/api/account/reset", headers=_auth(token))
    assert resp.status_code == 200
    assert resp.get_json()["deletedWhispers"] == 1
    assert client.get("/api/whispers/nearby?lat=37.7749&lng=-122.4194").get_json() == []
    stats = client.get("/api/auth/profile", headers=_auth(token)).get_json()["user"]["stats"]
    assert set(stats.values()) == {0}


def test_account_delete_keeps_whispers(client, token):
    sid = _session(client)
    whisper_id = client.post("/api/whispers", headers=_auth(token), json={
        "text": "outlives me", "tone": "Longing", "location": SF, "sessionId": sid,
    }).get_json()["id"]

    assert client.delete("/api/account", headers=_auth(token)).status_code == 200

    found = client.get("/api/whispers/nearby?lat=37.7749&lng=-122.4194").get_json()
    assert [w["id"] for w in found] == [whisper_id]
    assert found[0]["creatorId"] is None
    assert client.get("/api/auth/profile", headers=_auth(token)).status_code == 401


def test_session_reset_route(client):
    sid = _session(client)
    resp = client.post("/api/auth/session/reset", json={"sessionId": sid})
    assert resp.status_code == 200
    new_sid = resp.get_json()["sessionId"]
    assert new_sid != sid

    resp = client.post("/api/whispers", json={
        "text": "old id", "tone": "Joy", "location": SF, "sessionId": sid,
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "invalid_session"


def test_list_user_and_discovered(client):
    sid = _session(client)
    finder = _session(client)
    whisper_id = client.post("/api/whispers", json={
        "text": "mine", "tone": "Joy", "location": SF, "sessionId": sid,
    }).get_json()["id"]
    client.post(f"/api/whispers/{whisper_id}/discover", json={"sessionId": finder})

    assert [w["id"] for w in client.get(f"/api/whispers/user/{sid}").get_json()] == [whisper_id]
    assert [w["id"] for w in client.get(f"/api/whispers/discovered/{finder}").get_json()] == [whisper_id]


def test_login_with_session_adopts_anonymous_whispers(client):
    sid = _session(client)
    whisper_id = client.post("/api/whispers", json={
        "text": "before login", "tone": "Joy", "location": SF, "sessionId": sid,
    }).get_json()["id"]
    _register(client)

    token = client.post("/api/auth/login", json={
        "email": "walker@example.com", "password": "password123", "sessionId": sid,
    }).get_json()["token"]

    resp = client.post("/api/account/reconcile", headers=_auth(token))
    assert resp.get_json()["adopted"] == 1
    mine = client.get(f"/api/whispers/user/{sid}", headers=_auth(token)).get_json()
    assert [w["id"] for w in mine] == [whisper_id]


def test_register_rejects_password_bcrypt_would_truncate(client):
    resp = client.post("/api/auth/register", json={
        "username": "walker", "email": "walker@example.com", "password": "x" * 100,
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"


def test_login_rejects_password_extended_past_72_bytes(client):
    client.post("/api/auth/register", json={
        "username": "walker", "email": "walker@example.com", "password": "p" * 72,
    })
    resp = client.post("/api/auth/login", json={"email": "walker@example.com", "password": "p" * 72 + "suffix"})
    assert resp.status_code == 401


@pytest.mark.parametrize("conditions", [
    '{"proximityRequired": NaN}',
    '{"proximityRequired": Infinity}',
    '{"proximityRequired": true}',
    '{"proximityRequired": 1e308}',
    '{"dwellTime": 1e308}',
    '{"dwellTime": -1}',
    '{"dwellTime": 2.5}',
    '{"dwellTime": false}',
])
def test_create_rejects_bad_unlock_conditions(client, conditions):
    sid = _session(client)
    body = (
        '{"text": "bounded", "tone": "Joy", "sessionId": "%s", '
        '"location": {"latitude": 37.7749, "longitude": -122.4194}, '
        '"unlockConditions": %s}' % (sid, conditions)
    )
    resp = client.post("/api/whispers", data=body, content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"
    assert client.get("/api/whispers/nearby?lat=37.7749&lng=-122.4194").get_json() == []
