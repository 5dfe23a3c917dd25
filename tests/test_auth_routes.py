"""Login flow, lockout and session endpoints over HTTP."""
import pytest

from models.audit_log import AuditLog
from models.login_attempt import LoginAttempt
from utils.events import SecurityEventType

PASSWORD = "correct-horse-battery"


@pytest.fixture
def customer(make_customer):
    return make_customer(password=PASSWORD)


def _login(client, email, password, ip="198.51.100.20"):
    return client.post(
        "/auth/login",
        json={"email": email, "password": password},
        headers={"X-Forwarded-For": ip, "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"},
    )


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_health_echoes_request_id(client):
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "ok"
    assert resp.headers["X-Request-ID"] == "req-123"
    assert "X-RateLimit-Limit" not in resp.headers


def test_login_success_issues_session(client, customer, engine):
    resp = _login(client, customer.email, PASSWORD)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    token = body["data"]["token"]
    assert resp.headers["X-RateLimit-Limit"] == "5"
    assert "trustgate_session" in resp.headers.get("Set-Cookie", "")

    me = client.get("/auth/me", headers=_bearer(token))
    assert me.status_code == 200
    assert me.get_json()["data"]["customer_id"] == customer.id

    rep = engine.reputation.find("198.51.100.20")
    assert rep.successful_logins == 1

    events = [r.event_type for r in AuditLog.query.all()]
    assert SecurityEventType.AUTH_LOGIN_SUCCESS.value in events


def test_login_validation(client):
    resp = client.post("/auth/login", json={"email": "nope"})

    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"


def test_wrong_password_is_generic_401(client, customer, engine):
    resp = _login(client, customer.email, "wrong")

    assert resp.status_code == 401
    assert resp.get_json() == {
        "success": False,
        "error": {"code": "INVALID_CREDENTIALS", "message": "Invalid email or password"},
    }
    assert engine.reputation.find("198.51.100.20").failed_login_attempts == 1


def test_fifth_failure_locks_account(client, customer):
    statuses = [_login(client, customer.email, "wrong").status_code for _ in range(5)]

    assert statuses == [401, 401, 401, 401, 423]

    # a fresh IP is not rate limited but still sees the lock
    resp = _login(client, customer.email, PASSWORD, ip="198.51.100.21")
    assert resp.status_code == 423
    body = resp.get_json()
    assert body["error"]["code"] == "ACCOUNT_LOCKED"
    assert "minutes" in body["error"]["message"]
    assert int(resp.headers["Retry-After"]) > 0

    locked_events = AuditLog.query.filter_by(event_type=SecurityEventType.AUTH_LOGIN_LOCKED.value).count()
    assert locked_events == 1


def test_auth_rate_limit_returns_429(client, customer):
    for _ in range(5):
        _login(client, "nobody@example.com", "wrong", ip="198.51.100.22")

    resp = _login(client, "nobody@example.com", "wrong", ip="198.51.100.22")

    assert resp.status_code == 429
    assert resp.get_json()["error"]["code"] == "TOO_MANY_REQUESTS"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert int(resp.headers["Retry-After"]) >= 1
    assert AuditLog.query.filter_by(event_type=SecurityEventType.RATE_LIMIT_EXCEEDED.value).count() == 1


def test_blocked_ip_gets_403(client, engine):
    engine.reputation.block_ip("203.0.113.50", "abuse")

    resp = client.get("/auth/me", headers={"X-Forwarded-For": "203.0.113.50"})

    assert resp.status_code == 403
    body = resp.get_json()
    assert body["error"]["code"] == "IP_BLOCKED"
    assert "contact support" in body["error"]["message"]


def test_me_requires_session(client):
    resp = client.get("/auth/me")

    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "UNAUTHORIZED"


def test_logout_revokes_token(client, customer):
    token = _login(client, customer.email, PASSWORD).get_json()["data"]["token"]

    assert client.post("/auth/logout", headers=_bearer(token)).status_code == 200
    assert client.get("/auth/me", headers=_bearer(token)).status_code == 401


def test_session_listing_and_logout_others(client, customer):
    first = _login(client, customer.email, PASSWORD).get_json()["data"]["token"]
    second = _login(client, customer.email, PASSWORD, ip="198.51.100.23").get_json()["data"]["token"]

    listing = client.get("/auth/sessions", headers=_bearer(second)).get_json()["data"]
    assert len(listing["sessions"]) == 2
    current = [s for s in listing["sessions"] if s["is_current"]]
    assert [s["id"] for s in current] == [listing["current_session_id"]]

    resp = client.post("/auth/sessions/logout-others", headers=_bearer(second))
    assert resp.get_json()["data"]["count"] == 1

    assert client.get("/auth/me", headers=_bearer(first)).status_code == 401
    assert client.get("/auth/me", headers=_bearer(second)).status_code == 200


def test_revoke_single_session_must_be_owned(client, customer, make_customer, engine):
    token = _login(client, customer.email, PASSWORD).get_json()["data"]["token"]
    stranger = make_customer(email="stranger@example.com")
    foreign_id = engine.sessions.create_session(stranger.id, "", "198.51.100.30")

    resp = client.delete(f"/auth/sessions/{foreign_id}", headers=_bearer(token))

    assert resp.status_code == 404
    assert engine.sessions.validate_session(foreign_id) is not None


def test_logout_all(client, customer):
    tokens = [
        _login(client, customer.email, PASSWORD, ip=f"198.51.100.{40 + i}").get_json()["data"]["token"]
        for i in range(3)
    ]

    resp = client.post("/auth/sessions/logout-all", headers=_bearer(tokens[0]))

    assert resp.get_json()["data"]["count"] == 3
    assert all(client.get("/auth/me", headers=_bearer(t)).status_code == 401 for t in tokens)


def test_unparseable_forwarded_for_falls_back_to_peer(client, engine):
    _login(client, "nobody@example.com", "wrong", ip="not-an-ip" + "x" * 80)

    attempt = LoginAttempt.query.one()
    assert attempt.ip_address == "127.0.0.1"
    assert engine.reputation.find("127.0.0.1").failed_login_attempts == 1
