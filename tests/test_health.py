import pytest

pytestmark = pytest.mark.asyncio


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["x-request-id"]


async def test_request_id_is_echoed(client):
    r = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["x-request-id"] == "req-123"


async def test_auth_me_requires_session(anon_client):
    r = await anon_client.get("/auth/me")
    assert r.status_code == 401


async def test_forged_session_cookie_rejected(anon_client):
    anon_client.cookies.set("storyboard_session", "forged.value")
    r = await anon_client.get("/billing/balance")
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid or expired session"
