# tests/test_auth.py - Account and token lifecycle
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers

PASSWORD = "SecurePass123!"


async def _register(client: AsyncClient, email: str, **extra):
    return await client.post("/api/v1/auth/register", json={"email": email, "password": PASSWORD, **extra})


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_register_returns_tokens_and_profile(client: AsyncClient):
    res = await _register(client, "jane@agency.dev", display_name="Jane")
    assert res.status_code == 200
    body = res.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] > 0
    assert set(body["user"]) == {"id", "email", "display_name"}
    assert body["user"]["display_name"] == "Jane"

    me = await client.get("/api/v1/auth/me", headers=_bearer(body["access_token"]))
    assert me.json() == body["user"]


@pytest.mark.asyncio
async def test_display_name_defaults_to_email_local_part(client: AsyncClient):
    res = await _register(client, "sam@agency.dev")
    assert res.json()["user"]["display_name"] == "sam"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"email": "a@agency.dev", "password": "short"},
    {"email": "a@agency.dev", "password": "alllowercase1"},
    {"email": "a@agency.dev", "password": "NoDigitsHere"},
    {"email": "not-an-email", "password": PASSWORD},
])
async def test_register_rejects_bad_input(client: AsyncClient, payload):
    res = await client.post("/api/v1/auth/register", json=payload)
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_register_duplicate_email_conflicts(client: AsyncClient):
    await _register(client, "dupe@agency.dev")
    res = await _register(client, "dupe@agency.dev")
    assert res.status_code == 409


@pytest.mark.asyncio
@pytest.mark.parametrize("email,password,expected", [
    ("testuser@clientdesk.dev", "TestPassword123!", 200),
    ("testuser@clientdesk.dev", "WrongPassword123!", 401),
    ("nobody@clientdesk.dev", "TestPassword123!", 401),
])
async def test_login(client: AsyncClient, test_user, email, password, expected):
    res = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert res.status_code == expected
    if expected == 200:
        assert res.json()["user"]["id"] == test_user.id


@pytest.mark.asyncio
async def test_protected_route_rejects_missing_or_forged_token(client: AsyncClient):
    assert (await client.get("/api/v1/auth/me")).status_code in (401, 403)
    assert (await client.get("/api/v1/auth/me", headers=_bearer("forged.token.value"))).status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_token(client: AsyncClient):
    tokens = (await _register(client, "rotate@agency.dev")).json()

    res = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 200
    rotated = res.json()
    assert rotated["refresh_token"] != tokens["refresh_token"]
    assert (await client.get("/api/v1/auth/me", headers=_bearer(rotated["access_token"]))).status_code == 200

    # The exchanged refresh token is single-use
    res = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_access_token_is_not_a_refresh_token(client: AsyncClient):
    tokens = (await _register(client, "wrongtype@agency.dev")).json()
    res = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_logout_revokes_presented_token(client: AsyncClient, test_user):
    headers = get_auth_headers(test_user)
    res = await client.post("/api/v1/auth/logout", headers=headers)
    assert res.status_code == 204

    assert (await client.get("/api/v1/auth/me", headers=headers)).status_code == 401
    # A fresh token for the same user still works
    assert (await client.get("/api/v1/auth/me", headers=get_auth_headers(test_user))).status_code == 200
