"""Register / login / me / logout and credential resolution."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from loguru import logger

from tests.helpers import DEFAULT_PASSWORD, TEST_JWT_KEY, register_and_login


@pytest.mark.asyncio
async def test_register_returns_public_fields_only(client):
    response = await client.post(
        "/api/auth/register", json={"name": "Alice", "login": "alice", "password": DEFAULT_PASSWORD}
    )

    assert response.status_code == 201
    body = response.json()
    assert set(body) == {"id", "name", "login"}
    assert body["login"] == "alice"


@pytest.mark.asyncio
async def test_duplicate_login_is_conflict(client):
    await register_and_login(client)

    response = await client.post(
        "/api/auth/register", json={"name": "Other", "login": "alice", "password": "secret"}
    )

    assert response.status_code == 409
    assert response.json()["code"] == "login_taken"


@pytest.mark.asyncio
async def test_register_rejects_password_over_72_utf8_bytes(client):
    # 40 characters, 80 bytes
    password = "\u00e9" * 40
    messages = []
    sink_id = logger.add(messages.append, level="INFO")
    try:
        response = await client.post(
            "/api/auth/register", json={"name": "Alice", "login": "alice", "password": password}
        )
    finally:
        logger.remove(sink_id)

    assert response.status_code == 422
    logged = "".join(messages)
    assert "invalid request" in logged
    assert password not in logged


@pytest.mark.asyncio
async def test_register_accepts_password_of_exactly_72_bytes(client):
    password = "\u00e9" * 36

    response = await client.post(
        "/api/auth/register", json={"name": "Alice", "login": "alice", "password": password}
    )
    assert response.status_code == 201
    login = await client.post("/api/auth/login", json={"login": "alice", "password": password})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_login_with_overlong_password_is_unauthorized(client):
    await register_and_login(client)

    response = await client.post("/api/auth/login", json={"login": "alice", "password": "x" * 100})

    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credentials"


@pytest.mark.asyncio
async def test_login_returns_token_and_sets_cookie(client):
    body = await register_and_login(client)

    assert body["user"]["login"] == "alice"
    assert body["user_id"] == body["user"]["id"]
    assert client.cookies.get("access_token") == body["token"]

    claims = jwt.decode(body["token"], TEST_JWT_KEY.encode(), algorithms=["HS256"])
    assert claims["sub"] == body["user_id"]
    assert claims["name"] == "Alice"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "login, password",
    [("alice", "wrong-password"), ("nobody", DEFAULT_PASSWORD)],
)
async def test_bad_credentials_are_unauthorized(client, login, password):
    await register_and_login(client)

    response = await client.post("/api/auth/login", json={"login": login, "password": password})

    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credentials"


@pytest.mark.asyncio
async def test_me_with_bearer_token(client):
    body = await register_and_login(client)
    client.cookies.clear()

    response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})

    assert response.status_code == 200
    assert response.json() == body["user"]


@pytest.mark.asyncio
async def test_me_with_cookie_only(client):
    body = await register_and_login(client)

    response = await client.get("/api/auth/me")

    assert response.status_code == 200
    assert response.json()["id"] == body["user_id"]


@pytest.mark.asyncio
async def test_me_without_credentials_is_unauthorized(client):
    response = await client.get("/api/auth/me")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_tampered_token_is_unauthorized(client):
    body = await register_and_login(client)
    client.cookies.clear()
    forged = jwt.encode({"sub": body["user_id"], "exp": 9999999999}, "x" * 48, algorithm="HS256")

    response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_is_unauthorized(client):
    body = await register_and_login(client)
    client.cookies.clear()
    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    expired = jwt.encode(
        {"sub": body["user_id"], "exp": int(past.timestamp())}, TEST_JWT_KEY.encode(), algorithm="HS256"
    )

    response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_logout_expires_cookie(client):
    await register_and_login(client)

    response = await client.post("/api/auth/logout")

    assert response.status_code == 204
    assert "access_token=" in response.headers["set-cookie"]
    assert client.cookies.get("access_token") is None

    assert (await client.get("/api/auth/me")).status_code == 401


@pytest.mark.asyncio
async def test_deleted_user_token_is_unauthorized(client, auth_headers):
    me = (await client.get("/api/auth/me", headers=auth_headers)).json()
    client.cookies.clear()

    assert (await client.delete(f"/api/users/{me['id']}", headers=auth_headers)).status_code == 204
    response = await client.get("/api/auth/me", headers=auth_headers)

    assert response.status_code == 401
