"""Helper functions shared by conftest.py and the test modules. These are not fixtures."""

from datetime import date, datetime, time, timedelta, timezone

TEST_JWT_KEY = "test-signing-key-that-is-long-enough-0123456789"
DEFAULT_PASSWORD = "P@ssw0rd"


def today() -> date:
    return datetime.now(timezone.utc).date()


def tomorrow() -> date:
    return today() + timedelta(days=1)


def hm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


async def register_and_login(client, login="alice", name="Alice", password=DEFAULT_PASSWORD) -> dict:
    response = await client.post(
        "/api/auth/register", json={"name": name, "login": login, "password": password}
    )
    assert response.status_code == 201, response.text
    response = await client.post("/api/auth/login", json={"login": login, "password": password})
    assert response.status_code == 200, response.text
    return response.json()
