import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.core.security import create_access_token, decode_access_token
from campusfix.models.user import UserRole
from tests.utils.factories import DEFAULT_PASSWORD, auth_headers, create_user, random_email


def register_payload(**overrides):
    data = {
        "email": random_email(),
        "password": "Str0ng!pass",
        "first_name": "Анна",
        "last_name": "Смирнова",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_register_returns_user_and_token(async_client: httpx.AsyncClient):
    payload = register_payload(role="admin")

    response = await async_client.post("/api/auth/register", json=payload)

    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert data["user"]["email"] == payload["email"]
    # Роль при самостоятельной регистрации не выбирается
    assert data["user"]["role"] == UserRole.ENGINEER.value
    assert "password" not in data["user"] and "password_hash" not in data["user"]
    claims = decode_access_token(data["token"])
    assert claims["sub"] == str(data["user"]["id"])
    assert claims["role"] == "engineer"


@pytest.mark.asyncio
async def test_register_duplicate_email(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session)

    response = await async_client.post("/api/auth/register", json=register_payload(email=user.email.upper()))

    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_register_weak_password_lists_field_errors(async_client: httpx.AsyncClient):
    response = await async_client.post("/api/auth/register", json=register_payload(password="123456"))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert [e["field"] for e in body["errors"]] == ["password"]


@pytest.mark.asyncio
async def test_login_and_me(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session, UserRole.MANAGER)

    response = await async_client.post("/api/auth/login", json={"email": user.email, "password": DEFAULT_PASSWORD})
    assert response.status_code == 200
    token = response.json()["token"]

    me = await async_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user"]["id"] == user.id
    assert me.json()["user"]["role"] == "manager"


@pytest.mark.asyncio
async def test_login_wrong_password(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session)

    response = await async_client.post("/api/auth/login", json={"email": user.email, "password": "Wrong1!pass"})

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Неверный email или пароль"}


@pytest.mark.asyncio
async def test_login_inactive_user(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session, is_active=False)

    response = await async_client.post("/api/auth/login", json={"email": user.email, "password": DEFAULT_PASSWORD})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_protected_route_requires_token(async_client: httpx.AsyncClient):
    response = await async_client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_invalid_and_expired_tokens_rejected(async_client: httpx.AsyncClient, db_session: AsyncSession):
    from datetime import timedelta

    user = await create_user(db_session)
    expired = create_access_token(user.id, expires_delta=timedelta(minutes=-1))

    for token in ("garbage", expired):
        response = await async_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_in_query_string(async_client: httpx.AsyncClient, db_session: AsyncSession):
    user = await create_user(db_session)
    token = auth_headers(user)["Authorization"].split(" ", 1)[1]

    response = await async_client.get("/api/auth/me", params={"token": token})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_health(async_client: httpx.AsyncClient):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_openapi_documents_error_envelope(async_client: httpx.AsyncClient):
    response = await async_client.get("/api/openapi.json")

    assert response.status_code == 200
    schema = response.json()
    login = schema["paths"]["/api/auth/login"]["post"]["responses"]
    assert login["401"]["content"]["application/json"]["schema"]["$ref"] == "#/components/schemas/ErrorResponse"
    assert set(schema["components"]["schemas"]["ErrorResponse"]["properties"]) == {"success", "message", "errors"}
    assert "ErrorDetail" in schema["components"]["schemas"]
