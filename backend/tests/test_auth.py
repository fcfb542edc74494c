"""End-to-end tests for registration, login and the bearer-token gate."""

from datetime import timedelta
from typing import Any, cast
from uuid import uuid4

import bcrypt
import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from app import create_app
from core import Settings, create_access_token, decode_token
from db import init_models
from models import User


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def build_payload() -> dict[str, str]:
    suffix = uuid4().hex[:8]
    return {
        "username": f"alice_{suffix}",
        "email": f"alice_{suffix}@example.com",
        "password": "Sup3rSecret!",
    }


@pytest.mark.asyncio
async def test_register_creates_user(async_client: AsyncClient, db_session: AsyncSession):
    payload = build_payload()
    response = await async_client.post("/register", json=payload)
    assert response.status_code == 201
    data = response.json()
    assert data["username"] == payload["username"]
    assert data["email"] == payload["email"]
    assert "password" not in data
    assert "password_hash" not in data

    result = await db_session.execute(
        select(User).where(_eq(User.username, payload["username"]))
    )
    user = result.scalar_one()
    assert user.id == data["id"]
    assert user.password_hash != payload["password"]


@pytest.mark.asyncio
async def test_register_normalizes_email_to_lowercase(async_client: AsyncClient):
    payload = build_payload()
    payload["email"] = "Mixed.Case+alias@Example.COM"
    response = await async_client.post("/register", json=payload)

    assert response.status_code == 201
    assert response.json()["email"] == "mixed.case+alias@example.com"


@pytest.mark.asyncio
async def test_register_rejects_email_like_username(async_client: AsyncClient):
    payload = build_payload()
    payload["username"] = "not_allowed@example.com"

    response = await async_client.post("/register", json=payload)

    assert response.status_code == 422
    assert response.json() == {"message": "Missing or invalid fields"}


@pytest.mark.asyncio
async def test_register_missing_field_is_a_generic_validation_error(async_client: AsyncClient):
    payload = build_payload()
    del payload["password"]

    response = await async_client.post("/register", json=payload)

    assert response.status_code == 422
    assert response.json() == {"message": "Missing or invalid fields"}


@pytest.mark.asyncio
async def test_register_conflict(async_client: AsyncClient):
    payload = build_payload()
    await async_client.post("/register", json=payload)
    response = await async_client.post("/register", json=payload)
    assert response.status_code == 409
    assert response.json()["message"] == "User with that username or email already exists"


@pytest.mark.asyncio
async def test_register_conflict_for_case_variant_email(async_client: AsyncClient):
    payload = build_payload()
    payload["email"] = "User.Mixed@Example.com"
    first = await async_client.post("/register", json=payload)
    assert first.status_code == 201

    second_payload = build_payload()
    second_payload["email"] = "user.mixed@example.com"
    second = await async_client.post("/register", json=second_payload)
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_login_returns_token_for_registered_user(
    async_client: AsyncClient,
    test_settings: Settings,
):
    payload = build_payload()
    register_response = await async_client.post("/register", json=payload)
    user_id = register_response.json()["id"]

    response = await async_client.post(
        "/login",
        json={"email": payload["email"], "password": payload["password"]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["id"] == user_id
    assert "password_hash" not in body["user"]

    claims = decode_token(body["access_token"], test_settings)
    assert claims["sub"] == user_id
    assert claims["exp"] - claims["iat"] == 24 * 60 * 60


@pytest.mark.asyncio
async def test_login_accepts_email_in_any_case(async_client: AsyncClient):
    payload = build_payload()
    await async_client.post("/register", json=payload)

    response = await async_client.post(
        "/login",
        json={"email": payload["email"].upper(), "password": payload["password"]},
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_login_wrong_password_differs_from_unknown_user(async_client: AsyncClient):
    payload = build_payload()
    await async_client.post("/register", json=payload)

    wrong_password = await async_client.post(
        "/login",
        json={"email": payload["email"], "password": "not-the-password"},
    )
    unknown_user = await async_client.post(
        "/login",
        json={"email": "nobody@example.com", "password": payload["password"]},
    )

    assert wrong_password.status_code == 401
    assert wrong_password.json() == {"message": "Invalid password"}
    assert unknown_user.status_code == 404
    assert unknown_user.json() == {"message": "User not found"}


@pytest.mark.asyncio
async def test_login_rehashes_password_with_outdated_cost(
    async_client: AsyncClient,
    db_session: AsyncSession,
    test_settings: Settings,
):
    password = "LegacyPass123!"
    legacy_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=5)).decode("utf-8")
    user = User(
        username=f"legacy_{uuid4().hex[:6]}",
        email=f"legacy_{uuid4().hex[:6]}@example.com",
        password_hash=legacy_hash,
    )
    db_session.add(user)
    await db_session.commit()

    response = await async_client.post(
        "/login",
        json={"email": user.email, "password": password},
    )
    assert response.status_code == 200

    await db_session.refresh(user)
    assert user.password_hash != legacy_hash
    assert user.password_hash.startswith(f"$2b${test_settings.bcrypt_rounds:02d}$")


@pytest.mark.asyncio
async def test_protected_route_requires_token(async_client: AsyncClient):
    response = await async_client.get("/posts")

    assert response.status_code == 401
    assert response.json() == {"message": "Authentication required"}
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_protected_route_rejects_non_bearer_scheme(async_client: AsyncClient, make_user):
    user = await make_user("scheme")

    response = await async_client.get(
        "/posts",
        headers={"Authorization": f"Token {user['token']}"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_protected_route_rejects_garbage_token(async_client: AsyncClient):
    response = await async_client.get(
        "/posts",
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 403
    assert response.json() == {"message": "Invalid token"}


@pytest.mark.asyncio
async def test_protected_route_rejects_expired_token(
    async_client: AsyncClient,
    test_settings: Settings,
    make_user,
):
    user = await make_user("expired")
    token = create_access_token(user["id"], test_settings, expires_delta=timedelta(minutes=-1))

    response = await async_client.get(
        "/posts",
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_protected_route_rejects_token_for_unknown_user(
    async_client: AsyncClient,
    test_settings: Settings,
):
    token = create_access_token(str(uuid4()), test_settings)

    response = await async_client.get(
        "/posts",
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_protected_route_accepts_valid_token(async_client: AsyncClient, make_user):
    user = await make_user("valid")

    response = await async_client.get("/posts", headers=user["headers"])

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_tokens_follow_the_settings_the_app_was_built_with(test_settings: Settings):
    app_settings = test_settings.model_copy(
        update={"jwt_secret": "app-specific-secret", "access_token_expire_minutes": 5}
    )
    application = create_app(app_settings)
    await init_models(application.state.engine)
    payload = build_payload()

    try:
        transport = ASGITransport(app=application)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            await client.post("/register", json=payload)
            login_response = await client.post(
                "/login",
                json={"email": payload["email"], "password": payload["password"]},
            )
            token = login_response.json()["access_token"]

            claims = jwt.decode(token, "app-specific-secret", algorithms=["HS256"])
            assert claims["exp"] - claims["iat"] == 5 * 60

            own_token = await client.get("/posts", headers={"Authorization": f"Bearer {token}"})
            assert own_token.status_code == 200

            foreign_token = create_access_token(claims["sub"], test_settings)
            rejected = await client.get(
                "/posts",
                headers={"Authorization": f"Bearer {foreign_token}"},
            )
            assert rejected.status_code == 403
    finally:
        await application.state.engine.dispose()
