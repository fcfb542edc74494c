"""Pytest fixtures for the feed backend."""

from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app import create_app
from core import Settings
from core.config import settings
from db import init_models

TEST_PASSWORD = "Sup3rSecret!"

MakeUser = Callable[..., Awaitable[dict[str, Any]]]


@pytest.fixture(autouse=True)
def _fast_password_hashing(monkeypatch: pytest.MonkeyPatch) -> None:
    """Lowest bcrypt cost keeps auth-heavy tests fast."""
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture()
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture()
def test_settings(tmp_path: Path, upload_dir: Path) -> Settings:
    """Settings pointing at a file-backed SQLite database private to one test."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'feed-test.db'}",
        upload_dir=str(upload_dir),
        log_level="WARNING",
        default_page_size=10,
        bcrypt_rounds=4,
        jwt_secret="feed-test-secret",
    )


@pytest_asyncio.fixture()
async def app(test_settings: Settings) -> AsyncIterator[FastAPI]:
    """Create the FastAPI app with its tables in place."""
    application = create_app(test_settings)
    engine = application.state.engine
    await init_models(engine)
    yield application
    await engine.dispose()


@pytest.fixture()
def session_maker(app: FastAPI) -> async_sessionmaker[AsyncSession]:
    return app.state.session_maker


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Return an HTTPX async client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture()
async def db_session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Provide a raw database session to tests."""
    async with session_maker() as session:
        yield session


def make_user_payload(prefix: str) -> dict[str, str]:
    suffix = uuid4().hex[:8]
    return {
        "username": f"{prefix}_{suffix}",
        "email": f"{prefix}_{suffix}@example.com",
        "password": TEST_PASSWORD,
    }


@pytest.fixture()
def make_user(async_client: AsyncClient) -> MakeUser:
    """Register and log in a fresh account; returns its id, payload and auth headers."""

    async def _make_user(prefix: str = "user") -> dict[str, Any]:
        payload = make_user_payload(prefix)
        register_response = await async_client.post("/register", json=payload)
        assert register_response.status_code == 201, register_response.text
        login_response = await async_client.post(
            "/login",
            json={"email": payload["email"], "password": payload["password"]},
        )
        assert login_response.status_code == 200, login_response.text
        token = login_response.json()["access_token"]
        return {
            "id": register_response.json()["id"],
            "payload": payload,
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make_user
