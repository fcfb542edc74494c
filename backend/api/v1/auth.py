"""Registration and login endpoints."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_settings
from core import Settings, create_access_token, hash_password, needs_rehash, verify_password
from db.errors import is_unique_violation
from models import User
from services.auth import find_user_by_email, normalize_email, registration_conflict_exists

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

# bcrypt only looks at the first 72 bytes of a secret.
MAX_PASSWORD_BYTES = 72
REGISTRATION_CONFLICT = "User with that username or email already exists"


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("username")
    @classmethod
    def _reject_email_like_username(cls, value: str) -> str:
        normalized = value.strip()
        if "@" in normalized:
            raise ValueError("Username cannot contain '@'")
        return normalized

    @field_validator("password")
    @classmethod
    def _limit_password_bytes(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: EmailStr
    created_at: datetime


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
async def register(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> UserResponse:
    normalized_email = normalize_email(str(payload.email))
    if await registration_conflict_exists(
        session,
        username=payload.username,
        normalized_email=normalized_email,
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=REGISTRATION_CONFLICT,
        )

    user = User(
        username=payload.username,
        email=normalized_email,
        password_hash=hash_password(payload.password, app_settings),
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=REGISTRATION_CONFLICT,
            ) from exc
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    await session.refresh(user)

    logger.info("Registered user", extra={"user_id": user.id})
    return UserResponse.model_validate(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> TokenResponse:
    user = await find_user_by_email(session, payload.email)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")

    if needs_rehash(user.password_hash, app_settings):
        user.password_hash = hash_password(payload.password, app_settings)
        session.add(user)
        try:
            await session.commit()
        except Exception as exc:
            await session.rollback()
            # The old hash still verifies, so login proceeds.
            logger.warning(
                "Failed to store rehashed password",
                extra={"user_id": user.id},
                exc_info=exc,
            )
        await session.refresh(user)

    return TokenResponse(
        access_token=create_access_token(user.id, app_settings),
        user=UserResponse.model_validate(user),
    )
