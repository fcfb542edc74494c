"""Request dependencies: database session, app context and the authorization gate."""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core import Settings, decode_token
from db import get_db
from models import User
from services import UploadStorage

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> UploadStorage:
    return request.app.state.storage


def _invalid_token() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> User:
    """Resolve the bearer token to the acting user or stop the request."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_token(credentials.credentials, app_settings)
    except ValueError as exc:
        raise _invalid_token() from exc

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or payload.get("type") != "access":
        raise _invalid_token()

    user = await session.get(User, user_id)
    if user is None:
        logger.info("Token subject no longer exists", extra={"user_id": user_id})
        raise _invalid_token()
    return user


__all__ = ["get_current_user", "get_db", "get_settings", "get_storage"]
