"""Password hashing and access-token helpers.

Every helper takes the `Settings` of the application it serves and falls back
to the module-level settings when none is given.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from .config import Settings, settings

_BCRYPT_COST_PATTERN = re.compile(r"^\$2[abxy]?\$(\d{2})\$")


def hash_password(password: str, app_settings: Settings | None = None) -> str:
    config = app_settings or settings
    salt = bcrypt.gensalt(rounds=config.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


def needs_rehash(password_hash: str, app_settings: Settings | None = None) -> bool:
    """Return True when the stored hash was produced with a different bcrypt cost."""
    config = app_settings or settings
    match = _BCRYPT_COST_PATTERN.match(password_hash)
    if match is None:
        return True
    return int(match.group(1)) != config.bcrypt_rounds


def create_access_token(
    subject: str,
    app_settings: Settings | None = None,
    *,
    expires_delta: timedelta | None = None,
    now: datetime | None = None,
) -> str:
    config = app_settings or settings
    issued_at = now or datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=config.access_token_expire_minutes)
    payload = {
        "sub": subject,
        "type": "access",
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + lifetime).timestamp()),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_token(token: str, app_settings: Settings | None = None) -> dict[str, Any]:
    """Verify signature and expiry; raise ValueError for any rejected token."""
    config = app_settings or settings
    try:
        return jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
