"""Account lookups keyed by username and case-insensitive email."""

from __future__ import annotations

from typing import Any, cast

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import User


def normalize_email(value: str) -> str:
    return value.strip().lower()


def _email_matches(normalized_email: str) -> ColumnElement[bool]:
    """Compare against the stored email regardless of how it was cased at signup."""
    lowered = func.lower(cast(Any, User.email))
    return cast(ColumnElement[bool], lowered == normalized_email)


async def registration_conflict_exists(
    session: AsyncSession,
    *,
    username: str,
    normalized_email: str,
) -> bool:
    username_taken = cast(ColumnElement[bool], User.username == username)
    statement = (
        select(User.id)
        .where(or_(username_taken, _email_matches(normalized_email)))
        .limit(1)
    )
    return (await session.scalar(statement)) is not None


async def find_user_by_email(session: AsyncSession, email: str) -> User | None:
    statement = select(User).where(_email_matches(normalize_email(email))).limit(1)
    return await session.scalar(statement)
