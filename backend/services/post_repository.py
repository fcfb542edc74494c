"""Post persistence: owner-scoped CRUD, like set and comment log."""

from __future__ import annotations

import logging
from typing import Any, NoReturn, cast

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from db.errors import is_unique_violation
from models import Comment, Like, Post

logger = logging.getLogger(__name__)

POST_NOT_FOUND = "Post not found"
OWNED_POST_NOT_FOUND = "Post not found or unauthorized"


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _desc(column: Any) -> Any:
    return cast(Any, column).desc()


def _raise_not_found(detail: str) -> NoReturn:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


async def commit_or_fail(session: AsyncSession, action: str) -> None:
    """Commit, or roll back and surface the store's error as a 500."""
    try:
        await session.commit()
    except Exception as exc:
        await session.rollback()
        logger.error("Failed to %s", action, exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc


async def count_posts(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(Post))
    return int(result.scalar_one() or 0)


async def list_post_window(
    session: AsyncSession,
    *,
    offset: int,
    limit: int,
) -> list[Post]:
    """Return posts newest-first, restricted to the [offset, offset + limit) window."""
    query = (
        select(Post)
        .order_by(
            _desc(Post.created_at),
            _desc(Post.id),
        )
        .limit(limit)
    )
    if offset > 0:
        query = query.offset(offset)
    result = await session.execute(query)
    return list(result.scalars().all())


async def create_post(
    session: AsyncSession,
    *,
    author_id: str,
    content: str,
    image: str | None,
) -> Post:
    post = Post(author_id=author_id, content=content, image=image)
    session.add(post)
    await commit_or_fail(session, "create post")
    await session.refresh(post)
    return post


async def get_post(session: AsyncSession, post_id: int) -> Post:
    result = await session.execute(select(Post).where(_eq(Post.id, post_id)).limit(1))
    post = result.scalar_one_or_none()
    if post is None:
        _raise_not_found(POST_NOT_FOUND)
    return post


async def get_owned_post(session: AsyncSession, post_id: int, owner_id: str) -> Post:
    """Match id and owner in one query; a foreign post looks exactly like a missing one."""
    result = await session.execute(
        select(Post)
        .where(
            _eq(Post.id, post_id),
            _eq(Post.author_id, owner_id),
        )
        .limit(1)
    )
    post = result.scalar_one_or_none()
    if post is None:
        _raise_not_found(OWNED_POST_NOT_FOUND)
    return post


async def update_post(
    session: AsyncSession,
    post: Post,
    *,
    content: str | None,
    image: str | None,
) -> Post:
    if content and content.strip():
        post.content = content
    if image is not None:
        post.image = image
    session.add(post)
    await commit_or_fail(session, "update post")
    await session.refresh(post)
    return post


async def delete_owned_post(session: AsyncSession, post_id: int, owner_id: str) -> bool:
    """Delete the post only when id and owner match, together with its likes and comments."""
    result = cast(
        CursorResult[Any],
        await session.execute(
            delete(Post).where(
                _eq(Post.id, post_id),
                _eq(Post.author_id, owner_id),
            )
        ),
    )
    if result.rowcount == 0:
        await session.rollback()
        return False

    await session.execute(delete(Like).where(_eq(Like.post_id, post_id)))
    await session.execute(delete(Comment).where(_eq(Comment.post_id, post_id)))
    await commit_or_fail(session, "delete post")
    return True


async def toggle_like(session: AsyncSession, post_id: int, user_id: str) -> bool:
    """Flip the user's membership in the post's like set; return True when now liked."""
    await get_post(session, post_id)

    result = await session.execute(
        select(Like).where(
            _eq(Like.user_id, user_id),
            _eq(Like.post_id, post_id),
        )
    )
    existing_like = result.scalar_one_or_none()
    if existing_like is not None:
        await session.delete(existing_like)
        await commit_or_fail(session, "remove like")
        return False

    session.add(Like(user_id=user_id, post_id=post_id))
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if not is_unique_violation(exc):
            logger.error("Failed to add like", exc_info=exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(exc),
            ) from exc
        # A concurrent toggle from the same user already inserted the like.
        logger.info(
            "Like already present",
            extra={"post_id": post_id, "user_id": user_id},
        )
    return True


async def append_comment(
    session: AsyncSession,
    *,
    post_id: int,
    author_id: str,
    content: str,
) -> Comment:
    await get_post(session, post_id)

    comment = Comment(post_id=post_id, author_id=author_id, content=content)
    session.add(comment)
    await commit_or_fail(session, "append comment")
    await session.refresh(comment)
    return comment
