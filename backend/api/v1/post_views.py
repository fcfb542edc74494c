"""Post view models and the reference-expansion step that builds them."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime
from typing import Any, cast

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Comment, Like, Post, User


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _asc(column: Any) -> Any:
    return cast(Any, column).asc()


class UserSummary(BaseModel):
    """Display identity that replaces a stored user reference."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str


class CommentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_id: str
    content: str
    created_at: datetime


class CommentView(BaseModel):
    id: int
    author: UserSummary | None = None
    content: str
    created_at: datetime


class PostRecord(BaseModel):
    """Post as stored: author and comment authors are plain ids."""

    id: int
    author_id: str
    content: str
    image: str | None = None
    likes: list[str] = []
    comments: list[CommentRecord] = []
    created_at: datetime


class PostView(BaseModel):
    """Post with the author and every comment author expanded."""

    id: int
    author: UserSummary | None = None
    content: str
    image: str | None = None
    likes: list[str] = []
    comments: list[CommentView] = []
    created_at: datetime


class PostPage(BaseModel):
    posts: list[PostView]
    current_page: int
    total_pages: int
    total_posts: int


def _require_id(post: Post) -> int:
    if post.id is None:
        raise ValueError("Post record missing identifier")
    return post.id


async def collect_likes(
    session: AsyncSession,
    post_ids: list[int],
) -> dict[int, list[str]]:
    if not post_ids:
        return {}

    post_id_column = cast(ColumnElement[int], Like.post_id)
    result = await session.execute(
        select(post_id_column, cast(ColumnElement[str], Like.user_id))
        .where(post_id_column.in_(post_ids))
        .order_by(_asc(Like.created_at), _asc(Like.user_id))
    )
    likes: dict[int, list[str]] = defaultdict(list)
    for post_id, user_id in result.all():
        likes[post_id].append(user_id)
    return likes


async def collect_comments(
    session: AsyncSession,
    post_ids: list[int],
) -> dict[int, list[tuple[Comment, str | None]]]:
    """Return each post's comment log in insertion order with the author's username."""
    if not post_ids:
        return {}

    post_id_column = cast(ColumnElement[int], Comment.post_id)
    result = await session.execute(
        select(cast(Any, Comment), cast(ColumnElement[str | None], User.username))
        .outerjoin(User, _eq(User.id, Comment.author_id))
        .where(post_id_column.in_(post_ids))
        .order_by(_asc(Comment.created_at), _asc(Comment.id))
    )
    comments: dict[int, list[tuple[Comment, str | None]]] = defaultdict(list)
    for comment, username in result.all():
        comments[comment.post_id].append((comment, username))
    return comments


async def collect_usernames(
    session: AsyncSession,
    user_ids: set[str],
) -> dict[str, str]:
    if not user_ids:
        return {}

    user_id_column = cast(ColumnElement[str], User.id)
    result = await session.execute(
        select(user_id_column, cast(ColumnElement[str], User.username)).where(
            user_id_column.in_(user_ids)
        )
    )
    return {user_id: username for user_id, username in result.all()}


def _summary(user_id: str, username: str | None) -> UserSummary | None:
    if username is None:
        return None
    return UserSummary(id=user_id, username=username)


async def expand_posts(session: AsyncSession, posts: Sequence[Post]) -> list[PostView]:
    """Populate author and comment-author references for display, keeping input order."""
    post_ids = [_require_id(post) for post in posts]
    usernames = await collect_usernames(session, {post.author_id for post in posts})
    likes = await collect_likes(session, post_ids)
    comments = await collect_comments(session, post_ids)

    views: list[PostView] = []
    for post, post_id in zip(posts, post_ids):
        comment_views = []
        for comment, username in comments.get(post_id, []):
            if comment.id is None:
                raise ValueError("Comment record missing identifier")
            comment_views.append(
                CommentView(
                    id=comment.id,
                    author=_summary(comment.author_id, username),
                    content=comment.content,
                    created_at=comment.created_at,
                )
            )
        views.append(
            PostView(
                id=post_id,
                author=_summary(post.author_id, usernames.get(post.author_id)),
                content=post.content,
                image=post.image,
                likes=likes.get(post_id, []),
                comments=comment_views,
                created_at=post.created_at,
            )
        )
    return views


async def build_post_record(session: AsyncSession, post: Post) -> PostRecord:
    """Return the stored shape of one post, without expanding any reference."""
    post_id = _require_id(post)
    likes = await collect_likes(session, [post_id])
    comments = await collect_comments(session, [post_id])
    return PostRecord(
        id=post_id,
        author_id=post.author_id,
        content=post.content,
        image=post.image,
        likes=likes.get(post_id, []),
        comments=[
            CommentRecord.model_validate(comment)
            for comment, _username in comments.get(post_id, [])
        ],
        created_at=post.created_at,
    )
