"""Post feed endpoints: listing, owner-scoped CRUD, likes and comments."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, get_settings, get_storage
from core import Settings
from models import User
from services import UploadStorage, UploadTooLargeError, store_upload
from services import post_repository
from .pagination import DEFAULT_PAGE, page_offset, parse_positive_int, total_pages
from .post_views import PostPage, PostRecord, PostView, build_post_record, expand_posts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])


class CommentCreateRequest(BaseModel):
    content: str = Field(min_length=1)

    @field_validator("content")
    @classmethod
    def _reject_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment content cannot be blank")
        return value


async def _store_attachment(
    storage: UploadStorage,
    upload: UploadFile,
    max_bytes: int,
) -> str:
    try:
        return await store_upload(storage, upload, max_bytes)
    except UploadTooLargeError as exc:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=str(exc),
        ) from exc
    except Exception as exc:
        logger.error(
            "Failed to store attachment",
            extra={"upload_filename": upload.filename},
            exc_info=exc,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc


@router.get("", response_model=PostPage)
async def list_posts(
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    app_settings: Settings = Depends(get_settings),
) -> PostPage:
    page_number = parse_positive_int(page, DEFAULT_PAGE)
    page_size = parse_positive_int(limit, app_settings.default_page_size)

    posts = await post_repository.list_post_window(
        session,
        offset=page_offset(page_number, page_size),
        limit=page_size,
    )
    total = await post_repository.count_posts(session)
    return PostPage(
        posts=await expand_posts(session, posts),
        current_page=page_number,
        total_pages=total_pages(total, page_size),
        total_posts=total,
    )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=PostView)
async def create_post(
    content: str = Form(...),
    image: UploadFile | None = File(default=None),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: UploadStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
) -> PostView:
    if not content.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="Content is required",
        )

    # Stored before the post row exists; a failed commit leaves the file behind.
    image_path = None
    if image is not None and image.filename:
        image_path = await _store_attachment(storage, image, app_settings.upload_max_bytes)

    post = await post_repository.create_post(
        session,
        author_id=current_user.id,
        content=content,
        image=image_path,
    )
    logger.info("Created post", extra={"post_id": post.id, "user_id": current_user.id})
    views = await expand_posts(session, [post])
    return views[0]


@router.get("/{post_id}", response_model=PostRecord)
async def get_post(
    post_id: int,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PostRecord:
    post = await post_repository.get_owned_post(session, post_id, current_user.id)
    return await build_post_record(session, post)


@router.put("/{post_id}", response_model=PostRecord)
async def update_post(
    post_id: int,
    content: str | None = Form(default=None),
    image: UploadFile | None = File(default=None),
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    storage: UploadStorage = Depends(get_storage),
    app_settings: Settings = Depends(get_settings),
) -> PostRecord:
    post = await post_repository.get_owned_post(session, post_id, current_user.id)

    # The previous attachment stays in storage.
    image_path = None
    if image is not None and image.filename:
        image_path = await _store_attachment(storage, image, app_settings.upload_max_bytes)

    post = await post_repository.update_post(
        session,
        post,
        content=content,
        image=image_path,
    )
    return await build_post_record(session, post)


@router.delete("/{post_id}", status_code=status.HTTP_200_OK)
async def delete_post(
    post_id: int,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, str]:
    deleted = await post_repository.delete_owned_post(session, post_id, current_user.id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=post_repository.OWNED_POST_NOT_FOUND,
        )

    logger.info("Deleted post", extra={"post_id": post_id, "user_id": current_user.id})
    return {"message": "Post deleted successfully"}


@router.post("/{post_id}/like", response_model=PostRecord)
async def toggle_like(
    post_id: int,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PostRecord:
    await post_repository.toggle_like(session, post_id, current_user.id)
    post = await post_repository.get_post(session, post_id)
    return await build_post_record(session, post)


@router.post(
    "/{post_id}/comments",
    status_code=status.HTTP_201_CREATED,
    response_model=PostView,
)
async def create_comment(
    post_id: int,
    payload: CommentCreateRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PostView:
    await post_repository.append_comment(
        session,
        post_id=post_id,
        author_id=current_user.id,
        content=payload.content,
    )
    post = await post_repository.get_post(session, post_id)
    views = await expand_posts(session, [post])
    return views[0]
