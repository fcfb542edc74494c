"""Top-level API router."""

from fastapi import APIRouter

from api.v1 import auth, posts

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(posts.router)
