"""
EcoDex Backend - User Route Handlers
======================================

What:  POST /api/users (create profile) and GET /api/users/me (progress).
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ecodex.auth import get_current_user_id
from ecodex.database import get_db_session
from ecodex.schemas.common import ErrorResponse
from ecodex.schemas.user import UserCreate, UserProgressResponse
from ecodex.services.user_service import user_service

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.post(
    "",
    status_code=201,
    response_model=UserProgressResponse,
    responses={400: {"description": "Email already registered", "model": ErrorResponse}},
    summary="Create a user profile",
)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db_session),
) -> UserProgressResponse:
    return await user_service.create_user(db, data)


@router.get(
    "/me",
    response_model=UserProgressResponse,
    responses={404: {"description": "Unknown user", "model": ErrorResponse}},
    summary="The caller's experience, level and discoveries",
)
async def get_me(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> UserProgressResponse:
    return await user_service.get_progress(db, user_id)
