"""
User API endpoints.
Own profile and avatar upload via presigned URLs.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.database import get_db
from parley.dependencies import get_current_user
from parley.models.user import User
from parley.schemas.user import (
    AvatarCompleteRequest,
    AvatarUploadRequest,
    AvatarUploadResponse,
    UserResponse,
)
from parley.services.user_service import UserService

router = APIRouter()


@router.get("/me", response_model=UserResponse, summary="Current user profile")
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post(
    "/me/avatar/upload-url",
    response_model=AvatarUploadResponse,
    summary="Presign an avatar upload"
)
async def create_avatar_upload_url(
    data: AvatarUploadRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get a URL the client PUTs the image to directly.

    Call `/me/avatar/complete` with the returned key afterwards.
    """
    upload_url, key = await UserService(db).create_avatar_upload(current_user.id, data.content_type)
    return AvatarUploadResponse(upload_url=upload_url, key=key)


@router.post("/me/avatar/complete", response_model=UserResponse, summary="Finish an avatar upload")
async def complete_avatar_upload(
    data: AvatarCompleteRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await UserService(db).complete_avatar_upload(current_user.id, data.key)


@router.delete("/me/avatar", response_model=UserResponse, summary="Remove the avatar")
async def delete_avatar(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await UserService(db).delete_avatar(current_user.id)
