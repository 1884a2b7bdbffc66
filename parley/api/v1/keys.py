"""
Key API routes.
Upload public key material and fetch pre-key bundles.
"""
from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from parley.config import settings
from parley.core.database import get_db
from parley.dependencies import get_current_user
from parley.models.user import User
from parley.schemas.encryption import (
    KeyCountResponse,
    KeyUploadRequest,
    KeyUploadResponse,
    PreKeyBundleResponse,
)
from parley.services.encryption_service import EncryptionService

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.post("", response_model=KeyUploadResponse, summary="Upload key material")
async def upload_keys(
    data: KeyUploadRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Upload any of: identity key, signed pre-key, one-time pre-keys.
    One-time pre-keys with an already known key id are skipped.
    """
    service = EncryptionService(db)
    added = await service.upload_keys(
        current_user.id,
        registration_id=data.registration_id,
        identity_key=data.identity_key,
        signed_prekey=data.signed_prekey.model_dump() if data.signed_prekey else None,
        one_time_prekeys=[k.model_dump() for k in data.one_time_prekeys],
    )
    return KeyUploadResponse(added=added, available=await service.count_one_time_prekeys(current_user.id))


@router.get("/count", response_model=KeyCountResponse, summary="Remaining one-time pre-keys")
async def count_prekeys(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return KeyCountResponse(count=await EncryptionService(db).count_one_time_prekeys(current_user.id))


@router.get("/{user_id}", response_model=PreKeyBundleResponse, summary="Fetch a pre-key bundle")
@limiter.limit(settings.key_bundle_rate_limit)
async def get_prekey_bundle(
    request: Request,
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Fetch the bundle needed to open a session with `user_id`.

    Each call consumes one one-time pre-key; `oneTimePreKey` is null once
    the user's pool is empty.
    """
    return await EncryptionService(db).get_prekey_bundle(user_id)
