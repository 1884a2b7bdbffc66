"""
Pydantic schemas for users, authentication and avatars.
"""
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from parley.models.user import UserStatus

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,50}$")


# ============================================================================
# Request Schemas
# ============================================================================

class UserRegister(BaseModel):
    """Schema for account registration."""

    email: str = Field(..., max_length=255, description="Login email address")
    username: str = Field(..., min_length=3, max_length=50, description="Unique handle")
    password: str = Field(..., min_length=8, max_length=128, description="Account password")
    display_name: Optional[str] = Field(None, alias="displayName", max_length=100)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Invalid email address")
        return v

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not _USERNAME_RE.match(v):
            raise ValueError("Username may only contain letters, digits, '_', '.' and '-'")
        return v


class UserLogin(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email or username")
    password: str = Field(..., min_length=1)
    device_id: Optional[str] = Field(None, alias="deviceId", max_length=255)

    model_config = ConfigDict(populate_by_name=True)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., alias="refreshToken", min_length=1)
    device_id: Optional[str] = Field(None, alias="deviceId", max_length=255)

    model_config = ConfigDict(populate_by_name=True)


class AvatarUploadRequest(BaseModel):
    content_type: str = Field(..., alias="contentType", description="MIME type of the image")

    model_config = ConfigDict(populate_by_name=True)


class AvatarCompleteRequest(BaseModel):
    key: str = Field(..., min_length=1, description="Object key returned by upload-url")


# ============================================================================
# Response Schemas
# ============================================================================

class UserPublic(BaseModel):
    """User fields visible to other users."""

    id: str
    username: str
    display_name: Optional[str] = Field(None, serialization_alias="displayName")
    avatar_url: Optional[str] = Field(None, serialization_alias="avatarUrl")
    status: UserStatus
    last_seen: Optional[datetime] = Field(None, serialization_alias="lastSeen")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class UserResponse(UserPublic):
    """The authenticated user's own profile."""

    email: str
    friend_code: str = Field(serialization_alias="friendCode")
    created_at: datetime = Field(serialization_alias="createdAt")


class TokenResponse(BaseModel):
    access_token: str = Field(serialization_alias="accessToken")
    refresh_token: str = Field(serialization_alias="refreshToken")
    token_type: str = Field(default="Bearer", serialization_alias="tokenType")
    expires_in: int = Field(serialization_alias="expiresIn")
    user: Optional[UserResponse] = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "accessToken": "eyJhbGciOiJIUzI1NiIs...",
                "refreshToken": "q2V9...",
                "tokenType": "Bearer",
                "expiresIn": 300,
            }
        },
    )


class AvatarUploadResponse(BaseModel):
    upload_url: str = Field(serialization_alias="uploadUrl")
    key: str
