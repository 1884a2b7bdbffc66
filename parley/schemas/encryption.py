"""
Pydantic schemas for key upload and pre-key bundles.
"""
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from parley.utils.validators import is_base64


def _require_base64(v: str) -> str:
    if not is_base64(v):
        raise ValueError("Key material must be valid Base64")
    return v


Base64Key = Annotated[str, AfterValidator(_require_base64)]


class SignedPreKeyPayload(BaseModel):
    key_id: int = Field(..., alias="keyId", ge=0)
    public_key: Base64Key = Field(..., alias="publicKey")
    signature: Base64Key

    model_config = ConfigDict(populate_by_name=True)


class OneTimePreKeyPayload(BaseModel):
    key_id: int = Field(..., alias="keyId", ge=0)
    public_key: Base64Key = Field(..., alias="publicKey")

    model_config = ConfigDict(populate_by_name=True)


class KeyUploadRequest(BaseModel):
    """Any subset of a user's public key material."""

    registration_id: Optional[int] = Field(None, alias="registrationId", ge=0)
    identity_key: Optional[Base64Key] = Field(None, alias="identityKey")
    signed_prekey: Optional[SignedPreKeyPayload] = Field(None, alias="signedPreKey")
    one_time_prekeys: List[OneTimePreKeyPayload] = Field(
        default_factory=list,
        alias="oneTimePreKeys",
        max_length=500
    )

    model_config = ConfigDict(populate_by_name=True)


class KeyUploadResponse(BaseModel):
    added: int = Field(description="One-time pre-keys added")
    available: int = Field(description="One-time pre-keys now available")


class KeyCountResponse(BaseModel):
    count: int


class SignedPreKeyResponse(BaseModel):
    key_id: int = Field(serialization_alias="keyId")
    public_key: str = Field(serialization_alias="publicKey")
    signature: str


class OneTimePreKeyResponse(BaseModel):
    key_id: int = Field(serialization_alias="keyId")
    public_key: str = Field(serialization_alias="publicKey")


class PreKeyBundleResponse(BaseModel):
    user_id: str = Field(serialization_alias="userId")
    registration_id: Optional[int] = Field(None, serialization_alias="registrationId")
    identity_key: str = Field(serialization_alias="identityKey")
    signed_prekey: SignedPreKeyResponse = Field(serialization_alias="signedPreKey")
    one_time_prekey: Optional[OneTimePreKeyResponse] = Field(None, serialization_alias="oneTimePreKey")
