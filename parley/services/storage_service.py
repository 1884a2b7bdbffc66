"""
Object storage integration for avatar uploads.

Clients PUT directly to the bucket with a presigned URL; the server only
signs URLs, inspects object metadata and deletes objects.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import oss2

from parley.config import settings

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


@dataclass
class ObjectMetadata:
    content_type: Optional[str]
    content_length: int


class StorageService:
    """Presigner over an OSS bucket."""

    def __init__(self, bucket: Optional[oss2.Bucket] = None):
        if bucket is None:
            if not settings.oss_access_key_id or not settings.oss_access_key_secret:
                logger.warning("OSS credentials not configured. Avatar upload will fail.")
            auth = oss2.Auth(settings.oss_access_key_id, settings.oss_access_key_secret)
            bucket = oss2.Bucket(auth, settings.oss_endpoint, settings.oss_bucket_name)
        self.bucket = bucket

    def build_avatar_key(self, user_id: str, content_type: str) -> str:
        ext = _EXTENSIONS.get(content_type, "bin")
        return f"avatars/{user_id}/{uuid.uuid4().hex}.{ext}"

    def presign_put(self, key: str, content_type: str, expires: Optional[int] = None) -> str:
        """Signed URL the client can PUT the object to."""
        return self.bucket.sign_url(
            "PUT",
            key,
            expires or settings.oss_upload_url_ttl,
            headers={"Content-Type": content_type},
            slash_safe=True,
        )

    def head(self, key: str) -> Optional[ObjectMetadata]:
        """Object metadata, or None when the object does not exist."""
        try:
            result = self.bucket.head_object(key)
        except oss2.exceptions.NotFound:
            return None
        return ObjectMetadata(
            content_type=result.content_type,
            content_length=result.content_length or 0,
        )

    def delete(self, key: str) -> bool:
        """Delete an object; failures are logged and reported as False."""
        try:
            self.bucket.delete_object(key)
            logger.info(f"Object deleted: {key}")
            return True
        except oss2.exceptions.OssError as e:
            logger.error(f"Failed to delete object {key}: {e}")
            return False

    def get_public_url(self, key: str) -> str:
        public_endpoint = settings.oss_endpoint.replace("-internal", "")
        return f"https://{settings.oss_bucket_name}.{public_endpoint}/{key}"
