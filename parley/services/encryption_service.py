"""
Encryption service for key bundle management.

Stores public identity keys, signed pre-keys and a pool of one-time
pre-keys per user. The server never sees private keys; it only hands out
bundles so peers can open sessions.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.cache import cache
from parley.core.errors import ConflictError, NotFoundError
from parley.models.encryption import IdentityKey, OneTimePreKey, SignedPreKey

logger = logging.getLogger(__name__)

BUNDLE_CACHE_TTL = 600
# A concurrent fetch may consume the key we picked; try the next one.
MAX_CONSUME_ATTEMPTS = 5


def _bundle_cache_key(user_id: str) -> str:
    return f"keybundle:{user_id}"


class EncryptionService:
    """Service for key material operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upload_keys(
        self,
        user_id: str,
        registration_id: Optional[int] = None,
        identity_key: Optional[str] = None,
        signed_prekey: Optional[Dict[str, Any]] = None,
        one_time_prekeys: Optional[List[Dict[str, Any]]] = None,
    ) -> int:
        """
        Upload or update a user's key material in one transaction.

        Upserts the identity key and signed pre-key when given, then inserts
        the one-time pre-keys whose key id the user does not have yet.

        Args:
            user_id: Owner of the keys
            registration_id: Client registration id
            identity_key: Base64 identity public key
            signed_prekey: {key_id, public_key, signature}
            one_time_prekeys: List of {key_id, public_key}

        Returns:
            Number of one-time pre-keys added
        """
        if identity_key:
            identity = await self.db.get(IdentityKey, user_id)
            if identity is None:
                self.db.add(IdentityKey(
                    user_id=user_id,
                    registration_id=registration_id,
                    public_key=identity_key,
                ))
            else:
                identity.public_key = identity_key
                identity.registration_id = registration_id

        if signed_prekey:
            current = await self.db.get(SignedPreKey, user_id)
            if current is None:
                self.db.add(SignedPreKey(
                    user_id=user_id,
                    key_id=signed_prekey["key_id"],
                    public_key=signed_prekey["public_key"],
                    signature=signed_prekey["signature"],
                ))
            else:
                current.key_id = signed_prekey["key_id"]
                current.public_key = signed_prekey["public_key"]
                current.signature = signed_prekey["signature"]

        added = 0
        if one_time_prekeys:
            result = await self.db.execute(
                select(OneTimePreKey.key_id).where(
                    OneTimePreKey.user_id == user_id,
                    OneTimePreKey.key_id.in_([k["key_id"] for k in one_time_prekeys]),
                )
            )
            seen = set(result.scalars().all())
            for key in one_time_prekeys:
                if key["key_id"] in seen:
                    continue
                seen.add(key["key_id"])
                self.db.add(OneTimePreKey(
                    user_id=user_id,
                    key_id=key["key_id"],
                    public_key=key["public_key"],
                ))
                added += 1

        await self.db.commit()
        await cache.delete(_bundle_cache_key(user_id))

        logger.info(f"Keys uploaded for user {user_id}, {added} one-time pre-keys added")
        return added

    async def _stable_bundle(self, user_id: str) -> Dict[str, Any]:
        """Identity and signed pre-key part of a bundle, cached when Redis is up."""
        cache_key = _bundle_cache_key(user_id)
        cached = await cache.get(cache_key)
        if cached:
            return cached

        identity = await self.db.get(IdentityKey, user_id)
        signed = await self.db.get(SignedPreKey, user_id)
        if identity is None or signed is None:
            raise NotFoundError("User has not set up encryption keys yet")

        bundle = {
            "user_id": user_id,
            "registration_id": identity.registration_id,
            "identity_key": identity.public_key,
            "signed_prekey": {
                "key_id": signed.key_id,
                "public_key": signed.public_key,
                "signature": signed.signature,
            },
        }
        await cache.set(cache_key, bundle, ttl=BUNDLE_CACHE_TTL)
        return bundle

    async def get_prekey_bundle(self, target_user_id: str) -> Dict[str, Any]:
        """
        Fetch a user's bundle, consuming the oldest one-time pre-key.

        Each one-time pre-key is handed out exactly once: it is removed with
        a conditional delete, and if a concurrent fetch removed it first the
        next oldest key is tried. `one_time_prekey` is None once the pool is
        empty.

        Raises:
            NotFoundError: identity key or signed pre-key missing
        """
        bundle = dict(await self._stable_bundle(target_user_id))
        bundle["one_time_prekey"] = None

        for attempt in range(MAX_CONSUME_ATTEMPTS):
            result = await self.db.execute(
                select(OneTimePreKey)
                .where(OneTimePreKey.user_id == target_user_id)
                .order_by(OneTimePreKey.key_id.asc())
                .limit(1)
            )
            prekey = result.scalar_one_or_none()
            if prekey is None:
                logger.warning(f"No one-time pre-keys left for user {target_user_id}")
                break

            prekey_id = prekey.id
            payload = {"key_id": prekey.key_id, "public_key": prekey.public_key}
            deleted = await self.db.execute(
                delete(OneTimePreKey)
                .where(OneTimePreKey.id == prekey_id)
                .execution_options(synchronize_session=False)
            )
            if deleted.rowcount == 1:
                self.db.expunge(prekey)
                bundle["one_time_prekey"] = payload
                logger.info(f"One-time pre-key {payload['key_id']} consumed for user {target_user_id}")
                break
        else:
            raise ConflictError("Pre-key pool is busy, please retry")

        await self.db.commit()
        return bundle

    async def count_one_time_prekeys(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(OneTimePreKey).where(OneTimePreKey.user_id == user_id)
        )
        return result.scalar()
