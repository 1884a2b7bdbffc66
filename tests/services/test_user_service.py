"""
Unit tests for UserService.
Tests registration, credential checks and the avatar upload flow.
"""
import re

import pytest

from parley.core.errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from parley.services.storage_service import ObjectMetadata, StorageService
from parley.services.user_service import UserService


@pytest.fixture
def storage(mocker):
    """StorageService double; no bucket is contacted."""
    fake = mocker.MagicMock(spec=StorageService)
    fake.build_avatar_key.side_effect = lambda user_id, content_type: f"avatars/{user_id}/new.png"
    fake.presign_put.return_value = "https://bucket.example.com/signed"
    fake.get_public_url.side_effect = lambda key: f"https://cdn.example.com/{key}"
    fake.delete.return_value = True
    return fake


@pytest.mark.asyncio
class TestRegistration:
    async def test_register_generates_friend_code(self, db_session):
        user = await UserService(db_session).register(
            email=" Dave@Example.com ", username="dave", password="s3cret-pass"
        )

        assert user.email == "dave@example.com"
        assert user.display_name == "dave"
        assert re.fullmatch(r"dave#\d{4}", user.friend_code)
        assert user.password_hash != "s3cret-pass"

    async def test_duplicate_username(self, db_session, alice):
        with pytest.raises(ConflictError):
            await UserService(db_session).register(
                email="other@example.com", username="alice", password="s3cret-pass"
            )

    async def test_authenticate_by_email_or_username(self, db_session):
        service = UserService(db_session)
        registered = await service.register(email="erin@example.com", username="erin", password="pw-123456")

        by_name = await service.authenticate("erin", "pw-123456")
        by_email = await service.authenticate("erin@example.com", "pw-123456")

        assert by_name.id == by_email.id == registered.id

    async def test_authenticate_rejects_bad_password(self, db_session):
        service = UserService(db_session)
        await service.register(email="finn@example.com", username="finn", password="pw-123456")

        with pytest.raises(AuthenticationError):
            await service.authenticate("finn", "wrong")
        with pytest.raises(AuthenticationError):
            await service.authenticate("nobody", "pw-123456")

    async def test_get_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            await UserService(db_session).get_user("missing")


@pytest.mark.asyncio
class TestAvatar:
    async def test_create_upload(self, db_session, alice, storage):
        url, key = await UserService(db_session, storage).create_avatar_upload(alice.id, "image/png")

        assert url == "https://bucket.example.com/signed"
        assert key == f"avatars/{alice.id}/new.png"
        storage.presign_put.assert_called_once_with(key, "image/png")

    async def test_create_upload_rejects_type(self, db_session, alice, storage):
        with pytest.raises(InvalidArgumentError):
            await UserService(db_session, storage).create_avatar_upload(alice.id, "image/gif")

    async def test_complete_replaces_previous_avatar(self, db_session, alice, storage):
        """Completing a second upload removes the first object."""
        storage.head.return_value = ObjectMetadata(content_type="image/png", content_length=1024)
        service = UserService(db_session, storage)
        await service.complete_avatar_upload(alice.id, f"avatars/{alice.id}/old.png")

        user = await service.complete_avatar_upload(alice.id, f"avatars/{alice.id}/new.png")

        assert user.avatar_url == f"https://cdn.example.com/avatars/{alice.id}/new.png"
        storage.delete.assert_called_once_with(f"avatars/{alice.id}/old.png")

    async def test_complete_rejects_foreign_key(self, db_session, alice, bob, storage):
        with pytest.raises(ForbiddenError):
            await UserService(db_session, storage).complete_avatar_upload(alice.id, f"avatars/{bob.id}/x.png")

    async def test_complete_missing_object(self, db_session, alice, storage):
        storage.head.return_value = None

        with pytest.raises(NotFoundError):
            await UserService(db_session, storage).complete_avatar_upload(alice.id, f"avatars/{alice.id}/x.png")

    async def test_oversized_upload_is_deleted(self, db_session, alice, storage):
        key = f"avatars/{alice.id}/big.png"
        storage.head.return_value = ObjectMetadata(content_type="image/png", content_length=50 * 1024 * 1024)

        with pytest.raises(InvalidArgumentError):
            await UserService(db_session, storage).complete_avatar_upload(alice.id, key)

        storage.delete.assert_called_once_with(key)

    async def test_delete_avatar(self, db_session, alice, storage):
        key = f"avatars/{alice.id}/a.webp"
        storage.head.return_value = ObjectMetadata(content_type="image/webp", content_length=10)
        service = UserService(db_session, storage)
        await service.complete_avatar_upload(alice.id, key)

        user = await service.delete_avatar(alice.id)

        assert user.avatar_url is None
        assert user.avatar_key is None
        storage.delete.assert_called_once_with(key)
