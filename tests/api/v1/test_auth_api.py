"""
Integration tests for the authentication and profile endpoints.
"""
import pytest


@pytest.mark.asyncio
class TestAuthEndpoints:
    async def test_register_then_login(self, client):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "gina@example.com", "username": "gina", "password": "long-enough", "displayName": "Gina"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["tokenType"] == "Bearer"
        assert body["user"]["friendCode"].startswith("gina#")
        assert body["user"]["displayName"] == "Gina"

        login = await client.post("/api/v1/auth/login", json={"identifier": "gina", "password": "long-enough"})
        assert login.status_code == 200
        assert login.json()["user"]["id"] == body["user"]["id"]

    async def test_register_validation(self, client):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "not-an-email", "username": "x", "password": "short"},
        )

        assert response.status_code == 422

    async def test_register_duplicate(self, client, alice):
        response = await client.post(
            "/api/v1/auth/register",
            json={"email": "alice@example.com", "username": "alice2", "password": "long-enough"},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    async def test_bad_login(self, client):
        response = await client.post("/api/v1/auth/login", json={"identifier": "nobody", "password": "x"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_refresh_rotates_and_detects_reuse(self, client):
        """A refresh token works once; replaying it kills the whole session family."""
        registered = (await client.post(
            "/api/v1/auth/register",
            json={"email": "hal@example.com", "username": "hal", "password": "long-enough"},
        )).json()
        original = registered["refreshToken"]

        rotated = await client.post("/api/v1/auth/refresh", json={"refreshToken": original})
        assert rotated.status_code == 200
        successor = rotated.json()["refreshToken"]
        assert successor != original

        replay = await client.post("/api/v1/auth/refresh", json={"refreshToken": original})
        assert replay.status_code == 401

        after = await client.post("/api/v1/auth/refresh", json={"refreshToken": successor})
        assert after.status_code == 401

    async def test_logout(self, client):
        registered = (await client.post(
            "/api/v1/auth/register",
            json={"email": "ivy@example.com", "username": "ivy", "password": "long-enough"},
        )).json()

        response = await client.post("/api/v1/auth/logout", json={"refreshToken": registered["refreshToken"]})

        assert response.json() == {"success": True, "revoked": True}


@pytest.mark.asyncio
class TestProfileEndpoints:
    async def test_me(self, client, auth_headers_for, alice):
        response = await client.get("/api/v1/users/me", headers=auth_headers_for(alice))

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "alice"
        assert body["friendCode"] == alice.friend_code
        assert "passwordHash" not in body and "password_hash" not in body

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer nope"}, {"Authorization": "Token x"}])
    async def test_me_requires_valid_token(self, client, headers):
        response = await client.get("/api/v1/users/me", headers=headers)

        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHENTICATED"

    async def test_avatar_upload_url(self, client, auth_headers_for, alice, mocker):
        storage = mocker.MagicMock()
        storage.build_avatar_key.return_value = f"avatars/{alice.id}/k.png"
        storage.presign_put.return_value = "https://bucket.example.com/put"
        mocker.patch("parley.services.user_service.StorageService", return_value=storage)

        response = await client.post(
            "/api/v1/users/me/avatar/upload-url",
            json={"contentType": "image/png"},
            headers=auth_headers_for(alice),
        )

        assert response.status_code == 200
        assert response.json() == {"uploadUrl": "https://bucket.example.com/put", "key": f"avatars/{alice.id}/k.png"}
