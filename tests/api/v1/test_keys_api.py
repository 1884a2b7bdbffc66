"""
Integration tests for key API endpoints.
"""
import pytest

UPLOAD = {
    "registrationId": 321,
    "identityKey": "aWRlbnRpdHk=",
    "signedPreKey": {"keyId": 1, "publicKey": "c2lnbmVk", "signature": "c2ln"},
    "oneTimePreKeys": [{"keyId": 5, "publicKey": "b3RwNQ=="}],
}


@pytest.mark.asyncio
class TestKeyEndpoints:
    async def test_upload_and_fetch_bundle(self, client, auth_headers_for, alice, bob):
        uploaded = await client.post("/api/v1/keys", json=UPLOAD, headers=auth_headers_for(bob))
        assert uploaded.json() == {"added": 1, "available": 1}

        first = (await client.get(f"/api/v1/keys/{bob.id}", headers=auth_headers_for(alice))).json()
        second = (await client.get(f"/api/v1/keys/{bob.id}", headers=auth_headers_for(alice))).json()

        assert first["userId"] == bob.id
        assert first["registrationId"] == 321
        assert first["signedPreKey"] == {"keyId": 1, "publicKey": "c2lnbmVk", "signature": "c2ln"}
        assert first["oneTimePreKey"] == {"keyId": 5, "publicKey": "b3RwNQ=="}
        assert second["oneTimePreKey"] is None

        count = await client.get("/api/v1/keys/count", headers=auth_headers_for(bob))
        assert count.json() == {"count": 0}

    async def test_rejects_non_base64_keys(self, client, auth_headers_for, alice):
        response = await client.post(
            "/api/v1/keys", json={"identityKey": "not base64!"}, headers=auth_headers_for(alice)
        )

        assert response.status_code == 422

    async def test_missing_bundle(self, client, auth_headers_for, alice, bob):
        response = await client.get(f"/api/v1/keys/{bob.id}", headers=auth_headers_for(alice))

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_rejects_key_with_trailing_newline(self, client, auth_headers_for, alice):
        response = await client.post(
            "/api/v1/keys", json={"identityKey": "AAA\n"}, headers=auth_headers_for(alice)
        )

        assert response.status_code == 422
