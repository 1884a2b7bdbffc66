"""
Integration tests for message API endpoints.
"""
import pytest


@pytest.mark.asyncio
class TestMessageEndpoints:
    """Test message sending, history, read marks, edits and deletes."""

    async def test_send_message(self, client, auth_headers_for, alice, bob, direct_conversation, mock_websocket_manager):
        response = await client.post(
            f"/api/v1/messages/{direct_conversation.id}",
            json={"content": "hello bob"},
            headers=auth_headers_for(alice),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["content"] == "hello bob"
        assert body["contentType"] == "TEXT"
        assert body["sender"]["username"] == "alice"
        assert body["unreadCounts"] == {bob.id: 1}
        mock_websocket_manager.broadcast_new_message.assert_awaited_once()

    async def test_send_requires_membership(self, client, auth_headers_for, carol, direct_conversation):
        response = await client.post(
            f"/api/v1/messages/{direct_conversation.id}",
            json={"content": "hi"},
            headers=auth_headers_for(carol),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    async def test_ciphertext_must_be_base64(self, client, auth_headers_for, alice, direct_conversation):
        response = await client.post(
            f"/api/v1/messages/{direct_conversation.id}",
            json={"content": "plain text!", "contentType": "SIGNAL_ENCRYPTED"},
            headers=auth_headers_for(alice),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "SECURITY_VIOLATION"

    async def test_history_pages(self, client, auth_headers_for, alice, bob, direct_conversation):
        for n in range(3):
            await client.post(
                f"/api/v1/messages/{direct_conversation.id}",
                json={"content": f"m{n}"},
                headers=auth_headers_for(alice),
            )

        first = (await client.get(
            f"/api/v1/messages/{direct_conversation.id}",
            params={"limit": 2},
            headers=auth_headers_for(bob),
        )).json()
        second = (await client.get(
            f"/api/v1/messages/{direct_conversation.id}",
            params={"limit": 2, "cursor": first["nextCursor"]},
            headers=auth_headers_for(bob),
        )).json()

        assert [m["content"] for m in first["data"]] == ["m1", "m2"]
        assert first["hasMore"] is True
        assert [m["content"] for m in second["data"]] == ["m0"]
        assert second["hasMore"] is False

    async def test_bad_cursor(self, client, auth_headers_for, alice, direct_conversation):
        response = await client.get(
            f"/api/v1/messages/{direct_conversation.id}",
            params={"cursor": "!!!"},
            headers=auth_headers_for(alice),
        )

        assert response.status_code == 400

    async def test_mark_read(self, client, auth_headers_for, alice, bob, direct_conversation, mock_websocket_manager):
        await client.post(
            f"/api/v1/messages/{direct_conversation.id}",
            json={"content": "read me"},
            headers=auth_headers_for(alice),
        )

        response = await client.post(
            f"/api/v1/messages/{direct_conversation.id}/read",
            json={},
            headers=auth_headers_for(bob),
        )

        assert response.status_code == 200
        assert response.json() == {"marked": 1, "newUnreadCount": 0}
        mock_websocket_manager.broadcast_read.assert_awaited_once()

    async def test_edit_and_delete(self, client, auth_headers_for, alice, bob, direct_conversation):
        sent = (await client.post(
            f"/api/v1/messages/{direct_conversation.id}",
            json={"content": "typo"},
            headers=auth_headers_for(alice),
        )).json()

        forbidden = await client.put(
            f"/api/v1/messages/{sent['id']}", json={"content": "hijack"}, headers=auth_headers_for(bob)
        )
        edited = await client.put(
            f"/api/v1/messages/{sent['id']}", json={"content": "fixed"}, headers=auth_headers_for(alice)
        )
        deleted = await client.delete(f"/api/v1/messages/{sent['id']}", headers=auth_headers_for(alice))

        assert forbidden.status_code == 403
        assert edited.json()["content"] == "fixed"
        assert edited.json()["editedAt"] is not None
        assert deleted.json() == {"id": sent["id"], "conversationId": direct_conversation.id}

        history = (await client.get(
            f"/api/v1/messages/{direct_conversation.id}", headers=auth_headers_for(bob)
        )).json()
        assert history["data"] == []
