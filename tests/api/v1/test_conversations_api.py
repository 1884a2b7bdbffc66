"""
Integration tests for conversation API endpoints.
"""
import pytest


@pytest.mark.asyncio
class TestDirectConversations:
    async def test_get_or_create(self, client, auth_headers_for, alice, bob, mock_websocket_manager):
        """201 on creation, 200 with the same conversation afterwards."""
        created = await client.post(
            "/api/v1/conversations", json={"participantId": bob.id}, headers=auth_headers_for(alice)
        )
        existing = await client.post(
            "/api/v1/conversations", json={"participantId": alice.id}, headers=auth_headers_for(bob)
        )

        assert created.status_code == 201
        assert existing.status_code == 200
        assert created.json()["id"] == existing.json()["id"]
        assert created.json()["type"] == "DIRECT"
        assert len(created.json()["participants"]) == 2
        mock_websocket_manager.broadcast_conversation_created.assert_awaited_once()

    async def test_with_self(self, client, auth_headers_for, alice):
        response = await client.post(
            "/api/v1/conversations", json={"participantId": alice.id}, headers=auth_headers_for(alice)
        )

        assert response.status_code == 400

    async def test_list_with_summary(self, client, auth_headers_for, alice, bob, direct_conversation):
        await client.post(
            f"/api/v1/messages/{direct_conversation.id}",
            json={"content": "latest"},
            headers=auth_headers_for(alice),
        )

        response = await client.get("/api/v1/conversations", headers=auth_headers_for(bob))

        body = response.json()
        assert body["hasMore"] is False
        [entry] = body["data"]
        assert entry["id"] == direct_conversation.id
        assert entry["lastMessage"]["content"] == "latest"
        assert entry["unreadCount"] == 1

    async def test_outsider_cannot_read(self, client, auth_headers_for, carol, direct_conversation):
        response = await client.get(
            f"/api/v1/conversations/{direct_conversation.id}", headers=auth_headers_for(carol)
        )

        assert response.status_code == 403

    async def test_delete(self, client, auth_headers_for, alice, direct_conversation, mock_websocket_manager):
        response = await client.delete(
            f"/api/v1/conversations/{direct_conversation.id}", headers=auth_headers_for(alice)
        )

        assert response.json() == {"success": True, "conversationId": direct_conversation.id}
        mock_websocket_manager.broadcast_conversation_deleted.assert_awaited_once()


@pytest.mark.asyncio
class TestGroupConversations:
    async def test_create_group(self, client, auth_headers_for, alice, bob, carol, give_identity_key, mock_websocket_manager):
        await give_identity_key(alice, bob, carol)

        response = await client.post(
            "/api/v1/conversations/group",
            json={"title": "Trip", "participantIds": [bob.id, carol.id]},
            headers=auth_headers_for(alice),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["type"] == "GROUP"
        roles = {p["userId"]: p["role"] for p in body["participants"]}
        assert roles[alice.id] == "ADMIN"
        invited = mock_websocket_manager.broadcast_conversation_invite.await_args.args[1]
        assert set(invited) == {bob.id, carol.id}

    async def test_create_group_without_keys(self, client, auth_headers_for, alice, bob):
        response = await client.post(
            "/api/v1/conversations/group",
            json={"title": "Trip", "participantIds": [bob.id]},
            headers=auth_headers_for(alice),
        )

        assert response.status_code == 400

    async def test_add_and_remove_participant(
        self, client, auth_headers_for, make_user, alice, bob, group_conversation, give_identity_key, mock_websocket_manager
    ):
        dave = await make_user("dave")
        await give_identity_key(dave)
        path = f"/api/v1/conversations/{group_conversation.id}/participants"

        added = await client.post(path, json={"userId": dave.id}, headers=auth_headers_for(alice))
        by_member = await client.delete(f"{path}/{dave.id}", headers=auth_headers_for(bob))
        by_admin = await client.delete(f"{path}/{dave.id}", headers=auth_headers_for(alice))

        assert added.status_code == 201
        assert added.json()["user"]["username"] == "dave"
        assert by_member.status_code == 403
        assert by_admin.json()["conversationDeleted"] is False
        mock_websocket_manager.broadcast_participant_added.assert_awaited_once()
        mock_websocket_manager.broadcast_participant_removed.assert_awaited_once()

    async def test_list_participants(self, client, auth_headers_for, bob, group_conversation):
        response = await client.get(
            f"/api/v1/conversations/{group_conversation.id}/participants", headers=auth_headers_for(bob)
        )

        assert sorted(p["user"]["username"] for p in response.json()) == ["alice", "bob", "carol"]
