"""
Tests for the Socket.IO connection manager.
Handlers are called directly; the Socket.IO server is replaced with a mock.
"""
import pytest
import socketio

from parley.core.cache import RedisCache
from parley.core.presence import PresenceRegistry
from parley.core.security import create_access_token
from parley.core.websocket import ConnectionManager, conversation_room, user_room
from parley.services.message_service import MessageService


@pytest.fixture
def manager(session_factory, mocker):
    """Fresh manager with real fan-out over a mocked Socket.IO server."""
    manager = ConnectionManager()
    manager.session_factory = session_factory
    manager.presence = PresenceRegistry(RedisCache(), ttl=60)
    manager.sio = mocker.MagicMock()
    manager.sio.emit = mocker.AsyncMock()
    manager.sio.enter_room = mocker.AsyncMock()
    manager.sio.leave_room = mocker.AsyncMock()
    manager.sio.close_room = mocker.AsyncMock()
    manager.sio.rooms = mocker.MagicMock(return_value=[])
    return manager


def emitted(manager, event):
    """(data, kwargs) of every emit of `event`."""
    return [
        (call.args[1], call.kwargs)
        for call in manager.sio.emit.await_args_list
        if call.args[0] == event
    ]


@pytest.mark.asyncio
class TestConnectionLifecycle:
    async def test_connect_with_auth_token(self, manager, alice):
        await manager.handle_connect("sid-1", {}, {"token": create_access_token(alice.id)})

        assert manager.connections == {"sid-1": alice.id}
        manager.sio.enter_room.assert_awaited_once_with("sid-1", user_room(alice.id))
        [(payload, kwargs)] = emitted(manager, "presence")
        assert payload["online"] is True
        assert kwargs["room"] == [user_room(alice.id)]

    async def test_connect_with_cookie(self, manager, bob):
        environ = {"HTTP_COOKIE": f"theme=dark; accessToken={create_access_token(bob.id)}"}

        await manager.handle_connect("sid-2", environ, None)

        assert manager.connections["sid-2"] == bob.id

    @pytest.mark.parametrize("auth", [None, {}, {"token": "garbage"}])
    async def test_connect_rejected_without_valid_token(self, manager, auth):
        with pytest.raises(socketio.exceptions.ConnectionRefusedError):
            await manager.handle_connect("sid-x", {}, auth)
        assert manager.connections == {}

    async def test_connect_rejected_for_unknown_user(self, manager):
        with pytest.raises(socketio.exceptions.ConnectionRefusedError):
            await manager.handle_connect("sid-x", {}, {"token": create_access_token("ghost")})

    async def test_second_connection_does_not_rebroadcast(self, manager, carol):
        token = create_access_token(carol.id)
        await manager.handle_connect("sid-a", {}, {"token": token})
        await manager.handle_connect("sid-b", {}, {"token": token})
        await manager.handle_disconnect("sid-a")

        assert len(emitted(manager, "presence")) == 1

        await manager.handle_disconnect("sid-b")

        offline = emitted(manager, "presence")[-1][0]
        assert offline["online"] is False
        assert offline["lastSeen"] is not None
        assert manager.connections == {}

    async def test_activity_rebuilds_expired_presence_entry(self, manager, carol):
        """A tab that stays active keeps the user online after its entry lapses."""
        token = create_access_token(carol.id)
        await manager.handle_connect("sid-a", {}, {"token": token})
        await manager.handle_connect("sid-b", {}, {"token": token})
        manager.presence._local.clear()

        ack = await manager.handle_heartbeat("sid-b")
        await manager.handle_disconnect("sid-a")

        assert ack == {"success": True}
        assert [payload["online"] for payload, _ in emitted(manager, "presence")] == [True]

    async def test_heartbeat_requires_connection(self, manager):
        ack = await manager.handle_heartbeat("sid-unknown")

        assert ack["success"] is False
        assert ack["error"]["error"] == "UNAUTHENTICATED"


@pytest.mark.asyncio
class TestClientEvents:
    async def test_send_message_acks_and_fans_out(self, manager, alice, bob, direct_conversation):
        manager.connections["sid-a"] = alice.id

        ack = await manager.handle_send_message(
            "sid-a", {"conversationId": direct_conversation.id, "content": "hello"}
        )

        assert ack["success"] is True
        assert ack["message"]["content"] == "hello"
        assert ack["message"]["conversationId"] == direct_conversation.id
        [(payload, kwargs)] = emitted(manager, "message")
        assert kwargs["skip_sid"] == "sid-a"
        assert set(kwargs["room"]) == {
            conversation_room(direct_conversation.id),
            user_room(alice.id),
            user_room(bob.id),
        }
        updates = {kw["room"]: data for data, kw in emitted(manager, "conversation.updated")}
        assert updates[user_room(bob.id)]["unreadCount"] == 1
        assert "unreadCount" not in updates[user_room(alice.id)]

    async def test_failure_returns_ack_and_error_event(self, manager, carol, direct_conversation):
        manager.connections["sid-c"] = carol.id

        ack = await manager.handle_send_message(
            "sid-c", {"conversationId": direct_conversation.id, "content": "let me in"}
        )

        assert ack == {
            "success": False,
            "error": {"error": "FORBIDDEN", "message": "You are not a participant in this conversation"},
        }
        [(payload, kwargs)] = emitted(manager, "error")
        assert payload["event"] == "send_message"
        assert kwargs["to"] == "sid-c"
        assert emitted(manager, "message") == []

    async def test_unknown_connection_is_unauthenticated(self, manager):
        ack = await manager.handle_send_message("sid-?", {"conversationId": "c", "content": "x"})

        assert ack["error"]["error"] == "UNAUTHENTICATED"

    async def test_missing_conversation_id(self, manager, alice):
        manager.connections["sid-a"] = alice.id

        ack = await manager.handle_mark_read("sid-a", {})

        assert ack["error"]["error"] == "INVALID_ARGUMENT"

    async def test_join_requires_membership(self, manager, alice, carol, direct_conversation):
        manager.connections["sid-a"] = alice.id
        manager.connections["sid-c"] = carol.id

        joined = await manager.handle_join_conversation("sid-a", {"conversationId": direct_conversation.id})
        refused = await manager.handle_join_conversation("sid-c", {"conversationId": direct_conversation.id})

        assert joined == {"success": True, "conversationId": direct_conversation.id}
        assert refused["error"]["error"] == "FORBIDDEN"
        manager.sio.enter_room.assert_awaited_once_with("sid-a", conversation_room(direct_conversation.id))

    async def test_typing_only_in_joined_rooms(self, manager, alice, direct_conversation):
        manager.connections["sid-a"] = alice.id
        room = conversation_room(direct_conversation.id)
        data = {"conversationId": direct_conversation.id, "typing": True}

        refused = await manager.handle_typing("sid-a", data)
        manager.sio.rooms.return_value = ["sid-a", room]
        relayed = await manager.handle_typing("sid-a", data)

        assert refused["success"] is False
        assert relayed == {"success": True}
        [(payload, kwargs)] = emitted(manager, "typing")
        assert payload == {"conversationId": direct_conversation.id, "userId": alice.id, "typing": True}
        assert kwargs["room"] == room
        assert kwargs["skip_sid"] == "sid-a"

    async def test_mark_read_emits_receipt(self, manager, db_session, alice, bob, direct_conversation):
        await MessageService(db_session).create_message(alice.id, direct_conversation.id, content="read me")
        manager.connections["sid-b"] = bob.id

        ack = await manager.handle_mark_read("sid-b", {"conversationId": direct_conversation.id})

        assert ack == {"success": True, "marked": 1, "newUnreadCount": 0}
        [(receipt, kwargs)] = emitted(manager, "read_receipt")
        assert receipt["userId"] == bob.id
        assert kwargs["room"] == conversation_room(direct_conversation.id)

    async def test_leave_conversation(self, manager, alice):
        manager.connections["sid-a"] = alice.id

        ack = await manager.handle_leave_conversation("sid-a", {"conversationId": "conv-1"})

        assert ack["success"] is True
        manager.sio.leave_room.assert_awaited_once_with("sid-a", conversation_room("conv-1"))


@pytest.mark.asyncio
class TestFanOut:
    async def test_removed_participant_is_evicted(self, manager, alice, bob, carol, group_conversation):
        from parley.services.conversation_service import ParticipantRemoval

        manager.connections.update({"sid-b1": bob.id, "sid-b2": bob.id, "sid-c": carol.id})
        removal = ParticipantRemoval(
            group_conversation.id, bob.id, conversation_deleted=False, remaining_user_ids=[alice.id, carol.id]
        )

        await manager.broadcast_participant_removed(removal, removed_by=alice.id)

        room = conversation_room(group_conversation.id)
        left = {call.args for call in manager.sio.leave_room.await_args_list}
        assert left == {("sid-b1", room), ("sid-b2", room)}
        [(_, kwargs)] = emitted(manager, "conversation.removed")
        assert kwargs["room"] == user_room(bob.id)
        [(payload, _)] = emitted(manager, "participant.removed")
        assert payload["userId"] == bob.id

    async def test_conversation_deleted_closes_room(self, manager, alice, bob):
        await manager.broadcast_conversation_deleted("conv-9", [alice.id, bob.id], deleted_by=alice.id)

        [(payload, kwargs)] = emitted(manager, "conversation.removed")
        assert payload == {"conversationId": "conv-9", "removedBy": alice.id}
        assert kwargs["room"] == [user_room(alice.id), user_room(bob.id)]
        manager.sio.close_room.assert_awaited_once_with(conversation_room("conv-9"))
