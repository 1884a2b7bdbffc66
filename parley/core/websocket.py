"""
WebSocket manager for real-time messaging.

Authenticates each Socket.IO connection, keeps presence in step with open
connections and fans ledger results out to rooms:

- `conversation:{id}`: connections that joined the conversation
- `user:{id}`: every connection of one user (private channel)

Event handlers return an acknowledgement dict; failures are also emitted
to the calling connection as an `error` event.
"""
import logging
from http.cookies import SimpleCookie
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import socketio
from fastapi.encoders import jsonable_encoder

from parley.config import settings
from parley.core.database import AsyncSessionLocal
from parley.core.errors import AuthenticationError, ChatError, InvalidArgumentError
from parley.core.presence import presence_registry
from parley.core.security import decode_access_token
from parley.models.conversation import Conversation, Participant
from parley.repositories.user_repo import UserRepository
from parley.schemas.conversation import ConversationResponse, ParticipantResponse
from parley.schemas.message import MessageResponse
from parley.services.conversation_service import ConversationService, ParticipantRemoval
from parley.services.message_service import (
    MessageDeletion,
    MessageDelivery,
    MessageEdit,
    MessageService,
    ReadResult,
)
from parley.services.presence_service import PresenceChange, PresenceService
from parley.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def conversation_room(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


def serialize_message(message) -> Dict[str, Any]:
    return MessageResponse.model_validate(message).model_dump(by_alias=True, mode="json")


def serialize_conversation(conversation: Conversation) -> Dict[str, Any]:
    return ConversationResponse.model_validate(conversation).model_dump(by_alias=True, mode="json")


def _require_field(data: Any, key: str) -> Any:
    value = data.get(key) if isinstance(data, dict) else None
    if not value:
        raise InvalidArgumentError(f"{key} is required")
    return value


def _token_from_cookie(environ: Dict[str, Any]) -> Optional[str]:
    raw = (environ or {}).get("HTTP_COOKIE")
    if not raw:
        return None
    morsel = SimpleCookie(raw).get("accessToken")
    return morsel.value if morsel else None


class ConnectionManager:
    """
    WebSocket connection manager using Socket.IO.

    Connection bookkeeping here is per process ({sid: user_id}); presence
    counts live in the shared presence registry. With Redis configured the
    Socket.IO client manager is Redis-backed, so room emits reach
    connections held by other instances.
    """

    def __init__(self):
        cors_origins = settings.get_allowed_origins_list() or "*"
        client_manager = (
            socketio.AsyncRedisManager(settings.redis_url) if settings.redis_url else None
        )

        self.sio = socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=cors_origins,
            client_manager=client_manager,
            logger=False,
            engineio_logger=False,
            ping_timeout=settings.ws_heartbeat_interval,
            ping_interval=settings.ws_heartbeat_interval // 2,
        )

        # {sid: user_id}
        self.connections: Dict[str, str] = {}
        self.presence = presence_registry
        self.session_factory = AsyncSessionLocal

        self._setup_handlers()

    def _setup_handlers(self):
        """Setup Socket.IO event handlers."""
        self.sio.on("connect", self.handle_connect)
        self.sio.on("disconnect", self.handle_disconnect)
        self.sio.on("send_message", self.handle_send_message)
        self.sio.on("edit_message", self.handle_edit_message)
        self.sio.on("delete_message", self.handle_delete_message)
        self.sio.on("typing", self.handle_typing)
        self.sio.on("join_conversation", self.handle_join_conversation)
        self.sio.on("leave_conversation", self.handle_leave_conversation)
        self.sio.on("mark_read", self.handle_mark_read)
        self.sio.on("heartbeat", self.handle_heartbeat)

    async def _emit(
        self,
        event: str,
        data: Any,
        rooms: Iterable[str] | str,
        skip_sid: Optional[str] = None,
    ) -> None:
        if not isinstance(rooms, str):
            rooms = list(dict.fromkeys(rooms))
            if not rooms:
                return
        await self.sio.emit(event, jsonable_encoder(data), room=rooms, skip_sid=skip_sid)

    def _user_id(self, sid: str) -> str:
        user_id = self.connections.get(sid)
        if not user_id:
            raise AuthenticationError("Unauthorized")
        return user_id

    async def _run(
        self,
        sid: str,
        event: str,
        operation: Callable[[str], Awaitable[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        """Run a handler body, turning ChatError into a failed ack plus an `error` event."""
        try:
            user_id = self._user_id(sid)
            await self.presence.touch(user_id, sid)
            return await operation(user_id)
        except ChatError as e:
            logger.info(f"[{event}] rejected for {sid}: {e.kind.value} {e.message}")
            payload = e.to_dict()
            await self.sio.emit("error", {**payload, "event": event}, to=sid)
            return {"success": False, "error": payload}

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def handle_connect(self, sid, environ, auth=None):
        """
        Authenticate with the access token from the handshake `auth` payload
        (or the `accessToken` cookie) and join the user's private room.
        """
        token = auth.get("token") if isinstance(auth, dict) else None
        token = token or _token_from_cookie(environ)
        if not token:
            logger.warning(f"Connection rejected - no token: {sid}")
            raise socketio.exceptions.ConnectionRefusedError("Authentication error: token missing")

        try:
            user_id = decode_access_token(token)
        except AuthenticationError as e:
            logger.warning(f"Connection rejected - {e.message}: {sid}")
            raise socketio.exceptions.ConnectionRefusedError("Authentication error: Unauthorized")

        async with self.session_factory() as db:
            if not await UserRepository(db).exists(user_id):
                logger.warning(f"Connection rejected - user not found: {sid}")
                raise socketio.exceptions.ConnectionRefusedError("Authentication error: Unauthorized")

            self.connections[sid] = user_id
            await self.sio.enter_room(sid, user_room(user_id))
            change = await PresenceService(db, self.presence).connect(user_id, sid)

        if change is not None:
            await self.broadcast_presence(change)
        logger.info(f"Client connected: {sid} (user: {user_id})")

    async def handle_disconnect(self, sid, *args):
        user_id = self.connections.pop(sid, None)
        if not user_id:
            return

        async with self.session_factory() as db:
            change = await PresenceService(db, self.presence).disconnect(user_id, sid)

        if change is not None:
            await self.broadcast_presence(change)
        logger.info(f"Client disconnected: {sid} (user: {user_id})")

    # ------------------------------------------------------------------
    # Client events
    # ------------------------------------------------------------------

    async def handle_send_message(self, sid, data):
        """
        Expected data: {conversationId, content?, contentType?, attachmentUrl?, replyToId?}
        """
        async def send(user_id: str) -> Dict[str, Any]:
            conversation_id = _require_field(data, "conversationId")
            async with self.session_factory() as db:
                delivery = await MessageService(db).create_message(
                    sender_id=user_id,
                    conversation_id=conversation_id,
                    content=data.get("content"),
                    content_type=data.get("contentType"),
                    attachment_url=data.get("attachmentUrl"),
                    reply_to_id=data.get("replyToId"),
                )
            await self.broadcast_new_message(delivery, skip_sid=sid)
            return {"success": True, "message": serialize_message(delivery.message)}

        return await self._run(sid, "send_message", send)

    async def handle_edit_message(self, sid, data):
        """Expected data: {messageId, content}"""
        async def edit(user_id: str) -> Dict[str, Any]:
            message_id = _require_field(data, "messageId")
            async with self.session_factory() as db:
                result = await MessageService(db).edit_message(message_id, user_id, data.get("content"))
            await self.broadcast_message_edited(result, skip_sid=sid)
            return {"success": True, "message": serialize_message(result.message)}

        return await self._run(sid, "edit_message", edit)

    async def handle_delete_message(self, sid, data):
        """Expected data: {messageId}"""
        async def remove(user_id: str) -> Dict[str, Any]:
            message_id = _require_field(data, "messageId")
            async with self.session_factory() as db:
                result = await MessageService(db).delete_message(message_id, user_id)
            await self.broadcast_message_deleted(result, skip_sid=sid)
            return {
                "success": True,
                "messageId": result.message_id,
                "conversationId": result.conversation_id,
            }

        return await self._run(sid, "delete_message", remove)

    async def handle_typing(self, sid, data):
        """
        Expected data: {conversationId, typing}

        Only relayed for conversations this connection has joined; nothing
        is persisted.
        """
        async def relay(user_id: str) -> Dict[str, Any]:
            conversation_id = _require_field(data, "conversationId")
            room = conversation_room(conversation_id)
            if room not in self.sio.rooms(sid):
                raise InvalidArgumentError("Join the conversation before sending typing events")
            await self._emit(
                "typing",
                {"conversationId": conversation_id, "userId": user_id, "typing": bool(data.get("typing"))},
                room,
                skip_sid=sid,
            )
            return {"success": True}

        return await self._run(sid, "typing", relay)

    async def handle_join_conversation(self, sid, data):
        """Expected data: {conversationId}. Membership is checked before joining."""
        async def join(user_id: str) -> Dict[str, Any]:
            conversation_id = _require_field(data, "conversationId")
            async with self.session_factory() as db:
                await ConversationService(db).get_conversation(conversation_id, user_id)
            await self.sio.enter_room(sid, conversation_room(conversation_id))
            logger.info(f"[join_conversation] User {user_id} joined conversation {conversation_id}")
            return {"success": True, "conversationId": conversation_id}

        return await self._run(sid, "join_conversation", join)

    async def handle_leave_conversation(self, sid, data):
        async def leave(user_id: str) -> Dict[str, Any]:
            conversation_id = _require_field(data, "conversationId")
            await self.sio.leave_room(sid, conversation_room(conversation_id))
            return {"success": True, "conversationId": conversation_id}

        return await self._run(sid, "leave_conversation", leave)

    async def handle_mark_read(self, sid, data):
        """Expected data: {conversationId, lastReadMessageId?}"""
        async def mark(user_id: str) -> Dict[str, Any]:
            conversation_id = _require_field(data, "conversationId")
            async with self.session_factory() as db:
                result = await MessageService(db).mark_as_read(
                    user_id, conversation_id, data.get("lastReadMessageId")
                )
            await self.broadcast_read(result)
            return {
                "success": True,
                "marked": result.marked,
                "newUnreadCount": result.new_unread_count,
            }

        return await self._run(sid, "mark_read", mark)

    async def handle_heartbeat(self, sid, data=None):
        """Keep an idle connection's presence entry alive."""
        async def beat(user_id: str) -> Dict[str, Any]:
            return {"success": True}

        return await self._run(sid, "heartbeat", beat)

    # ------------------------------------------------------------------
    # Fan-out (also used by the REST routes)
    # ------------------------------------------------------------------

    async def broadcast_new_message(self, delivery: MessageDelivery, skip_sid: Optional[str] = None):
        """
        Send `message` to the conversation room and every participant's
        private room (each connection receives it once), then
        `conversation.updated` with the new unread count to each recipient.
        Control messages produce no `conversation.updated`.
        """
        message = delivery.message
        payload = serialize_message(message)
        rooms = [conversation_room(message.conversation_id)]
        rooms += [user_room(uid) for uid in delivery.participant_ids]
        await self._emit("message", {"message": payload}, rooms, skip_sid=skip_sid)

        if delivery.is_control:
            return

        for user_id in delivery.participant_ids:
            update = {"conversationId": message.conversation_id, "lastMessage": payload}
            if user_id in delivery.unread_counts:
                update["unreadCount"] = delivery.unread_counts[user_id]
            await self._emit("conversation.updated", update, user_room(user_id))

    async def broadcast_message_edited(self, edit: MessageEdit, skip_sid: Optional[str] = None):
        message = edit.message
        rooms = [conversation_room(message.conversation_id)]
        rooms += [user_room(uid) for uid in edit.participant_ids]
        await self._emit("message:edited", {"message": serialize_message(message)}, rooms, skip_sid=skip_sid)

    async def broadcast_message_deleted(self, deletion: MessageDeletion, skip_sid: Optional[str] = None):
        rooms = [conversation_room(deletion.conversation_id)]
        rooms += [user_room(uid) for uid in deletion.participant_ids]
        await self._emit(
            "message:deleted",
            {"messageId": deletion.message_id, "conversationId": deletion.conversation_id},
            rooms,
            skip_sid=skip_sid,
        )
        for user_id, count in deletion.unread_counts.items():
            await self._emit(
                "conversation.updated",
                {"conversationId": deletion.conversation_id, "unreadCount": count},
                user_room(user_id),
            )

    async def broadcast_read(self, result: ReadResult):
        await self._emit(
            "conversation.updated",
            {"conversationId": result.conversation_id, "unreadCount": result.new_unread_count},
            user_room(result.user_id),
        )
        if result.marked:
            await self._emit(
                "read_receipt",
                {
                    "conversationId": result.conversation_id,
                    "userId": result.user_id,
                    "lastReadMessageId": result.last_read_message_id,
                    "marked": result.marked,
                    "readAt": utc_now(),
                },
                conversation_room(result.conversation_id),
            )

    async def broadcast_presence(self, change: PresenceChange):
        """Tell every accepted friend and the user's own devices about a presence flip."""
        payload = {"userId": change.user_id, "online": change.online, "lastSeen": change.last_seen}
        rooms = [user_room(uid) for uid in change.friend_ids] + [user_room(change.user_id)]
        await self._emit("presence", payload, rooms)

    async def broadcast_conversation_created(self, conversation: Conversation, user_ids: List[str]):
        await self._emit(
            "conversation.created",
            {"conversation": serialize_conversation(conversation)},
            [user_room(uid) for uid in user_ids],
        )

    async def broadcast_conversation_invite(
        self,
        conversation: Conversation,
        user_ids: List[str],
        invited_by: str,
    ):
        await self._emit(
            "conversation.invite",
            {"conversation": serialize_conversation(conversation), "invitedBy": invited_by},
            [user_room(uid) for uid in user_ids],
        )

    async def broadcast_participant_added(self, participant: Participant, added_by: str, member_ids: List[str]):
        data = ParticipantResponse.model_validate(participant).model_dump(by_alias=True, mode="json")
        rooms = [conversation_room(participant.conversation_id)]
        rooms += [user_room(uid) for uid in member_ids if uid != participant.user_id]
        await self._emit(
            "participant.added",
            {"conversationId": participant.conversation_id, "participant": data, "addedBy": added_by},
            rooms,
        )

    async def broadcast_participant_removed(self, removal: ParticipantRemoval, removed_by: str):
        await self._evict(removal.removed_user_id, removal.conversation_id)
        await self._emit(
            "conversation.removed",
            {"conversationId": removal.conversation_id, "removedBy": removed_by},
            user_room(removal.removed_user_id),
        )
        if removal.conversation_deleted:
            return
        rooms = [conversation_room(removal.conversation_id)]
        rooms += [user_room(uid) for uid in removal.remaining_user_ids]
        await self._emit(
            "participant.removed",
            {
                "conversationId": removal.conversation_id,
                "userId": removal.removed_user_id,
                "removedBy": removed_by,
            },
            rooms,
        )

    async def broadcast_conversation_deleted(self, conversation_id: str, participant_ids: List[str], deleted_by: str):
        await self._emit(
            "conversation.removed",
            {"conversationId": conversation_id, "removedBy": deleted_by},
            [user_room(uid) for uid in participant_ids],
        )
        await self.sio.close_room(conversation_room(conversation_id))

    async def _evict(self, user_id: str, conversation_id: str) -> None:
        """Take a removed user's local connections out of the conversation room."""
        room = conversation_room(conversation_id)
        for sid, owner in list(self.connections.items()):
            if owner == user_id:
                await self.sio.leave_room(sid, room)

    def get_asgi_app(self, fastapi_app):
        """
        Wrap the FastAPI app so Socket.IO serves /socket.io/ and everything
        else falls through to FastAPI.
        """
        return socketio.ASGIApp(self.sio, fastapi_app)


# Global connection manager instance
connection_manager = ConnectionManager()
