from typing import Any, Awaitable, Callable, Dict, Optional
from pydantic import ValidationError
from presence import PresenceStore, User, presence_store
from broadcast import RoomBroadcaster, room_broadcaster
from schemas.events import (
    ChatMessagePayload,
    JoinRoomPayload,
    MessageEvent,
    PresenceEvent,
    RoomUsersEvent,
    TypingEvent,
    display_time,
)
import event_names
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionHandler:
    """Applies inbound events to the PresenceStore and fans results out.

    Each event is handled to completion before the next one is read from the
    connection. Events from connections that have not joined a room are
    dropped without any reply.
    """

    def __init__(self, store: PresenceStore, broadcaster: RoomBroadcaster):
        self.store = store
        self.broadcaster = broadcaster

    async def dispatch(self, connection_id: str, event: Any, data: Any = None):
        handler = EVENT_HANDLERS.get(event) if isinstance(event, str) else None
        if handler is None:
            logger.debug(f"Dropping unknown event {event!r} from connection {connection_id}")
            return
        await handler(self, connection_id, data if isinstance(data, dict) else {})

    async def on_join_room(self, connection_id: str, data: dict):
        try:
            payload = JoinRoomPayload(**data)
        except ValidationError as e:
            logger.debug(f"Dropping malformed joinRoom from connection {connection_id}: {e.errors()}")
            return

        previous = self.store.get_user(connection_id)
        user = self.store.join(connection_id, payload.username, payload.room)
        logger.info(f"{user.username} joined room: {user.room}")

        if previous is not None and previous.room != user.room:
            await self._announce_departure(previous)

        room_users = self.store.list_room(user.room)
        welcome = MessageEvent(
            username=event_names.SYSTEM_USERNAME,
            message=f"Welcome to {user.room}, {user.username}!",
            time=display_time(),
        )
        await self.broadcaster.send_to_connection(connection_id, event_names.MESSAGE, welcome.model_dump())
        await self.broadcaster.broadcast_to_room_except_sender(
            user.room,
            connection_id,
            event_names.USER_JOINED,
            PresenceEvent(username=user.username, users=room_users).model_dump(),
        )
        await self.broadcaster.broadcast_to_room(
            user.room,
            event_names.ROOM_USERS,
            RoomUsersEvent(room=user.room, users=room_users).model_dump(),
        )

    async def on_chat_message(self, connection_id: str, data: dict):
        user = self._joined_user(connection_id, event_names.CHAT_MESSAGE)
        if user is None:
            return
        try:
            payload = ChatMessagePayload(**data)
        except ValidationError as e:
            logger.debug(f"Dropping malformed chatMessage from connection {connection_id}: {e.errors()}")
            return

        message = MessageEvent(username=user.username, message=payload.message, time=display_time())
        await self.broadcaster.broadcast_to_room(user.room, event_names.MESSAGE, message.model_dump())
        logger.info(f"Message from {user.username} in {user.room}: {payload.message}")

    async def on_typing(self, connection_id: str, data: dict):
        user = self._joined_user(connection_id, event_names.TYPING)
        if user is None:
            return
        await self.broadcaster.broadcast_to_room_except_sender(
            user.room, connection_id, event_names.TYPING, TypingEvent(username=user.username).model_dump()
        )

    async def on_stop_typing(self, connection_id: str, data: dict):
        user = self._joined_user(connection_id, event_names.STOP_TYPING)
        if user is None:
            return
        await self.broadcaster.broadcast_to_room_except_sender(user.room, connection_id, event_names.STOP_TYPING)

    async def on_leave_room(self, connection_id: str, data: dict):
        await self.leave(connection_id)

    async def leave(self, connection_id: str) -> Optional[User]:
        """Remove a connection from its room and tell the remaining members.

        Shared by the leaveRoom event and the disconnect path; a connection
        that never joined is a no-op.
        """
        user = self.store.leave(connection_id)
        if user is None:
            return None
        logger.info(f"{user.username} left room: {user.room}")
        await self._announce_departure(user)
        return user

    async def disconnect(self, connection_id: str):
        logger.info(f"User disconnected: {connection_id}")
        await self.leave(connection_id)
        self.broadcaster.unregister(connection_id)

    async def _announce_departure(self, user: User):
        room_users = self.store.list_room(user.room)
        await self.broadcaster.broadcast_to_room_except_sender(
            user.room,
            user.connection_id,
            event_names.USER_LEFT,
            PresenceEvent(username=user.username, users=room_users).model_dump(),
        )
        await self.broadcaster.broadcast_to_room(
            user.room,
            event_names.ROOM_USERS,
            RoomUsersEvent(room=user.room, users=room_users).model_dump(),
        )

    def _joined_user(self, connection_id: str, event: str) -> Optional[User]:
        user = self.store.get_user(connection_id)
        if user is None:
            logger.debug(f"Dropping {event} from connection {connection_id}: not in a room")
        return user


EventHandler = Callable[[ConnectionHandler, str, dict], Awaitable[None]]

EVENT_HANDLERS: Dict[str, EventHandler] = {
    event_names.JOIN_ROOM: ConnectionHandler.on_join_room,
    event_names.CHAT_MESSAGE: ConnectionHandler.on_chat_message,
    event_names.TYPING: ConnectionHandler.on_typing,
    event_names.STOP_TYPING: ConnectionHandler.on_stop_typing,
    event_names.LEAVE_ROOM: ConnectionHandler.on_leave_room,
}

connection_handler = ConnectionHandler(presence_store, room_broadcaster)
