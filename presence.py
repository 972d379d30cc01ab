import threading
from dataclasses import dataclass
from typing import Dict, List, Optional
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class User:
    connection_id: str
    username: str
    room: str


class PresenceStore:
    """In-memory record of who is connected and which room they are in.

    Two mappings are kept in step under a single lock:
    - users: {connection_id: User}
    - rooms: {room_name: {connection_id: None}} (dict used as an insertion-ordered set)
    A room exists only while its member set is non-empty.
    """

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._rooms: Dict[str, Dict[str, None]] = {}
        self._lock = threading.RLock()
        logger.info("Initializing in-memory PresenceStore")

    def join(self, connection_id: str, username: str, room: str) -> User:
        """Put a connection in a room, replacing any previous membership."""
        with self._lock:
            previous = self._users.get(connection_id)
            if previous is not None:
                logger.debug(f"Connection {connection_id} re-joining, was in room {previous.room}")
                self._remove_member(previous.room, connection_id)

            user = User(connection_id=connection_id, username=username, room=room)
            self._users[connection_id] = user
            if room not in self._rooms:
                self._rooms[room] = {}
                logger.debug(f"Room {room} created")
            self._rooms[room][connection_id] = None
            logger.debug(f"User {connection_id} ({username}) added to room {room} (members: {len(self._rooms[room])})")
            return user

    def leave(self, connection_id: str) -> Optional[User]:
        """Remove a connection. Returns the removed User, or None if it was not joined."""
        with self._lock:
            user = self._users.pop(connection_id, None)
            if user is None:
                logger.debug(f"Leave for unknown connection {connection_id}, nothing to do")
                return None
            self._remove_member(user.room, connection_id)
            logger.debug(f"User {connection_id} ({user.username}) removed from room {user.room}")
            return user

    def get_user(self, connection_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(connection_id)

    def list_room(self, room: str) -> List[dict]:
        """Get {id, username} for every member of a room."""
        with self._lock:
            members = self._rooms.get(room, {})
            return [
                {"id": conn_id, "username": self._users[conn_id].username}
                for conn_id in members
                if conn_id in self._users
            ]

    def member_ids(self, room: str) -> List[str]:
        with self._lock:
            return list(self._rooms.get(room, {}))

    def room_names(self) -> List[str]:
        with self._lock:
            return list(self._rooms)

    def room_size(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, {}))

    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)

    def total_users(self) -> int:
        with self._lock:
            return len(self._users)

    def clear(self):
        with self._lock:
            logger.info(f"Clearing presence: {len(self._users)} users in {len(self._rooms)} rooms")
            self._users.clear()
            self._rooms.clear()

    def _remove_member(self, room: str, connection_id: str):
        members = self._rooms.get(room)
        if members is None:
            return
        members.pop(connection_id, None)
        if not members:
            del self._rooms[room]
            logger.debug(f"Room {room} is empty, deleted")


presence_store = PresenceStore()
