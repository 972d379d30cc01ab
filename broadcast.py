import asyncio
import json
from typing import Dict, Iterable, Optional
from fastapi import WebSocket
from presence import PresenceStore, presence_store
from logging_config import get_logger

logger = get_logger(__name__)


def make_envelope(event: str, payload: Optional[dict] = None) -> str:
    return json.dumps({"event": event, "data": payload if payload is not None else {}})


class RoomBroadcaster:
    """Delivers events to live connections, resolving rooms through the PresenceStore.

    Sends are fire-and-forget: a connection whose send fails is dropped from
    the registry and the failure is only logged.
    """

    def __init__(self, store: PresenceStore):
        self.store = store
        # Format: {connection_id: websocket}
        self.connections: Dict[str, WebSocket] = {}

    def register(self, connection_id: str, websocket: WebSocket):
        self.connections[connection_id] = websocket
        logger.debug(f"Registered connection {connection_id} (live connections: {len(self.connections)})")

    def unregister(self, connection_id: str):
        if self.connections.pop(connection_id, None) is not None:
            logger.debug(f"Unregistered connection {connection_id} (live connections: {len(self.connections)})")

    async def send_to_connection(self, connection_id: str, event: str, payload: Optional[dict] = None):
        await self._deliver([connection_id], event, payload)

    async def broadcast_to_room(self, room: str, event: str, payload: Optional[dict] = None):
        """Send to every member of the room, sender included."""
        await self._deliver(self.store.member_ids(room), event, payload)

    async def broadcast_to_room_except_sender(self, room: str, sender_id: str, event: str, payload: Optional[dict] = None):
        targets = [conn_id for conn_id in self.store.member_ids(room) if conn_id != sender_id]
        await self._deliver(targets, event, payload)

    async def _deliver(self, connection_ids: Iterable[str], event: str, payload: Optional[dict]):
        message_text = make_envelope(event, payload)
        targets = [(conn_id, self.connections[conn_id]) for conn_id in connection_ids if conn_id in self.connections]
        if not targets:
            logger.debug(f"No live connections for event {event}")
            return

        results = await asyncio.gather(*(ws.send_text(message_text) for _, ws in targets), return_exceptions=True)

        # Connections that failed are treated as gone; the disconnect path does presence cleanup
        for (conn_id, _), result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Error sending {event} to connection {conn_id}: {result}")
                self.unregister(conn_id)
        logger.debug(f"Delivered {event} to {len(targets)} connections")


room_broadcaster = RoomBroadcaster(presence_store)
