import asyncio
import json
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from constants import TYPING_TIMEOUT_SECONDS
from schemas.events import display_time
import event_names
from logging_config import get_logger

logger = get_logger(__name__)


class SessionError(Exception):
    """Raised for input the session rejects before anything is sent."""


@dataclass(frozen=True)
class Disconnected:
    pass


@dataclass(frozen=True)
class Connected:
    handle: Any  # anything with `async send(event, data)`


ConnectionState = Union[Disconnected, Connected]


class ChatView:
    """What a session shows: append-only message list, member list and status line.

    Subclasses render by overriding the methods and calling super().
    """

    def __init__(self):
        self.messages: List[dict] = []
        self.users: List[dict] = []
        self.user_count = ""
        self.typing_text: Optional[str] = None
        self.status = ""
        self.room_name = ""

    def add_message(self, data: dict, own: bool = False):
        self.messages.append({
            "username": data.get("username", ""),
            "message": data.get("message", ""),
            "time": data.get("time", ""),
            "own": own,
            "system": False,
        })

    def add_system_message(self, text: str):
        self.messages.append({"username": "", "message": text, "time": "", "own": False, "system": True})

    def set_users(self, users: List[dict]):
        self.users = list(users)

    def set_user_count(self, text: str):
        self.user_count = text

    def show_typing(self, username: str):
        self.typing_text = f"{username} is typing..."

    def hide_typing(self):
        self.typing_text = None

    def set_status(self, status: str):
        self.status = status

    def set_room(self, room: str):
        self.room_name = room

    def reset(self):
        self.messages = []
        self.users = []
        self.user_count = ""
        self.typing_text = None
        self.room_name = ""


class ChatSession:
    """Client side of one chat session: Unjoined -> Joined.

    With a Connected state every action is emitted to the server. With
    Disconnected the session runs in demo mode and renders its own actions
    locally instead.
    """

    def __init__(self, view: ChatView, state: Optional[ConnectionState] = None,
                 typing_timeout: float = TYPING_TIMEOUT_SECONDS):
        self.view = view
        self.state: ConnectionState = state if state is not None else Disconnected()
        self.typing_timeout = typing_timeout
        self.username = ""
        self.room = ""
        self.is_typing = False
        self._typing_timer: Optional[asyncio.TimerHandle] = None
        self._stop_typing_task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return isinstance(self.state, Connected)

    @property
    def joined(self) -> bool:
        return bool(self.username)

    def start(self):
        if self.connected:
            self.view.set_status("Connected")
            return
        self.view.set_status("Demo Mode")
        self.view.add_system_message("Welcome to the chat demo!")
        self.view.add_message({
            "username": "Demo Bot",
            "message": "This is a demo message. Start the backend server to enable real-time chat!",
            "time": display_time(),
        })

    def connection_lost(self):
        """Switch to Disconnected after the transport goes away; nothing is retried."""
        if not self.connected:
            return
        logger.info("Connection to chat server lost")
        self.state = Disconnected()
        self.is_typing = False
        self._cancel_typing_timer()
        self.view.set_status("Disconnected")

    async def join(self, username: str, room: str):
        username = (username or "").strip()
        if not username:
            raise SessionError("Please enter your name")

        self.username = username
        self.room = room
        self.view.set_room(room)

        if not (self.connected and await self._emit(event_names.JOIN_ROOM, {"username": username, "room": room})):
            self.view.add_system_message(f"You joined {room} as {username}")
            self.view.set_user_count("1 user online (demo mode)")
            self.view.set_users([{"id": "demo", "username": username}])

    async def send_message(self, text: str):
        message = (text or "").strip()
        if not message:
            return

        if not (self.connected and await self._emit(event_names.CHAT_MESSAGE, {"message": message})):
            self.view.add_message({"username": self.username, "message": message, "time": display_time()}, own=True)

        await self.stop_typing()

    async def handle_typing(self):
        """Call on every keystroke.

        Emits typing once per idle-to-active transition and re-arms the idle
        timer; stopTyping goes out when the timer expires.
        """
        if not self.is_typing and self.connected:
            self.is_typing = True
            await self._emit(event_names.TYPING, {})

        self._cancel_typing_timer()
        loop = asyncio.get_running_loop()
        self._typing_timer = loop.call_later(self.typing_timeout, self._typing_expired)

    async def stop_typing(self):
        self._cancel_typing_timer()
        if self.is_typing and self.connected:
            self.is_typing = False
            await self._emit(event_names.STOP_TYPING, {})

    async def leave(self):
        if self.connected:
            await self._emit(event_names.LEAVE_ROOM, {})
        self._cancel_typing_timer()
        self.is_typing = False
        self.username = ""
        self.room = ""
        self.view.reset()

    def handle_event(self, event: str, data: Optional[dict] = None):
        data = data or {}
        if event == event_names.MESSAGE:
            self.view.add_message(data, own=data.get("username") == self.username)
        elif event == event_names.USER_JOINED:
            self.view.add_system_message(f"{data.get('username')} joined the chat")
            self.view.set_users(data.get("users", []))
        elif event == event_names.USER_LEFT:
            self.view.add_system_message(f"{data.get('username')} left the chat")
            self.view.set_users(data.get("users", []))
        elif event == event_names.ROOM_USERS:
            users = data.get("users", [])
            self.view.set_users(users)
            self.view.set_user_count(f"{len(users)} users online")
        elif event == event_names.TYPING:
            self.view.show_typing(data.get("username", ""))
        elif event == event_names.STOP_TYPING:
            self.view.hide_typing()
        else:
            logger.debug(f"Ignoring unknown event {event!r}")

    async def _emit(self, event: str, data: dict) -> bool:
        """Send one event; a closed transport drops the session to local mode instead of raising."""
        try:
            await self.state.handle.send(event, data)
        except ConnectionClosed as e:
            logger.debug(f"Could not send {event}, server connection closed: {e}")
            self.connection_lost()
            return False
        return True

    def _typing_expired(self):
        self._typing_timer = None
        self._stop_typing_task = asyncio.ensure_future(self.stop_typing())

    def _cancel_typing_timer(self):
        if self._typing_timer is not None:
            self._typing_timer.cancel()
            self._typing_timer = None


class WebSocketConnection:
    """Connection handle over a `websockets` client connection."""

    def __init__(self, websocket):
        self.websocket = websocket

    async def send(self, event: str, data: dict):
        await self.websocket.send(json.dumps({"event": event, "data": data}))

    async def listen(self, session: ChatSession):
        """Feed incoming envelopes into the session until the server goes away."""
        try:
            async for raw in self.websocket:
                try:
                    envelope = json.loads(raw)
                except json.JSONDecodeError:
                    logger.debug("Ignoring non-JSON frame from server")
                    continue
                if isinstance(envelope, dict):
                    session.handle_event(envelope.get("event"), envelope.get("data"))
        except ConnectionClosed as e:
            logger.debug(f"Server connection closed: {e}")
        session.connection_lost()

    async def close(self):
        await self.websocket.close()


async def connect_session(url: str, view: ChatView, typing_timeout: float = TYPING_TIMEOUT_SECONDS,
                          open_timeout: float = 5.0) -> Tuple[ChatSession, Optional[WebSocketConnection]]:
    """Open a session against the server at `url`, or a demo-mode session if it can't be reached."""
    try:
        websocket = await websockets.connect(url, open_timeout=open_timeout)
    except (OSError, asyncio.TimeoutError, WebSocketException) as e:
        logger.info(f"Chat server not available at {url}, using demo mode: {e}")
        session = ChatSession(view, Disconnected(), typing_timeout=typing_timeout)
        session.start()
        return session, None

    logger.info(f"Connected to chat server at {url}")
    connection = WebSocketConnection(websocket)
    session = ChatSession(view, Connected(connection), typing_timeout=typing_timeout)
    session.start()
    return session, connection
