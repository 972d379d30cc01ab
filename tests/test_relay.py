import asyncio
import json
import pytest
from client import ChatSession, ChatView, Connected
from tests.conftest import join, receive_event, send_event


def test_join_sends_welcome_and_room_users(client):
    with client.websocket_connect("/ws") as ws_a:
        (event, data), (users_event, users_data) = join(ws_a, "alice", "general")

        assert event == "message"
        assert data["username"] == "System"
        assert data["message"] == "Welcome to general, alice!"
        assert data["time"]
        assert users_event == "roomUsers"
        assert users_data["room"] == "general"
        assert [u["username"] for u in users_data["users"]] == ["alice"]


def test_second_join_notifies_existing_members(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        join(ws_a, "alice", "general")
        join(ws_b, "bob", "general")

        event, data = receive_event(ws_a)
        assert event == "userJoined"
        assert data["username"] == "bob"
        assert [u["username"] for u in data["users"]] == ["alice", "bob"]

        event, data = receive_event(ws_a)
        assert event == "roomUsers"
        assert len(data["users"]) == 2


def test_chat_message_reaches_whole_room(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        join(ws_a, "alice", "general")
        join(ws_b, "bob", "general")
        receive_event(ws_a)  # userJoined
        receive_event(ws_a)  # roomUsers

        send_event(ws_a, "chatMessage", {"message": "hi"})

        for ws in (ws_a, ws_b):
            event, data = receive_event(ws)
            assert event == "message"
            assert data["username"] == "alice"
            assert data["message"] == "hi"
            assert data["time"]


def test_messages_stay_in_their_room(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_c:
        join(ws_a, "alice", "general")
        join(ws_c, "carol", "random")

        send_event(ws_c, "chatMessage", {"message": "only random"})
        assert receive_event(ws_c)[1]["message"] == "only random"

        send_event(ws_a, "chatMessage", {"message": "only general"})
        event, data = receive_event(ws_a)
        assert (event, data["message"]) == ("message", "only general")


def test_chat_message_from_unjoined_connection_is_dropped(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_c:
        join(ws_a, "alice", "general")

        send_event(ws_c, "chatMessage", {"message": "ghost"})
        send_event(ws_c, "typing")
        send_event(ws_c, "stopTyping")
        send_event(ws_c, "leaveRoom")
        # Events on one connection are handled in order, so once this join is
        # answered the events above have already been processed
        (event, _), _ = join(ws_c, "carol", "random")
        assert event == "message"

        send_event(ws_a, "chatMessage", {"message": "ping"})
        event, data = receive_event(ws_a)
        assert (event, data["username"], data["message"]) == ("message", "alice", "ping")


def test_typing_is_relayed_to_others_only(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        join(ws_a, "alice", "general")
        join(ws_b, "bob", "general")
        receive_event(ws_a)  # userJoined
        receive_event(ws_a)  # roomUsers

        send_event(ws_b, "typing")
        assert receive_event(ws_a) == ("typing", {"username": "bob"})

        send_event(ws_b, "stopTyping")
        assert receive_event(ws_a) == ("stopTyping", {})

        # bob got no echo: the next thing bob sees is his own chat message
        send_event(ws_b, "chatMessage", {"message": "done"})
        event, data = receive_event(ws_b)
        assert (event, data["message"]) == ("message", "done")


def test_disconnect_notifies_room_and_removes_user(client):
    with client.websocket_connect("/ws") as ws_b:
        with client.websocket_connect("/ws") as ws_a:
            join(ws_a, "alice", "general")
            join(ws_b, "bob", "general")
            receive_event(ws_a)  # userJoined
            receive_event(ws_a)  # roomUsers
            assert client.get("/api/stats").json()["totalUsers"] == 2

        event, data = receive_event(ws_b)
        assert event == "userLeft"
        assert data["username"] == "alice"
        assert [u["username"] for u in data["users"]] == ["bob"]

        event, data = receive_event(ws_b)
        assert event == "roomUsers"
        assert [u["username"] for u in data["users"]] == ["bob"]

        assert client.get("/api/stats").json()["totalUsers"] == 1


def test_last_disconnect_removes_room(client):
    with client.websocket_connect("/ws") as ws_a:
        join(ws_a, "alice", "general")
        assert client.get("/api/stats").json()["totalRooms"] == 1

    with client.websocket_connect("/ws") as ws_b:
        # Once bob has joined, alice's disconnect cleanup has long finished
        join(ws_b, "bob", "random")
        rooms = client.get("/api/rooms").json()
        assert [room["name"] for room in rooms] == ["random"]


def test_leave_room_then_rejoin(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        join(ws_a, "alice", "general")
        join(ws_b, "bob", "general")
        receive_event(ws_a)  # userJoined
        receive_event(ws_a)  # roomUsers

        send_event(ws_a, "leaveRoom")
        assert receive_event(ws_b)[0] == "userLeft"
        assert receive_event(ws_b)[0] == "roomUsers"

        (event, data), _ = join(ws_a, "alice", "general")
        assert data["message"] == "Welcome to general, alice!"
        assert receive_event(ws_b)[0] == "userJoined"


def test_rejoin_other_room_updates_old_room(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        join(ws_a, "alice", "general")
        join(ws_b, "bob", "general")
        receive_event(ws_a)  # userJoined
        receive_event(ws_a)  # roomUsers

        join(ws_a, "alice", "random")

        event, data = receive_event(ws_b)
        assert (event, data["username"]) == ("userLeft", "alice")
        event, data = receive_event(ws_b)
        assert event == "roomUsers"
        assert [u["username"] for u in data["users"]] == ["bob"]


def test_malformed_frames_are_ignored(client):
    with client.websocket_connect("/ws") as ws_a:
        ws_a.send_text("not json")
        ws_a.send_text("[1, 2, 3]")
        send_event(ws_a, "noSuchEvent", {"x": 1})
        ws_a.send_text('{"event": "joinRoom", "data": "alice"}')
        send_event(ws_a, "joinRoom", {"username": "", "room": "general"})
        send_event(ws_a, "joinRoom", {"room": "general"})

        (event, data), _ = join(ws_a, "alice", "general")
        assert event == "message"
        assert data["message"] == "Welcome to general, alice!"

        send_event(ws_a, "chatMessage", {"message": ""})
        send_event(ws_a, "chatMessage", {})
        send_event(ws_a, "chatMessage", {"message": "real"})
        event, data = receive_event(ws_a)
        assert data["message"] == "real"


def test_binary_frame_is_ignored_and_sender_stays_joined(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        join(ws_a, "alice", "general")
        join(ws_b, "bob", "general")
        receive_event(ws_a)  # userJoined
        receive_event(ws_a)  # roomUsers

        ws_b.send_bytes(b'{"event": "chatMessage", "data": {"message": "binary"}}')
        send_event(ws_b, "chatMessage", {"message": "after"})

        event, data = receive_event(ws_a)
        assert (event, data["username"], data["message"]) == ("message", "bob", "after")
        assert client.get("/api/stats").json()["totalUsers"] == 2


class WebSocketSessionHandle:
    """Connection handle that sends a session's events over a TestClient websocket."""

    def __init__(self, ws):
        self.ws = ws

    async def send(self, event, data):
        self.ws.send_text(json.dumps({"event": event, "data": data}))


@pytest.mark.asyncio
async def test_typing_burst_reaches_room_as_one_typing_and_one_stop(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        join(ws_a, "alice", "general")
        bob = ChatSession(ChatView(), Connected(WebSocketSessionHandle(ws_b)), typing_timeout=0.1)
        bob.start()
        await bob.join("bob", "general")
        assert receive_event(ws_a)[0] == "userJoined"
        assert receive_event(ws_a)[0] == "roomUsers"

        for _ in range(2):
            for _ in range(5):
                await bob.handle_typing()
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.3)

            assert receive_event(ws_a) == ("typing", {"username": "bob"})
            assert receive_event(ws_a) == ("stopTyping", {})

        # Nothing else was queued for alice: her next event is bob's message
        await bob.send_message("done typing")
        event, data = receive_event(ws_a)
        assert (event, data["username"], data["message"]) == ("message", "bob", "done typing")
