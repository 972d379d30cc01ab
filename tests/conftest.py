import json
import pytest
from fastapi.testclient import TestClient
from app import app


@pytest.fixture
def client():
    # Lifespan shutdown clears presence, so every test starts from an empty relay
    with TestClient(app) as test_client:
        yield test_client


def send_event(ws, event, data=None):
    ws.send_text(json.dumps({"event": event, "data": data if data is not None else {}}))


def receive_event(ws):
    envelope = json.loads(ws.receive_text())
    return envelope["event"], envelope["data"]


def join(ws, username, room):
    """Join and consume the events the joining connection itself gets (welcome, roomUsers)."""
    send_event(ws, "joinRoom", {"username": username, "room": room})
    welcome = receive_event(ws)
    room_users = receive_event(ws)
    return welcome, room_users
