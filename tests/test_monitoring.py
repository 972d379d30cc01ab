import constants
from tests.conftest import join


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "OK", "message": "Chat server is running"}


def test_stats_empty(client):
    assert client.get("/api/stats").json() == {"totalUsers": 0, "totalRooms": 0, "rooms": []}


def test_rooms_empty(client):
    assert client.get("/api/rooms").json() == []


def test_stats_and_rooms_reflect_presence(client):
    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b, \
            client.websocket_connect("/ws") as ws_c:
        join(ws_a, "alice", "general")
        join(ws_b, "bob", "random")
        join(ws_c, "carol", "random")

        stats = client.get("/api/stats").json()
        assert stats["totalUsers"] == 3
        assert stats["totalRooms"] == 2
        assert sorted((r["name"], r["userCount"]) for r in stats["rooms"]) == [("general", 1), ("random", 2)]

        rooms = {room["name"]: room["users"] for room in client.get("/api/rooms").json()}
        assert [u["username"] for u in rooms["general"]] == ["alice"]
        assert sorted(u["username"] for u in rooms["random"]) == ["bob", "carol"]
        assert all(set(u) == {"id", "username"} for u in rooms["random"])


def test_index_served_from_static_dir(client, tmp_path, monkeypatch):
    (tmp_path / "index.html").write_text("<h1>chat</h1>")
    monkeypatch.setattr(constants, "STATIC_DIR", str(tmp_path))
    response = client.get("/")
    assert response.status_code == 200
    assert "<h1>chat</h1>" in response.text


def test_index_missing(client, tmp_path, monkeypatch):
    monkeypatch.setattr(constants, "STATIC_DIR", str(tmp_path))
    assert client.get("/").status_code == 404


def test_cors_headers(client):
    response = client.get("/health", headers={"Origin": "http://example.com"})
    assert response.headers.get("access-control-allow-origin") in ("*", "http://example.com")
