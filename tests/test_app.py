"""
Starlette adapter tests using the TestClient.
"""

import pytest
from starlette.applications import Starlette
from starlette.testclient import TestClient

from starwire.config import ServerConfig
from starwire.core.datastate import action, event
from starwire.server.app import create_app, mount
from starwire.server.data_source import ServerDataSource


def event_body(path, payload=None, handler_key="h"):
    return {
        "target": {"component": "Form", "propKey": "onSubmit", "path": path},
        "dataState": {"$": "event", "key": handler_key},
        "payload": payload,
    }


@pytest.fixture
def server():
    data_source = ServerDataSource()
    data_source.update("main", {"name": "Ann"})

    def rename(payload):
        data_source.update("main", {"name": payload})
        return "renamed"

    def fail(payload):
        raise RuntimeError("nope")

    data_source.update("handlers", {"rename": event(rename), "fail": event(fail), "local": action("x")})
    return data_source


@pytest.fixture
def http(server):
    with TestClient(create_app(server)) as client:
        yield client


class TestWebSocketRoute:
    """The WebSocket route speaks the wire protocol"""

    def test_subscribe_then_event(self, http):
        with http.websocket_connect("/ws") as ws:
            ws.send_json({"$": "sub", "keys": ["main"]})
            assert ws.receive_json() == {"$": "up", "key": "main", "val": {"name": "Ann"}}

            ws.send_json({"$": "evt", "key": "c1", "event": event_body(["handlers", "rename"], "Bob")})
            assert ws.receive_json() == {"$": "up", "key": "main", "val": {"name": "Bob"}}
            assert ws.receive_json() == {"$": "evt-res", "key": "c1", "res": {"ok": True, "payload": "renamed"}}

    def test_bad_frames_keep_connection_open(self, http):
        with http.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            ws.send_json({"$": "evt", "key": "c1", "event": event_body(["handlers", "fail"])})
            response = ws.receive_json()
            assert response["key"] == "c1"
            assert response["res"]["ok"] is False

            ws.send_json({"$": "sub", "keys": ["main"]})
            assert ws.receive_json()["$"] == "up"


class TestHttpRoutes:
    """Store reads and event posts over HTTP"""

    def test_get_store(self, http):
        response = http.get("/stores/main")
        assert response.status_code == 200
        assert response.json() == {"name": "Ann"}

    def test_get_unknown_store(self, http):
        assert http.get("/stores/missing").status_code == 404

    def test_post_event(self, http, server):
        response = http.post("/events", json={"event": event_body(["handlers", "rename"], "Cy")})
        assert response.status_code == 200
        assert response.json() == {"$": "evt-res", "res": {"ok": True, "payload": "renamed"}}
        assert http.get("/stores/main").json() == {"name": "Cy"}

    def test_post_failing_event(self, http):
        response = http.post("/events", json={"event": event_body(["handlers", "fail"])})
        assert response.status_code == 500
        assert response.json()["res"]["payload"] == {"error": "RuntimeError", "message": "nope"}

    def test_post_missing_handler(self, http):
        response = http.post("/events", json={"event": event_body(["handlers", "local"])})
        assert response.status_code == 500
        assert response.json()["res"]["payload"]["error"] == "MissingHandlerError"

    @pytest.mark.parametrize("body", [{}, {"event": {"target": {}}}, []])
    def test_post_malformed_event(self, http, body):
        assert http.post("/events", json=body).status_code == 400

    def test_post_invalid_json(self, http):
        response = http.post("/events", content=b"{nope", headers={"content-type": "application/json"})
        assert response.status_code == 400


class TestMount:
    """Routes can be added to an existing application"""

    def test_mount_with_prefix(self, server):
        app = mount(Starlette(), server, ServerConfig(ws_path="/live", http_prefix="/api/"))
        with TestClient(app) as client:
            assert client.get("/api/stores/main").json() == {"name": "Ann"}
            with client.websocket_connect("/live") as ws:
                ws.send_json({"$": "sub", "keys": ["main"]})
                assert ws.receive_json()["val"] == {"name": "Ann"}
