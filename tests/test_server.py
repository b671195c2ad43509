"""
Tests for the FastAPI server.
"""
import pytest
from fastapi.testclient import TestClient

from werewolf_ai import server
from werewolf_ai.game_engine import GameEngine
from werewolf_ai.llm_provider import MockLLM
from werewolf_ai.models import ActionKind, AIRequestLog, Phase


@pytest.fixture
def client() -> TestClient:
    """Create a test client for the FastAPI application."""
    return TestClient(server.app)


class TestServer:
    """Tests for the status endpoint and websocket commands."""

    def test_status(self, client):
        response = client.get("/")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["running"] is False

    def test_unknown_action(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"action": "dance"})
            message = websocket.receive_json()
        assert message["type"] == "error"

    def test_invalid_config_is_reported(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"action": "start_game", "config": {"api_key": "bad", "enabled": True}})
            message = websocket.receive_json()
        assert message["type"] == "error"
        assert server.current_task is None

    def test_reset_without_game(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"action": "reset_game"})
            message = websocket.receive_json()
        assert message["type"] == "info"

    def test_requests_without_game(self, client, monkeypatch):
        monkeypatch.setattr(server, "current_game", None)
        response = client.get("/requests")
        assert response.json() == {"stats": None, "requests": []}

    def test_requests_are_listed_and_filtered(self, client, monkeypatch):
        engine = GameEngine(MockLLM(seed=1))
        engine.request_logs.extend([
            AIRequestLog(player_id="1", player_name="逻辑守护", round=1, phase=Phase.NIGHT,
                         action_kind=ActionKind.KILL, prompt="你是狼人", raw='{"target": "4"}',
                         strategy="direct", elapsed=0.4),
            AIRequestLog(player_id="4", player_name="星河", round=1, phase=Phase.NIGHT,
                         action_kind=ActionKind.CHECK, prompt="你是预言家", raw="……",
                         error="无法从响应中解析出决策", error_type="ParseFailure"),
        ])
        monkeypatch.setattr(server, "current_game", engine)

        everything = client.get("/requests").json()
        failed = client.get("/requests", params={"has_error": "true"}).json()
        status = client.get("/").json()

        assert [r["player_id"] for r in everything["requests"]] == ["1", "4"]
        assert everything["requests"][0]["prompt"] == "你是狼人"
        assert everything["stats"]["errors"] == 1
        assert [r["error_type"] for r in failed["requests"]] == ["ParseFailure"]
        assert status["requests"]["total"] == 2
