"""CLI tests — commands against a mocked HTTP API."""

import httpx
import pytest
from click.testing import CliRunner

from askroom.cli import main as cli_module


def _mock_api(routes: dict):
    def handler(request: httpx.Request) -> httpx.Response:
        key = request.url.path
        if key not in routes:
            return httpx.Response(404, json={"detail": "Session not found"})
        return httpx.Response(200, json=routes[key])

    return lambda: httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://test"
    )


@pytest.fixture()
def runner():
    return CliRunner()


def test_health(runner, monkeypatch):
    monkeypatch.setattr(cli_module, "_client", _mock_api({
        "/api/v1/health": {
            "status": "healthy", "server": "ok", "version": "0.1.0",
            "serverId": "server-a", "store": "ok", "fabric": "ok",
            "connections": 3, "rooms": 1,
        },
    }))
    result = runner.invoke(cli_module.main, ["health"])
    assert result.exit_code == 0
    assert "server-a" in result.output
    assert "3 in 1 room(s)" in result.output


def test_health_degraded_exits_nonzero(runner, monkeypatch):
    monkeypatch.setattr(cli_module, "_client", _mock_api({
        "/api/v1/health": {"status": "degraded", "store": "error: down", "fabric": "ok"},
    }))
    result = runner.invoke(cli_module.main, ["health"])
    assert result.exit_code == 1


def test_rooms_table(runner, monkeypatch):
    monkeypatch.setattr(cli_module, "_client", _mock_api({
        "/api/v1/rooms": [{
            "roomId": "K7Q2ZD", "sessionName": "Tech Talk", "owner": "presenter",
            "sessionStatus": "active", "attendeeCount": 2, "questionCount": 5,
        }],
    }))
    result = runner.invoke(cli_module.main, ["rooms"])
    assert result.exit_code == 0
    assert "K7Q2ZD" in result.output
    assert "Tech Talk" in result.output


def test_room_sorted_by_votes(runner, monkeypatch):
    monkeypatch.setattr(cli_module, "_client", _mock_api({
        "/api/v1/rooms/K7Q2ZD": {
            "roomId": "K7Q2ZD", "sessionName": "Tech Talk", "owner": "presenter",
            "sessionStatus": "active",
            "attendees": [{"id": "alice", "name": "Alice"}],
            "questions": [
                {"_id": "1", "questionText": "Low?", "authorName": "Alice",
                 "upVotes": 0, "answered": False, "highlighted": False},
                {"_id": "2", "questionText": "High?", "authorName": "Alice",
                 "upVotes": 4, "answered": True, "highlighted": False},
            ],
        },
    }))
    result = runner.invoke(cli_module.main, ["room", "k7q2zd"])
    assert result.exit_code == 0
    assert result.output.index("High?") < result.output.index("Low?")
    assert "[answered]" in result.output


def test_missing_room(runner, monkeypatch):
    monkeypatch.setattr(cli_module, "_client", _mock_api({}))
    result = runner.invoke(cli_module.main, ["room", "ZZZZZZ"])
    assert result.exit_code == 1
    assert "Session not found" in result.output
