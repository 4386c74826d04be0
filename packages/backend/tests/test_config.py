"""Settings tests — env vars, defaults, validation."""

import pytest
from pydantic import ValidationError

from askroom.config import Settings


def test_defaults():
    s = Settings()
    assert s.store_backend == "sql"
    assert s.fabric_backend == "redis"
    assert s.fabric_channel_prefix == "askroom:room:"
    assert s.close_grace_seconds == 5.0
    assert s.room_code_length == 6
    assert s.server_id.startswith("server-")


def test_server_id_differs_per_instance():
    assert Settings().server_id != Settings().server_id


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("ASKROOM_STORE_BACKEND", "memory")
    monkeypatch.setenv("ASKROOM_SERVER_ID", "server-7")
    monkeypatch.setenv("ASKROOM_CLOSE_GRACE_SECONDS", "1.5")
    s = Settings()
    assert s.store_backend == "memory"
    assert s.server_id == "server-7"
    assert s.close_grace_seconds == 1.5


@pytest.mark.parametrize("overrides", [
    {"store_backend": "mongo"},
    {"fabric_backend": "kafka"},
    {"store_timeout_seconds": 0},
    {"close_grace_seconds": -1},
    {"room_code_length": 2},
])
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)
