import pytest

from config import Config, env_flag


@pytest.mark.parametrize("value, expected", [
    ("true", True), ("1", True), ("T", True), ("TRUE", True),
    ("false", False), ("0", False), ("yes", False), ("", False),
])
def test_env_flag(monkeypatch, value, expected):
    monkeypatch.setenv("JASS_TEST_FLAG", value)
    assert env_flag("JASS_TEST_FLAG") is expected


def test_env_flag_default(monkeypatch):
    monkeypatch.delenv("JASS_TEST_FLAG", raising=False)
    assert env_flag("JASS_TEST_FLAG") is False
    assert env_flag("JASS_TEST_FLAG", "true") is True


def test_test_environment_settings():
    assert Config.SOCKETIO_ASYNC_MODE == "threading"
    assert Config.BOT_DELAY == 0.0
    assert Config.TRICK_DELAY == 0.0
    assert isinstance(Config.WINNING_SCORE, int)
    assert Config.IDLE_ROOM_TIMEOUT > 0
