import json
import os

import pytest

from mcauth.config import AuthConfig, load_config
from mcauth.debug import dbg_dump


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("MCAUTH_TIMEOUT", "AUTH_DEBUG", "DEBUG_PATH"):
        monkeypatch.delenv(var, raising=False)


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "nope.json")
    assert config == AuthConfig()


def test_file_values_are_used(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"timeout": 3, "user_agent": "test", "unknown": 1}))

    config = load_config(path)

    assert config.timeout == 3
    assert config.user_agent == "test"


@pytest.mark.parametrize(
    "data",
    [
        {"timeout": "abc"},
        {"timeout": True},
        {"timeout": -1},
        {"debug": "yes"},
        {"user_agent": 5},
        {"mc_profile": None},
        {"debug_path": ["a"]},
    ],
)
def test_wrongly_typed_values_fall_back_to_defaults(tmp_path, caplog, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data))

    with caplog.at_level("WARNING", logger="mcauth.config"):
        config = load_config(path)

    assert config == AuthConfig()
    assert "Ignoring config value" in caplog.text


def test_bad_value_does_not_discard_good_ones(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"timeout": "abc", "user_agent": "test", "debug": True}))

    config = load_config(path)

    assert config.timeout == 15.0
    assert config.user_agent == "test"
    assert config.debug is True


def test_integer_timeout_becomes_float(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"timeout": 3}))
    assert isinstance(load_config(path).timeout, float)


def test_broken_file_gives_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{nope")
    assert load_config(path) == AuthConfig()


def test_environment_wins(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"timeout": 3, "debug": False}))
    monkeypatch.setenv("MCAUTH_TIMEOUT", "7.5")
    monkeypatch.setenv("AUTH_DEBUG", "1")
    monkeypatch.setenv("DEBUG_PATH", str(tmp_path / "dumps"))

    config = load_config(path)

    assert config.timeout == 7.5
    assert config.debug is True
    assert config.debug_path == str(tmp_path / "dumps")


def test_auth_debug_zero_disables(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"debug": True}))
    monkeypatch.setenv("AUTH_DEBUG", "0")
    assert load_config(path).debug is False


def test_xbox_profile_url_has_settings():
    url = AuthConfig().xbox_profile_url
    assert url.startswith("https://profile.xboxlive.com/users/me/profile/settings?settings=")
    assert url.endswith("RealName,RealNameOverride,IsQuarantined")


def test_dbg_dump_only_when_enabled(tmp_path):
    dbg_dump("off.txt", b"data", AuthConfig(debug=False, debug_path=str(tmp_path)))
    assert os.listdir(tmp_path) == []

    dbg_dump("on.txt", b"data", AuthConfig(debug=True, debug_path=str(tmp_path)))
    (name,) = os.listdir(tmp_path)
    assert name.endswith("_on.txt")
    assert (tmp_path / name).read_bytes() == b"data"
