import json
import os
import stat

import pytest

from rrs_terminal import config as cfg
from rrs_terminal.config import (
    Config,
    RuntimeStateStore,
    config_exists,
    is_process_running,
    load_config,
    normalize_session_key,
    read_pid_file,
    remove_pid_file,
    save_config,
    write_pid_file,
)
from rrs_terminal.models import MiningStats, RuntimeState

KEY = "0x" + "ab" * 32


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SESSION_KEY", "DRONE_ID", "AUTO_REPURCHASE", "TURBO_THRESHOLD"):
        monkeypatch.delenv(name, raising=False)


def write_json(path, data):
    path.write_text(json.dumps(data))
    return path


def test_normalize_session_key_adds_prefix():
    assert normalize_session_key("  " + "ab" * 32 + "\n") == KEY
    assert normalize_session_key(KEY) == KEY
    with pytest.raises(ValueError):
        normalize_session_key("0x1234")
    with pytest.raises(ValueError):
        normalize_session_key("zz" * 32)


def test_env_vars_win_over_file(tmp_path, monkeypatch):
    path = write_json(tmp_path / "config.json", {"sessionKey": "0x" + "cd" * 32, "droneId": 1})
    monkeypatch.setenv("SESSION_KEY", "ab" * 32)
    monkeypatch.setenv("DRONE_ID", "42")
    monkeypatch.setenv("AUTO_REPURCHASE", "true")

    config = load_config(path)

    assert config.session_key == KEY
    assert config.drone_id == 42
    assert config.auto_repurchase is True
    assert config.turbo_threshold == 100


def test_env_invalid_drone_id(monkeypatch):
    monkeypatch.setenv("SESSION_KEY", KEY)
    monkeypatch.setenv("DRONE_ID", "abc")
    with pytest.raises(ValueError, match="DRONE_ID"):
        load_config()


def test_load_from_file(tmp_path):
    path = write_json(tmp_path / "config.json", {
        "sessionKey": KEY, "droneId": 7, "autoRepurchase": True, "turboThreshold": 50,
    })

    config = load_config(path)

    assert config == Config(session_key=KEY, drone_id=7, auto_repurchase=True, turbo_threshold=50)


def test_missing_file(tmp_path):
    with pytest.raises(ValueError, match="Config file not found"):
        load_config(tmp_path / "nope.json")


@pytest.mark.parametrize("data, message", [
    ({"droneId": 1}, "missing sessionKey"),
    ({"sessionKey": "ab" * 32, "droneId": 1}, "Invalid sessionKey"),
    ({"sessionKey": "0x" + "zz" * 32, "droneId": 1}, "Invalid sessionKey"),
    ({"sessionKey": KEY}, "droneId"),
    ({"sessionKey": KEY, "droneId": "7"}, "droneId"),
    ({"sessionKey": KEY, "droneId": -1}, "droneId"),
])
def test_invalid_file(tmp_path, data, message):
    path = write_json(tmp_path / "config.json", data)
    with pytest.raises(ValueError, match=message):
        load_config(path)


def test_save_config_is_private(tmp_path):
    path = tmp_path / "sub" / "config.json"
    save_config(Config(session_key=KEY, drone_id=3), path)

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert json.loads(path.read_text())["droneId"] == 3
    assert config_exists(path)
    assert not config_exists(tmp_path / "missing.json")


def test_masked_key():
    assert Config(session_key=KEY, drone_id=1).masked_key == "0xabababab...ababab"


def test_runtime_state_store(tmp_path):
    store = RuntimeStateStore(tmp_path / "rrs.state.json")
    assert store.load() is None

    store.save(RuntimeState(pid=123, start_time=10.0, stats=MiningStats(blocks_destroyed=5, start_time=10.0)))
    state = store.load()
    assert state.pid == 123
    assert state.stats.blocks_destroyed == 5

    store.clear()
    assert store.load() is None
    store.clear()


def test_runtime_state_store_ignores_garbage(tmp_path):
    path = tmp_path / "rrs.state.json"
    path.write_text("{not json")
    assert RuntimeStateStore(path).load() is None


def test_pid_file(tmp_path):
    path = tmp_path / "rrs.pid"
    assert read_pid_file(path) is None

    write_pid_file(4321, path)
    assert read_pid_file(path) == 4321

    remove_pid_file(path)
    assert not path.exists()
    remove_pid_file(path)


def test_pid_paths_follow_module_globals(tmp_path, monkeypatch):
    monkeypatch.setattr(cfg, "PID_PATH", tmp_path / "rrs.pid")
    write_pid_file(99)
    assert (tmp_path / "rrs.pid").read_text() == "99"


def test_is_process_running():
    assert is_process_running(os.getpid())


def test_load_env_refreshes_settings(tmp_path, monkeypatch):
    for name in ("MEGACUBE_DIR", "CONFIG_PATH", "STATE_PATH", "PID_PATH", "LOG_PATH",
                 "REQUEST_TIMEOUT", "MINE_DELAY_MS"):
        monkeypatch.setattr(cfg, name, getattr(cfg, name))
    for name in ("MEGACUBE_HOME", "REQUEST_TIMEOUT", "MINE_DELAY_MS"):
        monkeypatch.setenv(name, "0")
    env_file = tmp_path / "custom.env"
    env_file.write_text(f"MEGACUBE_HOME={tmp_path / 'home'}\nREQUEST_TIMEOUT=5\nMINE_DELAY_MS=250\n")

    assert cfg.load_env(env_file) is True

    assert cfg.PID_PATH == tmp_path / "home" / "rrs.pid"
    assert cfg.REQUEST_TIMEOUT == 5.0
    assert cfg.MINE_DELAY_MS == 250


def test_load_env_missing_file_changes_nothing(tmp_path, monkeypatch):
    monkeypatch.setattr(cfg, "CONFIG_PATH", tmp_path / "config.json")
    assert cfg.load_env(tmp_path / "nope.env") is False
    assert cfg.CONFIG_PATH == tmp_path / "config.json"
