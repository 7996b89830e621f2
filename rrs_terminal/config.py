"""
Local configuration, runtime state and PID file.

Storage: ~/.megacube/ (override with MEGACUBE_HOME)
    config.json      session key + drone id (mode 0600)
    rrs.state.json   live session stats for `rrs-terminal status`
    rrs.pid          single-instance guard
    rrs.log          error log
"""

import os
import json
import string
from pathlib import Path
from dataclasses import dataclass

from dotenv import load_dotenv

from .models import RuntimeState


def apply_env():
    """(Re)read the settings below from the environment."""
    global MEGACUBE_DIR, CONFIG_PATH, STATE_PATH, PID_PATH, LOG_PATH
    global REQUEST_TIMEOUT, MINE_DELAY_MS

    MEGACUBE_DIR = Path(os.getenv("MEGACUBE_HOME", Path.home() / ".megacube"))
    CONFIG_PATH = MEGACUBE_DIR / "config.json"
    STATE_PATH = MEGACUBE_DIR / "rrs.state.json"
    PID_PATH = MEGACUBE_DIR / "rrs.pid"
    LOG_PATH = MEGACUBE_DIR / "rrs.log"

    REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))  # seconds
    MINE_DELAY_MS = int(os.getenv("MINE_DELAY_MS", "100"))


def load_env(path) -> bool:
    """Load a .env file over the current environment and refresh settings. False if missing."""
    path = Path(path)
    if not path.exists():
        return False
    load_dotenv(dotenv_path=path, override=True)
    apply_env()
    return True


# --- CONFIGURATION ---
load_dotenv(dotenv_path=Path.cwd() / ".env")
apply_env()


@dataclass
class Config:
    session_key: str       # session wallet private key, NOT the main wallet
    drone_id: int
    auto_repurchase: bool = False
    turbo_threshold: int = 100

    def to_dict(self):
        return {
            "sessionKey": self.session_key,
            "droneId": self.drone_id,
            "autoRepurchase": self.auto_repurchase,
            "turboThreshold": self.turbo_threshold,
        }

    @property
    def masked_key(self):
        return f"{self.session_key[:10]}...{self.session_key[-6:]}"


def _is_hex_key(key):
    return len(key) == 66 and all(c in string.hexdigits for c in key[2:])


def normalize_session_key(key: str) -> str:
    key = key.strip()
    if not key.startswith("0x"):
        key = "0x" + key
    if not _is_hex_key(key):
        raise ValueError("Invalid SESSION_KEY - must be 64-char hex string (with or without 0x prefix)")
    return key


def config_exists(path=None) -> bool:
    return bool(os.getenv("SESSION_KEY") and os.getenv("DRONE_ID")) or Path(path or CONFIG_PATH).exists()


def load_config(path=None) -> Config:
    """
    Load config from SESSION_KEY / DRONE_ID env vars, falling back to config.json.
    Env vars win (container deployments).
    """
    env_key = os.getenv("SESSION_KEY")
    env_drone = os.getenv("DRONE_ID")

    if env_key and env_drone:
        try:
            drone_id = int(env_drone)
        except ValueError:
            drone_id = -1
        if drone_id < 0:
            raise ValueError("Invalid DRONE_ID - must be a positive number")

        return Config(
            session_key=normalize_session_key(env_key),
            drone_id=drone_id,
            auto_repurchase=os.getenv("AUTO_REPURCHASE") == "true",
            turbo_threshold=int(os.getenv("TURBO_THRESHOLD", "100")),
        )

    path = Path(path or CONFIG_PATH)
    if not path.exists():
        raise ValueError(
            f"Config file not found at {path}. Run 'rrs-terminal config' to set up, "
            "or set SESSION_KEY and DRONE_ID environment variables."
        )

    with open(path, "r") as f:
        data = json.load(f)

    key = data.get("sessionKey")
    if not key or not isinstance(key, str):
        raise ValueError("Config missing sessionKey")
    if not key.startswith("0x") or not _is_hex_key(key):
        raise ValueError("Invalid sessionKey format - must be 0x-prefixed 64-char hex string")

    drone_id = data.get("droneId")
    if not isinstance(drone_id, int) or isinstance(drone_id, bool) or drone_id < 0:
        raise ValueError("Config missing or invalid droneId")

    return Config(
        session_key=key,
        drone_id=drone_id,
        auto_repurchase=bool(data.get("autoRepurchase", False)),
        turbo_threshold=int(data.get("turboThreshold", 100)),
    )


def save_config(config: Config, path=None):
    path = Path(path or CONFIG_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
    os.chmod(path, 0o600)


class RuntimeStateStore:
    """Durable snapshot of the running session, read by `status`."""

    def __init__(self, path=None):
        self.path = Path(path or STATE_PATH)

    def save(self, state: RuntimeState):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(state.to_dict(), f, indent=2)

    def load(self):
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                return RuntimeState.from_dict(json.load(f))
        except (json.JSONDecodeError, IOError, KeyError, TypeError, ValueError):
            return None

    def clear(self):
        if self.path.exists():
            self.path.unlink()


# --- PID FILE ---

def write_pid_file(pid, path=None):
    path = Path(path or PID_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(str(pid))


def read_pid_file(path=None):
    path = Path(path or PID_PATH)
    if not path.exists():
        return None
    try:
        return int(path.read_text().strip())
    except (ValueError, IOError):
        return None


def remove_pid_file(path=None):
    path = Path(path or PID_PATH)
    if path.exists():
        path.unlink()


def is_process_running(pid) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
