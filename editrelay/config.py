"""Configuration for the relay daemon.

Values come from, in increasing priority: built-in defaults, the first TOML file
found, then ``EDITRELAY_*`` environment variables (a ``.env`` file in the working
directory is loaded first without overriding the real environment).
"""

import os
import socket
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

DEFAULT_SERVER_URL = "https://nvimblast.com"
APP_NAME = "editrelay"

ENV_OVERRIDES = {
    "EDITRELAY_SERVER_URL": "server_url",
    "EDITRELAY_API_TOKEN": "api_token",
    "EDITRELAY_MACHINE": "machine",
    "EDITRELAY_METRICS_ONLY": "metrics_only",
    "EDITRELAY_LOG_LEVEL": "log_level",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def default_data_dir() -> Path:
    return Path.home() / ".local" / "share" / APP_NAME


def _hostname() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return "localhost"


@dataclass
class Config:
    server_url: str = DEFAULT_SERVER_URL
    api_token: str = ""
    sync_interval_minutes: int = 10
    sync_batch_size: int = 100
    socket_path: Path = field(default_factory=lambda: default_data_dir() / f"{APP_NAME}.sock")
    db_path: Path = field(default_factory=lambda: default_data_dir() / f"{APP_NAME}.db")
    machine: str = field(default_factory=_hostname)
    metrics_only: bool = False
    log_level: str = "INFO"

    @property
    def sync_interval_seconds(self) -> float:
        return self.sync_interval_minutes * 60.0


def config_search_paths() -> List[Path]:
    paths = []
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        paths.append(Path(xdg) / APP_NAME / "config.toml")
    home = os.environ.get("HOME")
    if home:
        paths.append(Path(home) / ".config" / APP_NAME / "config.toml")
    return paths


def load_config(path: Optional[Union[str, Path]] = None) -> Config:
    """Build a ``Config`` and make sure the database directory exists."""
    env_file = find_dotenv(usecwd=True)
    if env_file:
        load_dotenv(env_file, override=False)

    values: Dict[str, Any] = {}
    candidates = [Path(path).expanduser()] if path else config_search_paths()
    for candidate in candidates:
        if candidate.is_file():
            values.update(_read_toml(candidate))
            break
    else:
        if path:
            raise ConfigError(f"config file {path} not found")

    for env_name, key in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is not None:
            values[key] = raw

    cfg = _build(values)

    try:
        cfg.db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"cannot create data directory {cfg.db_path.parent}: {exc}") from exc
    return cfg


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"failed to read {path}: {exc}") from exc

    # Older configs call the credential auth_token.
    if "auth_token" in data and "api_token" not in data:
        data["api_token"] = data.pop("auth_token")
    return data


def _build(values: Dict[str, Any]) -> Config:
    cfg = Config()
    known = {f.name for f in fields(Config)}
    for key, raw in values.items():
        if key not in known:
            continue
        setattr(cfg, key, _coerce(key, raw))

    if cfg.sync_interval_minutes <= 0:
        raise ConfigError("sync_interval_minutes must be positive")
    if cfg.sync_batch_size <= 0:
        raise ConfigError("sync_batch_size must be positive")
    return cfg


def _coerce(key: str, raw: Any) -> Any:
    if key in ("sync_interval_minutes", "sync_batch_size"):
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if key in ("socket_path", "db_path"):
        return Path(str(raw)).expanduser()
    if key == "metrics_only":
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"metrics_only must be a boolean, got {raw!r}")
    if key == "log_level":
        return str(raw).upper()
    return str(raw)
