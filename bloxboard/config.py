from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/bloxboard/config.json").expanduser()

DEFAULT_PORT = 8787
MIN_PORT = 1
MAX_PORT = 65535

CONFIG_ENV_OVERRIDES = {
    "db_driver": "BLOXBOARD_DB_DRIVER",
    "db_path": "BLOXBOARD_DB",
    "legacy_path": "BLOXBOARD_LEGACY_PATH",
    "retention": "BLOXBOARD_RETENTION",
    "host": "BLOXBOARD_HOST",
    "port": "BLOXBOARD_PORT",
}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("BLOXBOARD_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class BloxboardConfig:
    db_driver: str = "sqlite"
    db_path: str = "~/.bloxboard/leaderboard.sqlite"
    legacy_path: str = "~/.bloxboard/leaderboard.data.json"
    retention: int = 100
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    default_read_limit: int = 10
    # Score payloads are a few hundred bytes; this only stops unbounded bodies.
    max_request_body_bytes: int = 1024 * 1024

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser()

    @property
    def resolved_legacy_path(self) -> Path:
        return Path(self.legacy_path).expanduser()


_CONFIG_FIELDS = {f.name for f in fields(BloxboardConfig)}


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    try:
        if isinstance(value, str):
            return int(value.strip())
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_positive_int(value: object, default: int, *, key: str) -> int:
    parsed = _parse_int(value, default, key=key)
    if parsed <= 0:
        warnings.warn(f"Expected a positive int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _parse_port(value: object, default: int, *, key: str) -> int:
    parsed = _parse_int(value, default, key=key)
    if parsed < MIN_PORT or parsed > MAX_PORT:
        warnings.warn(
            f"Port out of range for {key}: {value!r} (expected {MIN_PORT}-{MAX_PORT})",
            RuntimeWarning,
            stacklevel=2,
        )
        return default
    return parsed


def _coerce_str(value: object, default: str, *, key: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if value is not None:
        warnings.warn(f"Invalid string for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def load_config(path: Path | None = None) -> BloxboardConfig:
    """Defaults, then the JSON config file, then BLOXBOARD_* environment overrides."""
    cfg = BloxboardConfig()
    try:
        data = read_config_file(path)
    except ValueError as exc:
        warnings.warn(
            f"Ignoring {exc} at {get_config_path(path)}", RuntimeWarning, stacklevel=2
        )
        data = {}
    cfg = _apply_dict(cfg, data)
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: BloxboardConfig, data: dict[str, Any]) -> BloxboardConfig:
    for key, value in data.items():
        if key not in _CONFIG_FIELDS:
            continue
        if key in {"retention", "default_read_limit", "max_request_body_bytes"}:
            setattr(cfg, key, _parse_positive_int(value, getattr(cfg, key), key=key))
            continue
        if key == "port":
            cfg.port = _parse_port(value, cfg.port, key=key)
            continue
        setattr(cfg, key, _coerce_str(value, getattr(cfg, key), key=key))
    return cfg

