"""Environment configuration for the player and the sounds API."""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_API_BASE_URL = "http://localhost:3001/api"


class ConfigError(RuntimeError):
    """Raised when a repeat settings file cannot be read."""


@dataclass(slots=True)
class PlaybackConfig:
    api_base_url: str = DEFAULT_API_BASE_URL
    recording_ttl_sec: float = 600.0
    poll_interval_sec: float = 5.0
    tick_interval_sec: float = 1.0
    autoplay_retry_sec: float = 2.0
    http_timeout_sec: float = 6.0
    repeats_file: Path | None = None
    repeats_enabled: bool = True

    @property
    def recording_ttl_ms(self) -> int:
        return int(self.recording_ttl_sec * 1000)

    @staticmethod
    def from_env() -> PlaybackConfig:
        base_url = os.getenv("TAQ_API_BASE_URL", "").strip() or DEFAULT_API_BASE_URL
        repeats_raw = os.getenv("TAQ_REPEATS_FILE", "").strip()
        return PlaybackConfig(
            api_base_url=base_url.rstrip("/"),
            recording_ttl_sec=_env_float("TAQ_RECORDING_TTL_SEC", 600.0, minimum=1.0),
            poll_interval_sec=_env_float("TAQ_POLL_INTERVAL_SEC", 5.0, minimum=0.5),
            tick_interval_sec=_env_float("TAQ_TICK_INTERVAL_SEC", 1.0, minimum=0.1),
            autoplay_retry_sec=_env_float("TAQ_AUTOPLAY_RETRY_SEC", 2.0, minimum=0.1),
            http_timeout_sec=_env_float("TAQ_HTTP_TIMEOUT_SEC", 6.0, minimum=0.1),
            repeats_file=Path(repeats_raw) if repeats_raw else None,
            repeats_enabled=_env_flag("TAQ_REPEATS_ENABLED", True),
        )


@dataclass(slots=True)
class ApiServerConfig:
    host: str = "127.0.0.1"
    port: int = 3001

    @staticmethod
    def from_env() -> ApiServerConfig:
        host = os.getenv("TAQ_API_HOST", "").strip() or "127.0.0.1"
        port_raw = os.getenv("TAQ_API_PORT", "3001").strip()
        try:
            port = int(port_raw)
        except ValueError:
            port = 3001
        if not 0 < port < 65536:
            port = 3001
        return ApiServerConfig(host=host, port=port)


def load_repeat_settings(path: Path) -> list[Any]:
    """Read a JSON list of slot settings as saved by the settings screen."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read repeat settings {path}: {exc}") from exc
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"repeat settings {path} is not valid JSON: {exc}") from exc
    if isinstance(decoded, dict):
        decoded = decoded.get("repeats")
    if not isinstance(decoded, list):
        raise ConfigError(f"repeat settings {path} must be a JSON list of slots")
    return decoded


def _env_float(name: str, default: float, minimum: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if not math.isfinite(value):
        return default
    return max(value, minimum)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "no", "off"}
