"""
Server configuration: defaults, YAML profiles and environment overrides.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

LOG = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent / "configs"
PROFILES_PATH = CONFIG_DIR / "profiles.yaml"

DEFAULT_PORT = 8080

ENV_PORT = "PORT"
ENV_HOST = "DUOCALL_HOST"
ENV_PROFILE = "DUOCALL_PROFILE"
ENV_STATIC_DIR = "DUOCALL_STATIC_DIR"
ENV_IDLE_ROOM_TIMEOUT = "DUOCALL_IDLE_ROOM_TIMEOUT"
ENV_GOOGLE_API_KEY = "GOOGLE_API_KEY"


class ConfigError(ValueError):
    """Raised when a profile or environment value cannot be used."""


@dataclass(frozen=True)
class ServerConfig:
    profile: str = "default"
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    static_dir: Optional[Path] = None
    send_queue_size: int = 64
    idle_room_timeout: float = 0.0
    sweep_interval: float = 30.0
    google_api_key: Optional[str] = None
    speech_endpoint: str = "https://speech.googleapis.com/v1/speech:recognize"
    translate_endpoint: str = "https://translation.googleapis.com/language/translate/v2"
    upstream_timeout: float = 30.0

    def with_overrides(self, **overrides: Any) -> "ServerConfig":
        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values)


def _coerce(name: str, value: Any) -> Any:
    try:
        if name in {"port", "send_queue_size"}:
            return int(value)
        if name in {"idle_room_timeout", "sweep_interval", "upstream_timeout"}:
            return float(value)
        if name == "static_dir":
            return Path(str(value)).expanduser() if value else None
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for {name}: {value!r}") from exc
    return value


def read_profiles(path: Path = PROFILES_PATH) -> Dict[str, Dict[str, Any]]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            profiles = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        profiles = {}
    if not isinstance(profiles, dict):
        raise ConfigError(f"{path} must contain a mapping of profiles")
    return profiles


def load_config(
    profile: Optional[str] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    path: Path = PROFILES_PATH,
) -> ServerConfig:
    """
    Resolve the configuration for ``profile``.

    Precedence, lowest first: dataclass defaults, the YAML profile, then
    environment variables.
    """

    environ = os.environ if env is None else env
    profile_name = profile or environ.get(ENV_PROFILE) or "default"

    profiles = read_profiles(path)
    if profile_name not in profiles and profile_name != "default":
        raise ConfigError(f"unknown profile {profile_name!r}")
    settings = profiles.get(profile_name) or {}
    if not isinstance(settings, dict):
        raise ConfigError(f"profile {profile_name!r} must be a mapping")

    known = {item.name for item in fields(ServerConfig)}
    values: Dict[str, Any] = {"profile": profile_name}
    for key, value in settings.items():
        if key not in known:
            LOG.warning("Ignoring unknown setting %r in profile %s", key, profile_name)
            continue
        values[key] = _coerce(key, value)

    env_map = {
        ENV_PORT: "port",
        ENV_HOST: "host",
        ENV_STATIC_DIR: "static_dir",
        ENV_IDLE_ROOM_TIMEOUT: "idle_room_timeout",
        ENV_GOOGLE_API_KEY: "google_api_key",
    }
    for env_name, key in env_map.items():
        raw = environ.get(env_name)
        if raw:
            values[key] = _coerce(key, raw)

    return ServerConfig(**values)


__all__ = ["ConfigError", "DEFAULT_PORT", "PROFILES_PATH", "ServerConfig", "load_config", "read_profiles"]
