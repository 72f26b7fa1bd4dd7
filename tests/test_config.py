"""Tests covering profile loading and environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from duocall.config import DEFAULT_PORT, ConfigError, ServerConfig, load_config


def _write_profiles(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "profiles.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_profiles_file(tmp_path: Path) -> None:
    config = load_config(env={}, path=tmp_path / "missing.yaml")

    assert config == ServerConfig()
    assert config.port == DEFAULT_PORT == 8080


def test_bundled_default_profile_loads() -> None:
    config = load_config(env={})

    assert config.profile == "default"
    assert config.port == 8080
    assert config.static_dir == Path("public")


def test_profile_values_are_coerced(tmp_path: Path) -> None:
    path = _write_profiles(
        tmp_path,
        "staging:\n  port: '9000'\n  idle_room_timeout: 120\n  static_dir: ~/web\n  unknown_key: 1\n",
    )

    config = load_config("staging", env={}, path=path)

    assert config.profile == "staging"
    assert config.port == 9000
    assert config.idle_room_timeout == 120.0
    assert config.static_dir == Path("~/web").expanduser()


def test_environment_overrides_profile(tmp_path: Path) -> None:
    path = _write_profiles(tmp_path, "default:\n  port: 9000\n  host: 127.0.0.1\n")
    env = {
        "PORT": "7000",
        "DUOCALL_HOST": "0.0.0.0",
        "DUOCALL_IDLE_ROOM_TIMEOUT": "30",
        "GOOGLE_API_KEY": "secret",
    }

    config = load_config(env=env, path=path)

    assert config.port == 7000
    assert config.host == "0.0.0.0"
    assert config.idle_room_timeout == 30.0
    assert config.google_api_key == "secret"


def test_profile_selected_from_environment(tmp_path: Path) -> None:
    path = _write_profiles(tmp_path, "prod:\n  send_queue_size: 128\n")

    config = load_config(env={"DUOCALL_PROFILE": "prod"}, path=path)

    assert config.profile == "prod"
    assert config.send_queue_size == 128


def test_unknown_profile_and_bad_values_raise(tmp_path: Path) -> None:
    path = _write_profiles(tmp_path, "default:\n  port: eighty\n")

    with pytest.raises(ConfigError):
        load_config("nope", env={}, path=path)
    with pytest.raises(ConfigError):
        load_config(env={}, path=path)


def test_with_overrides_skips_none() -> None:
    config = ServerConfig(port=9000).with_overrides(host="127.0.0.1", port=None)

    assert config.host == "127.0.0.1"
    assert config.port == 9000
