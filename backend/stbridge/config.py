from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from stbridge.exceptions import ConfigError

# Version of the persisted state layout written by this release
APP_VERSION = "1.4.0"

SAMPLE_CONFIG = Path(__file__).resolve().parent / "_config.yml"


class MqttConfig(BaseModel):
    host: str = "mqtt://localhost"
    preface: str = "/smartthings"
    state_read_suffix: str = ""
    command_suffix: str = ""
    state_write_suffix: str = ""
    retain: bool = True
    username: str | None = None
    password: str | None = None
    client_id: str = "smartthings-mqtt-bridge"
    reconnect_interval: int = 5
    max_reconnect_interval: int = 60

    @field_validator("host")
    @classmethod
    def _host_has_scheme(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError(f"broker host must include a scheme, e.g. mqtt://{value}")
        return value


class Settings(BaseModel):
    mqtt: MqttConfig = MqttConfig()
    port: int = 8080
    state_save_interval_min: int = 15
    callback_timeout_sec: float = 10.0


def config_dir() -> Path:
    return Path(os.environ.get("CONFIG_DIR") or os.getcwd())


def ensure_config_file(directory: Path) -> Path:
    """Return the path of config.yml, seeding it from the sample on first start."""
    path = directory / "config.yml"
    if not path.exists():
        directory.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(SAMPLE_CONFIG, path)
    return path


def read_config(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def build_settings(data: dict[str, Any]) -> Settings:
    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc
