# src/ghostnotes/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/ghostnotes/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `GHOSTNOTES_LOG_LEVEL`, `NOTIFY_SECRET`)
- an external YAML file via `GHOSTNOTES_CONFIG_PATH`

Design rule:
- Tuning knobs live in YAML, not hard-coded in the reveal/notify logic.
- The reveal radius/angle and the proximity-notification radius are separate knobs.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from ghostnotes.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `ghostnotes.config`."""
    text = resources.files("ghostnotes.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "GhostNotes"
    log_level: str = "INFO"


class RevealSettings(BaseModel):
    radius_m: float = Field(35, gt=0)
    angle_deg: float = Field(20, ge=0, le=180)
    require_sightline: bool = True
    tick_interval_ms: int = Field(200, gt=0)
    progress_step: float = Field(10, gt=0, le=100)


class ProximitySettings(BaseModel):
    radius_m: float = Field(50, gt=0)
    cooldown_ms: int = Field(60_000, ge=0)
    title: str = "Note nearby"
    default_body: str = "You are near a note"


class StoreSettings(BaseModel):
    backend: Literal["file", "memory"] = "file"
    dir: str = ".cache/ghostnotes/notified"


class DispatchSettings(BaseModel):
    relay_url: str | None = None
    relay_secret: str | None = None
    timeout_seconds: float = 10
    max_per_minute: int = Field(6, ge=1)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    reveal: RevealSettings = Field(default_factory=RevealSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("GHOSTNOTES_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    store_dir = os.getenv("GHOSTNOTES_STORE_DIR")
    if store_dir:
        data.setdefault("store", {})["dir"] = store_dir

    relay_url = os.getenv("GHOSTNOTES_NOTIFY_RELAY_URL")
    if relay_url:
        data.setdefault("dispatch", {})["relay_url"] = relay_url

    secret = os.getenv("NOTIFY_SECRET")
    if secret:
        data.setdefault("dispatch", {})["relay_secret"] = secret

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("GHOSTNOTES_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
