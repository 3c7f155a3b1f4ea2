"""Driver configuration loading helpers."""

from __future__ import annotations

import getpass
import logging
from pathlib import Path
from typing import Mapping

import tomllib

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError
from .properties import USER

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "pgaws" / "driverconfig.toml"
LOCAL_CONFIG_FILE = Path("driverconfig.toml")

# Earlier entries take priority over later ones.
CONFIG_FILES: tuple[Path, ...] = (CONFIG_FILE, LOCAL_CONFIG_FILE)


class DriverConfigFile(BaseModel):
    """Shape of a driverconfig.toml file."""

    properties: dict[str, str] = Field(default_factory=dict)

    @field_validator("properties", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        return {
            str(name): str(item).lower() if isinstance(item, bool) else str(item)
            for name, item in value.items()
        }


def load_config_file(path: Path) -> DriverConfigFile:
    """Read and validate one configuration file."""

    try:
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigError(f"Error loading default settings from {path}: {exc}") from exc
    try:
        return DriverConfigFile.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid driver configuration in {path}: {exc}") from exc


def load_default_properties(paths: tuple[Path, ...] | None = None) -> dict[str, str]:
    """Build the lowest precedence property layer.

    Starts from the login name as ``user`` and then applies the configuration
    files so that files listed first win.
    """

    merged: dict[str, str] = {}
    try:
        merged[USER.name] = getpass.getuser()
    except (KeyError, OSError):
        # Just a default; no login name is fine.
        pass

    for path in reversed(paths if paths is not None else CONFIG_FILES):
        if not path.is_file():
            continue
        LOG.debug("Loading driver configuration from: %s", path)
        merged.update(load_config_file(path).properties)
    return merged


def save_config_file(properties: Mapping[str, str], path: Path = CONFIG_FILE) -> None:
    """Persist ``properties`` as the ``[properties]`` table of ``path``."""

    config = DriverConfigFile(properties=dict(properties))
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = ["[properties]"]
    for name, value in sorted(config.properties.items()):
        lines.append(f"{_toml_string(name)} = {_toml_string(value)}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _toml_string(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


__all__ = [
    "CONFIG_FILE",
    "CONFIG_FILES",
    "DriverConfigFile",
    "LOCAL_CONFIG_FILE",
    "load_config_file",
    "load_default_properties",
    "save_config_file",
]
