"""Tests for driver configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from pgaws import config as config_module
from pgaws.config import DriverConfigFile, load_config_file, load_default_properties, save_config_file
from pgaws.errors import ConfigError


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_defaults_seed_user_from_login_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module.getpass, "getuser", lambda: "postgres")

    assert load_default_properties(()) == {"user": "postgres"}


def test_defaults_skip_user_when_login_name_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def _no_user() -> str:
        raise OSError("no login name")

    monkeypatch.setattr(config_module.getpass, "getuser", _no_user)

    assert load_default_properties(()) == {}


def test_missing_files_are_skipped(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module.getpass, "getuser", lambda: "postgres")
    monkeypatch.setattr(config_module, "CONFIG_FILES", (tmp_path / "absent.toml",))

    assert load_default_properties() == {"user": "postgres"}


def test_earlier_files_win(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module.getpass, "getuser", lambda: "postgres")
    first = _write(
        tmp_path / "home" / "driverconfig.toml",
        """
[properties]
ApplicationName = "home"
loginTimeout = 5
""",
    )
    second = _write(
        tmp_path / "cwd" / "driverconfig.toml",
        """
[properties]
ApplicationName = "cwd"
user = "service"
sslmode = "require"
""",
    )
    monkeypatch.setattr(config_module, "CONFIG_FILES", (first, second))

    result = load_default_properties()

    assert result == {
        "user": "service",
        "ApplicationName": "home",
        "loginTimeout": "5",
        "sslmode": "require",
    }


def test_config_file_values_are_stringified(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "driverconfig.toml",
        """
[properties]
enableClusterAwareFailover = false
connectTimeout = 2.5
""",
    )

    result = load_config_file(path)

    assert result == DriverConfigFile(properties={"enableClusterAwareFailover": "false", "connectTimeout": "2.5"})


def test_config_file_toml_errors_raise(tmp_path: Path) -> None:
    path = _write(tmp_path / "driverconfig.toml", "properties = [unterminated")

    with pytest.raises(ConfigError):
        load_config_file(path)


def test_config_file_shape_errors_raise(tmp_path: Path) -> None:
    path = _write(tmp_path / "driverconfig.toml", 'properties = "not a table"\n')

    with pytest.raises(ConfigError, match="Invalid driver configuration"):
        load_config_file(path)


def test_empty_config_file_is_valid(tmp_path: Path) -> None:
    path = _write(tmp_path / "driverconfig.toml", "")

    assert load_config_file(path) == DriverConfigFile()


def test_save_config_file_round_trips(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "driverconfig.toml"

    save_config_file({"user": "app", "password": 'p"w\\d', "PGPORT": "5543"}, path)

    assert load_config_file(path).properties == {"user": "app", "password": 'p"w\\d', "PGPORT": "5543"}
    assert path.read_text().startswith("[properties]\n")
