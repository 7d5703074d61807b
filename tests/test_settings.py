"""Tests for klipper_config_mcp.settings."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from klipper_config_mcp.settings import (
    DEFAULTS,
    get_default_config_path,
    load_settings,
    validate_settings,
)


@pytest.fixture()
def env_clean(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove every settings variable and point the config file somewhere empty."""
    for var in ("MOONRAKER_HOST", "MOONRAKER_PORT", "MOONRAKER_API_KEY", "MOONRAKER_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("KLIPPER_MCP_CONFIG", str(tmp_path / "absent.yaml"))


@pytest.fixture()
def sample_config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {"host": "voron.local", "port": 7200, "api_key": "FILEKEY", "timeout": 15, "retries": 2}
        ),
        encoding="utf-8",
    )
    return path


# ===================================================================
# get_default_config_path
# ===================================================================


class TestDefaultConfigPath:

    def test_home_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("KLIPPER_MCP_CONFIG", raising=False)
        assert get_default_config_path() == Path.home() / ".klipper-config-mcp" / "config.yaml"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("KLIPPER_MCP_CONFIG", str(tmp_path / "x.yaml"))
        assert get_default_config_path() == tmp_path / "x.yaml"


# ===================================================================
# load_settings - precedence tiers
# ===================================================================


class TestLoadSettings:

    def test_defaults(self, env_clean: None) -> None:
        assert load_settings() == DEFAULTS

    def test_reads_file(self, env_clean: None, sample_config_file: Path) -> None:
        settings = load_settings(config_path=str(sample_config_file))
        assert settings == {
            "host": "voron.local",
            "port": 7200,
            "api_key": "FILEKEY",
            "timeout": 15,
            "retries": 2,
        }

    def test_partial_file_keeps_defaults(self, env_clean: None, tmp_path: Path) -> None:
        path = tmp_path / "partial.yaml"
        path.write_text("host: printer.lan\n", encoding="utf-8")
        settings = load_settings(config_path=str(path))
        assert settings["host"] == "printer.lan"
        assert settings["port"] == 7125
        assert settings["timeout"] == 10

    def test_env_overrides_file(
        self, env_clean: None, sample_config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("MOONRAKER_HOST", "env.local")
        monkeypatch.setenv("MOONRAKER_PORT", "8080")
        monkeypatch.setenv("MOONRAKER_TIMEOUT", "30")
        settings = load_settings(config_path=str(sample_config_file))
        assert settings["host"] == "env.local"
        assert settings["port"] == 8080
        assert settings["timeout"] == 30
        assert settings["api_key"] == "FILEKEY"

    def test_empty_env_ignored(self, env_clean: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOONRAKER_HOST", "")
        assert load_settings()["host"] == "localhost"

    def test_arguments_override_env(self, env_clean: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOONRAKER_HOST", "env.local")
        monkeypatch.setenv("MOONRAKER_API_KEY", "ENVKEY")
        settings = load_settings(host="cli.local", port=9000, api_key="CLIKEY")
        assert settings["host"] == "cli.local"
        assert settings["port"] == 9000
        assert settings["api_key"] == "CLIKEY"

    def test_env_config_path(
        self, env_clean: None, sample_config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("KLIPPER_MCP_CONFIG", str(sample_config_file))
        assert load_settings()["host"] == "voron.local"

    def test_host_stripped(self, env_clean: None) -> None:
        assert load_settings(host="  voron.local  ")["host"] == "voron.local"

    def test_fractional_timeout(self, env_clean: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOONRAKER_TIMEOUT", "2.5")
        settings = load_settings()
        assert settings["timeout"] == 2.5
        assert validate_settings(settings) == (True, None)

    def test_non_numeric_timeout(self, env_clean: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOONRAKER_TIMEOUT", "soon")
        with pytest.raises(ValueError, match="timeout must be a number"):
            load_settings()

    def test_non_numeric_port(self, env_clean: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOONRAKER_PORT", "seventy")
        with pytest.raises(ValueError, match="port must be an integer"):
            load_settings()

    def test_invalid_yaml_ignored(self, env_clean: None, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("host: [unclosed\n", encoding="utf-8")
        assert load_settings(config_path=str(path)) == DEFAULTS

    def test_non_mapping_yaml_ignored(self, env_clean: None, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        assert load_settings(config_path=str(path)) == DEFAULTS


# ===================================================================
# validate_settings
# ===================================================================


class TestValidateSettings:

    def _settings(self, **overrides: object) -> dict:
        settings = dict(DEFAULTS)
        settings.update(overrides)
        return settings

    def test_defaults_valid(self) -> None:
        assert validate_settings(self._settings()) == (True, None)

    def test_empty_host(self) -> None:
        assert validate_settings(self._settings(host="")) == (False, "host is required")

    def test_host_with_space(self) -> None:
        ok, err = validate_settings(self._settings(host="my printer"))
        assert ok is False
        assert "whitespace" in err

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_port_out_of_range(self, port: int) -> None:
        ok, err = validate_settings(self._settings(port=port))
        assert ok is False
        assert err == "port must be between 1 and 65535"

    @pytest.mark.parametrize("timeout", [0, 0.0, -2.5])
    def test_non_positive_timeout(self, timeout: float) -> None:
        ok, err = validate_settings(self._settings(timeout=timeout))
        assert ok is False
        assert err == "timeout must be a positive number"

    def test_fractional_timeout_valid(self) -> None:
        assert validate_settings(self._settings(timeout=0.5)) == (True, None)

    def test_non_positive_retries(self) -> None:
        ok, err = validate_settings(self._settings(retries=0))
        assert ok is False
        assert err == "retries must be a positive integer"
