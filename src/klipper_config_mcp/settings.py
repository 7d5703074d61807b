"""Connection settings for the Moonraker host.

Precedence (highest first):
    1. Explicit arguments (e.g. CLI flags)
    2. Environment variables (``MOONRAKER_HOST``, ``MOONRAKER_PORT``,
       ``MOONRAKER_API_KEY``, ``MOONRAKER_TIMEOUT``)
    3. YAML config file (``KLIPPER_MCP_CONFIG`` or
       ``~/.klipper-config-mcp/config.yaml``)
    4. Built-in defaults
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, object] = {
    "host": "localhost",
    "port": 7125,
    "api_key": "",
    "timeout": 10,
    "retries": 3,
}

_KEYS: tuple[str, ...] = tuple(DEFAULTS)

_ENV_VARS: dict[str, str] = {
    "host": "MOONRAKER_HOST",
    "port": "MOONRAKER_PORT",
    "api_key": "MOONRAKER_API_KEY",
    "timeout": "MOONRAKER_TIMEOUT",
}


def get_default_config_path() -> Path:
    """Return the config file path, honouring ``KLIPPER_MCP_CONFIG``."""
    override = os.environ.get("KLIPPER_MCP_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".klipper-config-mcp" / "config.yaml"


def _load_config_file(config_path: Path) -> dict[str, object]:
    """Read and parse a YAML config file, returning an empty dict on any failure."""
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if isinstance(data, dict):
            return data
        return {}
    except (yaml.YAMLError, OSError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", config_path, exc)
        return {}


def load_settings(
    host: str | None = None,
    port: int | None = None,
    api_key: str | None = None,
    config_path: str | None = None,
) -> dict[str, object]:
    """Resolve settings using the precedence described in the module docstring.

    Returns a dict with keys ``host``, ``port``, ``api_key``, ``timeout``
    and ``retries``.

    Raises:
        ValueError: If a numeric setting cannot be converted to an int.
    """
    settings: dict[str, object] = dict(DEFAULTS)

    path = Path(config_path) if config_path else get_default_config_path()
    file_values = _load_config_file(path)
    for key in _KEYS:
        if file_values.get(key) is not None:
            settings[key] = file_values[key]

    for key, env_name in _ENV_VARS.items():
        value = os.environ.get(env_name)
        if value:
            settings[key] = value

    if host is not None:
        settings["host"] = host
    if port is not None:
        settings["port"] = port
    if api_key is not None:
        settings["api_key"] = api_key

    settings["host"] = str(settings["host"]).strip()
    settings["api_key"] = str(settings["api_key"] or "")
    for key in ("port", "retries"):
        try:
            settings[key] = int(settings[key])  # type: ignore[call-overload]
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{key} must be an integer, got {settings[key]!r}") from exc
    try:
        settings["timeout"] = float(settings["timeout"])  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"timeout must be a number, got {settings['timeout']!r}") from exc

    return settings


def validate_settings(settings: dict[str, object]) -> tuple[bool, str | None]:
    """Validate resolved settings.

    Returns ``(True, None)`` when valid, or ``(False, error_message)``
    describing the first problem found.
    """
    host = settings.get("host", "")
    if not isinstance(host, str) or not host:
        return False, "host is required"
    if any(ch.isspace() for ch in host):
        return False, "host must not contain whitespace"

    port = settings.get("port")
    if not isinstance(port, int) or not 1 <= port <= 65535:
        return False, "port must be between 1 and 65535"

    timeout = settings.get("timeout")
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or not timeout > 0:
        return False, "timeout must be a positive number"

    retries = settings.get("retries")
    if not isinstance(retries, int) or retries < 1:
        return False, "retries must be a positive integer"

    return True, None
