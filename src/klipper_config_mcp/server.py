"""Klipper config MCP server -- lets AI agents read a printer's configuration.

Provides a Model Context Protocol (MCP) server whose tools fetch Klipper
configuration files through Moonraker, parse them into sections and
typed parameters, and report syntax problems.  Printer status and host
system information are available read-only.

Environment variables
---------------------
``MOONRAKER_HOST``
    Hostname or IP of the Moonraker host (default ``localhost``).
``MOONRAKER_PORT``
    Moonraker port (default ``7125``).
``MOONRAKER_API_KEY``
    Optional API key sent as ``X-Api-Key``.
``MOONRAKER_TIMEOUT``
    Per-request timeout in seconds (default ``10``).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from klipper_config_mcp.config_parser import (
    get_section,
    get_section_names,
    get_sections_by_prefix,
    parse_config as _parse_config,
)
from klipper_config_mcp.moonraker import (
    AccessDeniedError,
    ConfigFileNotFoundError,
    KlipperNotReadyError,
    MoonrakerClient,
    MoonrakerError,
    MoonrakerUnreachableError,
)
from klipper_config_mcp.output import (
    format_file_list,
    format_parse_result,
    format_printer_status,
    format_section,
)
from klipper_config_mcp.settings import load_settings, validate_settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# MCP server instance
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "klipper-config",
    instructions=(
        "Read-only access to a Klipper 3D printer's configuration through "
        "Moonraker.  Use `list_config_files` to see what exists, "
        "`parse_config` to get every section with typed values and any "
        "syntax errors, and `get_config_section` for a single section "
        "such as `extruder` or `stepper_x`.  `validate_config` reports "
        "problems only.  `get_printer_status` and `get_system_info` "
        "describe the printer and its host."
    ),
)

# ---------------------------------------------------------------------------
# Moonraker client singleton
# ---------------------------------------------------------------------------

_client: Optional[MoonrakerClient] = None


def _get_client() -> MoonrakerClient:
    """Return the lazily-initialised Moonraker client.

    Created on first use so the module can be imported without a
    reachable printer or any environment configured.

    Raises:
        RuntimeError: If the resolved settings are invalid.
    """
    global _client  # noqa: PLW0603

    if _client is not None:
        return _client

    try:
        settings = load_settings()
    except ValueError as exc:
        raise RuntimeError(f"Configuration error: {exc}") from exc
    ok, err = validate_settings(settings)
    if not ok:
        raise RuntimeError(f"Configuration error: {err}")

    _client = MoonrakerClient(
        host=str(settings["host"]),
        port=int(settings["port"]),  # type: ignore[call-overload]
        api_key=str(settings["api_key"]) or None,
        timeout=float(settings["timeout"]),  # type: ignore[arg-type]
        retries=int(settings["retries"]),  # type: ignore[call-overload]
    )
    logger.info("Initialised Moonraker client for %s", _client.connection_info())
    return _client


def _error_dict(message: str, code: str = "ERROR") -> Dict[str, Any]:
    """Build a standardised error response dict."""
    return {"success": False, "error": {"code": code, "message": message}}


def _moonraker_error(exc: MoonrakerError) -> Dict[str, Any]:
    """Map a client exception onto an error response with a stable code."""
    if isinstance(exc, ConfigFileNotFoundError):
        return _error_dict(str(exc), code="NOT_FOUND")
    if isinstance(exc, AccessDeniedError):
        return _error_dict(str(exc), code="ACCESS_DENIED")
    if isinstance(exc, MoonrakerUnreachableError):
        return _error_dict(str(exc), code="UNREACHABLE")
    if isinstance(exc, KlipperNotReadyError):
        return _error_dict(str(exc), code="NOT_READY")
    return _error_dict(str(exc))


def _require(value: Optional[str], label: str) -> Optional[Dict[str, Any]]:
    if not value or not value.strip():
        return _error_dict(f"{label} is required", code="INVALID_PARAMS")
    return None


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp.tool()
def get_config_file(filename: str) -> dict:
    """Retrieve the raw contents of a Klipper configuration file.

    Args:
        filename: Name of the file in the config root, e.g. ``printer.cfg``
            or ``macros/start.cfg``.
    """
    if err := _require(filename, "Filename"):
        return err
    try:
        client = _get_client()
        content = client.get_config_file(filename)
        return {
            "success": True,
            "filename": filename,
            "connection": client.connection_info(),
            "content": content,
        }
    except MoonrakerError as exc:
        return _moonraker_error(exc)
    except RuntimeError as exc:
        return _error_dict(str(exc))
    except Exception as exc:
        logger.exception("Unexpected error in get_config_file")
        return _error_dict(f"Unexpected error: {exc}", code="INTERNAL_ERROR")


@mcp.tool()
def list_config_files(pattern: str | None = None) -> dict:
    """List Klipper configuration files.

    Args:
        pattern: Optional filter; ``*`` matches any run of characters and
            the match is case-insensitive (e.g. ``*.cfg`` or ``macro*``).
    """
    try:
        client = _get_client()
        files = client.list_config_files(pattern)
        return {
            "success": True,
            "connection": client.connection_info(),
            "files": [f.to_dict() for f in files],
            "count": len(files),
            "text": format_file_list(files, pattern),
        }
    except MoonrakerError as exc:
        return _moonraker_error(exc)
    except RuntimeError as exc:
        return _error_dict(str(exc))
    except Exception as exc:
        logger.exception("Unexpected error in list_config_files")
        return _error_dict(f"Unexpected error: {exc}", code="INTERNAL_ERROR")


@mcp.tool()
def parse_config(filename: str, include_includes: bool = True) -> dict:
    """Parse a Klipper configuration file into sections and typed values.

    Returns every section with its parameters (booleans, numbers, strings
    and comma-separated lists are recognised), the ``[include ...]`` files
    it references, and any syntax errors as ``Line N: ...`` strings.

    Args:
        filename: Name of the configuration file to parse.
        include_includes: Whether to report ``[include ...]`` references.
    """
    if err := _require(filename, "Filename"):
        return err
    try:
        client = _get_client()
        result = _parse_config(client.get_config_file(filename), validate_syntax=True)
        data = result.to_dict()
        if not include_includes:
            data["includes"] = []
        return {
            "success": True,
            "filename": filename,
            "connection": client.connection_info(),
            **data,
            "text": format_parse_result(filename, result, show_includes=include_includes),
        }
    except MoonrakerError as exc:
        return _moonraker_error(exc)
    except RuntimeError as exc:
        return _error_dict(str(exc))
    except Exception as exc:
        logger.exception("Unexpected error in parse_config")
        return _error_dict(f"Unexpected error: {exc}", code="INTERNAL_ERROR")


@mcp.tool()
def get_config_section(filename: str, section_name: str) -> dict:
    """Get one section from a Klipper configuration file.

    Args:
        filename: Name of the configuration file.
        section_name: Exact section name, e.g. ``extruder``, ``stepper_x``
            or ``gcode_macro PRINT_START``.
    """
    if err := _require(filename, "Filename") or _require(section_name, "Section name"):
        return err
    try:
        client = _get_client()
        result = _parse_config(client.get_config_file(filename))
        section = get_section(result.config, section_name)
        if section is None:
            available = list(result.config)
            error = _error_dict(
                f"Section {section_name!r} not found in {filename}. "
                f"Available sections: {', '.join(available)}",
                code="NOT_FOUND",
            )
            error["available_sections"] = available
            return error
        return {
            "success": True,
            "filename": filename,
            "section": section_name,
            "parameters": {key: value.to_python() for key, value in section.items()},
            "text": format_section(section_name, section),
        }
    except MoonrakerError as exc:
        return _moonraker_error(exc)
    except RuntimeError as exc:
        return _error_dict(str(exc))
    except Exception as exc:
        logger.exception("Unexpected error in get_config_section")
        return _error_dict(f"Unexpected error: {exc}", code="INTERNAL_ERROR")


@mcp.tool()
def list_config_sections(filename: str, prefix: str | None = None) -> dict:
    """List the section names in a configuration file, sorted.

    Args:
        filename: Name of the configuration file.
        prefix: Only list sections starting with this text, e.g.
            ``gcode_macro`` or ``stepper_``.
    """
    if err := _require(filename, "Filename"):
        return err
    try:
        client = _get_client()
        result = _parse_config(client.get_config_file(filename), validate_syntax=False)
        config = get_sections_by_prefix(result.config, prefix) if prefix else result.config
        names = get_section_names(config)
        return {"success": True, "filename": filename, "sections": names, "count": len(names)}
    except MoonrakerError as exc:
        return _moonraker_error(exc)
    except RuntimeError as exc:
        return _error_dict(str(exc))
    except Exception as exc:
        logger.exception("Unexpected error in list_config_sections")
        return _error_dict(f"Unexpected error: {exc}", code="INTERNAL_ERROR")


@mcp.tool()
def validate_config(filename: str) -> dict:
    """Check a configuration file for syntax problems without returning its contents.

    Args:
        filename: Name of the configuration file.
    """
    if err := _require(filename, "Filename"):
        return err
    try:
        client = _get_client()
        result = _parse_config(client.get_config_file(filename), validate_syntax=True)
        return {
            "success": True,
            "filename": filename,
            "is_valid": result.is_valid,
            "errors": [str(e) for e in result.errors],
        }
    except MoonrakerError as exc:
        return _moonraker_error(exc)
    except RuntimeError as exc:
        return _error_dict(str(exc))
    except Exception as exc:
        logger.exception("Unexpected error in validate_config")
        return _error_dict(f"Unexpected error: {exc}", code="INTERNAL_ERROR")


@mcp.tool()
def get_printer_status() -> dict:
    """Get the current print job state from Klipper's ``print_stats``."""
    try:
        client = _get_client()
        stats = client.get_printer_status()
        return {
            "success": True,
            "connection": client.connection_info(),
            "status": stats.to_dict(),
            "text": format_printer_status(stats),
        }
    except MoonrakerError as exc:
        return _moonraker_error(exc)
    except RuntimeError as exc:
        return _error_dict(str(exc))
    except Exception as exc:
        logger.exception("Unexpected error in get_printer_status")
        return _error_dict(f"Unexpected error: {exc}", code="INTERNAL_ERROR")


@mcp.tool()
def get_system_info() -> dict:
    """Get system information (CPU, OS, services, network) from the printer host."""
    try:
        client = _get_client()
        return {
            "success": True,
            "connection": client.connection_info(),
            "system_info": client.get_system_info(),
        }
    except MoonrakerError as exc:
        return _moonraker_error(exc)
    except RuntimeError as exc:
        return _error_dict(str(exc))
    except Exception as exc:
        logger.exception("Unexpected error in get_system_info")
        return _error_dict(f"Unexpected error: {exc}", code="INTERNAL_ERROR")


# ---------------------------------------------------------------------------
# MCP Prompt templates
# ---------------------------------------------------------------------------


@mcp.prompt()
def config_review_workflow() -> str:
    """Step-by-step guide for reviewing a printer's Klipper configuration."""
    return (
        "To review a Klipper configuration:\n\n"
        "1. Call `list_config_files` to see which files exist\n"
        "2. Call `validate_config` on `printer.cfg` to find syntax problems\n"
        "3. Call `parse_config` on `printer.cfg` and note its include files\n"
        "4. Repeat `parse_config` for each included file\n"
        "5. Use `get_config_section` to look closely at `extruder`, "
        "`heater_bed` and the `stepper_*` sections\n\n"
        "Includes are reported but not merged, so a section may be defined "
        "in a file other than the one you parsed."
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
