"""klipper-config-mcp command line.

Usage:
    klipper-config-mcp serve [--log-level LEVEL]
    klipper-config-mcp parse <path> [--no-validate] [--no-includes] [--json]
    klipper-config-mcp sections <path> [--prefix PREFIX] [--json]
    klipper-config-mcp validate <path> [--json]
    klipper-config-mcp format <path>

The file commands read local files, which is handy for linting a config
before copying it to the printer.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from klipper_config_mcp.config_parser import (
    ParseResult,
    format_config,
    get_section_names,
    get_sections_by_prefix,
    parse_config,
)
from klipper_config_mcp.cli_output import (
    render_parse_result,
    render_section_names,
    render_validation,
)
from klipper_config_mcp.log_config import configure_logging
from klipper_config_mcp.output import format_diagnostics, format_parse_result

SUCCESS = 0
INVALID_CONFIG = 1
FILE_ERROR = 2


def _emit(output: str, exit_code: int = SUCCESS) -> None:
    """Print output and exit with the given code."""
    click.echo(output)
    sys.exit(exit_code)


def _use_rich() -> bool:
    """Tables and colour for a terminal; plain text for pipes and files."""
    return sys.stdout.isatty()


def _read(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        click.echo(f"Error: cannot read {path}: {exc}", err=True)
        sys.exit(FILE_ERROR)


def _parse_file(path: str, validate: bool = True) -> ParseResult:
    return parse_config(_read(path), validate_syntax=validate)


@click.group()
@click.version_option(package_name="klipper-config-mcp")
def cli() -> None:
    """Inspect Klipper configuration files, locally or over MCP."""


@cli.command()
@click.option("--log-level", default=None, help="Log level (default from KLIPPER_MCP_LOG_LEVEL or INFO).")
@click.option("--log-dir", default=None, type=click.Path(file_okay=False), help="Also log to a rotating file here.")
def serve(log_level: str | None, log_dir: str | None) -> None:
    """Run the MCP server over stdio."""
    configure_logging(log_dir, level=log_level)
    from klipper_config_mcp.server import main as server_main

    server_main()


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--no-validate", is_flag=True, default=False, help="Skip syntax checks.")
@click.option("--no-includes", is_flag=True, default=False, help="Omit the include list.")
@click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")
def parse(path: str, no_validate: bool, no_includes: bool, json_mode: bool) -> None:
    """Parse a configuration file and print its sections."""
    result = _parse_file(path, validate=not no_validate)
    if json_mode:
        data = result.to_dict()
        if no_includes:
            data["includes"] = []
        _emit(json.dumps(data, indent=2))
    if _use_rich():
        _emit(render_parse_result(path, result, show_includes=not no_includes))
    _emit(format_parse_result(path, result, show_includes=not no_includes))


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--prefix", default=None, help="Only sections starting with this text.")
@click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")
def sections(path: str, prefix: str | None, json_mode: bool) -> None:
    """List section names, sorted."""
    config = _parse_file(path, validate=False).config
    if prefix:
        config = get_sections_by_prefix(config, prefix)
    names = get_section_names(config)
    if json_mode:
        _emit(json.dumps(names))
    if _use_rich():
        _emit(render_section_names(config))
    _emit("\n".join(names))


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")
def validate(path: str, json_mode: bool) -> None:
    """Check a configuration file; exits 1 when problems are found."""
    result = _parse_file(path)
    exit_code = SUCCESS if result.is_valid else INVALID_CONFIG
    if json_mode:
        _emit(
            json.dumps({"is_valid": result.is_valid, "errors": [str(e) for e in result.errors]}),
            exit_code,
        )
    if _use_rich():
        _emit(render_validation(path, result), exit_code)
    if result.is_valid:
        _emit(f"{path}: OK")
    _emit(format_diagnostics(result.errors), exit_code)


@cli.command("format")
@click.argument("path", type=click.Path(dir_okay=False))
def format_cmd(path: str) -> None:
    """Print the file in normalised form (comments are dropped)."""
    result = _parse_file(path, validate=False)
    _emit(format_config(result.config, result.includes))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
