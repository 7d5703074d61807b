"""Plain-text rendering of parse results, sections, and printer data.

Used by the MCP tools (as the ``text`` field of each response) and by the
CLI.  List values are joined with ``", "`` and diagnostics keep their
``Line N:`` prefix.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from klipper_config_mcp.config_parser import ConfigValue, Diagnostic, ParseResult
from klipper_config_mcp.moonraker import ConfigFile, PrintStats


def format_diagnostics(errors: Iterable[Diagnostic]) -> str:
    """One diagnostic per line."""
    return "\n".join(str(e) for e in errors)


def format_section(name: str, section: Mapping[str, ConfigValue], *, indent: str = "") -> str:
    """Render ``[name]`` followed by one ``key: value`` line per parameter."""
    lines = [f"[{name}]"]
    for key, value in section.items():
        lines.append(f"{indent}{key}: {value.render()}")
    return "\n".join(lines)


def format_parse_result(filename: str, result: ParseResult, *, show_includes: bool = True) -> str:
    """Render a full parse result: errors, includes, then every section."""
    parts = [f"Parsed configuration file: {filename}"]

    if result.errors:
        parts.append(f"Parsing errors found:\n{format_diagnostics(result.errors)}")

    if show_includes and result.includes:
        parts.append("Include files:\n" + "\n".join(f"- {inc}" for inc in result.includes))

    sections = [
        format_section(name, section, indent="  ")
        for name, section in result.config.items()
    ]
    parts.append("Configuration sections:" + "".join(f"\n\n{s}" for s in sections))
    return "\n\n".join(parts)


def format_file_list(files: Iterable[ConfigFile], pattern: str | None = None) -> str:
    """Render config files as ``path (size KB, modified: ISO-8601)`` lines."""
    header = "Configuration files"
    if pattern:
        header += f' matching "{pattern}"'
    lines = []
    for f in files:
        modified = datetime.fromtimestamp(f.modified, tz=timezone.utc).isoformat()
        lines.append(f"{f.path} ({f.size / 1024:.1f}KB, modified: {modified})")
    return f"{header}:\n\n" + ("\n".join(lines) or "No files found")


def _fmt(value: float | None, digits: int) -> str:
    if value is None:
        return "N/A"
    return f"{value:.{digits}f}"


def format_printer_status(stats: PrintStats) -> str:
    """Render ``print_stats`` as a short status block."""
    lines = [
        f"State: {stats.state}",
        f"Message: {stats.message or 'No message'}",
        f"Filename: {stats.filename or 'No file'}",
        f"Print Duration: {_fmt(stats.print_duration, 1)}s",
        f"Total Duration: {_fmt(stats.total_duration, 1)}s",
        f"Filament Used: {_fmt(stats.filament_used, 2)}mm",
    ]
    if stats.current_layer is not None and stats.total_layer is not None:
        lines.append(f"Layer: {stats.current_layer}/{stats.total_layer}")
    return "\n".join(lines)
