"""Rich terminal rendering for the CLI.

The MCP tools and anything piped or redirected use the plain renderers in
:mod:`klipper_config_mcp.output`.  When the CLI writes to a terminal it
uses these instead: one table per section, an include panel and a
highlighted diagnostics list.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from io import StringIO
from typing import Any

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from klipper_config_mcp.config_parser import ConfigValue, Diagnostic, ParseResult


def _render(renderable: Any) -> str:
    """Render a Rich object to a string (with ANSI codes)."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=True, width=100)
    console.print(renderable)
    return buf.getvalue().rstrip("\n")


def _diagnostic_text(errors: Iterable[Diagnostic]) -> Text:
    text = Text()
    for i, diag in enumerate(errors):
        if i:
            text.append("\n")
        if diag.line is None:
            text.append("Parse error", style="bold red")
        else:
            text.append(f"Line {diag.line}", style="bold red")
        text.append(f": {diag.message}")
    return text


def _section_table(name: str, section: Mapping[str, ConfigValue]) -> Table:
    table = Table(title=Text(f"[{name}]", style="bold"), title_justify="left", border_style="blue")
    table.add_column("Parameter", style="bold cyan", no_wrap=True)
    table.add_column("Value")
    table.add_column("Type", style="dim")
    for key, value in section.items():
        table.add_row(Text(key), Text(value.render()), value.kind.value)
    return table


def render_parse_result(filename: str, result: ParseResult, *, show_includes: bool = True) -> str:
    """Errors panel, includes panel, then a table per section."""
    parts: list[Any] = [Text(f"Parsed configuration file: {filename}", style="bold")]

    if result.errors:
        parts.append(Panel(_diagnostic_text(result.errors), title="Parsing errors", border_style="red"))

    if show_includes and result.includes:
        includes = Text("\n".join(f"- {inc}" for inc in result.includes))
        parts.append(Panel(includes, title="Include files", border_style="yellow"))

    if not result.config:
        parts.append(Text("No sections", style="yellow"))
    for name, section in result.config.items():
        parts.append(_section_table(name, section))

    return _render(Group(*parts))


def render_section_names(config: Mapping[str, Mapping[str, ConfigValue]]) -> str:
    """Sorted section names with their parameter counts."""
    if not config:
        return _render(Panel("No sections found.", title="Sections", border_style="yellow"))
    table = Table(title="Sections", border_style="blue")
    table.add_column("Section", style="bold")
    table.add_column("Parameters", justify="right")
    for name in sorted(config):
        table.add_row(Text(name), str(len(config[name])))
    return _render(table)


def render_validation(path: str, result: ParseResult) -> str:
    """Green OK line, or a red panel listing every diagnostic."""
    if result.is_valid:
        return _render(Text(f"{path}: OK", style="bold green"))
    count = len(result.errors)
    title = Text(f"{path}: {count} problem{'s' if count != 1 else ''}")
    return _render(Panel(_diagnostic_text(result.errors), title=title, border_style="red"))
