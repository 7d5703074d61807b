"""klipper-config-mcp -- read, parse and check Klipper printer configuration.

Re-exports the parser API so consumers can write::

    from klipper_config_mcp import parse_config, ConfigValue
"""

from __future__ import annotations

from klipper_config_mcp.config_parser import (
    ConfigDocument,
    ConfigValue,
    Diagnostic,
    ParseResult,
    ValueKind,
    extract_includes,
    format_config,
    get_parameter_value,
    get_section,
    get_section_names,
    get_sections_by_prefix,
    parse_config,
    validate_config_syntax,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigDocument",
    "ConfigValue",
    "Diagnostic",
    "ParseResult",
    "ValueKind",
    "extract_includes",
    "format_config",
    "get_parameter_value",
    "get_section",
    "get_section_names",
    "get_sections_by_prefix",
    "parse_config",
    "validate_config_syntax",
]
