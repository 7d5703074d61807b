"""Klipper configuration parser.

Turns the text of a Klipper ``printer.cfg`` (or any file it includes) into
a structured :class:`ConfigDocument`, collecting ``[include ...]``
references and line-tagged diagnostics along the way.

The parser never raises for malformed input.  Every problem becomes a
:class:`Diagnostic` and the scan continues, so callers always get back a
(possibly partial) document.

Recognised syntax
-----------------
- ``[section name]`` headers
- ``key: value`` and ``key = value`` pairs
- ``#`` comment lines and blank lines
- a trailing ``\\`` joins the next physical line onto the current one
- ``[include path.cfg]`` directives (extracted, never resolved)

Usage::

    from klipper_config_mcp.config_parser import parse_config

    result = parse_config(open("printer.cfg").read())
    for diag in result.errors:
        print(diag)
    nozzle = result.config["extruder"]["nozzle_diameter"].to_python()
"""

from __future__ import annotations

import enum
import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterator, Optional, Union

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_INCLUDE_RE = re.compile(r"\[include\s+(.*?)\]")
_SECTION_RE = re.compile(r"^\[([^\]]+)\]\s*$")
_COMMENT_RE = re.compile(r"^\s*#")
_CONTINUATION_RE = re.compile(r"\\\s*$")
_KEY_VALUE_RE = re.compile(r"^([^:=]+)[:=]\s*(.*)$")
_PIN_RE = re.compile(r"^!?[A-Za-z]+\d+$", re.ASCII)

# Plain ASCII decimal literals only: no hex, no underscores, no inf/nan.
_INT_RE = re.compile(r"^[+-]?\d+$", re.ASCII)
_DECIMAL_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$", re.ASCII)

# Section families whose names legitimately contain a space, e.g.
# ``[gcode_macro PRINT_START]`` or ``[temperature_sensor chamber]``.
_MULTI_WORD_PREFIXES: tuple[str, ...] = (
    "stepper_",
    "extruder",
    "heater_",
    "fan",
    "output_pin",
    "gcode_macro",
    "temperature_sensor",
    "filament_switch_sensor",
    "bed_mesh",
    "safe_z_home",
    "z_tilt",
    "quad_gantry_level",
    "screws_tilt_adjust",
    "bed_screws",
    "display",
    "menu",
    "delayed_gcode",
    "save_variables",
    "idle_timeout",
    "respond",
    "pause_resume",
    "firmware_retraction",
    "gcode_arcs",
    "exclude_object",
    "virtual_sdcard",
    "duplicate_pin_override",
)


# ---------------------------------------------------------------------------
# Value model
# ---------------------------------------------------------------------------


class ValueKind(enum.Enum):
    """Type tag of a :class:`ConfigValue`."""

    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    LIST = "list"


Payload = Union[bool, int, float, str, tuple["ConfigValue", ...]]


@dataclass(frozen=True)
class ConfigValue:
    """A typed parameter value inferred from its raw text.

    Attributes:
        kind: Which variant this value is.
        data: The payload.  ``bool`` for BOOLEAN, ``int`` or ``float`` for
            NUMBER, ``str`` for STRING and a tuple of :class:`ConfigValue`
            for LIST.
    """

    kind: ValueKind
    data: Payload

    @classmethod
    def boolean(cls, value: bool) -> ConfigValue:
        return cls(ValueKind.BOOLEAN, bool(value))

    @classmethod
    def number(cls, value: int | float) -> ConfigValue:
        return cls(ValueKind.NUMBER, value)

    @classmethod
    def string(cls, value: str) -> ConfigValue:
        return cls(ValueKind.STRING, value)

    @classmethod
    def list_of(cls, items: Iterable[ConfigValue]) -> ConfigValue:
        return cls(ValueKind.LIST, tuple(items))

    @classmethod
    def infer(cls, text: str) -> ConfigValue:
        """Infer a value from already-trimmed *text*.

        Order matters: booleans, then numbers, then comma lists, and
        everything else (including ``""``) stays a string.
        """
        if text == "":
            return cls.string("")

        lowered = text.lower()
        if lowered == "true":
            return cls.boolean(True)
        if lowered == "false":
            return cls.boolean(False)

        number = parse_number(text)
        if number is not None:
            return cls.number(number)

        if "," in text:
            return cls.list_of(cls.infer(part.strip()) for part in text.split(","))

        return cls.string(text)

    def to_python(self) -> Any:
        """Return the plain Python payload (lists become ``list``)."""
        if self.kind is ValueKind.LIST:
            return [item.to_python() for item in self.data]  # type: ignore[union-attr]
        return self.data

    def render(self) -> str:
        """Return the value as config-file text."""
        if self.kind is ValueKind.BOOLEAN:
            return "true" if self.data else "false"
        if self.kind is ValueKind.NUMBER:
            return repr(self.data)
        if self.kind is ValueKind.LIST:
            return ", ".join(item.render() for item in self.data)  # type: ignore[union-attr]
        return str(self.data)

    def __str__(self) -> str:
        return self.render()


def parse_number(text: str) -> Optional[Union[int, float]]:
    """Return *text* as a finite number, or ``None`` if it is not one."""
    text = text.strip()
    if _INT_RE.match(text):
        return int(text)
    if _DECIMAL_RE.match(text):
        value = float(text)
        if math.isfinite(value):
            return value
    return None


# ---------------------------------------------------------------------------
# Document model
# ---------------------------------------------------------------------------

Section = Mapping[str, ConfigValue]


class ConfigDocument(Mapping[str, Section]):
    """Read-only, insertion-ordered mapping of section name to section."""

    def __init__(self, sections: Optional[Mapping[str, Mapping[str, ConfigValue]]] = None) -> None:
        self._sections: dict[str, Section] = {
            name: MappingProxyType(dict(params))
            for name, params in (sections or {}).items()
        }

    def __getitem__(self, name: str) -> Section:
        return self._sections[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._sections)

    def __len__(self) -> int:
        return len(self._sections)

    def __repr__(self) -> str:
        return f"ConfigDocument({list(self._sections)!r})"

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Return a JSON-serialisable dictionary of plain Python values."""
        return {
            name: {key: value.to_python() for key, value in params.items()}
            for name, params in self._sections.items()
        }


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem found while parsing.

    ``line`` is 1-based.  Only the catch-all fatal diagnostic has no line.
    """

    line: Optional[int]
    message: str

    def __str__(self) -> str:
        if self.line is None:
            return f"Parse error: {self.message}"
        return f"Line {self.line}: {self.message}"


@dataclass
class ParseResult:
    """Outcome of :func:`parse_config`."""

    config: ConfigDocument = field(default_factory=ConfigDocument)
    includes: list[str] = field(default_factory=list)
    errors: list[Diagnostic] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary.

        Diagnostics are rendered to their ``Line N: ...`` string form.
        """
        return {
            "config": self.config.to_dict(),
            "includes": list(self.includes),
            "errors": [str(e) for e in self.errors],
        }


# ---------------------------------------------------------------------------
# Validation rules
# ---------------------------------------------------------------------------


def _check_pin(key: str, value: str) -> Optional[str]:
    if not _PIN_RE.match(value):
        return f"Invalid pin format for {key}: {value}"
    return None


def _check_positive(key: str, value: str) -> Optional[str]:
    number = parse_number(value)
    if number is None or number <= 0:
        return f"Invalid {key}: must be positive number, got {value}"
    return None


def _check_max_temp(key: str, value: str) -> Optional[str]:
    number = parse_number(value)
    if number is None or number < 0 or number > 500:
        return f"Invalid {key}: must be between 0-500, got {value}"
    return None


Rule = Callable[[str, str], Optional[str]]

_STEPPER_RULES: dict[str, Rule] = {
    "step_pin": _check_pin,
    "dir_pin": _check_pin,
    "enable_pin": _check_pin,
    "rotation_distance": _check_positive,
}

# section -> key -> rule.  Pairs not listed here are never checked.
_PARAMETER_RULES: dict[str, dict[str, Rule]] = {
    "stepper_x": _STEPPER_RULES,
    "stepper_y": _STEPPER_RULES,
    "stepper_z": _STEPPER_RULES,
    "extruder": {
        "nozzle_diameter": _check_positive,
        "max_temp": _check_max_temp,
    },
}


def validate_section_name(name: str) -> Optional[str]:
    """Return an error message for a bad section name, else ``None``."""
    if not name or not name.strip():
        return "Empty section name"
    if " " in name and not name.startswith(_MULTI_WORD_PREFIXES):
        return f'Invalid section name: "{name}"'
    return None


def validate_parameter(section: str, key: str, value: str) -> Optional[str]:
    """Check *value* (raw text) against the rule for ``(section, key)``."""
    rule = _PARAMETER_RULES.get(section, {}).get(key)
    if rule is None:
        return None
    return rule(key, value)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_includes(content: str) -> tuple[str, list[str]]:
    """Pull ``[include ...]`` lines out of *content*.

    Include lines are replaced by empty lines so that line numbers in the
    cleaned text still match the source.

    Returns:
        ``(cleaned_content, includes)`` with includes in source order.
    """
    includes: list[str] = []
    lines = content.replace("\r\n", "\n").split("\n")

    for index, line in enumerate(lines):
        match = _INCLUDE_RE.fullmatch(line.rstrip())
        if match is None:
            continue
        path = match.group(1).strip()
        if path:
            includes.append(path)
        lines[index] = ""

    return "\n".join(lines), includes


def _commit(sections: dict[str, dict[str, ConfigValue]], name: str, data: dict[str, ConfigValue]) -> None:
    # A re-opened section replaces the earlier one and moves to the end.
    sections.pop(name, None)
    sections[name] = data


def _scan(content: str, validate: bool, errors: list[Diagnostic]) -> dict[str, dict[str, ConfigValue]]:
    lines = content.split("\n")
    sections: dict[str, dict[str, ConfigValue]] = {}
    current: Optional[str] = None
    current_data: dict[str, ConfigValue] = {}

    def report(line_no: int, message: str) -> None:
        if validate:
            errors.append(Diagnostic(line_no, message))

    for index in range(len(lines)):
        line_no = index + 1
        line = lines[index]

        if not line.strip() or _COMMENT_RE.match(line):
            continue

        follow = index + 1
        while _CONTINUATION_RE.search(line):
            line = _CONTINUATION_RE.sub("", line).rstrip()
            if follow >= len(lines):
                break
            line = f"{line} {lines[follow].strip()}"
            lines[follow] = ""
            follow += 1

        section_match = _SECTION_RE.match(line)
        if section_match:
            if current is not None:
                _commit(sections, current, current_data)
            name = section_match.group(1).strip()
            current = name or None
            current_data = {}
            error = validate_section_name(name)
            if error:
                report(line_no, error)
            continue

        stripped = line.strip()
        if current is None:
            if stripped:
                report(line_no, f"Configuration outside of section: {stripped}")
            continue

        kv_match = _KEY_VALUE_RE.match(line)
        if kv_match is None:
            if stripped:
                report(line_no, f"Invalid syntax: {stripped}")
            continue

        key = kv_match.group(1).strip()
        raw_value = kv_match.group(2).strip()
        if not key:
            report(line_no, f"Invalid key-value pair: {stripped}")
            continue

        current_data[key] = ConfigValue.infer(raw_value)
        if validate:
            error = validate_parameter(current, key, raw_value)
            if error:
                report(line_no, error)

    if current is not None:
        _commit(sections, current, current_data)

    return sections


def parse_config(content: str, validate_syntax: bool = True) -> ParseResult:
    """Parse Klipper configuration text.

    Args:
        content: Raw configuration text.
        validate_syntax: When ``False`` no diagnostics are produced, but
            the document and includes are identical.

    Returns:
        A :class:`ParseResult`.  An unexpected internal failure yields an
        empty document and a single line-less diagnostic instead of
        raising.
    """
    errors: list[Diagnostic] = []
    try:
        cleaned, includes = extract_includes(content)
        sections = _scan(cleaned, validate_syntax, errors)
        return ParseResult(config=ConfigDocument(sections), includes=includes, errors=errors)
    except Exception as exc:
        logger.exception("Unexpected error while parsing configuration")
        return ParseResult(errors=[Diagnostic(None, str(exc))])


def validate_config_syntax(content: str) -> tuple[bool, list[Diagnostic]]:
    """Parse *content* with validation on and report ``(is_valid, errors)``."""
    result = parse_config(content, validate_syntax=True)
    return result.is_valid, result.errors


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


def get_section(config: Mapping[str, Section], name: str) -> Optional[Section]:
    return config.get(name)


def get_sections_by_prefix(config: Mapping[str, Section], prefix: str) -> dict[str, Section]:
    """Return every section whose name starts with *prefix*, in document order."""
    return {name: section for name, section in config.items() if name.startswith(prefix)}


def get_section_names(config: Mapping[str, Section]) -> list[str]:
    return sorted(config)


def get_parameter_value(config: Mapping[str, Section], section: str, key: str) -> Optional[ConfigValue]:
    params = config.get(section)
    if params is None:
        return None
    return params.get(key)


def format_config(config: Mapping[str, Section], includes: Iterable[str] = ()) -> str:
    """Serialise *config* back to configuration text.

    Comments, blank lines and the original position of include directives
    are not preserved: includes are always written first.  A section whose
    name looks like an include directive is written as ``[ include ...]``
    so that it reads back as a section.
    """
    out: list[str] = []
    includes = list(includes)
    for include in includes:
        out.append(f"[include {include}]\n")
    if includes:
        out.append("\n")

    for name, section in config.items():
        header = f"[{name}]"
        if _INCLUDE_RE.fullmatch(header):
            header = f"[ {name}]"
        out.append(f"{header}\n")
        for key, value in section.items():
            out.append(f"{key}: {value.render()}\n")
        out.append("\n")

    return "".join(out).strip()
