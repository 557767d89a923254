"""
TopoTable - Value Converter Registry
Named value transforms applied at the conversion stage of a column.

Per-row converters take one staged value (plus the row it belongs to) and
return the converted string. Aggregate converters run once over the column
values of every row and return a single value for the whole column.
"""
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from core.engine.errors import ConfigurationError, ConversionError
from core.engine.logger import get_logger

log = get_logger(__name__)

MAX_IPV4 = 0xFFFFFFFF
NUMBER_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")
INTEGER_RE = re.compile(r"[+-]?\d+")


class ConverterKind(str, Enum):
    PER_ROW = "perRow"
    AGGREGATE = "aggregate"


@dataclass(frozen=True)
class Converter:
    name: str
    func: Callable[..., Optional[str]]
    kind: ConverterKind = ConverterKind.PER_ROW
    description: str = ""

    @property
    def is_aggregate(self) -> bool:
        return self.kind is ConverterKind.AGGREGATE


def parse_number(value: Any) -> Optional[float]:
    """Parse a staged value as a finite decimal number, or None."""
    if value is None or isinstance(value, (bool, ConversionError)):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not NUMBER_RE.fullmatch(text):
            return None
        number = float(text)
    if math.isinf(number):
        return None
    return number


def format_number(number: float) -> str:
    """Render integral numbers without a decimal point."""
    if number.is_integer():
        return str(int(number))
    return repr(number)


class ConverterRegistry:
    """Mapping of converter name to Converter, with unique names."""

    def __init__(self):
        self._converters: Dict[str, Converter] = {}

    def register(self, name: str, func: Callable[..., Optional[str]],
                 kind: ConverterKind = ConverterKind.PER_ROW, description: str = "") -> Converter:
        if name in self._converters:
            raise ValueError(f"Converter '{name}' is already registered")
        converter = Converter(name=name, func=func, kind=kind, description=description or (func.__doc__ or "").strip())
        self._converters[name] = converter
        return converter

    def unregister(self, name: str):
        self._converters.pop(name, None)

    def get(self, name: str) -> Converter:
        """Look up a converter; unknown names are a configuration error."""
        converter = self._converters.get(name)
        if converter is None:
            raise ConfigurationError(
                f"Unknown converter '{name}'. Known converters: {', '.join(self.names())}",
                field="converter",
            )
        return converter

    def names(self) -> List[str]:
        return list(self._converters.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._converters

    def convert(self, name: str, value: Optional[str], row: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        """Run a per-row converter. None short-circuits to None."""
        converter = self.get(name)
        if converter.is_aggregate:
            raise ConfigurationError(f"Converter '{name}' is an aggregate and cannot run per row")
        if value is None:
            return None
        return converter.func(value, row or {})

    def aggregate(self, name: str, values: Sequence[Optional[str]]) -> Optional[str]:
        """Run an aggregate converter over one column's values from all rows."""
        converter = self.get(name)
        if not converter.is_aggregate:
            raise ConfigurationError(f"Converter '{name}' is not an aggregate")
        return converter.func(values)


# Default registry
_DEFAULT_REGISTRY = ConverterRegistry()


def default_registry() -> ConverterRegistry:
    return _DEFAULT_REGISTRY


def register_converter(name: str, kind: ConverterKind = ConverterKind.PER_ROW):
    """Decorator to register a converter function in the default registry."""
    def decorator(func: Callable[..., Optional[str]]):
        _DEFAULT_REGISTRY.register(name, func, kind)
        return func
    return decorator


def get_converter(name: str) -> Converter:
    return _DEFAULT_REGISTRY.get(name)


def list_converters() -> List[str]:
    return _DEFAULT_REGISTRY.names()


def convert(name: str, value: Optional[str], row: Optional[Mapping[str, Any]] = None) -> Optional[str]:
    return _DEFAULT_REGISTRY.convert(name, value, row)


def aggregate(name: str, values: Sequence[Optional[str]]) -> Optional[str]:
    return _DEFAULT_REGISTRY.aggregate(name, values)


# ─── Built-in converters ───

@register_converter("none")
def passthrough(value: str, row: Mapping[str, Any]) -> str:
    """Returns the value unchanged."""
    return value


@register_converter("int2ip")
def int_to_ip(value: str, row: Mapping[str, Any]) -> str:
    """Unsigned 32-bit integer to dotted-quad IPv4."""
    text = str(value).strip()
    if not INTEGER_RE.fullmatch(text):
        raise ConversionError("int2ip", value, "not an integer")
    # Over 10 significant digits never fits; also keeps int() under its digit limit
    if len(text.lstrip("+-").lstrip("0")) > len(str(MAX_IPV4)):
        raise ConversionError("int2ip", value, "outside the unsigned 32-bit range")
    number = int(text)
    if number < 0 or number > MAX_IPV4:
        raise ConversionError("int2ip", value, "outside the unsigned 32-bit range")
    return ".".join(str((number >> shift) & 0xFF) for shift in (24, 16, 8, 0))


@register_converter("sum", kind=ConverterKind.AGGREGATE)
def column_sum(values: Sequence[Optional[str]]) -> str:
    """Sum of every numeric value of the column across all rows."""
    total = 0.0
    skipped = 0
    for value in values:
        if value is None:
            continue
        number = parse_number(value)
        if number is None:
            skipped += 1
            log.warning(f"sum: could not convert {value!r} to a number")
            continue
        total += number
    if skipped:
        log.info("sum skipped non-numeric values", skipped=skipped)
    return format_number(total)
