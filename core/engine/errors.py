"""
TopoTable - Engine Error Taxonomy
"""
from typing import Optional


class TopoTableError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(TopoTableError):
    """
    The query itself is unusable: bad path syntax, bad regex, unknown converter
    or inconsistent filter logic. Raised before any row is processed.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConversionError(TopoTableError):
    """
    A converter could not transform a single value.

    Instances double as the staged error marker stored in a row, so an error
    value stays distinguishable from a resolution gap (None).
    """

    def __init__(self, converter: str, value: object, reason: str = ""):
        self.converter = converter
        self.value = value
        self.reason = reason
        message = f"{converter} could not convert {value!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def __eq__(self, other):
        if not isinstance(other, ConversionError):
            return NotImplemented
        return (self.converter, self.value, self.reason) == (other.converter, other.value, other.reason)

    def __hash__(self):
        return hash((self.converter, repr(self.value), self.reason))


class ExtractionTimeout(TopoTableError):
    """Row building did not finish within the caller's timeout."""

    def __init__(self, timeout: float, rows_done: int, rows_total: int):
        self.timeout = timeout
        self.rows_done = rows_done
        self.rows_total = rows_total
        super().__init__(
            f"Extraction exceeded {timeout}s after {rows_done}/{rows_total} rows"
        )
