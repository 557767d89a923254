"""
TopoTable - Regex Extractor
Applies a capture pattern to a staged column value.
"""
import json
import re
from functools import lru_cache
from typing import Any, Optional, Pattern, Union

from core.engine.errors import ConfigurationError


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> Pattern:
    """Compile a pattern once; syntax errors become ConfigurationError."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid regular expression {pattern!r}: {e}") from e


def to_text(value: Any) -> Optional[str]:
    """
    Coerce a resolved JSON value to its staged string form.
    Booleans use JSON spelling; objects and arrays become compact JSON.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def extract(raw_value: Any, pattern: Union[str, Pattern]) -> Optional[str]:
    """
    Return the first capture group of the first match, or the whole match
    when the pattern has no groups. None when there is no match.
    """
    text = to_text(raw_value)
    if text is None:
        return None

    compiled = compile_pattern(pattern) if isinstance(pattern, str) else pattern
    match = compiled.search(text)
    if match is None:
        return None
    if compiled.groups:
        return match.group(1)
    return match.group(0)
