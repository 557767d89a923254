"""
TopoTable - Path Resolver
Navigates parsed JSON using dotted, slash or bracket-chain path expressions.

Supported forms (mixable):
    network-topology:network-topology/topology[0]/link
    network-topology:network-topology.topology[0].link
    $["network-topology:network-topology"]["topology"][0]["link"]
    $.topology.0.link
"""
from functools import lru_cache
from typing import Any, Tuple, Union

from core.engine.errors import ConfigurationError

Segment = Union[str, int]

SEPARATORS = "./"


class Key(str):
    """A quoted key: never reinterpreted as a list index."""


@lru_cache(maxsize=512)
def parse_path(path_expr: str) -> Tuple[Segment, ...]:
    """
    Split a path expression into key (str) and index (int) segments.
    Raises ConfigurationError on malformed syntax.
    """
    if path_expr is None:
        return ()
    s = path_expr.strip()
    if s.startswith("$"):
        s = s[1:]

    segments = []
    i = 0
    n = len(s)
    # A separator is only legal right after a segment or at the very start
    expect_key = True
    at_start = True

    while i < n:
        ch = s[i]
        if ch in SEPARATORS:
            if not at_start and expect_key:
                raise ConfigurationError(f"Empty segment at offset {i} in path {path_expr!r}")
            expect_key = True
            at_start = False
            i += 1
            continue

        if ch == "[":
            end, segment = _parse_bracket(s, i, path_expr)
            segments.append(segment)
            i = end
            expect_key = False
            at_start = False
            continue

        if ch == "]":
            raise ConfigurationError(f"Unexpected ']' at offset {i} in path {path_expr!r}")

        if not expect_key:
            raise ConfigurationError(f"Missing separator before offset {i} in path {path_expr!r}")

        j = i
        while j < n and s[j] not in SEPARATORS and s[j] not in "[]":
            j += 1
        segments.append(s[i:j])
        i = j
        expect_key = False
        at_start = False

    if expect_key and not at_start and segments:
        raise ConfigurationError(f"Path {path_expr!r} ends with a separator")

    return tuple(segments)


def _parse_bracket(s: str, start: int, path_expr: str) -> Tuple[int, Segment]:
    """Parse one [...] group starting at s[start] == '['."""
    i = start + 1
    n = len(s)
    if i < n and s[i] in "\"'":
        quote = s[i]
        i += 1
        chars = []
        while i < n and s[i] != quote:
            if s[i] == "\\" and i + 1 < n:
                i += 1
            chars.append(s[i])
            i += 1
        if i >= n:
            raise ConfigurationError(f"Unterminated quote in path {path_expr!r}")
        i += 1
        if i >= n or s[i] != "]":
            raise ConfigurationError(f"Expected ']' after quoted key in path {path_expr!r}")
        return i + 1, Key("".join(chars))

    end = s.find("]", i)
    if end == -1:
        raise ConfigurationError(f"Unclosed '[' in path {path_expr!r}")
    body = s[i:end].strip()
    if not body.isdigit():
        raise ConfigurationError(
            f"Index {body!r} in path {path_expr!r} must be a non-negative integer or a quoted key"
        )
    return end + 1, int(body)


def resolve(document: Any, path_expr: str) -> Any:
    """
    Resolve a path against a parsed JSON value.
    Returns None when any key or index is missing or a scalar blocks descent.
    """
    current = document
    for segment in parse_path(path_expr):
        if current is None:
            return None
        if isinstance(segment, int):
            if not isinstance(current, list) or segment >= len(current):
                return None
            current = current[segment]
        elif isinstance(current, dict):
            current = current.get(segment)
        elif isinstance(current, list) and not isinstance(segment, Key) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            return None
    return current
