# -*- coding: utf-8 -*-
"""Type predicates, key/path helpers and text rendering shared by dynamik."""

import copy
import json
import re
from collections.abc import Mapping, Sequence
from typing import Any, List, Union

Key = Union[str, int]

_RE_INT = re.compile(r"^(0|[1-9][0-9]*)$")


def deep_copy(value: Any) -> Any:
    """Return a deep copy of a JSON-like value."""
    return copy.deepcopy(value)


def is_array(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def is_object(value: Any) -> bool:
    return isinstance(value, Mapping)


def is_composed(value: Any) -> bool:
    return is_array(value) or is_object(value)


def is_primitive(value: Any) -> bool:
    return not is_composed(value)


def is_key(key: Any) -> bool:
    """True for values usable as a path segment (str or non-bool int)."""
    if isinstance(key, bool):
        return False
    return isinstance(key, (str, int))


def to_key(segment: Key) -> Key:
    """Convert a canonical base-10 digit segment to int, leave others as str."""
    if isinstance(segment, int) and not isinstance(segment, bool):
        return segment
    text = str(segment)
    return int(text) if _RE_INT.match(text) else text


def to_path(text: str) -> List[Key]:
    """Split pointer text on "/" converting each token with ``to_key``.

    The leading token is kept, so "/a/1" gives ["", "a", 1].
    """
    return [to_key(token) for token in text.split("/")]


def type_of(value: Any) -> str:
    """JSON type name of a (possibly live) value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_array(value):
        return "array"
    if is_object(value):
        return "object"
    return type(value).__name__


def to_plain(value: Any) -> Any:
    """Deep copy of a live value as plain dicts and lists."""
    if is_object(value):
        return {key: to_plain(child) for key, child in value.items()}
    if is_array(value):
        return [to_plain(child) for child in value]
    return value


def to_text(value: Any) -> str:
    """Render a value for interpolation into text.

    None renders empty, booleans as true/false, integral floats without
    a fraction and containers as JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if is_composed(value):
        return json.dumps(to_plain(value), default=str)
    return str(value)


def default_abstract(value: Any, separator: str = ",", placeholder: str = "~") -> str:
    """Generic abstract: placeholder for None, joined children for composites."""
    if value is None:
        return placeholder
    if is_object(value):
        value = list(value.values())
    if is_array(value):
        return separator.join(
            default_abstract(child, separator, placeholder) for child in value
        )
    return to_text(value)


__all__ = [
    "Key",
    "deep_copy",
    "is_array",
    "is_object",
    "is_composed",
    "is_primitive",
    "is_key",
    "to_key",
    "to_path",
    "type_of",
    "to_plain",
    "to_text",
    "default_abstract",
]
