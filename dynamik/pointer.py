# -*- coding: utf-8 -*-
"""
Pointer Algebra

Parses JSON-Pointer-like strings into structured pointers and resolves
them against a base path.

Grammar:
    absolute: zero or more ``/segment`` ("" is the root)
    relative: a decimal ascent count followed by zero or more ``/segment``
              ("0" is the current position)

Segments are opaque. A segment that is a canonical base-10 integer becomes
an ``int`` key, anything else stays a ``str`` key. Ascending past the root
raises ``PointerRangeError``; descending into keys that do not exist is
not an error at this level.

Example:
    >>> from dynamik.pointer import Pointer, move
    >>> Pointer.parse("2/d/2")
    Pointer(relative=True, ascend=2, path=('d', 2))
    >>> move(["b", "b"], "1/c")
    ['b', 'c']
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from dynamik.exceptions import PointerRangeError, PointerSyntaxError
from dynamik.utils import Key, to_key

_RE_POINTER = re.compile(r"^(?P<ascend>[0-9]+)?(?P<path>(?:/[^/]+)*)$")
_RE_ABSOLUTE = re.compile(r"^(?:/[^/]+)*$")


@dataclass(frozen=True)
class Pointer:
    """Structured pointer: ascent count plus descent path.

    Attributes:
        relative: False for root-anchored pointers.
        ascend: Number of keys to pop from the base path (0 if absolute).
        path: Keys pushed after the ascent.
    """

    relative: bool
    ascend: int
    path: Tuple[Key, ...]

    @classmethod
    def parse(cls, text: str) -> Pointer:
        """Parse pointer text.

        Raises:
            PointerSyntaxError: If text matches neither grammar.
        """
        if not isinstance(text, str):
            raise PointerSyntaxError(
                f"invalid pointer {text!r}: pointer must be a string",
                pointer=repr(text),
            )
        match = _RE_POINTER.match(text)
        if match is None:
            raise PointerSyntaxError(f"invalid pointer \"{text}\"", pointer=text)
        ascend = match.group("ascend")
        tokens = match.group("path").split("/")[1:]
        return cls(
            relative=ascend is not None,
            ascend=int(ascend) if ascend is not None else 0,
            path=tuple(to_key(token) for token in tokens),
        )

    @classmethod
    def from_path(cls, path: Sequence[Key]) -> Pointer:
        """Absolute pointer for a sequence of keys."""
        return cls(relative=False, ascend=0, path=tuple(path))

    def resolve(self, base: Sequence[Key] = ()) -> List[Key]:
        """Resolve against a base path, returning a new absolute path.

        Raises:
            PointerRangeError: If the ascent exhausts the base path.
        """
        path = list(base) if self.relative else []
        for _ in range(self.ascend):
            if not path:
                raise PointerRangeError(
                    "Pointer reference out of limit",
                    pointer=str(self),
                    base=format_path(base),
                )
            path.pop()
        path.extend(self.path)
        return path

    def __str__(self) -> str:
        prefix = str(self.ascend) if self.relative else ""
        return prefix + format_path(self.path)


def format_path(path: Sequence[Key]) -> str:
    """Canonical string form of an absolute path ("" for the root)."""
    return "".join(f"/{key}" for key in path)


def is_absolute(text: str) -> bool:
    return isinstance(text, str) and _RE_ABSOLUTE.match(text) is not None


def split(text: str) -> Pointer:
    """Alias of ``Pointer.parse``."""
    return Pointer.parse(text)


def move(current: Sequence[Key], text: str) -> List[Key]:
    """Resolve pointer text relative to ``current``."""
    return Pointer.parse(text).resolve(current)


__all__ = [
    "Pointer",
    "format_path",
    "is_absolute",
    "split",
    "move",
]
