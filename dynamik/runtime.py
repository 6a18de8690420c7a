# -*- coding: utf-8 -*-
"""
Reactive Proxy Layer

Wraps a JSON value into a live graph driven by a compiled schema:

    - ``DynObject`` / ``DynArray``: live containers (``MutableMapping`` and
      ``MutableSequence``) routing every write through the mutation policy
    - ``DynPointer``: an absolute path bound to the graph, exposing
      navigation and the twelve derived attributes
    - ``Dynamik``: the engine owning the root, the compiled schema and the
      listener registry

Mutation protocol for ``container[key] = value``:
    1. the bound pointer of ``container/key`` reporting ``readonly is True``
       absorbs the write silently
    2. the child schema is resolved from the container's schema
    3. the new value is deep-wrapped (composites only)
    4. the release hook runs on the outgoing value
    5. the container is written
    6. the init hook runs on the incoming value
    7. listeners registered for the exact pointer string are notified

Example:
    >>> dyn = Dynamik({"b": {"b": 2}})
    >>> dyn.pointer.watch("/b/b", lambda event: print(event.old_value, event.new_value))
    >>> dyn.root["b"]["b"] = 22
    2 22
"""

from __future__ import annotations

import json
import logging
from collections.abc import MutableMapping, MutableSequence
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

from dynamik import metrics
from dynamik.compiler import SchemaCompiler
from dynamik.config import DynamikConfig, get_config
from dynamik.data import DataInitialiser, DataReleaser
from dynamik.exceptions import InvalidRootError, PointerSyntaxError
from dynamik.models import ChangeEvent, SchemaNode
from dynamik.pointer import Pointer, format_path, is_absolute
from dynamik.utils import (
    Key,
    default_abstract,
    is_array,
    is_key,
    is_object,
    is_primitive,
    to_plain,
    type_of,
)
from dynamik.validation import ValidationEngine

logger = logging.getLogger(__name__)

Listener = Callable[[ChangeEvent], Any]


# ---------------------------------------------------------------------------
# Bound pointer
# ---------------------------------------------------------------------------


class DynPointer:
    """Absolute path into a live graph.

    Args:
        dyn: Owning ``Dynamik`` engine.
        path: Absolute pointer string or sequence of keys.

    Raises:
        PointerSyntaxError: If ``path`` is neither.
    """

    def __init__(self, dyn: Dynamik, path: Union[str, Sequence[Key]] = ()):
        if isinstance(path, str):
            if not is_absolute(path):
                raise PointerSyntaxError(
                    f"DynPointer: <path> must be an absolute path => {path!r}",
                    pointer=path,
                )
            path = Pointer.parse(path).path
        elif not is_array(path) or not all(is_key(key) for key in path):
            raise PointerSyntaxError(
                f"DynPointer: <path> must be an absolute path => {path!r}",
                pointer=repr(path),
            )
        self.dyn = dyn
        self.path: List[Key] = list(path)

    # -- Identity ------------------------------------------------------------

    @property
    def pointer(self) -> str:
        return format_path(self.path)

    def __str__(self) -> str:
        return self.pointer

    def __repr__(self) -> str:
        return f"DynPointer({self.pointer!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, DynPointer):
            return self.dyn is other.dyn and self.path == other.path
        if isinstance(other, str):
            return self.pointer == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.pointer)

    def to_json(self) -> str:
        return self.pointer

    # -- Navigation ----------------------------------------------------------

    def to(self, pointer: str = "0") -> DynPointer:
        """Pointer resolved from this one (relative or absolute).

        Raises:
            PointerSyntaxError: If ``pointer`` is malformed.
            PointerRangeError: If it ascends past the root.
        """
        return DynPointer(self.dyn, Pointer.parse(pointer).resolve(self.path))

    def child(self, key: Key) -> DynPointer:
        return DynPointer(self.dyn, self.path + [key])

    @property
    def key(self) -> Optional[Key]:
        return self.path[-1] if self.path else None

    @property
    def parent(self) -> Optional[DynPointer]:
        return self.to("1") if self.path else None

    @property
    def root(self) -> Union[DynObject, DynArray]:
        return self.dyn.root

    @property
    def context(self) -> Any:
        return self.dyn.context

    @property
    def schema(self) -> Optional[SchemaNode]:
        """Schema node of this position (None when no policy applies)."""
        schema: Optional[SchemaNode] = self.dyn.schema
        for key in self.path:
            if schema is None:
                return None
            if schema.type == "array":
                schema = schema.items
            elif schema.type == "object":
                schema = schema.properties.get(str(key))
            else:
                return None
        return schema

    @property
    def type(self) -> str:
        return type_of(self.value)

    # -- Value access --------------------------------------------------------

    @property
    def value(self) -> Any:
        value: Any = self.dyn.root
        for key in self.path:
            if is_object(value):
                value = value.get(str(key))
            elif is_array(value) and isinstance(key, int) and 0 <= key < len(value):
                value = value[key]
            else:
                return None
        return value

    @value.setter
    def value(self, value: Any) -> None:
        if not self.path:
            raise InvalidRootError("cannot replace the root of a Dynamik")
        container = self.parent.value
        key = self.key
        if isinstance(container, DynObject):
            container[str(key)] = value
        elif isinstance(container, DynArray) and isinstance(key, int):
            if key == len(container):
                container.append(value)
            elif 0 <= key < len(container):
                container[key] = value
            else:
                logger.debug("write ignored: %r is out of range", self.pointer)
        else:
            logger.debug("write ignored: parent of %r is not a container", self.pointer)

    @property
    def tag(self) -> Callable[..., Any]:
        """Accessor bound to this pointer: ``tag(ptr)`` reads, ``tag(ptr, v)`` writes."""
        def tag(pointer: str, *values: Any) -> Any:
            target = self.to(pointer)
            if values:
                target.value = values[0]
                return values[0]
            return target.value
        return tag

    def watch(self, pointer: str, listener: Listener) -> None:
        self.dyn.watch(self.to(str(pointer)), listener)

    def unwatch(self, pointer: str, listener: Listener) -> None:
        self.dyn.unwatch(self.to(str(pointer)), listener)

    # -- Validation ----------------------------------------------------------

    def validate(self) -> bool:
        """Check the current value with the schema predicate."""
        schema = self.schema
        if schema is None or schema.validate is None:
            return True
        return schema.validate(to_plain(self.value))

    def errors(self) -> List[str]:
        schema = self.schema
        if schema is None:
            return []
        return self.dyn.engine.errors(schema.raw, to_plain(self.value))

    # -- Derived attributes --------------------------------------------------

    def _compiled(self, name: str) -> Optional[Callable[..., Any]]:
        schema = self.schema
        return None if schema is None else schema.attribute(name)

    def _evaluate(self, name: str, default: Any) -> Any:
        function = self._compiled(name)
        if function is None:
            return default
        return function(self.value, self, self.tag)

    def _bind(self, name: str) -> Optional[Callable[[], Any]]:
        function = self._compiled(name)
        if function is None:
            return None
        return lambda: function(self.value, self, self.tag)

    @property
    def abstract(self) -> str:
        function = self._compiled("abstract")
        if function is not None:
            return function(self.value, self, self.tag)
        config = self.dyn.config
        value = self.value
        if is_object(value):
            return config.abstract_separator.join(self.child(k).abstract for k in value)
        if is_array(value):
            return config.abstract_separator.join(
                self.child(i).abstract for i in range(len(value))
            )
        return default_abstract(value, config.abstract_separator, config.null_placeholder)

    @property
    def hidden(self) -> Any:
        return self._evaluate("hidden", False)

    @property
    def readonly(self) -> Any:
        return self._evaluate("readonly", False)

    @property
    def mandatory(self) -> Any:
        parent = self.parent
        parent_schema = parent.schema if parent is not None else None
        if parent_schema is not None and str(self.key) in parent_schema.required:
            return True
        return self._evaluate("mandatory", False)

    @property
    def minimized(self) -> Any:
        return self._evaluate("minimized", False)

    @property
    def only(self) -> Any:
        return self._evaluate("only", True)

    @property
    def kind(self) -> Any:
        return self._evaluate("kind", True)

    @property
    def rank(self) -> Optional[Callable[[], Any]]:
        return self._bind("rank")

    @property
    def change(self) -> Optional[Callable[[], Any]]:
        return self._bind("change")

    @property
    def expression(self) -> Optional[Callable[[], Any]]:
        return self._bind("expression")

    @property
    def init(self) -> Optional[Callable[[], Any]]:
        return self._bind("init")

    @property
    def match(self) -> Optional[Callable[[], Any]]:
        return self._bind("match")


# ---------------------------------------------------------------------------
# Live containers
# ---------------------------------------------------------------------------


class _Live:
    """State shared by live containers."""

    def __init__(self, dyn: Dynamik, path: Sequence[Key], target: Any):
        self._dyn = dyn
        self._path: List[Key] = list(path)
        self._target = target

    @property
    def pointer(self) -> DynPointer:
        return DynPointer(self._dyn, self._path)

    def to_json(self) -> Any:
        return to_plain(self)

    def _children(self) -> Iterator[tuple]:
        raise NotImplementedError

    def _rebase(self, path: Sequence[Key]) -> None:
        self._path = list(path)
        for key, child in self._children():
            if isinstance(child, _Live):
                child._rebase(self._path + [key])

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({format_path(self._path)!r}, {to_plain(self)!r})"


class DynObject(_Live, MutableMapping):
    """Live JSON object."""

    def _children(self) -> Iterator[tuple]:
        return iter(list(self._target.items()))

    def __getitem__(self, key: str) -> Any:
        return self._target[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if not isinstance(key, str):
            raise TypeError(f"object keys must be strings, not {type(key).__name__}")
        self._dyn._assign(self, key, value)

    def __delitem__(self, key: str) -> None:
        if key not in self._target:
            raise KeyError(key)
        self._dyn._delete(self, key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._target)

    def __len__(self) -> int:
        return len(self._target)


class DynArray(_Live, MutableSequence):
    """Live JSON array."""

    __hash__ = None

    def _children(self) -> Iterator[tuple]:
        return iter(list(enumerate(self._target)))

    def _index(self, index: int) -> int:
        if not isinstance(index, int) or isinstance(index, bool):
            raise TypeError(f"array indices must be integers, not {type(index).__name__}")
        if index < 0:
            index += len(self._target)
        if not 0 <= index < len(self._target):
            raise IndexError("array index out of range")
        return index

    def __getitem__(self, index):
        return self._target[index]

    def __setitem__(self, index, value: Any) -> None:
        if isinstance(index, slice):
            raise TypeError("slice assignment is not supported on live arrays")
        self._dyn._assign(self, self._index(index), value)

    def __delitem__(self, index) -> None:
        if isinstance(index, slice):
            raise TypeError("slice deletion is not supported on live arrays")
        self._dyn._remove(self, self._index(index))

    def __len__(self) -> int:
        return len(self._target)

    def insert(self, index: int, value: Any) -> None:
        size = len(self._target)
        if index < 0:
            index = max(0, index + size)
        self._dyn._insert(self, min(index, size), value)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, DynArray) or (is_array(other) and not isinstance(other, tuple)):
            return len(self) == len(other) and all(a == b for a, b in zip(self, other))
        return NotImplemented


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class Dynamik:
    """Live, observable JSON graph driven by a compiled schema.

    Args:
        value: Root object or array, or JSON text of one.
        schema: Raw schema document, ``True``, or an already compiled root node.
        context: Arbitrary caller object exposed to pointers and expressions.
        engine: Validation engine handle passed to the compiler.
        config: Configuration; defaults to the global configuration.

    Raises:
        InvalidRootError: If ``value`` is not an object or an array.
        SchemaValidationError: If the schema fails the meta-schema check.
        SchemaCompileError: If a compile step fails.
    """

    def __init__(
        self,
        value: Any,
        schema: Any = True,
        context: Any = None,
        engine: Optional[ValidationEngine] = None,
        config: Optional[DynamikConfig] = None,
    ):
        if isinstance(value, (str, bytes, bytearray)):
            value = json.loads(value)
        if is_primitive(value):
            raise InvalidRootError(
                "Dynamik root must be array | object", value_type=type_of(value),
            )
        self.config = config or get_config()
        self.context = context
        self.listeners: Dict[str, List[Listener]] = {}
        if isinstance(schema, SchemaNode):
            self.engine = engine or ValidationEngine()
            self.schema = schema.root
        else:
            compiler = SchemaCompiler(schema, engine=engine, config=self.config)
            self.engine = compiler.engine
            self.schema = compiler.compile()
        self.root: Union[DynObject, DynArray] = self._wrap(value, [])
        DataInitialiser.apply(self.pointer, self.schema, include_self=False)

    @property
    def pointer(self) -> DynPointer:
        """Bound pointer of the root."""
        return DynPointer(self, [])

    @property
    def tree(self):
        return self.schema.tree

    def to_json(self) -> Any:
        return to_plain(self.root)

    # -- Schema lookup -------------------------------------------------------

    @staticmethod
    def _get_schema_for(parent: Optional[SchemaNode], key: Key) -> Optional[SchemaNode]:
        """Child schema of ``parent`` at ``key`` (None means no policy)."""
        if parent is None:
            return None
        if parent.type == "array":
            return parent.items
        if parent.type == "object":
            return parent.properties.get(str(key))
        return None

    # -- Wrapping and raw storage --------------------------------------------

    def _wrap(self, value: Any, path: Sequence[Key]) -> Any:
        if isinstance(value, _Live):
            value = to_plain(value)
        if is_object(value):
            return DynObject(self, path, {
                key: self._wrap(child, list(path) + [key]) for key, child in value.items()
            })
        if is_array(value):
            return DynArray(self, path, [
                self._wrap(child, list(path) + [i]) for i, child in enumerate(value)
            ])
        return value

    def _store(self, path: Sequence[Key], value: Any) -> None:
        """Write without policy or notification (used by data hooks)."""
        if not path:
            logger.debug("hook write to the root ignored")
            return
        container = DynPointer(self, path[:-1]).value
        key = path[-1]
        if isinstance(container, DynObject):
            container._target[str(key)] = self._wrap(value, list(path[:-1]) + [str(key)])
        elif isinstance(container, DynArray) and isinstance(key, int):
            wrapped = self._wrap(value, path)
            if 0 <= key < len(container._target):
                container._target[key] = wrapped
            elif key == len(container._target):
                container._target.append(wrapped)

    # -- Mutation protocol ---------------------------------------------------

    def _absorbed(self, pointer: DynPointer) -> bool:
        if pointer.readonly is True:
            logger.debug("readonly write absorbed at %r", pointer.pointer)
            metrics.record_mutation("readonly")
            return True
        return False

    def _assign(self, container: _Live, key: Key, value: Any) -> None:
        pointer = container.pointer.child(key)
        if self._absorbed(pointer):
            return
        schema = self._get_schema_for(container.pointer.schema, key)
        old_value = pointer.value
        new_value = self._wrap(value, pointer.path)
        DataReleaser.apply(pointer, schema)
        container._target[key] = new_value
        DataInitialiser.apply(pointer, schema)
        metrics.record_mutation("applied")
        self.change(pointer, old_value, pointer.value)

    def _delete(self, container: DynObject, key: str) -> None:
        pointer = container.pointer.child(key)
        if self._absorbed(pointer):
            return
        schema = self._get_schema_for(container.pointer.schema, key)
        DataReleaser.apply(pointer, schema)
        old_value = container._target.pop(key)
        metrics.record_mutation("deleted")
        self.change(pointer, old_value, None)

    def _insert(self, container: DynArray, index: int, value: Any) -> None:
        pointer = container.pointer.child(index)
        if self._absorbed(pointer):
            return
        schema = self._get_schema_for(container.pointer.schema, index)
        container._target.insert(index, self._wrap(value, pointer.path))
        container._rebase(container._path)
        DataInitialiser.apply(pointer, schema)
        metrics.record_mutation("inserted")
        self.change(pointer, None, pointer.value)

    def _remove(self, container: DynArray, index: int) -> None:
        pointer = container.pointer.child(index)
        if self._absorbed(pointer):
            return
        schema = self._get_schema_for(container.pointer.schema, index)
        DataReleaser.apply(pointer, schema)
        old_value = container._target.pop(index)
        container._rebase(container._path)
        metrics.record_mutation("deleted")
        self.change(pointer, old_value, None)

    # -- Listeners -----------------------------------------------------------

    @staticmethod
    def _listener_key(pointer: Union[str, DynPointer]) -> str:
        return format_path(Pointer.parse(str(pointer)).resolve([]))

    def watch(self, pointer: Union[str, DynPointer], listener: Listener) -> None:
        """Register ``listener`` for writes at the exact ``pointer``."""
        key = self._listener_key(pointer)
        self.listeners.setdefault(key, []).append(listener)
        logger.debug("listener registered at %r", key)

    def unwatch(self, pointer: Union[str, DynPointer], listener: Listener) -> None:
        """Remove ``listener`` (by identity) from ``pointer``."""
        key = self._listener_key(pointer)
        listeners = self.listeners.get(key, [])
        for i, registered in enumerate(listeners):
            if registered is listener:
                del listeners[i]
                logger.debug("listener removed at %r", key)
                break
        if not listeners:
            self.listeners.pop(key, None)

    def change(self, pointer: DynPointer, old_value: Any, new_value: Any) -> None:
        """Notify listeners of ``pointer`` synchronously."""
        listeners = list(self.listeners.get(pointer.pointer, []))
        if not listeners:
            return
        event = ChangeEvent(pointer=pointer, old_value=old_value, new_value=new_value)
        for listener in listeners:
            listener(event)
        metrics.record_notifications(len(listeners))


__all__ = [
    "DynPointer",
    "DynObject",
    "DynArray",
    "Dynamik",
    "Listener",
]
