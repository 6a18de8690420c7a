# -*- coding: utf-8 -*-
"""
Schema Node Model

Compiled schema trees are stored arena-style: a ``SchemaTree`` owns every
``SchemaNode`` of one compilation in a flat list, and nodes refer to their
parent and root by index into that list. The raw schema fragments stay
plain JSON; everything the compiler derives lives on the node.

Enumerations:
    - ResultKind: declared result kind of a dynamic attribute

Constants:
    - DYNAMIC_ATTRIBUTES: the twelve dynamic attributes and their kinds
    - COMPOSITIONS: composition keywords in walk order

Models:
    - OrderEntry: one property of an object node in display order
    - ChangeEvent: payload delivered to change listeners

Example:
    >>> from dynamik.compiler import SchemaCompiler
    >>> root = SchemaCompiler({"type": "object",
    ...                        "properties": {"a": {"type": "number"}}}).compile()
    >>> root.properties["a"].pointer
    '/a'
    >>> root.tree.find("/a") is root.properties["a"]
    True
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from dynamik.exceptions import SchemaCompileError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enumerations and constants
# ---------------------------------------------------------------------------


class ResultKind(str, Enum):
    """Declared result kind of a dynamic attribute."""

    STRING = "string"
    BOOLEAN = "boolean"
    ANY = "any"


#: Dynamic attribute name -> result kind, in compilation order.
DYNAMIC_ATTRIBUTES: Dict[str, ResultKind] = {
    "abstract": ResultKind.STRING,
    "hidden": ResultKind.BOOLEAN,
    "readonly": ResultKind.BOOLEAN,
    "mandatory": ResultKind.BOOLEAN,
    "minimized": ResultKind.BOOLEAN,
    "only": ResultKind.BOOLEAN,
    "rank": ResultKind.ANY,
    "kind": ResultKind.BOOLEAN,
    "change": ResultKind.ANY,
    "expression": ResultKind.ANY,
    "init": ResultKind.ANY,
    "match": ResultKind.BOOLEAN,
}

#: Grouping markers read by the ordering pass.
GROUPING_KEYWORDS: Tuple[str, ...] = ("_tab", "_group")

#: Composition keywords in walk order.
COMPOSITIONS: Tuple[str, ...] = ("oneOf", "anyOf", "allOf")

#: Pointer segment used for the item schema of an array node.
ITEMS_SEGMENT = "*"


def keyword(name: str) -> str:
    """Schema keyword carrying a dynamic attribute (``readonly`` -> ``_readonly``)."""
    return f"_{name}"


RESERVED_KEYWORDS: Tuple[str, ...] = tuple(
    keyword(name) for name in DYNAMIC_ATTRIBUTES
) + GROUPING_KEYWORDS


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class OrderEntry(BaseModel):
    """Position of one property in an object node's display order.

    Attributes:
        fieldname: Property name.
        fieldnum: Declaration index of the property.
        tabnum: Index of the first property sharing this tab (or fieldnum).
        groupnum: Index of the first property sharing this group (or fieldnum).
        tabname: Tab marker, if any.
        groupname: Group marker, if any.
    """

    fieldname: str = Field(..., description="Property name")
    fieldnum: int = Field(..., ge=0, description="Declaration index")
    tabnum: int = Field(..., ge=0, description="Index of the tab leader")
    groupnum: int = Field(..., ge=0, description="Index of the group leader")
    tabname: Optional[str] = Field(None, description="Tab marker")
    groupname: Optional[str] = Field(None, description="Group marker")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (min(self.tabnum, self.groupnum, self.fieldnum), self.fieldnum)


class ChangeEvent(BaseModel):
    """Change notification delivered to listeners after a write.

    Attributes:
        pointer: Bound pointer of the written position.
        old_value: Value before the write (None if unset).
        new_value: Value after the write (wrapped if composite).
    """

    pointer: Any = Field(..., description="Bound pointer of the written position")
    old_value: Any = Field(None, description="Value before the write")
    new_value: Any = Field(None, description="Value after the write")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)


# ---------------------------------------------------------------------------
# Schema nodes
# ---------------------------------------------------------------------------

ChildKey = Tuple[str, Any]


class SchemaNode:
    """One compiled position of a schema tree.

    Attributes set by the compiler passes:
        type, nullable: normalized type (pass 2)
        pointer, watchers: tree wiring (pass 3, write-once)
        is_enum, is_enum_array: enum detection (pass 4)
        uniform: array uniformity (pass 5)
        order: property display order (pass 6)
        validate: compiled predicate (pass 7)
        attributes: compiled dynamic attributes (pass 8)
    """

    def __init__(
        self,
        tree: SchemaTree,
        index: int,
        raw: Dict[str, Any],
        origin: Optional[Tuple[int, str]] = None,
    ):
        self._tree = tree
        self.index = index
        self.raw = raw
        self._origin = origin
        self._children: Dict[ChildKey, int] = {}
        self._parent_index: Optional[int] = None
        self._root_index: Optional[int] = None
        self.pointer: Optional[str] = None
        self.watchers: Set[str] = set()
        self.type: Optional[str] = None
        self.nullable: bool = False
        self.is_enum: Optional[bool] = None
        self.is_enum_array: Optional[bool] = None
        self.uniform: Optional[bool] = None
        self.order: Optional[List[OrderEntry]] = None
        self.validate: Optional[Callable[[Any], bool]] = None
        self.attributes: Dict[str, Any] = {}

    # -- Tree wiring ---------------------------------------------------------

    @property
    def tree(self) -> SchemaTree:
        return self._tree

    @property
    def wired(self) -> bool:
        return self.pointer is not None

    @property
    def location(self) -> str:
        """Canonical pointer, computed from the origin chain before wiring."""
        if self.pointer is not None:
            return self.pointer
        if self._origin is None:
            return ""
        parent_index, segment = self._origin
        return f"{self._tree.nodes[parent_index].location}/{segment}"

    def wire(self) -> None:
        """Assign pointer, parent and root from the node's origin.

        Raises:
            SchemaCompileError: If the node was already wired.
        """
        if self.wired:
            raise SchemaCompileError(
                f"schema node already wired at \"{self.pointer}\"",
                pointer=self.pointer,
            )
        self.pointer = self.location
        self._parent_index = None if self._origin is None else self._origin[0]
        self._root_index = self._tree.root.index
        self.watchers = set()
        self._tree._register(self)

    @property
    def parent(self) -> Optional[SchemaNode]:
        if self._parent_index is None:
            return None
        return self._tree.nodes[self._parent_index]

    @property
    def root(self) -> SchemaNode:
        if self._root_index is None:
            return self._tree.root
        return self._tree.nodes[self._root_index]

    # -- Children ------------------------------------------------------------

    def _child(self, key: ChildKey) -> Optional[SchemaNode]:
        index = self._children.get(key)
        return None if index is None else self._tree.nodes[index]

    @property
    def properties(self) -> Dict[str, SchemaNode]:
        return {
            key[1]: self._tree.nodes[index]
            for key, index in self._children.items()
            if key[0] == "properties"
        }

    @property
    def items(self) -> Optional[SchemaNode]:
        return self._child(("items", None))

    def compositions(self, name: str) -> List[SchemaNode]:
        return [
            self._tree.nodes[index]
            for key, index in self._children.items()
            if key[0] == name
        ]

    @property
    def one_of(self) -> List[SchemaNode]:
        return self.compositions("oneOf")

    @property
    def any_of(self) -> List[SchemaNode]:
        return self.compositions("anyOf")

    @property
    def all_of(self) -> List[SchemaNode]:
        return self.compositions("allOf")

    def children(self) -> Iterator[SchemaNode]:
        """Children in walk order: properties, items, oneOf, anyOf, allOf."""
        for index in self._children.values():
            yield self._tree.nodes[index]

    # -- Raw schema access ---------------------------------------------------

    def get(self, name: str, default: Any = None) -> Any:
        return self.raw.get(name, default)

    def __contains__(self, name: str) -> bool:
        return name in self.raw

    @property
    def required(self) -> List[str]:
        return list(self.raw.get("required", []))

    def attribute(self, name: str) -> Any:
        """Compiled value of a dynamic attribute (None when absent)."""
        return self.attributes.get(name)

    # -- Dereference ---------------------------------------------------------

    def deref(self, pointer: str) -> Optional[SchemaNode]:
        """Find the schema node addressed by ``pointer`` from this node.

        ``N/...`` ascends N parents first, ``/...`` or ``#/...`` starts at the
        root. ``*`` (or any segment under an array node) descends into
        ``items``, other segments into ``properties``. Misses return None.
        """
        text = pointer[1:] if pointer.startswith("#") else pointer
        tokens = text.split("/")
        head = tokens.pop(0)
        if head.isdigit():
            base: Optional[SchemaNode] = self
            for _ in range(int(head)):
                base = base.parent
                if base is None:
                    logger.warning(
                        "for ptr:%s unable to dereference ptr:%s (not enough ascendants)",
                        self.pointer, pointer,
                    )
                    return None
        elif head == "":
            base = self.root
        else:
            logger.warning(
                "for ptr:%s unable to dereference ptr:%s (invalid pointer)",
                self.pointer, pointer,
            )
            return None

        for token in tokens:
            previous = base
            if token == ITEMS_SEGMENT or base.type == "array":
                base = base.items
            else:
                base = base.properties.get(token)
            if base is None:
                logger.warning(
                    "for ptr:%s unable to dereference ptr:%s (property '%s' not found in '%s')",
                    self.pointer, pointer, token, previous.pointer,
                )
                return None
        return base

    def __repr__(self) -> str:
        return (
            f"SchemaNode(pointer={self.pointer!r}, type={self.type!r}, "
            f"nullable={self.nullable})"
        )


class SchemaTree:
    """Arena owning every node of one compiled schema.

    Attributes:
        document: The compiler's private copy of the raw schema.
        nodes: All nodes, indexed by ``SchemaNode.index``.
    """

    def __init__(self, document: Dict[str, Any]):
        self.document = document
        self.nodes: List[SchemaNode] = []
        self._by_pointer: Dict[str, int] = {}
        self.root = self._add(document, None)

    def _add(self, raw: Dict[str, Any], origin: Optional[Tuple[int, str]]) -> SchemaNode:
        node = SchemaNode(self, len(self.nodes), raw, origin)
        self.nodes.append(node)
        return node

    def child(
        self,
        parent: SchemaNode,
        key: ChildKey,
        raw: Dict[str, Any],
    ) -> SchemaNode:
        """Get or create the child of ``parent`` at ``key``.

        Keys are ``("properties", name)``, ``("items", None)`` or
        ``(composition, index)``.
        """
        index = parent._children.get(key)
        if index is not None:
            node = self.nodes[index]
            node.raw = raw
            return node
        kind, name = key
        if kind == "properties":
            segment = str(name)
        elif kind == "items":
            segment = ITEMS_SEGMENT
        else:
            segment = f"{kind}/{name}"
        node = self._add(raw, (parent.index, segment))
        parent._children[key] = node.index
        return node

    def _register(self, node: SchemaNode) -> None:
        self._by_pointer[node.pointer] = node.index

    def find(self, pointer: str) -> Optional[SchemaNode]:
        """Node with the given canonical pointer, or None."""
        index = self._by_pointer.get(pointer)
        return None if index is None else self.nodes[index]

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[SchemaNode]:
        return iter(self.nodes)


__all__ = [
    "ResultKind",
    "DYNAMIC_ATTRIBUTES",
    "GROUPING_KEYWORDS",
    "COMPOSITIONS",
    "ITEMS_SEGMENT",
    "RESERVED_KEYWORDS",
    "keyword",
    "OrderEntry",
    "ChangeEvent",
    "SchemaNode",
    "SchemaTree",
]
