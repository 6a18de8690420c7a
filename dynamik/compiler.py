# -*- coding: utf-8 -*-
"""
Schema Compiler Pipeline

Normalizes a raw schema document into a ``SchemaTree`` of pointer
addressable ``SchemaNode`` objects.

Compilation runs ordered passes. Each pass is a list of steps and performs
one depth-first walk of the tree, visiting a node, then its properties,
then its items, then the members of oneOf, anyOf and allOf. Every step has
a ``condition`` guard and an ``apply`` mutator; a failing step aborts the
compilation with the node pointer and step name attached to the error.

Passes:
    1. Definition compilation   ($ref -> copy of $defs entry)
    2. Type compilation         (type / nullable)
    3. Wiring compilation       (pointer / parent / root / watchers)
    4. Enum compilation         (is_enum / is_enum_array)
    5. Uniform compilation      (uniform flag of arrays)
    6. Order compilation        (property display order)
    7. Validate compilation     (per-node predicate)
    8. Expression compilation   (the twelve dynamic attributes)

Example:
    >>> root = SchemaCompiler({"type": ["string", "null"]}).compile()
    >>> root.type, root.nullable
    ('string', True)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any, Dict, FrozenSet, List, Optional

from dynamik import metrics
from dynamik.config import DynamikConfig, get_config
from dynamik.exceptions import (
    DefinitionNotFoundError,
    DynamikException,
    MissingNullInUnionError,
    SchemaCompileError,
    SchemaValidationError,
    UnsupportedUnionError,
)
from dynamik.expressions import CompiledExpression, ExpressionCompiler
from dynamik.models import (
    COMPOSITIONS,
    DYNAMIC_ATTRIBUTES,
    OrderEntry,
    ResultKind,
    SchemaNode,
    SchemaTree,
    keyword,
)
from dynamik.utils import deep_copy, to_text
from dynamik.validation import ValidationEngine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Compile steps
# ---------------------------------------------------------------------------


class CompileStep:
    """Base class for compile steps.

    To add a step, subclass it and register an instance in the passes built
    by ``SchemaCompiler``. Steps reading fields set by other steps must run
    in a later pass.
    """

    name = "No operation"

    def condition(self, node: SchemaNode) -> bool:
        return True

    def apply(self, node: SchemaNode) -> None:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


class CompileDefs(CompileStep):
    """Replace ``$ref`` children with a copy of the referenced definition.

    Definitions are addressed ``<$id>#/$defs/<name>``. Fields of the
    referencing schema override the copied definition. A definition met
    again while it is still being expanded on the same branch is a cycle.
    """

    name = "Definition compilation"

    def __init__(self, document: Dict[str, Any]):
        prefix = str(document.get("$id", ""))
        self.definitions: Dict[str, Any] = {
            f"{prefix}#/$defs/{name}": definition
            for name, definition in (document.get("$defs") or {}).items()
        }
        # id() of expanded schema -> references being expanded above it
        self._expanding: Dict[int, FrozenSet[str]] = {}

    def apply(self, node: SchemaNode) -> None:
        raw = node.raw
        chain = self._expanding.get(id(raw), frozenset())
        at = node.location
        properties = raw.get("properties")
        if isinstance(properties, dict):
            for name, child in properties.items():
                properties[name] = self.solve(child, chain, f"{at}/{name}")
        if "items" in raw:
            raw["items"] = self.solve(raw["items"], chain, f"{at}/*")
        self._solve_members(raw, chain, at)
        items = raw.get("items")
        if isinstance(items, dict):
            self._solve_members(items, self._expanding.get(id(items), chain), f"{at}/*")

    def _solve_members(self, raw: Dict[str, Any], chain: FrozenSet[str], at: str) -> None:
        for composition in COMPOSITIONS:
            if isinstance(raw.get(composition), list):
                raw[composition] = [
                    self.solve(member, chain, f"{at}/{composition}/{i}")
                    for i, member in enumerate(raw[composition])
                ]

    def solve(
        self,
        schema: Any,
        chain: FrozenSet[str] = frozenset(),
        at: Optional[str] = None,
    ) -> Any:
        """Expand ``schema`` until it no longer holds a ``$ref``.

        Raises:
            DefinitionNotFoundError: If a reference names no definition.
            SchemaCompileError: If a reference is already being expanded.
        """
        seen = set(chain)
        expanded = set()
        while isinstance(schema, dict) and "$ref" in schema:
            reference = schema["$ref"]
            if reference in seen:
                raise SchemaCompileError(
                    f"circular reference through {reference}",
                    context={"reference_at": at} if at is not None else None,
                )
            seen.add(reference)
            expanded.add(reference)
            if reference not in self.definitions:
                raise DefinitionNotFoundError(
                    f"Definition not found for {reference}",
                    reference=reference, reference_at=at,
                )
            solved = deep_copy(self.definitions[reference])
            if not isinstance(solved, dict):
                solved = {} if solved is True else {"not": {}}
            solved.update((k, v) for k, v in schema.items() if k != "$ref")
            schema = solved
        if isinstance(schema, dict) and (chain or expanded):
            self._expanding[id(schema)] = chain | expanded
        return schema


class CompileType(CompileStep):
    """Normalize ``type`` into a single type plus a nullable flag."""

    name = "Type compilation"

    def __init__(self, default_type: str = "string"):
        self.default_type = default_type

    def condition(self, node: SchemaNode) -> bool:
        return node.type is None

    def apply(self, node: SchemaNode) -> None:
        declared = node.raw.get("type", self.default_type)
        types = list(declared) if isinstance(declared, list) else [declared]
        if not types:
            types = [self.default_type]
        if len(types) == 1:
            node.type = types[0]
            node.nullable = node.type == "null"
        elif len(types) == 2:
            if "null" not in types:
                raise MissingNullInUnionError("One type must be 'null'")
            others = [t for t in types if t != "null"]
            node.type = others[0] if others else "null"
            node.nullable = True
        else:
            raise UnsupportedUnionError("multiple types not implemented")


class CompileWiring(CompileStep):
    """Assign pointer, parent, root and an empty watcher set."""

    name = "Wiring compilation"

    def condition(self, node: SchemaNode) -> bool:
        return not node.wired

    def apply(self, node: SchemaNode) -> None:
        node.wire()


class CompileEnum(CompileStep):
    """Detect enumerations and arrays of enumerations."""

    name = "Enum compilation"

    def condition(self, node: SchemaNode) -> bool:
        return node.is_enum is None

    def apply(self, node: SchemaNode) -> None:
        node.is_enum = False
        node.is_enum_array = False
        if self.is_enum_array(node):
            node.is_enum_array = True
        elif self.is_enum(node.raw):
            node.is_enum = True
            if keyword("only") not in node.raw:
                node.attributes["only"] = CompiledExpression.constant(
                    "only", ResultKind.BOOLEAN, True, node.pointer,
                )

    @staticmethod
    def _all_const(members: Any) -> bool:
        return isinstance(members, list) and all(
            isinstance(member, dict) and "const" in member for member in members
        )

    def is_enum_array(self, node: SchemaNode) -> bool:
        items = node.raw.get("items")
        if node.type != "array" or not isinstance(items, dict):
            return False
        if node.raw.get("uniqueItems") is not True:
            return False
        alternatives = [items[c] for c in COMPOSITIONS if c in items]
        if alternatives:
            return all(self._all_const(members) for members in alternatives)
        return "enum" in items

    def is_enum(self, raw: Dict[str, Any]) -> bool:
        if raw.get("enum") is not None:
            return True
        return any(
            self._all_const(raw[c]) for c in ("oneOf", "anyOf") if c in raw
        )


class CompileUniform(CompileStep):
    """Flag arrays whose items schema is not a composition."""

    name = "Uniform compilation"

    def condition(self, node: SchemaNode) -> bool:
        return node.type == "array" and node.uniform is None

    def apply(self, node: SchemaNode) -> None:
        items = node.raw.get("items")
        node.uniform = not (
            isinstance(items, dict) and any(c in items for c in COMPOSITIONS)
        )


class CompileOrder(CompileStep):
    """Order object properties, pulling tabs and groups to their leader."""

    name = "Order compilation"

    def condition(self, node: SchemaNode) -> bool:
        return (
            node.type == "object"
            and isinstance(node.raw.get("properties"), dict)
            and node.order is None
        )

    def apply(self, node: SchemaNode) -> None:
        tabs: Dict[str, int] = {}
        groups: Dict[str, int] = {}
        fields: List[OrderEntry] = []
        for fieldnum, (fieldname, schema) in enumerate(node.raw["properties"].items()):
            schema = schema if isinstance(schema, dict) else {}
            tabname = to_text(schema.get("_tab"))
            groupname = to_text(schema.get("_group"))
            if tabname and tabname not in tabs:
                tabs[tabname] = fieldnum
            if groupname and groupname not in groups:
                groups[groupname] = fieldnum
            fields.append(OrderEntry(
                fieldname=fieldname,
                fieldnum=fieldnum,
                tabnum=tabs[tabname] if tabname else fieldnum,
                groupnum=groups[groupname] if groupname else fieldnum,
                tabname=tabname or None,
                groupname=groupname or None,
            ))
        node.order = sorted(fields, key=lambda entry: entry.sort_key)


class CompileValidate(CompileStep):
    """Bind the predicate compiled by the validation engine."""

    name = "Validate compilation"

    def __init__(self, engine: ValidationEngine):
        self.engine = engine

    def condition(self, node: SchemaNode) -> bool:
        return node.validate is None

    def apply(self, node: SchemaNode) -> None:
        node.validate = self.engine.compile(node.raw if node.raw is not None else True)


class CompileExpr(CompileStep):
    """Compile one dynamic attribute declared under its ``_<name>`` keyword."""

    def __init__(self, attribute: str, kind: ResultKind, compiler: ExpressionCompiler):
        self.attribute = attribute
        self.kind = ResultKind(kind)
        self.compiler = compiler
        self.name = f"Compile {self.kind.value} {keyword(attribute)}"

    def condition(self, node: SchemaNode) -> bool:
        return keyword(self.attribute) in node.raw and self.attribute not in node.attributes

    def apply(self, node: SchemaNode) -> None:
        node.attributes[self.attribute] = self.compiler.compile(
            node, self.attribute, node.raw[keyword(self.attribute)], self.kind,
        )


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


class SchemaCompiler:
    """Compiles one raw schema document into a ``SchemaTree``.

    The document is checked against the meta-schema and deep-copied at
    construction; ``compile()`` runs every pass once and returns the root
    node. Compiling the same instance again returns the same root.

    Args:
        schema: Raw schema document, ``True`` (accept anything) or ``False``.
        engine: Validation engine handle; a private one is created if omitted.
        config: Configuration; defaults to the global configuration.

    Raises:
        SchemaValidationError: If the document fails the meta-schema check.
    """

    def __init__(
        self,
        schema: Any = True,
        engine: Optional[ValidationEngine] = None,
        config: Optional[DynamikConfig] = None,
    ):
        self.config = config or get_config()
        self.engine = engine or ValidationEngine()

        if self.config.check_meta_schema:
            valid, diagnostic = self.engine.check_schema(schema)
            if not valid:
                raise SchemaValidationError(
                    f"schema is not valid => \n {diagnostic}", diagnostic=diagnostic,
                )
        if schema is True:
            self.document: Dict[str, Any] = {}
        elif schema is False:
            self.document = {"not": {}}
        elif isinstance(schema, Mapping):
            self.document = deep_copy(dict(schema))
        else:
            raise SchemaValidationError(
                f"schema must be an object or a boolean, got {type(schema).__name__}",
            )

        self.tree = SchemaTree(self.document)
        self.expressions = ExpressionCompiler(self.config)
        self.passes: List[List[CompileStep]] = [
            [CompileDefs(self.document)],
            [CompileType(self.config.default_type)],
            [CompileWiring()],
            [CompileEnum()],
            [CompileUniform()],
            [CompileOrder()],
            [CompileValidate(self.engine)],
            [
                CompileExpr(attribute, kind, self.expressions)
                for attribute, kind in DYNAMIC_ATTRIBUTES.items()
            ],
        ]
        self._compiled = False

    @property
    def root(self) -> SchemaNode:
        return self.tree.root

    def compile(self) -> SchemaNode:
        """Run every pass and return the compiled root node."""
        if self._compiled:
            return self.tree.root
        start = time.perf_counter()
        try:
            for steps in self.passes:
                self.apply_steps(self.tree.root, steps)
        except DynamikException:
            metrics.record_compilation("error", time.perf_counter() - start)
            raise
        duration = time.perf_counter() - start
        metrics.record_compilation("success", duration)
        self._compiled = True
        logger.info(
            "Schema compiled: %d nodes in %.2f ms", len(self.tree), duration * 1000,
        )
        return self.tree.root

    def apply_steps(self, node: SchemaNode, steps: List[CompileStep]) -> None:
        """Apply ``steps`` to ``node`` then walk its children."""
        for step in steps:
            try:
                if step.condition(node):
                    step.apply(node)
            except DynamikException as exc:
                exc.context["pointer"] = node.location
                exc.context["step"] = step.name
                self._report(node, step, exc)
                raise
            except Exception as exc:
                self._report(node, step, exc)
                raise SchemaCompileError(
                    str(exc), pointer=node.location, step=step.name,
                ) from exc

        for child in self._children(node):
            self.apply_steps(child, steps)

    def _children(self, node: SchemaNode) -> List[SchemaNode]:
        raw = node.raw
        children: List[SchemaNode] = []
        properties = raw.get("properties")
        if isinstance(properties, dict):
            for name, child in properties.items():
                if isinstance(child, dict):
                    children.append(self.tree.child(node, ("properties", name), child))
        items = raw.get("items")
        if isinstance(items, dict):
            children.append(self.tree.child(node, ("items", None), items))
        for composition in COMPOSITIONS:
            members = raw.get(composition)
            if isinstance(members, list):
                for i, member in enumerate(members):
                    if isinstance(member, dict):
                        children.append(self.tree.child(node, (composition, i), member))
        return children

    @staticmethod
    def _report(node: SchemaNode, step: CompileStep, error: BaseException) -> None:
        logger.error(
            "compile error: at=%s step=%s message=%s",
            node.location, step.name, error,
        )
        metrics.record_step_failure(step.name)


def compile_schema(
    schema: Any = True,
    engine: Optional[ValidationEngine] = None,
    config: Optional[DynamikConfig] = None,
) -> SchemaNode:
    """Compile ``schema`` and return its root node."""
    return SchemaCompiler(schema, engine=engine, config=config).compile()


__all__ = [
    "CompileStep",
    "CompileDefs",
    "CompileType",
    "CompileWiring",
    "CompileEnum",
    "CompileUniform",
    "CompileOrder",
    "CompileValidate",
    "CompileExpr",
    "SchemaCompiler",
    "compile_schema",
]
