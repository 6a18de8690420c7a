# -*- coding: utf-8 -*-
"""
Expression Compiler

Compiles dynamic attribute declarations into callables of
``(value, pointer, tag) -> result``. Expressions are parsed once with
``ast`` and evaluated by a whitelisting tree walker; nothing is handed to
``eval``.

Expression syntax (a restricted Python expression):
    - ``value``: the current value
    - ``$``: the bound pointer (``$.key``, ``$.parent.value``, ``$.context``)
    - ``context``: the engine context object
    - ``_`<pointer>```: value at a pointer relative to the bound pointer
    - ``true``/``false``/``null`` as well as the Python spellings
    - whitelisted functions: len, str, int, float, bool, abs, min, max,
      round, sum, sorted

Templates interpolate ``${expr}`` holes into literal text.

Result kinds:
    string:  template, rendered as text, failures give ""
    boolean: expression coerced to bool (None kept), failures give True
    any:     expression, or list of templates each followed by the fragment
             terminator and concatenated, failures give None

Example:
    >>> compiled = ExpressionCompiler().compile(node, "hidden", "value > 3", ResultKind.BOOLEAN)
    >>> compiled(5, pointer)
    True
"""

from __future__ import annotations

import ast
import logging
import operator
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from dynamik import metrics
from dynamik.config import DynamikConfig, get_config
from dynamik.exceptions import ExpressionError
from dynamik.models import ResultKind, SchemaNode
from dynamik.utils import to_text

logger = logging.getLogger(__name__)

POINTER_NAME = "__pointer__"
REFERENCE_NAME = "__ref{}__"

CONSTANTS: Dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
}

FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "sum": sum,
    "sorted": sorted,
}

BINARY_OPERATORS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

UNARY_OPERATORS: Dict[type, Callable[[Any], Any]] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

COMPARE_OPERATORS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda x, y: x in y,
    ast.NotIn: lambda x, y: x not in y,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

ALLOWED_NODES: Tuple[type, ...] = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.BinOp,
    ast.UnaryOp,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    ast.keyword,
    ast.List,
    ast.Tuple,
    ast.Dict,
) + tuple(BINARY_OPERATORS) + tuple(UNARY_OPERATORS) + tuple(COMPARE_OPERATORS)

KIND_DEFAULTS: Dict[ResultKind, Any] = {
    ResultKind.STRING: "",
    ResultKind.BOOLEAN: True,
    ResultKind.ANY: None,
}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _rewrite(source: str) -> Tuple[str, List[str]]:
    """Replace backreferences and ``$`` outside string literals with names.

    Returns:
        Rewritten text and the backreference pointers in order.
    """
    out: List[str] = []
    references: List[str] = []
    quote: Optional[str] = None
    i = 0
    while i < len(source):
        ch = source[i]
        if quote:
            out.append(ch)
            if ch == "\\" and i + 1 < len(source):
                out.append(source[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch in ("'", '"'):
            quote = ch
            out.append(ch)
        elif ch == "_" and source.startswith("`", i + 1) and not (
            i > 0 and (source[i - 1].isalnum() or source[i - 1] == "_")
        ):
            end = source.find("`", i + 2)
            if end < 0:
                raise ExpressionError("unterminated backreference", source=source)
            out.append(REFERENCE_NAME.format(len(references)))
            references.append(source[i + 2:end].strip())
            i = end + 1
            continue
        elif ch == "$":
            out.append(POINTER_NAME)
        else:
            out.append(ch)
        i += 1
    if quote:
        raise ExpressionError("unterminated string literal", source=source)
    return "".join(out), references


class Program:
    """One parsed expression: AST plus its backreference pointers."""

    def __init__(self, source: str):
        self.source = source
        text, self.references = _rewrite(source)
        try:
            self.tree = ast.parse(f"({text.strip()}\n)", mode="eval")
        except SyntaxError as exc:
            raise ExpressionError(
                f"invalid expression: {exc.msg}", source=source,
            ) from exc
        self._check()

    def _check(self) -> None:
        names = set(CONSTANTS) | set(FUNCTIONS) | {"value", "context", POINTER_NAME}
        names |= {REFERENCE_NAME.format(i) for i in range(len(self.references))}
        for node in ast.walk(self.tree):
            if not isinstance(node, ALLOWED_NODES):
                raise ExpressionError(
                    f"unsupported syntax: {type(node).__name__}", source=self.source,
                )
            if isinstance(node, ast.Name) and node.id not in names:
                raise ExpressionError(
                    f"unknown name: {node.id}", source=self.source,
                )
            if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
                raise ExpressionError(
                    f"private attribute access: {node.attr}", source=self.source,
                )
            if isinstance(node, ast.Call) and not (
                isinstance(node.func, ast.Name) and node.func.id in FUNCTIONS
            ):
                raise ExpressionError(
                    "only whitelisted functions may be called", source=self.source,
                )
            if isinstance(node, ast.Dict) and any(key is None for key in node.keys):
                raise ExpressionError("dict unpacking not allowed", source=self.source)

    def evaluate(self, value: Any, pointer: Any, tag: Optional[Callable[..., Any]]) -> Any:
        scope = {
            "value": value,
            POINTER_NAME: pointer,
            "context": getattr(pointer, "context", None),
        }
        return _Evaluator(scope, self.references, tag).visit(self.tree.body)


def _split_template(text: str) -> List[Union[str, Program]]:
    """Split template text into literal strings and ``${...}`` programs."""
    parts: List[Union[str, Program]] = []
    buffer: List[str] = []
    i = 0
    while i < len(text):
        if not text.startswith("${", i):
            buffer.append(text[i])
            i += 1
            continue
        depth, j, quote = 1, i + 2, None
        while j < len(text):
            ch = text[j]
            if quote:
                if ch == "\\":
                    j += 1
                elif ch == quote:
                    quote = None
            elif ch in ("'", '"', "`"):
                quote = ch
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    break
            j += 1
        else:
            raise ExpressionError("unterminated interpolation", source=text)
        if buffer:
            parts.append("".join(buffer))
            buffer = []
        parts.append(Program(text[i + 2:j]))
        i = j + 1
    if buffer:
        parts.append("".join(buffer))
    return parts


class Template:
    """Literal text with interpolated expression holes."""

    def __init__(self, source: str):
        self.source = source
        self.parts = _split_template(source)

    @property
    def references(self) -> List[str]:
        return [ref for part in self.parts if isinstance(part, Program) for ref in part.references]

    def render(self, value: Any, pointer: Any, tag: Optional[Callable[..., Any]]) -> str:
        return "".join(
            part if isinstance(part, str) else to_text(part.evaluate(value, pointer, tag))
            for part in self.parts
        )


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class _Evaluator:
    """Walks a checked AST against one evaluation scope."""

    def __init__(
        self,
        scope: Dict[str, Any],
        references: Sequence[str],
        tag: Optional[Callable[..., Any]],
    ):
        self.scope = scope
        self.references = references
        self.tag = tag

    def visit(self, node: ast.AST) -> Any:
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise ExpressionError(f"unsupported syntax: {type(node).__name__}")
        return method(node)

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        name = node.id
        if name in self.scope:
            return self.scope[name]
        if name.startswith("__ref"):
            return self._dereference(self.references[int(name[5:-2])])
        if name in CONSTANTS:
            return CONSTANTS[name]
        if name in FUNCTIONS:
            return FUNCTIONS[name]
        raise ExpressionError(f"unknown name: {name}")

    def _dereference(self, pointer: str) -> Any:
        if self.tag is None:
            raise ExpressionError(f"no tag bound to dereference `{pointer}`")
        return self.tag(pointer[1:] if pointer.startswith("#") else pointer)

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        target = self.visit(node.value)
        if target is None:
            raise ExpressionError(f"cannot read '{node.attr}' of null")
        if isinstance(target, Mapping):
            return target.get(node.attr)
        return getattr(target, node.attr, None)

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        target = self.visit(node.value)
        key = self.visit(node.slice)
        if target is None:
            raise ExpressionError(f"cannot read {key!r} of null")
        if isinstance(key, slice):
            return target[key]
        try:
            return target[key]
        except (KeyError, IndexError):
            return None

    def visit_Slice(self, node: ast.Slice) -> slice:
        return slice(
            self.visit(node.lower) if node.lower else None,
            self.visit(node.upper) if node.upper else None,
            self.visit(node.step) if node.step else None,
        )

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        return BINARY_OPERATORS[type(node.op)](self.visit(node.left), self.visit(node.right))

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        return UNARY_OPERATORS[type(node.op)](self.visit(node.operand))

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        result = None
        for operand in node.values:
            result = self.visit(operand)
            if isinstance(node.op, ast.And) and not result:
                return result
            if isinstance(node.op, ast.Or) and result:
                return result
        return result

    def visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            if not COMPARE_OPERATORS[type(op)](left, right):
                return False
            left = right
        return True

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Call(self, node: ast.Call) -> Any:
        function = FUNCTIONS[node.func.id]
        args = [self.visit(arg) for arg in node.args]
        kwargs = {kw.arg: self.visit(kw.value) for kw in node.keywords}
        return function(*args, **kwargs)

    def visit_List(self, node: ast.List) -> List[Any]:
        return [self.visit(element) for element in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> Tuple[Any, ...]:
        return tuple(self.visit(element) for element in node.elts)

    def visit_Dict(self, node: ast.Dict) -> Dict[Any, Any]:
        return {self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values)}


# ---------------------------------------------------------------------------
# Compiled expressions
# ---------------------------------------------------------------------------


class CompiledExpression:
    """Callable dynamic attribute.

    Evaluation failures never escape: they are logged and the kind default
    is returned instead.

    Attributes:
        attribute: Dynamic attribute name.
        kind: Declared result kind.
        source: Raw declaration (string, list or literal).
        pointer: Pointer of the schema node that declared it.
        references: Backreference pointers found in the source.
    """

    def __init__(
        self,
        attribute: str,
        kind: ResultKind,
        source: Any,
        pointer: Optional[str],
        evaluate: Callable[[Any, Any, Optional[Callable[..., Any]]], Any],
        references: Sequence[str] = (),
        config: Optional[DynamikConfig] = None,
    ):
        self.attribute = attribute
        self.kind = kind
        self.source = source
        self.pointer = pointer
        self.references = list(references)
        self._evaluate = evaluate
        self._config = config

    @property
    def default(self) -> Any:
        return KIND_DEFAULTS[self.kind]

    @classmethod
    def constant(
        cls,
        attribute: str,
        kind: ResultKind,
        result: Any,
        pointer: Optional[str] = None,
    ) -> CompiledExpression:
        return cls(attribute, kind, result, pointer, lambda value, ptr, tag: result)

    def __call__(
        self,
        value: Any,
        pointer: Any = None,
        tag: Optional[Callable[..., Any]] = None,
    ) -> Any:
        if tag is None and pointer is not None:
            tag = getattr(pointer, "tag", None)
        try:
            return self._evaluate(value, pointer, tag)
        except Exception as exc:
            report_failure("eval", self.attribute, self.kind, self.pointer, exc, self._config)
            return self.default

    def __repr__(self) -> str:
        return (
            f"CompiledExpression(attribute={self.attribute!r}, "
            f"kind={self.kind.value!r}, source={self.source!r})"
        )


def report_failure(
    phase: str,
    attribute: str,
    kind: ResultKind,
    pointer: Optional[str],
    error: BaseException,
    config: Optional[DynamikConfig] = None,
) -> None:
    """Log and count a non-fatal expression failure."""
    config = config or get_config()
    if config.log_expression_failures:
        logger.error(
            "Fail to %s expr: attribute=%s pointer=%s error=%s",
            phase, attribute, pointer, error,
        )
    metrics.record_expression_failure(attribute, kind.value)


class ExpressionCompiler:
    """Compiles dynamic attribute declarations for schema nodes.

    Args:
        config: Configuration (fragment terminator, failure logging);
            defaults to the global configuration.
    """

    def __init__(self, config: Optional[DynamikConfig] = None):
        self.config = config or get_config()

    def compile(
        self,
        node: SchemaNode,
        attribute: str,
        raw: Any,
        kind: Union[ResultKind, str],
    ) -> CompiledExpression:
        """Compile ``raw`` for ``attribute`` on ``node``.

        Backreferences found in the source register ``node`` as a watcher
        of the nodes they dereference to.
        """
        kind = ResultKind(kind)
        try:
            evaluate, references = self._build(raw, kind)
        except ExpressionError as exc:
            report_failure("compile", attribute, kind, node.pointer, exc, self.config)
            return CompiledExpression.constant(
                attribute, kind, KIND_DEFAULTS[kind], node.pointer,
            )
        self._watch(node, references)
        return CompiledExpression(
            attribute, kind, raw, node.pointer, evaluate, references, self.config,
        )

    def _build(self, raw: Any, kind: ResultKind):
        if kind is ResultKind.STRING:
            return self._build_string(raw)
        if kind is ResultKind.BOOLEAN:
            return self._build_boolean(raw)
        return self._build_any(raw)

    def _build_string(self, raw: Any):
        if isinstance(raw, list):
            return self._build_fragments(raw)
        if not isinstance(raw, str):
            text = to_text(raw)
            return (lambda value, pointer, tag: text), []
        template = Template(raw)
        return template.render, template.references

    def _build_boolean(self, raw: Any):
        if raw is None or isinstance(raw, bool):
            return (lambda value, pointer, tag: raw), []
        if not isinstance(raw, str):
            result = bool(raw)
            return (lambda value, pointer, tag: result), []
        program = Program(raw)

        def evaluate(value, pointer, tag):
            result = program.evaluate(value, pointer, tag)
            return None if result is None else bool(result)

        return evaluate, program.references

    def _build_any(self, raw: Any):
        if isinstance(raw, str):
            program = Program(raw)
            return program.evaluate, program.references
        if isinstance(raw, list):
            return self._build_fragments(raw)
        return (lambda value, pointer, tag: raw), []

    def _build_fragments(self, raw: List[Any]):
        terminator = self.config.fragment_terminator
        templates = [Template(str(fragment)) for fragment in raw]

        def evaluate(value, pointer, tag):
            return "".join(
                template.render(value, pointer, tag) + terminator
                for template in templates
            )

        return evaluate, [ref for template in templates for ref in template.references]

    def _watch(self, node: SchemaNode, references: Sequence[str]) -> None:
        for reference in references:
            watched = node.deref(reference)
            if watched is None or watched is node:
                continue
            if node.pointer not in watched.watchers:
                watched.watchers.add(node.pointer)
                logger.debug("schema %r now watches %r", node.pointer, watched.pointer)


__all__ = [
    "CONSTANTS",
    "FUNCTIONS",
    "KIND_DEFAULTS",
    "Program",
    "Template",
    "CompiledExpression",
    "ExpressionCompiler",
    "report_failure",
]
