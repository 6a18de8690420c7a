"""
Dynamik: Schema-Driven Reactive JSON
====================================

Compiles JSON-Schema documents into pointer-addressable schema trees and
drives live, observable JSON graphs from them.

Schema side: SchemaCompiler, SchemaNode, SchemaTree, ValidationEngine
Data side: Dynamik, DynPointer, DynObject, DynArray
"""

from ._version import __version__

__license__ = "MIT"

# Pointer algebra
from dynamik.pointer import Pointer, move, split

# Schema compilation
from dynamik.models import (
    ChangeEvent,
    DYNAMIC_ATTRIBUTES,
    OrderEntry,
    ResultKind,
    SchemaNode,
    SchemaTree,
)
from dynamik.validation import ValidationEngine
from dynamik.expressions import CompiledExpression, ExpressionCompiler
from dynamik.compiler import SchemaCompiler, compile_schema

# Live data graph
from dynamik.data import DataInitialiser, DataReleaser
from dynamik.runtime import DynArray, Dynamik, DynObject, DynPointer

# Ambient
from dynamik.config import DynamikConfig, get_config, reset_config, set_config
from dynamik.exceptions import (
    DataException,
    DefinitionNotFoundError,
    DynamikException,
    ExpressionError,
    InvalidRootError,
    MissingNullInUnionError,
    PointerException,
    PointerRangeError,
    PointerSyntaxError,
    SchemaCompileError,
    SchemaException,
    SchemaValidationError,
    UnsupportedUnionError,
)

__all__ = [
    "__version__",
    # Pointer algebra
    "Pointer",
    "move",
    "split",
    # Schema compilation
    "ChangeEvent",
    "DYNAMIC_ATTRIBUTES",
    "OrderEntry",
    "ResultKind",
    "SchemaNode",
    "SchemaTree",
    "ValidationEngine",
    "CompiledExpression",
    "ExpressionCompiler",
    "SchemaCompiler",
    "compile_schema",
    # Live data graph
    "DataInitialiser",
    "DataReleaser",
    "Dynamik",
    "DynPointer",
    "DynObject",
    "DynArray",
    # Configuration
    "DynamikConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "DynamikException",
    "SchemaException",
    "SchemaValidationError",
    "SchemaCompileError",
    "UnsupportedUnionError",
    "MissingNullInUnionError",
    "DefinitionNotFoundError",
    "PointerException",
    "PointerSyntaxError",
    "PointerRangeError",
    "ExpressionError",
    "DataException",
    "InvalidRootError",
]
