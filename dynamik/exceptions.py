# -*- coding: utf-8 -*-
"""Dynamik Exception Hierarchy.

This module provides the exception hierarchy for dynamik with rich error
context for debugging and diagnostics.

Exception Hierarchy:
    DynamikException (base)
    ├── SchemaException
    │   ├── SchemaValidationError
    │   └── SchemaCompileError
    │       ├── UnsupportedUnionError
    │       ├── MissingNullInUnionError
    │       └── DefinitionNotFoundError
    ├── PointerException
    │   ├── PointerSyntaxError
    │   └── PointerRangeError
    ├── ExpressionError
    └── DataException
        └── InvalidRootError

All exceptions include rich context:
- error_code: Unique error identifier
- context: Dictionary with error-specific details
- timestamp: When the error occurred

Schema compile errors are fatal and abort compilation. Pointer errors are
fatal to the pointer operation only. Expression errors never leave a
compiled expression: they are logged and replaced by a safe default.

Example:
    >>> from dynamik.exceptions import DefinitionNotFoundError
    >>> raise DefinitionNotFoundError(
    ...     message="Definition not found for doc#/$defs/missing",
    ...     reference="doc#/$defs/missing",
    ... )
"""

import json
import re
from datetime import datetime
from typing import Any, Dict, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class DynamikException(Exception):
    """Base exception for all dynamik errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "DYN_SCHEMA_DEFINITION_NOT_FOUND_ERROR")
        context: Dictionary with error-specific details
        timestamp: When the error occurred
    """

    # Base error code prefix
    ERROR_PREFIX = "DYN"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize dynamik exception with rich context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now()

    def _generate_error_code(self) -> str:
        """Generate error code based on exception class.

        Returns:
            Error code like "DYN_POINTER_POINTER_SYNTAX_ERROR"
        """
        class_name = self.__class__.__name__
        # Convert CamelCase to SCREAMING_SNAKE_CASE
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', class_name).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        """String representation with error code and message."""
        return f"[{self.error_code}] - {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


# ==============================================================================
# Schema Exceptions
# ==============================================================================

class SchemaException(DynamikException):
    """Base exception for schema compilation errors."""
    ERROR_PREFIX = "DYN_SCHEMA"


class SchemaValidationError(SchemaException):
    """Raw schema document fails the meta-schema check.

    Example:
        >>> raise SchemaValidationError(
        ...     message="schema is not valid",
        ...     diagnostic="at /type: 'dummy' is not valid under any of the given schemas",
        ... )
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        diagnostic: Optional[str] = None,
    ):
        context = context or {}
        if diagnostic:
            context["diagnostic"] = diagnostic
        self.diagnostic = diagnostic
        super().__init__(message, context=context)


class SchemaCompileError(SchemaException):
    """A compile step failed on a schema node.

    The compiler adds ``pointer`` and ``step`` to the context of any error
    escaping a step before propagating it.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        pointer: Optional[str] = None,
        step: Optional[str] = None,
    ):
        context = context or {}
        if pointer is not None:
            context["pointer"] = pointer
        if step is not None:
            context["step"] = step
        super().__init__(message, context=context)

    @property
    def pointer(self) -> Optional[str]:
        return self.context.get("pointer")

    @property
    def step(self) -> Optional[str]:
        return self.context.get("step")


class UnsupportedUnionError(SchemaCompileError):
    """Type union with three or more members."""


class MissingNullInUnionError(SchemaCompileError):
    """Two-member type union where neither member is ``null``."""


class DefinitionNotFoundError(SchemaCompileError):
    """A ``$ref`` names a definition absent from ``$defs``."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        reference: Optional[str] = None,
        reference_at: Optional[str] = None,
        pointer: Optional[str] = None,
        step: Optional[str] = None,
    ):
        context = context or {}
        if reference is not None:
            context["reference"] = reference
        if reference_at is not None:
            context["reference_at"] = reference_at
        super().__init__(message, context=context, pointer=pointer, step=step)


# ==============================================================================
# Pointer Exceptions
# ==============================================================================

class PointerException(DynamikException):
    """Base exception for pointer parsing and resolution."""
    ERROR_PREFIX = "DYN_POINTER"


class PointerSyntaxError(PointerException):
    """Pointer text matches neither the absolute nor the relative grammar."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        pointer: Any = None,
    ):
        context = context or {}
        if pointer is not None:
            context["pointer"] = pointer
        super().__init__(message, context=context)


class PointerRangeError(PointerException):
    """Relative pointer ascends past the root.

    Example:
        >>> raise PointerRangeError(
        ...     message="Pointer reference out of limit",
        ...     pointer="5",
        ...     base="/b/b",
        ... )
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        pointer: Optional[str] = None,
        base: Optional[str] = None,
    ):
        context = context or {}
        if pointer is not None:
            context["pointer"] = pointer
        if base is not None:
            context["base"] = base
        super().__init__(message, context=context)


# ==============================================================================
# Expression Exceptions
# ==============================================================================

class ExpressionError(DynamikException):
    """Expression could not be parsed or evaluated.

    Never escapes a compiled expression: callers see the kind-specific
    default instead.
    """
    ERROR_PREFIX = "DYN_EXPRESSION"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ):
        context = context or {}
        if source is not None:
            context["source"] = source
        super().__init__(message, context=context)


# ==============================================================================
# Data Exceptions
# ==============================================================================

class DataException(DynamikException):
    """Base exception for live data graph errors."""
    ERROR_PREFIX = "DYN_DATA"


class InvalidRootError(DataException):
    """Live graph root is not an object or an array."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        value_type: Optional[str] = None,
    ):
        context = context or {}
        if value_type is not None:
            context["value_type"] = value_type
        super().__init__(message, context=context)


# ==============================================================================
# Utilities
# ==============================================================================

def format_exception_chain(exc: BaseException) -> str:
    """Format exception chain for logging/display.

    Args:
        exc: Exception to format

    Returns:
        Formatted string with full exception chain
    """
    lines = []
    current: Optional[BaseException] = exc

    while current is not None:
        if isinstance(current, DynamikException):
            lines.append(str(current))
            if current.context:
                lines.append(f"  Context: {current.context}")
        else:
            lines.append(f"{type(current).__name__}: {current}")
        current = current.__cause__

    return "\n".join(lines)


__all__ = [
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
    "format_exception_chain",
]
