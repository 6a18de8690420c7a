# -*- coding: utf-8 -*-
"""
Validation Engine Handle

Thin handle around ``jsonschema`` Draft 2020-12. Each handle builds its own
validator class with the reserved dynamik vocabulary registered as
annotation-only keywords, so no process-wide state is touched.

Example:
    >>> engine = ValidationEngine()
    >>> ok, diagnostic = engine.check_schema({"type": "dummy"})
    >>> ok
    False
    >>> engine.compile({"type": "number"})(12)
    True
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Tuple

from jsonschema import Draft202012Validator, validators
from jsonschema.exceptions import ValidationError

from dynamik.models import RESERVED_KEYWORDS

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], bool]


def _annotation(validator, value, instance, schema):
    """Keyword that never produces errors."""
    return None


def _format_error(error: ValidationError) -> str:
    path = "/".join(str(part) for part in error.absolute_path)
    return f"at /{path}: {error.message}"


class ValidationEngine:
    """Meta-schema checks and per-fragment predicates.

    Args:
        vocabulary: Extra annotation-only keywords on top of the reserved ones.
    """

    def __init__(self, vocabulary: Optional[Iterable[str]] = None):
        keywords = list(RESERVED_KEYWORDS) + list(vocabulary or [])
        self.vocabulary = tuple(dict.fromkeys(keywords))
        self.validator_class = validators.extend(
            Draft202012Validator,
            {name: _annotation for name in self.vocabulary},
        )
        self._meta_validator = Draft202012Validator(Draft202012Validator.META_SCHEMA)
        logger.debug("ValidationEngine created with %d annotation keywords", len(self.vocabulary))

    def check_schema(self, document: Any) -> Tuple[bool, str]:
        """Check a raw document against the Draft 2020-12 meta-schema.

        Returns:
            ``(True, "")`` when valid, else ``(False, diagnostic)``.
        """
        errors = sorted(
            self._meta_validator.iter_errors(document),
            key=lambda e: [str(part) for part in e.absolute_path],
        )
        if not errors:
            return True, ""
        return False, "\n".join(_format_error(error) for error in errors)

    def compile(self, fragment: Any = True) -> Predicate:
        """Compile a predicate for one schema fragment.

        ``True`` (or None) accepts everything and ``False`` rejects
        everything.
        """
        if fragment is None or fragment is True:
            return lambda value: True
        if fragment is False:
            return lambda value: False
        validator = self.validator_class(fragment)
        return validator.is_valid

    def errors(self, fragment: Any, value: Any) -> List[str]:
        """Human-readable reasons ``value`` fails ``fragment``."""
        if fragment is None or fragment is True:
            return []
        if fragment is False:
            return ["at /: false schema rejects every value"]
        validator = self.validator_class(fragment)
        return [_format_error(error) for error in validator.iter_errors(value)]


__all__ = [
    "Predicate",
    "ValidationEngine",
]
