# -*- coding: utf-8 -*-
"""
Data hooks run by the live graph around writes.

``DataInitialiser`` walks a freshly written subtree against its schema:
at every position an ``_init`` function fills an unset value, then an
``_expression`` function overwrites it. ``DataReleaser`` walks the
outgoing subtree before it is replaced and currently has no steps.

Hook writes go straight to the underlying containers: they bypass the
read-only policy and emit no change events.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from dynamik.models import COMPOSITIONS, SchemaNode
from dynamik.utils import is_array, is_object

logger = logging.getLogger(__name__)


class DataStep:
    """A transformation applied at one position of the live graph."""

    attribute = ""

    def condition(self, schema: SchemaNode, pointer: Any) -> bool:
        return schema.attribute(self.attribute) is not None

    def action(self, schema: SchemaNode, pointer: Any) -> None:
        function = schema.attribute(self.attribute)
        value = function(pointer.value, pointer, pointer.tag)
        logger.debug("_%s hook sets %r at %r", self.attribute, value, str(pointer))
        pointer.dyn._store(pointer.path, value)


class InitStep(DataStep):
    """Fill an unset (missing or None) value from ``_init``."""

    attribute = "init"

    def condition(self, schema: SchemaNode, pointer: Any) -> bool:
        return super().condition(schema, pointer) and pointer.value is None


class ExprStep(DataStep):
    """Overwrite the value with the result of ``_expression``."""

    attribute = "expression"


class DataCompiler:
    """Walks a live subtree in lockstep with its schema applying steps."""

    def __init__(self, steps: List[DataStep]):
        self.steps = steps

    def apply(
        self,
        pointer: Any,
        schema: Optional[SchemaNode],
        include_self: bool = True,
    ) -> None:
        """Apply the steps at ``pointer`` and below.

        Args:
            pointer: Bound pointer of the subtree root.
            schema: Schema node of that position (None means no policy).
            include_self: False to start with the children of ``pointer``.
        """
        if not self.steps or schema is None:
            return
        parent = schema.parent
        if include_self and parent is not None and parent.uniform is False and schema is parent.items:
            # element written into a non-uniform array
            self._apply_branches(schema, pointer)
        else:
            self.apply_steps(schema, pointer, include_self)

    def apply_steps(
        self,
        schema: Optional[SchemaNode],
        pointer: Any,
        include_self: bool = True,
    ) -> None:
        if schema is None:
            return
        if include_self:
            for step in self.steps:
                if step.condition(schema, pointer):
                    step.action(schema, pointer)

        value = pointer.value
        if value is None:
            return
        if is_array(value):
            items = schema.items
            if items is None:
                return
            for index in range(len(value)):
                if schema.uniform is False:
                    self._apply_branches(items, pointer.child(index))
                else:
                    self.apply_steps(items, pointer.child(index))
        elif is_object(value):
            for name, child in schema.properties.items():
                self.apply_steps(child, pointer.child(name))

    def _apply_branches(self, items: SchemaNode, pointer: Any) -> None:
        value = pointer.value
        for branch in (b for c in COMPOSITIONS for b in items.compositions(c)):
            match = branch.attribute("match")
            if match is not None and match(value, pointer, pointer.tag):
                self.apply_steps(branch, pointer)


#: Initialises data assigned into the live graph.
DataInitialiser = DataCompiler([InitStep(), ExprStep()])

#: Releases data replaced in the live graph.
DataReleaser = DataCompiler([])


__all__ = [
    "DataStep",
    "InitStep",
    "ExprStep",
    "DataCompiler",
    "DataInitialiser",
    "DataReleaser",
]
