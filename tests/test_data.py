# -*- coding: utf-8 -*-
"""
Tests for the data hooks run around writes (_init and _expression).
"""

import pytest

from dynamik.compiler import SchemaCompiler
from dynamik.data import DataCompiler, DataInitialiser, DataReleaser, ExprStep, InitStep
from dynamik.runtime import Dynamik


@pytest.fixture
def person_schema():
    return {
        "type": "object",
        "properties": {
            "name": {"type": "string", "_init": "'anonymous'"},
            "greeting": {"type": "string", "_expression": "'hello ' + str(_`1/name`)"},
            "age": {"type": "integer"},
        },
    }


@pytest.fixture
def shapes_schema():
    return {
        "type": "array",
        "items": {
            "type": "object",
            "oneOf": [
                {
                    "type": "object",
                    "_match": "value.kind == 'circle'",
                    "properties": {"sides": {"type": "integer", "_init": "0"}},
                },
                {
                    "type": "object",
                    "_match": "value.kind == 'square'",
                    "properties": {"sides": {"type": "integer", "_init": "4"}},
                },
            ],
        },
    }


class TestInitialiser:
    """Tests for hooks run on construction and on writes."""

    def test_steps(self):
        assert [type(step) for step in DataInitialiser.steps] == [InitStep, ExprStep]
        assert DataReleaser.steps == []

    def test_construction_fills_unset_values(self, person_schema):
        dyn = Dynamik({}, person_schema)
        assert dyn.root["name"] == "anonymous"
        assert dyn.root["greeting"] == "hello anonymous"
        assert "age" not in dyn.root

    def test_init_keeps_existing_values(self, person_schema):
        dyn = Dynamik({"name": "ann"}, person_schema)
        assert dyn.root["name"] == "ann"
        assert dyn.root["greeting"] == "hello ann"

    def test_expression_overwrites_values(self, person_schema):
        dyn = Dynamik({"name": "ann", "greeting": "bye"}, person_schema)
        assert dyn.root["greeting"] == "hello ann"

    def test_assignment_runs_hooks(self, person_schema):
        dyn = Dynamik({"name": "ann"}, person_schema)
        dyn.root["greeting"] = "bye"
        assert dyn.root["greeting"] == "hello ann"
        dyn.root["name"] = None
        assert dyn.root["name"] == "anonymous"

    def test_assigned_subtree_is_initialised(self):
        schema = {
            "type": "object",
            "properties": {
                "owner": {
                    "type": "object",
                    "properties": {"role": {"type": "string", "_init": "'member'"}},
                },
            },
        }
        dyn = Dynamik({}, schema)
        assert "owner" not in dyn.root
        dyn.root["owner"] = {}
        assert dyn.root["owner"] == {"role": "member"}

    def test_array_items_are_initialised(self):
        schema = {
            "type": "array",
            "items": {"type": "number", "_expression": "value * 10"},
        }
        dyn = Dynamik([1, 2], schema)
        assert dyn.root == [10, 20]
        dyn.root.append(3)
        assert dyn.root == [10, 20, 30]

    def test_root_hooks_are_skipped(self):
        schema = {"type": "object", "_init": "{'x': 1}", "_expression": "{'y': 2}"}
        dyn = Dynamik({}, schema)
        assert dyn.root == {}

    def test_hook_writes_bypass_readonly(self):
        schema = {
            "type": "object",
            "properties": {"stamp": {"type": "string", "_readonly": True, "_init": "'fixed'"}},
        }
        dyn = Dynamik({}, schema)
        assert dyn.root["stamp"] == "fixed"
        dyn.root["stamp"] = "other"
        assert dyn.root["stamp"] == "fixed"

    def test_hook_writes_emit_no_events(self):
        schema = {
            "type": "object",
            "properties": {
                "owner": {
                    "type": "object",
                    "properties": {"role": {"type": "string", "_init": "'member'"}},
                },
            },
        }
        dyn = Dynamik({}, schema)
        events = []
        dyn.watch("/owner", events.append)
        dyn.watch("/owner/role", events.append)
        dyn.root["owner"] = {}
        assert [str(event.pointer) for event in events] == ["/owner"]
        assert events[0].new_value == {"role": "member"}

    def test_failing_hook_writes_kind_default(self):
        schema = {
            "type": "object",
            "properties": {"v": {"type": "number", "_expression": "value.missing.deeper"}},
        }
        dyn = Dynamik({"v": 1}, schema)
        assert dyn.root["v"] is None


class TestNonUniformArrays:
    """Tests for per-element dispatch to matching composition branches."""

    def test_schema_is_not_uniform(self, shapes_schema):
        root = SchemaCompiler(shapes_schema).compile()
        assert root.uniform is False

    def test_construction_dispatches_branches(self, shapes_schema):
        dyn = Dynamik([{"kind": "circle"}, {"kind": "square"}, {"kind": "blob"}], shapes_schema)
        assert dyn.root[0]["sides"] == 0
        assert dyn.root[1]["sides"] == 4
        assert "sides" not in dyn.root[2]

    def test_appended_element_dispatches_branch(self, shapes_schema):
        dyn = Dynamik([], shapes_schema)
        dyn.root.append({"kind": "square"})
        assert dyn.root[0] == {"kind": "square", "sides": 4}

    def test_replaced_element_dispatches_branch(self, shapes_schema):
        dyn = Dynamik([{"kind": "circle"}], shapes_schema)
        dyn.root[0] = {"kind": "square"}
        assert dyn.root[0]["sides"] == 4


class TestDataCompiler:
    """Tests for custom step lists."""

    def test_custom_step(self):
        class Upper(InitStep):
            attribute = "expression"

            def condition(self, schema, pointer):
                return isinstance(pointer.value, str)

            def action(self, schema, pointer):
                pointer.dyn._store(pointer.path, pointer.value.upper())

        schema = {"type": "object", "properties": {"a": {"type": "string"}}}
        dyn = Dynamik({"a": "x", "b": "y"}, schema)
        DataCompiler([Upper()]).apply(dyn.pointer, dyn.schema, include_self=False)
        assert dyn.root == {"a": "X", "b": "y"}

    def test_no_schema_is_noop(self):
        dyn = Dynamik({"a": 1})
        DataInitialiser.apply(dyn.pointer.to("/a"), None)
        assert dyn.root == {"a": 1}
