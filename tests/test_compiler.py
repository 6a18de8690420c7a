# -*- coding: utf-8 -*-
"""
Tests for the schema compiler pipeline.

Covers:
- Meta-schema rejection and boolean documents
- Type normalization and nullable unions
- Enum and enum-array detection
- $ref / $defs resolution
- Tree wiring, dereference and lookup
- Uniform arrays and property ordering
- Step failure diagnostics
"""

import pytest

from dynamik.compiler import CompileStep, SchemaCompiler, compile_schema
from dynamik.config import DynamikConfig
from dynamik.exceptions import (
    DefinitionNotFoundError,
    MissingNullInUnionError,
    SchemaCompileError,
    SchemaValidationError,
    UnsupportedUnionError,
)
from dynamik.models import OrderEntry, SchemaNode


def object_schema(**properties):
    return {"type": "object", "properties": properties}


# ==============================================================================
# Document Handling
# ==============================================================================

class TestDocument:
    """Tests for document level behavior."""

    def test_true_schema_accepts_anything(self, sample_object):
        root = SchemaCompiler(True).compile()
        assert root.validate(sample_object) is True
        assert root.validate(12) is True

    def test_false_schema_rejects_everything(self, sample_object):
        root = SchemaCompiler(False).compile()
        assert root.validate(sample_object) is False

    def test_erroneous_schema_fails(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            SchemaCompiler({"type": "dummy"}).compile()
        assert "at /type" in exc_info.value.diagnostic

    def test_non_schema_document_fails(self):
        with pytest.raises(SchemaValidationError):
            SchemaCompiler(12)

    def test_meta_schema_check_can_be_disabled(self):
        config = DynamikConfig(check_meta_schema=False)
        root = SchemaCompiler({"type": "string", "minLength": 1}, config=config).compile()
        assert root.type == "string"

    def test_document_is_copied(self):
        schema = object_schema(a={"type": "number"})
        compiler = SchemaCompiler(schema)
        compiler.compile()
        compiler.document["properties"]["a"]["type"] = "string"
        assert schema["properties"]["a"]["type"] == "number"

    def test_compile_is_one_shot(self):
        compiler = SchemaCompiler(object_schema(a={"type": "number"}))
        assert compiler.compile() is compiler.compile()

    def test_compile_schema_helper(self):
        root = compile_schema(object_schema(a={"type": "number"}))
        assert isinstance(root, SchemaNode)
        assert root.properties["a"].type == "number"


# ==============================================================================
# Validation Binding
# ==============================================================================

class TestValidate:
    """Tests for per-node predicates."""

    @pytest.mark.parametrize("declared,value", [
        ("number", 12),
        ("string", "12"),
        ("boolean", False),
        ("null", None),
    ])
    def test_valid_values(self, declared, value):
        root = SchemaCompiler(object_schema(a={"type": declared})).compile()
        assert root.validate({"a": value}) is True

    @pytest.mark.parametrize("declared,value", [
        ("string", 12),
        ("number", "12"),
        ("string", True),
        ("string", None),
    ])
    def test_invalid_values(self, declared, value):
        root = SchemaCompiler(object_schema(a={"type": declared})).compile()
        assert root.validate({"a": value}) is False

    def test_child_predicate(self):
        root = SchemaCompiler(object_schema(a={"type": "number"})).compile()
        assert root.properties["a"].validate(3) is True
        assert root.properties["a"].validate("3") is False

    def test_reserved_keywords_do_not_affect_validation(self):
        schema = object_schema(a={"type": "string", "_readonly": "true", "_tab": "main"})
        root = SchemaCompiler(schema).compile()
        assert root.validate({"a": "x"}) is True


# ==============================================================================
# Type Normalization
# ==============================================================================

class TestType:
    """Tests for type/nullable normalization."""

    @pytest.mark.parametrize("declared", [
        "string", "number", "integer", "boolean", "object", "array",
    ])
    def test_single_type(self, declared):
        root = SchemaCompiler({"type": declared}).compile()
        assert root.type == declared
        assert root.nullable is False

    def test_single_null_type_is_nullable(self):
        root = SchemaCompiler({"type": "null"}).compile()
        assert root.type == "null"
        assert root.nullable is True

    def test_default_type(self):
        root = SchemaCompiler({}).compile()
        assert root.type == "string"

    def test_configured_default_type(self):
        root = SchemaCompiler({}, config=DynamikConfig(default_type="object")).compile()
        assert root.type == "object"

    def test_nullable_union(self):
        schema = object_schema(
            a={"type": ["string", "null"]},
            b={"type": ["null", "string"]},
        )
        root = SchemaCompiler(schema).compile()
        assert root.validate({"a": None, "b": "monkey"}) is True
        assert root.properties["a"].type == "string"
        assert root.properties["a"].nullable is True
        assert root.properties["b"].type == "string"
        assert root.properties["b"].nullable is True
        assert root.properties["a"].validate("x") is True
        assert root.properties["a"].validate(None) is True

    def test_union_without_null_raises(self):
        schema = object_schema(a={"type": ["string", "integer"]})
        with pytest.raises(MissingNullInUnionError, match="One type must be 'null'"):
            SchemaCompiler(schema).compile()

    def test_union_of_three_raises(self):
        schema = object_schema(a={"type": ["string", "integer", "object"]})
        with pytest.raises(UnsupportedUnionError, match="multiple types not implemented"):
            SchemaCompiler(schema).compile()

    def test_failure_carries_pointer_and_step(self):
        schema = object_schema(a={"type": ["string", "integer"]})
        with pytest.raises(SchemaCompileError) as exc_info:
            SchemaCompiler(schema).compile()
        assert exc_info.value.pointer == "/a"
        assert exc_info.value.step == "Type compilation"


# ==============================================================================
# Enum Detection
# ==============================================================================

class TestEnum:
    """Tests for enum and enum-array detection."""

    PETS = ["dog", "cat", "goldfish"]

    def consts(self):
        return [{"const": pet} for pet in self.PETS]

    def test_enum(self):
        root = SchemaCompiler(object_schema(a={"enum": self.PETS})).compile()
        assert root.validate({"a": "cat"}) is True
        assert root.validate({"a": "monkey"}) is False
        assert root.is_enum is False
        assert root.properties["a"].is_enum is True

    @pytest.mark.parametrize("composition", ["oneOf", "anyOf"])
    def test_enum_as_const_list(self, composition):
        root = SchemaCompiler(object_schema(a={composition: self.consts()})).compile()
        assert root.validate({"a": "cat"}) is True
        assert root.validate({"a": "monkey"}) is False
        assert root.is_enum is False
        assert root.properties["a"].is_enum is True

    def test_enum_only_defaults_to_true(self):
        root = SchemaCompiler(object_schema(a={"enum": self.PETS})).compile()
        only = root.properties["a"].attribute("only")
        assert only is not None
        assert only("cat") is True

    def test_declared_only_is_kept(self):
        schema = object_schema(a={"enum": self.PETS, "_only": "value != 'dog'"})
        root = SchemaCompiler(schema).compile()
        assert root.properties["a"].attribute("only")("dog") is False

    def test_enum_array(self):
        schema = {"type": "array", "uniqueItems": True, "items": {"enum": self.PETS}}
        root = SchemaCompiler(schema).compile()
        assert root.validate(["cat", "goldfish"]) is True
        assert root.validate(["cat", "monkey"]) is False
        assert root.is_enum_array is True
        assert root.is_enum is False

    def test_enum_array_as_const_list(self):
        schema = {"type": "array", "uniqueItems": True, "items": {"oneOf": self.consts()}}
        root = SchemaCompiler(schema).compile()
        assert root.validate(["cat", "goldfish"]) is True
        assert root.validate(["cat", "monkey"]) is False
        assert root.is_enum_array is True
        assert root.is_enum is False

    def test_array_without_unique_items_is_not_enum_array(self):
        schema = {"type": "array", "items": {"enum": self.PETS}}
        root = SchemaCompiler(schema).compile()
        assert root.is_enum_array is False
        assert root.items.is_enum is True

    def test_plain_array_is_not_enum_array(self):
        schema = {"type": "array", "uniqueItems": True, "items": {"type": "string"}}
        root = SchemaCompiler(schema).compile()
        assert root.is_enum_array is False


# ==============================================================================
# References
# ==============================================================================

class TestReferences:
    """Tests for $ref / $defs resolution."""

    def test_reference_resolution(self):
        schema = {
            "$id": "test",
            "$defs": {"pet": {"enum": ["dog", "cat", "goldfish"]}},
            "type": "object",
            "properties": {
                "first": {"$ref": "test#/$defs/pet"},
                "second": {"$ref": "test#/$defs/pet"},
            },
        }
        root = SchemaCompiler(schema).compile()
        assert root.properties["first"].get("enum") == schema["$defs"]["pet"]["enum"]
        assert root.properties["second"].is_enum is True
        assert root.properties["first"].raw is not root.properties["second"].raw

    def test_referencing_fields_win(self):
        schema = {
            "$id": "test",
            "$defs": {"pet": {"type": "string", "_hidden": "false"}},
            "type": "object",
            "properties": {"first": {"$ref": "test#/$defs/pet", "_hidden": "true"}},
        }
        root = SchemaCompiler(schema).compile()
        first = root.properties["first"]
        assert "$ref" not in first
        assert first.get("_hidden") == "true"
        assert first.type == "string"

    def test_reference_without_id(self):
        schema = {
            "$defs": {"pet": {"type": "number"}},
            "type": "object",
            "properties": {"first": {"$ref": "#/$defs/pet"}},
        }
        root = SchemaCompiler(schema).compile()
        assert root.properties["first"].type == "number"

    def test_reference_in_array_item_compositions(self):
        schema = {
            "$id": "test",
            "$defs": {"cat": {"const": "cat"}, "dog": {"const": "dog"}},
            "type": "array",
            "uniqueItems": True,
            "items": {"oneOf": [{"$ref": "test#/$defs/cat"}, {"$ref": "test#/$defs/dog"}]},
        }
        root = SchemaCompiler(schema).compile()
        assert root.is_enum_array is True
        assert [m.get("const") for m in root.items.one_of] == ["cat", "dog"]

    def test_missing_definition_raises(self):
        schema = {
            "$id": "test2",
            "$defs": {"pet": {"enum": ["dog", "cat", "goldfish"]}},
            "type": "object",
            "properties": {"first": {"$ref": "test#/$defs/zzz"}},
        }
        with pytest.raises(DefinitionNotFoundError) as exc_info:
            SchemaCompiler(schema).compile()
        assert exc_info.value.context["reference"] == "test#/$defs/zzz"
        assert exc_info.value.step == "Definition compilation"

    def test_missing_definition_names_referencing_node(self):
        schema = {
            "$id": "doc",
            "type": "object",
            "properties": {
                "x": {"type": "object", "properties": {"pet": {"$ref": "doc#/$defs/missing"}}},
            },
        }
        with pytest.raises(DefinitionNotFoundError) as exc_info:
            SchemaCompiler(schema).compile()
        assert exc_info.value.pointer == "/x"
        assert exc_info.value.context["reference_at"] == "/x/pet"

    def test_missing_definition_in_items_composition(self):
        schema = {
            "$id": "doc",
            "type": "array",
            "items": {"oneOf": [{"const": 1}, {"$ref": "doc#/$defs/missing"}]},
        }
        with pytest.raises(DefinitionNotFoundError) as exc_info:
            SchemaCompiler(schema).compile()
        assert exc_info.value.context["reference_at"] == "/*/oneOf/1"

    def test_self_reference_through_property_raises(self):
        schema = {
            "$id": "doc",
            "$defs": {
                "node": {
                    "type": "object",
                    "properties": {"child": {"$ref": "doc#/$defs/node"}},
                },
            },
            "type": "object",
            "properties": {"root": {"$ref": "doc#/$defs/node"}},
        }
        with pytest.raises(SchemaCompileError, match="circular reference") as exc_info:
            SchemaCompiler(schema).compile()
        assert exc_info.value.step == "Definition compilation"
        assert exc_info.value.pointer == "/root"
        assert exc_info.value.context["reference_at"] == "/root/child"

    def test_mutual_reference_through_items_raises(self):
        schema = {
            "$id": "doc",
            "$defs": {
                "list": {"type": "array", "items": {"$ref": "doc#/$defs/entry"}},
                "entry": {"type": "object", "properties": {"more": {"$ref": "doc#/$defs/list"}}},
            },
            "type": "object",
            "properties": {"entries": {"$ref": "doc#/$defs/list"}},
        }
        with pytest.raises(SchemaCompileError, match="circular reference through doc#/\\$defs/list"):
            SchemaCompiler(schema).compile()

    def test_nested_reuse_of_definition_is_not_a_cycle(self):
        schema = {
            "$id": "doc",
            "$defs": {
                "name": {"type": "string"},
                "person": {
                    "type": "object",
                    "properties": {
                        "first": {"$ref": "doc#/$defs/name"},
                        "last": {"$ref": "doc#/$defs/name"},
                    },
                },
            },
            "type": "object",
            "properties": {
                "owner": {"$ref": "doc#/$defs/person"},
                "tenant": {"$ref": "doc#/$defs/person"},
            },
        }
        root = SchemaCompiler(schema).compile()
        assert root.deref("/tenant/last").type == "string"
        assert root.deref("/owner/first").type == "string"


# ==============================================================================
# Tree Wiring
# ==============================================================================

class TestWiring:
    """Tests for pointers, parents, roots and dereference."""

    @pytest.fixture
    def root(self):
        schema = {
            "type": "object",
            "properties": {
                "a": {"const": "dog"},
                "b": {"const": "cat"},
                "list": {"type": "array", "items": {
                    "type": "object", "properties": {"x": {"type": "number"}},
                }},
                "alt": {"oneOf": [{"type": "string"}, {"type": "number"}]},
            },
        }
        return SchemaCompiler(schema).compile()

    def test_pointers(self, root):
        assert root.pointer == ""
        assert root.properties["a"].pointer == "/a"
        assert root.properties["list"].items.pointer == "/list/*"
        assert root.properties["list"].items.properties["x"].pointer == "/list/*/x"
        assert root.properties["alt"].one_of[1].pointer == "/alt/oneOf/1"

    def test_parent_and_root(self, root):
        x = root.properties["list"].items.properties["x"]
        assert x.parent is root.properties["list"].items
        assert x.root is root
        assert root.parent is None
        assert root.root is root

    def test_wiring_is_write_once(self, root):
        with pytest.raises(SchemaCompileError):
            root.properties["a"].wire()

    def test_deref(self, root):
        found = root.deref("/a")
        assert found is root.properties["a"]
        assert found.deref("1") is root
        assert found.deref("1/b") is root.properties["b"]
        assert root.deref("#/a") is found

    def test_deref_into_items(self, root):
        x = root.properties["list"].items.properties["x"]
        assert root.deref("/list/*/x") is x
        assert root.deref("/list/3/x") is x

    def test_deref_misses(self, root):
        assert root.deref("/missing") is None
        assert root.deref("3") is None
        assert root.deref("nope") is None

    def test_find(self, root):
        assert root.tree.find("/list/*/x") is root.properties["list"].items.properties["x"]
        assert root.tree.find("/nothing") is None
        assert len(root.tree) == 9

    def test_properties_keep_declaration_order(self, root):
        assert list(root.properties) == ["a", "b", "list", "alt"]

    def test_watchers_start_empty(self, root):
        assert all(node.watchers == set() for node in root.tree)


# ==============================================================================
# Arrays and Ordering
# ==============================================================================

class TestUniformAndOrder:
    """Tests for uniform flags and property ordering."""

    def test_uniform_array(self):
        root = SchemaCompiler({"type": "array", "items": {"type": "number"}}).compile()
        assert root.uniform is True

    def test_non_uniform_array(self):
        schema = {"type": "array", "items": {"anyOf": [{"type": "number"}, {"type": "string"}]}}
        root = SchemaCompiler(schema).compile()
        assert root.uniform is False

    def test_uniform_only_for_arrays(self):
        assert SchemaCompiler({"type": "object"}).compile().uniform is None

    def test_order_without_markers(self):
        root = SchemaCompiler(object_schema(a={}, b={}, c={})).compile()
        assert [entry.fieldname for entry in root.order] == ["a", "b", "c"]
        assert all(isinstance(entry, OrderEntry) for entry in root.order)

    def test_order_pulls_groups_together(self):
        schema = object_schema(
            a={"_group": "g1"},
            b={},
            c={"_group": "g1"},
            d={"_tab": "t1"},
            e={},
            f={"_tab": "t1"},
        )
        root = SchemaCompiler(schema).compile()
        assert [entry.fieldname for entry in root.order] == ["a", "c", "b", "d", "f", "e"]
        c = next(entry for entry in root.order if entry.fieldname == "c")
        assert c.groupnum == 0
        assert c.groupname == "g1"
        assert c.fieldnum == 2

    def test_order_only_for_objects_with_properties(self):
        assert SchemaCompiler({"type": "object"}).compile().order is None
        assert SchemaCompiler({"type": "string"}).compile().order is None


# ==============================================================================
# Custom Steps
# ==============================================================================

class TestSteps:
    """Tests for step application and failure wrapping."""

    def test_foreign_exception_is_wrapped(self):
        class Boom(CompileStep):
            name = "Boom compilation"

            def apply(self, node):
                raise ValueError("boom")

        compiler = SchemaCompiler(object_schema(a={}))
        compiler.passes.append([Boom()])
        with pytest.raises(SchemaCompileError) as exc_info:
            compiler.compile()
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert exc_info.value.step == "Boom compilation"
        assert exc_info.value.pointer == ""

    def test_condition_guards_apply(self):
        visited = []

        class Record(CompileStep):
            name = "Record"

            def condition(self, node):
                return node.type == "number"

            def apply(self, node):
                visited.append(node.pointer)

        compiler = SchemaCompiler(object_schema(a={"type": "number"}, b={}, c={"type": "number"}))
        compiler.passes.append([Record()])
        compiler.compile()
        assert visited == ["/a", "/c"]
