"""Tests for variable references, templates and resolution."""

import pytest

from dagflow.errors import FieldNotFound, UnresolvedReference
from dagflow.graph.variables import (
    Template,
    VariableRef,
    compile_value,
    iter_references,
    resolve_reference,
    resolve_value,
    stringify,
)
from dagflow.schemas.run import NodeResult, NodeStatus


def succeeded(node_id: str, output: dict) -> NodeResult:
    return NodeResult(node_id=node_id, kind="tool", status=NodeStatus.SUCCEEDED, output=output)


@pytest.fixture
def results() -> dict[str, NodeResult]:
    return {
        "http": succeeded(
            "http",
            {"response": {"status": 200, "body": "hello", "headers": {"a": "b"}, "ok": True}},
        ),
        "list": succeeded("list", {"items": [{"name": "x"}, {"name": "y"}]}),
        "broken": NodeResult(node_id="broken", kind="tool", status=NodeStatus.FAILED),
    }


class TestVariableRef:
    def test_shorthand_string(self):
        ref = VariableRef.model_validate("list.items.1.name")

        assert ref.node_id == "list"
        assert ref.path == ("items", 1, "name")
        assert str(ref) == "list.items.1.name"

    def test_json_form_round_trip(self):
        ref = VariableRef.model_validate({"$ref": "http", "path": ["response", "body"]})

        assert ref.node_id == "http"
        assert ref.model_dump() == {"$ref": "http", "path": ["response", "body"]}

    def test_bare_node_reference(self):
        ref = VariableRef.model_validate("http")
        assert ref.path == ()


class TestTemplate:
    def test_mentions_parsed_at_construction(self):
        template = Template(text="Status {{ http.response.status }}: {{http.response.body}}")

        assert [str(r) for r in template.references] == [
            "http.response.status",
            "http.response.body",
        ]
        assert template.parts[0] == "Status "

    def test_render(self, results):
        template = Template(text="Status {{ http.response.status }}: {{http.response.body}}")
        assert template.render(results) == "Status 200: hello"

    def test_literal_text_unchanged(self, results):
        text = "No mentions here, just {braces} and {{ not closed"
        template = Template(text=text)

        assert template.references == []
        assert template.render(results) == text

    def test_list_index_in_mention(self, results):
        assert Template(text="{{ list.items.0.name }}").render(results) == "x"

    def test_containers_render_as_compact_json(self, results):
        assert Template(text="{{ http.response.headers }}").render(results) == '{"a":"b"}'

    def test_booleans_render_lowercase(self, results):
        assert Template(text="ok={{ http.response.ok }}").render(results) == "ok=true"

    def test_failed_source_raises(self, results):
        with pytest.raises(UnresolvedReference):
            Template(text="{{ broken.value }}").render(results)

    def test_serializes_to_text(self):
        assert Template(text="hi {{ a.b }}").model_dump() == "hi {{ a.b }}"


class TestStringify:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("text", "text"),
            (None, ""),
            (True, "true"),
            (False, "false"),
            (3, "3"),
            (1.5, "1.5"),
            ([1, 2], "[1,2]"),
            ({"a": 1}, '{"a":1}'),
        ],
    )
    def test_stringify(self, value, expected):
        assert stringify(value) == expected


class TestResolveReference:
    def test_walks_path(self, results):
        ref = VariableRef.model_validate("http.response.body")
        assert resolve_reference(ref, results) == "hello"

    def test_digit_string_indexes_list(self, results):
        ref = VariableRef.model_validate({"$ref": "list", "path": ["items", "1", "name"]})
        assert resolve_reference(ref, results) == "y"

    def test_missing_field(self, results):
        ref = VariableRef.model_validate("http.response.nope")

        with pytest.raises(FieldNotFound) as exc_info:
            resolve_reference(ref, results)

        assert exc_info.value.segment == "nope"

    def test_index_out_of_range(self, results):
        with pytest.raises(FieldNotFound):
            resolve_reference(VariableRef.model_validate("list.items.5"), results)

    def test_path_into_scalar(self, results):
        with pytest.raises(FieldNotFound):
            resolve_reference(VariableRef.model_validate("http.response.body.length"), results)

    def test_unknown_node(self, results):
        with pytest.raises(UnresolvedReference):
            resolve_reference(VariableRef.model_validate("ghost.value"), results)

    def test_failed_node(self, results):
        with pytest.raises(UnresolvedReference):
            resolve_reference(VariableRef.model_validate("broken"), results)

    def test_same_value_every_time(self, results):
        ref = VariableRef.model_validate("list.items")
        assert resolve_reference(ref, results) == resolve_reference(ref, results)

    def test_returns_a_copy(self, results):
        ref = VariableRef.model_validate("list.items")

        value = resolve_reference(ref, results)
        value.append({"name": "z"})

        assert len(results["list"].output["items"]) == 2


class TestCompileAndResolveValue:
    def test_compile_mixed_configuration(self):
        compiled = compile_value(
            {
                "text": "Body: {{ http.response.body }}",
                "ref": {"$ref": "http", "path": ["response", "status"]},
                "literal": [1, "plain"],
            }
        )

        assert isinstance(compiled["text"], Template)
        assert isinstance(compiled["ref"], VariableRef)
        assert compiled["literal"] == [1, "plain"]

    def test_resolve_compiled_value(self, results):
        compiled = compile_value(
            {
                "text": "Body: {{ http.response.body }}",
                "ref": {"$ref": "http", "path": ["response", "status"]},
                "nested": [{"name": {"$ref": "list", "path": ["items", 0, "name"]}}],
            }
        )

        assert resolve_value(compiled, results) == {
            "text": "Body: hello",
            "ref": 200,
            "nested": [{"name": "x"}],
        }

    def test_iter_references(self):
        compiled = compile_value({"a": "{{ x.one }} {{ y.two }}", "b": {"$ref": "z"}})
        assert sorted(str(r) for r in iter_references(compiled)) == ["x.one", "y.two", "z"]
