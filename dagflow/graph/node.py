"""
Node Protocol - The kinds of work a workflow can contain.

Every node is a tagged variant discriminated by ``kind``. Each kind carries
its own configuration fields, lists them in ``config_fields`` (the fields the
resolver walks before execution) and declares the JSON schema of the output
object it produces, which the validator checks references against.

Example:
    HttpNode(
        id="lookup",
        url="https://api.example.com/users/{{ input.user_id }}",
        headers={"Authorization": "Bearer {{ input.token }}"},
    )
"""

from enum import StrEnum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, Field, field_validator

from dagflow.graph.variables import Template, VariableRef, compile_value, iter_references

NODE_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


class NodeKind(StrEnum):
    INPUT = "input"
    LLM = "llm"
    TOOL = "tool"
    CONDITION = "condition"
    HTTP = "http"
    TEMPLATE = "template"
    OUTPUT = "output"


def _object_schema(properties: dict[str, Any]) -> dict[str, Any]:
    return {"type": "object", "properties": properties}


class NodeSpec(BaseModel):
    """Fields shared by every node kind."""

    id: str = Field(pattern=NODE_ID_PATTERN)
    kind: str
    name: str = ""
    description: str = ""
    output_schema: dict[str, Any] | None = Field(
        default=None, description="JSON schema of the output object"
    )
    timeout_seconds: float | None = Field(
        default=None, gt=0, description="Per-node timeout, overrides the engine default"
    )

    config_fields: ClassVar[tuple[str, ...]] = ()

    model_config = {"extra": "allow"}

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def config(self) -> dict[str, Any]:
        """Kind-specific configuration, unresolved."""
        return {name: getattr(self, name) for name in self.config_fields}

    def references(self) -> list[VariableRef]:
        """Every variable reference embedded in this node's configuration."""
        return list(iter_references(self.config()))

    def declared_output_schema(self) -> dict[str, Any] | None:
        """Schema of the output object, or None when the node produces no data."""
        return self.output_schema


class InputNode(NodeSpec):
    """Entry point. Its output is the run's initial input.

    ``output_schema`` doubles as the input schema; without one any path
    into the input is accepted.
    """

    kind: Literal["input"] = "input"

    def declared_output_schema(self) -> dict[str, Any]:
        return self.output_schema or {}


class TemplateNode(NodeSpec):
    kind: Literal["template"] = "template"
    template: Template = Field(default_factory=Template)

    config_fields: ClassVar[tuple[str, ...]] = ("template",)

    def declared_output_schema(self) -> dict[str, Any]:
        return _object_schema({"template": {"type": "string"}})


HTTP_RESPONSE_SCHEMA: dict[str, Any] = _object_schema(
    {
        "status": {"type": "integer"},
        "statusText": {"type": "string"},
        "ok": {"type": "boolean"},
        "headers": {"type": "object"},
        "body": {"type": "string"},
        "duration": {"type": "number"},
        "size": {"type": "integer"},
    }
)


class HttpNode(NodeSpec):
    """One HTTP request. The response body is always kept as a string."""

    kind: Literal["http"] = "http"
    url: Template
    method: str = "GET"
    headers: dict[str, Template] = Field(default_factory=dict)
    query: dict[str, Template] = Field(default_factory=dict)
    body: Template | None = None
    request_timeout_seconds: float | None = Field(default=None, gt=0)

    config_fields: ClassVar[tuple[str, ...]] = ("url", "method", "headers", "query", "body")

    def declared_output_schema(self) -> dict[str, Any]:
        return _object_schema({"response": HTTP_RESPONSE_SCHEMA})


class LLMMessage(BaseModel):
    role: Literal["system", "user", "assistant"] = "user"
    content: Template


class LLMNode(NodeSpec):
    kind: Literal["llm"] = "llm"
    model: str | None = Field(default=None, description="Model reference; engine default if unset")
    messages: list[LLMMessage] = Field(min_length=1)
    answer_schema: dict[str, Any] | None = Field(
        default=None, description="Request structured output matching this JSON schema"
    )

    config_fields: ClassVar[tuple[str, ...]] = ("messages",)

    def declared_output_schema(self) -> dict[str, Any]:
        return _object_schema(
            {
                "totalTokens": {"type": "integer"},
                "answer": self.answer_schema or {"type": "string"},
            }
        )


class ToolNode(NodeSpec):
    kind: Literal["tool"] = "tool"
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    config_fields: ClassVar[tuple[str, ...]] = ("arguments",)

    @field_validator("arguments", mode="after")
    @classmethod
    def _compile_arguments(cls, value: dict[str, Any]) -> dict[str, Any]:
        return compile_value(value)

    def declared_output_schema(self) -> dict[str, Any]:
        return _object_schema({"tool_result": {}})


class ConditionOperator(StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"


class ConditionRule(BaseModel):
    source: VariableRef
    operator: ConditionOperator
    value: Any = None

    @field_validator("value", mode="after")
    @classmethod
    def _compile_operand(cls, value: Any) -> Any:
        return compile_value(value)


class ConditionBranch(BaseModel):
    id: str = Field(description="Branch label carried by outgoing edges")
    logical_operator: Literal["and", "or"] = "and"
    conditions: list[ConditionRule] = Field(default_factory=list)


class ConditionNode(NodeSpec):
    """
    Selects exactly one outgoing branch label.

    ``branches`` are tried in order (the first one is the "if", the rest are
    "else if"); when none matches, ``else_label`` is selected.
    """

    kind: Literal["condition"] = "condition"
    branches: list[ConditionBranch] = Field(min_length=1)
    else_label: str = "else"

    config_fields: ClassVar[tuple[str, ...]] = ("branches",)

    def branch_labels(self) -> list[str]:
        return [branch.id for branch in self.branches] + [self.else_label]

    def declared_output_schema(self) -> None:
        return None


class OutputMapping(BaseModel):
    key: str
    source: VariableRef


class OutputNode(NodeSpec):
    """Maps upstream values to named keys of the run's final result."""

    kind: Literal["output"] = "output"
    outputs: list[OutputMapping] = Field(default_factory=list)

    config_fields: ClassVar[tuple[str, ...]] = ("outputs",)

    def declared_output_schema(self) -> dict[str, Any]:
        return _object_schema({mapping.key: {} for mapping in self.outputs})


AnyNode = Annotated[
    InputNode | TemplateNode | HttpNode | LLMNode | ToolNode | ConditionNode | OutputNode,
    Field(discriminator="kind"),
]
