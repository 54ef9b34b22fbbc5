"""
Variable references and the resolver that reads them from a running execution.

A reference names a source node and a path into that node's output object.
It can appear in configuration in two forms:

- as a whole value:   {"$ref": "http", "path": ["response", "body"]}
                      or the shorthand string "http.response.body" where a
                      field is typed as a reference
- inside text:        "Status was {{ http.response.status }}"

Text mentions are parsed once, when the workflow is loaded, into a Template
holding literal parts and references. Resolution never re-parses text.
"""

import copy
import json
import re
from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    model_serializer,
    model_validator,
)

from dagflow.errors import FieldNotFound, UnresolvedReference
from dagflow.schemas.run import NodeResult, NodeStatus

MENTION_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_-]+)((?:\.[^\s.{}]+)*)\s*\}\}")


def _coerce_segment(segment: str) -> str | int:
    return int(segment) if segment.isdigit() else segment


class VariableRef(BaseModel):
    """A reference to a field of an upstream node's output."""

    node_id: str = Field(alias="$ref")
    path: tuple[str | int, ...] = ()

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _parse_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            node_id, *segments = data.split(".")
            return {"$ref": node_id, "path": [_coerce_segment(s) for s in segments]}
        return data

    @model_serializer
    def _serialize(self) -> dict[str, Any]:
        return {"$ref": self.node_id, "path": list(self.path)}

    def __str__(self) -> str:
        return ".".join([self.node_id, *(str(segment) for segment in self.path)])


class Template(BaseModel):
    """Text with embedded ``{{ node.path }}`` mentions, parsed at load time."""

    text: str = ""

    model_config = ConfigDict(frozen=True)

    _parts: tuple[str | VariableRef, ...] = PrivateAttr(default=())

    @model_validator(mode="before")
    @classmethod
    def _from_text(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"text": data}
        return data

    @model_serializer
    def _serialize(self) -> str:
        return self.text

    def model_post_init(self, __context: Any) -> None:
        parts: list[str | VariableRef] = []
        cursor = 0
        for match in MENTION_PATTERN.finditer(self.text):
            if match.start() > cursor:
                parts.append(self.text[cursor : match.start()])
            segments = [s for s in match.group(2).split(".") if s]
            parts.append(
                VariableRef(node_id=match.group(1), path=[_coerce_segment(s) for s in segments])
            )
            cursor = match.end()
        if cursor < len(self.text):
            parts.append(self.text[cursor:])
        self._parts = tuple(parts)

    @property
    def parts(self) -> tuple[str | VariableRef, ...]:
        return self._parts

    @property
    def references(self) -> list[VariableRef]:
        return [p for p in self._parts if isinstance(p, VariableRef)]

    def render(self, results: Mapping[str, NodeResult]) -> str:
        """Substitute every mention with the string form of its resolved value."""
        return "".join(
            stringify(resolve_reference(part, results)) if isinstance(part, VariableRef) else part
            for part in self._parts
        )

    def __str__(self) -> str:
        return self.text


def stringify(value: Any) -> str:
    """Deterministic string form used when a value is embedded in text."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def compile_value(value: Any) -> Any:
    """
    Compile free-form configuration into literals, Templates and VariableRefs.

    Strings containing mentions become Templates, mappings carrying a "$ref"
    key become VariableRefs, containers are compiled recursively.
    """
    if isinstance(value, Template | VariableRef):
        return value
    if isinstance(value, str):
        return Template(text=value) if MENTION_PATTERN.search(value) else value
    if isinstance(value, Mapping):
        if "$ref" in value:
            return VariableRef.model_validate(dict(value))
        return {key: compile_value(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [compile_value(item) for item in value]
    return value


def _step(current: Any, segment: str | int, reference: VariableRef) -> Any:
    if isinstance(current, Mapping):
        if segment in current:
            return current[segment]
        if isinstance(segment, int) and str(segment) in current:
            return current[str(segment)]
        raise FieldNotFound(reference, segment)

    if isinstance(current, list | tuple):
        index: int | None = None
        if isinstance(segment, int) and not isinstance(segment, bool):
            index = segment
        elif isinstance(segment, str) and segment.isdigit():
            index = int(segment)
        if index is None or not -len(current) <= index < len(current):
            raise FieldNotFound(reference, segment)
        return current[index]

    raise FieldNotFound(reference, segment)


def resolve_reference(reference: VariableRef, results: Mapping[str, NodeResult]) -> Any:
    """
    Resolve a reference against the results recorded so far.

    Raises:
        UnresolvedReference: the source node has no successful result
        FieldNotFound: the path does not exist in the produced output
    """
    result = results.get(reference.node_id)
    if result is None or result.status != NodeStatus.SUCCEEDED or result.output is None:
        raise UnresolvedReference(reference)

    current: Any = result.output
    for segment in reference.path:
        current = _step(current, segment, reference)
    # Callers get their own copy so recorded outputs stay untouched.
    return copy.deepcopy(current)


def resolve_value(value: Any, results: Mapping[str, NodeResult]) -> Any:
    """Resolve references and templates anywhere inside a configuration value."""
    if isinstance(value, VariableRef):
        return resolve_reference(value, results)
    if isinstance(value, Template):
        return value.render(results)
    if isinstance(value, BaseModel):
        fields = type(value).model_fields
        return {name: resolve_value(getattr(value, name), results) for name in fields}
    if isinstance(value, Mapping):
        return {key: resolve_value(item, results) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [resolve_value(item, results) for item in value]
    return value


def iter_references(value: Any) -> Iterator[VariableRef]:
    """Yield every reference embedded in a configuration value."""
    if isinstance(value, VariableRef):
        yield value
    elif isinstance(value, Template):
        yield from value.references
    elif isinstance(value, BaseModel):
        for name in type(value).model_fields:
            yield from iter_references(getattr(value, name))
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_references(item)
    elif isinstance(value, list | tuple):
        for item in value:
            yield from iter_references(item)
