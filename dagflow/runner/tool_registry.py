"""Tool registration and invocation for Tool nodes."""

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import jsonschema

from dagflow.errors import ToolError, ToolNotFound

logger = logging.getLogger(__name__)

_ANNOTATION_TYPES: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


@dataclass
class Tool:
    """A named, externally implemented operation."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class RegisteredTool:
    """A tool with its executor function."""

    tool: Tool
    executor: Callable[[dict], Any]


class ToolRegistry:
    """
    Holds the tools a workflow may call.

    Executors take the argument dict and return any JSON-compatible value.
    They may be plain functions (run in a worker thread) or coroutine
    functions (awaited on the loop).
    """

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        tool: Tool,
        executor: Callable[[dict], Any],
    ) -> None:
        """
        Register a single tool with its executor.

        Args:
            name: Tool name (must match tool.name)
            tool: Tool definition
            executor: Function that takes the argument dict and returns the result
        """
        if name in self._tools:
            logger.warning(f"Tool '{name}' is already registered, replacing it")
        self._tools[name] = RegisteredTool(tool=tool, executor=executor)

    def register_function(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        """
        Register a function as a tool, generating the parameter schema from
        its signature.

        Args:
            func: Function to register (sync or async)
            name: Tool name (defaults to function name)
            description: Tool description (defaults to docstring)
        """
        tool_name = name or func.__name__
        tool_desc = description or inspect.getdoc(func) or f"Execute {tool_name}"

        sig = inspect.signature(func)
        properties: dict[str, Any] = {}
        required = []

        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls"):
                continue
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue

            param_type = _ANNOTATION_TYPES.get(param.annotation)
            properties[param_name] = {"type": param_type} if param_type else {}

            if param.default is inspect.Parameter.empty:
                required.append(param_name)

        tool = Tool(
            name=tool_name,
            description=tool_desc,
            parameters={
                "type": "object",
                "properties": properties,
                "required": required,
            },
        )

        if inspect.iscoroutinefunction(func):

            async def executor(inputs: dict) -> Any:
                return await func(**inputs)

        else:

            def executor(inputs: dict) -> Any:
                return func(**inputs)

        self.register(tool_name, tool, executor)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get_tools(self) -> dict[str, Tool]:
        """Get all registered Tool objects."""
        return {name: rt.tool for name, rt in self._tools.items()}

    async def invoke(self, name: str, arguments: dict[str, Any]) -> Any:
        """
        Call a tool by name.

        Raises:
            ToolNotFound: no tool is registered under ``name``
            ToolError: the arguments do not match the tool's parameters or
                the executor raised
        """
        registered = self._tools.get(name)
        if registered is None:
            raise ToolNotFound(name)

        if registered.tool.parameters:
            try:
                jsonschema.validate(arguments, registered.tool.parameters)
            except jsonschema.ValidationError as e:
                raise ToolError(f"Invalid arguments for tool '{name}': {e.message}") from e

        executor = registered.executor
        try:
            if inspect.iscoroutinefunction(executor):
                return await executor(arguments)
            result = await asyncio.to_thread(executor, arguments)
            if inspect.isawaitable(result):
                result = await result
            return result
        except ToolError:
            raise
        except Exception as e:
            logger.warning(f"Tool '{name}' failed: {e}")
            raise ToolError(f"Tool '{name}' failed: {e}") from e
