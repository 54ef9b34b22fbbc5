"""External capabilities the engine depends on, bundled for injection."""

from dataclasses import dataclass, field

from dagflow.llm.provider import LLMProvider
from dagflow.runner.http_client import HttpClient, HttpxClient
from dagflow.runner.tool_registry import ToolRegistry


@dataclass
class Capabilities:
    """
    Built once per process and shared by every run.

    ``llm`` may be None for workflows without LLM nodes; an LLM node then
    fails with a ProviderError.
    """

    llm: LLMProvider | None = None
    http: HttpClient = field(default_factory=HttpxClient)
    tools: ToolRegistry = field(default_factory=ToolRegistry)

    async def aclose(self) -> None:
        await self.http.aclose()
