"""Shared fixtures for the dagflow test suite."""

from collections.abc import Callable

import httpx
import pytest

from dagflow.capabilities import Capabilities
from dagflow.config import EngineConfig
from dagflow.graph.edge import WorkflowSpec
from dagflow.llm.provider import LLMProvider
from dagflow.observability.logging import clear_trace_context
from dagflow.runner.http_client import HttpxClient
from dagflow.runner.tool_registry import ToolRegistry


@pytest.fixture(autouse=True)
def _reset_trace_context():
    clear_trace_context()
    yield
    clear_trace_context()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(
        max_concurrency=4,
        run_timeout_seconds=30.0,
        node_timeout_seconds=10.0,
        http_timeout_seconds=5.0,
        default_model="test/model",
    )


def _default_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text=f"{request.method} {request.url.path}")


@pytest.fixture
def make_capabilities() -> Callable[..., Capabilities]:
    """Build Capabilities with an httpx MockTransport and optional LLM/tools."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
        llm: LLMProvider | None = None,
        tools: ToolRegistry | None = None,
    ) -> Capabilities:
        transport = httpx.MockTransport(handler or _default_handler)
        return Capabilities(
            llm=llm,
            http=HttpxClient(transport=transport),
            tools=tools or ToolRegistry(),
        )

    return _make


@pytest.fixture
def ip_lookup_workflow() -> WorkflowSpec:
    """Input -> HTTP GET -> Output(result = response body)."""
    return WorkflowSpec.model_validate(
        {
            "id": "ip-lookup",
            "name": "IP lookup",
            "nodes": [
                {"id": "input", "kind": "input"},
                {"id": "fetch", "kind": "http", "url": "https://api.example.com/ip"},
                {
                    "id": "out",
                    "kind": "output",
                    "outputs": [{"key": "result", "source": "fetch.response.body"}],
                },
            ],
            "edges": [
                {"id": "e1", "source": "input", "target": "fetch"},
                {"id": "e2", "source": "fetch", "target": "out"},
            ],
        }
    )


@pytest.fixture
def branching_workflow() -> WorkflowSpec:
    """Input -> Condition(x > 0) -> one HTTP node per branch -> one Output per branch."""
    return WorkflowSpec.model_validate(
        {
            "id": "branching",
            "nodes": [
                {"id": "input", "kind": "input"},
                {
                    "id": "check",
                    "kind": "condition",
                    "branches": [
                        {
                            "id": "true",
                            "conditions": [
                                {"source": "input.x", "operator": "greater_than", "value": 0}
                            ],
                        }
                    ],
                    "else_label": "false",
                },
                {"id": "positive", "kind": "http", "url": "https://api.example.com/positive"},
                {"id": "negative", "kind": "http", "url": "https://api.example.com/negative"},
                {
                    "id": "out_positive",
                    "kind": "output",
                    "outputs": [{"key": "positive", "source": "positive.response.body"}],
                },
                {
                    "id": "out_negative",
                    "kind": "output",
                    "outputs": [{"key": "negative", "source": "negative.response.body"}],
                },
            ],
            "edges": [
                {"id": "e1", "source": "input", "target": "check"},
                {"id": "e2", "source": "check", "target": "positive", "branch": "true"},
                {"id": "e3", "source": "check", "target": "negative", "branch": "false"},
                {"id": "e4", "source": "positive", "target": "out_positive"},
                {"id": "e5", "source": "negative", "target": "out_negative"},
            ],
        }
    )
