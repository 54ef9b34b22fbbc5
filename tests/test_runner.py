"""Tests for invoking published workflows through the runner."""

import httpx
import pytest

from dagflow.errors import (
    CycleDetected,
    NoOutputProduced,
    ToolError,
    WorkflowNotFound,
    WorkflowNotPublished,
)
from dagflow.graph.edge import WorkflowSpec
from dagflow.runner.runner import WorkflowRunner
from dagflow.runner.tool_registry import ToolRegistry
from dagflow.schemas.run import NodeStatus, RunStatus
from dagflow.storage.backend import InMemoryStorage


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def make_runner(storage, make_capabilities, engine_config):
    def _make(**capability_kwargs) -> WorkflowRunner:
        return WorkflowRunner(storage, make_capabilities(**capability_kwargs), config=engine_config)

    return _make


@pytest.fixture
def echo_workflow() -> WorkflowSpec:
    return WorkflowSpec.model_validate(
        {
            "id": "echo",
            "description": "Echo a city name",
            "nodes": [
                {
                    "id": "input",
                    "kind": "input",
                    "output_schema": {
                        "type": "object",
                        "properties": {"city": {"type": "string"}},
                        "required": ["city"],
                    },
                },
                {"id": "say", "kind": "template", "template": "Weather for {{ input.city }}"},
                {
                    "id": "out",
                    "kind": "output",
                    "outputs": [{"key": "message", "source": "say.template"}],
                },
            ],
            "edges": [
                {"id": "e1", "source": "input", "target": "say"},
                {"id": "e2", "source": "say", "target": "out"},
            ],
        }
    )


class TestRunWorkflow:
    @pytest.mark.asyncio
    async def test_publish_then_run(self, make_runner, storage, ip_lookup_workflow):
        runner = make_runner()
        await runner.publish(ip_lookup_workflow)

        summary = await runner.run_workflow("ip-lookup")

        assert summary.status == RunStatus.SUCCEEDED
        assert summary.outputs == {"result": "GET /ip"}
        assert summary.nodes["fetch"].status == NodeStatus.SUCCEEDED
        saved = await storage.load_run(summary.run_id)
        assert saved.outputs == summary.outputs

    @pytest.mark.asyncio
    async def test_finished_runs_leave_memory(self, make_runner, storage, ip_lookup_workflow):
        runner = make_runner()
        await runner.publish(ip_lookup_workflow)

        first = await runner.run_workflow("ip-lookup")
        second = await runner.run_workflow("ip-lookup")

        assert runner.executor.run_store.list_runs() == []
        assert {r.id for r in await storage.list_runs("ip-lookup")} == {
            first.run_id,
            second.run_id,
        }

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, make_runner):
        with pytest.raises(WorkflowNotFound):
            await make_runner().run_workflow("ghost")

    @pytest.mark.asyncio
    async def test_draft_only_workflow(self, make_runner, storage, ip_lookup_workflow):
        await storage.save_workflow(ip_lookup_workflow)

        with pytest.raises(WorkflowNotPublished):
            await make_runner().run_workflow("ip-lookup")

    @pytest.mark.asyncio
    async def test_publish_rejects_invalid_workflow(self, make_runner, storage):
        workflow = WorkflowSpec.model_validate(
            {
                "id": "loop",
                "nodes": [
                    {"id": "input", "kind": "input"},
                    {"id": "a", "kind": "template", "template": "x"},
                ],
                "edges": [
                    {"id": "e1", "source": "input", "target": "a"},
                    {"id": "e2", "source": "a", "target": "a"},
                ],
            }
        )

        with pytest.raises(CycleDetected):
            await make_runner().publish(workflow)
        assert await storage.load_workflow("loop") is None

    @pytest.mark.asyncio
    async def test_failed_run_raises_with_summary(self, make_runner, storage, ip_lookup_workflow):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        # The HTTP node succeeds with status 0, so fail the Output node instead.
        workflow = ip_lookup_workflow.edit(
            nodes=[
                *ip_lookup_workflow.model_dump()["nodes"][:2],
                {
                    "id": "out",
                    "kind": "output",
                    "outputs": [{"key": "result", "source": "fetch.response.headers.date"}],
                },
            ]
        )
        runner = make_runner(handler=handler)
        await runner.publish(workflow)

        with pytest.raises(NoOutputProduced) as exc_info:
            await runner.run_workflow("ip-lookup")

        summary = exc_info.value.summary
        assert summary.status == RunStatus.FAILED
        assert summary.failed_nodes == ["out"]
        assert "date" in summary.nodes["out"].error
        assert len(await storage.list_runs("ip-lookup")) == 1


class TestRegisterAsTool:
    @pytest.mark.asyncio
    async def test_workflow_becomes_callable_tool(self, make_runner, echo_workflow):
        runner = make_runner()
        await runner.publish(echo_workflow)
        registry = ToolRegistry()

        tool = await runner.register_as_tool(registry, "echo", name="weather")

        assert tool.name == "weather"
        assert tool.description == "Echo a city name"
        assert tool.parameters["required"] == ["city"]
        result = await registry.invoke("weather", {"city": "Oslo"})
        assert result == {"message": "Weather for Oslo"}

    @pytest.mark.asyncio
    async def test_arguments_are_checked_against_input_schema(self, make_runner, echo_workflow):
        runner = make_runner()
        await runner.publish(echo_workflow)
        registry = ToolRegistry()
        await runner.register_as_tool(registry, "echo")

        with pytest.raises(ToolError, match="city"):
            await registry.invoke("echo", {})

    @pytest.mark.asyncio
    async def test_unpublished_workflow_cannot_be_registered(self, make_runner):
        with pytest.raises(WorkflowNotFound):
            await make_runner().register_as_tool(ToolRegistry(), "echo")
