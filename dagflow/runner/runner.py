"""
Workflow Runner - the entry point callers use to invoke published workflows.

    runner = WorkflowRunner(storage, Capabilities(llm=LiteLLMProvider()))
    await runner.publish(workflow)
    summary = await runner.run_workflow("ip-lookup", {"user": "42"})

Only published workflows run. A run that produces no output raises
NoOutputProduced, which still carries the per-node summary.
"""

import asyncio
import logging
from typing import Any

from dagflow.capabilities import Capabilities
from dagflow.config import EngineConfig
from dagflow.errors import NoOutputProduced, WorkflowNotFound, WorkflowNotPublished
from dagflow.graph.edge import WorkflowSpec
from dagflow.graph.executor import WorkflowExecutor
from dagflow.runner.tool_registry import Tool, ToolRegistry
from dagflow.runtime.run_store import RunStore
from dagflow.schemas.run import RunStatus, RunSummary
from dagflow.storage.backend import WorkflowStorage

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """Loads published workflows from storage, executes them and persists the runs."""

    def __init__(
        self,
        storage: WorkflowStorage,
        capabilities: Capabilities | None = None,
        config: EngineConfig | None = None,
        run_store: RunStore | None = None,
    ):
        self.storage = storage
        self.capabilities = capabilities or Capabilities()
        self.executor = WorkflowExecutor(self.capabilities, config=config, run_store=run_store)

    async def publish(self, workflow: WorkflowSpec) -> WorkflowSpec:
        """Validate and store a workflow as the published definition."""
        published = workflow.publish()
        await self.storage.save_workflow(published)
        logger.info(f"Published workflow '{published.id}' (version {published.version})")
        return published

    async def _load_published(self, workflow_id: str) -> WorkflowSpec:
        workflow = await self.storage.load_workflow(workflow_id)
        if workflow is not None and workflow.published:
            return workflow
        if workflow is None and await self.storage.load_workflow(workflow_id, draft=True) is None:
            raise WorkflowNotFound(workflow_id)
        raise WorkflowNotPublished(workflow_id)

    async def run_workflow(
        self,
        workflow_id: str,
        input_data: dict[str, Any] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunSummary:
        """
        Run the published version of a workflow.

        Returns:
            RunSummary with the run id, status, assembled outputs and per-node status

        Raises:
            WorkflowNotFound / WorkflowNotPublished: nothing runnable under this id
            NoOutputProduced: the run finished without any output
            WorkflowValidationError: the stored definition is unsound
        """
        workflow = await self._load_published(workflow_id)
        run = await self.executor.execute(workflow, input_data or {}, cancel_event=cancel_event)
        await self.storage.save_run(run)
        self.executor.run_store.discard_run(run.id)

        summary = run.summary()
        if run.status == RunStatus.FAILED:
            raise NoOutputProduced(summary)
        return summary

    async def register_as_tool(
        self,
        registry: ToolRegistry,
        workflow_id: str,
        name: str | None = None,
        description: str | None = None,
    ) -> Tool:
        """
        Expose a published workflow as a tool.

        The tool's parameters are the schema of the workflow's Input node; a
        call runs the workflow and returns its outputs.
        """
        workflow = await self._load_published(workflow_id)
        input_nodes = workflow.input_nodes()
        parameters = (input_nodes[0].output_schema if input_nodes else None) or {"type": "object"}

        tool = Tool(
            name=name or workflow.id,
            description=description or workflow.description or f"Run workflow {workflow.id}",
            parameters=parameters,
        )

        async def executor(inputs: dict) -> Any:
            summary = await self.run_workflow(workflow_id, inputs)
            return summary.outputs

        registry.register(tool.name, tool, executor)
        return tool
