"""
Workflow Executor - runs a workflow graph as a bounded task scheduler.

The executor:
1. Validates the graph (errors abort before any node runs)
2. Computes a topological order once
3. Keeps a ready queue of nodes whose predecessors are all terminal,
   ordered by topological position
4. Gates each ready node (skip cascade / inactive branch / missing input)
5. Runs at most ``max_concurrency`` nodes at a time as asyncio tasks
6. Records every NodeResult from the scheduler loop, the only writer
7. Assembles Output nodes into the run's outputs and sets the run status

A failed node never aborts the run: its descendants are marked
skipped_due_to_failure and independent branches keep going.
"""

import asyncio
import copy
import heapq
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from dagflow.capabilities import Capabilities
from dagflow.config import EngineConfig
from dagflow.errors import DagflowError, NodeTimeout
from dagflow.graph.edge import EdgeSpec, WorkflowSpec
from dagflow.graph.node import NodeSpec
from dagflow.graph.node_executors import NodeContext, run_node
from dagflow.graph.validator import validate_workflow
from dagflow.observability.logging import set_trace_context, trace_scope
from dagflow.runtime.run_store import RunStore
from dagflow.schemas.run import (
    ExecutionRun,
    NodeError,
    NodeResult,
    NodeStatus,
    RunStatus,
)

FAILURE_STATUSES = frozenset({NodeStatus.FAILED, NodeStatus.SKIPPED_DUE_TO_FAILURE})


def edge_is_active(edge: EdgeSpec, results: Mapping[str, NodeResult]) -> bool:
    """An edge carries data when its source succeeded and, if labelled, selected its branch."""
    source = results.get(edge.source)
    if source is None or not source.success:
        return False
    return edge.branch is None or source.branch == edge.branch


def compute_run_status(workflow: WorkflowSpec, results: Mapping[str, NodeResult]) -> RunStatus:
    """
    Overall status from the Output nodes.

    Every Output node must succeed for the run to succeed; any skipped or
    failed one makes it partial. Without Output nodes the run succeeds when
    no node failed. Called only once every node has a result.
    """
    output_nodes = workflow.output_nodes()
    if not output_nodes:
        if any(r.status == NodeStatus.FAILED for r in results.values()):
            return RunStatus.FAILED
        return RunStatus.SUCCEEDED

    succeeded = sum(1 for n in output_nodes if results[n.id].status == NodeStatus.SUCCEEDED)
    if succeeded == 0:
        return RunStatus.FAILED
    return RunStatus.SUCCEEDED if succeeded == len(output_nodes) else RunStatus.PARTIAL


def assemble_outputs(workflow: WorkflowSpec, results: Mapping[str, NodeResult]) -> dict[str, Any]:
    """Merge copies of every successful Output node's object, in declaration order."""
    outputs: dict[str, Any] = {}
    for node in workflow.output_nodes():
        result = results.get(node.id)
        if result is not None and result.success and result.output:
            outputs.update(copy.deepcopy(result.output))
    return outputs


class WorkflowExecutor:
    """
    Executes workflows against a fixed set of capabilities.

    One executor can serve many concurrent runs; runs share nothing but the
    (immutable) workflow definition, the capabilities and the run store.

    Example:
        executor = WorkflowExecutor(Capabilities(llm=LiteLLMProvider()))
        run = await executor.execute(workflow, {"city": "Paris"})
        print(run.status, run.outputs)
    """

    def __init__(
        self,
        capabilities: Capabilities,
        config: EngineConfig | None = None,
        run_store: RunStore | None = None,
    ):
        self.capabilities = capabilities
        self.config = config or EngineConfig()
        self.run_store = run_store or RunStore()
        self.logger = logging.getLogger(__name__)

    async def execute(
        self,
        workflow: WorkflowSpec,
        input_data: Mapping[str, Any] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ExecutionRun:
        """
        Run a workflow to completion.

        Args:
            workflow: The workflow to run
            input_data: Initial input, handed to every Input node
            cancel_event: Setting it stops dispatch and cancels in-flight nodes

        Returns:
            The finished ExecutionRun

        Raises:
            WorkflowValidationError: the graph is unsound; no node ran
            asyncio.CancelledError: the awaiting task was cancelled (the run is
                recorded as cancelled first)
        """
        validation = validate_workflow(workflow)
        if not validation.success:
            self.logger.error(f"❌ Workflow '{workflow.id}' failed validation:")
            for err in validation.errors:
                self.logger.error(f"   • {err}")
            validation.raise_for_errors()
        for warning in validation.warnings:
            self.logger.warning(f"⚠ {warning}")

        run = self.run_store.start_run(workflow, input_data or {})
        with trace_scope(run_id=run.id, workflow_id=workflow.id):
            self.logger.info(f"🚀 Starting run {run.id}: {workflow.name or workflow.id}")
            scheduler = _RunScheduler(self, workflow, run, cancel_event)
            return await scheduler.run()


class _RunScheduler:
    """State of one run: ready queue, in-flight tasks, dependency counters."""

    def __init__(
        self,
        executor: WorkflowExecutor,
        workflow: WorkflowSpec,
        run: ExecutionRun,
        cancel_event: asyncio.Event | None,
    ):
        self.workflow = workflow
        self.execution = run
        self.store = executor.run_store
        self.config = executor.config
        self.logger = executor.logger
        self.cancel_event = cancel_event
        self.ctx = NodeContext(
            run_id=run.id,
            capabilities=executor.capabilities,
            config=executor.config,
            run_input=run.input,
        )

        self.order = workflow.topological_order()
        self.position = {node_id: i for i, node_id in enumerate(self.order)}
        self.waiting = {node_id: len(workflow.predecessors(node_id)) for node_id in self.order}
        self.ready = [self.position[n] for n, count in self.waiting.items() if count == 0]
        heapq.heapify(self.ready)
        self.in_flight: dict[asyncio.Task, str] = {}

        self.loop = asyncio.get_running_loop()
        self.deadline = self.loop.time() + self.config.run_timeout_seconds

    async def run(self) -> ExecutionRun:
        cancel_waiter = None
        if self.cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(self.cancel_event.wait())
        try:
            cancelled = await self._drain(cancel_waiter)
        except asyncio.CancelledError:
            self.logger.warning("⏹ Run cancelled by caller")
            await self._abort()
            await self._finish(RunStatus.CANCELLED)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if cancelled:
            self.logger.warning("⏹ Run cancelled")
            await self._abort()
            return await self._finish(RunStatus.CANCELLED)
        return await self._finish(compute_run_status(self.workflow, self.execution.results))

    # -------------------------------------------------------------------
    # Scheduling loop
    # -------------------------------------------------------------------

    def _cancel_requested(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def _drain(self, cancel_waiter: asyncio.Future | None) -> bool:
        """Run until nothing is ready or in flight. Returns True when cancelled."""
        while self.ready or self.in_flight:
            if self._cancel_requested():
                return True
            self._dispatch_ready()
            if not self.in_flight:
                continue

            waitables: set[asyncio.Future] = set(self.in_flight)
            if cancel_waiter is not None:
                waitables.add(cancel_waiter)
            done, _ = await asyncio.wait(waitables, return_when=asyncio.FIRST_COMPLETED)

            for task in done:
                if task is cancel_waiter:
                    continue
                node_id = self.in_flight.pop(task)
                if task.cancelled():
                    self._record(self._cancelled_result(node_id))
                else:
                    self._record(task.result())
        return False

    def _dispatch_ready(self) -> None:
        while self.ready and len(self.in_flight) < self.config.max_concurrency:
            node = self.workflow.get_node(self.order[heapq.heappop(self.ready)])

            skip = self._gate(node)
            if skip is not None:
                status, reason = skip
                self.logger.info(f"⏭ Skipping {node.display_name}: {reason}")
                self._record(NodeResult(node_id=node.id, kind=node.kind, status=status))
                continue

            timeout = self._node_timeout(node)
            if timeout <= 0:
                self._record(
                    NodeResult(
                        node_id=node.id,
                        kind=node.kind,
                        status=NodeStatus.FAILED,
                        error=NodeError(
                            kind=NodeTimeout.kind,
                            type=NodeTimeout.__name__,
                            message=(
                                f"Run budget of {self.config.run_timeout_seconds:g}s was spent "
                                f"before node '{node.id}' started"
                            ),
                        ),
                    )
                )
                continue

            self.store.mark_running(self.execution.id, node.id)
            task = asyncio.create_task(
                self._execute_node(node, timeout),
                name=f"dagflow:{self.execution.id}:{node.id}",
            )
            self.in_flight[task] = node.id

    def _gate(self, node: NodeSpec) -> tuple[NodeStatus, str] | None:
        """Decide whether a ready node runs. Returns (skip status, reason) or None."""
        results = self.execution.results
        incoming = self.workflow.get_incoming_edges(node.id)

        failed = [e.source for e in incoming if results[e.source].status in FAILURE_STATUSES]
        if failed:
            return NodeStatus.SKIPPED_DUE_TO_FAILURE, f"upstream failure in {failed}"

        if incoming and not any(edge_is_active(e, results) for e in incoming):
            return NodeStatus.SKIPPED, "no active incoming edge"

        for reference in node.references():
            source = results.get(reference.node_id)
            if source is None or not source.success:
                return NodeStatus.SKIPPED, f"'{reference}' has no value in this run"
        return None

    def _node_timeout(self, node: NodeSpec) -> float:
        node_timeout = node.timeout_seconds or self.config.node_timeout_seconds
        return min(node_timeout, self.deadline - self.loop.time())

    def _record(self, result: NodeResult) -> None:
        self.store.record_result(self.execution.id, result)
        for target in self.workflow.successors(result.node_id):
            self.waiting[target] -= 1
            if self.waiting[target] == 0:
                heapq.heappush(self.ready, self.position[target])

    # -------------------------------------------------------------------
    # Node tasks
    # -------------------------------------------------------------------

    async def _execute_node(self, node: NodeSpec, timeout: float) -> NodeResult:
        set_trace_context(node_id=node.id)
        started_at = datetime.now()
        self.logger.info(f"▶ {node.display_name} ({node.kind})")

        scope = asyncio.timeout(timeout)
        try:
            async with scope:
                outcome = await run_node(node, self.execution.results, self.ctx)
        except TimeoutError as e:
            error = NodeTimeout(node.id, timeout) if scope.expired() else e
            return self._failed(node, error, started_at)
        except DagflowError as e:
            return self._failed(node, e, started_at)
        except Exception as e:
            self.logger.exception(f"Unexpected error in node '{node.id}'")
            return self._failed(node, e, started_at)

        suffix = f" → branch '{outcome.branch}'" if outcome.branch is not None else ""
        self.logger.info(f"✓ {node.display_name} succeeded{suffix}")
        return NodeResult(
            node_id=node.id,
            kind=node.kind,
            status=NodeStatus.SUCCEEDED,
            output=outcome.output,
            branch=outcome.branch,
            started_at=started_at,
            token_usage=outcome.token_usage,
        )

    def _failed(self, node: NodeSpec, exc: BaseException, started_at: datetime) -> NodeResult:
        error = NodeError.from_exception(exc)
        self.logger.error(f"✗ {node.display_name} failed: {error.message}")
        return NodeResult(
            node_id=node.id,
            kind=node.kind,
            status=NodeStatus.FAILED,
            error=error,
            started_at=started_at,
        )

    def _cancelled_result(self, node_id: str) -> NodeResult:
        node = self.workflow.get_node(node_id)
        return NodeResult(node_id=node_id, kind=node.kind, status=NodeStatus.CANCELLED)

    # -------------------------------------------------------------------
    # Termination
    # -------------------------------------------------------------------

    async def _abort(self) -> None:
        """Cancel in-flight tasks and mark every node without a result cancelled."""
        tasks = list(self.in_flight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in tasks:
            node_id = self.in_flight.pop(task)
            if not task.cancelled() and task.exception() is None:
                # Finished before the cancellation landed; keep its result.
                self._record(task.result())
            else:
                self._record(self._cancelled_result(node_id))

        for node_id in self.order:
            if node_id not in self.execution.results:
                self._record(self._cancelled_result(node_id))

    async def _finish(self, status: RunStatus) -> ExecutionRun:
        outputs = assemble_outputs(self.workflow, self.execution.results)
        run = await self.store.finish_run(self.execution.id, status, outputs)
        icon = "✓" if status == RunStatus.SUCCEEDED else "⚠"
        self.logger.info(
            f"{icon} Run {run.id} finished: {status} "
            f"({run.duration_ms}ms, {run.total_tokens} tokens)"
        )
        return run
