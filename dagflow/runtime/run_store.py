"""Run Store - keeps ExecutionRuns and their append-only NodeResults.

The scheduler loop is the only writer: node tasks hand their results back
to the loop, which records them here. A node's result can be recorded once;
a second attempt raises ResultAlreadyRecorded.

With a ``log_dir``, each run is also mirrored to disk:

    {log_dir}/
      {run_id}/
        details.jsonl   # one NodeResult per line, appended as recorded
        run.json        # the finished ExecutionRun, written once
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dagflow.errors import ResultAlreadyRecorded
from dagflow.schemas.run import ExecutionRun, NodeResult, NodeStatus, RunStatus

if TYPE_CHECKING:
    from dagflow.graph.edge import WorkflowSpec

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


class RunStore:
    """In-memory registry of runs, optionally mirrored to JSON files."""

    def __init__(self, log_dir: Path | str | None = None) -> None:
        self._runs: dict[str, ExecutionRun] = {}
        self._log_dir = Path(log_dir) if log_dir is not None else None

    # -------------------------------------------------------------------
    # Write (scheduler loop only)
    # -------------------------------------------------------------------

    def start_run(self, workflow: WorkflowSpec, input_data: Mapping[str, Any]) -> ExecutionRun:
        """Create a run with every node pending."""
        run = ExecutionRun(
            id=new_run_id(),
            workflow_id=workflow.id,
            workflow_version=workflow.version,
            input=dict(input_data),
            node_status={node.id: NodeStatus.PENDING for node in workflow.nodes},
        )
        self._runs[run.id] = run
        if self._log_dir is not None:
            (self._log_dir / run.id).mkdir(parents=True, exist_ok=True)
        return run

    def mark_running(self, run_id: str, node_id: str) -> None:
        run = self._require(run_id)
        if node_id in run.results:
            raise ResultAlreadyRecorded(run_id, node_id)
        run.node_status[node_id] = NodeStatus.RUNNING

    def record_result(self, run_id: str, result: NodeResult) -> None:
        """Append a terminal result. Raises ResultAlreadyRecorded on a second write."""
        run = self._require(run_id)
        if result.node_id in run.results:
            raise ResultAlreadyRecorded(run_id, result.node_id)
        run.results[result.node_id] = result
        run.node_status[result.node_id] = result.status
        if self._log_dir is not None:
            self._append_detail(run_id, result)

    async def finish_run(
        self, run_id: str, status: RunStatus, outputs: Mapping[str, Any]
    ) -> ExecutionRun:
        run = self._require(run_id)
        run.status = status
        run.outputs = dict(outputs)
        run.finished_at = datetime.now()
        if self._log_dir is not None:
            await asyncio.to_thread(self._write_run, run)
        return run

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    def get_run(self, run_id: str) -> ExecutionRun | None:
        return self._runs.get(run_id)

    def list_runs(self, workflow_id: str | None = None) -> list[ExecutionRun]:
        """Runs in start order, optionally filtered by workflow."""
        runs = list(self._runs.values())
        if workflow_id is not None:
            runs = [r for r in runs if r.workflow_id == workflow_id]
        return sorted(runs, key=lambda r: r.started_at)

    def load_details(self, run_id: str) -> list[NodeResult]:
        """Read a run's details.jsonl back. Skips corrupt lines."""
        if self._log_dir is None:
            return []
        path = self._log_dir / run_id / "details.jsonl"
        if not path.exists():
            return []
        results = []
        with open(path, encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    results.append(NodeResult.model_validate_json(line))
                except ValueError as e:
                    logger.warning(f"Skipping corrupt line {line_num} in {path}: {e}")
        return results

    def discard_run(self, run_id: str) -> ExecutionRun | None:
        """Drop a run from memory once it is persisted elsewhere. Files on disk are kept."""
        return self._runs.pop(run_id, None)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _require(self, run_id: str) -> ExecutionRun:
        run = self._runs.get(run_id)
        if run is None:
            raise KeyError(f"Unknown run: {run_id}")
        return run

    def _append_detail(self, run_id: str, result: NodeResult) -> None:
        path = self._log_dir / run_id / "details.jsonl"
        line = json.dumps(result.model_dump(mode="json"), ensure_ascii=False) + "\n"
        with open(path, "a", encoding="utf-8") as f:
            f.write(line)

    def _write_run(self, run: ExecutionRun) -> None:
        run_dir = self._log_dir / run.id
        run_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = run_dir / "run.json.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(run.model_dump_json(indent=2))
        tmp_path.replace(run_dir / "run.json")
