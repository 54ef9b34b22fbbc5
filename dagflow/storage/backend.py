"""
Workflow and run persistence.

A workflow id has two slots: the published definition (what invocations
run) and the current draft (what the builder edits). Saving a published
workflow fills the published slot; saving a draft fills the draft slot.

Uses Pydantic's built-in serialization.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from dagflow.graph.edge import WorkflowSpec
from dagflow.schemas.run import ExecutionRun

logger = logging.getLogger(__name__)


class WorkflowStorage(ABC):
    """Where workflows and finished runs live."""

    @abstractmethod
    async def load_workflow(self, workflow_id: str, draft: bool = False) -> WorkflowSpec | None:
        """
        Load a workflow.

        Returns the published definition, or with ``draft=True`` the current
        draft (falling back to the published one). None when absent.
        """

    @abstractmethod
    async def save_workflow(self, workflow: WorkflowSpec) -> None: ...

    @abstractmethod
    async def save_run(self, run: ExecutionRun) -> None: ...

    @abstractmethod
    async def load_run(self, run_id: str) -> ExecutionRun | None: ...

    @abstractmethod
    async def list_runs(self, workflow_id: str | None = None) -> list[ExecutionRun]:
        """Runs sorted by start time, oldest first."""


class InMemoryStorage(WorkflowStorage):
    """Process-local storage. Returns copies so callers cannot mutate stored state."""

    def __init__(self):
        self._published: dict[str, WorkflowSpec] = {}
        self._drafts: dict[str, WorkflowSpec] = {}
        self._runs: dict[str, ExecutionRun] = {}

    async def load_workflow(self, workflow_id: str, draft: bool = False) -> WorkflowSpec | None:
        workflow = self._drafts.get(workflow_id) if draft else None
        workflow = workflow or self._published.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    async def save_workflow(self, workflow: WorkflowSpec) -> None:
        slot = self._published if workflow.published else self._drafts
        slot[workflow.id] = workflow.model_copy(deep=True)
        if workflow.published:
            self._drafts.pop(workflow.id, None)

    async def save_run(self, run: ExecutionRun) -> None:
        self._runs[run.id] = run.model_copy(deep=True)

    async def load_run(self, run_id: str) -> ExecutionRun | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def list_runs(self, workflow_id: str | None = None) -> list[ExecutionRun]:
        runs = [
            r.model_copy(deep=True)
            for r in self._runs.values()
            if workflow_id is None or r.workflow_id == workflow_id
        ]
        return sorted(runs, key=lambda r: r.started_at)


class FileStorage(WorkflowStorage):
    """
    JSON files on disk.

    Directory structure:
    {base_path}/
      workflows/
        {workflow_id}.json         # published definition
        {workflow_id}.draft.json   # current draft
      runs/
        {run_id}.json
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self._ensure_dirs()

    def _ensure_dirs(self) -> None:
        (self.base_path / "workflows").mkdir(parents=True, exist_ok=True)
        (self.base_path / "runs").mkdir(parents=True, exist_ok=True)

    def _validate_key(self, key: str) -> None:
        """
        Validate key to prevent path traversal attacks.

        Raises:
            ValueError: If key contains path traversal or dangerous patterns
        """
        if not key or key.strip() == "":
            raise ValueError("Key cannot be empty")

        if "/" in key or "\\" in key:
            raise ValueError(f"Invalid key format: path separators not allowed in '{key}'")

        if ".." in key or key.startswith("."):
            raise ValueError(f"Invalid key format: path traversal detected in '{key}'")

        if len(key) > 1 and key[1] == ":":
            raise ValueError(f"Invalid key format: absolute paths not allowed in '{key}'")

        if "\x00" in key:
            raise ValueError("Invalid key format: null bytes not allowed")

        dangerous_chars = {"<", ">", "|", "&", "$", "`", "'", '"'}
        if any(char in key for char in dangerous_chars):
            raise ValueError(f"Invalid key format: contains dangerous characters in '{key}'")

    def _workflow_path(self, workflow_id: str, draft: bool) -> Path:
        self._validate_key(workflow_id)
        suffix = ".draft.json" if draft else ".json"
        return self.base_path / "workflows" / f"{workflow_id}{suffix}"

    def _run_path(self, run_id: str) -> Path:
        self._validate_key(run_id)
        return self.base_path / "runs" / f"{run_id}.json"

    @staticmethod
    def _write(path: Path, content: str) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
        tmp_path.replace(path)

    # === WORKFLOW OPERATIONS ===

    async def load_workflow(self, workflow_id: str, draft: bool = False) -> WorkflowSpec | None:
        paths = [self._workflow_path(workflow_id, draft=False)]
        if draft:
            paths.insert(0, self._workflow_path(workflow_id, draft=True))

        def _read() -> WorkflowSpec | None:
            for path in paths:
                if path.exists():
                    return WorkflowSpec.model_validate_json(path.read_text(encoding="utf-8"))
            return None

        return await asyncio.to_thread(_read)

    async def save_workflow(self, workflow: WorkflowSpec) -> None:
        path = self._workflow_path(workflow.id, draft=not workflow.published)
        await asyncio.to_thread(self._write, path, workflow.model_dump_json(indent=2))
        if workflow.published:
            draft_path = self._workflow_path(workflow.id, draft=True)
            await asyncio.to_thread(draft_path.unlink, missing_ok=True)
        logger.debug(f"Saved workflow '{workflow.id}' to {path}")

    # === RUN OPERATIONS ===

    async def save_run(self, run: ExecutionRun) -> None:
        path = self._run_path(run.id)
        await asyncio.to_thread(self._write, path, run.model_dump_json(indent=2))

    async def load_run(self, run_id: str) -> ExecutionRun | None:
        path = self._run_path(run_id)

        def _read() -> ExecutionRun | None:
            if not path.exists():
                return None
            return ExecutionRun.model_validate_json(path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(_read)

    async def list_runs(self, workflow_id: str | None = None) -> list[ExecutionRun]:
        def _read_all() -> list[ExecutionRun]:
            runs = []
            for path in (self.base_path / "runs").glob("*.json"):
                try:
                    runs.append(ExecutionRun.model_validate_json(path.read_text(encoding="utf-8")))
                except ValueError as e:
                    logger.warning(f"Skipping unreadable run file {path}: {e}")
            return runs

        runs = await asyncio.to_thread(_read_all)
        if workflow_id is not None:
            runs = [r for r in runs if r.workflow_id == workflow_id]
        return sorted(runs, key=lambda r: r.started_at)
