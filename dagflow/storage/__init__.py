"""Storage backends for workflows and runs."""

from dagflow.storage.backend import FileStorage, InMemoryStorage, WorkflowStorage

__all__ = ["WorkflowStorage", "InMemoryStorage", "FileStorage"]
