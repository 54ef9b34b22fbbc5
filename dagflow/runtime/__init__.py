"""Runtime bookkeeping for executions."""

from dagflow.runtime.run_store import RunStore

__all__ = ["RunStore"]
