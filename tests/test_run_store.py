"""Tests for the append-only run store and its on-disk mirror."""

import json

import pytest

from dagflow.errors import ResultAlreadyRecorded
from dagflow.runtime.run_store import RunStore, new_run_id
from dagflow.schemas.run import ExecutionRun, NodeResult, NodeStatus, RunStatus


def result(node_id: str, status: NodeStatus = NodeStatus.SUCCEEDED, **kwargs) -> NodeResult:
    return NodeResult(node_id=node_id, kind="template", status=status, **kwargs)


def test_run_ids_are_unique():
    ids = {new_run_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(run_id.startswith("run_") for run_id in ids)


def test_start_run_marks_every_node_pending(ip_lookup_workflow):
    store = RunStore()

    run = store.start_run(ip_lookup_workflow, {"q": 1})

    assert run.status == RunStatus.RUNNING
    assert run.input == {"q": 1}
    assert run.nodes_with_status(NodeStatus.PENDING) == ["input", "fetch", "out"]
    assert store.get_run(run.id) is run


def test_results_are_append_only(ip_lookup_workflow):
    store = RunStore()
    run = store.start_run(ip_lookup_workflow, {})
    store.mark_running(run.id, "input")
    assert run.node_status["input"] == NodeStatus.RUNNING

    store.record_result(run.id, result("input", output={"a": 1}))

    with pytest.raises(ResultAlreadyRecorded):
        store.record_result(run.id, result("input", NodeStatus.FAILED))
    with pytest.raises(ResultAlreadyRecorded):
        store.mark_running(run.id, "input")
    assert run.results["input"].output == {"a": 1}
    assert run.node_status["input"] == NodeStatus.SUCCEEDED


def test_unknown_run():
    with pytest.raises(KeyError):
        RunStore().record_result("run_missing", result("a"))


@pytest.mark.asyncio
async def test_finish_run_sets_outputs_and_status(ip_lookup_workflow):
    store = RunStore()
    run = store.start_run(ip_lookup_workflow, {})

    finished = await store.finish_run(run.id, RunStatus.PARTIAL, {"result": "x"})

    assert finished.status == RunStatus.PARTIAL
    assert finished.outputs == {"result": "x"}
    assert finished.finished_at is not None
    assert finished.duration_ms >= 0


def test_list_runs_by_workflow(ip_lookup_workflow, branching_workflow):
    store = RunStore()
    first = store.start_run(ip_lookup_workflow, {})
    store.start_run(branching_workflow, {})
    second = store.start_run(ip_lookup_workflow, {})

    assert [r.id for r in store.list_runs("ip-lookup")] == [first.id, second.id]
    assert len(store.list_runs()) == 3


def test_discard_run(ip_lookup_workflow):
    store = RunStore()
    run = store.start_run(ip_lookup_workflow, {})

    assert store.discard_run(run.id) is run
    assert store.get_run(run.id) is None
    assert store.discard_run(run.id) is None
    with pytest.raises(KeyError):
        store.record_result(run.id, result("input"))


class TestLogDir:
    @pytest.mark.asyncio
    async def test_details_and_run_files(self, tmp_path, ip_lookup_workflow):
        store = RunStore(log_dir=tmp_path)
        run = store.start_run(ip_lookup_workflow, {})
        store.record_result(run.id, result("input", output={"a": 1}))
        store.record_result(run.id, result("fetch", NodeStatus.FAILED))

        await store.finish_run(run.id, RunStatus.FAILED, {})

        run_dir = tmp_path / run.id
        lines = (run_dir / "details.jsonl").read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["node_id"] for line in lines] == ["input", "fetch"]
        saved = ExecutionRun.model_validate_json((run_dir / "run.json").read_text(encoding="utf-8"))
        assert saved.status == RunStatus.FAILED
        assert not (run_dir / "run.json.tmp").exists()

    def test_load_details_skips_corrupt_lines(self, tmp_path, ip_lookup_workflow):
        store = RunStore(log_dir=tmp_path)
        run = store.start_run(ip_lookup_workflow, {})
        store.record_result(run.id, result("input"))
        with open(tmp_path / run.id / "details.jsonl", "a", encoding="utf-8") as f:
            f.write("{truncated\n")
        store.record_result(run.id, result("fetch"))

        details = store.load_details(run.id)

        assert [r.node_id for r in details] == ["input", "fetch"]

    def test_without_log_dir_nothing_is_written(self, ip_lookup_workflow):
        store = RunStore()
        run = store.start_run(ip_lookup_workflow, {})

        assert store.load_details(run.id) == []
