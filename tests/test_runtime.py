"""Tests for Runtime: loading, executing and the one-shot helpers."""

import json

import pytest

from tinyflow.config import EngineConfig
from tinyflow.graph.node import FunctionResult
from tinyflow.graph.shared_store import MemoryLimits, MockSpec, RunErrorKind
from tinyflow.registry import FunctionMetadata, create_default_registry
from tinyflow.runtime import RunOptions, Runtime, run_workflow, run_workflow_from_json
from tinyflow.schema import WorkflowDefinition

LOOP_WORKFLOW = {
    "id": "loop",
    "name": "Counting loop",
    "nodes": [
        {
            "id": "init",
            "functionId": "control.counter",
            "params": {"counterKey": "i", "operation": "init"},
        },
        {
            "id": "check",
            "functionId": "control.loopCheck",
            "params": {"counterKey": "i", "limit": 3},
        },
        {
            "id": "inc",
            "functionId": "control.counter",
            "params": {"counterKey": "i", "operation": "increment"},
        },
        {"id": "done", "functionId": "core.setValue", "params": {"key": "finished", "value": True}},
    ],
    "edges": [
        {"from": "init", "to": "check"},
        {"from": "check", "to": "inc", "action": "success"},
        {"from": "check", "to": "done", "action": "default"},
        {"from": "inc", "to": "check"},
    ],
    "flow": {"startNodeId": "init"},
}


def quiet_config(max_iterations=100) -> EngineConfig:
    return EngineConfig(max_iterations=max_iterations, memory_limits=MemoryLimits(), profile=False)


@pytest.mark.asyncio
async def test_load_and_execute_loop():
    runtime = Runtime(config=quiet_config())

    compilation = runtime.load(WorkflowDefinition.model_validate(LOOP_WORKFLOW))
    result = await runtime.execute()

    assert compilation.success
    assert runtime.is_ready
    assert result.success
    assert result.data == {"i": 3, "finished": True}
    assert result.path == ["init"] + ["check", "inc"] * 3 + ["check", "done"]


@pytest.mark.asyncio
async def test_execute_many_times_uses_fresh_store():
    runtime = Runtime(config=quiet_config())
    runtime.load(WorkflowDefinition.model_validate(LOOP_WORKFLOW))

    first = await runtime.execute(RunOptions(initial_data={"seed": 1}))
    second = await runtime.execute()

    assert first.store is not second.store
    assert "seed" not in second.data


@pytest.mark.asyncio
async def test_iteration_cap_reported_as_runaway():
    runtime = Runtime(config=quiet_config(max_iterations=4))
    runtime.load(WorkflowDefinition.model_validate(LOOP_WORKFLOW))

    result = await runtime.execute()

    assert not result.success
    assert result.error.node_id is None
    assert result.error.kind == RunErrorKind.RUNAWAY
    assert result.error.message == "Max iterations (4) exceeded - possible infinite loop"


@pytest.mark.asyncio
async def test_execute_without_workflow():
    errors = []
    runtime = Runtime()

    result = await runtime.execute(RunOptions(on_error=lambda *args: errors.append(args)))

    assert not runtime.is_ready
    assert not result.success
    assert result.error.message == "No workflow loaded"
    assert result.logs == ["No workflow loaded"]
    assert errors == [("", "No workflow loaded")]


@pytest.mark.asyncio
async def test_compile_errors_surface_as_failed_result():
    runtime = Runtime()
    broken = {**LOOP_WORKFLOW, "flow": {"startNodeId": "ghost"}}

    compilation = runtime.load_from_json(json.dumps(broken))
    result = await runtime.execute()

    assert not compilation.success
    assert runtime.compilation is compilation
    assert not result.success
    assert result.error.kind == RunErrorKind.COMPILE
    assert 'Start node "ghost" not found' in result.error.message


@pytest.mark.asyncio
async def test_invalid_json_surfaces_as_failed_result():
    runtime = Runtime()

    runtime.load_from_json("{not json")
    result = await runtime.execute()

    assert not result.success
    assert result.error.message.startswith("JSON parse error")


@pytest.mark.asyncio
async def test_node_failure_reported_through_on_error():
    errors = []
    catalog = create_default_registry()

    async def reject(params, context):
        return FunctionResult.fail("rejected")

    catalog.register(FunctionMetadata(id="test.reject", name="reject"), reject)
    workflow = WorkflowDefinition.model_validate(
        {
            "id": "failing",
            "nodes": [{"id": "a", "functionId": "test.reject"}],
            "flow": {"startNodeId": "a"},
        }
    )
    runtime = Runtime(catalog=catalog, config=quiet_config())
    runtime.load(workflow)

    result = await runtime.execute(RunOptions(on_error=lambda *args: errors.append(args)))

    assert not result.success
    assert result.error.kind == RunErrorKind.NODE
    assert errors == [("a", "rejected")]


@pytest.mark.asyncio
async def test_on_log_receives_store_lines():
    lines = []
    runtime = Runtime(config=quiet_config())
    runtime.load(WorkflowDefinition.model_validate(LOOP_WORKFLOW))

    result = await runtime.execute(RunOptions(on_log=lines.append))

    assert lines == result.logs
    assert '[init] Counter "i" = 0' in lines


@pytest.mark.asyncio
async def test_env_layering_through_runtime():
    catalog = create_default_registry()

    async def capture(params, context):
        context.store["env"] = dict(context.env)
        return FunctionResult.ok()

    catalog.register(FunctionMetadata(id="test.env", name="env"), capture)
    workflow = WorkflowDefinition.model_validate(
        {
            "id": "env",
            "nodes": [{"id": "a", "functionId": "test.env", "envs": {"NODE": "node"}}],
            "flow": {"startNodeId": "a", "envs": {"FLOW": "flow", "SHARED": "flow"}},
        }
    )
    runtime = Runtime(
        catalog=catalog,
        global_envs={"GLOBAL": "global", "RUN": "global", "SHARED": "global"},
        config=quiet_config(),
    )
    runtime.load(workflow)

    result = await runtime.execute(RunOptions(env={"RUN": "run", "SHARED": "run"}))

    assert result.data["env"] == {
        "GLOBAL": "global",
        "RUN": "run",
        "SHARED": "flow",
        "FLOW": "flow",
        "NODE": "node",
    }


@pytest.mark.asyncio
async def test_mocks_pass_through_runtime():
    runtime = Runtime(config=quiet_config())
    runtime.load(WorkflowDefinition.model_validate(LOOP_WORKFLOW))

    result = await runtime.execute(
        RunOptions(mock_values={"check": MockSpec(output=False, action="default")})
    )

    assert result.path == ["init", "check", "done"]


@pytest.mark.asyncio
async def test_unexpected_executor_error_becomes_runtime_error(monkeypatch):
    async def explode(self, *args, **kwargs):
        raise RuntimeError("executor crashed")

    monkeypatch.setattr("tinyflow.graph.executor.GraphExecutor.run", explode)
    runtime = Runtime()
    runtime.load(WorkflowDefinition.model_validate(LOOP_WORKFLOW))

    result = await runtime.execute()

    assert not result.success
    assert result.error.node_id == "runtime"
    assert result.error.kind == RunErrorKind.RUNTIME
    assert result.logs == ["Runtime error: executor crashed"]


@pytest.mark.asyncio
async def test_one_shot_helpers():
    from_model = await run_workflow(WorkflowDefinition.model_validate(LOOP_WORKFLOW))
    from_json = await run_workflow_from_json(json.dumps(LOOP_WORKFLOW))

    assert from_model.success
    assert from_json.success
    assert from_model.data == from_json.data


@pytest.mark.asyncio
async def test_batch_workflow_from_json():
    document = {
        "id": "batch",
        "nodes": [
            {
                "id": "double",
                "functionId": "control.batch",
                "params": {"array": [1, 2, 3], "processorFunction": "transform.double"},
            }
        ],
        "flow": {"startNodeId": "double"},
    }

    result = await Runtime.run_from_json(json.dumps(document))

    assert result.success
    assert result.data["batchResults"] == [2, 4, 6]
