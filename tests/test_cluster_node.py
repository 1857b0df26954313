"""Tests for cluster roots and their concurrently executed sub-nodes."""

import asyncio

import pytest

from tinyflow.config import EngineConfig
from tinyflow.graph.edge import EdgeSpec, WorkflowGraph
from tinyflow.graph.executor import GraphExecutor
from tinyflow.graph.node import FunctionResult, NodeSpec, NodeStrategy
from tinyflow.graph.shared_store import DebugHooks, MemoryLimits, MockSpec
from tinyflow.registry import FunctionMetadata, FunctionRegistry


def sub(node_id: str, function_id: str, **kwargs) -> NodeSpec:
    return NodeSpec(id=node_id, function_id=function_id, **kwargs)


def cluster_graph(subs: list[NodeSpec], root_fn: str = "root", **extra) -> WorkflowGraph:
    return WorkflowGraph(
        nodes={
            "cluster": NodeSpec(
                id="cluster",
                function_id=root_fn,
                strategy=NodeStrategy.CLUSTER_ROOT,
                sub_nodes=subs,
            ),
            "after": NodeSpec(id="after", function_id="mark"),
        },
        edges={"cluster": [EdgeSpec(source="cluster", target="after", action="default")]},
        start_node_id="cluster",
        **extra,
    )


def make_registry() -> FunctionRegistry:
    registry = FunctionRegistry()

    @registry.function(id="root")
    async def root(params, context):
        return FunctionResult.ok("root output")

    @registry.function(id="mark")
    async def mark(params, context):
        context.store["after_ran"] = True
        return FunctionResult.ok()

    @registry.function(id="echo_env")
    async def echo_env(params, context):
        return FunctionResult.ok(dict(context.env))

    @registry.function(id="boom")
    async def boom(params, context):
        raise RuntimeError("sub-node exploded")

    return registry


def run(registry, graph, **kwargs):
    config = EngineConfig(max_iterations=100, memory_limits=MemoryLimits(), profile=False)
    return GraphExecutor(registry, config=config).run(graph, **kwargs)


@pytest.mark.asyncio
async def test_sub_node_outputs_collected_regardless_of_completion_order():
    registry = make_registry()

    async def slow(params, context):
        await asyncio.sleep(0.02)
        return FunctionResult.ok("slow")

    async def fast(params, context):
        return FunctionResult.ok("fast")

    registry.register(FunctionMetadata(id="slow", name="slow"), slow)
    registry.register(FunctionMetadata(id="fast", name="fast"), fast)
    graph = cluster_graph([sub("sub1", "slow"), sub("sub2", "fast")])

    result = await run(registry, graph)

    assert result.success
    assert result.data["_clusterOutputs"]["cluster"] == {"sub1": "slow", "sub2": "fast"}
    assert result.node_results["cluster"].output == "root output"
    assert result.node_results["sub1"].output == "slow"
    assert result.path == ["cluster", "after"]


@pytest.mark.asyncio
async def test_sub_nodes_run_concurrently():
    registry = make_registry()
    running = 0
    peak = 0

    async def track(params, context):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return FunctionResult.ok()

    registry.register(FunctionMetadata(id="track", name="track"), track)
    graph = cluster_graph([sub("s1", "track"), sub("s2", "track"), sub("s3", "track")])

    await run(registry, graph)

    assert peak == 3


@pytest.mark.asyncio
async def test_root_failure_halts_and_skips_sub_nodes():
    registry = make_registry()
    called = []

    async def failing_root(params, context):
        return FunctionResult.fail("root refused")

    async def never(params, context):
        called.append(True)
        return FunctionResult.ok()

    registry.register(FunctionMetadata(id="failing_root", name="r"), failing_root)
    registry.register(FunctionMetadata(id="never", name="n"), never)
    graph = cluster_graph([sub("s1", "never")], root_fn="failing_root")

    result = await run(registry, graph)

    assert not result.success
    assert result.error.node_id == "cluster"
    assert result.error.message == "root refused"
    assert called == []
    assert "_clusterOutputs" not in result.data


@pytest.mark.asyncio
async def test_sub_node_failure_does_not_halt_run():
    registry = make_registry()
    graph = cluster_graph([sub("bad", "boom"), sub("good", "echo_env")])

    result = await run(registry, graph)

    assert result.success
    assert result.data["after_ran"] is True
    assert result.node_results["bad"].success is False
    assert result.node_results["bad"].error == "sub-node exploded"
    assert result.data["_clusterOutputs"]["cluster"]["bad"] is None
    assert "[✗] bad: sub-node exploded" in result.logs
    assert "[✓] good: completed" in result.logs


@pytest.mark.asyncio
async def test_sub_node_env_overrides_are_isolated():
    registry = make_registry()
    graph = cluster_graph(
        [
            sub("s1", "echo_env", env_overrides={"ROLE": "first"}),
            sub("s2", "echo_env", env_overrides={"ROLE": "second"}),
            sub("s3", "echo_env"),
        ],
        env={"SHARED": "yes"},
    )

    result = await run(registry, graph)

    outputs = result.data["_clusterOutputs"]["cluster"]
    assert outputs["s1"] == {"SHARED": "yes", "ROLE": "first"}
    assert outputs["s2"] == {"SHARED": "yes", "ROLE": "second"}
    assert outputs["s3"] == {"SHARED": "yes"}


@pytest.mark.asyncio
async def test_root_overrides_not_inherited_by_sub_nodes():
    registry = make_registry()
    graph = cluster_graph([sub("s1", "echo_env")])
    graph.nodes["cluster"].env_overrides = {"ROOT_ONLY": "1"}

    result = await run(registry, graph)

    assert "ROOT_ONLY" not in result.data["_clusterOutputs"]["cluster"]["s1"]


@pytest.mark.asyncio
async def test_sub_node_mock_used_instead_of_function():
    registry = make_registry()
    graph = cluster_graph([sub("s1", "boom")])

    result = await run(registry, graph, mock_values={"s1": MockSpec(output="mocked")})

    assert result.data["_clusterOutputs"]["cluster"] == {"s1": "mocked"}
    assert result.node_results["s1"].success


@pytest.mark.asyncio
async def test_sub_node_hooks_fire():
    registry = make_registry()
    completed = []
    hooks = DebugHooks(on_node_complete=lambda node_id, ok, output: completed.append(node_id))
    graph = cluster_graph([sub("s1", "echo_env")])

    await run(registry, graph, debug_hooks=hooks)

    assert completed == ["s1", "cluster", "after"]


@pytest.mark.asyncio
async def test_outputs_merged_across_two_cluster_roots():
    registry = make_registry()

    async def constant(params, context):
        return FunctionResult.ok(params["value"])

    registry.register(FunctionMetadata(id="constant", name="c"), constant)
    graph = WorkflowGraph(
        nodes={
            "first": NodeSpec(
                id="first",
                function_id="root",
                strategy=NodeStrategy.CLUSTER_ROOT,
                sub_nodes=[sub("a", "constant", params={"value": 1})],
            ),
            "second": NodeSpec(
                id="second",
                function_id="root",
                strategy=NodeStrategy.CLUSTER_ROOT,
                sub_nodes=[sub("b", "constant", params={"value": 2})],
            ),
        },
        edges={"first": [EdgeSpec(source="first", target="second")]},
        start_node_id="first",
    )

    result = await run(registry, graph)

    assert result.data["_clusterOutputs"] == {"first": {"a": 1}, "second": {"b": 2}}


@pytest.mark.asyncio
async def test_malformed_batch_sub_node_does_not_fail_root():
    registry = make_registry()
    broken_batch = sub(
        "batch",
        "control.batch",
        params={"array": [1], "processorFunction": "echo_env", "processorParams": ["bad"]},
        strategy=NodeStrategy.SEQUENTIAL_BATCH,
    )
    graph = cluster_graph([broken_batch, sub("good", "echo_env")])

    result = await run(registry, graph)

    assert result.success
    assert result.node_results["cluster"].success
    assert result.node_results["batch"].success is False
    assert result.data["_clusterOutputs"]["cluster"]["batch"] is None
    assert result.data["after_ran"] is True
