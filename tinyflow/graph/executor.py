"""
Graph Executor - Walks compiled workflow graphs.

The executor:
1. Creates a fresh SharedStore for the run
2. Starts at the graph's start node
3. Merges env layers and invokes the node's strategy (or its mock)
4. Records results, fires debug hooks and applies memory limits
5. Halts on a failed result, otherwise follows the matching edge
6. Returns an ExecutionResult with the store, logs and any error

Nothing a node does escapes run() as an exception except
MiddlewareChainError, which signals a broken middleware.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from tinyflow.config import EngineConfig
from tinyflow.graph.edge import WorkflowGraph
from tinyflow.graph.node import FunctionResult, NodeSpec
from tinyflow.graph.profiler import NodeProfiler
from tinyflow.graph.shared_store import (
    DebugHooks,
    MemoryLimits,
    MockSpec,
    RunError,
    RunErrorKind,
    SharedStore,
)
from tinyflow.graph.strategies import StrategyRunner
from tinyflow.middleware.registry import MiddlewareCatalog
from tinyflow.middleware.types import MiddlewareChainError
from tinyflow.observability import set_trace_context
from tinyflow.registry.registry import FunctionCatalog


@dataclass
class ExecutionResult:
    """Result of executing a graph."""

    success: bool
    store: SharedStore
    logs: list[str] = field(default_factory=list)
    error: RunError | None = None
    duration_ms: float = 0.0
    steps_executed: int = 0
    path: list[str] = field(default_factory=list)  # Node IDs traversed, in order

    @property
    def data(self) -> dict[str, Any]:
        return self.store.data

    @property
    def node_results(self) -> dict[str, FunctionResult]:
        return self.store.node_results


class GraphExecutor:
    """
    Executes compiled workflow graphs.

    Example:
        executor = GraphExecutor(catalog=create_default_registry())
        result = await executor.run(graph, initial_data={"items": [1, 2, 3]})
    """

    def __init__(
        self,
        catalog: FunctionCatalog,
        global_env: dict[str, str] | None = None,
        config: EngineConfig | None = None,
    ):
        """
        Args:
            catalog: Where node function ids are resolved
            global_env: Lowest-priority environment layer
            config: Engine settings; read from the config file when omitted
        """
        self.catalog = catalog
        self.global_env = dict(global_env or {})
        self.config = config or EngineConfig()
        self.logger = logging.getLogger(__name__)

    async def run(
        self,
        graph: WorkflowGraph,
        initial_data: dict[str, Any] | None = None,
        env: dict[str, str] | None = None,
        mock_values: dict[str, MockSpec] | None = None,
        memory_limits: MemoryLimits | None = None,
        debug_hooks: DebugHooks | None = None,
        on_log: Callable[[str], None] | None = None,
        profile: bool | None = None,
        run_id: str | None = None,
    ) -> ExecutionResult:
        """
        Execute a graph from its start node.

        Args:
            graph: Compiled graph
            initial_data: Seed for the store's data map
            env: Run-level env, layered over the global env and under the
                workflow and node env
            mock_values: Per-node substitute results
            memory_limits: Caps applied after every node (config default)
            debug_hooks: Callbacks around every node
            on_log: Called with every line appended to the store logs
            profile: Capture a NodeProfile per node (config default)
            run_id: Correlation id for log records

        Returns:
            ExecutionResult
        """
        run_id = run_id or uuid.uuid4().hex[:12]
        set_trace_context(run_id=run_id, workflow_id=graph.id or None)
        profile = self.config.profile if profile is None else profile

        base_env = {**self.global_env, **graph.global_env, **(env or {}), **graph.env}
        store = SharedStore(
            initial_data=initial_data,
            env=base_env,
            mock_values=mock_values,
            debug_hooks=debug_hooks,
            memory_limits=memory_limits or self.config.memory_limits,
            on_log=on_log,
        )
        catalog = self.catalog
        if graph.middleware:
            catalog = MiddlewareCatalog(catalog, graph.middleware)
        runner = StrategyRunner(catalog, store)

        started = time.perf_counter()
        max_iterations = self.config.max_iterations
        path: list[str] = []
        steps = 0

        def finish(success: bool, error: RunError | None = None) -> ExecutionResult:
            duration_ms = round((time.perf_counter() - started) * 1000, 3)
            set_trace_context(node_id=None)
            if success:
                self.logger.info(f"✓ Run complete: {steps} steps in {duration_ms}ms")
            else:
                self.logger.error(f"❌ Run failed at {error.node_id or '<run>'}: {error.message}")
            return ExecutionResult(
                success=success,
                store=store,
                logs=store.logs,
                error=error,
                duration_ms=duration_ms,
                steps_executed=len(path),
                path=path,
            )

        self.logger.info(f"🚀 Starting run {run_id}: {graph.id or '<anonymous>'}")
        self.logger.info(f"   Start node: {graph.start_node_id}")

        current_id: str | None = graph.start_node_id
        try:
            while current_id is not None:
                steps += 1
                if steps > max_iterations:
                    message = f"Max iterations ({max_iterations}) exceeded - possible infinite loop"
                    store.append_log(f"[SYSTEM] {message}")
                    return finish(False, RunError(None, message, RunErrorKind.RUNAWAY))

                node = graph.get_node(current_id)
                if node is None:
                    message = f'Node "{current_id}" not found'
                    return finish(False, RunError(current_id, message, RunErrorKind.NODE))

                set_trace_context(node_id=node.id)
                path.append(node.id)
                self.logger.info(
                    f"▶ Step {steps}: {node.id} ({node.function_id}, {node.strategy})"
                )

                result = await self._execute_node(node, runner, store, base_env, profile)
                if not result.success:
                    message = result.error or "Unknown error"
                    return finish(False, RunError(node.id, message, RunErrorKind.NODE))

                action = result.routing_action
                edge = graph.select_edge(node.id, action)
                if edge is None:
                    self.logger.info(f"   → No edge for action '{action}', ending")
                    current_id = None
                else:
                    self.logger.info(f"   → {edge.target} (action '{action}')")
                    current_id = edge.target
        except MiddlewareChainError:
            raise
        except Exception as e:
            # Engine-side failure (not a function error); the partial store is kept
            self.logger.exception(f"   ✗ Unexpected engine error at {current_id}")
            message = str(e) or type(e).__name__
            store.append_log(f"[SYSTEM] Runtime error: {message}")
            return finish(False, RunError(current_id or "runtime", message, RunErrorKind.RUNTIME))

        return finish(True)

    async def _execute_node(
        self,
        node: NodeSpec,
        runner: StrategyRunner,
        store: SharedStore,
        base_env: dict[str, str],
        profile: bool,
    ) -> FunctionResult:
        hooks = store.debug_hooks
        await hooks.before_node(node.id)
        await hooks.node_start(node.id, node.params)

        env = {**base_env, **node.env_overrides}
        profiler = NodeProfiler(node.id).start() if profile else None

        mock = store.get_mock(node.id)
        if mock is not None:
            self.logger.info(f"   🎭 Using mock for {node.id}")
            if mock.delay_ms:
                await asyncio.sleep(mock.delay_ms / 1000)
            result = mock.to_result()
        else:
            try:
                result = await runner.run(node, env, base_env)
            except MiddlewareChainError:
                raise
            except Exception as e:
                # Strategies already convert function errors; this guards the strategy itself
                self.logger.exception(f"   ✗ Unexpected error in {node.id}")
                result = FunctionResult.fail(str(e) or type(e).__name__)

        if profiler is not None:
            await hooks.node_profile(node.id, profiler.stop())

        store.record_result(node.id, result)
        if result.success:
            store.append_log(f"[✓] {node.id}: completed")
        else:
            store.append_log(f"[✗] {node.id}: {result.error}")
            self.logger.error(f"   ✗ Failed: {result.error}")
        await hooks.node_complete(node.id, result.success, result.output)

        store.enforce_memory_limits()
        return result
