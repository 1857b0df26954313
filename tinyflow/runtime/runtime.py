"""
Runtime - compile once, execute many times.

Wraps the compiler and the GraphExecutor behind one object. Every failure,
including "nothing loaded" and compile errors, comes back as a failed
ExecutionResult rather than an exception.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from tinyflow.config import EngineConfig
from tinyflow.graph.compiler import CompilationResult, compile_workflow, compile_workflow_from_json
from tinyflow.graph.edge import WorkflowGraph
from tinyflow.graph.executor import ExecutionResult, GraphExecutor
from tinyflow.graph.shared_store import (
    DebugHooks,
    MemoryLimits,
    MockSpec,
    RunError,
    RunErrorKind,
    SharedStore,
)
from tinyflow.middleware.registry import MiddlewareRegistry
from tinyflow.middleware.types import MiddlewareChainError
from tinyflow.observability import set_trace_context
from tinyflow.registry.registry import FunctionCatalog, create_default_registry
from tinyflow.schema.workflow import WorkflowDefinition

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Per-execution options."""

    initial_data: dict[str, Any] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    mock_values: dict[str, MockSpec] = field(default_factory=dict)
    memory_limits: MemoryLimits | None = None
    debug_hooks: DebugHooks | None = None
    on_log: Callable[[str], None] | None = None
    on_error: Callable[[str | None, str], None] | None = None
    profile: bool | None = None


def _failed_result(message: str, logs: list[str], options: RunOptions) -> ExecutionResult:
    store = SharedStore(memory_limits=options.memory_limits)
    store.logs.extend(logs)
    return ExecutionResult(
        success=False,
        store=store,
        logs=store.logs,
        error=RunError(node_id="", message=message, kind=RunErrorKind.COMPILE),
    )


class Runtime:
    """
    Loads a workflow and executes it.

    Example:
        runtime = Runtime(global_envs={"API_TOKEN": "secret"})
        compilation = runtime.load_from_json(Path("flow.json").read_text())
        if compilation.success:
            result = await runtime.execute(RunOptions(initial_data={"items": [1, 2]}))
    """

    def __init__(
        self,
        catalog: FunctionCatalog | None = None,
        global_envs: dict[str, str] | None = None,
        config: EngineConfig | None = None,
        middleware_registry: MiddlewareRegistry | None = None,
    ):
        self.catalog = catalog if catalog is not None else create_default_registry()
        self.global_envs = dict(global_envs or {})
        self.config = config or EngineConfig()
        self.middleware_registry = middleware_registry
        self._compilation: CompilationResult | None = None
        self._graph: WorkflowGraph | None = None

    # === LOADING ===

    def load(self, workflow: WorkflowDefinition) -> CompilationResult:
        return self._accept(
            compile_workflow(
                workflow,
                global_envs=self.global_envs,
                middleware_registry=self.middleware_registry,
                catalog=self.catalog,
            )
        )

    def load_from_json(self, text: str) -> CompilationResult:
        return self._accept(
            compile_workflow_from_json(
                text,
                global_envs=self.global_envs,
                middleware_registry=self.middleware_registry,
                catalog=self.catalog,
            )
        )

    def _accept(self, compilation: CompilationResult) -> CompilationResult:
        self._compilation = compilation
        self._graph = compilation.graph if compilation.success else None
        return compilation

    @property
    def is_ready(self) -> bool:
        return self._graph is not None

    @property
    def compilation(self) -> CompilationResult | None:
        return self._compilation

    # === EXECUTION ===

    async def execute(self, options: RunOptions | None = None) -> ExecutionResult:
        options = options or RunOptions()

        if self._graph is None:
            if self._compilation is not None and self._compilation.errors:
                message = "; ".join(self._compilation.errors)
                result = _failed_result(message, list(self._compilation.errors), options)
            else:
                result = _failed_result("No workflow loaded", ["No workflow loaded"], options)
            self._notify_error(result, options)
            return result

        set_trace_context(workflow_id=self._graph.id or None)
        executor = GraphExecutor(self.catalog, config=self.config)
        try:
            result = await executor.run(
                self._graph,
                initial_data=options.initial_data,
                env=options.env,
                mock_values=options.mock_values,
                memory_limits=options.memory_limits,
                debug_hooks=options.debug_hooks,
                on_log=options.on_log,
                profile=options.profile,
            )
        except MiddlewareChainError:
            raise
        except Exception as e:
            logger.exception("Runtime error during execution")
            message = str(e) or type(e).__name__
            result = ExecutionResult(
                success=False,
                store=SharedStore(),
                logs=[f"Runtime error: {message}"],
                error=RunError(node_id="runtime", message=message, kind=RunErrorKind.RUNTIME),
            )

        self._notify_error(result, options)
        return result

    @staticmethod
    def _notify_error(result: ExecutionResult, options: RunOptions) -> None:
        if result.error is not None and options.on_error is not None:
            options.on_error(result.error.node_id, result.error.message)

    # === ONE-SHOT HELPERS ===

    @classmethod
    async def run(
        cls,
        workflow: WorkflowDefinition,
        options: RunOptions | None = None,
        catalog: FunctionCatalog | None = None,
    ) -> ExecutionResult:
        options = options or RunOptions()
        runtime = cls(catalog=catalog, global_envs=options.env)
        runtime.load(workflow)
        return await runtime.execute(options)

    @classmethod
    async def run_from_json(
        cls,
        text: str,
        options: RunOptions | None = None,
        catalog: FunctionCatalog | None = None,
    ) -> ExecutionResult:
        options = options or RunOptions()
        runtime = cls(catalog=catalog, global_envs=options.env)
        runtime.load_from_json(text)
        return await runtime.execute(options)


async def run_workflow(
    workflow: WorkflowDefinition,
    options: RunOptions | None = None,
    catalog: FunctionCatalog | None = None,
) -> ExecutionResult:
    """Compile and execute a workflow in one call."""
    return await Runtime.run(workflow, options, catalog=catalog)


async def run_workflow_from_json(
    text: str,
    options: RunOptions | None = None,
    catalog: FunctionCatalog | None = None,
) -> ExecutionResult:
    """Parse, compile and execute a JSON workflow in one call."""
    return await Runtime.run_from_json(text, options, catalog=catalog)
