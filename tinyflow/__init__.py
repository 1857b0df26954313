"""
TinyFlow - declarative workflow engine.

A JSON graph of nodes (each naming a catalog function) joined by
action-labelled edges is compiled into a WorkflowGraph and walked by the
GraphExecutor, which dispatches to registered functions and keeps run state
in a SharedStore.

Example:
    from tinyflow import Runtime, RunOptions, WorkflowDefinition

    workflow = WorkflowDefinition.from_json(text)
    result = await Runtime.run(workflow, RunOptions(initial_data={"n": 1}))
"""

from tinyflow.config import EngineConfig
from tinyflow.graph import (
    DebugHooks,
    EdgeSpec,
    ExecutionContext,
    FunctionResult,
    MemoryLimits,
    MockSpec,
    NodeProfile,
    NodeSpec,
    NodeStrategy,
    RetryConfig,
    RunError,
    RunErrorKind,
    SharedStore,
    WorkflowGraph,
)
from tinyflow.graph.compiler import CompilationResult, compile_workflow, compile_workflow_from_json
from tinyflow.graph.executor import ExecutionResult, GraphExecutor
from tinyflow.middleware import (
    MiddlewareChainError,
    MiddlewareContext,
    MiddlewareRegistry,
    compose_middleware,
    create_default_middleware_registry,
)
from tinyflow.registry import (
    FunctionCatalog,
    FunctionMetadata,
    FunctionNotFoundError,
    FunctionRegistry,
    create_default_registry,
)
from tinyflow.runtime import RunOptions, Runtime, run_workflow, run_workflow_from_json
from tinyflow.schema import WorkflowDefinition, WorkflowEdge, WorkflowNode

__version__ = "0.1.0"

__all__ = [
    # Schema
    "WorkflowDefinition",
    "WorkflowNode",
    "WorkflowEdge",
    # Compiler
    "compile_workflow",
    "compile_workflow_from_json",
    "CompilationResult",
    # Graph
    "WorkflowGraph",
    "NodeSpec",
    "NodeStrategy",
    "EdgeSpec",
    "RetryConfig",
    "FunctionResult",
    "ExecutionContext",
    # Execution
    "GraphExecutor",
    "ExecutionResult",
    "SharedStore",
    "MockSpec",
    "MemoryLimits",
    "DebugHooks",
    "NodeProfile",
    "RunError",
    "RunErrorKind",
    "EngineConfig",
    # Catalog
    "FunctionCatalog",
    "FunctionRegistry",
    "FunctionMetadata",
    "FunctionNotFoundError",
    "create_default_registry",
    # Middleware
    "compose_middleware",
    "MiddlewareContext",
    "MiddlewareChainError",
    "MiddlewareRegistry",
    "create_default_middleware_registry",
    # Runtime
    "Runtime",
    "RunOptions",
    "run_workflow",
    "run_workflow_from_json",
]
