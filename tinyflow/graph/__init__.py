"""Graph structures: nodes, edges, the shared store and the executor.

Only leaf modules are re-exported here; import the compiler and executor from
`tinyflow.graph.compiler` / `tinyflow.graph.executor` (or from `tinyflow`).
"""

from tinyflow.graph.edge import EdgeSpec, WorkflowGraph
from tinyflow.graph.node import (
    DEFAULT_ACTION,
    ERROR_ACTION,
    ExecutableFunction,
    ExecutionContext,
    FunctionResult,
    NodeSpec,
    NodeStrategy,
    RetryConfig,
)
from tinyflow.graph.shared_store import (
    CLUSTER_OUTPUTS_KEY,
    DebugHooks,
    MemoryLimits,
    MockSpec,
    NodeProfile,
    RunError,
    RunErrorKind,
    SharedStore,
)

__all__ = [
    # Node
    "NodeSpec",
    "NodeStrategy",
    "RetryConfig",
    "FunctionResult",
    "ExecutionContext",
    "ExecutableFunction",
    "DEFAULT_ACTION",
    "ERROR_ACTION",
    # Edge
    "EdgeSpec",
    "WorkflowGraph",
    # Shared store
    "SharedStore",
    "MockSpec",
    "MemoryLimits",
    "DebugHooks",
    "NodeProfile",
    "RunError",
    "RunErrorKind",
    "CLUSTER_OUTPUTS_KEY",
]
