"""
Node Protocol - the unit of work in a compiled workflow.

A node references a catalog function by id. The compiler classifies each node
into an execution strategy:
- regular: invoke one function, retrying thrown exceptions
- sequentialBatch: invoke a processor once per array item, in order
- parallelBatch: invoke a processor for all array items concurrently
- clusterRoot: invoke the root function, then fan out to owned sub-nodes

Functions communicate with the engine through FunctionResult only. `success`
and `action` are separate on purpose: a failed result halts the run, while
`action` is a branch label that picks the outgoing edge.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_ACTION = "default"
ERROR_ACTION = "error"


@dataclass
class FunctionResult:
    """Result returned by every function invocation and every node strategy."""

    output: Any = None
    success: bool = True
    action: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, output: Any = None, action: str | None = None) -> "FunctionResult":
        return cls(output=output, success=True, action=action)

    @classmethod
    def fail(cls, error: str, output: Any = None) -> "FunctionResult":
        return cls(output=output, success=False, error=error)

    @property
    def routing_action(self) -> str:
        """Action used to pick the next edge."""
        return self.action or DEFAULT_ACTION


@dataclass
class ExecutionContext:
    """
    Per-invocation view handed to a function.

    `store` is the live data map of the run's SharedStore (not a copy);
    `env` is the already-merged environment for this node.
    """

    node_id: str
    store: dict[str, Any]
    env: dict[str, str] = field(default_factory=dict)
    log: Callable[[str], None] = field(default=lambda message: None)


ExecutableFunction = Callable[[dict[str, Any], ExecutionContext], Awaitable[FunctionResult]]


class NodeStrategy(StrEnum):
    """How the engine executes a node."""

    REGULAR = "regular"
    SEQUENTIAL_BATCH = "sequentialBatch"
    PARALLEL_BATCH = "parallelBatch"
    CLUSTER_ROOT = "clusterRoot"


# Function ids the compiler maps onto batch strategies
SEQUENTIAL_BATCH_FUNCTIONS = frozenset({"control.batch"})
PARALLEL_BATCH_FUNCTIONS = frozenset({"control.parallel", "control.batchForEach"})


class RetryConfig(BaseModel):
    """Retry policy for thrown exceptions. `max_retries` counts total attempts."""

    max_retries: int = Field(default=1, ge=0)
    retry_delay_ms: int = Field(default=0, ge=0)

    @property
    def attempts(self) -> int:
        return max(1, self.max_retries)


class NodeSpec(BaseModel):
    """
    Compiled node.

    Example:
        NodeSpec(
            id="fetch",
            function_id="http.get",
            params={"url": "https://example.com"},
            retry=RetryConfig(max_retries=3, retry_delay_ms=500),
        )
    """

    id: str
    function_id: str
    params: dict[str, Any] = Field(default_factory=dict)
    env_overrides: dict[str, str] = Field(default_factory=dict)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    strategy: NodeStrategy = NodeStrategy.REGULAR
    label: str | None = None

    # Only populated for cluster roots; sub-nodes never appear in the main node table
    sub_nodes: list["NodeSpec"] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @property
    def is_batch(self) -> bool:
        return self.strategy in (NodeStrategy.SEQUENTIAL_BATCH, NodeStrategy.PARALLEL_BATCH)
