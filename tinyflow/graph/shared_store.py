"""
Shared Store - run-scoped state threaded through every node invocation.

Design:
- One store per run, created by the executor and handed back in the result
- Functions read/write `data` through ExecutionContext.store
- Results stored per node for inspection, logs collected for observability
- Memory limits keep long-running loops from growing without bound

The store is never shared between runs. Within a run, parallel batch items
and cluster sub-nodes share it without locking; concurrent writes to the same
key interleave at await points and the last write wins.
"""

import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from tinyflow.graph.node import FunctionResult

logger = logging.getLogger(__name__)

CLUSTER_OUTPUTS_KEY = "_clusterOutputs"


@dataclass
class MockSpec:
    """Substitute result for a node, bypassing real invocation."""

    enabled: bool = True
    output: Any = None
    success: bool = True
    action: str | None = None
    delay_ms: int | None = None

    def to_result(self) -> FunctionResult:
        return FunctionResult(
            output=self.output,
            success=self.success,
            action=self.action,
            error=None if self.success else "Mocked failure",
        )


@dataclass
class MemoryLimits:
    """Caps applied after every node. The data limit only warns, it never truncates."""

    max_logs: int = 1000
    max_node_results: int = 1000
    max_data_bytes: int = 10 * 1024 * 1024


@dataclass
class NodeProfile:
    """Performance profile captured around one node invocation."""

    node_id: str
    duration_ms: float
    heap_used_before: int
    heap_used_after: int
    heap_delta: int
    rss_before: int
    rss_after: int
    cpu_user_us: int
    cpu_system_us: int
    cpu_percent: float
    timestamp: float


class RunErrorKind(StrEnum):
    NODE = "node"
    RUNAWAY = "runaway"
    RUNTIME = "runtime"
    COMPILE = "compile"


@dataclass
class RunError:
    """
    Error that halted a run.

    `node_id` is None when the failure belongs to the run itself (the
    iteration cap), and "" when nothing could be executed at all.
    """

    node_id: str | None
    message: str
    kind: RunErrorKind = RunErrorKind.NODE


async def _call_hook(name: str, hook: Callable | None, *args: Any) -> None:
    if hook is None:
        return
    try:
        result = hook(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.warning(f"Debug hook {name} raised; continuing", exc_info=True)


@dataclass
class DebugHooks:
    """
    Optional callbacks for debuggers and profilers.

    Any hook may be a plain function or a coroutine function. Awaiting
    `on_before_node` lets a step debugger hold the run at a node boundary.
    """

    on_before_node: Callable[[str], Any] | None = None
    on_node_start: Callable[[str, dict[str, Any]], Any] | None = None
    on_node_complete: Callable[[str, bool, Any], Any] | None = None
    on_node_profile: Callable[[str, NodeProfile], Any] | None = None

    async def before_node(self, node_id: str) -> None:
        await _call_hook("on_before_node", self.on_before_node, node_id)

    async def node_start(self, node_id: str, params: dict[str, Any]) -> None:
        await _call_hook("on_node_start", self.on_node_start, node_id, params)

    async def node_complete(self, node_id: str, success: bool, output: Any) -> None:
        await _call_hook("on_node_complete", self.on_node_complete, node_id, success, output)

    async def node_profile(self, node_id: str, profile: NodeProfile) -> None:
        await _call_hook("on_node_profile", self.on_node_profile, node_id, profile)


class SharedStore:
    """
    Mutable state container for a single run.

    Example:
        store = SharedStore(initial_data={"items": [1, 2, 3]}, env={"MODE": "test"})
        store.set("count", 0)
        store.log("start", "initialised counter")
    """

    def __init__(
        self,
        initial_data: dict[str, Any] | None = None,
        env: dict[str, str] | None = None,
        mock_values: dict[str, MockSpec] | None = None,
        debug_hooks: DebugHooks | None = None,
        memory_limits: MemoryLimits | None = None,
        on_log: Callable[[str], None] | None = None,
    ):
        self.data: dict[str, Any] = dict(initial_data or {})
        self.logs: list[str] = []
        self.env: dict[str, str] = dict(env or {})
        self.node_results: dict[str, FunctionResult] = {}
        self.last_error: RunError | None = None
        self.mock_values: dict[str, MockSpec] = dict(mock_values or {})
        self.debug_hooks = debug_hooks or DebugHooks()
        self.memory_limits = memory_limits or MemoryLimits()
        self._on_log = on_log

    # === DATA ===

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    # === LOGS ===

    def append_log(self, line: str) -> None:
        """Append a line to the run log and forward it to the on_log callback."""
        self.logs.append(line)
        if self._on_log is None:
            return
        try:
            self._on_log(line)
        except Exception:
            logger.warning("on_log callback raised; continuing", exc_info=True)

    def log(self, node_id: str, message: str) -> None:
        """Node-scoped log sink used by ExecutionContext.log."""
        self.append_log(f"[{node_id}] {message}")
        logger.info(message, extra={"node_id": node_id})

    # === RESULTS ===

    def record_result(self, node_id: str, result: FunctionResult) -> None:
        """Store a node's result; a revisited node moves to the newest position."""
        self.node_results.pop(node_id, None)
        self.node_results[node_id] = result
        if not result.success:
            self.last_error = RunError(node_id=node_id, message=result.error or "Unknown error")

    def get_mock(self, node_id: str) -> MockSpec | None:
        mock = self.mock_values.get(node_id)
        if mock is not None and mock.enabled:
            return mock
        return None

    # === MEMORY GOVERNANCE ===

    def data_size(self) -> int | None:
        """Size of `data` as JSON, in characters; None when it cannot be encoded."""
        try:
            return len(json.dumps(self.data, default=str))
        except (TypeError, ValueError) as e:
            logger.debug(f"Could not measure data store size: {e}")
            return None

    def enforce_memory_limits(self) -> None:
        """Apply log and result caps and warn about an oversized data map."""
        limits = self.memory_limits

        size = self.data_size()
        if size is not None and size > limits.max_data_bytes:
            self.append_log(f"[SYSTEM] Warning: Data store size ({size} bytes) exceeds limit")
            logger.warning(f"Data store size {size} bytes exceeds limit {limits.max_data_bytes}")

        if len(self.logs) > limits.max_logs:
            # One slot is reserved for the truncation marker
            removed = len(self.logs) - limits.max_logs + 1
            del self.logs[:removed]
            self.logs.insert(0, f"[SYSTEM] Log truncated: removed {removed} old entries")
            logger.debug(f"Truncated {removed} log entries")

        excess = len(self.node_results) - limits.max_node_results
        if excess > 0:
            for node_id in list(self.node_results)[:excess]:
                del self.node_results[node_id]
            logger.debug(f"Evicted {excess} node results")

    def snapshot(self) -> dict[str, Any]:
        """Shallow copy of the data map."""
        return dict(self.data)
