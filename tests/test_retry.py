"""
Tests for retry of regular nodes.

Only thrown exceptions are retried; an explicit success=False result is
fatal on its first occurrence.
"""

from unittest.mock import AsyncMock

import pytest

from tinyflow.config import EngineConfig
from tinyflow.graph.edge import WorkflowGraph
from tinyflow.graph.executor import GraphExecutor
from tinyflow.graph.node import FunctionResult, NodeSpec, RetryConfig
from tinyflow.graph.shared_store import MemoryLimits
from tinyflow.middleware import MiddlewareChainError
from tinyflow.registry import FunctionMetadata, FunctionRegistry


class FlakyFunction:
    """Raises until `fail_times` calls have been made, then succeeds."""

    def __init__(self, fail_times: int):
        self.fail_times = fail_times
        self.attempt_count = 0

    async def __call__(self, params, context):
        self.attempt_count += 1
        if self.attempt_count <= self.fail_times:
            raise ConnectionError(f"transient failure {self.attempt_count}")
        return FunctionResult.ok(f"succeeded on attempt {self.attempt_count}")


class ExplicitFailure:
    def __init__(self):
        self.attempt_count = 0

    async def __call__(self, params, context):
        self.attempt_count += 1
        return FunctionResult.fail("validation failed")


@pytest.fixture
def fast_sleep(monkeypatch):
    """Mock asyncio.sleep so retry delays cost nothing."""
    sleep = AsyncMock()
    monkeypatch.setattr("asyncio.sleep", sleep)
    return sleep


def single_node_run(fn, retry: RetryConfig):
    registry = FunctionRegistry()
    registry.register(FunctionMetadata(id="fn", name="fn"), fn)
    graph = WorkflowGraph(
        nodes={"a": NodeSpec(id="a", function_id="fn", retry=retry)},
        start_node_id="a",
    )
    config = EngineConfig(max_iterations=10, memory_limits=MemoryLimits(), profile=False)
    return GraphExecutor(registry, config=config).run(graph)


@pytest.mark.asyncio
async def test_exception_retried_until_success(fast_sleep):
    fn = FlakyFunction(fail_times=2)

    result = await single_node_run(fn, RetryConfig(max_retries=3, retry_delay_ms=200))

    assert result.success
    assert fn.attempt_count == 3
    assert result.node_results["a"].output == "succeeded on attempt 3"
    assert fast_sleep.await_count == 2
    fast_sleep.assert_awaited_with(0.2)


@pytest.mark.asyncio
async def test_exception_after_exhausting_retries_is_fatal(fast_sleep):
    fn = FlakyFunction(fail_times=10)

    result = await single_node_run(fn, RetryConfig(max_retries=3, retry_delay_ms=50))

    assert not result.success
    assert fn.attempt_count == 3
    assert result.error.node_id == "a"
    assert result.error.message == "transient failure 3"


@pytest.mark.asyncio
async def test_max_retries_counts_total_attempts(fast_sleep):
    fn = FlakyFunction(fail_times=1)

    result = await single_node_run(fn, RetryConfig(max_retries=1))

    assert not result.success
    assert fn.attempt_count == 1
    fast_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_zero_max_retries_still_attempts_once(fast_sleep):
    fn = FlakyFunction(fail_times=0)

    result = await single_node_run(fn, RetryConfig(max_retries=0))

    assert result.success
    assert fn.attempt_count == 1


@pytest.mark.asyncio
async def test_explicit_failure_not_retried(fast_sleep):
    fn = ExplicitFailure()

    result = await single_node_run(fn, RetryConfig(max_retries=5, retry_delay_ms=10))

    assert not result.success
    assert fn.attempt_count == 1
    assert result.error.message == "validation failed"
    fast_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_sleep_when_delay_is_zero(fast_sleep):
    fn = FlakyFunction(fail_times=1)

    result = await single_node_run(fn, RetryConfig(max_retries=2, retry_delay_ms=0))

    assert result.success
    fast_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_middleware_chain_error_is_not_swallowed(fast_sleep):
    async def broken(params, context):
        raise MiddlewareChainError("next() called multiple times")

    with pytest.raises(MiddlewareChainError):
        await single_node_run(broken, RetryConfig(max_retries=3))


def test_retry_config_attempts():
    assert RetryConfig().attempts == 1
    assert RetryConfig(max_retries=0).attempts == 1
    assert RetryConfig(max_retries=4).attempts == 4
