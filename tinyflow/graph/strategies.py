"""
Node Strategies - how a single node turns into function invocations.

- regular: resolve the function, invoke it, retry thrown exceptions
- sequentialBatch / parallelBatch: run a processor function per array item
  and fan the results back in; the node itself never hard-fails once the
  items have started, partial failure routes via action "error"
- clusterRoot: run the root like a regular node, then fan out to its
  sub-nodes concurrently; only the root's result drives routing

Every exception a function raises is turned into a failed FunctionResult
here. MiddlewareChainError is the exception: it marks a programming error
and propagates out of the run.
"""

import asyncio
import logging
from typing import Any

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
from tinyflow.graph.shared_store import CLUSTER_OUTPUTS_KEY, SharedStore
from tinyflow.middleware.types import MiddlewareChainError
from tinyflow.registry.registry import FunctionCatalog, FunctionNotFoundError

logger = logging.getLogger(__name__)

SEQUENTIAL_OUTPUT_KEY = "batchResults"
PARALLEL_OUTPUT_KEY = "parallelResults"


def _error_message(e: BaseException) -> str:
    return str(e) or type(e).__name__


def _coerce_result(value: Any) -> FunctionResult:
    # Functions that return a bare value are treated as successful
    if isinstance(value, FunctionResult):
        return value
    return FunctionResult.ok(value)


class StrategyRunner:
    """
    Executes nodes against a catalog and a run's SharedStore.

    Example:
        runner = StrategyRunner(catalog, store)
        result = await runner.run(node, env={"MODE": "test"})
    """

    def __init__(self, catalog: FunctionCatalog, store: SharedStore):
        self.catalog = catalog
        self.store = store

    def make_context(self, node_id: str, env: dict[str, str]) -> ExecutionContext:
        return ExecutionContext(
            node_id=node_id,
            store=self.store.data,
            env=env,
            log=lambda message: self.store.log(node_id, message),
        )

    def _resolve(self, function_id: str) -> ExecutableFunction | None:
        try:
            return self.catalog.resolve(function_id)
        except FunctionNotFoundError:
            return None

    async def invoke(
        self,
        fn: ExecutableFunction,
        params: dict[str, Any],
        context: ExecutionContext,
        retry: RetryConfig,
        label: str,
    ) -> FunctionResult:
        """
        Invoke `fn`, retrying thrown exceptions up to `retry.attempts` times.

        An explicit success=False result is returned as is, without retrying.
        """
        attempts = retry.attempts
        for attempt in range(1, attempts + 1):
            try:
                return _coerce_result(await fn(params, context))
            except MiddlewareChainError:
                raise
            except Exception as e:
                message = _error_message(e)
                if attempt >= attempts:
                    if attempts > 1:
                        logger.error(f"   ✗ {label} failed after {attempts} attempts: {message}")
                    return FunctionResult.fail(message)
                logger.warning(f"   ↻ Retrying {label} ({attempt}/{attempts}): {message}")
                if retry.retry_delay_ms > 0:
                    await asyncio.sleep(retry.retry_delay_ms / 1000)
        # attempts is always >= 1
        return FunctionResult.fail("No attempts made")

    # === DISPATCH ===

    async def run(
        self,
        node: NodeSpec,
        env: dict[str, str],
        base_env: dict[str, str] | None = None,
    ) -> FunctionResult:
        """
        Run `node` with its merged `env`.

        `base_env` is the environment without this node's overrides; cluster
        sub-nodes layer their own overrides on top of it.
        """
        if node.strategy == NodeStrategy.SEQUENTIAL_BATCH:
            return await self.run_batch(node, env, parallel=False)
        if node.strategy == NodeStrategy.PARALLEL_BATCH:
            return await self.run_batch(node, env, parallel=True)
        if node.strategy == NodeStrategy.CLUSTER_ROOT:
            return await self.run_cluster(node, env, base_env if base_env is not None else env)
        return await self.run_regular(node, env)

    # === REGULAR ===

    async def run_regular(self, node: NodeSpec, env: dict[str, str]) -> FunctionResult:
        fn = self._resolve(node.function_id)
        if fn is None:
            return FunctionResult.fail(str(FunctionNotFoundError(node.function_id)))
        context = self.make_context(node.id, env)
        return await self.invoke(fn, dict(node.params), context, node.retry, node.id)

    # === BATCH ===

    async def run_batch(
        self, node: NodeSpec, env: dict[str, str], parallel: bool
    ) -> FunctionResult:
        items = node.params.get("array")
        if not isinstance(items, list):
            return FunctionResult.fail(f"Expected array, got {type(items).__name__}")

        processor_id = node.params.get("processorFunction")
        fn = self._resolve(processor_id) if processor_id else None
        if fn is None:
            return FunctionResult.fail(f'Processor "{processor_id}" not found')

        processor_params = node.params.get("processorParams") or {}
        default_key = PARALLEL_OUTPUT_KEY if parallel else SEQUENTIAL_OUTPUT_KEY
        output_key = node.params.get("outputKey") or default_key
        context = self.make_context(node.id, env)
        mode = "in parallel" if parallel else "sequentially"
        context.log(f"Processing {len(items)} items {mode}")

        async def run_item(index: int, item: Any) -> FunctionResult:
            params = {**processor_params, "currentItem": item, "currentIndex": index}
            result = await self.invoke(fn, params, context, node.retry, f"{node.id}[{index}]")
            if not result.success:
                context.log(f"Item {index} failed: {result.error}")
            return result

        if parallel:
            item_results = await asyncio.gather(
                *(run_item(index, item) for index, item in enumerate(items))
            )
        else:
            item_results = [await run_item(index, item) for index, item in enumerate(items)]

        outputs = [result.output for result in item_results]
        succeeded = sum(1 for result in item_results if result.success)
        self.store.set(output_key, outputs)
        context.log(f"Processed {succeeded}/{len(items)} items {mode}")

        all_ok = succeeded == len(items)
        return FunctionResult(
            output=outputs,
            success=True,
            action=DEFAULT_ACTION if all_ok else ERROR_ACTION,
        )

    # === CLUSTER ===

    async def run_cluster(
        self, node: NodeSpec, env: dict[str, str], base_env: dict[str, str]
    ) -> FunctionResult:
        root_result = await self.run_regular(node, env)
        if not root_result.success or not node.sub_nodes:
            return root_result

        self.store.log(node.id, f"Executing {len(node.sub_nodes)} sub-nodes in parallel")
        logger.info(f"   ⑂ Fan-out: {node.id} -> {len(node.sub_nodes)} sub-nodes")

        sub_results = await asyncio.gather(
            *(self._run_sub_node(sub, base_env) for sub in node.sub_nodes)
        )

        cluster_outputs = self.store.get(CLUSTER_OUTPUTS_KEY)
        if not isinstance(cluster_outputs, dict):
            cluster_outputs = {}
            self.store.set(CLUSTER_OUTPUTS_KEY, cluster_outputs)
        cluster_outputs[node.id] = {
            sub.id: result.output for sub, result in zip(node.sub_nodes, sub_results)
        }

        failed = [sub.id for sub, result in zip(node.sub_nodes, sub_results) if not result.success]
        if failed:
            logger.warning(f"   ⚠ Sub-node failures under {node.id}: {', '.join(failed)}")
        return root_result

    async def _run_sub_node(self, sub: NodeSpec, base_env: dict[str, str]) -> FunctionResult:
        hooks = self.store.debug_hooks
        await hooks.before_node(sub.id)
        await hooks.node_start(sub.id, sub.params)

        env = {**base_env, **sub.env_overrides}
        mock = self.store.get_mock(sub.id)
        if mock is not None:
            if mock.delay_ms:
                await asyncio.sleep(mock.delay_ms / 1000)
            result = mock.to_result()
        else:
            try:
                result = await self.run(sub, env, base_env)
            except MiddlewareChainError:
                raise
            except Exception as e:
                # A broken sub-node never takes the cluster root down with it
                logger.exception(f"   ✗ Unexpected error in sub-node {sub.id}")
                result = FunctionResult.fail(_error_message(e))

        self.store.record_result(sub.id, result)
        status = "✓" if result.success else "✗"
        detail = "completed" if result.success else result.error
        self.store.append_log(f"[{status}] {sub.id}: {detail}")
        await hooks.node_complete(sub.id, result.success, result.output)
        return result
