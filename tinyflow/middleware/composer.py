"""
Middleware Composer - onion-style wrapping of a single function invocation.

middleware[0] wraps middleware[1] wraps ... wraps the target. Each middleware
may pass through, transform the result of next(), rewrite ctx.params before
calling next(), or short-circuit by returning without calling next().
"""

from typing import Any

from tinyflow.graph.node import ExecutableFunction, ExecutionContext, FunctionResult
from tinyflow.middleware.types import Middleware, MiddlewareChainError, MiddlewareContext


def compose_middleware(
    middlewares: list[Middleware],
    target: ExecutableFunction,
    function_id: str,
) -> ExecutableFunction:
    """Compose `middlewares` around `target`; an empty list returns `target` unchanged."""
    if not middlewares:
        return target

    chain = list(middlewares)

    async def composed(params: dict[str, Any], context: ExecutionContext) -> FunctionResult:
        ctx = MiddlewareContext(
            node_id=context.node_id,
            store=context.store,
            env=context.env,
            log=context.log,
            function_id=function_id,
            params=dict(params),
        )
        index = -1

        async def dispatch(i: int) -> FunctionResult:
            nonlocal index
            if i <= index:
                raise MiddlewareChainError("next() called multiple times")
            index = i

            if i < len(chain):
                return await chain[i](ctx, lambda: dispatch(i + 1))

            # End of chain: the target sees params as the middleware left them
            return await target(ctx.params, context)

        return await dispatch(0)

    return composed
