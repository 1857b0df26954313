"""Built-in middleware."""

import time

from tinyflow.graph.node import FunctionResult
from tinyflow.middleware.types import MiddlewareContext, NextFunction, RegisteredMiddleware


async def auth_token_required(ctx: MiddlewareContext, next: NextFunction) -> FunctionResult:
    env_key = ctx.params.get("tokenEnvKey") or "API_TOKEN"
    if not ctx.env.get(env_key):
        ctx.log(f"[middleware] auth.tokenRequired: missing {env_key}")
        return FunctionResult.fail(
            f'Authentication required: environment variable "{env_key}" is not set'
        )
    return await next()


async def auth_env_required(ctx: MiddlewareContext, next: NextFunction) -> FunctionResult:
    required = ctx.params.get("requiredEnvVars") or []
    missing = [key for key in required if not ctx.env.get(key)]
    if missing:
        ctx.log(f"[middleware] auth.envRequired: missing env vars: {', '.join(missing)}")
        return FunctionResult.fail(f"Missing required environment variables: {', '.join(missing)}")
    return await next()


async def logging_node_timer(ctx: MiddlewareContext, next: NextFunction) -> FunctionResult:
    start = time.perf_counter()
    result = await next()
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    ctx.log(f"[middleware] {ctx.node_id} took {elapsed_ms}ms")
    return result


async def guard_readonly_store(ctx: MiddlewareContext, next: NextFunction) -> FunctionResult:
    """Undo every store write made further down the chain."""
    snapshot = dict(ctx.store)
    try:
        return await next()
    finally:
        ctx.store.clear()
        ctx.store.update(snapshot)


BUILTIN_MIDDLEWARE = [
    RegisteredMiddleware(
        id="auth.tokenRequired",
        name="API Token Required",
        description=(
            "Aborts unless the env var named by params.tokenEnvKey "
            "(default API_TOKEN) is set and non-empty."
        ),
        category="auth",
        execute=auth_token_required,
    ),
    RegisteredMiddleware(
        id="auth.envRequired",
        name="Environment Variables Required",
        description="Aborts unless every env var in params.requiredEnvVars is set.",
        category="auth",
        execute=auth_env_required,
    ),
    RegisteredMiddleware(
        id="logging.nodeTimer",
        name="Node Timer",
        description="Logs wall-clock duration of each node execution.",
        category="logging",
        execute=logging_node_timer,
    ),
    RegisteredMiddleware(
        id="guard.readonlyStore",
        name="Read-Only Store Guard",
        description="Prevents the wrapped function from changing the shared store.",
        category="guard",
        execute=guard_readonly_store,
    ),
]
