"""Middleware: Koa-style wrappers around function invocations."""

from tinyflow.middleware.composer import compose_middleware
from tinyflow.middleware.registry import (
    MiddlewareCatalog,
    MiddlewareRegistry,
    create_default_middleware_registry,
)
from tinyflow.middleware.types import (
    Middleware,
    MiddlewareChainError,
    MiddlewareContext,
    NextFunction,
    RegisteredMiddleware,
)

__all__ = [
    "compose_middleware",
    "Middleware",
    "MiddlewareCatalog",
    "MiddlewareChainError",
    "MiddlewareContext",
    "MiddlewareRegistry",
    "NextFunction",
    "RegisteredMiddleware",
    "create_default_middleware_registry",
]
