"""Middleware types."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from tinyflow.graph.node import ExecutionContext, FunctionResult


class MiddlewareChainError(RuntimeError):
    """A middleware misused the chain (for example called next() twice)."""


@dataclass
class MiddlewareContext(ExecutionContext):
    """
    ExecutionContext plus the id of the function about to run and a mutable
    copy of its params. Changes to `params` are what the target receives.
    """

    function_id: str = ""
    params: dict[str, Any] = field(default_factory=dict)


NextFunction = Callable[[], Awaitable[FunctionResult]]
Middleware = Callable[[MiddlewareContext, NextFunction], Awaitable[FunctionResult]]


@dataclass
class RegisteredMiddleware:
    id: str
    name: str
    execute: Middleware
    description: str = ""
    category: str = "general"
