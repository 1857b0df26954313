"""Middleware registry and the catalog wrapper that applies it."""

import logging

from tinyflow.graph.node import ExecutableFunction
from tinyflow.middleware.composer import compose_middleware
from tinyflow.middleware.types import Middleware, RegisteredMiddleware
from tinyflow.registry.registry import FunctionCatalog

logger = logging.getLogger(__name__)


class MiddlewareRegistry:
    """Middleware by id. Workflows reference middleware by these ids."""

    def __init__(self):
        self._middleware: dict[str, RegisteredMiddleware] = {}

    def register(self, middleware: RegisteredMiddleware) -> None:
        if middleware.id in self._middleware:
            logger.warning(f'Middleware "{middleware.id}" is being overwritten')
        self._middleware[middleware.id] = middleware

    def get(self, middleware_id: str) -> RegisteredMiddleware | None:
        return self._middleware.get(middleware_id)

    def get_executable(self, middleware_id: str) -> Middleware | None:
        registered = self._middleware.get(middleware_id)
        return registered.execute if registered else None

    def has(self, middleware_id: str) -> bool:
        return middleware_id in self._middleware

    def ids(self) -> set[str]:
        return set(self._middleware)

    def all(self) -> list[RegisteredMiddleware]:
        return list(self._middleware.values())

    def by_category(self) -> dict[str, list[RegisteredMiddleware]]:
        grouped: dict[str, list[RegisteredMiddleware]] = {}
        for middleware in self._middleware.values():
            grouped.setdefault(middleware.category, []).append(middleware)
        return grouped

    def resolve(self, middleware_ids: list[str]) -> list[Middleware]:
        """Resolve ids in order; unknown ids are logged and skipped."""
        resolved = []
        for middleware_id in middleware_ids:
            execute = self.get_executable(middleware_id)
            if execute is None:
                logger.warning(f'Middleware "{middleware_id}" not found in registry, skipping')
                continue
            resolved.append(execute)
        return resolved

    def clear(self) -> None:
        self._middleware.clear()

    def __len__(self) -> int:
        return len(self._middleware)


class MiddlewareCatalog:
    """
    FunctionCatalog wrapper that composes middleware around every function
    it resolves. Composition happens once per function id.
    """

    def __init__(self, catalog: FunctionCatalog, middlewares: list[Middleware]):
        self._catalog = catalog
        self._middlewares = list(middlewares)
        self._composed: dict[str, ExecutableFunction] = {}

    def has(self, function_id: str) -> bool:
        return self._catalog.has(function_id)

    def resolve(self, function_id: str) -> ExecutableFunction:
        if function_id not in self._composed:
            target = self._catalog.resolve(function_id)
            self._composed[function_id] = compose_middleware(
                self._middlewares, target, function_id
            )
        return self._composed[function_id]


def create_default_middleware_registry() -> MiddlewareRegistry:
    """Fresh registry preloaded with the built-in middleware."""
    from tinyflow.middleware.builtins import BUILTIN_MIDDLEWARE

    registry = MiddlewareRegistry()
    for middleware in BUILTIN_MIDDLEWARE:
        registry.register(middleware)
    return registry
