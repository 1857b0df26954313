"""Function catalog: id -> executable function, with metadata for tooling."""

import functools
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from tinyflow.graph.node import ExecutableFunction

logger = logging.getLogger(__name__)


class FunctionNotFoundError(KeyError):
    """Raised by a catalog when asked to resolve an unknown function id."""

    def __init__(self, function_id: str):
        super().__init__(function_id)
        self.function_id = function_id

    def __str__(self) -> str:
        return f'Function "{self.function_id}" is not registered'


@runtime_checkable
class FunctionCatalog(Protocol):
    """The only surface the engine needs from a catalog."""

    def has(self, function_id: str) -> bool: ...

    def resolve(self, function_id: str) -> ExecutableFunction: ...


ParamType = Literal["string", "number", "boolean", "object", "array"]


class FunctionParameter(BaseModel):
    name: str
    type: ParamType = "string"
    required: bool = True
    default: Any = None
    description: str | None = None


class FunctionMetadata(BaseModel):
    """Describes a function for editors and validators."""

    id: str
    name: str
    description: str = ""
    category: str = "General"
    params: list[FunctionParameter] = Field(default_factory=list)
    outputs: list[str] = Field(default_factory=list)
    actions: list[str] = Field(default_factory=list)

    model_config = {"extra": "allow"}


def param(name: str, type: ParamType = "string", **options: Any) -> FunctionParameter:
    """Shorthand for FunctionParameter; parameters are required unless told otherwise."""
    return FunctionParameter(name=name, type=type, **options)


def _as_async(func: Callable) -> ExecutableFunction:
    if inspect.iscoroutinefunction(func):
        return func

    @functools.wraps(func)
    async def wrapper(params, context):
        # Callable objects with an async __call__ return an awaitable
        result = func(params, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    return wrapper


@dataclass
class RegisteredFunction:
    """A function with its metadata."""

    metadata: FunctionMetadata
    execute: ExecutableFunction


class FunctionRegistry:
    """
    In-memory FunctionCatalog.

    Example:
        registry = FunctionRegistry()

        @registry.function(id="math.square", name="Square", category="Math")
        async def square(params, context):
            return FunctionResult.ok(params["currentItem"] ** 2)
    """

    def __init__(self):
        self._functions: dict[str, RegisteredFunction] = {}

    def register(self, metadata: FunctionMetadata, execute: Callable) -> None:
        """
        Register a function under `metadata.id`.

        Synchronous callables are wrapped so `resolve` always hands back a
        coroutine function. Re-registering an id overwrites it.
        """
        if metadata.id in self._functions:
            logger.warning(f'Function "{metadata.id}" is being overwritten')
        self._functions[metadata.id] = RegisteredFunction(
            metadata=metadata, execute=_as_async(execute)
        )

    def function(
        self,
        id: str,
        name: str | None = None,
        description: str = "",
        category: str = "General",
        params: list[FunctionParameter] | None = None,
        outputs: list[str] | None = None,
        actions: list[str] | None = None,
    ) -> Callable[[Callable], Callable]:
        """Decorator form of `register`."""

        def decorator(func: Callable) -> Callable:
            self.register(
                FunctionMetadata(
                    id=id,
                    name=name or func.__name__,
                    description=description or (func.__doc__ or "").strip(),
                    category=category,
                    params=params or [],
                    outputs=outputs or [],
                    actions=actions or [],
                ),
                func,
            )
            return func

        return decorator

    def unregister(self, function_id: str) -> bool:
        return self._functions.pop(function_id, None) is not None

    def get(self, function_id: str) -> RegisteredFunction | None:
        return self._functions.get(function_id)

    def has(self, function_id: str) -> bool:
        return function_id in self._functions

    def resolve(self, function_id: str) -> ExecutableFunction:
        registered = self._functions.get(function_id)
        if registered is None:
            raise FunctionNotFoundError(function_id)
        return registered.execute

    def ids(self) -> set[str]:
        return set(self._functions)

    def all_metadata(self) -> list[FunctionMetadata]:
        return [fn.metadata for fn in self._functions.values()]

    def metadata_by_category(self) -> dict[str, list[FunctionMetadata]]:
        by_category: dict[str, list[FunctionMetadata]] = {}
        for fn in self._functions.values():
            by_category.setdefault(fn.metadata.category, []).append(fn.metadata)
        return by_category

    def clear(self) -> None:
        self._functions.clear()

    def __len__(self) -> int:
        return len(self._functions)

    def __contains__(self, function_id: str) -> bool:
        return self.has(function_id)


def create_default_registry() -> FunctionRegistry:
    """Fresh registry preloaded with the built-in functions."""
    from tinyflow.registry.functions import register_builtin_functions

    registry = FunctionRegistry()
    register_builtin_functions(registry)
    return registry
