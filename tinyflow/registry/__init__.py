"""Function catalog."""

from tinyflow.registry.registry import (
    FunctionCatalog,
    FunctionMetadata,
    FunctionNotFoundError,
    FunctionParameter,
    FunctionRegistry,
    RegisteredFunction,
    create_default_registry,
    param,
)

__all__ = [
    "FunctionCatalog",
    "FunctionRegistry",
    "FunctionMetadata",
    "FunctionParameter",
    "FunctionNotFoundError",
    "RegisteredFunction",
    "create_default_registry",
    "param",
]
