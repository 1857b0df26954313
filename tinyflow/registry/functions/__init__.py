"""Built-in functions, grouped by category."""

from tinyflow.registry.functions import control, core, transform
from tinyflow.registry.registry import FunctionRegistry


def register_builtin_functions(registry: FunctionRegistry) -> None:
    core.register(registry)
    control.register(registry)
    transform.register(registry)


__all__ = ["register_builtin_functions"]
