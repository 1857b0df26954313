"""Control-flow functions: counters, comparisons and branch labels."""

import json
import operator as op

from tinyflow.graph.node import DEFAULT_ACTION, ERROR_ACTION, ExecutionContext, FunctionResult
from tinyflow.registry.registry import FunctionMetadata, FunctionRegistry, param

CATEGORY = "Control"

_COMPARISONS = {
    "eq": op.eq,
    "ne": op.ne,
    "gt": op.gt,
    "lt": op.lt,
    "gte": op.ge,
    "lte": op.le,
}


def compare(left, operator: str, right) -> bool:
    """Evaluate a condition operator; unknown operators are False."""
    if operator == "truthy":
        return bool(left)
    if operator == "falsy":
        return not left
    fn = _COMPARISONS.get(operator)
    if fn is None:
        return False
    try:
        return bool(fn(left, right))
    except TypeError:
        # Ordering between unrelated types (e.g. None < 3)
        return False


async def _batch_placeholder(params: dict, context: ExecutionContext) -> FunctionResult:
    return FunctionResult.fail(
        "Batch functions are executed by the engine's batch strategies, not called directly"
    )


_BATCH_PARAMS = [
    param("array", "array"),
    param("processorFunction"),
    param("processorParams", "object", required=False, default={}),
    param("outputKey", required=False),
]


def register(registry: FunctionRegistry) -> None:
    @registry.function(
        id="control.counter",
        name="Counter",
        description="Maintains a counter, useful for loops.",
        category=CATEGORY,
        params=[
            param("counterKey"),
            param("operation", description="init, increment or decrement"),
            param("initialValue", "number", required=False, default=0),
            param("step", "number", required=False, default=1),
        ],
        outputs=["counterKey"],
    )
    async def counter(params: dict, context: ExecutionContext) -> FunctionResult:
        key = params["counterKey"]
        operation = params.get("operation")
        step = params.get("step", 1)
        value = context.store.get(key) or 0

        if operation == "init":
            value = params.get("initialValue", 0)
        elif operation == "increment":
            value += step
        elif operation == "decrement":
            value -= step

        context.store[key] = value
        context.log(f'Counter "{key}" = {value}')
        return FunctionResult.ok(value)

    @registry.function(
        id="control.condition",
        name="Condition",
        description="Compares a store value; routes `success` when true, `error` when false.",
        category=CATEGORY,
        params=[
            param("leftKey"),
            param("operator", description="eq, ne, gt, lt, gte, lte, truthy, falsy"),
            param("rightValue", "object", required=False),
        ],
        actions=["success", ERROR_ACTION],
    )
    async def condition(params: dict, context: ExecutionContext) -> FunctionResult:
        left_key = params["leftKey"]
        operator = params["operator"]
        right = params.get("rightValue")
        result = compare(context.store.get(left_key), operator, right)
        context.log(f"Condition: {left_key} {operator} {right} = {result}")
        return FunctionResult.ok(result, action="success" if result else ERROR_ACTION)

    @registry.function(
        id="control.loopCheck",
        name="Loop Check",
        description="Routes `success` while the counter is below `limit`, then `default`.",
        category=CATEGORY,
        params=[param("counterKey"), param("limit", "number")],
        actions=["success", DEFAULT_ACTION],
    )
    async def loop_check(params: dict, context: ExecutionContext) -> FunctionResult:
        count = context.store.get(params["counterKey"]) or 0
        limit = params["limit"]
        should_continue = count < limit
        context.log(f"Loop check: {count} < {limit} = {should_continue}")
        return FunctionResult.ok(
            should_continue, action="success" if should_continue else DEFAULT_ACTION
        )

    @registry.function(
        id="control.switch",
        name="Switch",
        description="Routes on the string form of a store value.",
        category=CATEGORY,
        params=[
            param("key"),
            param("cases", "object", description="value -> action"),
            param("default", required=False, default=DEFAULT_ACTION),
        ],
    )
    async def switch(params: dict, context: ExecutionContext) -> FunctionResult:
        key = params["key"]
        raw = context.store.get(key)
        # JSON-style stringification so True matches "true" and None matches "null"
        value = raw if isinstance(raw, str) else json.dumps(raw, default=str)
        action = (params.get("cases") or {}).get(value) or params.get("default") or DEFAULT_ACTION
        context.log(f'Switch on "{key}" = "{value}" -> action: {action}')
        return FunctionResult.ok(value, action=action)

    @registry.function(
        id="control.errorHandler",
        name="Error Handler",
        description="Inspects a stored error and optionally writes a fallback value.",
        category=CATEGORY,
        params=[
            param("errorKey", required=False, default="lastError"),
            param("fallbackValue", "object", required=False),
            param("outputKey", required=False),
        ],
        outputs=["outputKey"],
    )
    async def error_handler(params: dict, context: ExecutionContext) -> FunctionResult:
        error = context.store.get(params.get("errorKey") or "lastError")
        if error:
            context.log(f"Error caught: {json.dumps(error, default=str)}")
            output_key = params.get("outputKey")
            if output_key and "fallbackValue" in params:
                context.store[output_key] = params["fallbackValue"]
        return FunctionResult.ok(error)

    registry.register(
        _batch_metadata(
            "control.batch", "Batch", "Runs a processor over each item, in order."
        ),
        _batch_placeholder,
    )
    registry.register(
        _batch_metadata(
            "control.parallel", "Parallel", "Runs a processor over all items concurrently."
        ),
        _batch_placeholder,
    )
    registry.register(
        _batch_metadata(
            "control.batchForEach",
            "Batch For Each",
            "Runs a processor over all items concurrently.",
        ),
        _batch_placeholder,
    )


def _batch_metadata(function_id: str, name: str, description: str) -> FunctionMetadata:
    return FunctionMetadata(
        id=function_id,
        name=name,
        description=description,
        category=CATEGORY,
        params=list(_BATCH_PARAMS),
        outputs=["outputKey"],
        actions=[DEFAULT_ACTION, ERROR_ACTION],
    )
