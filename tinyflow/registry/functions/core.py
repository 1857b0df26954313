"""Core functions: entry/exit points and plain store manipulation."""

import asyncio
import json

from tinyflow.graph.node import ExecutionContext, FunctionResult
from tinyflow.registry.registry import FunctionRegistry, param

CATEGORY = "Core"


def _dump(value) -> str:
    return json.dumps(value, default=str)


def register(registry: FunctionRegistry) -> None:
    @registry.function(
        id="core.start",
        name="Start",
        description="Entry point. Copies `input` into the store under `input`.",
        category=CATEGORY,
        params=[param("input", "object", required=False, default={})],
        outputs=["input"],
    )
    async def start(params: dict, context: ExecutionContext) -> FunctionResult:
        value = params.get("input") or {}
        context.store["input"] = value
        context.log(f"Start node initialized with: {_dump(value)}")
        return FunctionResult.ok(value)

    @registry.function(
        id="core.end",
        name="End",
        description="Exit point. Returns the store value under `outputKey`.",
        category=CATEGORY,
        params=[param("outputKey", required=False, default="result")],
    )
    async def end(params: dict, context: ExecutionContext) -> FunctionResult:
        result = context.store.get(params.get("outputKey") or "result")
        context.log(f"Workflow complete. Result: {_dump(result)}")
        return FunctionResult.ok(result)

    @registry.function(
        id="core.passThrough",
        name="Pass Through",
        description="Copies a store value from one key to another.",
        category=CATEGORY,
        params=[param("fromKey"), param("toKey")],
        outputs=["toKey"],
    )
    async def pass_through(params: dict, context: ExecutionContext) -> FunctionResult:
        value = context.store.get(params["fromKey"])
        context.store[params["toKey"]] = value
        context.log(f'Passed "{params["fromKey"]}" -> "{params["toKey"]}"')
        return FunctionResult.ok(value)

    @registry.function(
        id="core.setValue",
        name="Set Value",
        description="Writes a literal value into the store.",
        category=CATEGORY,
        params=[param("key"), param("value", "object")],
        outputs=["key"],
    )
    async def set_value(params: dict, context: ExecutionContext) -> FunctionResult:
        key = params["key"]
        value = params.get("value")
        context.store[key] = value
        context.log(f'Set "{key}" = {_dump(value)}')
        return FunctionResult.ok(value)

    @registry.function(
        id="core.log",
        name="Log",
        description="Logs a store value.",
        category=CATEGORY,
        params=[param("key"), param("message", required=False)],
    )
    async def log(params: dict, context: ExecutionContext) -> FunctionResult:
        key = params["key"]
        value = context.store.get(key)
        prefix = f"{params['message']}: " if params.get("message") else ""
        context.log(f"{prefix}{key} = {json.dumps(value, indent=2, default=str)}")
        return FunctionResult.ok(value)

    @registry.function(
        id="core.delay",
        name="Delay",
        description="Waits for `ms` milliseconds.",
        category=CATEGORY,
        params=[param("ms", "number")],
    )
    async def delay(params: dict, context: ExecutionContext) -> FunctionResult:
        ms = params.get("ms") or 0
        context.log(f"Delaying for {ms}ms")
        await asyncio.sleep(ms / 1000)
        return FunctionResult.ok(None)
