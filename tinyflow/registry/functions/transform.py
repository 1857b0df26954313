"""Transform functions: per-item processors and string/JSON conversions."""

import json
import re

from tinyflow.graph.node import ExecutionContext, FunctionResult
from tinyflow.registry.registry import FunctionRegistry, param

CATEGORY = "Transform"

_PLACEHOLDER = re.compile(r"\{\{(\w+(?:\.\w+)*)\}\}")
_MISSING = object()


def _lookup(store: dict, path: str):
    if path in store:
        return store[path]
    if "." not in path:
        return _MISSING
    root, *rest = path.split(".")
    value = store.get(root, _MISSING)
    for part in rest:
        if not isinstance(value, dict):
            return _MISSING
        value = value.get(part, _MISSING)
    return value


def render_template(template: str, store: dict) -> str:
    """Replace `{{key}}` / `{{a.b}}` with store values; unresolved placeholders stay."""

    def replace(match: re.Match) -> str:
        value = _lookup(store, match.group(1))
        return match.group(0) if value is _MISSING else str(value)

    return _PLACEHOLDER.sub(replace, template)


def register(registry: FunctionRegistry) -> None:
    @registry.function(
        id="transform.double",
        name="Double",
        description="Doubles `currentItem`. Intended as a batch processor.",
        category=CATEGORY,
        params=[param("currentItem", "number")],
    )
    async def double(params: dict, context: ExecutionContext) -> FunctionResult:
        item = params["currentItem"]
        result = item * 2
        context.log(f"Doubled {item} -> {result}")
        return FunctionResult.ok(result)

    @registry.function(
        id="transform.template",
        name="Template",
        description="Renders a `{{key}}` template from store values.",
        category=CATEGORY,
        params=[param("template"), param("outputKey")],
        outputs=["outputKey"],
    )
    async def template(params: dict, context: ExecutionContext) -> FunctionResult:
        result = render_template(params["template"], context.store)
        context.store[params["outputKey"]] = result
        context.log(f"Template result: {result}")
        return FunctionResult.ok(result)

    @registry.function(
        id="transform.jsonParse",
        name="JSON Parse",
        category=CATEGORY,
        params=[param("inputKey"), param("outputKey")],
        outputs=["outputKey"],
    )
    async def json_parse(params: dict, context: ExecutionContext) -> FunctionResult:
        try:
            parsed = json.loads(context.store.get(params["inputKey"]))
        except (TypeError, ValueError) as e:
            return FunctionResult.fail(f"JSON parse failed: {e}")
        context.store[params["outputKey"]] = parsed
        context.log(f'Parsed JSON from "{params["inputKey"]}" to "{params["outputKey"]}"')
        return FunctionResult.ok(parsed)

    @registry.function(
        id="transform.jsonStringify",
        name="JSON Stringify",
        category=CATEGORY,
        params=[param("inputKey"), param("outputKey"), param("pretty", "boolean", required=False)],
        outputs=["outputKey"],
    )
    async def json_stringify(params: dict, context: ExecutionContext) -> FunctionResult:
        value = context.store.get(params["inputKey"])
        text = json.dumps(value, indent=2 if params.get("pretty") else None, default=str)
        context.store[params["outputKey"]] = text
        context.log(f'Stringified "{params["inputKey"]}" to "{params["outputKey"]}"')
        return FunctionResult.ok(text)
