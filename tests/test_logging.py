"""Tests for the trace context and the log formatters."""

import json
import logging

import pytest

from tinyflow.config import EngineConfig
from tinyflow.graph.edge import WorkflowGraph
from tinyflow.graph.executor import GraphExecutor
from tinyflow.graph.node import FunctionResult, NodeSpec
from tinyflow.graph.shared_store import MemoryLimits
from tinyflow.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)
from tinyflow.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)
from tinyflow.registry import FunctionRegistry


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("tinyflow.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_trace_context_merges_and_clears():
    set_trace_context(run_id="abc")
    set_trace_context(node_id="n1")

    assert get_trace_context() == {"run_id": "abc", "node_id": "n1"}

    clear_trace_context()

    assert get_trace_context() == {}


def test_get_trace_context_returns_copy():
    set_trace_context(run_id="abc")

    get_trace_context()["run_id"] = "changed"

    assert get_trace_context()["run_id"] == "abc"


def test_structured_formatter_includes_context():
    set_trace_context(run_id="run-1", workflow_id="wf")
    record = make_record("\033[32mhello\033[0m", node_id="a", duration_ms=12)

    entry = json.loads(StructuredFormatter().format(record))

    assert entry["message"] == "hello"
    assert entry["level"] == "info"
    assert entry["run_id"] == "run-1"
    assert entry["workflow_id"] == "wf"
    assert entry["node_id"] == "a"
    assert entry["duration_ms"] == 12


def test_human_formatter_prefix():
    set_trace_context(run_id="0123456789", workflow_id="wf", node_id="a")

    line = HumanReadableFormatter().format(make_record("hello"))

    assert "[run:01234567 | wf:wf | node:a] hello" in strip_ansi_codes(line)


def test_configure_logging_installs_single_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(level="debug", format="json")

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


@pytest.mark.asyncio
async def test_function_logs_carry_run_and_node(caplog):
    registry = FunctionRegistry()
    seen = {}

    @registry.function(id="peek")
    async def peek(params, context):
        seen.update(get_trace_context())
        return FunctionResult.ok()

    graph = WorkflowGraph(
        id="traced", nodes={"a": NodeSpec(id="a", function_id="peek")}, start_node_id="a"
    )
    config = EngineConfig(max_iterations=10, memory_limits=MemoryLimits(), profile=False)

    with caplog.at_level(logging.INFO, logger="tinyflow"):
        await GraphExecutor(registry, config=config).run(graph, run_id="run-42")

    assert seen == {"run_id": "run-42", "workflow_id": "traced", "node_id": "a"}
    assert any("Starting run run-42" in message for message in caplog.messages)
