"""Helpers for testing workflows."""

from tinyflow.testing.harness import (
    FunctionSpy,
    SpyCall,
    WorkflowTestResult,
    clear_test_functions,
    create_mocks,
    mock_node,
    register_test_function,
    test_workflow,
)

__all__ = [
    "FunctionSpy",
    "SpyCall",
    "WorkflowTestResult",
    "clear_test_functions",
    "create_mocks",
    "mock_node",
    "register_test_function",
    "test_workflow",
]
