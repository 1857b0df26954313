"""Runtime facade and retry policies."""

from tinyflow.runtime.retry import (
    DEFAULT_RETRY_POLICY,
    RETRY_POLICIES,
    RetryContext,
    RetryPolicy,
    calculate_delay,
    create_retry_policy,
    is_retryable_error,
    with_retry,
)
from tinyflow.runtime.runtime import RunOptions, Runtime, run_workflow, run_workflow_from_json

__all__ = [
    "Runtime",
    "RunOptions",
    "run_workflow",
    "run_workflow_from_json",
    "RetryPolicy",
    "RetryContext",
    "DEFAULT_RETRY_POLICY",
    "RETRY_POLICIES",
    "calculate_delay",
    "create_retry_policy",
    "is_retryable_error",
    "with_retry",
]
