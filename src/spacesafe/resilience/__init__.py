"""Resilient multi-strategy execution exports."""

from spacesafe.resilience.errors import status_code_of
from spacesafe.resilience.executor import ResilientOperationExecutor
from spacesafe.resilience.models import (
    DEFAULT_NON_RETRYABLE_STATUSES,
    BackoffPolicy,
    ExecutionAttempt,
    ExecutionResult,
    StatusPolicy,
    Strategy,
)

__all__ = [
    "DEFAULT_NON_RETRYABLE_STATUSES",
    "BackoffPolicy",
    "ExecutionAttempt",
    "ExecutionResult",
    "ResilientOperationExecutor",
    "StatusPolicy",
    "Strategy",
    "status_code_of",
]
