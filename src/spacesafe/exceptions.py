"""Centralized exception hierarchy for the spacesafe package.

All domain-specific exceptions inherit from ``SpaceSafeError`` so
callers can catch the entire family with a single ``except`` clause.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from spacesafe.resilience.models import ExecutionAttempt


class SpaceSafeError(Exception):
    """Base exception for all spacesafe errors."""


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(SpaceSafeError):
    """Base exception for invalid caller-supplied configuration."""


class StrategyConfigurationError(ConfigurationError):
    """Raised when an operation is executed without any strategies."""


# ---------------------------------------------------------------------------
# Remote operation errors
# ---------------------------------------------------------------------------


class RemoteOperationError(SpaceSafeError):
    """Base exception for failed remote operations."""


class StrategyExhaustedError(RemoteOperationError):
    """Raised when every strategy for an operation has failed."""

    def __init__(
        self,
        message: str,
        operation: str = "",
        attempts: list[ExecutionAttempt] | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.attempts = list(attempts or [])


# ---------------------------------------------------------------------------
# API errors
# ---------------------------------------------------------------------------


class APIError(SpaceSafeError):
    """Raised when a single-shot API call returns an error response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


# ---------------------------------------------------------------------------
# Session errors
# ---------------------------------------------------------------------------


class SessionError(SpaceSafeError):
    """Raised when an operation needs an authenticated session and has none."""
