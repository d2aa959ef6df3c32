"""Models used by resilient multi-strategy execution."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from spacesafe.exceptions import StrategyExhaustedError

StatusPredicate = Callable[[int | None], bool]

DEFAULT_NON_RETRYABLE_STATUSES: frozenset[int] = frozenset({400, 404, 405})


class BackoffPolicy(BaseModel):
    """Exponential delay between retries of the same strategy."""

    base_delay_seconds: float = Field(default=0.2, ge=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_delay_seconds: float = Field(default=30.0, gt=0.0)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (1-based).

        With the defaults this yields 0.4s after the first attempt and
        0.8s after the second.
        """
        raw = self.base_delay_seconds * self.multiplier ** max(attempt, 0)
        return min(raw, self.max_delay_seconds)


class StatusPolicy(BaseModel):
    """Classifies failure statuses as retryable or endpoint-shape errors."""

    non_retryable_statuses: frozenset[int] = DEFAULT_NON_RETRYABLE_STATUSES

    def is_retryable(self, status: int | None) -> bool:
        # No status means a network failure or timeout
        if status is None:
            return True
        return status not in self.non_retryable_statuses


@dataclass(frozen=True)
class Strategy:
    """One candidate remote call achieving the operation's logical effect.

    Attributes:
        name: Label used in logs and attempt records.
        invoke: Zero-argument coroutine function performing the call.
        retryable: Optional per-strategy status classifier. ``None`` defers
            to the executor's ``StatusPolicy``.
    """

    name: str
    invoke: Callable[[], Awaitable[Any]]
    retryable: StatusPredicate | None = None

    def is_retryable(self, status: int | None, policy: StatusPolicy) -> bool:
        if self.retryable is not None:
            return self.retryable(status)
        return policy.is_retryable(status)


class ExecutionAttempt(BaseModel):
    """Diagnostic record of a single strategy invocation."""

    strategy_index: int = Field(ge=0)
    strategy: str
    attempt: int = Field(ge=1)
    success: bool
    status_code: int | None = None
    error: str | None = None
    retryable: bool | None = None


class ExecutionResult(BaseModel):
    """Terminal outcome of one logical operation."""

    operation: str
    success: bool
    data: Any = None
    error: str | None = None
    strategy: str | None = None
    attempts: list[ExecutionAttempt] = Field(default_factory=list)
    deadline_exceeded: bool = False

    @property
    def strategies_tried(self) -> list[str]:
        seen: list[str] = []
        for attempt in self.attempts:
            if attempt.strategy not in seen:
                seen.append(attempt.strategy)
        return seen

    def raise_for_failure(self) -> Any:
        """Return the payload, or raise if the operation failed.

        Raises:
            StrategyExhaustedError: If no strategy succeeded.
        """
        if self.success:
            return self.data
        raise StrategyExhaustedError(
            self.error or f"{self.operation} failed",
            operation=self.operation,
            attempts=self.attempts,
        )
