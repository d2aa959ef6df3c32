"""Multi-strategy remote execution with per-strategy retry and fallback.

A logical operation (e.g. "unassign technician from location") may be
reachable through several differently-shaped remote calls. The executor
tries them in priority order. Transient failures (5xx, network errors,
timeouts) are retried within a strategy with exponential backoff;
endpoint-shape failures (400/404/405 by default) abandon the strategy at
once. The first success ends the operation.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_any,
)

from spacesafe.exceptions import StrategyConfigurationError
from spacesafe.resilience.errors import describe_error, status_code_of
from spacesafe.resilience.models import (
    BackoffPolicy,
    ExecutionAttempt,
    ExecutionResult,
    StatusPolicy,
    Strategy,
)

if TYPE_CHECKING:
    from spacesafe.config import ResilienceSettings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

SleepCallable = Callable[[float], Awaitable[None]]


class _Deadline:
    """Overall time budget for a single ``execute`` call."""

    def __init__(self, seconds: float | None) -> None:
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds
        self.exceeded = False

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(self._expires_at - time.monotonic(), 0.0)

    def expired(self) -> bool:
        """True once the budget has actually run out; sticky."""
        if self._expires_at is not None and time.monotonic() >= self._expires_at:
            self.exceeded = True
        return self.exceeded

    def __call__(self, retry_state: RetryCallState) -> bool:
        # A backoff that would overrun the budget ends this strategy only
        if self.expired():
            return True
        remaining = self.remaining()
        return remaining is not None and (retry_state.upcoming_sleep or 0.0) >= remaining


class ResilientOperationExecutor:
    """Run an ordered list of strategies until one succeeds.

    Attributes:
        max_retries_per_strategy: Maximum invocations of a single strategy.
        backoff: Delay policy between invocations of the same strategy.
        status_policy: Default retryable/non-retryable classification.
        deadline_seconds: Optional overall budget per ``execute`` call.
    """

    def __init__(
        self,
        max_retries_per_strategy: int = 2,
        backoff: BackoffPolicy | None = None,
        status_policy: StatusPolicy | None = None,
        deadline_seconds: float | None = None,
        sleep: SleepCallable = asyncio.sleep,
    ) -> None:
        if max_retries_per_strategy < 1:
            msg = f"max_retries_per_strategy must be >= 1, got {max_retries_per_strategy}"
            raise StrategyConfigurationError(msg)
        self.max_retries_per_strategy = max_retries_per_strategy
        self.backoff = backoff or BackoffPolicy()
        self.status_policy = status_policy or StatusPolicy()
        self.deadline_seconds = deadline_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: ResilienceSettings,
        sleep: SleepCallable = asyncio.sleep,
    ) -> ResilientOperationExecutor:
        """Build an executor from the ``resilience`` config section."""
        return cls(
            max_retries_per_strategy=settings.max_retries_per_strategy,
            backoff=BackoffPolicy(
                base_delay_seconds=settings.backoff_base_seconds,
                multiplier=settings.backoff_multiplier,
                max_delay_seconds=settings.backoff_max_seconds,
            ),
            status_policy=StatusPolicy(
                non_retryable_statuses=frozenset(settings.non_retryable_statuses)
            ),
            deadline_seconds=settings.deadline_seconds,
            sleep=sleep,
        )

    async def execute(
        self,
        operation: str,
        strategies: Sequence[Strategy],
        failure_message: str | None = None,
    ) -> ExecutionResult:
        """Execute ``operation`` through ``strategies`` in priority order.

        Remote failures never propagate; they are folded into the returned
        result. Cancellation does propagate.

        Args:
            operation: Logical operation name for logs and messages.
            strategies: Candidate calls, highest priority first.
            failure_message: Optional caller-facing message used when every
                strategy fails. Defaults to a message naming the strategies.

        Returns:
            The terminal ``ExecutionResult``.

        Raises:
            StrategyConfigurationError: If ``strategies`` is empty.
        """
        if not strategies:
            raise StrategyConfigurationError(
                f"No strategies configured for operation {operation!r}"
            )

        attempts: list[ExecutionAttempt] = []
        deadline = _Deadline(self.deadline_seconds)

        for index, strategy in enumerate(strategies):
            if deadline.expired():
                break
            try:
                data = await self._run_strategy(
                    operation, index, strategy, attempts, deadline
                )
            except Exception:
                # Each failed attempt has already been logged and recorded
                continue

            logger.info(
                "operation_succeeded",
                operation=operation,
                strategy=strategy.name,
                strategy_index=index,
                attempts=len(attempts),
            )
            return ExecutionResult(
                operation=operation,
                success=True,
                data=data,
                strategy=strategy.name,
                attempts=attempts,
            )

        if deadline.exceeded:
            error = (
                f"{operation} failed: deadline of {deadline.seconds}s exceeded "
                f"after {len(attempts)} attempt(s)"
            )
            logger.error(
                "operation_deadline_exceeded",
                operation=operation,
                deadline_seconds=deadline.seconds,
                attempts=len(attempts),
            )
        else:
            names = ", ".join(strategy.name for strategy in strategies)
            error = (
                f"{operation} failed: all {len(strategies)} strategies exhausted ({names})"
            )
            logger.error(
                "operation_strategies_exhausted",
                operation=operation,
                strategies=len(strategies),
                attempts=len(attempts),
            )

        return ExecutionResult(
            operation=operation,
            success=False,
            error=failure_message or error,
            attempts=attempts,
            deadline_exceeded=deadline.exceeded,
        )

    async def _run_strategy(
        self,
        operation: str,
        index: int,
        strategy: Strategy,
        attempts: list[ExecutionAttempt],
        deadline: _Deadline,
    ) -> Any:
        """Invoke one strategy with retries; re-raise its last failure."""

        # Classified once per failed invocation, keyed by the exception object
        verdicts: dict[int, bool] = {}

        def _should_retry(exc: BaseException) -> bool:
            return verdicts.get(id(exc), False)

        def _before_sleep(retry_state: RetryCallState) -> None:
            logger.info(
                "strategy_retry_scheduled",
                operation=operation,
                strategy=strategy.name,
                attempt=retry_state.attempt_number,
                delay_seconds=retry_state.upcoming_sleep,
            )

        retrying = AsyncRetrying(
            stop=stop_any(stop_after_attempt(self.max_retries_per_strategy), deadline),
            wait=lambda retry_state: self.backoff.delay_for(retry_state.attempt_number),
            retry=retry_if_exception(_should_retry),
            before_sleep=_before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                if deadline.expired():
                    raise TimeoutError(f"{operation} deadline exceeded")
                try:
                    async with asyncio.timeout(deadline.remaining()):
                        data = await strategy.invoke()
                except Exception as exc:
                    status = status_code_of(exc)
                    retryable = strategy.is_retryable(status, self.status_policy)
                    verdicts[id(exc)] = retryable
                    attempts.append(
                        ExecutionAttempt(
                            strategy_index=index,
                            strategy=strategy.name,
                            attempt=number,
                            success=False,
                            status_code=status,
                            error=describe_error(exc),
                            retryable=retryable,
                        )
                    )
                    logger.warning(
                        "strategy_attempt_failed",
                        operation=operation,
                        strategy=strategy.name,
                        strategy_index=index,
                        attempt=number,
                        max_attempts=self.max_retries_per_strategy,
                        status=status,
                        retryable=retryable,
                        error=str(exc),
                    )
                    raise
                attempts.append(
                    ExecutionAttempt(
                        strategy_index=index,
                        strategy=strategy.name,
                        attempt=number,
                        success=True,
                    )
                )
                return data

        # AsyncRetrying either returns above or re-raises the last failure
        raise RuntimeError(f"Strategy {strategy.name!r} produced no outcome")  # pragma: no cover
