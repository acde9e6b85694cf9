"""
RetryExecutor - Bounded retries with exponential backoff.

Every attempt outcome is reported to the CircuitBreakerRegistry under the
policy's operation name, and every failure is classified before deciding
whether another attempt is worthwhile.
"""

import asyncio
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from chainscope.services.circuit_breaker import CircuitBreakerRegistry
from chainscope.services.classifier import ErrorClassifier
from chainscope.services.errors import ChainServiceError, CircuitOpenError
from chainscope.services.taxonomy import ErrorRecord

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one logical operation."""

    max_retries: int = 3
    initial_delay: float = 1.0  # seconds
    backoff_multiplier: float = 2.0
    operation_name: str | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )

    def for_operation(self, operation_name: str) -> "RetryPolicy":
        return replace(self, operation_name=operation_name)


class RetryExecutor:
    """
    Runs an async operation until it succeeds or retrying stops making sense.

    Usage:
        executor = RetryExecutor(classifier, breakers)
        assets = await executor.run(
            lambda: adapter.search_by_owner(owner, criteria),
            RetryPolicy(operation_name="search_by_owner:ethereum"),
            context={"chain": "ethereum"},
        )

    Stops early when the classified failure is not retryable or the circuit
    for the operation is open. Raises ChainServiceError carrying the final
    ErrorRecord, annotated with the number of attempts made.
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        breakers: CircuitBreakerRegistry,
        default_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.classifier = classifier
        self.breakers = breakers
        self.default_policy = default_policy or RetryPolicy()
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        context: dict[str, Any] | None = None,
    ) -> T:
        """
        Execute operation with retries.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            policy: Retry settings (defaults to the executor's policy)
            context: Classification context (chain, operation, ids...)

        Returns:
            The operation's result

        Raises:
            ChainServiceError: after the final failed attempt
        """
        policy = policy or self.default_policy
        name = policy.operation_name
        ctx = dict(context or {})
        if name:
            ctx.setdefault("operation", name)

        delay = policy.initial_delay
        attempts = 0
        last_record: ErrorRecord | None = None

        for attempt in range(policy.max_retries + 1):
            if name and self.breakers.is_open(name):
                reset_after = self.breakers.get(name).get_time_until_reset() or 0.0
                last_record = self.classifier.classify(
                    CircuitOpenError(name, reset_after),
                    {**ctx, "circuit_open": True},
                )
                logger.warning(f"Circuit open for '{name}', skipping attempt")
                break

            attempts += 1
            try:
                result = await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_record = self.classifier.classify(e, ctx)
                if name:
                    self.breakers.record_failure(name)

                if not last_record.retryable:
                    logger.debug(
                        f"'{name}' failed with non-retryable "
                        f"{last_record.code.value}, giving up"
                    )
                    break
                if name and self.breakers.is_open(name):
                    break
                if attempt == policy.max_retries:
                    break

                logger.debug(
                    f"'{name}' attempt {attempts} failed "
                    f"({last_record.code.value}), retrying in {delay:.3f}s"
                )
                await self._sleep(delay)
                delay *= policy.backoff_multiplier
                continue

            if name:
                self.breakers.record_success(name)
            return result

        # max_retries >= 0, so the loop ran and recorded a failure
        final = last_record.wrap(
            message=f"{last_record.message} (after {attempts} attempt(s))",
            attempts=attempts,
            max_retries=policy.max_retries,
            final_attempt=True,
        )
        raise ChainServiceError(final)
