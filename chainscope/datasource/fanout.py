"""
FanOutCoordinator - concurrent dispatch of one operation to many chains.

Each chain call runs as its own task, wrapped by the RetryExecutor and a
per-adapter timeout. The whole dispatch is bounded by a parent timeout;
tasks still pending when it expires are cancelled and reported as timeouts.
No adapter failure escapes as an exception: every chain gets a ChainOutcome.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from loguru import logger

from chainscope.datasource.base import ChainAdapter
from chainscope.datasource.registry import ChainRegistry
from chainscope.services.errors import ChainServiceError, RequestTimeoutError
from chainscope.services.retry import RetryExecutor, RetryPolicy
from chainscope.services.taxonomy import ErrorCode, ErrorRecord

T = TypeVar("T")

AdapterCall = Callable[[ChainAdapter], Awaitable[T]]


@dataclass(frozen=True)
class ChainOutcome(Generic[T]):
    """Per-chain result: exactly one of value / error is meaningful."""

    chain: str
    value: T | None = None
    error: ErrorRecord | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class FanOutCoordinator:
    """
    Dispatches one logical operation to a set of chains concurrently.

    Usage:
        fanout = FanOutCoordinator(registry, retry_executor)
        outcomes = await fanout.dispatch(
            ["ethereum", "sui"],
            "search_by_owner",
            lambda adapter: adapter.search_by_owner(owner, criteria),
        )
        for chain, outcome in outcomes.items():
            ...

    Breaker and retry state is keyed per sub-call as "{operation}:{chain}".
    """

    def __init__(
        self,
        registry: ChainRegistry,
        retry_executor: RetryExecutor,
        adapter_timeout: float = 15.0,
        dispatch_timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
    ):
        self.registry = registry
        self.retry_executor = retry_executor
        self.adapter_timeout = adapter_timeout
        self.dispatch_timeout = dispatch_timeout
        self.retry_policy = retry_policy or retry_executor.default_policy

    @property
    def classifier(self):
        return self.retry_executor.classifier

    def unsupported(self, chain: str, operation: str) -> ErrorRecord:
        """Diagnostic for a chain with no registered adapter."""
        return ErrorRecord.create(
            ErrorCode.CHAIN_NOT_SUPPORTED,
            f"Chain '{chain}' is not supported",
            chain=chain,
            operation=operation,
        )

    async def call_one(
        self,
        chain: str,
        operation: str,
        call: AdapterCall[T],
        context: dict[str, Any] | None = None,
    ) -> T:
        """
        Run one adapter call with retries, breaker and timeout.

        Raises:
            ChainServiceError: chain unknown/unconfigured, or the call failed
        """
        adapter = self.registry.get(chain)
        if adapter is None or not adapter.is_configured():
            raise ChainServiceError(self.unsupported(chain, operation))

        name = f"{operation}:{chain}"
        ctx = {"chain": chain, "operation": operation, **(context or {})}

        async def attempt() -> T:
            try:
                return await asyncio.wait_for(call(adapter), self.adapter_timeout)
            except asyncio.TimeoutError as e:
                raise RequestTimeoutError(name, self.adapter_timeout) from e

        return await self.retry_executor.run(
            attempt, self.retry_policy.for_operation(name), ctx
        )

    async def _run_chain(
        self,
        chain: str,
        operation: str,
        call: AdapterCall[T],
        context: dict[str, Any] | None,
    ) -> ChainOutcome[T]:
        start = time.perf_counter()
        try:
            value = await self.call_one(chain, operation, call, context)
            return ChainOutcome(
                chain=chain,
                value=value,
                duration_ms=(time.perf_counter() - start) * 1000,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            record = self.classifier.classify(
                e, {"chain": chain, "operation": operation, **(context or {})}
            )
            logger.warning(f"[{chain}] {operation} failed: {record.code.value}")
            return ChainOutcome(
                chain=chain,
                error=record,
                duration_ms=(time.perf_counter() - start) * 1000,
            )

    async def dispatch(
        self,
        chains: Iterable[str],
        operation: str,
        call: AdapterCall[T],
        context: dict[str, Any] | None = None,
    ) -> dict[str, ChainOutcome[T]]:
        """
        Dispatch the call to every chain and join.

        Args:
            chains: Chains to target, already resolved against the registry
            operation: Logical operation name (breaker/retry key prefix)
            call: Receives the chain's adapter, returns the awaitable result
            context: Extra classification context

        Returns:
            One ChainOutcome per chain, in the order requested
        """
        chains = list(dict.fromkeys(chains))
        if not chains:
            return {}

        tasks = {
            chain: asyncio.create_task(
                self._run_chain(chain, operation, call, context),
                name=f"{operation}:{chain}",
            )
            for chain in chains
        }

        done, pending = await asyncio.wait(
            tasks.values(), timeout=self.dispatch_timeout
        )

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: dict[str, ChainOutcome[T]] = {}
        for chain, task in tasks.items():
            if task in done:
                outcomes[chain] = task.result()
                continue

            record = self.classifier.classify(
                RequestTimeoutError(f"{operation}:{chain}", self.dispatch_timeout),
                {"chain": chain, "operation": operation, "dispatch_timeout": True},
            )
            logger.warning(
                f"[{chain}] {operation} still pending after "
                f"{self.dispatch_timeout}s, cancelled"
            )
            outcomes[chain] = ChainOutcome(
                chain=chain, error=record, duration_ms=self.dispatch_timeout * 1000
            )

        failed = sum(1 for o in outcomes.values() if not o.ok)
        logger.info(
            f"Dispatched {operation} to {len(chains)} chain(s), {failed} failed"
        )
        return outcomes
