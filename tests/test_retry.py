import asyncio

import pytest
from conftest import RecordingSleep

from chainscope.services.circuit_breaker import CircuitBreakerRegistry
from chainscope.services.classifier import ErrorClassifier
from chainscope.services.errors import ChainServiceError
from chainscope.services.retry import RetryExecutor, RetryPolicy
from chainscope.services.taxonomy import ErrorCode, ErrorRecord


class Flaky:
    """Fails ``failures`` times with ``error``, then returns ``value``."""

    def __init__(self, error, failures: int, value="ok"):
        self.error = error
        self.failures = failures
        self.value = value
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error
        return self.value


@pytest.fixture
def breakers():
    return CircuitBreakerRegistry()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def executor(breakers, sleep):
    return RetryExecutor(ErrorClassifier(), breakers, sleep=sleep)


POLICY = RetryPolicy(
    max_retries=3, initial_delay=0.1, backoff_multiplier=2.0, operation_name="op"
)


class TestRetryExecutor:
    def test_exhausts_with_exponential_delays(self, executor, sleep):
        """Always-network-error: 4 attempts, delays 100/200/400 ms."""
        op = Flaky(ConnectionError("network unreachable"), failures=100)

        with pytest.raises(ChainServiceError) as exc_info:
            asyncio.run(executor.run(op, POLICY))

        assert op.attempts == 4
        assert sleep.delays == pytest.approx([0.1, 0.2, 0.4])

        record = exc_info.value.record
        assert record.code == ErrorCode.NETWORK_ERROR
        assert record.context["attempts"] == 4
        assert record.context["final_attempt"] is True
        assert "after 4 attempt(s)" in record.message
        assert isinstance(record.original_error, ConnectionError)

    def test_non_retryable_stops_after_one_attempt(self, executor, sleep):
        denied = ChainServiceError(
            ErrorRecord.create(ErrorCode.ACCESS_DENIED, "access denied")
        )
        op = Flaky(denied, failures=100)

        with pytest.raises(ChainServiceError) as exc_info:
            asyncio.run(executor.run(op, POLICY))

        assert op.attempts == 1
        assert sleep.delays == []
        assert exc_info.value.code == ErrorCode.ACCESS_DENIED
        assert exc_info.value.record.context["attempts"] == 1

    def test_recovers_after_transient_failures(self, executor, breakers, sleep):
        op = Flaky(TimeoutError("timed out"), failures=2, value=42)

        assert asyncio.run(executor.run(op, POLICY)) == 42
        assert op.attempts == 3
        assert sleep.delays == pytest.approx([0.1, 0.2])
        assert breakers.get("op").failure_count == 0

    def test_zero_retries_means_single_attempt(self, executor, sleep):
        op = Flaky(ConnectionError("connection reset"), failures=100)
        policy = RetryPolicy(max_retries=0, operation_name="op")

        with pytest.raises(ChainServiceError):
            asyncio.run(executor.run(op, policy))

        assert op.attempts == 1
        assert sleep.delays == []

    def test_open_circuit_short_circuits(self, executor, breakers):
        for _ in range(5):
            breakers.record_failure("op")
        op = Flaky(ConnectionError("network"), failures=0)

        with pytest.raises(ChainServiceError) as exc_info:
            asyncio.run(executor.run(op, POLICY))

        assert op.attempts == 0
        assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE
        assert exc_info.value.record.context["circuit_open"] is True

    def test_stops_when_circuit_opens_mid_run(self, breakers, sleep):
        executor = RetryExecutor(ErrorClassifier(), breakers, sleep=sleep)
        for _ in range(3):
            breakers.record_failure("op")
        op = Flaky(ConnectionError("network"), failures=100)
        policy = RetryPolicy(max_retries=10, initial_delay=0.01, operation_name="op")

        with pytest.raises(ChainServiceError):
            asyncio.run(executor.run(op, policy))

        # failures 4 and 5 trip the breaker
        assert op.attempts == 2
        assert breakers.is_open("op")

    def test_failures_feed_breaker(self, executor, breakers):
        op = Flaky(ConnectionError("network"), failures=100)

        with pytest.raises(ChainServiceError):
            asyncio.run(executor.run(op, POLICY))

        assert breakers.get("op").failure_count == 4

    def test_policy_for_operation(self):
        policy = RetryPolicy(max_retries=2).for_operation("text_search:sui")
        assert policy.operation_name == "text_search:sui"
        assert policy.max_retries == 2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"initial_delay": -0.1},
            {"backoff_multiplier": 0.5},
        ],
    )
    def test_policy_rejects_out_of_range_values(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)
