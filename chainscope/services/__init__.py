"""
Service layer infrastructure - resilience patterns for chain calls.

Provides:
- ErrorClassifier: Maps raw failures to taxonomy-coded ErrorRecords
- CircuitBreaker: Stops hammering operations that keep failing
- RetryExecutor: Bounded retries with exponential backoff
- VerificationCache: TTL cache for granted verifications
- RequestDeduplicator: Coalesces identical concurrent calls
"""

from chainscope.services.errors import (
    ServiceError,
    ChainServiceError,
    CircuitOpenError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
)
from chainscope.services.taxonomy import (
    ErrorCategory,
    ErrorCode,
    ErrorRecord,
    ErrorSeverity,
)
from chainscope.services.classifier import ErrorClassifier
from chainscope.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from chainscope.services.retry import RetryExecutor, RetryPolicy
from chainscope.services.cache import VerificationCache
from chainscope.services.deduplicator import RequestDeduplicator

__all__ = [
    # Errors
    "ServiceError",
    "ChainServiceError",
    "CircuitOpenError",
    "RateLimitError",
    "RequestTimeoutError",
    "ServiceUnavailableError",
    # Taxonomy
    "ErrorCategory",
    "ErrorCode",
    "ErrorRecord",
    "ErrorSeverity",
    "ErrorClassifier",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    # Retry
    "RetryExecutor",
    "RetryPolicy",
    # Verification support
    "VerificationCache",
    "RequestDeduplicator",
]
