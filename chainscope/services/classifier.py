"""
ErrorClassifier - Maps raw failures to taxonomy-coded ErrorRecords.

Classification order:
1. Already-classified errors pass through unchanged
2. Typed service / transport errors (timeouts, HTTP status, connection)
3. Chain-agnostic message signatures (network, timeout, rate limit)
4. Chain-family phrase tables (EVM, Sui, Solana)
5. Fallback code (internal-error unless the caller says otherwise)
"""

import asyncio
import re
import threading
from collections import Counter
from typing import Any

import httpx
from loguru import logger

from chainscope.services.errors import (
    ChainServiceError,
    CircuitOpenError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
)
from chainscope.services.taxonomy import (
    ErrorCode,
    ErrorRecord,
    is_retryable,
    severity_of,
    suggested_action_for,
)

# Checked before any chain-specific table
GENERIC_SIGNATURES: tuple[tuple[re.Pattern[str], ErrorCode], ...] = (
    (re.compile(r"network|connection"), ErrorCode.NETWORK_ERROR),
    (re.compile(r"timeout|timed out"), ErrorCode.TIMEOUT),
    (re.compile(r"rate limit|too many requests"), ErrorCode.RATE_LIMITED),
)

CHAIN_SIGNATURES: dict[str, tuple[tuple[re.Pattern[str], ErrorCode], ...]] = {
    "evm": (
        (
            re.compile(r"insufficient (funds|balance)"),
            ErrorCode.INSUFFICIENT_BALANCE,
        ),
        (
            re.compile(r"gas.*estimat|estimat.*gas"),
            ErrorCode.FEE_ESTIMATION_FAILED,
        ),
        (re.compile(r"revert"), ErrorCode.OPERATION_FAILED),
        (
            re.compile(r"contract.*not found|not found.*contract"),
            ErrorCode.CONTRACT_NOT_FOUND,
        ),
        (re.compile(r"invalid address"), ErrorCode.INVALID_REFERENCE),
        (re.compile(r"not the owner|ownership"), ErrorCode.NOT_OWNED),
    ),
    "sui": (
        (
            re.compile(r"object not found|does not exist"),
            ErrorCode.ASSET_NOT_FOUND,
        ),
        (re.compile(r"insufficient coin balance"), ErrorCode.INSUFFICIENT_BALANCE),
        (re.compile(r"invalid object id"), ErrorCode.INVALID_REFERENCE),
        (re.compile(r"ownership"), ErrorCode.NOT_OWNED),
    ),
    "solana": (
        (
            re.compile(r"account not found|invalid account"),
            ErrorCode.ASSET_NOT_FOUND,
        ),
        (
            re.compile(r"insufficient (funds|lamports)"),
            ErrorCode.INSUFFICIENT_BALANCE,
        ),
        (
            re.compile(r"invalid public key|invalid address"),
            ErrorCode.INVALID_REFERENCE,
        ),
        (
            re.compile(r"transaction failed|simulation failed"),
            ErrorCode.OPERATION_FAILED,
        ),
        (re.compile(r"owner mismatch|ownership"), ErrorCode.NOT_OWNED),
    ),
}

DEFAULT_CHAIN_FAMILIES: dict[str, str] = {
    "ethereum": "evm",
    "polygon": "evm",
    "base": "evm",
    "sui": "sui",
    "solana": "solana",
}

HTTP_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_PARAMETER,
    401: ErrorCode.INVALID_CREDENTIAL,
    403: ErrorCode.INSUFFICIENT_PERMISSION,
    404: ErrorCode.ASSET_NOT_FOUND,
    408: ErrorCode.TIMEOUT,
    413: ErrorCode.FILE_TOO_LARGE,
    415: ErrorCode.INVALID_TYPE,
    429: ErrorCode.RATE_LIMITED,
}


class ErrorClassifier:
    """
    Deterministic raw-failure -> ErrorRecord mapping.

    Usage:
        classifier = ErrorClassifier()
        record = classifier.classify(exc, {"chain": "ethereum", "operation": "search"})
        if record.retryable:
            ...

    ``classify`` never raises.
    """

    def __init__(self, chain_families: dict[str, str] | None = None):
        self._families = dict(DEFAULT_CHAIN_FAMILIES)
        if chain_families:
            self._families.update(chain_families)
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()

    def register_chain(self, chain: str, family: str) -> None:
        """Map a chain name onto one of the phrase-table families."""
        self._families[chain] = family

    def family_of(self, chain: str | None) -> str | None:
        if chain is None:
            return None
        return self._families.get(chain)

    def classify(
        self,
        raw_error: Any,
        context: dict[str, Any] | None = None,
        retryable: bool | None = None,
        fallback: ErrorCode = ErrorCode.INTERNAL_ERROR,
    ) -> ErrorRecord:
        """
        Classify a raw failure.

        Args:
            raw_error: Exception, message string, or anything else that failed
            context: Free-form metadata; ``chain`` selects the phrase table
            retryable: Caller override (ignored for never-retryable codes)
            fallback: Code used when nothing matches

        Returns:
            A valid ErrorRecord, always
        """
        context = dict(context or {})
        try:
            if isinstance(raw_error, ChainServiceError):
                record = raw_error.record
            elif isinstance(raw_error, ErrorRecord):
                record = raw_error
            else:
                record = self._build(raw_error, context, retryable, fallback)
        except Exception as e:
            logger.error(f"Error classification failed: {e}")
            record = ErrorRecord(
                code=ErrorCode.INTERNAL_ERROR,
                message=f"Unclassifiable error: {raw_error!r}",
                chain=context.get("chain"),
                severity=severity_of(ErrorCode.INTERNAL_ERROR),
                retryable=False,
                context=context,
                original_error=raw_error if isinstance(raw_error, BaseException) else None,
                suggested_action=suggested_action_for(ErrorCode.INTERNAL_ERROR),
            )

        with self._lock:
            self._counts[record.code.value] += 1
        return record

    def _build(
        self,
        raw_error: Any,
        context: dict[str, Any],
        retryable: bool | None,
        fallback: ErrorCode,
    ) -> ErrorRecord:
        chain = context.get("chain")
        code = self._map_error(raw_error, chain) or fallback
        message = self._message_of(raw_error)
        if chain:
            message = f"{chain.upper()}: {message}"

        return ErrorRecord(
            code=code,
            message=message,
            chain=chain,
            severity=severity_of(code),
            retryable=is_retryable(code, retryable),
            context=context,
            original_error=raw_error if isinstance(raw_error, BaseException) else None,
            suggested_action=suggested_action_for(code),
        )

    def _map_error(self, raw_error: Any, chain: str | None) -> ErrorCode | None:
        typed = self._map_typed(raw_error)
        if typed is not None:
            return typed

        text = self._message_of(raw_error).lower()
        for pattern, code in GENERIC_SIGNATURES:
            if pattern.search(text):
                return code

        family = self.family_of(chain)
        for pattern, code in CHAIN_SIGNATURES.get(family or "", ()):
            if pattern.search(text):
                return code

        return None

    def _map_typed(self, raw_error: Any) -> ErrorCode | None:
        if isinstance(raw_error, RateLimitError):
            return ErrorCode.RATE_LIMITED
        if isinstance(
            raw_error,
            (RequestTimeoutError, asyncio.TimeoutError, TimeoutError, httpx.TimeoutException),
        ):
            return ErrorCode.TIMEOUT
        if isinstance(raw_error, (CircuitOpenError, ServiceUnavailableError)):
            return ErrorCode.SERVICE_UNAVAILABLE
        if isinstance(raw_error, httpx.HTTPStatusError):
            status = raw_error.response.status_code
            if status >= 500:
                return ErrorCode.SERVICE_UNAVAILABLE
            return HTTP_STATUS_CODES.get(status)
        if isinstance(raw_error, (httpx.TransportError, ConnectionError)):
            return ErrorCode.NETWORK_ERROR
        return None

    @staticmethod
    def _message_of(raw_error: Any) -> str:
        if isinstance(raw_error, BaseException):
            return str(raw_error) or type(raw_error).__name__
        if isinstance(raw_error, str):
            return raw_error
        message = getattr(raw_error, "message", None)
        if isinstance(message, str):
            return message
        return "An unknown error occurred"

    # Statistics

    def get_error_stats(self) -> dict[str, Any]:
        """Classified error counts by code."""
        with self._lock:
            by_code = dict(self._counts)
        return {
            "total_errors": sum(by_code.values()),
            "errors_by_code": by_code,
        }

    def clear_stats(self) -> None:
        with self._lock:
            self._counts.clear()
