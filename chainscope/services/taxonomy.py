"""
Error taxonomy - the closed set of codes every surfaced failure maps to.

Provides:
- ErrorCode: stable, backend-independent failure identifiers
- ErrorSeverity: critical / high / medium / low buckets
- ErrorRecord: immutable classified failure with suggested action
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """Taxonomy codes, grouped by category."""

    # Network
    NETWORK_ERROR = "network-error"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate-limited"
    SERVICE_UNAVAILABLE = "service-unavailable"

    # Auth
    INVALID_CREDENTIAL = "invalid-credential"
    INSUFFICIENT_PERMISSION = "insufficient-permission"
    WALLET_NOT_CONNECTED = "wallet-not-connected"
    INVALID_SIGNATURE = "invalid-signature"

    # Asset
    ASSET_NOT_FOUND = "asset-not-found"
    CONTRACT_NOT_FOUND = "contract-not-found"
    INVALID_REFERENCE = "invalid-reference"
    INVALID_IDENTIFIER = "invalid-identifier"
    NOT_OWNED = "not-owned"

    # Upload / storage
    FILE_TOO_LARGE = "file-too-large"
    INVALID_TYPE = "invalid-type"
    UPLOAD_FAILED = "upload-failed"
    QUOTA_EXCEEDED = "quota-exceeded"
    INVALID_METADATA = "invalid-metadata"

    # Backend-specific
    INSUFFICIENT_BALANCE = "insufficient-balance"
    FEE_ESTIMATION_FAILED = "fee-estimation-failed"
    OPERATION_FAILED = "operation-failed"
    BLOCK_NOT_FOUND = "block-not-found"
    CHAIN_NOT_SUPPORTED = "chain-not-supported"

    # Verification
    VERIFICATION_FAILED = "verification-failed"
    OWNERSHIP_VERIFICATION_FAILED = "ownership-verification-failed"
    ACCESS_DENIED = "access-denied"
    REQUIREMENT_NOT_MET = "requirement-not-met"

    # Search
    SEARCH_FAILED = "search-failed"
    INVALID_CRITERIA = "invalid-criteria"
    SEARCH_TIMEOUT = "search-timeout"
    TOO_MANY_RESULTS = "too-many-results"

    # Configuration
    INVALID_CONFIGURATION = "invalid-configuration"
    MISSING_PARAMETER = "missing-parameter"
    INVALID_PARAMETER = "invalid-parameter"

    # Internal
    INTERNAL_ERROR = "internal-error"
    NOT_IMPLEMENTED = "not-implemented"
    FEATURE_UNAVAILABLE = "feature-unavailable"

    # Cache
    CACHE_ERROR = "cache-error"
    CACHE_MISS = "cache-miss"
    CACHE_EXPIRED = "cache-expired"


class ErrorCategory(str, Enum):
    """Category each code belongs to."""

    NETWORK = "network"
    AUTH = "auth"
    ASSET = "asset"
    STORAGE = "storage"
    BACKEND = "backend"
    VERIFICATION = "verification"
    SEARCH = "search"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"
    CACHE = "cache"


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    LOW = "low"  # Warnings, non-critical issues
    MEDIUM = "medium"  # Errors that don't prevent core functionality
    HIGH = "high"  # Errors that prevent core functionality
    CRITICAL = "critical"  # System-level errors


CATEGORY_CODES: dict[ErrorCategory, tuple[ErrorCode, ...]] = {
    ErrorCategory.NETWORK: (
        ErrorCode.NETWORK_ERROR,
        ErrorCode.TIMEOUT,
        ErrorCode.RATE_LIMITED,
        ErrorCode.SERVICE_UNAVAILABLE,
    ),
    ErrorCategory.AUTH: (
        ErrorCode.INVALID_CREDENTIAL,
        ErrorCode.INSUFFICIENT_PERMISSION,
        ErrorCode.WALLET_NOT_CONNECTED,
        ErrorCode.INVALID_SIGNATURE,
    ),
    ErrorCategory.ASSET: (
        ErrorCode.ASSET_NOT_FOUND,
        ErrorCode.CONTRACT_NOT_FOUND,
        ErrorCode.INVALID_REFERENCE,
        ErrorCode.INVALID_IDENTIFIER,
        ErrorCode.NOT_OWNED,
    ),
    ErrorCategory.STORAGE: (
        ErrorCode.FILE_TOO_LARGE,
        ErrorCode.INVALID_TYPE,
        ErrorCode.UPLOAD_FAILED,
        ErrorCode.QUOTA_EXCEEDED,
        ErrorCode.INVALID_METADATA,
    ),
    ErrorCategory.BACKEND: (
        ErrorCode.INSUFFICIENT_BALANCE,
        ErrorCode.FEE_ESTIMATION_FAILED,
        ErrorCode.OPERATION_FAILED,
        ErrorCode.BLOCK_NOT_FOUND,
        ErrorCode.CHAIN_NOT_SUPPORTED,
    ),
    ErrorCategory.VERIFICATION: (
        ErrorCode.VERIFICATION_FAILED,
        ErrorCode.OWNERSHIP_VERIFICATION_FAILED,
        ErrorCode.ACCESS_DENIED,
        ErrorCode.REQUIREMENT_NOT_MET,
    ),
    ErrorCategory.SEARCH: (
        ErrorCode.SEARCH_FAILED,
        ErrorCode.INVALID_CRITERIA,
        ErrorCode.SEARCH_TIMEOUT,
        ErrorCode.TOO_MANY_RESULTS,
    ),
    ErrorCategory.CONFIGURATION: (
        ErrorCode.INVALID_CONFIGURATION,
        ErrorCode.MISSING_PARAMETER,
        ErrorCode.INVALID_PARAMETER,
    ),
    ErrorCategory.INTERNAL: (
        ErrorCode.INTERNAL_ERROR,
        ErrorCode.NOT_IMPLEMENTED,
        ErrorCode.FEATURE_UNAVAILABLE,
    ),
    ErrorCategory.CACHE: (
        ErrorCode.CACHE_ERROR,
        ErrorCode.CACHE_MISS,
        ErrorCode.CACHE_EXPIRED,
    ),
}

_CODE_CATEGORY: dict[ErrorCode, ErrorCategory] = {
    code: category for category, codes in CATEGORY_CODES.items() for code in codes
}

CRITICAL_CODES = frozenset(
    {
        ErrorCode.INTERNAL_ERROR,
        ErrorCode.INVALID_CREDENTIAL,
        ErrorCode.SERVICE_UNAVAILABLE,
    }
)

HIGH_SEVERITY_CODES = frozenset(
    {
        ErrorCode.UPLOAD_FAILED,
        ErrorCode.OPERATION_FAILED,
        ErrorCode.ACCESS_DENIED,
    }
)

LOW_SEVERITY_CODES = frozenset(
    {
        ErrorCode.CACHE_MISS,
        ErrorCode.ASSET_NOT_FOUND,
        ErrorCode.RATE_LIMITED,
    }
)

RETRYABLE_CODES = frozenset(
    {
        ErrorCode.NETWORK_ERROR,
        ErrorCode.TIMEOUT,
        ErrorCode.SERVICE_UNAVAILABLE,
        ErrorCode.RATE_LIMITED,
        ErrorCode.FEE_ESTIMATION_FAILED,
        ErrorCode.SEARCH_TIMEOUT,
        ErrorCode.CACHE_ERROR,
    }
)

# A caller override can never make these retryable
NON_RETRYABLE_CODES = frozenset(
    {
        ErrorCode.INVALID_CREDENTIAL,
        ErrorCode.ACCESS_DENIED,
        ErrorCode.INVALID_REFERENCE,
        ErrorCode.INVALID_IDENTIFIER,
        ErrorCode.FILE_TOO_LARGE,
        ErrorCode.INVALID_TYPE,
        ErrorCode.INVALID_METADATA,
    }
)

SUGGESTED_ACTIONS: dict[ErrorCode, str] = {
    ErrorCode.NETWORK_ERROR: "Check your network connection and retry the request",
    ErrorCode.TIMEOUT: "Retry the request; the backend may be under load",
    ErrorCode.RATE_LIMITED: "Wait for the rate limit to reset and retry",
    ErrorCode.SERVICE_UNAVAILABLE: "The backend is unavailable, try again later",
    ErrorCode.INVALID_CREDENTIAL: "Check your API key configuration",
    ErrorCode.INSUFFICIENT_PERMISSION: "Request access for this operation",
    ErrorCode.WALLET_NOT_CONNECTED: "Connect your wallet and try again",
    ErrorCode.INVALID_SIGNATURE: "Sign the request again with the correct key",
    ErrorCode.ASSET_NOT_FOUND: "Check the asset identifier and chain",
    ErrorCode.CONTRACT_NOT_FOUND: "Check the contract address and chain",
    ErrorCode.INVALID_REFERENCE: "Provide a valid contract or object address",
    ErrorCode.INVALID_IDENTIFIER: "Provide a valid token or asset identifier",
    ErrorCode.NOT_OWNED: "Use a wallet that owns this asset",
    ErrorCode.FILE_TOO_LARGE: "Reduce file size or use compression",
    ErrorCode.INVALID_TYPE: "Use a supported file type",
    ErrorCode.INSUFFICIENT_BALANCE: "Add funds to your wallet and retry",
    ErrorCode.FEE_ESTIMATION_FAILED: "Retry; fee estimation is usually transient",
    ErrorCode.CHAIN_NOT_SUPPORTED: "Use one of the configured chains",
    ErrorCode.ACCESS_DENIED: "You do not have permission to access this resource",
    ErrorCode.REQUIREMENT_NOT_MET: "Acquire the required assets and retry",
    ErrorCode.INVALID_CRITERIA: "Fix the search criteria and submit again",
    ErrorCode.SEARCH_TIMEOUT: "Narrow the search or retry",
    ErrorCode.TOO_MANY_RESULTS: "Add filters to narrow the search",
    ErrorCode.MISSING_PARAMETER: "Provide all required parameters",
    ErrorCode.INVALID_PARAMETER: "Check parameter values against the documentation",
    ErrorCode.INVALID_CONFIGURATION: "Review the chain and client configuration",
}

DEFAULT_SUGGESTED_ACTION = (
    "Review the error details and contact support if the issue persists"
)


def category_of(code: ErrorCode) -> ErrorCategory:
    return _CODE_CATEGORY[code]


def severity_of(code: ErrorCode) -> ErrorSeverity:
    """Fixed code -> severity table."""
    if code in CRITICAL_CODES:
        return ErrorSeverity.CRITICAL
    if code in HIGH_SEVERITY_CODES:
        return ErrorSeverity.HIGH
    if code in LOW_SEVERITY_CODES:
        return ErrorSeverity.LOW
    return ErrorSeverity.MEDIUM


def is_retryable(code: ErrorCode, override: bool | None = None) -> bool:
    """Default retryability, honouring a caller override except for hard codes."""
    if code in NON_RETRYABLE_CODES:
        return False
    if override is not None:
        return override
    return code in RETRYABLE_CODES


def suggested_action_for(code: ErrorCode) -> str:
    return SUGGESTED_ACTIONS.get(code, DEFAULT_SUGGESTED_ACTION)


class ErrorRecord(BaseModel):
    """
    A classified failure.

    Frozen once built; attach more context by wrapping (see ``wrap``),
    never by mutation.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    code: ErrorCode
    message: str
    chain: str | None = None
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    retryable: bool = False
    timestamp: datetime = Field(default_factory=datetime.now)
    context: dict[str, Any] = Field(default_factory=dict)
    original_error: BaseException | None = Field(default=None, exclude=True)
    cause: "ErrorRecord | None" = None
    suggested_action: str = DEFAULT_SUGGESTED_ACTION

    @classmethod
    def create(
        cls,
        code: ErrorCode,
        message: str,
        chain: str | None = None,
        cause: "ErrorRecord | None" = None,
        **context: Any,
    ) -> "ErrorRecord":
        """Build a record for a failure detected locally (not classified)."""
        return cls(
            code=code,
            message=message,
            chain=chain,
            severity=severity_of(code),
            retryable=is_retryable(code),
            context=context,
            cause=cause,
            suggested_action=suggested_action_for(code),
        )

    @property
    def category(self) -> ErrorCategory:
        return category_of(self.code)

    def wrap(
        self,
        code: ErrorCode | None = None,
        message: str | None = None,
        **context: Any,
    ) -> "ErrorRecord":
        """Build a new record around this one with extra context."""
        new_code = code or self.code
        return ErrorRecord(
            code=new_code,
            message=message or self.message,
            chain=self.chain,
            severity=severity_of(new_code),
            retryable=is_retryable(new_code) if code else self.retryable,
            context={**self.context, **context},
            original_error=self.original_error,
            cause=self,
            suggested_action=suggested_action_for(new_code),
        )

    def user_message(self) -> str:
        """Short message suitable for direct display."""
        return f"{self.message} ({self.suggested_action})"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "code": self.code.value,
            "message": self.message,
            "chain": self.chain,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "original_error": (
                {
                    "type": type(self.original_error).__name__,
                    "message": str(self.original_error),
                }
                if self.original_error
                else None
            ),
            "cause": self.cause.to_dict() if self.cause else None,
            "suggested_action": self.suggested_action,
        }
