"""
Asset ownership and gated-access verification types.
"""

from chainscope.verification.types import (
    GatingRule,
    GatingType,
    MultiChainVerificationResult,
    VerificationOptions,
    VerificationResult,
    VerificationType,
)

__all__ = [
    "GatingRule",
    "GatingType",
    "MultiChainVerificationResult",
    "VerificationOptions",
    "VerificationResult",
    "VerificationType",
]
