"""
Error kinds for the reserve system.

Every failure carries a stable ErrorKind so callers can tell "not yet due"
(COOLDOWN_ACTIVE) apart from misconfiguration and arithmetic faults.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Normalized error kinds."""
    NOT_LISTED = "not_listed"
    AUTHORITY_NOT_SET = "authority_not_set"
    HANDLER_NOT_SET = "handler_not_set"
    COOLDOWN_ACTIVE = "cooldown_active"
    CONVERSION_FAILED = "conversion_failed"
    EXTRACTION_FAILED = "extraction_failed"
    ADMIN_MISMATCH = "admin_mismatch"
    INVALID_INPUT = "invalid_input"
    INVALID_RATIO = "invalid_ratio"
    UNAUTHORIZED = "unauthorized"
    ARITHMETIC_UNDERFLOW = "arithmetic_underflow"
    ARITHMETIC_OVERFLOW = "arithmetic_overflow"


class ReserveSystemError(Exception):
    """Base exception for reserve system errors."""
    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str = "", market: Optional[str] = None):
        super().__init__(message or self.kind.value)
        self.market = market


class NotListedError(ReserveSystemError):
    """Raised when a market is not listed in the registry."""
    kind = ErrorKind.NOT_LISTED


class AuthorityNotSetError(ReserveSystemError):
    """Raised when no extraction authority is configured for a market."""
    kind = ErrorKind.AUTHORITY_NOT_SET


class HandlerNotSetError(ReserveSystemError):
    """Raised when no conversion handler is configured for an identifier."""
    kind = ErrorKind.HANDLER_NOT_SET


class CooldownActiveError(ReserveSystemError):
    """Raised when extraction is attempted inside the cooldown window."""
    kind = ErrorKind.COOLDOWN_ACTIVE

    def __init__(self, message: str = "", market: Optional[str] = None, ready_at: int = 0):
        super().__init__(message, market)
        self.ready_at = ready_at


class ConversionFailedError(ReserveSystemError):
    """Raised when a conversion handler reports failure."""
    kind = ErrorKind.CONVERSION_FAILED


class ExtractionFailedError(ReserveSystemError):
    """Raised when an extraction authority reports failure."""
    kind = ErrorKind.EXTRACTION_FAILED


class AdminMismatchError(ReserveSystemError):
    """Raised when a proposed authority is not the market's admin."""
    kind = ErrorKind.ADMIN_MISMATCH


class InvalidInputError(ReserveSystemError):
    """Raised on malformed operator input (e.g. list length mismatch)."""
    kind = ErrorKind.INVALID_INPUT


class InvalidRatioError(ReserveSystemError):
    """Raised when a ratio falls outside [0, RATIO_DENOMINATOR]."""
    kind = ErrorKind.INVALID_RATIO


class UnauthorizedError(ReserveSystemError):
    """Raised when a non-owner calls an operator operation."""
    kind = ErrorKind.UNAUTHORIZED


class ArithmeticUnderflowError(ReserveSystemError):
    """Raised when a checked unsigned subtraction would go negative."""
    kind = ErrorKind.ARITHMETIC_UNDERFLOW


class ArithmeticOverflowError(ReserveSystemError):
    """Raised when a checked unsigned value exceeds 2**256 - 1."""
    kind = ErrorKind.ARITHMETIC_OVERFLOW
