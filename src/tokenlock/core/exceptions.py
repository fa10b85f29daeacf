"""
Exception hierarchy for the token timelock.

Every rejected operation raises a typed exception so callers can tell
"not yet time" apart from "nothing to withdraw" and "already locked".
All errors are raised before any state is mutated.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class TimelockError(Exception):
    """Base exception for all timelock and token ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried later
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Validation Errors ====================


class ValidationError(TimelockError):
    """Raised when an argument fails validation before any state change."""
    pass


class InvalidAmountError(ValidationError):
    """Raised when a token amount is zero, negative or out of range."""
    pass


class InvalidDelayError(ValidationError):
    """Raised when a lock delay is negative or above the configured maximum."""
    pass


class InvalidAddressError(ValidationError):
    """Raised when an address is empty, the zero address, or malformed."""
    pass


# ==================== Token Ledger Errors ====================


class TokenError(TimelockError):
    """Raised when a token ledger operation is rejected."""
    pass


class InsufficientBalanceError(TokenError):
    """Raised when an account holds fewer tokens than requested."""
    pass


class InsufficientAllowanceError(TokenError):
    """Raised when a spender pulls more than the owner approved."""
    pass


class TokenTransferError(TokenError):
    """Raised when the token ledger reports an unsuccessful transfer."""
    pass


# ==================== Vault Errors ====================


class VaultError(TimelockError):
    """Raised when a vault state transition is rejected."""
    pass


class DuplicateLockError(VaultError):
    """Raised when a depositor already has an active lock."""
    pass


class NoActiveLockError(VaultError):
    """Raised when a depositor has nothing locked."""
    pass


class TimeNotElapsedError(VaultError):
    """Raised when withdrawing before the unlock time.

    Recoverable: the same call succeeds once the clock reaches ``unlock_time``.
    """

    def __init__(
        self,
        message: str,
        unlock_time: Optional[int] = None,
        current_time: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.unlock_time = unlock_time
        self.current_time = current_time

    @property
    def remaining_seconds(self) -> Optional[int]:
        if self.unlock_time is None or self.current_time is None:
            return None
        return max(0, self.unlock_time - self.current_time)


# ==================== Clock & Configuration Errors ====================


class ClockError(TimelockError):
    """Raised when simulated time would move backwards."""
    pass


class ConfigurationError(TimelockError):
    """Raised when configuration is missing or invalid."""
    pass


# ==================== Utility Functions ====================


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Args:
        exc: The exception to check

    Returns:
        True if the operation can be retried later
    """
    if isinstance(exc, TimelockError):
        return exc.recoverable
    return False


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, TimelockError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, TimeNotElapsedError) and exc.remaining_seconds is not None:
        context["remaining_seconds"] = exc.remaining_seconds

    return context
