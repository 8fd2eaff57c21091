"""
Custom exceptions for Sejenak loyalty logic.

These exceptions map onto HTTP status codes in the application error
handlers, so services raise them instead of returning error tuples.
"""
from enum import Enum


class SejenakError(Exception):
    """Base exception for all Sejenak business logic errors."""

    def __init__(self, message: str, code: str = "SEJENAK_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(SejenakError):
    """Invalid input data or model state."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class NotFoundError(SejenakError):
    """Resource not found."""

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper().replace(' ', '_')}_NOT_FOUND")


class MemberNotFoundError(NotFoundError):
    """Member not found."""

    def __init__(self, identifier=None):
        super().__init__("Member", identifier)


class RewardNotFoundError(NotFoundError):
    """Reward not found."""

    def __init__(self, identifier=None):
        super().__init__("Reward", identifier)


class DataUnavailableError(SejenakError):
    """A required storage read or write failed."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "DATA_UNAVAILABLE")


class AuthorizationError(SejenakError):
    """Caller is not allowed to perform the operation."""

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message, "PERMISSION_DENIED")


class ConfigurationError(SejenakError):
    """A required setting (API key, sender address) is missing."""

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")


class InconsistentStateWarning(UserWarning):
    """Stored balances disagree with the points history. Logged, never raised."""


class RedemptionRejection(str, Enum):
    """Reasons a redemption request is refused."""
    INSUFFICIENT_BALANCE = 'InsufficientBalance'
    BELOW_MINIMUM_POINT = 'BelowMinimumPoint'
    QUOTA_EXHAUSTED = 'QuotaExhausted'
    REWARD_EXPIRED = 'RewardExpired'

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self]


_REJECTION_MESSAGES = {
    RedemptionRejection.INSUFFICIENT_BALANCE: 'Not enough balance to redeem this reward',
    RedemptionRejection.BELOW_MINIMUM_POINT: 'Member does not meet the minimum points for this reward',
    RedemptionRejection.QUOTA_EXHAUSTED: 'This reward has been fully claimed',
    RedemptionRejection.REWARD_EXPIRED: 'This reward is no longer available',
}
