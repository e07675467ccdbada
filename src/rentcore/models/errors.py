"""Standard error codes for reservation and settlement operations.

Every business-rule outcome has an ErrorCode with a human-readable message
and a recovery hint. Services raise BookingError; the ReservationCore facade
converts it into an Outcome carrying a ToolError so callers handle failures
explicitly.
"""

from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Booking error codes (ERR_001-ERR_009)
    INVALID_RANGE = "ERR_001"
    DATES_UNAVAILABLE = "ERR_002"
    MAX_GUESTS_EXCEEDED = "ERR_003"
    RESERVATION_NOT_FOUND = "ERR_004"
    LISTING_NOT_FOUND = "ERR_005"
    LISTING_ARCHIVED = "ERR_006"
    UNAUTHORIZED = "ERR_007"
    TOO_EARLY = "ERR_008"
    INVALID_REQUEST = "ERR_009"

    # State machine error codes (ERR_STATE_001-ERR_STATE_002)
    ILLEGAL_TRANSITION = "ERR_STATE_001"
    STALE_STATE = "ERR_STATE_002"

    # Commission error codes
    INVALID_COMMISSION_RULE = "ERR_COMMISSION_001"

    # Settlement error codes (ERR_LEDGER_001-ERR_LEDGER_005)
    INSUFFICIENT_BALANCE = "ERR_LEDGER_001"
    INVALID_AMOUNT = "ERR_LEDGER_002"
    WITHDRAWAL_NOT_FOUND = "ERR_LEDGER_003"
    PAYOUT_ACCOUNT_NOT_FOUND = "ERR_LEDGER_004"
    INVALID_PAYOUT_ACCOUNT = "ERR_LEDGER_005"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    # Booking errors
    ErrorCode.INVALID_RANGE: "The departure date must be after the arrival date",
    ErrorCode.DATES_UNAVAILABLE: "The requested dates are not available",
    ErrorCode.MAX_GUESTS_EXCEEDED: "Number of guests exceeds the listing capacity",
    ErrorCode.RESERVATION_NOT_FOUND: "Reservation not found",
    ErrorCode.LISTING_NOT_FOUND: "Listing not found",
    ErrorCode.LISTING_ARCHIVED: "This listing no longer accepts bookings",
    ErrorCode.UNAUTHORIZED: "Not authorized for this action",
    ErrorCode.TOO_EARLY: "This action is not allowed before its scheduled date",
    ErrorCode.INVALID_REQUEST: "The request contains invalid values",
    # State machine errors
    ErrorCode.ILLEGAL_TRANSITION: "This status change is not allowed",
    ErrorCode.STALE_STATE: "The record was modified concurrently",
    # Commission errors
    ErrorCode.INVALID_COMMISSION_RULE: "Pricing is temporarily unavailable",
    # Settlement errors
    ErrorCode.INSUFFICIENT_BALANCE: "Requested amount exceeds the available balance",
    ErrorCode.INVALID_AMOUNT: "The amount must be greater than zero",
    ErrorCode.WITHDRAWAL_NOT_FOUND: "Withdrawal request not found",
    ErrorCode.PAYOUT_ACCOUNT_NOT_FOUND: "Payout account not found",
    ErrorCode.INVALID_PAYOUT_ACCOUNT: "Payout account details are incomplete or invalid",
}

# Recovery suggestions for callers
ERROR_RECOVERY: dict[ErrorCode, str] = {
    # Booking error recovery
    ErrorCode.INVALID_RANGE: "Choose a departure date after the arrival date",
    ErrorCode.DATES_UNAVAILABLE: "Suggest alternative dates with suggest_alternative_dates",
    ErrorCode.MAX_GUESTS_EXCEEDED: "Reduce the number of guests",
    ErrorCode.RESERVATION_NOT_FOUND: "Verify the reservation ID",
    ErrorCode.LISTING_NOT_FOUND: "Verify the listing ID",
    ErrorCode.LISTING_ARCHIVED: "Choose another listing",
    ErrorCode.UNAUTHORIZED: "Verify the actor owns the listing or reservation",
    ErrorCode.TOO_EARLY: "Retry on or after the scheduled date",
    ErrorCode.INVALID_REQUEST: "Correct the fields listed in the error details",
    # State machine error recovery
    ErrorCode.ILLEGAL_TRANSITION: "Re-fetch the current status before acting",
    ErrorCode.STALE_STATE: "Re-fetch the current status and retry once",
    # Commission error recovery
    ErrorCode.INVALID_COMMISSION_RULE: "Administrator must correct the commission rule",
    # Settlement error recovery
    ErrorCode.INSUFFICIENT_BALANCE: "Lower the requested amount",
    ErrorCode.INVALID_AMOUNT: "Enter a positive amount",
    ErrorCode.WITHDRAWAL_NOT_FOUND: "Verify the withdrawal ID",
    ErrorCode.PAYOUT_ACCOUNT_NOT_FOUND: "Register a payout account first",
    ErrorCode.INVALID_PAYOUT_ACCOUNT: "Provide the details required by the payout method",
}

# Codes worth one retry after re-reading state
RETRYABLE_ERRORS: set[ErrorCode] = {ErrorCode.STALE_STATE}

# Codes routed to admin alerting rather than shown verbatim to end users
CONFIGURATION_ERRORS: set[ErrorCode] = {ErrorCode.INVALID_COMMISSION_RULE}


class ToolError(BaseModel):
    """Standard error response format for failed operations."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    retryable: bool = False
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ToolError":
        """Create a ToolError from an error code.

        Configuration errors never expose their details to the caller.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            A ToolError with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            retryable=code in RETRYABLE_ERRORS,
            details=None if code in CONFIGURATION_ERRORS else details,
        )


class BookingError(Exception):
    """Exception raised by reservation and settlement operations.

    Carries a business-rule outcome. Caught by ReservationCore and converted
    to a ToolError.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_tool_error(self) -> ToolError:
        """Convert this exception to a ToolError."""
        return ToolError.from_code(self.code, self.details)


class Outcome(BaseModel, Generic[T]):
    """Typed result of a ReservationCore operation.

    Exactly one of ``value`` and ``error`` is set.
    """

    success: bool
    value: Optional[T] = None
    error: Optional[ToolError] = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: BookingError) -> "Outcome[T]":
        return cls(success=False, error=error.to_tool_error())

    @property
    def error_code(self) -> ErrorCode | None:
        return self.error.error_code if self.error else None
