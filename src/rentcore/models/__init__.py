"""Pydantic models for rentcore data entities."""

from .commission import CommissionQuote, CommissionRule
from .enums import (
    CommissionScope,
    ConflictReason,
    LedgerEntryKind,
    PaymentProvider,
    PaymentStatus,
    PayoutMethod,
    ReservationStatus,
    WithdrawalStatus,
    WithdrawalTier,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    BookingError,
    ErrorCode,
    Outcome,
    ToolError,
)
from .listing import BlockedRange, Listing
from .reservation import (
    AlternativeDates,
    AvailabilityResult,
    Reservation,
    ReservationCreate,
    SweepReport,
    TransitionRecord,
)
from .withdrawal import (
    HostBalance,
    LedgerEntry,
    PayoutAccount,
    WithdrawalRequest,
    WithdrawalStats,
    WithdrawalStatusSummary,
)

__all__ = [
    # Enums
    "CommissionScope",
    "ConflictReason",
    "LedgerEntryKind",
    "PaymentProvider",
    "PaymentStatus",
    "PayoutMethod",
    "ReservationStatus",
    "WithdrawalStatus",
    "WithdrawalTier",
    # Errors
    "BookingError",
    "ErrorCode",
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "Outcome",
    "ToolError",
    # Listing
    "BlockedRange",
    "Listing",
    # Reservation
    "AlternativeDates",
    "AvailabilityResult",
    "Reservation",
    "ReservationCreate",
    "SweepReport",
    "TransitionRecord",
    # Commission
    "CommissionQuote",
    "CommissionRule",
    # Settlement
    "HostBalance",
    "LedgerEntry",
    "PayoutAccount",
    "WithdrawalRequest",
    "WithdrawalStats",
    "WithdrawalStatusSummary",
]
