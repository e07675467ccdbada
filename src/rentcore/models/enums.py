"""Enumeration types for rentcore data models."""

from enum import Enum


class ReservationStatus(str, Enum):
    """Lifecycle status of a reservation."""

    WAITING = "WAITING"
    RESERVED = "RESERVED"
    CHECKIN = "CHECKIN"
    CHECKOUT = "CHECKOUT"
    REFUSED = "REFUSED"


class PaymentStatus(str, Enum):
    """Status of the guest payment backing a reservation."""

    PENDING = "PENDING"
    CLIENT_PAID = "CLIENT_PAID"  # Funds held by the payment provider
    FAILED = "FAILED"
    RELEASED = "RELEASED"  # Hold released after refusal


class ConflictReason(str, Enum):
    """Why a date range is unavailable."""

    EXISTING_RESERVATION = "EXISTING_RESERVATION"
    OWNER_BLOCKED = "OWNER_BLOCKED"


class CommissionScope(str, Enum):
    """Scope a commission rule applies to."""

    GLOBAL = "GLOBAL"
    CATEGORY = "CATEGORY"


class LedgerEntryKind(str, Enum):
    """Kind of host credit recorded in the settlement ledger."""

    COMMITTED = "COMMITTED"  # Reservation reached RESERVED
    SETTLED = "SETTLED"  # Reservation reached CHECKOUT


class WithdrawalTier(str, Enum):
    """Withdrawal entitlement level."""

    PARTIAL_50 = "PARTIAL_50"
    FULL_100 = "FULL_100"


class WithdrawalStatus(str, Enum):
    """Status of a host withdrawal request."""

    PENDING = "PENDING"
    ACCOUNT_VALIDATION = "ACCOUNT_VALIDATION"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PayoutMethod(str, Enum):
    """Supported payout methods for host withdrawals."""

    SEPA_TRANSFER = "SEPA_TRANSFER"
    PRIPEO = "PRIPEO"
    MOBILE_MONEY = "MOBILE_MONEY"
    PAYPAL = "PAYPAL"
    MONEYGRAM = "MONEYGRAM"


class PaymentProvider(str, Enum):
    """Payment processing providers."""

    STRIPE = "stripe"
    MOCK = "mock"
