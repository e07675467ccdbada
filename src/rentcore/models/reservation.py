"""Reservation and transition history models."""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .commission import CommissionQuote
from .enums import ConflictReason, PaymentStatus, ReservationStatus


class Reservation(BaseModel):
    """One guest's stay on a listing for ``[arrival_date, departure_date)``.

    Mutated only through the booking state machine. ``version`` is bumped by
    every write and used for compare-and-swap updates.
    """

    model_config = ConfigDict(strict=True)

    reservation_id: str = Field(..., description="Unique reservation ID")
    listing_id: str = Field(..., description="Reference to Listing")
    host_id: str = Field(..., description="Payout host credited on settlement")
    guest_id: str = Field(..., description="Reference to the guest")
    headcount: int = Field(..., ge=1, description="Number of guests")
    arrival_date: dt.date
    departure_date: dt.date
    nights: int = Field(..., ge=1)
    status: ReservationStatus = Field(default=ReservationStatus.WAITING)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    host_approved: bool = Field(default=False)
    base_price: Decimal = Field(..., ge=0, description="Stay price before commissions")
    commission: CommissionQuote = Field(..., description="Quote snapshot at request time")
    guest_paid_total: Decimal = Field(..., ge=0)
    host_receivable: Decimal = Field(..., ge=0)
    currency: str = Field(default="EUR")
    payment_reference: str | None = Field(
        default=None, description="Gateway handle for the funds hold (PaymentIntent ID)"
    )
    refusal_reason: str | None = None
    created_at: dt.datetime
    updated_at: dt.datetime
    version: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_invariants(self) -> "Reservation":
        if self.arrival_date >= self.departure_date:
            raise ValueError("arrival_date must be before departure_date")
        if self.guest_paid_total < self.host_receivable:
            raise ValueError("guest_paid_total must cover host_receivable")
        return self


class ReservationCreate(BaseModel):
    """Data required to request a booking."""

    model_config = ConfigDict(strict=True)

    listing_id: str
    guest_id: str
    arrival_date: dt.date
    departure_date: dt.date
    headcount: int = Field(..., ge=1)
    additional_fees: Decimal = Field(default=Decimal("0"), ge=0)


class TransitionRecord(BaseModel):
    """Immutable audit entry for one status change."""

    model_config = ConfigDict(strict=True)

    subject_id: str = Field(..., description="Reservation or withdrawal ID")
    sequence: str = Field(..., description="Sortable entry key")
    previous_status: str | None = Field(default=None, description="None on creation")
    new_status: str
    actor_id: str
    occurred_at: dt.datetime
    reason: str | None = None


class AvailabilityResult(BaseModel):
    """Outcome of a conflict check."""

    model_config = ConfigDict(strict=True)

    listing_id: str
    start_date: dt.date
    end_date: dt.date
    available: bool
    conflict_reason: ConflictReason | None = None
    conflicting_id: str | None = Field(
        default=None, description="Reservation or block that caused the conflict"
    )


class AlternativeDates(BaseModel):
    """A conflict-free window near a requested stay."""

    model_config = ConfigDict(strict=True)

    arrival_date: dt.date
    departure_date: dt.date
    nights: int
    offset_days: int
    direction: str


class SweepReport(BaseModel):
    """Summary of a scheduled sweep run."""

    processed: int = 0
    transitioned: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
