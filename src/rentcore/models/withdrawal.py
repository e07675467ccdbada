"""Settlement ledger, payout account and withdrawal models.

Amounts are Decimal values in the host's currency.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import LedgerEntryKind, PayoutMethod, WithdrawalStatus, WithdrawalTier


class LedgerEntry(BaseModel):
    """A credit owed to a host for one reservation milestone.

    ``entry_id`` is ``"{reservation_id}#{kind}"`` and doubles as the
    idempotency key: a reservation is credited at most once per kind.
    """

    model_config = ConfigDict(strict=True)

    entry_id: str
    host_id: str
    reservation_id: str
    kind: LedgerEntryKind
    amount: Decimal = Field(..., ge=0)
    currency: str = "EUR"
    created_at: dt.datetime

    @staticmethod
    def make_id(reservation_id: str, kind: LedgerEntryKind) -> str:
        return f"{reservation_id}#{kind.value}"


class HostBalance(BaseModel):
    """Withdrawable funds for a host at one point in time."""

    model_config = ConfigDict(strict=True)

    host_id: str
    gross_committed: Decimal = Field(..., description="Receivables of RESERVED+ stays")
    gross_settled: Decimal = Field(..., description="Receivables of CHECKOUT stays")
    total_withdrawn: Decimal = Field(..., description="COMPLETED withdrawals")
    pending_withdrawals: Decimal = Field(..., description="Non-terminal withdrawals")
    amount_available_50: Decimal = Field(..., ge=0)
    amount_available_100: Decimal = Field(..., ge=0)
    currency: str = "EUR"

    def maximum_for(self, tier: WithdrawalTier) -> Decimal:
        if tier == WithdrawalTier.PARTIAL_50:
            return self.amount_available_50
        return self.amount_available_100


class PayoutAccount(BaseModel):
    """Where a host's withdrawals are paid to."""

    model_config = ConfigDict(strict=True)

    account_id: str
    host_id: str
    method: PayoutMethod
    account_holder_name: str = Field(..., min_length=1)
    # SEPA
    iban: str | None = None
    # Pripeo
    card_number: str | None = None
    card_email: str | None = None
    # Mobile Money
    mobile_number: str | None = None
    # PayPal
    paypal_email: str | None = None
    # MoneyGram
    moneygram_full_name: str | None = None
    moneygram_phone: str | None = None
    is_default: bool = False
    is_validated: bool = False
    validated_by: str | None = None
    validated_at: dt.datetime | None = None
    created_at: dt.datetime


class WithdrawalRequest(BaseModel):
    """A host's request to be paid out.

    ``balance_snapshot`` is a copy of the balance the request was validated
    against, kept for audit even after the live balance moves.
    """

    model_config = ConfigDict(strict=True)

    withdrawal_id: str
    host_id: str
    amount: Decimal = Field(..., gt=0)
    tier: WithdrawalTier
    balance_snapshot: HostBalance
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    payout_method: PayoutMethod
    payout_account_id: str | None = None
    currency: str = "EUR"
    notes: str | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    processed_by: str | None = None
    processed_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None
    created_at: dt.datetime
    updated_at: dt.datetime
    version: int = Field(default=0, ge=0)


class WithdrawalStatusSummary(BaseModel):
    """Count and total of a host's withdrawals in one status."""

    status: WithdrawalStatus
    count: int
    total_amount: Decimal


class WithdrawalStats(BaseModel):
    """Balance plus per-status withdrawal aggregates for a host."""

    balance: HostBalance
    requests: list[WithdrawalStatusSummary]
