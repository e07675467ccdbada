"""Listing and blocked-range models."""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Listing(BaseModel):
    """A rentable unit.

    ``version`` is the per-listing serialization token: every operation that
    must not interleave with a conflict check (booking creation, reserving,
    blocking dates) bumps it conditionally in the same transaction.
    """

    model_config = ConfigDict(strict=True)

    listing_id: str = Field(..., description="Unique listing ID")
    owner_ids: list[str] = Field(..., min_length=1, description="Owner user IDs")
    category_id: str | None = Field(
        default=None, description="Listing category, selects the commission rule"
    )
    base_price: Decimal = Field(..., ge=0, description="Nightly base price")
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    max_guests: int | None = Field(default=None, ge=1, description="Guest capacity")
    is_archived: bool = Field(default=False, description="Soft-archive flag")
    version: int = Field(default=0, ge=0, description="Serialization token")

    @property
    def payout_host_id(self) -> str:
        """Owner credited by the settlement ledger."""
        return self.owner_ids[0]

    def is_owner(self, user_id: str) -> bool:
        return user_id in self.owner_ids


class BlockedRange(BaseModel):
    """An owner- or admin-imposed unavailability window, end exclusive."""

    model_config = ConfigDict(strict=True)

    listing_id: str
    block_id: str
    start_date: dt.date
    end_date: dt.date
    title: str = Field(..., min_length=1)
    reason: str | None = None
    created_by: str
    created_at: dt.datetime

    @model_validator(mode="after")
    def _check_range(self) -> "BlockedRange":
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self
