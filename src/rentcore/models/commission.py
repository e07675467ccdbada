"""Commission rule and price quote models."""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import CommissionScope


class CommissionRule(BaseModel):
    """Parameters splitting a base price into host and guest amounts.

    Rates are fractions (0.1 == 10%); fixed fees are in the listing currency.
    """

    model_config = ConfigDict(strict=True)

    rule_id: str = Field(..., description="Unique rule ID")
    scope: CommissionScope = Field(default=CommissionScope.GLOBAL)
    category_id: str | None = Field(
        default=None, description="Listing category for CATEGORY-scoped rules"
    )
    host_rate: Decimal = Field(default=Decimal("0"), ge=0)
    host_fixed: Decimal = Field(default=Decimal("0"), ge=0)
    client_rate: Decimal = Field(default=Decimal("0"), ge=0)
    client_fixed: Decimal = Field(default=Decimal("0"), ge=0)
    is_active: bool = Field(default=True)
    activated_at: dt.datetime | None = Field(
        default=None, description="When the rule was last activated"
    )

    @model_validator(mode="after")
    def _check_scope(self) -> "CommissionRule":
        if self.scope == CommissionScope.CATEGORY and not self.category_id:
            raise ValueError("CATEGORY-scoped rules require a category_id")
        if self.scope == CommissionScope.GLOBAL and self.category_id:
            raise ValueError("GLOBAL rules cannot target a category")
        return self

    @classmethod
    def zero(cls) -> "CommissionRule":
        """Rule applied when no active rule resolves."""
        return cls(rule_id="default-zero", is_active=True)


class CommissionQuote(BaseModel):
    """Result of applying a commission rule to a base price."""

    model_config = ConfigDict(strict=True)

    base_price: Decimal
    host_commission: Decimal
    client_commission: Decimal
    host_receives: Decimal = Field(..., ge=0)
    client_pays: Decimal = Field(..., ge=0)
    currency: str = "EUR"
    rule_id: str
    host_rate: Decimal
    host_fixed: Decimal
    client_rate: Decimal
    client_fixed: Decimal

    def rule(self) -> CommissionRule:
        """Rebuild the rule parameters captured in this quote."""
        return CommissionRule(
            rule_id=self.rule_id,
            host_rate=self.host_rate,
            host_fixed=self.host_fixed,
            client_rate=self.client_rate,
            client_fixed=self.client_fixed,
        )

    def format_breakdown(self) -> dict[str, str]:
        """Display strings for a price breakdown."""
        return {
            "base_price": f"{self.base_price:.2f} {self.currency}",
            "host_commission": f"{self.host_commission:.2f} {self.currency}",
            "client_commission": f"{self.client_commission:.2f} {self.currency}",
            "host_receives": f"{self.host_receives:.2f} {self.currency}",
            "client_pays": f"{self.client_pays:.2f} {self.currency}",
            "host_commission_percentage": f"{self.host_rate * 100:.2f}%",
            "client_commission_percentage": f"{self.client_rate * 100:.2f}%",
        }
