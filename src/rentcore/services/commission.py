"""Commission calculation and rule resolution.

Formulas (each computed exactly, then rounded once to the currency's minor
unit with banker's rounding):

    host_commission   = base * host_rate + host_fixed
    client_commission = base * client_rate + client_fixed
    host_receives     = base - host_commission
    client_pays       = base + client_commission
"""

import datetime as dt
import uuid
from collections.abc import Callable
from decimal import ROUND_HALF_EVEN, Decimal
from typing import TYPE_CHECKING

from rentcore.models import (
    BookingError,
    CommissionQuote,
    CommissionRule,
    CommissionScope,
    ErrorCode,
    Listing,
)
from rentcore.utils.logging import get_logger

from .records import item_to_rule, rule_to_item

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)

# ISO 4217 minor units; currencies not listed use 2
CURRENCY_MINOR_UNITS: dict[str, int] = {
    "EUR": 2,
    "USD": 2,
    "GBP": 2,
    "CHF": 2,
    "MGA": 2,
    "JPY": 0,
    "KRW": 0,
    "XOF": 0,
    "BHD": 3,
    "KWD": 3,
}


def minor_unit(currency: str) -> Decimal:
    """Smallest representable amount for a currency (e.g. 0.01 for EUR)."""
    return Decimal(1).scaleb(-CURRENCY_MINOR_UNITS.get(currency.upper(), 2))


def round_money(amount: Decimal, currency: str = "EUR") -> Decimal:
    return amount.quantize(minor_unit(currency), rounding=ROUND_HALF_EVEN)


def quote(base_price: Decimal, rule: CommissionRule, currency: str = "EUR") -> CommissionQuote:
    """Split a base price into host-received and guest-paid amounts.

    Args:
        base_price: Stay price before commissions
        rule: Commission parameters to apply
        currency: ISO currency code used for rounding

    Returns:
        CommissionQuote with the rule parameters captured

    Raises:
        BookingError: INVALID_AMOUNT for a negative base price,
            INVALID_COMMISSION_RULE if the host would receive less than zero
    """
    if base_price < 0:
        raise BookingError(ErrorCode.INVALID_AMOUNT, details={"base_price": str(base_price)})

    host_commission = base_price * rule.host_rate + rule.host_fixed
    client_commission = base_price * rule.client_rate + rule.client_fixed
    host_receives = round_money(base_price - host_commission, currency)

    if host_receives < 0:
        logger.error(
            "Commission rule %s yields negative host amount %s for base %s",
            rule.rule_id,
            host_receives,
            base_price,
        )
        raise BookingError(
            ErrorCode.INVALID_COMMISSION_RULE,
            details={"rule_id": rule.rule_id, "base_price": str(base_price)},
        )

    return CommissionQuote(
        base_price=round_money(base_price, currency),
        host_commission=round_money(host_commission, currency),
        client_commission=round_money(client_commission, currency),
        host_receives=host_receives,
        client_pays=round_money(base_price + client_commission, currency),
        currency=currency,
        rule_id=rule.rule_id,
        host_rate=rule.host_rate,
        host_fixed=rule.host_fixed,
        client_rate=rule.client_rate,
        client_fixed=rule.client_fixed,
    )


def quote_stay(
    nightly_price: Decimal,
    nights: int,
    additional_fees: Decimal,
    rule: CommissionRule,
    currency: str = "EUR",
) -> CommissionQuote:
    """Quote a whole stay: nightly price times nights plus fees."""
    return quote(nightly_price * nights + additional_fees, rule, currency)


def base_price_from_client_pays(
    client_pays: Decimal,
    rule: CommissionRule,
    currency: str = "EUR",
) -> Decimal:
    """Recover the base price a guest total was quoted from."""
    base = (client_pays - rule.client_fixed) / (1 + rule.client_rate)
    return round_money(base, currency)


class CommissionService:
    """Persistence-backed commission rule resolution and quoting."""

    TABLE = "commission-rules"

    def __init__(
        self,
        db: "DynamoDBService",
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.db = db
        self._clock = clock or (lambda: dt.datetime.now(dt.UTC))

    def list_rules(self, active_only: bool = False) -> list[CommissionRule]:
        rules = [item_to_rule(item) for item in self.db.scan(self.TABLE)]
        if active_only:
            rules = [r for r in rules if r.is_active]
        return rules

    def get_rule(self, rule_id: str) -> CommissionRule | None:
        item = self.db.get_item(self.TABLE, {"rule_id": rule_id})
        return item_to_rule(item) if item else None

    def save_rule(self, rule: CommissionRule) -> CommissionRule:
        """Store a rule, stamping ``activated_at`` on active rules that lack it."""
        if rule.is_active and rule.activated_at is None:
            rule = rule.model_copy(update={"activated_at": self._clock()})
        self.db.put_item(self.TABLE, rule_to_item(rule))
        logger.info(
            "Commission rule %s saved (scope=%s, category=%s, active=%s)",
            rule.rule_id,
            rule.scope.value,
            rule.category_id,
            rule.is_active,
        )
        return rule

    def create_rule(
        self,
        *,
        host_rate: Decimal,
        host_fixed: Decimal = Decimal("0"),
        client_rate: Decimal = Decimal("0"),
        client_fixed: Decimal = Decimal("0"),
        category_id: str | None = None,
    ) -> CommissionRule:
        """Create and activate a new rule (CATEGORY-scoped when a category is given)."""
        rule = CommissionRule(
            rule_id=f"COM-{uuid.uuid4().hex[:8].upper()}",
            scope=CommissionScope.CATEGORY if category_id else CommissionScope.GLOBAL,
            category_id=category_id,
            host_rate=host_rate,
            host_fixed=host_fixed,
            client_rate=client_rate,
            client_fixed=client_fixed,
            is_active=True,
            activated_at=self._clock(),
        )
        return self.save_rule(rule)

    def set_active(self, rule_id: str, active: bool) -> CommissionRule | None:
        """Activate or deactivate a rule; activation refreshes ``activated_at``."""
        rule = self.get_rule(rule_id)
        if rule is None:
            return None
        update: dict[str, object] = {"is_active": active}
        if active:
            update["activated_at"] = self._clock()
        return self.save_rule(rule.model_copy(update=update))

    def resolve_rule(self, category_id: str | None) -> CommissionRule:
        """Pick the rule applying to a listing category.

        Active rules only. A CATEGORY rule for the category beats any GLOBAL
        rule; among equals the most recently activated wins. Falls back to a
        zero-commission rule when nothing is active.
        """
        candidates = [
            r
            for r in self.list_rules(active_only=True)
            if r.scope == CommissionScope.GLOBAL
            or (r.scope == CommissionScope.CATEGORY and r.category_id == category_id)
        ]
        if not candidates:
            logger.warning("No active commission rule for category %s, using zero rule", category_id)
            return CommissionRule.zero()

        epoch = dt.datetime.min.replace(tzinfo=dt.UTC)

        def rank(rule: CommissionRule) -> tuple[int, dt.datetime]:
            specificity = 1 if rule.scope == CommissionScope.CATEGORY else 0
            return specificity, rule.activated_at or epoch

        return max(candidates, key=rank)

    def quote_for_listing(self, listing: Listing, base_price: Decimal) -> CommissionQuote:
        """Quote a base price with the rule resolved for the listing's category."""
        return quote(base_price, self.resolve_rule(listing.category_id), listing.currency)
