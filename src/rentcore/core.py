"""ReservationCore: the programmatic entry point of the reservation core.

Wires the services together and turns every business-rule failure into a
typed ``Outcome`` instead of an exception. Infrastructure errors (AWS
client errors, SSM failures) still propagate.

Usage:
    core = ReservationCore()
    outcome = core.request_booking("LST-1", "guest-1", start, end, headcount=2)
    if not outcome.success:
        print(outcome.error.message)
"""

import datetime as dt
from collections.abc import Callable
from decimal import Decimal
from typing import Any, TypeVar

from pydantic import ValidationError

from rentcore.config import Settings, get_settings
from rentcore.models import (
    AlternativeDates,
    AvailabilityResult,
    BlockedRange,
    BookingError,
    CommissionQuote,
    CommissionRule,
    ErrorCode,
    HostBalance,
    Listing,
    Outcome,
    PayoutAccount,
    PayoutMethod,
    Reservation,
    ReservationCreate,
    SweepReport,
    TransitionRecord,
    WithdrawalRequest,
    WithdrawalStats,
    WithdrawalTier,
)
from rentcore.models.errors import CONFIGURATION_ERRORS
from rentcore.services import sweeps
from rentcore.services.booking import BookingService
from rentcore.services.commission import CommissionService
from rentcore.services.dynamodb import DynamoDBService, get_dynamodb_service
from rentcore.services.identity import IdentityService, StaticIdentityService
from rentcore.services.ledger import SettlementLedger
from rentcore.services.notifications import LoggingNotifier, Notifier, safe_alert
from rentcore.services.payment_gateway import PaymentGateway, get_payment_gateway
from rentcore.services.webhook_handler import PaymentWebhookHandler
from rentcore.utils.logging import correlation_scope, get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class ReservationCore:
    """Facade over booking, commission and settlement services."""

    def __init__(
        self,
        db: DynamoDBService | None = None,
        identity: IdentityService | None = None,
        payment_gateway: PaymentGateway | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        """Initialize the core.

        Args:
            db: DynamoDB service (defaults to the shared instance)
            identity: Admin lookup (defaults to configured admin IDs)
            payment_gateway: Funds hold release (defaults to Stripe)
            notifier: Event sink (defaults to the application log)
            settings: Runtime settings (defaults to environment)
            clock: Callable returning the current UTC time (for tests)
        """
        self.settings = settings or get_settings()
        self.db = db or get_dynamodb_service()
        self.identity = identity or StaticIdentityService(self.settings.admin_ids)
        self.notifier = notifier or LoggingNotifier()
        self._clock = clock or (lambda: dt.datetime.now(dt.UTC))
        self.commission = CommissionService(self.db, clock=self._clock)
        self.ledger = SettlementLedger(
            self.db, self.identity, self.notifier, settings=self.settings, clock=self._clock
        )
        self.booking = BookingService(
            self.db,
            self.commission,
            self.ledger,
            self.identity,
            payment_gateway or get_payment_gateway(),
            self.notifier,
            settings=self.settings,
            clock=self._clock,
        )
        self.webhooks = PaymentWebhookHandler(self.db, self.booking)

    def _run(self, operation: str, fn: Callable[[], T]) -> Outcome[T]:
        """Run ``fn`` and convert a BookingError into a failed Outcome."""
        with correlation_scope():
            try:
                return Outcome.ok(fn())
            except BookingError as e:
                if e.code in CONFIGURATION_ERRORS:
                    logger.error(
                        "%s failed on configuration error %s: %s",
                        operation,
                        e.code.name,
                        e.details,
                    )
                    safe_alert(
                        self.notifier,
                        f"{operation}: {e.message}",
                        {"error_code": e.code.value, **(e.details or {})},
                    )
                else:
                    logger.info(
                        "%s rejected: %s", operation, e.code.name, extra={"details": e.details}
                    )
                return Outcome.fail(e)

    # Listings and availability

    def save_listing(self, listing: Listing) -> Outcome[Listing]:
        return self._run("save_listing", lambda: self.booking.save_listing(listing))

    def archive_listing(self, listing_id: str, actor_id: str) -> Outcome[Listing]:
        return self._run(
            "archive_listing", lambda: self.booking.archive_listing(listing_id, actor_id)
        )

    def check_availability(
        self, listing_id: str, start: dt.date, end: dt.date
    ) -> Outcome[AvailabilityResult]:
        return self._run(
            "check_availability",
            lambda: self.booking.conflicts.is_available(listing_id, start, end),
        )

    def suggest_alternative_dates(
        self,
        listing_id: str,
        start: dt.date,
        end: dt.date,
        search_window_days: int = 14,
        max_suggestions: int = 3,
    ) -> Outcome[list[AlternativeDates]]:
        return self._run(
            "suggest_alternative_dates",
            lambda: self.booking.conflicts.suggest_alternative_dates(
                listing_id, start, end, search_window_days, max_suggestions
            ),
        )

    def block_dates(
        self,
        listing_id: str,
        actor_id: str,
        start: dt.date,
        end: dt.date,
        title: str,
        reason: str | None = None,
    ) -> Outcome[BlockedRange]:
        return self._run(
            "block_dates",
            lambda: self.booking.block_dates(listing_id, actor_id, start, end, title, reason),
        )

    def unblock_dates(self, listing_id: str, block_id: str, actor_id: str) -> Outcome[bool]:
        return self._run(
            "unblock_dates", lambda: self.booking.unblock_dates(listing_id, block_id, actor_id)
        )

    # Reservations

    def request_booking(
        self,
        listing_id: str,
        guest_id: str,
        start: dt.date,
        end: dt.date,
        headcount: int,
        additional_fees: Decimal = Decimal("0"),
    ) -> Outcome[Reservation]:
        def create() -> Reservation:
            try:
                data = ReservationCreate(
                    listing_id=listing_id,
                    guest_id=guest_id,
                    arrival_date=start,
                    departure_date=end,
                    headcount=headcount,
                    additional_fees=additional_fees,
                )
            except ValidationError as e:
                raise BookingError(
                    ErrorCode.INVALID_REQUEST,
                    details={
                        "fields": ",".join(
                            ".".join(str(p) for p in err["loc"]) for err in e.errors()
                        )
                    },
                ) from e
            return self.booking.request_booking(data)

        return self._run("request_booking", create)

    def get_reservation(self, reservation_id: str) -> Outcome[Reservation]:
        return self._run("get_reservation", lambda: self.booking.get_reservation(reservation_id))

    def approve_booking(self, reservation_id: str, actor_id: str) -> Outcome[Reservation]:
        return self._run(
            "approve_booking", lambda: self.booking.approve_booking(reservation_id, actor_id)
        )

    def reject_booking(
        self, reservation_id: str, actor_id: str, reason: str
    ) -> Outcome[Reservation]:
        return self._run(
            "reject_booking", lambda: self.booking.reject_booking(reservation_id, actor_id, reason)
        )

    def cancel_booking(
        self, reservation_id: str, actor_id: str, reason: str | None = None
    ) -> Outcome[Reservation]:
        return self._run(
            "cancel_booking", lambda: self.booking.cancel_booking(reservation_id, actor_id, reason)
        )

    def confirm_payment(self, reservation_id: str, payment_reference: str) -> Outcome[Reservation]:
        return self._run(
            "confirm_payment",
            lambda: self.booking.confirm_payment(reservation_id, payment_reference),
        )

    def fail_payment(self, reservation_id: str, reason: str) -> Outcome[Reservation]:
        return self._run("fail_payment", lambda: self.booking.fail_payment(reservation_id, reason))

    def mark_checkin(self, reservation_id: str, actor_id: str) -> Outcome[Reservation]:
        return self._run(
            "mark_checkin", lambda: self.booking.mark_checkin(reservation_id, actor_id)
        )

    def mark_checkout(self, reservation_id: str, actor_id: str) -> Outcome[Reservation]:
        return self._run(
            "mark_checkout", lambda: self.booking.mark_checkout(reservation_id, actor_id)
        )

    def get_history(self, reservation_id: str) -> Outcome[list[TransitionRecord]]:
        return self._run("get_history", lambda: self.booking.get_history(reservation_id))

    def handle_payment_event(self, event: dict[str, Any]) -> tuple[str, str | None]:
        """Apply a parsed Stripe event; see PaymentWebhookHandler."""
        return self.webhooks.handle_event(event)

    # Pricing

    def quote_price(self, listing_id: str, base_price: Decimal) -> Outcome[CommissionQuote]:
        return self._run("quote_price", lambda: self.booking.quote_price(listing_id, base_price))

    def save_commission_rule(self, rule: CommissionRule) -> Outcome[CommissionRule]:
        return self._run("save_commission_rule", lambda: self.commission.save_rule(rule))

    # Settlement

    def get_host_balance(self, host_id: str) -> Outcome[HostBalance]:
        return self._run("get_host_balance", lambda: self.ledger.compute_balance(host_id))

    def withdrawal_stats(self, host_id: str) -> Outcome[WithdrawalStats]:
        return self._run("withdrawal_stats", lambda: self.ledger.withdrawal_stats(host_id))

    def request_withdrawal(
        self,
        host_id: str,
        amount: Decimal,
        tier: WithdrawalTier,
        payout_method: PayoutMethod,
        payout_account_id: str | None = None,
        notes: str | None = None,
    ) -> Outcome[WithdrawalRequest]:
        return self._run(
            "request_withdrawal",
            lambda: self.ledger.request_withdrawal(
                host_id, amount, tier, payout_method, payout_account_id, notes
            ),
        )

    def validate_withdrawal_account(
        self, withdrawal_id: str, admin_id: str, admin_notes: str | None = None
    ) -> Outcome[WithdrawalRequest]:
        return self._run(
            "validate_withdrawal_account",
            lambda: self.ledger.validate_withdrawal_account(withdrawal_id, admin_id, admin_notes),
        )

    def approve_withdrawal(
        self, withdrawal_id: str, admin_id: str, admin_notes: str | None = None
    ) -> Outcome[WithdrawalRequest]:
        return self._run(
            "approve_withdrawal",
            lambda: self.ledger.approve_withdrawal(withdrawal_id, admin_id, admin_notes),
        )

    def complete_withdrawal(self, withdrawal_id: str, admin_id: str) -> Outcome[WithdrawalRequest]:
        return self._run(
            "complete_withdrawal",
            lambda: self.ledger.complete_withdrawal(withdrawal_id, admin_id),
        )

    def reject_withdrawal(
        self, withdrawal_id: str, admin_id: str, reason: str
    ) -> Outcome[WithdrawalRequest]:
        return self._run(
            "reject_withdrawal",
            lambda: self.ledger.reject_withdrawal(withdrawal_id, admin_id, reason),
        )

    def cancel_withdrawal(self, withdrawal_id: str, host_id: str) -> Outcome[WithdrawalRequest]:
        return self._run(
            "cancel_withdrawal", lambda: self.ledger.cancel_withdrawal(withdrawal_id, host_id)
        )

    def get_withdrawal_history(self, withdrawal_id: str) -> Outcome[list[TransitionRecord]]:
        return self._run(
            "get_withdrawal_history", lambda: self.ledger.get_history(withdrawal_id)
        )

    # Payout accounts

    def create_payout_account(
        self,
        host_id: str,
        method: PayoutMethod,
        account_holder_name: str,
        **details: str | None,
    ) -> Outcome[PayoutAccount]:
        return self._run(
            "create_payout_account",
            lambda: self.ledger.create_payout_account(
                host_id, method, account_holder_name, **details
            ),
        )

    def list_payout_accounts(self, host_id: str) -> Outcome[list[PayoutAccount]]:
        return self._run("list_payout_accounts", lambda: self.ledger.list_payout_accounts(host_id))

    def set_default_payout_account(self, host_id: str, account_id: str) -> Outcome[PayoutAccount]:
        return self._run(
            "set_default_payout_account",
            lambda: self.ledger.set_default_payout_account(host_id, account_id),
        )

    def validate_payout_account(self, account_id: str, admin_id: str) -> Outcome[PayoutAccount]:
        return self._run(
            "validate_payout_account",
            lambda: self.ledger.validate_payout_account(account_id, admin_id),
        )

    def delete_payout_account(self, host_id: str, account_id: str) -> Outcome[None]:
        return self._run(
            "delete_payout_account",
            lambda: self.ledger.delete_payout_account(host_id, account_id),
        )

    # Sweeps

    def expire_unpaid_reservations(self, now: dt.datetime | None = None) -> SweepReport:
        return sweeps.expire_unpaid_reservations(self.booking, now or self._clock())

    def auto_checkout(self, today: dt.date | None = None) -> SweepReport:
        return sweeps.auto_checkout(self.booking, today or self._clock().date())

