"""Booking service: reservations, listings and blocked dates.

Drives a reservation through WAITING -> RESERVED -> CHECKIN -> CHECKOUT or
WAITING -> REFUSED. Every status change is a single DynamoDB transaction
containing the compare-and-swap write of the reservation, its history
entry and, where money becomes owed, the ledger credit.

Operations whose outcome depends on a conflict check (creating a request,
reserving, blocking dates) also bump the listing's serialization token in
the same transaction, so two of them can never interleave on one listing.
"""

import datetime as dt
import uuid
from collections.abc import Callable
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from rentcore.config import Settings, get_settings
from rentcore.models import (
    BlockedRange,
    BookingError,
    CommissionQuote,
    ErrorCode,
    LedgerEntryKind,
    Listing,
    PaymentStatus,
    Reservation,
    ReservationCreate,
    ReservationStatus,
    TransitionRecord,
)
from rentcore.utils.logging import get_logger, log_transition

from .commission import CommissionService
from .conflicts import ConflictChecker, find_conflict, validate_range
from .history import history_op, read_history
from .identity import SYSTEM_ACTOR, IdentityService
from .notifications import Notifier, safe_alert, safe_notify
from .payment_gateway import PaymentGateway, PaymentGatewayError
from .records import (
    blocked_range_to_item,
    item_to_listing,
    item_to_reservation,
    listing_to_item,
    reservation_to_item,
)
from .state_machine import RESERVATION_TRANSITIONS, ensure_transition

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService
    from .ledger import SettlementLedger

logger = get_logger(__name__)

# Step result: the reservation to return, or None when the write lost a race
StepResult = Reservation | None


class BookingService:
    """Service for reservation lifecycle management."""

    LISTINGS_TABLE = "listings"
    RESERVATIONS_TABLE = "reservations"
    BLOCKED_RANGES_TABLE = "blocked-ranges"

    # Fields a listing edit may change; the token and archive flag have
    # their own writers
    EDITABLE_LISTING_FIELDS = ("owner_ids", "category_id", "base_price", "currency", "max_guests")

    def __init__(
        self,
        db: "DynamoDBService",
        commission: CommissionService,
        ledger: "SettlementLedger",
        identity: IdentityService,
        payment_gateway: PaymentGateway,
        notifier: Notifier,
        settings: Settings | None = None,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        """Initialize booking service.

        Args:
            db: DynamoDB service instance
            commission: Resolves rules and quotes prices
            ledger: Builds ledger credits for RESERVED and CHECKOUT
            identity: Decides who is an administrator
            payment_gateway: Releases funds holds on refusal
            notifier: Receives reservation events
            settings: Runtime settings (defaults to environment)
            clock: Callable returning the current UTC time (for tests)
        """
        self.db = db
        self.commission = commission
        self.ledger = ledger
        self.identity = identity
        self.payment_gateway = payment_gateway
        self.notifier = notifier
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: dt.datetime.now(dt.UTC))
        self.conflicts = ConflictChecker(db, today=lambda: self._clock().date())

    # Listings

    def save_listing(self, listing: Listing) -> Listing:
        """Create a listing, or apply an edit to an existing one.

        The caller's ``version`` and ``is_archived`` are never written over a
        stored listing: the token only moves through conditional bumps and
        archiving goes through archive_listing.

        Returns:
            The listing as stored
        """
        created = listing.model_copy(update={"version": 0})
        if self.db.put_item(
            self.LISTINGS_TABLE,
            listing_to_item(created),
            condition_expression="attribute_not_exists(listing_id)",
        ):
            logger.info("Listing %s created", listing.listing_id)
            return created

        fields = listing_to_item(listing)
        assignments: list[str] = []
        removals: list[str] = []
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        for i, field in enumerate(self.EDITABLE_LISTING_FIELDS):
            names[f"#f{i}"] = field
            if field in fields:
                assignments.append(f"#f{i} = :f{i}")
                values[f":f{i}"] = fields[field]
            else:
                removals.append(f"#f{i}")
        expression = "SET " + ", ".join(assignments)
        if removals:
            expression += " REMOVE " + ", ".join(removals)
        stored = self.db.update_item(
            self.LISTINGS_TABLE,
            {"listing_id": listing.listing_id},
            expression,
            values,
            expression_attribute_names=names,
            condition_expression="attribute_exists(listing_id)",
        )
        if stored is None:
            # Deleted between the two writes
            raise BookingError(
                ErrorCode.LISTING_NOT_FOUND, details={"listing_id": listing.listing_id}
            )
        logger.info("Listing %s updated", listing.listing_id)
        return item_to_listing(stored)

    def get_listing(self, listing_id: str) -> Listing:
        item = self.db.get_item(self.LISTINGS_TABLE, {"listing_id": listing_id})
        if not item:
            raise BookingError(ErrorCode.LISTING_NOT_FOUND, details={"listing_id": listing_id})
        return item_to_listing(item)

    def archive_listing(self, listing_id: str, actor_id: str) -> Listing:
        """Soft-archive a listing so it accepts no new requests.

        The flag is set together with a bump of the listing token, so a
        booking request that read the listing before the archive fails its
        transaction and re-reads.
        """
        for attempt in range(1, self.settings.max_write_attempts + 1):
            listing = self.get_listing(listing_id)
            self._require_owner_or_admin(listing, actor_id)
            if listing.is_archived:
                return listing
            committed = self.db.transact_write(
                [
                    self.db.version_bump_op(
                        self.LISTINGS_TABLE,
                        {"listing_id": listing_id},
                        listing.version,
                        also_set={"is_archived": True},
                    )
                ]
            )
            if committed:
                logger.info("Listing %s archived by %s", listing_id, actor_id)
                return listing.model_copy(
                    update={"is_archived": True, "version": listing.version + 1}
                )
            logger.warning("Archiving listing %s raced (attempt %d)", listing_id, attempt)

        raise BookingError(ErrorCode.STALE_STATE, details={"listing_id": listing_id})

    def _listing_token_op(self, listing: Listing) -> dict[str, Any]:
        return self.db.version_bump_op(
            self.LISTINGS_TABLE, {"listing_id": listing.listing_id}, listing.version
        )

    # Authorization

    def _require_owner_or_admin(self, listing: Listing, actor_id: str) -> None:
        if listing.is_owner(actor_id) or self.identity.is_admin(actor_id):
            return
        raise BookingError(
            ErrorCode.UNAUTHORIZED,
            details={"actor_id": actor_id, "listing_id": listing.listing_id},
        )

    def _require_guest_or_admin(self, reservation: Reservation, actor_id: str) -> None:
        if reservation.guest_id == actor_id or self.identity.is_admin(actor_id):
            return
        raise BookingError(
            ErrorCode.UNAUTHORIZED,
            details={"actor_id": actor_id, "reservation_id": reservation.reservation_id},
        )

    # Reads

    def get_reservation(self, reservation_id: str) -> Reservation:
        item = self.db.get_item(self.RESERVATIONS_TABLE, {"reservation_id": reservation_id})
        if not item:
            raise BookingError(
                ErrorCode.RESERVATION_NOT_FOUND, details={"reservation_id": reservation_id}
            )
        return item_to_reservation(item)

    def list_by_status(self, status: ReservationStatus) -> list[Reservation]:
        items = self.db.query_by_gsi(self.RESERVATIONS_TABLE, "status-index", "status", status.value)
        return [item_to_reservation(item) for item in items]

    def list_for_listing(self, listing_id: str) -> list[Reservation]:
        items = self.db.query_by_gsi(
            self.RESERVATIONS_TABLE, "listing_id-index", "listing_id", listing_id
        )
        return sorted((item_to_reservation(i) for i in items), key=lambda r: r.arrival_date)

    def get_history(self, reservation_id: str) -> list[TransitionRecord]:
        self.get_reservation(reservation_id)
        return read_history(self.db, reservation_id)

    # Writes

    def _generate_reservation_id(self, now: dt.datetime) -> str:
        """Generate a unique reservation ID like RES-2026-ABC12345."""
        return f"RES-{now.year}-{uuid.uuid4().hex[:8].upper()}"

    def _commit(
        self,
        current: Reservation,
        updated: Reservation,
        actor_id: str,
        reason: str | None = None,
        extra_ops: list[dict[str, Any]] | None = None,
    ) -> bool:
        """Write ``updated`` if ``current`` is still the stored version.

        Appends a history entry when the status changes.
        """
        ops = [
            self.db.put_op(
                self.RESERVATIONS_TABLE,
                reservation_to_item(updated),
                condition_expression="#v = :v AND #s = :s",
                expression_attribute_names={"#v": "version", "#s": "status"},
                expression_attribute_values={":v": current.version, ":s": current.status.value},
            )
        ]
        if updated.status != current.status:
            ops.append(
                history_op(
                    self.db,
                    subject_id=updated.reservation_id,
                    version=updated.version,
                    previous_status=current.status.value,
                    new_status=updated.status.value,
                    actor_id=actor_id,
                    occurred_at=updated.updated_at,
                    reason=reason,
                )
            )
        ops.extend(extra_ops or [])
        return self.db.transact_write(ops)

    def _next(self, current: Reservation, **changes: Any) -> Reservation:
        return current.model_copy(
            update={**changes, "updated_at": self._clock(), "version": current.version + 1}
        )

    def _retrying(
        self,
        reservation_id: str,
        target: ReservationStatus | None,
        actor_id: str,
        step: Callable[[Reservation], StepResult],
        *,
        idempotent_status: ReservationStatus | None = None,
    ) -> Reservation:
        """Run ``step`` against fresh reads until it commits.

        The status seen on the first read is the one the caller acted on.
        If a retry finds a different status the operation raised
        STALE_STATE, unless the record already sits in ``idempotent_status``.
        """
        first_status: ReservationStatus | None = None
        for attempt in range(1, self.settings.max_write_attempts + 1):
            reservation = self.get_reservation(reservation_id)
            if idempotent_status is not None and reservation.status == idempotent_status:
                return reservation
            if first_status is None:
                first_status = reservation.status
            elif reservation.status != first_status:
                log_transition(
                    logger,
                    "reservation",
                    reservation_id,
                    previous_status=first_status.value,
                    new_status=target.value if target else None,
                    actor_id=actor_id,
                    result="stale",
                )
                raise BookingError(
                    ErrorCode.STALE_STATE,
                    details={
                        "reservation_id": reservation_id,
                        "status": reservation.status.value,
                    },
                )

            result = step(reservation)
            if result is not None:
                return result
            logger.warning(
                "Reservation %s write conflicted (attempt %d), retrying", reservation_id, attempt
            )

        raise BookingError(ErrorCode.STALE_STATE, details={"reservation_id": reservation_id})

    def _after_transition(
        self,
        before: Reservation,
        after: Reservation,
        actor_id: str,
        event: str,
        reason: str | None = None,
    ) -> None:
        log_transition(
            logger,
            "reservation",
            after.reservation_id,
            previous_status=before.status.value,
            new_status=after.status.value,
            actor_id=actor_id,
            reason=reason,
            listing_id=after.listing_id,
        )
        safe_notify(
            self.notifier,
            event,
            {
                "reservation_id": after.reservation_id,
                "listing_id": after.listing_id,
                "guest_id": after.guest_id,
                "host_id": after.host_id,
                "status": after.status.value,
            },
        )

    # Booking requests

    def request_booking(self, data: ReservationCreate) -> Reservation:
        """Create a WAITING reservation if the dates are free.

        Args:
            data: Listing, guest, dates, headcount and extra fees

        Returns:
            The new reservation with its commission snapshot

        Raises:
            BookingError: INVALID_RANGE, LISTING_NOT_FOUND, LISTING_ARCHIVED,
                MAX_GUESTS_EXCEEDED, DATES_UNAVAILABLE,
                INVALID_COMMISSION_RULE or STALE_STATE
        """
        validate_range(data.arrival_date, data.departure_date)
        nights = (data.departure_date - data.arrival_date).days

        for attempt in range(1, self.settings.max_write_attempts + 1):
            listing = self.get_listing(data.listing_id)
            if listing.is_archived:
                raise BookingError(
                    ErrorCode.LISTING_ARCHIVED, details={"listing_id": listing.listing_id}
                )
            if listing.max_guests is not None and data.headcount > listing.max_guests:
                raise BookingError(
                    ErrorCode.MAX_GUESTS_EXCEEDED,
                    details={"headcount": str(data.headcount), "max_guests": str(listing.max_guests)},
                )

            self._raise_on_conflict(listing.listing_id, data.arrival_date, data.departure_date)

            base_price = listing.base_price * nights + data.additional_fees
            quote = self.commission.quote_for_listing(listing, base_price)
            now = self._clock()
            reservation = Reservation(
                reservation_id=self._generate_reservation_id(now),
                listing_id=listing.listing_id,
                host_id=listing.payout_host_id,
                guest_id=data.guest_id,
                headcount=data.headcount,
                arrival_date=data.arrival_date,
                departure_date=data.departure_date,
                nights=nights,
                base_price=quote.base_price,
                commission=quote,
                guest_paid_total=quote.client_pays,
                host_receivable=quote.host_receives,
                currency=listing.currency,
                created_at=now,
                updated_at=now,
            )

            committed = self.db.transact_write(
                [
                    self.db.put_op(
                        self.RESERVATIONS_TABLE,
                        reservation_to_item(reservation),
                        condition_expression="attribute_not_exists(reservation_id)",
                    ),
                    self._listing_token_op(listing),
                    history_op(
                        self.db,
                        subject_id=reservation.reservation_id,
                        version=reservation.version,
                        previous_status=None,
                        new_status=reservation.status.value,
                        actor_id=data.guest_id,
                        occurred_at=now,
                    ),
                ]
            )
            if committed:
                log_transition(
                    logger,
                    "reservation",
                    reservation.reservation_id,
                    previous_status=None,
                    new_status=reservation.status.value,
                    actor_id=data.guest_id,
                    listing_id=listing.listing_id,
                    guest_paid_total=str(reservation.guest_paid_total),
                )
                safe_notify(
                    self.notifier,
                    "reservation.requested",
                    {
                        "reservation_id": reservation.reservation_id,
                        "listing_id": listing.listing_id,
                        "guest_id": data.guest_id,
                        "host_id": reservation.host_id,
                    },
                )
                return reservation

            logger.warning(
                "Booking request on listing %s raced (attempt %d), re-checking",
                listing.listing_id,
                attempt,
            )

        raise BookingError(ErrorCode.STALE_STATE, details={"listing_id": data.listing_id})

    def _raise_on_conflict(self, listing_id: str, start: dt.date, end: dt.date) -> None:
        conflict = find_conflict(
            start,
            end,
            self.conflicts.holding_reservations(listing_id),
            self.conflicts.blocked_ranges(listing_id),
        )
        if conflict is not None:
            reason, conflicting_id = conflict
            raise BookingError(
                ErrorCode.DATES_UNAVAILABLE,
                details={
                    "listing_id": listing_id,
                    "conflict_reason": reason.value,
                    "conflicting_id": conflicting_id,
                },
            )

    def _reserve_step(
        self,
        reservation: Reservation,
        actor_id: str,
        reason: str,
        **changes: Any,
    ) -> StepResult:
        """WAITING -> RESERVED under the listing token, crediting COMMITTED.

        The stay's hold row is written in the same transaction.

        Raises:
            BookingError: DATES_UNAVAILABLE if the stay now conflicts
        """
        ensure_transition(RESERVATION_TRANSITIONS, reservation.status, ReservationStatus.RESERVED)
        listing = self.get_listing(reservation.listing_id)
        self._raise_on_conflict(
            listing.listing_id, reservation.arrival_date, reservation.departure_date
        )
        updated = self._next(reservation, status=ReservationStatus.RESERVED, **changes)
        extra = [self._listing_token_op(listing), self.conflicts.hold_put_op(updated)]
        extra.extend(self.ledger.credit_ops(updated, LedgerEntryKind.COMMITTED, updated.updated_at))
        if not self._commit(reservation, updated, actor_id, reason, extra):
            return None
        self._after_transition(reservation, updated, actor_id, "reservation.reserved", reason)
        return updated

    def _refuse_step(
        self,
        reservation: Reservation,
        actor_id: str,
        reason: str,
        **changes: Any,
    ) -> StepResult:
        """WAITING -> REFUSED, then release the funds hold."""
        ensure_transition(RESERVATION_TRANSITIONS, reservation.status, ReservationStatus.REFUSED)
        updated = self._next(
            reservation,
            **{
                **changes,
                "status": ReservationStatus.REFUSED,
                "payment_status": PaymentStatus.RELEASED,
                "refusal_reason": reason,
            },
        )
        if not self._commit(reservation, updated, actor_id, reason):
            return None
        self._after_transition(reservation, updated, actor_id, "reservation.refused", reason)
        self._release_hold(reservation.model_copy(update=changes))
        return updated

    def _release_hold(self, reservation: Reservation) -> None:
        try:
            self.payment_gateway.release_hold(reservation)
        except PaymentGatewayError as e:
            logger.error(
                "Failed to release payment hold for %s: %s",
                reservation.reservation_id,
                e,
                extra={"reservation_id": reservation.reservation_id},
            )
            safe_alert(
                self.notifier,
                "Payment hold release failed",
                {"reservation_id": reservation.reservation_id, "error": str(e)},
            )

    def approve_booking(self, reservation_id: str, actor_id: str) -> Reservation:
        """Record host approval; reserves the stay if payment already arrived.

        Raises:
            BookingError: UNAUTHORIZED, ILLEGAL_TRANSITION, DATES_UNAVAILABLE
                (reservation stays WAITING) or STALE_STATE
        """

        def step(reservation: Reservation) -> StepResult:
            self._require_owner_or_admin(self.get_listing(reservation.listing_id), actor_id)
            ensure_transition(
                RESERVATION_TRANSITIONS, reservation.status, ReservationStatus.RESERVED
            )
            if reservation.payment_status == PaymentStatus.CLIENT_PAID:
                return self._reserve_step(
                    reservation, actor_id, "host_approved", host_approved=True
                )
            if reservation.host_approved:
                return reservation
            updated = self._next(reservation, host_approved=True)
            if not self._commit(reservation, updated, actor_id):
                return None
            logger.info("Reservation %s approved by %s", reservation_id, actor_id)
            safe_notify(
                self.notifier,
                "reservation.approved",
                {"reservation_id": reservation_id, "guest_id": reservation.guest_id},
            )
            return updated

        return self._retrying(reservation_id, ReservationStatus.RESERVED, actor_id, step)

    def confirm_payment(self, reservation_id: str, payment_reference: str) -> Reservation:
        """Record that the guest's payment cleared.

        If the host already approved, the stay is reserved. Should the dates
        have been taken meanwhile, the reservation is refused, the hold is
        released and DATES_UNAVAILABLE is raised.

        Raises:
            BookingError: ILLEGAL_TRANSITION, DATES_UNAVAILABLE or STALE_STATE
        """

        def step(reservation: Reservation) -> StepResult:
            if (
                reservation.payment_status == PaymentStatus.CLIENT_PAID
                and reservation.payment_reference == payment_reference
            ):
                return reservation
            if reservation.status == ReservationStatus.REFUSED:
                # Money arrived for a stay that no longer exists
                self._release_hold(
                    reservation.model_copy(
                        update={
                            "payment_reference": payment_reference,
                            "payment_status": PaymentStatus.CLIENT_PAID,
                        }
                    )
                )
            ensure_transition(
                RESERVATION_TRANSITIONS, reservation.status, ReservationStatus.RESERVED
            )
            paid = {
                "payment_status": PaymentStatus.CLIENT_PAID,
                "payment_reference": payment_reference,
            }
            if reservation.host_approved:
                try:
                    return self._reserve_step(reservation, SYSTEM_ACTOR, "payment_confirmed", **paid)
                except BookingError as e:
                    if e.code != ErrorCode.DATES_UNAVAILABLE:
                        raise
                    refused = self._refuse_step(
                        reservation, SYSTEM_ACTOR, "dates_unavailable", **paid
                    )
                    if refused is None:
                        return None
                    raise
            updated = self._next(reservation, **paid)
            if not self._commit(reservation, updated, SYSTEM_ACTOR):
                return None
            logger.info("Payment confirmed for reservation %s", reservation_id)
            safe_notify(
                self.notifier,
                "reservation.payment_confirmed",
                {"reservation_id": reservation_id, "host_id": reservation.host_id},
            )
            return updated

        return self._retrying(reservation_id, ReservationStatus.RESERVED, SYSTEM_ACTOR, step)

    def fail_payment(self, reservation_id: str, reason: str) -> Reservation:
        """Mark a WAITING reservation's payment as failed; status is unchanged."""

        def step(reservation: Reservation) -> StepResult:
            if reservation.status != ReservationStatus.WAITING or (
                reservation.payment_status == PaymentStatus.CLIENT_PAID
            ):
                raise BookingError(
                    ErrorCode.ILLEGAL_TRANSITION,
                    details={
                        "current_status": reservation.status.value,
                        "payment_status": reservation.payment_status.value,
                    },
                )
            if reservation.payment_status == PaymentStatus.FAILED:
                return reservation
            updated = self._next(reservation, payment_status=PaymentStatus.FAILED)
            if not self._commit(reservation, updated, SYSTEM_ACTOR):
                return None
            logger.warning("Payment failed for reservation %s: %s", reservation_id, reason)
            safe_notify(
                self.notifier,
                "reservation.payment_failed",
                {"reservation_id": reservation_id, "guest_id": reservation.guest_id, "reason": reason},
            )
            return updated

        return self._retrying(reservation_id, None, SYSTEM_ACTOR, step)

    def reject_booking(self, reservation_id: str, actor_id: str, reason: str) -> Reservation:
        """Host refuses a WAITING request."""

        def step(reservation: Reservation) -> StepResult:
            self._require_owner_or_admin(self.get_listing(reservation.listing_id), actor_id)
            return self._refuse_step(reservation, actor_id, reason)

        return self._retrying(reservation_id, ReservationStatus.REFUSED, actor_id, step)

    def cancel_booking(
        self, reservation_id: str, actor_id: str, reason: str | None = None
    ) -> Reservation:
        """Guest withdraws a WAITING request."""

        def step(reservation: Reservation) -> StepResult:
            self._require_guest_or_admin(reservation, actor_id)
            return self._refuse_step(reservation, actor_id, reason or "cancelled_by_guest")

        return self._retrying(reservation_id, ReservationStatus.REFUSED, actor_id, step)

    def is_payment_overdue(self, reservation: Reservation, now: dt.datetime) -> bool:
        """Whether a WAITING reservation is still unpaid past the payment timeout."""
        deadline = reservation.created_at + dt.timedelta(hours=self.settings.payment_timeout_hours)
        return (
            reservation.status == ReservationStatus.WAITING
            and reservation.payment_status != PaymentStatus.CLIENT_PAID
            and deadline <= now
        )

    def expire(self, reservation: Reservation, now: dt.datetime) -> Reservation | None:
        """Refuse an overdue reservation.

        Returns None when it does not qualify or the write lost a race.
        """
        if not self.is_payment_overdue(reservation, now):
            return None
        return self._refuse_step(reservation, SYSTEM_ACTOR, "payment_timeout")

    # Stay progression

    def mark_checkin(self, reservation_id: str, actor_id: str) -> Reservation:
        """RESERVED -> CHECKIN on or after the arrival date.

        Raises:
            BookingError: UNAUTHORIZED, ILLEGAL_TRANSITION, TOO_EARLY or STALE_STATE
        """

        def step(reservation: Reservation) -> StepResult:
            self._require_owner_or_admin(self.get_listing(reservation.listing_id), actor_id)
            ensure_transition(
                RESERVATION_TRANSITIONS, reservation.status, ReservationStatus.CHECKIN
            )
            today = self._clock().date()
            if today < reservation.arrival_date:
                raise BookingError(
                    ErrorCode.TOO_EARLY,
                    details={"allowed_from": reservation.arrival_date.isoformat()},
                )
            updated = self._next(reservation, status=ReservationStatus.CHECKIN)
            if not self._commit(reservation, updated, actor_id):
                return None
            self._after_transition(reservation, updated, actor_id, "reservation.checkin")
            return updated

        return self._retrying(reservation_id, ReservationStatus.CHECKIN, actor_id, step)

    def _checkout_step(
        self,
        reservation: Reservation,
        actor_id: str,
        reason: str | None,
        today: dt.date,
    ) -> StepResult:
        ensure_transition(RESERVATION_TRANSITIONS, reservation.status, ReservationStatus.CHECKOUT)
        if today < reservation.departure_date:
            raise BookingError(
                ErrorCode.TOO_EARLY,
                details={"allowed_from": reservation.departure_date.isoformat()},
            )
        updated = self._next(reservation, status=ReservationStatus.CHECKOUT)
        extra = [self.conflicts.hold_delete_op(updated)]
        extra.extend(self.ledger.credit_ops(updated, LedgerEntryKind.SETTLED, updated.updated_at))
        if not self._commit(reservation, updated, actor_id, reason, extra):
            return None
        self._after_transition(reservation, updated, actor_id, "reservation.checkout", reason)
        return updated

    def mark_checkout(self, reservation_id: str, actor_id: str) -> Reservation:
        """CHECKIN -> CHECKOUT on or after the departure date, crediting SETTLED.

        A reservation already in CHECKOUT is returned unchanged.

        Raises:
            BookingError: UNAUTHORIZED, ILLEGAL_TRANSITION, TOO_EARLY or STALE_STATE
        """
        reservation = self.get_reservation(reservation_id)
        self._require_owner_or_admin(self.get_listing(reservation.listing_id), actor_id)

        def step(current: Reservation) -> StepResult:
            return self._checkout_step(current, actor_id, None, self._clock().date())

        return self._retrying(
            reservation_id,
            ReservationStatus.CHECKOUT,
            actor_id,
            step,
            idempotent_status=ReservationStatus.CHECKOUT,
        )

    def is_checkout_due(self, reservation: Reservation, today: dt.date) -> bool:
        return (
            reservation.status == ReservationStatus.CHECKIN
            and reservation.departure_date <= today
        )

    def auto_checkout(self, reservation: Reservation, today: dt.date) -> Reservation | None:
        """Sweep variant of checkout; None if not due or the write lost a race."""
        if not self.is_checkout_due(reservation, today):
            return None
        return self._checkout_step(reservation, SYSTEM_ACTOR, "auto_checkout", today)

    # Blocked dates

    def block_dates(
        self,
        listing_id: str,
        actor_id: str,
        start: dt.date,
        end: dt.date,
        title: str,
        reason: str | None = None,
    ) -> BlockedRange:
        """Make ``[start, end)`` unavailable for new stays.

        Raises:
            BookingError: INVALID_RANGE, LISTING_NOT_FOUND, UNAUTHORIZED,
                DATES_UNAVAILABLE (overlaps a reserved stay or another block)
                or STALE_STATE
        """
        validate_range(start, end)
        for attempt in range(1, self.settings.max_write_attempts + 1):
            listing = self.get_listing(listing_id)
            self._require_owner_or_admin(listing, actor_id)
            self._raise_on_conflict(listing_id, start, end)

            block = BlockedRange(
                listing_id=listing_id,
                block_id=f"BLK-{uuid.uuid4().hex[:8].upper()}",
                start_date=start,
                end_date=end,
                title=title,
                reason=reason,
                created_by=actor_id,
                created_at=self._clock(),
            )
            committed = self.db.transact_write(
                [
                    self.db.put_op(
                        self.BLOCKED_RANGES_TABLE,
                        blocked_range_to_item(block),
                        condition_expression="attribute_not_exists(block_id)",
                    ),
                    self._listing_token_op(listing),
                ]
            )
            if committed:
                logger.info(
                    "Dates %s..%s blocked on listing %s by %s",
                    start,
                    end,
                    listing_id,
                    actor_id,
                    extra={"listing_id": listing_id, "block_id": block.block_id},
                )
                return block
            logger.warning(
                "Blocking dates on listing %s raced (attempt %d), re-checking", listing_id, attempt
            )

        raise BookingError(ErrorCode.STALE_STATE, details={"listing_id": listing_id})

    def unblock_dates(self, listing_id: str, block_id: str, actor_id: str) -> bool:
        """Remove a blocked range.

        Returns:
            True if a block was removed, False if it did not exist
        """
        listing = self.get_listing(listing_id)
        self._require_owner_or_admin(listing, actor_id)
        existing = self.db.get_item(
            self.BLOCKED_RANGES_TABLE, {"listing_id": listing_id, "block_id": block_id}
        )
        if not existing:
            return False
        self.db.delete_item(
            self.BLOCKED_RANGES_TABLE, {"listing_id": listing_id, "block_id": block_id}
        )
        logger.info("Block %s removed from listing %s by %s", block_id, listing_id, actor_id)
        return True

    def quote_price(self, listing_id: str, base_price: Decimal) -> CommissionQuote:
        """Quote a base price with the listing's commission rule."""
        return self.commission.quote_for_listing(self.get_listing(listing_id), base_price)
