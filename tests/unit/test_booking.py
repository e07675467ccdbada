"""Unit tests for the booking state machine against mocked DynamoDB."""

import datetime as dt
from decimal import Decimal

import pytest

from rentcore.models import (
    BookingError,
    ConflictReason,
    ErrorCode,
    LedgerEntryKind,
    PaymentStatus,
    ReservationCreate,
    ReservationStatus,
)

HOST_ID = "host-1"
GUEST_ID = "guest-1"
ADMIN_ID = "admin-1"


@pytest.fixture
def waiting(core, listing, stay):
    """A fresh WAITING reservation for three nights."""
    outcome = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=2)
    assert outcome.success
    return outcome.value


@pytest.fixture
def reserved(core, waiting):
    """The WAITING reservation approved by the host and paid."""
    core.approve_booking(waiting.reservation_id, HOST_ID)
    outcome = core.confirm_payment(waiting.reservation_id, "pi_test_1")
    assert outcome.success
    return outcome.value


class TestRequestBooking:
    """Creating booking requests."""

    def test_creates_waiting_reservation_with_snapshot(self, core, waiting, listing):
        """The request is WAITING with the commission snapshot applied."""
        assert waiting.status == ReservationStatus.WAITING
        assert waiting.payment_status == PaymentStatus.PENDING
        assert waiting.host_id == HOST_ID
        assert waiting.nights == 3
        assert waiting.base_price == Decimal("300.00")
        assert waiting.host_receivable == Decimal("270.00")
        assert waiting.guest_paid_total == Decimal("321.00")
        assert waiting.commission.rule_id == "COM-GLOBAL"
        assert waiting.reservation_id.startswith("RES-2026-")

    def test_persisted_and_history_started(self, core, waiting):
        """The reservation is readable and its history starts at WAITING."""
        assert core.get_reservation(waiting.reservation_id).value == waiting

        history = core.get_history(waiting.reservation_id).value
        assert len(history) == 1
        assert history[0].previous_status is None
        assert history[0].new_status == "WAITING"
        assert history[0].actor_id == GUEST_ID

    def test_additional_fees_in_base_price(self, core, listing, stay):
        """Extra fees add to nightly price times nights."""
        outcome = core.request_booking(
            listing.listing_id, GUEST_ID, *stay, headcount=2, additional_fees=Decimal("40")
        )

        assert outcome.value.base_price == Decimal("340.00")

    def test_notifies_host(self, core, waiting, notifier):
        """A requested event is emitted."""
        assert "reservation.requested" in notifier.event_names()

    def test_invalid_range(self, core, listing):
        """Departure before arrival fails with INVALID_RANGE."""
        outcome = core.request_booking(
            listing.listing_id, GUEST_ID, dt.date(2026, 6, 10), dt.date(2026, 6, 10), headcount=1
        )
        assert outcome.error_code == ErrorCode.INVALID_RANGE

    def test_unknown_listing(self, core, stay):
        """Unknown listings fail with LISTING_NOT_FOUND."""
        outcome = core.request_booking("LST-NOPE", GUEST_ID, *stay, headcount=1)
        assert outcome.error_code == ErrorCode.LISTING_NOT_FOUND

    def test_archived_listing(self, core, listing, stay):
        """Archived listings accept no requests."""
        assert core.archive_listing(listing.listing_id, HOST_ID).success

        outcome = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=1)

        assert outcome.error_code == ErrorCode.LISTING_ARCHIVED

    def test_archive_requires_owner(self, core, listing):
        """Only owners and admins can archive."""
        outcome = core.archive_listing(listing.listing_id, "stranger")
        assert outcome.error_code == ErrorCode.UNAUTHORIZED

    def test_archive_bumps_listing_token(self, core, listing):
        """Archiving advances the token, so requests read before it must retry."""
        archived = core.archive_listing(listing.listing_id, HOST_ID).value

        assert archived.is_archived
        assert archived.version == listing.version + 1
        assert core.archive_listing(listing.listing_id, HOST_ID).value.version == archived.version

    def test_edit_keeps_token_and_archive_flag(self, core, waiting, listing):
        """Saving a stale copy updates its fields but not the token or archive flag."""
        archived = core.archive_listing(listing.listing_id, HOST_ID).value

        saved = core.save_listing(listing.model_copy(update={"base_price": Decimal("120.00")}))

        assert saved.success
        assert saved.value.base_price == Decimal("120.00")
        assert saved.value.version == archived.version
        assert saved.value.is_archived
        assert core.booking.get_listing(listing.listing_id) == saved.value

    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"headcount": 0}, "headcount"),
            ({"headcount": 1, "additional_fees": Decimal("-5")}, "additional_fees"),
        ],
    )
    def test_invalid_request_values(self, core, listing, stay, kwargs, field):
        """Values the request model refuses fail with INVALID_REQUEST naming the field."""
        outcome = core.request_booking(listing.listing_id, GUEST_ID, *stay, **kwargs)

        assert outcome.error_code == ErrorCode.INVALID_REQUEST
        assert field in outcome.error.details["fields"]

    def test_datetime_for_date_rejected(self, core, listing, stay):
        """A datetime arrival is refused by the strict request model."""
        arrival = dt.datetime.combine(stay[0], dt.time(15, 0))

        outcome = core.request_booking(listing.listing_id, GUEST_ID, arrival, stay[1], headcount=1)

        assert outcome.error_code == ErrorCode.INVALID_REQUEST
        assert "arrival_date" in outcome.error.details["fields"]

    def test_too_many_guests(self, core, listing, stay):
        """Headcount above capacity fails with MAX_GUESTS_EXCEEDED."""
        outcome = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=5)
        assert outcome.error_code == ErrorCode.MAX_GUESTS_EXCEEDED

    def test_conflicting_reserved_stay(self, core, reserved, listing, stay):
        """Overlapping a RESERVED stay fails with DATES_UNAVAILABLE and the conflict."""
        outcome = core.request_booking(
            listing.listing_id, "guest-2", stay[0] + dt.timedelta(days=1), stay[1], headcount=1
        )

        assert outcome.error_code == ErrorCode.DATES_UNAVAILABLE
        assert outcome.error.details["conflict_reason"] == ConflictReason.EXISTING_RESERVATION.value
        assert outcome.error.details["conflicting_id"] == reserved.reservation_id

    def test_back_to_back_allowed(self, core, reserved, listing, stay):
        """Arriving on the previous guest's departure day is fine."""
        outcome = core.request_booking(
            listing.listing_id, "guest-2", stay[1], stay[1] + dt.timedelta(days=2), headcount=1
        )
        assert outcome.success

    def test_concurrent_waiting_requests_allowed(self, core, waiting, listing, stay):
        """Two WAITING requests may overlap."""
        outcome = core.request_booking(listing.listing_id, "guest-2", *stay, headcount=1)
        assert outcome.success

    def test_bumps_listing_token(self, core, waiting, listing):
        """Creating a request advances the listing's serialization token."""
        assert core.booking.get_listing(listing.listing_id).version == listing.version + 1

    def test_service_accepts_create_model(self, core, listing, stay):
        """BookingService takes a ReservationCreate directly."""
        reservation = core.booking.request_booking(
            ReservationCreate(
                listing_id=listing.listing_id,
                guest_id=GUEST_ID,
                arrival_date=stay[0],
                departure_date=stay[1],
                headcount=1,
            )
        )
        assert reservation.status == ReservationStatus.WAITING


class TestApproveAndPay:
    """Host approval and payment confirmation in either order."""

    def test_approve_then_pay_reserves(self, core, reserved):
        """Approval followed by payment reaches RESERVED."""
        assert reserved.status == ReservationStatus.RESERVED
        assert reserved.payment_status == PaymentStatus.CLIENT_PAID
        assert reserved.payment_reference == "pi_test_1"
        assert reserved.host_approved

    def test_pay_then_approve_reserves(self, core, waiting):
        """Payment followed by approval reaches RESERVED."""
        paid = core.confirm_payment(waiting.reservation_id, "pi_test_2").value
        assert paid.status == ReservationStatus.WAITING
        assert paid.payment_status == PaymentStatus.CLIENT_PAID

        approved = core.approve_booking(waiting.reservation_id, HOST_ID).value

        assert approved.status == ReservationStatus.RESERVED

    def test_approval_alone_keeps_waiting(self, core, waiting):
        """Without payment, approval only records the flag."""
        approved = core.approve_booking(waiting.reservation_id, HOST_ID).value

        assert approved.status == ReservationStatus.WAITING
        assert approved.host_approved
        assert len(core.get_history(waiting.reservation_id).value) == 1

    def test_approval_is_idempotent(self, core, waiting):
        """Approving twice changes nothing the second time."""
        first = core.approve_booking(waiting.reservation_id, HOST_ID).value
        second = core.approve_booking(waiting.reservation_id, HOST_ID).value

        assert second.version == first.version

    def test_admin_may_approve(self, core, waiting):
        """Admins act for any listing."""
        assert core.approve_booking(waiting.reservation_id, ADMIN_ID).success

    def test_stranger_cannot_approve(self, core, waiting):
        """Non-owners are rejected with UNAUTHORIZED."""
        outcome = core.approve_booking(waiting.reservation_id, GUEST_ID)
        assert outcome.error_code == ErrorCode.UNAUTHORIZED

    def test_reserve_credits_committed_once(self, core, reserved):
        """Reaching RESERVED writes a single COMMITTED ledger entry."""
        entry = core.ledger.get_entry(reserved.reservation_id, LedgerEntryKind.COMMITTED)

        assert entry is not None
        assert entry.amount == Decimal("270.00")
        assert entry.host_id == HOST_ID
        assert core.ledger.get_entry(reserved.reservation_id, LedgerEntryKind.SETTLED) is None

    def test_duplicate_payment_confirmation(self, core, reserved):
        """Confirming the same payment again returns the stored reservation."""
        again = core.confirm_payment(reserved.reservation_id, "pi_test_1").value

        assert again.version == reserved.version
        assert core.get_host_balance(HOST_ID).value.gross_committed == Decimal("270.00")

    def test_approve_on_reserved_is_illegal(self, core, reserved):
        """A RESERVED stay cannot be approved again."""
        outcome = core.approve_booking(reserved.reservation_id, HOST_ID)
        assert outcome.error_code == ErrorCode.ILLEGAL_TRANSITION

    def test_history_records_reserved(self, core, reserved):
        """The reserve transition is in the audit trail."""
        history = core.get_history(reserved.reservation_id).value

        assert [h.new_status for h in history] == ["WAITING", "RESERVED"]
        assert history[-1].reason == "payment_confirmed"

    def test_payment_on_taken_dates_refuses(self, core, listing, stay, gateway):
        """If the dates were reserved meanwhile, payment refuses and releases the hold."""
        first = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=2).value
        second = core.request_booking(listing.listing_id, "guest-2", *stay, headcount=2).value
        core.approve_booking(first.reservation_id, HOST_ID)
        core.approve_booking(second.reservation_id, HOST_ID)
        core.confirm_payment(first.reservation_id, "pi_first")

        outcome = core.confirm_payment(second.reservation_id, "pi_second")

        assert outcome.error_code == ErrorCode.DATES_UNAVAILABLE
        refused = core.get_reservation(second.reservation_id).value
        assert refused.status == ReservationStatus.REFUSED
        assert refused.payment_status == PaymentStatus.RELEASED
        assert refused.refusal_reason == "dates_unavailable"
        assert gateway.released == [second.reservation_id]

    def test_approval_on_taken_dates_stays_waiting(self, core, listing, stay):
        """Approving a paid request whose dates were taken keeps it WAITING."""
        first = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=2).value
        second = core.request_booking(listing.listing_id, "guest-2", *stay, headcount=2).value
        core.approve_booking(first.reservation_id, HOST_ID)
        core.confirm_payment(first.reservation_id, "pi_first")
        core.confirm_payment(second.reservation_id, "pi_second")

        outcome = core.approve_booking(second.reservation_id, HOST_ID)

        assert outcome.error_code == ErrorCode.DATES_UNAVAILABLE
        assert core.get_reservation(second.reservation_id).value.status == ReservationStatus.WAITING

    def test_payment_after_refusal_is_released(self, core, waiting, gateway):
        """Money arriving for a refused stay is released and rejected."""
        core.reject_booking(waiting.reservation_id, HOST_ID, "not available")
        gateway.released.clear()

        outcome = core.confirm_payment(waiting.reservation_id, "pi_late")

        assert outcome.error_code == ErrorCode.ILLEGAL_TRANSITION
        assert gateway.released == [waiting.reservation_id]


class TestFailPayment:
    """Payment failures."""

    def test_marks_failed_and_keeps_waiting(self, core, waiting, notifier):
        """A failed payment keeps the request WAITING."""
        failed = core.fail_payment(waiting.reservation_id, "card_declined").value

        assert failed.status == ReservationStatus.WAITING
        assert failed.payment_status == PaymentStatus.FAILED
        assert "reservation.payment_failed" in notifier.event_names()

    def test_retry_after_failure_can_pay(self, core, waiting):
        """A later successful payment still confirms."""
        core.fail_payment(waiting.reservation_id, "card_declined")

        paid = core.confirm_payment(waiting.reservation_id, "pi_retry").value

        assert paid.payment_status == PaymentStatus.CLIENT_PAID

    def test_not_after_reserved(self, core, reserved):
        """A reserved stay's payment cannot fail afterwards."""
        outcome = core.fail_payment(reserved.reservation_id, "card_declined")
        assert outcome.error_code == ErrorCode.ILLEGAL_TRANSITION


class TestRefusal:
    """Host rejection and guest cancellation."""

    def test_host_rejects(self, core, waiting, gateway, notifier):
        """Rejection refuses the request and releases the hold."""
        refused = core.reject_booking(waiting.reservation_id, HOST_ID, "maintenance").value

        assert refused.status == ReservationStatus.REFUSED
        assert refused.refusal_reason == "maintenance"
        assert refused.payment_status == PaymentStatus.RELEASED
        assert gateway.released == [waiting.reservation_id]
        assert "reservation.refused" in notifier.event_names()

    def test_guest_cancels(self, core, waiting):
        """The guest may withdraw a WAITING request."""
        refused = core.cancel_booking(waiting.reservation_id, GUEST_ID).value

        assert refused.status == ReservationStatus.REFUSED
        assert refused.refusal_reason == "cancelled_by_guest"

    def test_other_guest_cannot_cancel(self, core, waiting):
        """Only the requesting guest or an admin cancels."""
        outcome = core.cancel_booking(waiting.reservation_id, "guest-2")
        assert outcome.error_code == ErrorCode.UNAUTHORIZED

    def test_reserved_cannot_be_refused(self, core, reserved):
        """RESERVED stays are not refusable."""
        outcome = core.reject_booking(reserved.reservation_id, HOST_ID, "changed mind")
        assert outcome.error_code == ErrorCode.ILLEGAL_TRANSITION

    def test_gateway_failure_does_not_undo_refusal(self, core, waiting, gateway, notifier):
        """A failed release alerts an admin but the refusal stands."""
        gateway.fail = True

        outcome = core.reject_booking(waiting.reservation_id, HOST_ID, "maintenance")

        assert outcome.success
        assert outcome.value.status == ReservationStatus.REFUSED
        assert notifier.alerts[0][0] == "Payment hold release failed"


class TestStayProgression:
    """Check-in and check-out."""

    def test_checkin_before_arrival_too_early(self, core, reserved):
        """Check-in before the arrival date fails with TOO_EARLY."""
        outcome = core.mark_checkin(reserved.reservation_id, HOST_ID)

        assert outcome.error_code == ErrorCode.TOO_EARLY
        assert outcome.error.details["allowed_from"] == reserved.arrival_date.isoformat()

    def test_checkin_on_arrival(self, core, reserved, clock):
        """Check-in on the arrival date succeeds."""
        clock.set_date(reserved.arrival_date)

        checked_in = core.mark_checkin(reserved.reservation_id, HOST_ID).value

        assert checked_in.status == ReservationStatus.CHECKIN

    def test_checkin_requires_reserved(self, core, waiting, clock):
        """A WAITING request cannot check in."""
        clock.set_date(waiting.arrival_date)

        outcome = core.mark_checkin(waiting.reservation_id, HOST_ID)

        assert outcome.error_code == ErrorCode.ILLEGAL_TRANSITION

    def test_checkout_before_departure_too_early(self, core, reserved, clock):
        """Check-out before the departure date fails with TOO_EARLY."""
        clock.set_date(reserved.arrival_date)
        core.mark_checkin(reserved.reservation_id, HOST_ID)

        outcome = core.mark_checkout(reserved.reservation_id, HOST_ID)

        assert outcome.error_code == ErrorCode.TOO_EARLY

    def test_checkout_credits_settled_once(self, core, reserved, clock):
        """Check-out credits SETTLED; repeating it is a no-op."""
        clock.set_date(reserved.arrival_date)
        core.mark_checkin(reserved.reservation_id, HOST_ID)
        clock.set_date(reserved.departure_date)

        first = core.mark_checkout(reserved.reservation_id, HOST_ID).value
        second = core.mark_checkout(reserved.reservation_id, HOST_ID).value

        assert first.status == ReservationStatus.CHECKOUT
        assert second.version == first.version
        balance = core.get_host_balance(HOST_ID).value
        assert balance.gross_settled == Decimal("270.00")
        assert balance.gross_committed == Decimal("270.00")

    def test_checkout_requires_owner(self, core, reserved, clock):
        """Guests cannot check out on behalf of the host."""
        clock.set_date(reserved.arrival_date)
        core.mark_checkin(reserved.reservation_id, HOST_ID)
        clock.set_date(reserved.departure_date)

        outcome = core.mark_checkout(reserved.reservation_id, GUEST_ID)

        assert outcome.error_code == ErrorCode.UNAUTHORIZED

    def test_full_history(self, core, reserved, clock):
        """History records every status change in order."""
        clock.set_date(reserved.arrival_date)
        core.mark_checkin(reserved.reservation_id, HOST_ID)
        clock.set_date(reserved.departure_date)
        core.mark_checkout(reserved.reservation_id, HOST_ID)

        history = core.get_history(reserved.reservation_id).value

        assert [h.new_status for h in history] == ["WAITING", "RESERVED", "CHECKIN", "CHECKOUT"]
        assert [h.previous_status for h in history] == [None, "WAITING", "RESERVED", "CHECKIN"]


class TestStaleState:
    """Compare-and-swap conflicts."""

    def test_status_change_between_read_and_write(self, core, waiting, monkeypatch):
        """A concurrent status change surfaces as STALE_STATE."""
        booking = core.booking
        original = booking._commit
        calls = {"n": 0}

        def racing_commit(current, updated, actor_id, reason=None, extra_ops=None):
            calls["n"] += 1
            if calls["n"] == 1:
                # Another actor refuses the request first
                original(
                    current,
                    current.model_copy(
                        update={
                            "status": ReservationStatus.REFUSED,
                            "version": current.version + 1,
                        }
                    ),
                    "guest-1",
                    "cancelled_by_guest",
                )
                return False
            return original(current, updated, actor_id, reason, extra_ops)

        monkeypatch.setattr(booking, "_commit", racing_commit)

        outcome = core.approve_booking(waiting.reservation_id, HOST_ID)

        assert outcome.error_code == ErrorCode.STALE_STATE
        assert outcome.error.retryable

    def test_bare_version_race_is_retried(self, core, waiting, monkeypatch):
        """A lost race without a status change is retried transparently."""
        booking = core.booking
        original = booking._commit
        calls = {"n": 0}

        def flaky_commit(current, updated, actor_id, reason=None, extra_ops=None):
            calls["n"] += 1
            if calls["n"] == 1:
                return False
            return original(current, updated, actor_id, reason, extra_ops)

        monkeypatch.setattr(booking, "_commit", flaky_commit)

        outcome = core.approve_booking(waiting.reservation_id, HOST_ID)

        assert outcome.success
        assert calls["n"] == 2


class TestBlockedDates:
    """Owner blocks."""

    def test_block_and_unblock(self, core, listing, stay):
        """A block can be removed again."""
        block = core.block_dates(listing.listing_id, HOST_ID, *stay, title="Family").value

        assert core.unblock_dates(listing.listing_id, block.block_id, HOST_ID).value is True
        assert core.check_availability(listing.listing_id, *stay).value.available

    def test_unblock_unknown(self, core, listing):
        """Removing an unknown block reports False."""
        assert core.unblock_dates(listing.listing_id, "BLK-NONE", HOST_ID).value is False

    def test_block_over_reserved_stay_rejected(self, core, reserved, listing, stay):
        """Blocking a reserved stay's nights fails with DATES_UNAVAILABLE."""
        outcome = core.block_dates(listing.listing_id, HOST_ID, *stay, title="Oops")
        assert outcome.error_code == ErrorCode.DATES_UNAVAILABLE

    def test_blocked_dates_reject_requests(self, core, listing, stay):
        """Requests over blocked dates fail with OWNER_BLOCKED."""
        core.block_dates(listing.listing_id, HOST_ID, *stay, title="Family")

        outcome = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=1)

        assert outcome.error_code == ErrorCode.DATES_UNAVAILABLE
        assert outcome.error.details["conflict_reason"] == ConflictReason.OWNER_BLOCKED.value

    def test_stranger_cannot_block(self, core, listing, stay):
        """Only owners and admins block dates."""
        outcome = core.block_dates(listing.listing_id, GUEST_ID, *stay, title="Mine")
        assert outcome.error_code == ErrorCode.UNAUTHORIZED


class TestServiceErrors:
    """Errors raised directly by BookingService."""

    def test_missing_reservation(self, core):
        """Unknown reservation IDs raise RESERVATION_NOT_FOUND."""
        with pytest.raises(BookingError) as exc_info:
            core.booking.get_reservation("RES-NONE")
        assert exc_info.value.code == ErrorCode.RESERVATION_NOT_FOUND
