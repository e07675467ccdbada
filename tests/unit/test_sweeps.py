"""Unit tests for the payment-timeout and auto-checkout sweeps."""

import datetime as dt

from rentcore.models import ReservationStatus

HOST_ID = "host-1"
GUEST_ID = "guest-1"


class TestPaymentTimeoutSweep:
    """Expiring unpaid requests."""

    def test_expires_after_timeout(self, core, listing, stay, clock, gateway):
        """Unpaid requests older than the timeout are refused."""
        reservation = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=1).value
        clock.advance(hours=24)

        report = core.expire_unpaid_reservations()

        assert report.transitioned == [reservation.reservation_id]
        refused = core.get_reservation(reservation.reservation_id).value
        assert refused.status == ReservationStatus.REFUSED
        assert refused.refusal_reason == "payment_timeout"
        assert gateway.released == [reservation.reservation_id]
        history = core.get_history(reservation.reservation_id).value
        assert history[-1].actor_id == "system"

    def test_recent_request_untouched(self, core, listing, stay, clock):
        """Requests inside the payment window stay WAITING."""
        reservation = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=1).value
        clock.advance(hours=23)

        report = core.expire_unpaid_reservations()

        assert report.processed == 1
        assert report.transitioned == []
        assert report.skipped == []
        assert core.get_reservation(reservation.reservation_id).value.status == (
            ReservationStatus.WAITING
        )

    def test_paid_request_untouched(self, core, listing, stay, clock):
        """Paid requests waiting for host approval are not expired."""
        reservation = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=1).value
        core.confirm_payment(reservation.reservation_id, "pi_paid")
        clock.advance(hours=48)

        report = core.expire_unpaid_reservations()

        assert report.transitioned == []

    def test_lost_race_is_skipped(self, core, listing, stay, clock, monkeypatch):
        """A reservation whose write loses a race is reported as skipped."""
        reservation = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=1).value
        clock.advance(hours=25)
        monkeypatch.setattr(core.booking, "_commit", lambda *args, **kwargs: False)

        report = core.expire_unpaid_reservations()

        assert report.skipped == [reservation.reservation_id]
        assert report.transitioned == []


class TestAutoCheckoutSweep:
    """Checking out finished stays."""

    def test_checks_out_due_stays(self, core, listing, stay, clock):
        """Stays whose departure date arrived are checked out and settled."""
        reservation = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=1).value
        core.approve_booking(reservation.reservation_id, HOST_ID)
        core.confirm_payment(reservation.reservation_id, "pi_1")
        clock.set_date(stay[0])
        core.mark_checkin(reservation.reservation_id, HOST_ID)

        report = core.auto_checkout(today=stay[1])

        assert report.transitioned == [reservation.reservation_id]
        checked_out = core.get_reservation(reservation.reservation_id).value
        assert checked_out.status == ReservationStatus.CHECKOUT
        assert core.get_host_balance(HOST_ID).value.gross_settled > 0
        assert core.get_history(reservation.reservation_id).value[-1].reason == "auto_checkout"

    def test_ongoing_stay_untouched(self, core, listing, stay, clock):
        """Stays before their departure date remain CHECKIN."""
        reservation = core.request_booking(listing.listing_id, GUEST_ID, *stay, headcount=1).value
        core.approve_booking(reservation.reservation_id, HOST_ID)
        core.confirm_payment(reservation.reservation_id, "pi_1")
        clock.set_date(stay[0])
        core.mark_checkin(reservation.reservation_id, HOST_ID)

        report = core.auto_checkout(today=stay[1] - dt.timedelta(days=1))

        assert report.processed == 1
        assert report.transitioned == []

    def test_empty_run(self, core, listing):
        """Nothing in CHECKIN means nothing to do."""
        report = core.auto_checkout()

        assert report.processed == 0
