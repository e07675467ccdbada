"""Scheduled sweeps over reservations.

Sweeps use the same compare-and-swap transitions as interactive calls and
skip any reservation whose write loses a race.
"""

import datetime as dt
from typing import TYPE_CHECKING

from rentcore.models import BookingError, ReservationStatus, SweepReport
from rentcore.utils.logging import get_logger

if TYPE_CHECKING:
    from .booking import BookingService

logger = get_logger(__name__)


def expire_unpaid_reservations(booking: "BookingService", now: dt.datetime) -> SweepReport:
    """Refuse WAITING reservations unpaid past the payment timeout.

    Args:
        booking: Booking service
        now: Reference time for the timeout

    Returns:
        SweepReport listing refused and skipped reservation IDs
    """
    report = SweepReport()
    for reservation in booking.list_by_status(ReservationStatus.WAITING):
        report.processed += 1
        if not booking.is_payment_overdue(reservation, now):
            continue
        try:
            refused = booking.expire(reservation, now)
        except BookingError as e:
            logger.warning(
                "Payment timeout sweep skipped %s: %s", reservation.reservation_id, e.code.name
            )
            refused = None
        if refused is None:
            report.skipped.append(reservation.reservation_id)
        else:
            report.transitioned.append(refused.reservation_id)

    logger.info(
        "Payment timeout sweep: processed=%d refused=%d skipped=%d",
        report.processed,
        len(report.transitioned),
        len(report.skipped),
    )
    return report


def auto_checkout(booking: "BookingService", today: dt.date) -> SweepReport:
    """Move CHECKIN reservations whose departure date has come to CHECKOUT."""
    report = SweepReport()
    for reservation in booking.list_by_status(ReservationStatus.CHECKIN):
        report.processed += 1
        if not booking.is_checkout_due(reservation, today):
            continue
        try:
            checked_out = booking.auto_checkout(reservation, today)
        except BookingError as e:
            logger.warning(
                "Auto-checkout sweep skipped %s: %s", reservation.reservation_id, e.code.name
            )
            checked_out = None
        if checked_out is None:
            report.skipped.append(reservation.reservation_id)
        else:
            report.transitioned.append(checked_out.reservation_id)

    logger.info(
        "Auto-checkout sweep: processed=%d checked_out=%d skipped=%d",
        report.processed,
        len(report.transitioned),
        len(report.skipped),
    )
    return report
