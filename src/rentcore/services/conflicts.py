"""Interval conflict checking for listing stays.

All ranges are half-open ``[start, end)``: a stay departing on the day
another arrives does not conflict with it.

Conflict reads never touch a GSI. Each reservation holding occupancy has a
row in the ``stay-holds`` table, partitioned by listing and written in the
same transaction that moves the reservation to RESERVED (and deleted in
the one that moves it to CHECKOUT). Holds and blocked ranges are read
with strongly consistent base-table queries, so a checker that saw the
listing token a competing writer committed also sees that writer's rows.
"""

import datetime as dt
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from rentcore.models import (
    AlternativeDates,
    AvailabilityResult,
    BlockedRange,
    BookingError,
    ConflictReason,
    ErrorCode,
    Reservation,
)
from rentcore.utils.logging import get_logger

from .records import item_to_blocked_range, item_to_reservation
from .state_machine import OCCUPANCY_HOLDING

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)


def ranges_overlap(a_start: dt.date, a_end: dt.date, b_start: dt.date, b_end: dt.date) -> bool:
    """Whether two half-open date ranges share at least one night.

    Also used to decide whether two promotions on a listing overlap.
    """
    return a_start < b_end and b_start < a_end


def validate_range(start: dt.date, end: dt.date) -> None:
    """Raise INVALID_RANGE unless ``start < end``."""
    if start >= end:
        raise BookingError(
            ErrorCode.INVALID_RANGE,
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )


def find_conflict(
    start: dt.date,
    end: dt.date,
    reservations: Iterable[Reservation],
    blocked_ranges: Iterable[BlockedRange],
) -> tuple[ConflictReason, str] | None:
    """Find the first stay or block overlapping ``[start, end)``.

    Only reservations holding occupancy (RESERVED, CHECKIN) are considered.

    Returns:
        (reason, conflicting id) or None when the range is free
    """
    for reservation in reservations:
        if reservation.status not in OCCUPANCY_HOLDING:
            continue
        if ranges_overlap(start, end, reservation.arrival_date, reservation.departure_date):
            return ConflictReason.EXISTING_RESERVATION, reservation.reservation_id

    for block in blocked_ranges:
        if ranges_overlap(start, end, block.start_date, block.end_date):
            return ConflictReason.OWNER_BLOCKED, block.block_id

    return None


class ConflictChecker:
    """Availability queries against persisted reservations and blocks."""

    RESERVATIONS_TABLE = "reservations"
    BLOCKED_RANGES_TABLE = "blocked-ranges"
    HOLDS_TABLE = "stay-holds"

    def __init__(
        self,
        db: "DynamoDBService",
        today: Callable[[], dt.date] | None = None,
    ) -> None:
        """Initialize conflict checker.

        Args:
            db: DynamoDB service instance
            today: Callable returning the current date (for tests)
        """
        self.db = db
        self._today = today or (lambda: dt.datetime.now(dt.UTC).date())

    def hold_put_op(self, reservation: Reservation) -> dict[str, Any]:
        """Transaction entry recording that ``reservation`` occupies its dates."""
        return self.db.put_op(
            self.HOLDS_TABLE,
            {
                "listing_id": reservation.listing_id,
                "reservation_id": reservation.reservation_id,
                "arrival_date": reservation.arrival_date.isoformat(),
                "departure_date": reservation.departure_date.isoformat(),
            },
        )

    def hold_delete_op(self, reservation: Reservation) -> dict[str, Any]:
        return self.db.delete_op(
            self.HOLDS_TABLE,
            {"listing_id": reservation.listing_id, "reservation_id": reservation.reservation_id},
        )

    def holding_reservations(self, listing_id: str) -> list[Reservation]:
        """Reservations on a listing that currently hold occupancy.

        Both the hold rows and the reservations behind them are read
        strongly consistent.
        """
        reservations: list[Reservation] = []
        for hold in self.db.query_by_partition(self.HOLDS_TABLE, "listing_id", listing_id):
            item = self.db.get_item(
                self.RESERVATIONS_TABLE, {"reservation_id": hold["reservation_id"]}
            )
            if item:
                reservations.append(item_to_reservation(item))
        return [r for r in reservations if r.status in OCCUPANCY_HOLDING]

    def blocked_ranges(self, listing_id: str) -> list[BlockedRange]:
        items = self.db.query_by_partition(self.BLOCKED_RANGES_TABLE, "listing_id", listing_id)
        return [item_to_blocked_range(item) for item in items]

    def is_available(self, listing_id: str, start: dt.date, end: dt.date) -> AvailabilityResult:
        """Check whether a listing is free for ``[start, end)``.

        Args:
            listing_id: Listing to check
            start: Arrival date
            end: Departure date (exclusive)

        Returns:
            AvailabilityResult with the first conflict found, if any

        Raises:
            BookingError: INVALID_RANGE if start >= end
        """
        validate_range(start, end)
        conflict = find_conflict(
            start,
            end,
            self.holding_reservations(listing_id),
            self.blocked_ranges(listing_id),
        )
        if conflict is None:
            return AvailabilityResult(
                listing_id=listing_id, start_date=start, end_date=end, available=True
            )

        reason, conflicting_id = conflict
        logger.debug(
            "Conflict on listing %s for %s..%s: %s %s",
            listing_id,
            start,
            end,
            reason.value,
            conflicting_id,
        )
        return AvailabilityResult(
            listing_id=listing_id,
            start_date=start,
            end_date=end,
            available=False,
            conflict_reason=reason,
            conflicting_id=conflicting_id,
        )

    def suggest_alternative_dates(
        self,
        listing_id: str,
        requested_start: dt.date,
        requested_end: dt.date,
        search_window_days: int = 14,
        max_suggestions: int = 3,
    ) -> list[AlternativeDates]:
        """Find conflict-free windows of the same length near the request.

        Alternates earlier and later start dates, closest first, and never
        suggests a start in the past.

        Args:
            listing_id: Listing to search
            requested_start: Originally requested arrival date
            requested_end: Originally requested departure date
            search_window_days: How many days before/after to search
            max_suggestions: Maximum number of alternatives to return

        Returns:
            Alternatives sorted by distance from the requested arrival
        """
        validate_range(requested_start, requested_end)
        nights = (requested_end - requested_start).days
        today = self._today()

        reservations = self.holding_reservations(listing_id)
        blocks = self.blocked_ranges(listing_id)

        def is_window_free(start: dt.date) -> bool:
            end = start + dt.timedelta(days=nights)
            return find_conflict(start, end, reservations, blocks) is None

        suggestions: list[AlternativeDates] = []
        for offset in range(1, search_window_days + 1):
            if len(suggestions) >= max_suggestions:
                break

            for direction, start in (
                ("earlier", requested_start - dt.timedelta(days=offset)),
                ("later", requested_start + dt.timedelta(days=offset)),
            ):
                if len(suggestions) >= max_suggestions or start < today:
                    continue
                if is_window_free(start):
                    suggestions.append(
                        AlternativeDates(
                            arrival_date=start,
                            departure_date=start + dt.timedelta(days=nights),
                            nights=nights,
                            offset_days=offset if direction == "later" else -offset,
                            direction=direction,
                        )
                    )

        suggestions.sort(key=lambda s: abs(s.offset_days))
        return suggestions[:max_suggestions]

