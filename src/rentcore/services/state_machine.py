"""Transition tables for reservations and withdrawal requests.

Both lifecycles are explicit adjacency dicts; anything not listed is an
illegal transition.
"""

from collections.abc import Mapping
from enum import Enum
from typing import TypeVar

from rentcore.models import BookingError, ErrorCode, ReservationStatus, WithdrawalStatus

S = TypeVar("S", bound=Enum)

RESERVATION_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.WAITING: frozenset({ReservationStatus.RESERVED, ReservationStatus.REFUSED}),
    ReservationStatus.RESERVED: frozenset({ReservationStatus.CHECKIN}),
    ReservationStatus.CHECKIN: frozenset({ReservationStatus.CHECKOUT}),
    ReservationStatus.CHECKOUT: frozenset(),
    ReservationStatus.REFUSED: frozenset(),
}

# Statuses whose dates block other stays
OCCUPANCY_HOLDING: frozenset[ReservationStatus] = frozenset(
    {ReservationStatus.RESERVED, ReservationStatus.CHECKIN}
)

WITHDRAWAL_TRANSITIONS: dict[WithdrawalStatus, frozenset[WithdrawalStatus]] = {
    WithdrawalStatus.ACCOUNT_VALIDATION: frozenset(
        {WithdrawalStatus.PENDING, WithdrawalStatus.REJECTED, WithdrawalStatus.CANCELLED}
    ),
    WithdrawalStatus.PENDING: frozenset(
        {WithdrawalStatus.PROCESSING, WithdrawalStatus.REJECTED, WithdrawalStatus.CANCELLED}
    ),
    WithdrawalStatus.PROCESSING: frozenset(
        {WithdrawalStatus.COMPLETED, WithdrawalStatus.REJECTED}
    ),
    WithdrawalStatus.COMPLETED: frozenset(),
    WithdrawalStatus.REJECTED: frozenset(),
    WithdrawalStatus.CANCELLED: frozenset(),
}

# Withdrawals whose amount counts against the host's available balance
TIED_UP_WITHDRAWALS: frozenset[WithdrawalStatus] = frozenset(
    {
        WithdrawalStatus.PENDING,
        WithdrawalStatus.ACCOUNT_VALIDATION,
        WithdrawalStatus.PROCESSING,
        WithdrawalStatus.COMPLETED,
    }
)

NON_TERMINAL_WITHDRAWALS: frozenset[WithdrawalStatus] = frozenset(
    {
        WithdrawalStatus.PENDING,
        WithdrawalStatus.ACCOUNT_VALIDATION,
        WithdrawalStatus.PROCESSING,
    }
)


def can_transition(table: Mapping[S, frozenset[S]], current: S, target: S) -> bool:
    """Check whether ``current -> target`` is a listed transition."""
    return target in table.get(current, frozenset())


def ensure_transition(table: Mapping[S, frozenset[S]], current: S, target: S) -> None:
    """Raise ILLEGAL_TRANSITION unless ``current -> target`` is allowed.

    Raises:
        BookingError: With ErrorCode.ILLEGAL_TRANSITION
    """
    if not can_transition(table, current, target):
        raise BookingError(
            ErrorCode.ILLEGAL_TRANSITION,
            details={"current_status": current.value, "requested_status": target.value},
        )


def is_terminal(table: Mapping[S, frozenset[S]], status: S) -> bool:
    return not table.get(status)


def reachable_from(table: Mapping[S, frozenset[S]], start: S) -> set[S]:
    """All statuses reachable from ``start`` through one or more transitions."""
    seen: set[S] = set()
    frontier = [start]
    while frontier:
        for nxt in table.get(frontier.pop(), frozenset()):
            if nxt not in seen:
                seen.add(nxt)
                frontier.append(nxt)
    return seen
