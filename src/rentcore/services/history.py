"""Append-only transition history shared by reservations and withdrawals.

Entries are keyed by ``(subject_id, sequence)`` where the sequence is the
subject's version after the transition, zero-padded so it sorts.
"""

import datetime as dt
from typing import TYPE_CHECKING, Any

from rentcore.models import TransitionRecord

from .records import history_to_item, item_to_history

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

TABLE = "history"


def sequence_for(version: int) -> str:
    return f"{version:08d}"


def history_op(
    db: "DynamoDBService",
    *,
    subject_id: str,
    version: int,
    previous_status: str | None,
    new_status: str,
    actor_id: str,
    occurred_at: dt.datetime,
    reason: str | None = None,
) -> dict[str, Any]:
    """Build the transaction Put appending one history entry."""
    record = TransitionRecord(
        subject_id=subject_id,
        sequence=sequence_for(version),
        previous_status=previous_status,
        new_status=new_status,
        actor_id=actor_id,
        occurred_at=occurred_at,
        reason=reason,
    )
    return db.put_op(
        TABLE,
        history_to_item(record),
        condition_expression="attribute_not_exists(#seq)",
        expression_attribute_names={"#seq": "sequence"},
    )


def read_history(db: "DynamoDBService", subject_id: str) -> list[TransitionRecord]:
    """All history entries for a reservation or withdrawal, oldest first."""
    items = db.query_by_partition(TABLE, "subject_id", subject_id)
    return sorted((item_to_history(item) for item in items), key=lambda r: r.sequence)
