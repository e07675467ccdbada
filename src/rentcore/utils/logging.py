"""Logging with correlation IDs and structured audit helpers.

Every operation entered through ReservationCore or a Lambda handler runs
inside a correlation scope; the ID is attached to each record by
CorrelationIdFilter and printed first by StructuredFormatter.

Usage:
    from rentcore.utils.logging import correlation_scope, get_logger

    logger = get_logger(__name__)

    with correlation_scope(event.get("id")):
        logger.info("Sweep started", extra={"sweep": "auto_checkout"})
"""

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

NO_CORRELATION_ID = "no-correlation-id"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation ID to the current context, generating one if needed."""
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of a block.

    An ID already bound by an outer scope is kept, so nested operations
    log under the caller's ID.
    """
    if get_correlation_id() is not None:
        yield get_correlation_id()  # type: ignore[misc]
        return
    cid = set_correlation_id(correlation_id)
    try:
        yield cid
    finally:
        clear_correlation_id()


class CorrelationIdFilter(logging.Filter):
    """Stamp records with the current correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """Prefix formatted records with ``[correlation_id]``."""

    def format(self, record: logging.LogRecord) -> str:
        cid = getattr(record, "correlation_id", None) or get_correlation_id() or NO_CORRELATION_ID
        return f"[{cid}] {super().format(record)}"


def get_logger(name: str) -> logging.Logger:
    """Logger carrying a single CorrelationIdFilter."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())
    return logger


def configure_logging(level: int = logging.INFO) -> None:
    """Install the structured formatter on the root logger's handlers.

    The Lambda runtime pre-installs a root handler; when none exists (local
    runs) a stream handler is added.
    """
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    for handler in root.handlers:
        handler.setFormatter(StructuredFormatter("%(levelname)s %(name)s %(message)s"))
        if not any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            handler.addFilter(CorrelationIdFilter())


# Outcome labels that warrant a warning rather than info
_WARNING_RESULTS = frozenset({"stale", "duplicate", "skipped", "rejected"})


def _emit(logger: logging.Logger, message: str, context: dict[str, Any], result: str) -> None:
    if result == "error":
        logger.error(message, extra=context)
    elif result in _WARNING_RESULTS:
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_transition(
    logger: logging.Logger,
    subject: str,
    subject_id: str,
    *,
    previous_status: str | None,
    new_status: str | None,
    actor_id: str,
    result: str = "success",
    reason: str | None = None,
    **extra: Any,
) -> None:
    """Record a reservation or withdrawal status change.

    Args:
        logger: Logger instance
        subject: "reservation" or "withdrawal"
        subject_id: Reservation or withdrawal ID
        previous_status: Status before the transition
        new_status: Requested or applied status
        actor_id: Who triggered the transition
        result: success, stale, duplicate, skipped, rejected or error
        reason: Optional reason text
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "subject": subject,
        "subject_id": subject_id,
        "previous_status": previous_status,
        "new_status": new_status,
        "actor_id": actor_id,
        "result": result,
        **({"reason": reason} if reason else {}),
        **extra,
    }
    message = (
        f"{subject} {subject_id} {previous_status} -> {new_status} "
        f"[{result}] by {actor_id}" + (f": {reason}" if reason else "")
    )
    _emit(logger, message, context, result)


def log_withdrawal_operation(
    logger: logging.Logger,
    operation: str,
    *,
    host_id: str,
    withdrawal_id: str | None = None,
    amount: Any = None,
    tier: str | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Record a balance or withdrawal operation for a host.

    Amounts are logged as strings so Decimal values keep their scale.
    """
    fields = {
        "host_id": host_id,
        "withdrawal_id": withdrawal_id,
        "amount": None if amount is None else str(amount),
        "tier": tier,
        "status": status,
        "error": error,
    }
    context: dict[str, Any] = {
        "operation": operation,
        **{k: v for k, v in fields.items() if v is not None},
        **extra,
    }
    details = " ".join(f"{k}={v}" for k, v in context.items() if k != "operation")
    _emit(logger, f"withdrawal {operation}: {details}", context, "error" if error else "success")
