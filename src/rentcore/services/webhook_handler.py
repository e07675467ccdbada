"""Translate Stripe webhook events into payment transitions.

Handled events:
- checkout.session.completed -> confirm_payment
- checkout.session.expired -> fail_payment
- payment_intent.payment_failed -> fail_payment

Each event ID is recorded in the webhook events table, so a redelivered
event is acknowledged without being applied twice.
"""

import datetime as dt
import hashlib
import json
import logging
from typing import TYPE_CHECKING, Any

from rentcore.models import BookingError

if TYPE_CHECKING:
    from .booking import BookingService
    from .dynamodb import DynamoDBService
    from .payment_gateway import StripePaymentGateway

logger = logging.getLogger(__name__)


class PaymentWebhookHandler:
    """Processes Stripe events against the booking service."""

    WEBHOOK_EVENTS_TABLE = "payment-webhook-events"

    def __init__(self, db: "DynamoDBService", booking: "BookingService") -> None:
        self._db = db
        self._booking = booking

    def is_event_already_processed(self, event_id: str) -> bool:
        existing = self._db.get_item(self.WEBHOOK_EVENTS_TABLE, {"event_id": event_id})
        return existing is not None

    def log_event(
        self,
        event: dict[str, Any],
        reservation_id: str | None,
        processing_result: str,
        error_message: str | None = None,
    ) -> None:
        """Record a processed event for idempotency and audit.

        Args:
            event: Parsed Stripe event
            reservation_id: Reservation the event concerned, if known
            processing_result: success, skipped, rejected or error
            error_message: Why the event was not applied
        """
        item: dict[str, Any] = {
            "event_id": event.get("id", ""),
            "event_type": event.get("type", ""),
            "processed_at": dt.datetime.now(dt.UTC).isoformat(),
            "payload_hash": hashlib.sha256(
                json.dumps(event, sort_keys=True, default=str).encode()
            ).hexdigest(),
            "processing_result": processing_result,
        }
        if reservation_id:
            item["reservation_id"] = reservation_id
        if error_message:
            item["error_message"] = error_message
        self._db.put_item(self.WEBHOOK_EVENTS_TABLE, item)

    def handle_payload(
        self, payload: bytes, signature: str, gateway: "StripePaymentGateway"
    ) -> tuple[str, str | None]:
        """Verify a raw webhook delivery and process it."""
        return self.handle_event(gateway.verify_webhook_signature(payload, signature))

    def handle_event(self, event: dict[str, Any]) -> tuple[str, str | None]:
        """Process one Stripe event.

        Returns:
            Tuple of (processing_result, error_message)
        """
        event_id = event.get("id", "")
        event_type = event.get("type", "")

        if event_id and self.is_event_already_processed(event_id):
            logger.info("Webhook event %s already processed", event_id)
            return "duplicate", None

        obj = event.get("data", {}).get("object", {})
        reservation_id = (obj.get("metadata") or {}).get("reservation_id")

        if event_type not in (
            "checkout.session.completed",
            "checkout.session.expired",
            "payment_intent.payment_failed",
        ):
            logger.info("Ignoring webhook event type %s", event_type)
            return "skipped", f"Unhandled event type {event_type}"

        if not reservation_id:
            logger.warning("%s without reservation_id in metadata", event_type)
            error_msg = "Missing reservation_id in metadata"
            self.log_event(event, None, "error", error_msg)
            return "error", error_msg

        if event_type == "checkout.session.completed" and obj.get("payment_status") != "paid":
            skip_msg = f"Payment status is '{obj.get('payment_status')}', not 'paid'"
            logger.warning("checkout.session.completed for %s: %s", reservation_id, skip_msg)
            self.log_event(event, reservation_id, "skipped", skip_msg)
            return "skipped", skip_msg

        try:
            if event_type == "checkout.session.completed":
                reference = obj.get("payment_intent") or obj.get("id", "")
                self._booking.confirm_payment(reservation_id, reference)
            elif event_type == "checkout.session.expired":
                self._booking.fail_payment(reservation_id, "checkout_expired")
            else:
                failure = (obj.get("last_payment_error") or {}).get("message", "payment_failed")
                self._booking.fail_payment(reservation_id, failure)
        except BookingError as e:
            logger.warning(
                "Webhook %s for %s not applied: %s", event_type, reservation_id, e.code.name
            )
            self.log_event(event, reservation_id, "rejected", e.code.name)
            return "rejected", e.code.name

        self.log_event(event, reservation_id, "success")
        logger.info("Webhook %s applied to reservation %s", event_type, reservation_id)
        return "success", None
