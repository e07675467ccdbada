"""Payment collaborator: releasing a guest's funds hold.

The core never moves money itself. When a WAITING reservation is refused
the gateway is asked to release whatever it holds for the reservation:
an uncaptured PaymentIntent is cancelled, a captured one is refunded.
"""

import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Protocol

import stripe
from stripe import StripeClient

from rentcore.models import PaymentStatus

from .ssm_service import SSMService, SSMServiceError, get_ssm_service

if TYPE_CHECKING:
    from rentcore.models import Reservation

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """Raised when the payment gateway rejects an operation."""

    def __init__(self, message: str, gateway_error_code: str | None = None) -> None:
        super().__init__(message)
        self.gateway_error_code = gateway_error_code


class PaymentGateway(Protocol):
    def release_hold(self, reservation: "Reservation") -> None: ...


class StripePaymentGateway:
    """Stripe-backed gateway using the StripeClient pattern.

    The secret key and webhook secret are read lazily from SSM at
    ``/rentcore/{environment}/stripe/secret_key`` and ``.../webhook_secret``.
    """

    SECRET_KEY_PARAMETER = "stripe/secret_key"
    WEBHOOK_SECRET_PARAMETER = "stripe/webhook_secret"

    def __init__(self, ssm: SSMService | None = None) -> None:
        self._ssm = ssm or get_ssm_service()
        self._client: StripeClient | None = None
        self._webhook_secret: str | None = None

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client.

        Raises:
            PaymentGatewayError: If credentials cannot be retrieved.
        """
        if self._client is None:
            try:
                secret_key = self._ssm.get_secret(self.SECRET_KEY_PARAMETER)
            except SSMServiceError as e:
                raise PaymentGatewayError(f"Failed to initialize Stripe client: {e}") from e
            self._client = StripeClient(secret_key)
            logger.info("Stripe client initialized")
        return self._client

    def _get_webhook_secret(self) -> str:
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._ssm.get_secret(self.WEBHOOK_SECRET_PARAMETER)
            except SSMServiceError as e:
                raise PaymentGatewayError(f"Failed to get webhook secret: {e}") from e
        return self._webhook_secret

    def release_hold(self, reservation: "Reservation") -> None:
        """Cancel or refund the PaymentIntent referenced by the reservation.

        Reservations without a payment reference hold nothing and are skipped.

        Raises:
            PaymentGatewayError: If Stripe rejects the request.
        """
        intent_id = reservation.payment_reference
        if not intent_id:
            logger.info("No payment hold to release for %s", reservation.reservation_id)
            return

        client = self._get_client()
        options: Any = {"idempotency_key": f"release_{reservation.reservation_id}"}
        try:
            if reservation.payment_status == PaymentStatus.CLIENT_PAID:
                refund = client.refunds.create(
                    params={
                        "payment_intent": intent_id,
                        "metadata": {"reservation_id": reservation.reservation_id},
                    },
                    options=options,
                )
                logger.info(
                    "Refund %s created for reservation %s", refund.id, reservation.reservation_id
                )
            else:
                client.payment_intents.cancel(
                    intent_id,
                    params={"cancellation_reason": "abandoned"},
                    options=options,
                )
                logger.info(
                    "PaymentIntent %s cancelled for reservation %s",
                    intent_id,
                    reservation.reservation_id,
                )
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error(
                "Stripe release failed for %s: %s (code: %s)",
                reservation.reservation_id,
                str(e),
                error_code,
            )
            raise PaymentGatewayError(
                f"Failed to release payment hold: {e}", gateway_error_code=error_code
            ) from e

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook signature and parse the event.

        Raises:
            PaymentGatewayError: If the signature is invalid.
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, self._get_webhook_secret())
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise PaymentGatewayError("Invalid webhook signature") from e
        logger.info("Webhook signature verified for event: %s", event["id"])
        return dict(event)


class MockPaymentGateway:
    """Gateway double that records released reservations."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.released: list[str] = []

    def release_hold(self, reservation: "Reservation") -> None:
        if self.fail:
            raise PaymentGatewayError("Mock gateway failure", gateway_error_code="mock_failure")
        self.released.append(reservation.reservation_id)


@lru_cache(maxsize=1)
def get_payment_gateway() -> StripePaymentGateway:
    """Get the shared Stripe gateway instance."""
    return StripePaymentGateway()
