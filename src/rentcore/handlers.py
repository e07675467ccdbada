"""Lambda entry points for scheduled sweeps and Stripe webhooks.

Scheduled handlers are invoked by EventBridge rules:
- expire_unpaid_handler: hourly, refuses reservations unpaid past the timeout
- auto_checkout_handler: daily, checks out stays whose departure date passed

stripe_webhook_handler sits behind an API Gateway / Function URL route and
receives the raw signed payload.
"""

import base64
import json
from functools import lru_cache
from typing import Any

from rentcore.core import ReservationCore
from rentcore.services.payment_gateway import PaymentGatewayError, get_payment_gateway
from rentcore.utils.logging import configure_logging, correlation_scope, get_logger

configure_logging()
logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_core() -> ReservationCore:
    """Shared core instance, reused across warm invocations."""
    return ReservationCore()


def expire_unpaid_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Refuse WAITING reservations whose payment window has elapsed.

    Args:
        event: EventBridge scheduled event
        context: Lambda context (unused)

    Returns:
        Sweep report as a dict
    """
    with correlation_scope(event.get("id")):
        report = get_core().expire_unpaid_reservations()
        logger.info(
            f"Payment timeout sweep done: refused={len(report.transitioned)} "
            f"skipped={len(report.skipped)}"
        )
        return report.model_dump()


def auto_checkout_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Check out CHECKIN reservations whose departure date has arrived."""
    with correlation_scope(event.get("id")):
        report = get_core().auto_checkout()
        logger.info(
            f"Auto-checkout sweep done: checked_out={len(report.transitioned)} "
            f"skipped={len(report.skipped)}"
        )
        return report.model_dump()


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def stripe_webhook_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Verify and apply a Stripe webhook delivery.

    Business-rule rejections are acknowledged with 200 so Stripe stops
    retrying; only an invalid signature is answered with 400.

    Args:
        event: API Gateway proxy event carrying the raw Stripe payload
        context: Lambda context (unused)

    Returns:
        API Gateway proxy response
    """
    request_id = (event.get("requestContext") or {}).get("requestId")
    with correlation_scope(request_id):
        headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
        signature = headers.get("stripe-signature", "")
        body = event.get("body") or ""
        payload = base64.b64decode(body) if event.get("isBase64Encoded") else body.encode()

        if not signature:
            logger.warning("Webhook request without Stripe-Signature header")
            return _response(400, {"received": False, "message": "Missing signature"})

        try:
            result, message = get_core().webhooks.handle_payload(
                payload, signature, get_payment_gateway()
            )
        except PaymentGatewayError as e:
            logger.warning(f"Rejected webhook delivery: {e}")
            return _response(400, {"received": False, "message": str(e)})

        return _response(200, {"received": True, "processing_result": result, "message": message})
