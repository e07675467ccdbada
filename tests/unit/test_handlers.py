"""Unit tests for the Lambda entry points."""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest

from rentcore import handlers
from rentcore.models import SweepReport
from rentcore.services.payment_gateway import PaymentGatewayError


@pytest.fixture
def mock_core():
    core = MagicMock()
    with patch.object(handlers, "get_core", return_value=core):
        yield core


@pytest.fixture
def mock_gateway():
    gateway = MagicMock()
    with patch.object(handlers, "get_payment_gateway", return_value=gateway):
        yield gateway


class TestSweepHandlers:
    """Scheduled sweep entry points."""

    def test_expire_unpaid(self, mock_core):
        """The payment-timeout sweep report is returned as a dict."""
        mock_core.expire_unpaid_reservations.return_value = SweepReport(
            processed=2, transitioned=["RES-1"], skipped=["RES-2"]
        )

        result = handlers.expire_unpaid_handler({"id": "evt-sched-1"}, None)

        assert result == {"processed": 2, "transitioned": ["RES-1"], "skipped": ["RES-2"]}

    def test_auto_checkout(self, mock_core):
        """The auto-checkout sweep runs with the current date."""
        mock_core.auto_checkout.return_value = SweepReport(processed=0)

        result = handlers.auto_checkout_handler({}, None)

        mock_core.auto_checkout.assert_called_once_with()
        assert result["processed"] == 0


class TestStripeWebhookHandler:
    """API Gateway webhook entry point."""

    def test_processes_signed_payload(self, mock_core, mock_gateway):
        """A signed delivery is passed to the webhook handler."""
        mock_core.webhooks.handle_payload.return_value = ("success", None)
        event = {
            "headers": {"Stripe-Signature": "t=1,v1=sig"},
            "body": base64.b64encode(b'{"id": "evt_1"}').decode(),
            "isBase64Encoded": True,
        }

        response = handlers.stripe_webhook_handler(event, None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["processing_result"] == "success"
        mock_core.webhooks.handle_payload.assert_called_once_with(
            b'{"id": "evt_1"}', "t=1,v1=sig", mock_gateway
        )

    def test_missing_signature(self, mock_core, mock_gateway):
        """Deliveries without a signature header are rejected."""
        response = handlers.stripe_webhook_handler({"headers": {}, "body": "{}"}, None)

        assert response["statusCode"] == 400
        mock_core.webhooks.handle_payload.assert_not_called()

    def test_invalid_signature(self, mock_core, mock_gateway):
        """Signature failures answer 400."""
        mock_core.webhooks.handle_payload.side_effect = PaymentGatewayError(
            "Invalid webhook signature"
        )

        response = handlers.stripe_webhook_handler(
            {"headers": {"stripe-signature": "bad"}, "body": "{}"}, None
        )

        assert response["statusCode"] == 400
        assert json.loads(response["body"])["received"] is False

    def test_business_rejection_acknowledged(self, mock_core, mock_gateway):
        """Rejected events are still acknowledged so Stripe stops retrying."""
        mock_core.webhooks.handle_payload.return_value = ("rejected", "ILLEGAL_TRANSITION")

        response = handlers.stripe_webhook_handler(
            {"headers": {"stripe-signature": "t=1,v1=sig"}, "body": "{}"}, None
        )

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["message"] == "ILLEGAL_TRANSITION"
