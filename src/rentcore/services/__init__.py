"""Services for rentcore."""

from .booking import BookingService
from .commission import CommissionService, base_price_from_client_pays, quote, quote_stay
from .conflicts import ConflictChecker, find_conflict, ranges_overlap
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .identity import DynamoDBIdentityService, IdentityService, StaticIdentityService
from .ledger import SettlementLedger
from .notifications import LoggingNotifier, Notifier, RecordingNotifier
from .payment_gateway import (
    MockPaymentGateway,
    PaymentGateway,
    PaymentGatewayError,
    StripePaymentGateway,
)
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .webhook_handler import PaymentWebhookHandler

__all__ = [
    "BookingService",
    "CommissionService",
    "ConflictChecker",
    "DynamoDBIdentityService",
    "DynamoDBService",
    "IdentityService",
    "LoggingNotifier",
    "MockPaymentGateway",
    "Notifier",
    "PaymentGateway",
    "PaymentGatewayError",
    "PaymentWebhookHandler",
    "RecordingNotifier",
    "SSMService",
    "SSMServiceError",
    "SettlementLedger",
    "StaticIdentityService",
    "StripePaymentGateway",
    "base_price_from_client_pays",
    "find_conflict",
    "get_dynamodb_service",
    "get_ssm_service",
    "quote",
    "quote_stay",
    "ranges_overlap",
    "reset_dynamodb_service",
]
