"""Pytest configuration and fixtures for rentcore tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (all tables and indexes)
- A controllable clock
- A ReservationCore wired with recording collaborators
- Sample listing and commission rule
"""

import datetime as dt
import os
from decimal import Decimal
from typing import Any, Generator

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "rentcore-test")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from rentcore.config import Settings, get_settings  # noqa: E402
from rentcore.core import ReservationCore  # noqa: E402
from rentcore.models import CommissionRule, Listing  # noqa: E402
from rentcore.services.dynamodb import DynamoDBService, reset_dynamodb_service  # noqa: E402
from rentcore.services.identity import StaticIdentityService  # noqa: E402
from rentcore.services.notifications import RecordingNotifier  # noqa: E402
from rentcore.services.payment_gateway import MockPaymentGateway  # noqa: E402

TABLE_PREFIX = "rentcore-test"
ADMIN_ID = "admin-1"
HOST_ID = "host-1"
GUEST_ID = "guest-1"
LISTING_ID = "LST-1"

START_TIME = dt.datetime(2026, 6, 1, 9, 0, tzinfo=dt.UTC)


class FakeClock:
    """Callable clock that tests move forward explicitly."""

    def __init__(self, now: dt.datetime) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += dt.timedelta(**kwargs)

    def set_date(self, day: dt.date) -> None:
        self.now = dt.datetime.combine(day, self.now.timetz())


def _table(
    name: str,
    hash_key: str,
    range_key: str | None = None,
    indexes: tuple[str, ...] = (),
) -> dict[str, Any]:
    attributes = {hash_key, *indexes}
    key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    if range_key:
        attributes.add(range_key)
        key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
    config: dict[str, Any] = {
        "TableName": f"{TABLE_PREFIX}-{name}",
        "KeySchema": key_schema,
        "AttributeDefinitions": [
            {"AttributeName": attr, "AttributeType": "S"} for attr in sorted(attributes)
        ],
        "BillingMode": "PAY_PER_REQUEST",
    }
    if indexes:
        config["GlobalSecondaryIndexes"] = [
            {
                "IndexName": f"{attr}-index",
                "KeySchema": [{"AttributeName": attr, "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            }
            for attr in indexes
        ]
    return config


TABLES = [
    _table("listings", "listing_id"),
    _table("blocked-ranges", "listing_id", "block_id"),
    _table("stay-holds", "listing_id", "reservation_id"),
    _table("reservations", "reservation_id", indexes=("listing_id", "status")),
    _table("history", "subject_id", "sequence"),
    _table("commission-rules", "rule_id"),
    _table("ledger", "entry_id", indexes=("host_id",)),
    _table("host-accounts", "host_id"),
    _table("withdrawals", "withdrawal_id", indexes=("host_id",)),
    _table("payout-accounts", "account_id", indexes=("host_id",)),
    _table("users", "user_id"),
    _table("payment-webhook-events", "event_id"),
]


# === Singletons ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset cached settings and the DynamoDB singleton around each test."""
    get_settings.cache_clear()
    reset_dynamodb_service()
    yield
    reset_dynamodb_service()
    get_settings.cache_clear()


# === AWS Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_tables(aws_credentials: None) -> Generator[Any, None, None]:
    """Create every rentcore table inside a moto context."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        for table_config in TABLES:
            client.create_table(**table_config)
        yield client


@pytest.fixture
def db(dynamodb_tables: Any) -> DynamoDBService:
    return DynamoDBService(TABLE_PREFIX)


# === Collaborators ===


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        table_prefix=TABLE_PREFIX,
        payment_timeout_hours=24,
        max_write_attempts=3,
        admin_ids=frozenset({ADMIN_ID}),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START_TIME)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def core(
    db: DynamoDBService,
    settings: Settings,
    clock: FakeClock,
    notifier: RecordingNotifier,
    gateway: MockPaymentGateway,
) -> ReservationCore:
    """ReservationCore over mocked DynamoDB with recording collaborators."""
    return ReservationCore(
        db=db,
        identity=StaticIdentityService({ADMIN_ID}),
        payment_gateway=gateway,
        notifier=notifier,
        settings=settings,
        clock=clock,
    )


# === Sample Data Fixtures ===


@pytest.fixture
def commission_rule(core: ReservationCore) -> CommissionRule:
    """Active global rule: 10% host commission, 7% guest commission."""
    rule = CommissionRule(
        rule_id="COM-GLOBAL",
        host_rate=Decimal("0.10"),
        client_rate=Decimal("0.07"),
    )
    return core.commission.save_rule(rule)


@pytest.fixture
def listing(core: ReservationCore, commission_rule: CommissionRule) -> Listing:
    """Villa owned by HOST_ID at 100 EUR per night for up to 4 guests."""
    sample = Listing(
        listing_id=LISTING_ID,
        owner_ids=[HOST_ID],
        category_id="villa",
        base_price=Decimal("100.00"),
        currency="EUR",
        max_guests=4,
    )
    return core.booking.save_listing(sample)


@pytest.fixture
def stay() -> tuple[dt.date, dt.date]:
    """Three nights, arriving nine days after START_TIME."""
    return dt.date(2026, 6, 10), dt.date(2026, 6, 13)
