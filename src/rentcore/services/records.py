"""Conversions between pydantic models and DynamoDB items.

Dates and datetimes are stored as ISO strings, enums by value, money as
DynamoDB numbers (Decimal) and optional fields are omitted when unset.
"""

import datetime as dt
from decimal import Decimal
from typing import Any

from rentcore.models import (
    BlockedRange,
    CommissionQuote,
    CommissionRule,
    CommissionScope,
    HostBalance,
    LedgerEntry,
    LedgerEntryKind,
    Listing,
    PaymentStatus,
    PayoutAccount,
    PayoutMethod,
    Reservation,
    ReservationStatus,
    TransitionRecord,
    WithdrawalRequest,
    WithdrawalStatus,
    WithdrawalTier,
)


def _compact(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in item.items() if v is not None}


def _iso(value: dt.date | dt.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _datetime(value: str | None) -> dt.datetime | None:
    return dt.datetime.fromisoformat(value) if value else None


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


# Listings


def listing_to_item(listing: Listing) -> dict[str, Any]:
    return _compact(
        {
            "listing_id": listing.listing_id,
            "owner_ids": list(listing.owner_ids),
            "category_id": listing.category_id,
            "base_price": listing.base_price,
            "currency": listing.currency,
            "max_guests": listing.max_guests,
            "is_archived": listing.is_archived,
            "version": listing.version,
        }
    )


def item_to_listing(item: dict[str, Any]) -> Listing:
    return Listing(
        listing_id=item["listing_id"],
        owner_ids=[str(o) for o in item["owner_ids"]],
        category_id=item.get("category_id"),
        base_price=_decimal(item["base_price"]),
        currency=item.get("currency", "EUR"),
        max_guests=int(item["max_guests"]) if item.get("max_guests") is not None else None,
        is_archived=bool(item.get("is_archived", False)),
        version=int(item.get("version", 0)),
    )


def blocked_range_to_item(block: BlockedRange) -> dict[str, Any]:
    return _compact(
        {
            "listing_id": block.listing_id,
            "block_id": block.block_id,
            "start_date": block.start_date.isoformat(),
            "end_date": block.end_date.isoformat(),
            "title": block.title,
            "reason": block.reason,
            "created_by": block.created_by,
            "created_at": block.created_at.isoformat(),
        }
    )


def item_to_blocked_range(item: dict[str, Any]) -> BlockedRange:
    return BlockedRange(
        listing_id=item["listing_id"],
        block_id=item["block_id"],
        start_date=dt.date.fromisoformat(item["start_date"]),
        end_date=dt.date.fromisoformat(item["end_date"]),
        title=item["title"],
        reason=item.get("reason"),
        created_by=item["created_by"],
        created_at=dt.datetime.fromisoformat(item["created_at"]),
    )


# Commission


def rule_to_item(rule: CommissionRule) -> dict[str, Any]:
    return _compact(
        {
            "rule_id": rule.rule_id,
            "scope": rule.scope.value,
            "category_id": rule.category_id,
            "host_rate": rule.host_rate,
            "host_fixed": rule.host_fixed,
            "client_rate": rule.client_rate,
            "client_fixed": rule.client_fixed,
            "is_active": rule.is_active,
            "activated_at": _iso(rule.activated_at),
        }
    )


def item_to_rule(item: dict[str, Any]) -> CommissionRule:
    return CommissionRule(
        rule_id=item["rule_id"],
        scope=CommissionScope(item.get("scope", CommissionScope.GLOBAL.value)),
        category_id=item.get("category_id"),
        host_rate=_decimal(item.get("host_rate", 0)),
        host_fixed=_decimal(item.get("host_fixed", 0)),
        client_rate=_decimal(item.get("client_rate", 0)),
        client_fixed=_decimal(item.get("client_fixed", 0)),
        is_active=bool(item.get("is_active", True)),
        activated_at=_datetime(item.get("activated_at")),
    )


def quote_to_item(quote: CommissionQuote) -> dict[str, Any]:
    return {
        "base_price": quote.base_price,
        "host_commission": quote.host_commission,
        "client_commission": quote.client_commission,
        "host_receives": quote.host_receives,
        "client_pays": quote.client_pays,
        "currency": quote.currency,
        "rule_id": quote.rule_id,
        "host_rate": quote.host_rate,
        "host_fixed": quote.host_fixed,
        "client_rate": quote.client_rate,
        "client_fixed": quote.client_fixed,
    }


def item_to_quote(item: dict[str, Any]) -> CommissionQuote:
    return CommissionQuote(
        base_price=_decimal(item["base_price"]),
        host_commission=_decimal(item["host_commission"]),
        client_commission=_decimal(item["client_commission"]),
        host_receives=_decimal(item["host_receives"]),
        client_pays=_decimal(item["client_pays"]),
        currency=item.get("currency", "EUR"),
        rule_id=item["rule_id"],
        host_rate=_decimal(item["host_rate"]),
        host_fixed=_decimal(item["host_fixed"]),
        client_rate=_decimal(item["client_rate"]),
        client_fixed=_decimal(item["client_fixed"]),
    )


# Reservations


def reservation_to_item(reservation: Reservation) -> dict[str, Any]:
    return _compact(
        {
            "reservation_id": reservation.reservation_id,
            "listing_id": reservation.listing_id,
            "host_id": reservation.host_id,
            "guest_id": reservation.guest_id,
            "headcount": reservation.headcount,
            "arrival_date": reservation.arrival_date.isoformat(),
            "departure_date": reservation.departure_date.isoformat(),
            "nights": reservation.nights,
            "status": reservation.status.value,
            "payment_status": reservation.payment_status.value,
            "host_approved": reservation.host_approved,
            "base_price": reservation.base_price,
            "commission": quote_to_item(reservation.commission),
            "guest_paid_total": reservation.guest_paid_total,
            "host_receivable": reservation.host_receivable,
            "currency": reservation.currency,
            "payment_reference": reservation.payment_reference,
            "refusal_reason": reservation.refusal_reason,
            "created_at": reservation.created_at.isoformat(),
            "updated_at": reservation.updated_at.isoformat(),
            "version": reservation.version,
        }
    )


def item_to_reservation(item: dict[str, Any]) -> Reservation:
    return Reservation(
        reservation_id=item["reservation_id"],
        listing_id=item["listing_id"],
        host_id=item["host_id"],
        guest_id=item["guest_id"],
        headcount=int(item["headcount"]),
        arrival_date=dt.date.fromisoformat(item["arrival_date"]),
        departure_date=dt.date.fromisoformat(item["departure_date"]),
        nights=int(item["nights"]),
        status=ReservationStatus(item["status"]),
        payment_status=PaymentStatus(item["payment_status"]),
        host_approved=bool(item.get("host_approved", False)),
        base_price=_decimal(item["base_price"]),
        commission=item_to_quote(item["commission"]),
        guest_paid_total=_decimal(item["guest_paid_total"]),
        host_receivable=_decimal(item["host_receivable"]),
        currency=item.get("currency", "EUR"),
        payment_reference=item.get("payment_reference"),
        refusal_reason=item.get("refusal_reason"),
        created_at=dt.datetime.fromisoformat(item["created_at"]),
        updated_at=dt.datetime.fromisoformat(item["updated_at"]),
        version=int(item.get("version", 0)),
    )


def history_to_item(record: TransitionRecord) -> dict[str, Any]:
    return _compact(
        {
            "subject_id": record.subject_id,
            "sequence": record.sequence,
            "previous_status": record.previous_status,
            "new_status": record.new_status,
            "actor_id": record.actor_id,
            "occurred_at": record.occurred_at.isoformat(),
            "reason": record.reason,
        }
    )


def item_to_history(item: dict[str, Any]) -> TransitionRecord:
    return TransitionRecord(
        subject_id=item["subject_id"],
        sequence=item["sequence"],
        previous_status=item.get("previous_status"),
        new_status=item["new_status"],
        actor_id=item["actor_id"],
        occurred_at=dt.datetime.fromisoformat(item["occurred_at"]),
        reason=item.get("reason"),
    )


# Settlement


def ledger_entry_to_item(entry: LedgerEntry) -> dict[str, Any]:
    return {
        "entry_id": entry.entry_id,
        "host_id": entry.host_id,
        "reservation_id": entry.reservation_id,
        "kind": entry.kind.value,
        "amount": entry.amount,
        "currency": entry.currency,
        "created_at": entry.created_at.isoformat(),
    }


def item_to_ledger_entry(item: dict[str, Any]) -> LedgerEntry:
    return LedgerEntry(
        entry_id=item["entry_id"],
        host_id=item["host_id"],
        reservation_id=item["reservation_id"],
        kind=LedgerEntryKind(item["kind"]),
        amount=_decimal(item["amount"]),
        currency=item.get("currency", "EUR"),
        created_at=dt.datetime.fromisoformat(item["created_at"]),
    )


def balance_to_item(balance: HostBalance) -> dict[str, Any]:
    return {
        "host_id": balance.host_id,
        "gross_committed": balance.gross_committed,
        "gross_settled": balance.gross_settled,
        "total_withdrawn": balance.total_withdrawn,
        "pending_withdrawals": balance.pending_withdrawals,
        "amount_available_50": balance.amount_available_50,
        "amount_available_100": balance.amount_available_100,
        "currency": balance.currency,
    }


def item_to_balance(item: dict[str, Any]) -> HostBalance:
    return HostBalance(
        host_id=item["host_id"],
        gross_committed=_decimal(item["gross_committed"]),
        gross_settled=_decimal(item["gross_settled"]),
        total_withdrawn=_decimal(item["total_withdrawn"]),
        pending_withdrawals=_decimal(item["pending_withdrawals"]),
        amount_available_50=_decimal(item["amount_available_50"]),
        amount_available_100=_decimal(item["amount_available_100"]),
        currency=item.get("currency", "EUR"),
    )


def payout_account_to_item(account: PayoutAccount) -> dict[str, Any]:
    return _compact(
        {
            "account_id": account.account_id,
            "host_id": account.host_id,
            "method": account.method.value,
            "account_holder_name": account.account_holder_name,
            "iban": account.iban,
            "card_number": account.card_number,
            "card_email": account.card_email,
            "mobile_number": account.mobile_number,
            "paypal_email": account.paypal_email,
            "moneygram_full_name": account.moneygram_full_name,
            "moneygram_phone": account.moneygram_phone,
            "is_default": account.is_default,
            "is_validated": account.is_validated,
            "validated_by": account.validated_by,
            "validated_at": _iso(account.validated_at),
            "created_at": account.created_at.isoformat(),
        }
    )


def item_to_payout_account(item: dict[str, Any]) -> PayoutAccount:
    return PayoutAccount(
        account_id=item["account_id"],
        host_id=item["host_id"],
        method=PayoutMethod(item["method"]),
        account_holder_name=item["account_holder_name"],
        iban=item.get("iban"),
        card_number=item.get("card_number"),
        card_email=item.get("card_email"),
        mobile_number=item.get("mobile_number"),
        paypal_email=item.get("paypal_email"),
        moneygram_full_name=item.get("moneygram_full_name"),
        moneygram_phone=item.get("moneygram_phone"),
        is_default=bool(item.get("is_default", False)),
        is_validated=bool(item.get("is_validated", False)),
        validated_by=item.get("validated_by"),
        validated_at=_datetime(item.get("validated_at")),
        created_at=dt.datetime.fromisoformat(item["created_at"]),
    )


def withdrawal_to_item(withdrawal: WithdrawalRequest) -> dict[str, Any]:
    return _compact(
        {
            "withdrawal_id": withdrawal.withdrawal_id,
            "host_id": withdrawal.host_id,
            "amount": withdrawal.amount,
            "tier": withdrawal.tier.value,
            "balance_snapshot": balance_to_item(withdrawal.balance_snapshot),
            "status": withdrawal.status.value,
            "payout_method": withdrawal.payout_method.value,
            "payout_account_id": withdrawal.payout_account_id,
            "currency": withdrawal.currency,
            "notes": withdrawal.notes,
            "admin_notes": withdrawal.admin_notes,
            "rejection_reason": withdrawal.rejection_reason,
            "processed_by": withdrawal.processed_by,
            "processed_at": _iso(withdrawal.processed_at),
            "completed_at": _iso(withdrawal.completed_at),
            "created_at": withdrawal.created_at.isoformat(),
            "updated_at": withdrawal.updated_at.isoformat(),
            "version": withdrawal.version,
        }
    )


def item_to_withdrawal(item: dict[str, Any]) -> WithdrawalRequest:
    return WithdrawalRequest(
        withdrawal_id=item["withdrawal_id"],
        host_id=item["host_id"],
        amount=_decimal(item["amount"]),
        tier=WithdrawalTier(item["tier"]),
        balance_snapshot=item_to_balance(item["balance_snapshot"]),
        status=WithdrawalStatus(item["status"]),
        payout_method=PayoutMethod(item["payout_method"]),
        payout_account_id=item.get("payout_account_id"),
        currency=item.get("currency", "EUR"),
        notes=item.get("notes"),
        admin_notes=item.get("admin_notes"),
        rejection_reason=item.get("rejection_reason"),
        processed_by=item.get("processed_by"),
        processed_at=_datetime(item.get("processed_at")),
        completed_at=_datetime(item.get("completed_at")),
        created_at=dt.datetime.fromisoformat(item["created_at"]),
        updated_at=dt.datetime.fromisoformat(item["updated_at"]),
        version=int(item.get("version", 0)),
    )
