"""Settlement ledger and withdrawal balance engine.

Each host has one account item in the ``host-accounts`` table holding
running totals:

    gross_committed      sum of COMMITTED credits (stays that reached RESERVED)
    gross_settled        sum of SETTLED credits (stays that reached CHECKOUT)
    pending_withdrawals  PENDING + ACCOUNT_VALIDATION + PROCESSING requests
    total_withdrawn      COMPLETED requests
    version              per-host serialization token

Every change to a total happens in the same transaction as the ledger
entry or withdrawal write that causes it, so a single strongly consistent
read of the account item yields an exact balance. Inserting a withdrawal
also bumps ``version`` conditionally, which serializes the
compute-validate-insert sequence per host.
"""

import datetime as dt
import re
import uuid
from collections.abc import Callable
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from rentcore.config import Settings, get_settings
from rentcore.models import (
    BookingError,
    ErrorCode,
    HostBalance,
    LedgerEntry,
    LedgerEntryKind,
    PayoutAccount,
    PayoutMethod,
    Reservation,
    WithdrawalRequest,
    WithdrawalStats,
    WithdrawalStatus,
    WithdrawalStatusSummary,
    WithdrawalTier,
)
from rentcore.utils.logging import get_logger, log_transition, log_withdrawal_operation

from .commission import quote, round_money
from .history import history_op, read_history
from .identity import IdentityService
from .notifications import Notifier, safe_notify
from .records import (
    item_to_ledger_entry,
    item_to_payout_account,
    item_to_withdrawal,
    ledger_entry_to_item,
    payout_account_to_item,
    withdrawal_to_item,
)
from .state_machine import NON_TERMINAL_WITHDRAWALS, WITHDRAWAL_TRANSITIONS, ensure_transition

if TYPE_CHECKING:
    from rentcore.models import TransitionRecord

    from .dynamodb import DynamoDBService

logger = get_logger(__name__)

PARTIAL_SHARE = Decimal("0.5")

MOBILE_MONEY_PATTERN = re.compile(r"^\+261\s?\d{2}\s?\d{2}\s?\d{3}\s?\d{2}$")

# Fields each payout method must provide
REQUIRED_PAYOUT_FIELDS: dict[PayoutMethod, tuple[str, ...]] = {
    PayoutMethod.SEPA_TRANSFER: ("iban",),
    PayoutMethod.PRIPEO: ("card_number", "card_email"),
    PayoutMethod.MOBILE_MONEY: ("mobile_number",),
    PayoutMethod.PAYPAL: ("paypal_email",),
    PayoutMethod.MONEYGRAM: ("moneygram_full_name", "moneygram_phone"),
}

_ACCOUNT_TOTALS = ("gross_committed", "gross_settled", "pending_withdrawals", "total_withdrawn")


def validate_payout_details(method: PayoutMethod, details: dict[str, str | None]) -> None:
    """Check the method-specific fields of a payout account.

    Raises:
        BookingError: INVALID_PAYOUT_ACCOUNT naming the missing or malformed field
    """
    for field in REQUIRED_PAYOUT_FIELDS[method]:
        if not details.get(field):
            raise BookingError(
                ErrorCode.INVALID_PAYOUT_ACCOUNT,
                details={"method": method.value, "missing_field": field},
            )
    if method == PayoutMethod.MOBILE_MONEY:
        number = details["mobile_number"] or ""
        if not MOBILE_MONEY_PATTERN.match(number):
            raise BookingError(
                ErrorCode.INVALID_PAYOUT_ACCOUNT,
                details={"method": method.value, "expected_format": "+261 XX XX XXX XX"},
            )


class SettlementLedger:
    """Host credits, balances, payout accounts and withdrawal requests."""

    LEDGER_TABLE = "ledger"
    HOST_ACCOUNTS_TABLE = "host-accounts"
    WITHDRAWALS_TABLE = "withdrawals"
    PAYOUT_ACCOUNTS_TABLE = "payout-accounts"

    def __init__(
        self,
        db: "DynamoDBService",
        identity: IdentityService,
        notifier: Notifier,
        settings: Settings | None = None,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        """Initialize the ledger.

        Args:
            db: DynamoDB service instance
            identity: Decides who may act as administrator
            notifier: Receives withdrawal events
            settings: Runtime settings (defaults to environment)
            clock: Callable returning the current UTC time (for tests)
        """
        self.db = db
        self.identity = identity
        self.notifier = notifier
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: dt.datetime.now(dt.UTC))

    # Credits

    def receivable_for(self, reservation: Reservation) -> Decimal:
        """Host receivable for a reservation, from its commission snapshot."""
        snapshot = reservation.commission
        return quote(reservation.base_price, snapshot.rule(), snapshot.currency).host_receives

    def credit_ops(
        self,
        reservation: Reservation,
        kind: LedgerEntryKind,
        now: dt.datetime,
    ) -> list[dict[str, Any]]:
        """Transaction items crediting a reservation's host once per kind.

        The entry id is the idempotency key: a second credit of the same kind
        fails its condition and cancels the surrounding transaction.
        """
        amount = self.receivable_for(reservation)
        entry = LedgerEntry(
            entry_id=LedgerEntry.make_id(reservation.reservation_id, kind),
            host_id=reservation.host_id,
            reservation_id=reservation.reservation_id,
            kind=kind,
            amount=amount,
            currency=reservation.currency,
            created_at=now,
        )
        total = "gross_committed" if kind == LedgerEntryKind.COMMITTED else "gross_settled"
        return [
            self.db.put_op(
                self.LEDGER_TABLE,
                ledger_entry_to_item(entry),
                condition_expression="attribute_not_exists(entry_id)",
            ),
            self.db.update_op(
                self.HOST_ACCOUNTS_TABLE,
                {"host_id": reservation.host_id},
                f"SET #c = if_not_exists(#c, :currency) ADD {total} :amount",
                {":amount": amount, ":currency": reservation.currency},
                expression_attribute_names={"#c": "currency"},
            ),
        ]

    def get_entry(self, reservation_id: str, kind: LedgerEntryKind) -> LedgerEntry | None:
        item = self.db.get_item(
            self.LEDGER_TABLE, {"entry_id": LedgerEntry.make_id(reservation_id, kind)}
        )
        return item_to_ledger_entry(item) if item else None

    def ledger_entries(self, host_id: str) -> list[LedgerEntry]:
        items = self.db.query_by_gsi(self.LEDGER_TABLE, "host_id-index", "host_id", host_id)
        return sorted((item_to_ledger_entry(i) for i in items), key=lambda e: e.created_at)

    # Balance

    def _get_account(self, host_id: str) -> dict[str, Any]:
        item = self.db.get_item(self.HOST_ACCOUNTS_TABLE, {"host_id": host_id}) or {}
        account: dict[str, Any] = {
            "host_id": host_id,
            "version": int(item.get("version", 0)),
            "currency": item.get("currency", self.settings.default_currency),
        }
        for total in _ACCOUNT_TOTALS:
            account[total] = Decimal(str(item.get(total, 0)))
        return account

    def _balance_from_account(self, account: dict[str, Any]) -> HostBalance:
        currency = account["currency"]
        tied_up = account["pending_withdrawals"] + account["total_withdrawn"]
        # Tied-up funds count in full against the half share, not halved as in
        # 0.5 * (gross - tied): withdrawals of committed-but-undelivered money
        # then never exceed half of the committed gross in total.
        half_committed = round_money(account["gross_committed"] * PARTIAL_SHARE, currency)
        return HostBalance(
            host_id=account["host_id"],
            gross_committed=account["gross_committed"],
            gross_settled=account["gross_settled"],
            total_withdrawn=account["total_withdrawn"],
            pending_withdrawals=account["pending_withdrawals"],
            amount_available_50=max(Decimal("0"), half_committed - tied_up),
            amount_available_100=max(Decimal("0"), account["gross_settled"] - tied_up),
            currency=currency,
        )

    def compute_balance(self, host_id: str) -> HostBalance:
        """Compute a host's withdrawable amounts from committed state.

        Args:
            host_id: Host to compute for

        Returns:
            HostBalance with both tier maxima
        """
        balance = self._balance_from_account(self._get_account(host_id))
        log_withdrawal_operation(
            logger,
            "compute_balance",
            host_id=host_id,
            amount_available_50=str(balance.amount_available_50),
            amount_available_100=str(balance.amount_available_100),
        )
        return balance

    @staticmethod
    def _check_amount(balance: HostBalance, amount: Decimal, tier: WithdrawalTier) -> None:
        if amount <= 0:
            raise BookingError(ErrorCode.INVALID_AMOUNT, details={"amount": str(amount)})
        maximum = balance.maximum_for(tier)
        if amount > maximum:
            raise BookingError(
                ErrorCode.INSUFFICIENT_BALANCE,
                details={"requested": str(amount), "available": str(maximum), "tier": tier.value},
            )

    def validate(self, host_id: str, amount: Decimal, tier: WithdrawalTier) -> HostBalance:
        """Check an amount against a freshly computed tier maximum.

        Raises:
            BookingError: INVALID_AMOUNT or INSUFFICIENT_BALANCE
        """
        balance = self.compute_balance(host_id)
        self._check_amount(balance, amount, tier)
        return balance

    # Withdrawals

    def get_withdrawal(self, withdrawal_id: str) -> WithdrawalRequest:
        item = self.db.get_item(self.WITHDRAWALS_TABLE, {"withdrawal_id": withdrawal_id})
        if not item:
            raise BookingError(
                ErrorCode.WITHDRAWAL_NOT_FOUND, details={"withdrawal_id": withdrawal_id}
            )
        return item_to_withdrawal(item)

    def list_withdrawals(self, host_id: str) -> list[WithdrawalRequest]:
        items = self.db.query_by_gsi(self.WITHDRAWALS_TABLE, "host_id-index", "host_id", host_id)
        return sorted((item_to_withdrawal(i) for i in items), key=lambda w: w.created_at)

    def request_withdrawal(
        self,
        host_id: str,
        amount: Decimal,
        tier: WithdrawalTier,
        payout_method: PayoutMethod,
        payout_account_id: str | None = None,
        notes: str | None = None,
    ) -> WithdrawalRequest:
        """Create a withdrawal request after validating it against the balance.

        The request starts PENDING when it targets a validated payout account
        and ACCOUNT_VALIDATION otherwise. Validation and insertion commit as
        one unit per host; a lost race re-reads and re-validates.

        Raises:
            BookingError: INVALID_AMOUNT, INSUFFICIENT_BALANCE,
                PAYOUT_ACCOUNT_NOT_FOUND, INVALID_PAYOUT_ACCOUNT or STALE_STATE
        """
        if amount <= 0:
            raise BookingError(ErrorCode.INVALID_AMOUNT, details={"amount": str(amount)})

        status = WithdrawalStatus.ACCOUNT_VALIDATION
        if payout_account_id:
            account = self.get_payout_account(payout_account_id)
            if account.host_id != host_id:
                raise BookingError(
                    ErrorCode.PAYOUT_ACCOUNT_NOT_FOUND,
                    details={"payout_account_id": payout_account_id},
                )
            if account.method != payout_method:
                raise BookingError(
                    ErrorCode.INVALID_PAYOUT_ACCOUNT,
                    details={"method": payout_method.value, "account_method": account.method.value},
                )
            if account.is_validated:
                status = WithdrawalStatus.PENDING

        for attempt in range(1, self.settings.max_write_attempts + 1):
            host_account = self._get_account(host_id)
            balance = self._balance_from_account(host_account)
            try:
                self._check_amount(balance, amount, tier)
            except BookingError as e:
                log_withdrawal_operation(
                    logger,
                    "request_withdrawal",
                    host_id=host_id,
                    amount=amount,
                    tier=tier.value,
                    error=e.code.name,
                )
                raise

            now = self._clock()
            withdrawal = WithdrawalRequest(
                withdrawal_id=f"WDR-{now.year}-{uuid.uuid4().hex[:8].upper()}",
                host_id=host_id,
                amount=amount,
                tier=tier,
                balance_snapshot=balance,
                status=status,
                payout_method=payout_method,
                payout_account_id=payout_account_id,
                currency=balance.currency,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            expected = host_account["version"]
            token_condition = "#v = :expected"
            if expected == 0:
                token_condition = "attribute_not_exists(#v) OR #v = :expected"

            committed = self.db.transact_write(
                [
                    self.db.put_op(
                        self.WITHDRAWALS_TABLE,
                        withdrawal_to_item(withdrawal),
                        condition_expression="attribute_not_exists(withdrawal_id)",
                    ),
                    self.db.update_op(
                        self.HOST_ACCOUNTS_TABLE,
                        {"host_id": host_id},
                        "SET #v = :next ADD pending_withdrawals :amount",
                        {":expected": expected, ":next": expected + 1, ":amount": amount},
                        expression_attribute_names={"#v": "version"},
                        condition_expression=token_condition,
                    ),
                    history_op(
                        self.db,
                        subject_id=withdrawal.withdrawal_id,
                        version=withdrawal.version,
                        previous_status=None,
                        new_status=status.value,
                        actor_id=host_id,
                        occurred_at=now,
                    ),
                ]
            )
            if committed:
                log_withdrawal_operation(
                    logger,
                    "request_withdrawal",
                    host_id=host_id,
                    withdrawal_id=withdrawal.withdrawal_id,
                    amount=amount,
                    tier=tier.value,
                    status=status.value,
                )
                safe_notify(
                    self.notifier,
                    "withdrawal.requested",
                    {"withdrawal_id": withdrawal.withdrawal_id, "host_id": host_id},
                )
                return withdrawal

            logger.warning(
                "Withdrawal request for host %s lost a race (attempt %d), re-validating",
                host_id,
                attempt,
            )

        raise BookingError(ErrorCode.STALE_STATE, details={"host_id": host_id})

    def _require_admin(self, actor_id: str) -> None:
        if not self.identity.is_admin(actor_id):
            raise BookingError(ErrorCode.UNAUTHORIZED, details={"actor_id": actor_id})

    def _transition(
        self,
        withdrawal_id: str,
        target: WithdrawalStatus,
        actor_id: str,
        *,
        reason: str | None = None,
        changes: dict[str, Any] | None = None,
        authorize: Callable[[WithdrawalRequest], None] | None = None,
        extra_ops: Callable[[WithdrawalRequest, dt.datetime], list[dict[str, Any]]] | None = None,
    ) -> WithdrawalRequest:
        """Move a withdrawal to ``target`` with compare-and-swap on its version.

        Totals on the host account follow the status change in the same
        transaction. A concurrent status change raises STALE_STATE; a bare
        version bump is retried.
        """
        first_status: WithdrawalStatus | None = None
        for attempt in range(1, self.settings.max_write_attempts + 1):
            current = self.get_withdrawal(withdrawal_id)
            if authorize is not None:
                authorize(current)
            if first_status is None:
                first_status = current.status
                ensure_transition(WITHDRAWAL_TRANSITIONS, current.status, target)
            elif current.status != first_status:
                log_transition(
                    logger,
                    "withdrawal",
                    withdrawal_id,
                    previous_status=first_status.value,
                    new_status=target.value,
                    actor_id=actor_id,
                    result="stale",
                )
                raise BookingError(
                    ErrorCode.STALE_STATE,
                    details={"withdrawal_id": withdrawal_id, "status": current.status.value},
                )

            now = self._clock()
            updated = current.model_copy(
                update={
                    **(changes or {}),
                    "status": target,
                    "updated_at": now,
                    "version": current.version + 1,
                }
            )
            ops = [
                self.db.put_op(
                    self.WITHDRAWALS_TABLE,
                    withdrawal_to_item(updated),
                    condition_expression="#v = :v AND #s = :s",
                    expression_attribute_names={"#v": "version", "#s": "status"},
                    expression_attribute_values={
                        ":v": current.version,
                        ":s": current.status.value,
                    },
                ),
                history_op(
                    self.db,
                    subject_id=withdrawal_id,
                    version=updated.version,
                    previous_status=current.status.value,
                    new_status=target.value,
                    actor_id=actor_id,
                    occurred_at=now,
                    reason=reason,
                ),
            ]
            totals_op = self._totals_op(current, target)
            if totals_op is not None:
                ops.append(totals_op)
            if extra_ops is not None:
                ops.extend(extra_ops(current, now))

            if self.db.transact_write(ops):
                log_transition(
                    logger,
                    "withdrawal",
                    withdrawal_id,
                    previous_status=current.status.value,
                    new_status=target.value,
                    actor_id=actor_id,
                    reason=reason,
                    host_id=current.host_id,
                )
                safe_notify(
                    self.notifier,
                    f"withdrawal.{target.value.lower()}",
                    {"withdrawal_id": withdrawal_id, "host_id": current.host_id},
                )
                return updated

            logger.warning(
                "Withdrawal %s write conflicted (attempt %d), retrying", withdrawal_id, attempt
            )

        raise BookingError(ErrorCode.STALE_STATE, details={"withdrawal_id": withdrawal_id})

    def _totals_op(
        self, withdrawal: WithdrawalRequest, target: WithdrawalStatus
    ) -> dict[str, Any] | None:
        if target == WithdrawalStatus.COMPLETED:
            expression = "ADD pending_withdrawals :minus, total_withdrawn :plus"
        elif target in (WithdrawalStatus.REJECTED, WithdrawalStatus.CANCELLED):
            expression = "ADD pending_withdrawals :minus"
        else:
            return None
        values = {":minus": -withdrawal.amount}
        if target == WithdrawalStatus.COMPLETED:
            values[":plus"] = withdrawal.amount
        return self.db.update_op(
            self.HOST_ACCOUNTS_TABLE, {"host_id": withdrawal.host_id}, expression, values
        )

    def validate_withdrawal_account(
        self, withdrawal_id: str, admin_id: str, admin_notes: str | None = None
    ) -> WithdrawalRequest:
        """ACCOUNT_VALIDATION -> PENDING; also marks the payout account validated."""
        self._require_admin(admin_id)

        def validate_account_ops(current: WithdrawalRequest, now: dt.datetime) -> list[dict[str, Any]]:
            if not current.payout_account_id:
                return []
            return [
                self.db.update_op(
                    self.PAYOUT_ACCOUNTS_TABLE,
                    {"account_id": current.payout_account_id},
                    "SET is_validated = :t, validated_by = :admin, validated_at = :now",
                    {":t": True, ":admin": admin_id, ":now": now.isoformat()},
                    condition_expression="attribute_exists(account_id)",
                )
            ]

        return self._transition(
            withdrawal_id,
            WithdrawalStatus.PENDING,
            admin_id,
            reason="account_validated",
            changes={"admin_notes": admin_notes} if admin_notes else None,
            extra_ops=validate_account_ops,
        )

    def approve_withdrawal(
        self, withdrawal_id: str, admin_id: str, admin_notes: str | None = None
    ) -> WithdrawalRequest:
        """PENDING -> PROCESSING."""
        self._require_admin(admin_id)
        now = self._clock()
        changes: dict[str, Any] = {"processed_by": admin_id, "processed_at": now}
        if admin_notes:
            changes["admin_notes"] = admin_notes
        return self._transition(
            withdrawal_id, WithdrawalStatus.PROCESSING, admin_id, changes=changes
        )

    def complete_withdrawal(self, withdrawal_id: str, admin_id: str) -> WithdrawalRequest:
        """PROCESSING -> COMPLETED once the payout was sent."""
        self._require_admin(admin_id)
        return self._transition(
            withdrawal_id,
            WithdrawalStatus.COMPLETED,
            admin_id,
            changes={"completed_at": self._clock()},
        )

    def reject_withdrawal(
        self, withdrawal_id: str, admin_id: str, reason: str
    ) -> WithdrawalRequest:
        """Reject a non-terminal request; its amount returns to the balance."""
        self._require_admin(admin_id)
        return self._transition(
            withdrawal_id,
            WithdrawalStatus.REJECTED,
            admin_id,
            reason=reason,
            changes={
                "rejection_reason": reason,
                "processed_by": admin_id,
                "processed_at": self._clock(),
            },
        )

    def cancel_withdrawal(self, withdrawal_id: str, host_id: str) -> WithdrawalRequest:
        """Host withdraws its own PENDING or ACCOUNT_VALIDATION request."""

        def owner_only(current: WithdrawalRequest) -> None:
            if current.host_id != host_id:
                raise BookingError(ErrorCode.UNAUTHORIZED, details={"actor_id": host_id})

        return self._transition(
            withdrawal_id,
            WithdrawalStatus.CANCELLED,
            host_id,
            reason="cancelled_by_host",
            authorize=owner_only,
        )

    def withdrawal_stats(self, host_id: str) -> WithdrawalStats:
        """Balance plus count and total per withdrawal status."""
        summaries: dict[WithdrawalStatus, WithdrawalStatusSummary] = {}
        for withdrawal in self.list_withdrawals(host_id):
            summary = summaries.get(withdrawal.status)
            if summary is None:
                summary = WithdrawalStatusSummary(
                    status=withdrawal.status, count=0, total_amount=Decimal("0")
                )
                summaries[withdrawal.status] = summary
            summary.count += 1
            summary.total_amount += withdrawal.amount
        return WithdrawalStats(
            balance=self.compute_balance(host_id),
            requests=[summaries[s] for s in WithdrawalStatus if s in summaries],
        )

    def get_history(self, withdrawal_id: str) -> list["TransitionRecord"]:
        return read_history(self.db, withdrawal_id)

    # Payout accounts

    def create_payout_account(
        self,
        host_id: str,
        method: PayoutMethod,
        account_holder_name: str,
        **details: str | None,
    ) -> PayoutAccount:
        """Register a payout account; the host's first account becomes default.

        Args:
            host_id: Owner of the account
            method: Payout method
            account_holder_name: Name on the account
            **details: Method-specific fields (iban, card_number, card_email,
                mobile_number, paypal_email, moneygram_full_name, moneygram_phone)

        Raises:
            BookingError: INVALID_PAYOUT_ACCOUNT if required fields are missing
        """
        validate_payout_details(method, details)
        is_first = not self.list_payout_accounts(host_id)
        account = PayoutAccount(
            account_id=f"PAC-{uuid.uuid4().hex[:8].upper()}",
            host_id=host_id,
            method=method,
            account_holder_name=account_holder_name,
            is_default=is_first,
            created_at=self._clock(),
            **{k: v for k, v in details.items() if k in PayoutAccount.model_fields},
        )
        self.db.put_item(self.PAYOUT_ACCOUNTS_TABLE, payout_account_to_item(account))
        logger.info("Payout account %s created for host %s", account.account_id, host_id)
        return account

    def get_payout_account(self, account_id: str) -> PayoutAccount:
        item = self.db.get_item(self.PAYOUT_ACCOUNTS_TABLE, {"account_id": account_id})
        if not item:
            raise BookingError(
                ErrorCode.PAYOUT_ACCOUNT_NOT_FOUND, details={"payout_account_id": account_id}
            )
        return item_to_payout_account(item)

    def list_payout_accounts(self, host_id: str) -> list[PayoutAccount]:
        items = self.db.query_by_gsi(
            self.PAYOUT_ACCOUNTS_TABLE, "host_id-index", "host_id", host_id
        )
        accounts = [item_to_payout_account(i) for i in items]
        return sorted(accounts, key=lambda a: (not a.is_default, a.created_at))

    def set_default_payout_account(self, host_id: str, account_id: str) -> PayoutAccount:
        target = self.get_payout_account(account_id)
        if target.host_id != host_id:
            raise BookingError(
                ErrorCode.PAYOUT_ACCOUNT_NOT_FOUND, details={"payout_account_id": account_id}
            )
        for account in self.list_payout_accounts(host_id):
            is_default = account.account_id == account_id
            if account.is_default != is_default:
                self.db.update_item(
                    self.PAYOUT_ACCOUNTS_TABLE,
                    {"account_id": account.account_id},
                    "SET is_default = :d",
                    {":d": is_default},
                )
        return target.model_copy(update={"is_default": True})

    def validate_payout_account(self, account_id: str, admin_id: str) -> PayoutAccount:
        """Admin confirms a payout account's details."""
        self._require_admin(admin_id)
        account = self.get_payout_account(account_id)
        now = self._clock()
        self.db.update_item(
            self.PAYOUT_ACCOUNTS_TABLE,
            {"account_id": account_id},
            "SET is_validated = :t, validated_by = :admin, validated_at = :now",
            {":t": True, ":admin": admin_id, ":now": now.isoformat()},
        )
        logger.info("Payout account %s validated by %s", account_id, admin_id)
        return account.model_copy(
            update={"is_validated": True, "validated_by": admin_id, "validated_at": now}
        )

    def delete_payout_account(self, host_id: str, account_id: str) -> None:
        """Delete a payout account unless an open withdrawal still uses it.

        Raises:
            BookingError: PAYOUT_ACCOUNT_NOT_FOUND or INVALID_PAYOUT_ACCOUNT
        """
        account = self.get_payout_account(account_id)
        if account.host_id != host_id:
            raise BookingError(
                ErrorCode.PAYOUT_ACCOUNT_NOT_FOUND, details={"payout_account_id": account_id}
            )
        in_use = [
            w.withdrawal_id
            for w in self.list_withdrawals(host_id)
            if w.payout_account_id == account_id and w.status in NON_TERMINAL_WITHDRAWALS
        ]
        if in_use:
            raise BookingError(
                ErrorCode.INVALID_PAYOUT_ACCOUNT,
                details={"payout_account_id": account_id, "open_withdrawals": ",".join(in_use)},
            )
        self.db.delete_item(self.PAYOUT_ACCOUNTS_TABLE, {"account_id": account_id})
        logger.info("Payout account %s deleted", account_id)
