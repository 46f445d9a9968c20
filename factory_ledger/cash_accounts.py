"""
Cash Account Module

Physical pools of money (the cash box and the bank account) with running
balances. Every balance change goes through ``update_balance`` which writes
the new balance and appends one immutable BalanceHistory row in the same
atomic unit, so the history alone can always rebuild the balance.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .money import PaymentMode, AmountLike, ZERO, round_money, sum_money, format_money
from .storage import StorageInterface, StorageRecord, EntityLocks
from .audit import AuditTrail, AuditEventType
from .exceptions import NotFoundError
from .logging_config import get_logger, log_action


class AccountType(Enum):
    CASH = "Cash"
    BANK = "Bank"


class BalanceChangeType(Enum):
    OPENING_BALANCE = "OpeningBalance"
    TRANSACTION = "Transaction"
    MANUAL_ADJUSTMENT = "ManualAdjustment"
    TRANSFER = "Transfer"
    REVERSAL = "Reversal"


@dataclass
class CashAccount(StorageRecord):
    """A cash box or bank account"""
    account_name: str
    account_type: AccountType
    opening_balance: Decimal
    current_balance: Decimal
    opening_date: datetime
    created_by: str
    description: str = ""
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CashAccount':
        data = dict(data)
        data['account_type'] = AccountType(data['account_type'])
        data['opening_balance'] = Decimal(data['opening_balance'])
        data['current_balance'] = Decimal(data['current_balance'])
        data['opening_date'] = datetime.fromisoformat(data['opening_date'])
        return super().from_dict(data)


@dataclass
class BalanceHistory(StorageRecord):
    """
    Append-only audit row for one balance change

    Never updated or deleted; corrections are new rows.
    """
    account_id: str
    change_type: BalanceChangeType
    previous_balance: Decimal
    change_amount: Decimal
    new_balance: Decimal
    transaction_date: datetime
    entered_by: str
    linked_transaction_id: Optional[str] = None
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BalanceHistory':
        data = dict(data)
        data['change_type'] = BalanceChangeType(data['change_type'])
        data['previous_balance'] = Decimal(data['previous_balance'])
        data['change_amount'] = Decimal(data['change_amount'])
        data['new_balance'] = Decimal(data['new_balance'])
        data['transaction_date'] = datetime.fromisoformat(data['transaction_date'])
        return super().from_dict(data)


_MODE_TO_ACCOUNT_TYPE = {
    PaymentMode.CASH: AccountType.CASH,
    PaymentMode.BANK: AccountType.BANK,
}


class CashAccountManager:
    """
    Balance mutation service for cash and bank accounts
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        locks: Optional[EntityLocks] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.locks = locks or EntityLocks()
        self.logger = get_logger("factory_ledger.cash_accounts")

        self.accounts_table = "cash_accounts"
        self.history_table = "balance_history"

    def create_account(
        self,
        account_name: str,
        account_type: AccountType,
        opening_balance: AmountLike,
        actor: str,
        opening_date: Optional[datetime] = None,
        description: str = ""
    ) -> CashAccount:
        """
        Create a cash or bank account and record its opening balance

        Args:
            account_name: Display name ("Main Cash", "Main Bank")
            account_type: Cash or Bank
            opening_balance: Balance at opening; fixed for the account's life
            actor: User creating the account
            opening_date: When the balance was counted (defaults to now)
            description: Free text

        Returns:
            Created CashAccount
        """
        now = datetime.now(timezone.utc)
        opening = round_money(opening_balance)
        opening_date = opening_date or datetime.now()

        account = CashAccount(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_name=account_name,
            account_type=account_type,
            opening_balance=opening,
            current_balance=opening,
            opening_date=opening_date,
            created_by=actor,
            description=description
        )

        history = BalanceHistory(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account.id,
            change_type=BalanceChangeType.OPENING_BALANCE,
            previous_balance=ZERO,
            change_amount=opening,
            new_balance=opening,
            transaction_date=opening_date,
            entered_by=actor,
            notes=f"Opening balance for {account_name}"
        )

        with self.storage.atomic():
            self._save_account(account)
            self.storage.save(self.history_table, history.id, history.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_CREATED,
                entity_type="cash_account",
                entity_id=account.id,
                metadata={
                    "account_name": account_name,
                    "account_type": account_type.value,
                    "opening_balance": opening
                },
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Cash account created: {account_name}",
            actor=actor, action="create_account", resource=f"cash_account:{account.id}",
            extra={"account_type": account_type.value, "opening_balance": format_money(opening)}
        )
        return account

    def update_balance(
        self,
        account_id: str,
        amount: AmountLike,
        change_type: BalanceChangeType,
        notes: str,
        actor: str,
        linked_transaction_id: Optional[str] = None,
        transaction_date: Optional[datetime] = None
    ) -> BalanceHistory:
        """
        Apply a signed amount to an account and append its history row

        The read of the current balance, the balance write and the history
        append happen under the account's lock inside one storage transaction.

        Raises:
            NotFoundError: account does not exist
        """
        change = round_money(amount)

        with self.storage.atomic(), self.locks.hold("cash_account", account_id):
            account = self.get_account(account_id)
            if not account:
                raise NotFoundError("Cash account", account_id)

            now = datetime.now(timezone.utc)
            previous = account.current_balance
            account.current_balance = round_money(previous + change)
            account.updated_at = now

            history = BalanceHistory(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_id=account_id,
                change_type=change_type,
                previous_balance=previous,
                change_amount=change,
                new_balance=account.current_balance,
                transaction_date=transaction_date or datetime.now(),
                entered_by=actor,
                linked_transaction_id=linked_transaction_id,
                notes=notes
            )

            self._save_account(account)
            self.storage.save(self.history_table, history.id, history.to_dict())

            self.audit_trail.log_event(
                event_type=AuditEventType.BALANCE_CHANGED,
                entity_type="cash_account",
                entity_id=account_id,
                metadata={
                    "history_id": history.id,
                    "change_type": change_type.value,
                    "previous_balance": previous,
                    "change_amount": change,
                    "new_balance": account.current_balance,
                    "linked_transaction_id": linked_transaction_id
                },
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Balance changed on {account.account_name}",
            actor=actor, action="update_balance", resource=f"cash_account:{account_id}",
            extra={
                "change_type": change_type.value,
                "change_amount": format_money(change),
                "new_balance": format_money(account.current_balance)
            }
        )
        return history

    def apply_mode_change(
        self,
        payment_mode: PaymentMode,
        amount: AmountLike,
        notes: str,
        actor: str,
        linked_transaction_id: Optional[str] = None,
        transaction_date: Optional[datetime] = None
    ) -> Optional[BalanceHistory]:
        """
        Post a ledger transaction's signed cash effect to the account for its mode

        Loan-mode and zero amounts have no cash effect. When no active account
        of the matching type exists the effect is skipped and logged.
        """
        account_type = _MODE_TO_ACCOUNT_TYPE.get(payment_mode)
        change = round_money(amount)
        if account_type is None or change == ZERO:
            return None

        account = self.get_account_by_type(account_type)
        if not account:
            log_action(
                self.logger, "warning",
                f"No active {account_type.value} account; cash effect not posted",
                actor=actor, action="apply_mode_change",
                resource=f"financial_transaction:{linked_transaction_id}",
                extra={"amount": format_money(change)}
            )
            return None

        return self.update_balance(
            account.id, change, BalanceChangeType.TRANSACTION, notes, actor,
            linked_transaction_id=linked_transaction_id,
            transaction_date=transaction_date
        )

    def apply_transaction_effect(self, transaction, actor: str) -> Optional[BalanceHistory]:
        """
        Post a financial transaction's cash effect

        Inflow types add to the account, outflow types subtract; the
        transaction's ``cash_sign`` gives the direction.
        """
        return self.apply_mode_change(
            transaction.payment_mode,
            transaction.amount * transaction.cash_sign,
            f"{transaction.transaction_type.value} - {transaction.party_name}",
            actor,
            linked_transaction_id=transaction.id,
            transaction_date=transaction.transaction_date
        )

    def reverse_transaction_effect(
        self,
        linked_transaction_id: str,
        actor: str,
        notes: str = ""
    ) -> List[BalanceHistory]:
        """
        Negate the net effect a transaction has had on every account

        Sums all history rows linked to the transaction per account (earlier
        reversals included) and posts the negation, so running it twice posts
        nothing the second time.
        """
        net_by_account: Dict[str, Decimal] = {}
        for row in self.storage.find(self.history_table, {"linked_transaction_id": linked_transaction_id}):
            entry = BalanceHistory.from_dict(row)
            net_by_account[entry.account_id] = net_by_account.get(entry.account_id, ZERO) + entry.change_amount

        reversals = []
        for account_id, net in net_by_account.items():
            if round_money(net) == ZERO:
                continue
            reversals.append(self.update_balance(
                account_id, -net, BalanceChangeType.REVERSAL,
                notes or f"Reversal of transaction {linked_transaction_id}", actor,
                linked_transaction_id=linked_transaction_id
            ))
        return reversals

    def get_account(self, account_id: str) -> Optional[CashAccount]:
        """Get account by ID"""
        data = self.storage.load(self.accounts_table, account_id)
        if data:
            return CashAccount.from_dict(data)
        return None

    def get_account_by_type(self, account_type: AccountType) -> Optional[CashAccount]:
        """First active account of a type"""
        accounts = [a for a in self.get_active_accounts() if a.account_type == account_type]
        if not accounts:
            return None
        accounts.sort(key=lambda a: a.created_at)
        return accounts[0]

    def get_active_accounts(self) -> List[CashAccount]:
        """Active accounts ordered by name"""
        accounts = [CashAccount.from_dict(d) for d in self.storage.find(self.accounts_table, {"is_active": True})]
        accounts.sort(key=lambda a: a.account_name)
        return accounts

    def get_current_balance(self, account_type: AccountType) -> Decimal:
        account = self.get_account_by_type(account_type)
        return account.current_balance if account else ZERO

    def get_total_balance(self) -> Decimal:
        return round_money(
            self.get_current_balance(AccountType.CASH) + self.get_current_balance(AccountType.BANK)
        )

    def get_balance_history(
        self,
        account_id: str,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None
    ) -> List[BalanceHistory]:
        """History rows for an account within [from_date, to_date], newest first"""
        entries = [
            BalanceHistory.from_dict(d)
            for d in self.storage.find(self.history_table, {"account_id": account_id})
        ]
        if from_date:
            entries = [e for e in entries if e.transaction_date >= from_date]
        if to_date:
            entries = [e for e in entries if e.transaction_date <= to_date]
        entries.sort(key=lambda e: (e.transaction_date, e.created_at), reverse=True)
        return entries

    def get_recent_balance_changes(self, count: int = 10) -> List[BalanceHistory]:
        entries = [BalanceHistory.from_dict(d) for d in self.storage.load_all(self.history_table)]
        entries.sort(key=lambda e: (e.transaction_date, e.created_at), reverse=True)
        return entries[:count]

    def get_account_summary(self) -> Dict[str, Decimal]:
        """Balance per active account name plus a ``Total`` entry"""
        accounts = self.get_active_accounts()
        summary = {account.account_name: account.current_balance for account in accounts}
        summary["Total"] = sum_money(a.current_balance for a in accounts)
        return summary

    def verify_account_balance(self, account_id: str) -> bool:
        """Check current balance == opening + sum of every non-opening history change"""
        account = self.get_account(account_id)
        if not account:
            raise NotFoundError("Cash account", account_id)
        changes = [
            e.change_amount for e in self.get_balance_history(account_id)
            if e.change_type != BalanceChangeType.OPENING_BALANCE
        ]
        return account.current_balance == round_money(account.opening_balance + sum_money(changes))

    def _save_account(self, account: CashAccount) -> None:
        self.storage.save(self.accounts_table, account.id, account.to_dict())
