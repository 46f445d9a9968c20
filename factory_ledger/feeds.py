"""
Transaction Feeds Module

Read-only views of the subsystems that surround the ledger (inventory
trades, wage payments, operational expenses). The cash-flow aggregator only
needs amount, payment mode, type and timestamp from each of them, so every
feed yields uniform ``FeedEntry`` rows for a time window.

Storage-backed feeds are provided so the surrounding subsystems (and tests)
can record their entries into the same storage as the ledger.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from .money import PaymentMode, AmountLike, round_money
from .storage import StorageInterface, StorageRecord


class InventoryTransactionType(Enum):
    BUY = "Buy"
    SELL = "Sell"
    WASTAGE = "Wastage"
    PROCESSING = "Processing"  # Job work: customer's material, fee received


class WageTransactionType(Enum):
    DAILY_WAGE = "DailyWage"
    HOURLY_WAGE = "HourlyWage"
    MONTHLY_WAGE = "MonthlyWage"
    OVERTIME_PAY = "OvertimePay"
    BONUS = "Bonus"
    ADVANCE_GIVEN = "AdvanceGiven"
    ADVANCE_ADJUSTMENT = "AdvanceAdjustment"  # Negative amount = advance returned
    DEDUCTION = "Deduction"


@dataclass(frozen=True)
class FeedEntry:
    """One cash-relevant row from a surrounding subsystem"""
    entry_id: str
    kind: str
    amount: Decimal
    payment_mode: PaymentMode
    timestamp: datetime


class TransactionFeed(ABC):
    """Source of entries whose timestamp falls in [start, end)"""

    @abstractmethod
    def entries_between(self, start: datetime, end: datetime) -> List[FeedEntry]:
        pass


@dataclass
class InventoryTransaction(StorageRecord):
    transaction_type: InventoryTransactionType
    total_amount: Decimal
    payment_mode: PaymentMode
    transaction_date: datetime
    party_id: Optional[str] = None
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InventoryTransaction':
        data = dict(data)
        data['transaction_type'] = InventoryTransactionType(data['transaction_type'])
        data['total_amount'] = Decimal(data['total_amount'])
        data['payment_mode'] = PaymentMode(data['payment_mode'])
        data['transaction_date'] = datetime.fromisoformat(data['transaction_date'])
        return super().from_dict(data)


@dataclass
class WageTransaction(StorageRecord):
    worker_id: str
    transaction_type: WageTransactionType
    amount: Decimal
    payment_mode: PaymentMode
    transaction_date: datetime
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WageTransaction':
        data = dict(data)
        data['transaction_type'] = WageTransactionType(data['transaction_type'])
        data['amount'] = Decimal(data['amount'])
        data['payment_mode'] = PaymentMode(data['payment_mode'])
        data['transaction_date'] = datetime.fromisoformat(data['transaction_date'])
        return super().from_dict(data)


@dataclass
class OperationalExpense(StorageRecord):
    category: str
    amount: Decimal
    payment_mode: PaymentMode
    expense_date: datetime
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OperationalExpense':
        data = dict(data)
        data['amount'] = Decimal(data['amount'])
        data['payment_mode'] = PaymentMode(data['payment_mode'])
        data['expense_date'] = datetime.fromisoformat(data['expense_date'])
        return super().from_dict(data)


def _new_ids():
    now = datetime.now(timezone.utc)
    return str(uuid.uuid4()), now


class InventoryFeed(TransactionFeed):
    """Inventory trades stored in the ``inventory_transactions`` table"""

    def __init__(self, storage: StorageInterface, table_name: str = "inventory_transactions"):
        self.storage = storage
        self.table_name = table_name

    def record(self, transaction_type: InventoryTransactionType, total_amount: AmountLike,
               payment_mode: PaymentMode, transaction_date: datetime,
               party_id: Optional[str] = None, notes: str = "") -> InventoryTransaction:
        record_id, now = _new_ids()
        record = InventoryTransaction(
            id=record_id, created_at=now, updated_at=now,
            transaction_type=transaction_type,
            total_amount=round_money(total_amount),
            payment_mode=payment_mode,
            transaction_date=transaction_date,
            party_id=party_id,
            notes=notes
        )
        self.storage.save(self.table_name, record.id, record.to_dict())
        return record

    def entries_between(self, start: datetime, end: datetime) -> List[FeedEntry]:
        entries = []
        for data in self.storage.load_all(self.table_name):
            record = InventoryTransaction.from_dict(data)
            if start <= record.transaction_date < end:
                entries.append(FeedEntry(
                    entry_id=record.id,
                    kind=record.transaction_type.value,
                    amount=record.total_amount,
                    payment_mode=record.payment_mode,
                    timestamp=record.transaction_date
                ))
        return entries


class WageFeed(TransactionFeed):
    """Wage payments stored in the ``wage_transactions`` table"""

    def __init__(self, storage: StorageInterface, table_name: str = "wage_transactions"):
        self.storage = storage
        self.table_name = table_name

    def record(self, worker_id: str, transaction_type: WageTransactionType, amount: AmountLike,
               payment_mode: PaymentMode, transaction_date: datetime,
               notes: str = "") -> WageTransaction:
        record_id, now = _new_ids()
        record = WageTransaction(
            id=record_id, created_at=now, updated_at=now,
            worker_id=worker_id,
            transaction_type=transaction_type,
            amount=round_money(amount),
            payment_mode=payment_mode,
            transaction_date=transaction_date,
            notes=notes
        )
        self.storage.save(self.table_name, record.id, record.to_dict())
        return record

    def entries_between(self, start: datetime, end: datetime) -> List[FeedEntry]:
        entries = []
        for data in self.storage.load_all(self.table_name):
            record = WageTransaction.from_dict(data)
            if start <= record.transaction_date < end:
                entries.append(FeedEntry(
                    entry_id=record.id,
                    kind=record.transaction_type.value,
                    amount=record.amount,
                    payment_mode=record.payment_mode,
                    timestamp=record.transaction_date
                ))
        return entries


class ExpenseFeed(TransactionFeed):
    """Operational expenses stored in the ``operational_expenses`` table"""

    def __init__(self, storage: StorageInterface, table_name: str = "operational_expenses"):
        self.storage = storage
        self.table_name = table_name

    def record(self, category: str, amount: AmountLike, payment_mode: PaymentMode,
               expense_date: datetime, notes: str = "") -> OperationalExpense:
        record_id, now = _new_ids()
        record = OperationalExpense(
            id=record_id, created_at=now, updated_at=now,
            category=category,
            amount=round_money(amount),
            payment_mode=payment_mode,
            expense_date=expense_date,
            notes=notes
        )
        self.storage.save(self.table_name, record.id, record.to_dict())
        return record

    def entries_between(self, start: datetime, end: datetime) -> List[FeedEntry]:
        entries = []
        for data in self.storage.load_all(self.table_name):
            record = OperationalExpense.from_dict(data)
            if start <= record.expense_date < end:
                entries.append(FeedEntry(
                    entry_id=record.id,
                    kind=record.category,
                    amount=record.amount,
                    payment_mode=record.payment_mode,
                    timestamp=record.expense_date
                ))
        return entries
