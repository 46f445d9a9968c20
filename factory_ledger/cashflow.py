"""
Cash-Flow Aggregator

Scans the four cash sources (inventory trades, loan and interest
transactions, wages, operational expenses) for one calendar day and nets
physical cash in against cash out. Only Cash-mode entries count; Bank and
Loan entries never touch the cash box.
"""

from decimal import Decimal
from datetime import datetime, date, time, timedelta
from dataclasses import dataclass
from typing import Optional, Tuple

from .money import PaymentMode, ZERO, round_money
from .feeds import TransactionFeed, InventoryTransactionType, WageTransactionType
from .loans import LoanManager, INFLOW_TYPES
from .logging_config import get_logger


INVENTORY_INFLOWS = frozenset({InventoryTransactionType.SELL.value, InventoryTransactionType.PROCESSING.value})


@dataclass
class CashFlowSummary:
    total_cash_in: Decimal = ZERO
    total_cash_out: Decimal = ZERO
    opening_balance: Decimal = ZERO
    expected_closing_balance: Optional[Decimal] = None

    def __post_init__(self):
        if self.expected_closing_balance is None:
            self.expected_closing_balance = round_money(self.opening_balance + self.net_flow)

    @property
    def net_flow(self) -> Decimal:
        return round_money(self.total_cash_in - self.total_cash_out)


def day_window(day: date) -> Tuple[datetime, datetime]:
    """Half-open [day 00:00, next day 00:00) window"""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class CashFlowAggregator:
    """Computes total cash in and out for a date"""

    def __init__(
        self,
        loan_manager: LoanManager,
        inventory_feed: Optional[TransactionFeed] = None,
        wage_feed: Optional[TransactionFeed] = None,
        expense_feed: Optional[TransactionFeed] = None
    ):
        self.loan_manager = loan_manager
        self.inventory_feed = inventory_feed
        self.wage_feed = wage_feed
        self.expense_feed = expense_feed
        self.logger = get_logger("factory_ledger.cashflow")

    def compute_cash_flow(self, day: date) -> CashFlowSummary:
        """
        Total cash in and out for one day

        Never raises for a day without data; the totals are simply zero.
        """
        start, end = day_window(day)
        cash_in = ZERO
        cash_out = ZERO

        if self.inventory_feed:
            for entry in self.inventory_feed.entries_between(start, end):
                if entry.payment_mode != PaymentMode.CASH:
                    continue
                if entry.kind in INVENTORY_INFLOWS:
                    cash_in += entry.amount
                else:
                    cash_out += entry.amount

        for tx in self.loan_manager.get_transactions_between(start, end):
            if tx.payment_mode != PaymentMode.CASH:
                continue
            if tx.transaction_type in INFLOW_TYPES:
                cash_in += tx.amount
            else:
                cash_out += tx.amount

        if self.wage_feed:
            for entry in self.wage_feed.entries_between(start, end):
                if entry.payment_mode != PaymentMode.CASH:
                    continue
                # A negative adjustment is an advance handed back by the worker
                if entry.kind == WageTransactionType.ADVANCE_ADJUSTMENT.value and entry.amount < ZERO:
                    cash_in += abs(entry.amount)
                else:
                    cash_out += entry.amount

        if self.expense_feed:
            for entry in self.expense_feed.entries_between(start, end):
                if entry.payment_mode == PaymentMode.CASH:
                    cash_out += entry.amount

        summary = CashFlowSummary(total_cash_in=round_money(cash_in), total_cash_out=round_money(cash_out))
        self.logger.debug(
            f"Cash flow for {day.isoformat()}: in={summary.total_cash_in} out={summary.total_cash_out}"
        )
        return summary
