"""
Test suite for the cash book

Tests opening balance setup, daily computation with carry-forward,
reconciliation against counted cash, and the cash book queries.
"""

import pytest
from decimal import Decimal
from datetime import date, datetime

from factory_ledger.storage import InMemoryStorage
from factory_ledger.audit import AuditTrail
from factory_ledger.parties import InMemoryPartyDirectory
from factory_ledger.loans import LoanManager
from factory_ledger.feeds import InventoryFeed, WageFeed, ExpenseFeed, InventoryTransactionType
from factory_ledger.cashflow import CashFlowAggregator
from factory_ledger.cashbook import CashBookManager
from factory_ledger.money import PaymentMode
from factory_ledger.exceptions import InvalidStateError


DAY1 = date(2024, 6, 1)
DAY2 = date(2024, 6, 2)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def inventory(storage):
    return InventoryFeed(storage)


@pytest.fixture
def expenses(storage):
    return ExpenseFeed(storage)


@pytest.fixture
def cashbook(storage, inventory, expenses):
    audit_trail = AuditTrail(storage)
    loans = LoanManager(storage, InMemoryPartyDirectory(), audit_trail)
    aggregator = CashFlowAggregator(loans, inventory, WageFeed(storage), expenses)
    return CashBookManager(storage, aggregator, audit_trail)


def sell(inventory, amount, day, hour=10):
    inventory.record(InventoryTransactionType.SELL, amount, PaymentMode.CASH,
                     datetime(day.year, day.month, day.day, hour))


def spend(expenses, amount, day, hour=15):
    expenses.record("Diesel", amount, PaymentMode.CASH, datetime(day.year, day.month, day.day, hour))


class TestOpeningBalance:
    def test_set_opening_balance(self, cashbook):
        record = cashbook.set_opening_balance(DAY1, "1000", actor="owner")

        assert record.id == "2024-06-01"
        assert record.opening_balance == Decimal("1000.00")
        assert record.expected_closing_balance == Decimal("1000.00")
        assert record.state == "Computed"
        assert record.status == "Pending"
        assert cashbook.is_initialized()

    def test_duplicate_opening_rejected(self, cashbook):
        cashbook.set_opening_balance(DAY1, "1000", actor="owner")
        with pytest.raises(InvalidStateError):
            cashbook.set_opening_balance(DAY1, "2000", actor="owner")
        assert cashbook.get_by_date(DAY1).opening_balance == Decimal("1000.00")

    def test_not_initialized(self, cashbook):
        assert not cashbook.is_initialized()
        assert cashbook.get_latest() is None
        assert cashbook.get_current_cash_in_hand() == Decimal("0.00")


class TestDailyCashBook:
    """The worked example: open 1000, sell 500, spend 200, count 1250"""

    def test_compute_day(self, cashbook, inventory, expenses):
        cashbook.set_opening_balance(DAY1, "1000", actor="owner")
        sell(inventory, "500", DAY1)
        spend(expenses, "200", DAY1)

        record = cashbook.create_or_update_daily_record(DAY1)

        assert record.opening_balance == Decimal("1000.00")
        assert record.total_cash_in == Decimal("500.00")
        assert record.total_cash_out == Decimal("200.00")
        assert record.expected_closing_balance == Decimal("1300.00")

    def test_reconcile_records_discrepancy(self, cashbook, inventory, expenses):
        cashbook.set_opening_balance(DAY1, "1000", actor="owner")
        sell(inventory, "500", DAY1)
        spend(expenses, "200", DAY1)
        cashbook.create_or_update_daily_record(DAY1)

        record = cashbook.reconcile_cash(DAY1, "1250", actor="cashier", discrepancy_reason="Unrecorded tea")

        assert record.discrepancy == Decimal("-50.00")
        assert record.is_reconciled
        assert record.reconciled_by == "cashier"
        assert record.reconciled_at is not None
        assert record.discrepancy_reason == "Unrecorded tea"
        assert record.closing_balance == Decimal("1250.00")
        assert record.state == "Reconciled"
        assert record.status == "Shortage"

    def test_next_day_opens_with_counted_cash(self, cashbook, inventory, expenses):
        cashbook.set_opening_balance(DAY1, "1000", actor="owner")
        sell(inventory, "500", DAY1)
        spend(expenses, "200", DAY1)
        cashbook.create_or_update_daily_record(DAY1)
        cashbook.reconcile_cash(DAY1, "1250", actor="cashier")

        record = cashbook.create_or_update_daily_record(DAY2)
        assert record.opening_balance == Decimal("1250.00")

    def test_next_day_opens_with_expected_when_unreconciled(self, cashbook, inventory):
        cashbook.set_opening_balance(DAY1, "1000", actor="owner")
        sell(inventory, "500", DAY1)
        cashbook.create_or_update_daily_record(DAY1)

        assert cashbook.create_or_update_daily_record(DAY2).opening_balance == Decimal("1500.00")

    def test_opening_falls_back_to_latest_earlier_record(self, cashbook):
        cashbook.set_opening_balance(DAY1, "1000", actor="owner")

        record = cashbook.create_or_update_daily_record(date(2024, 6, 5))
        assert record.opening_balance == Decimal("1000.00")

    def test_first_day_without_opening_starts_at_zero(self, cashbook, inventory):
        sell(inventory, "75", DAY1)
        record = cashbook.create_or_update_daily_record(DAY1)
        assert record.opening_balance == Decimal("0.00")
        assert record.expected_closing_balance == Decimal("75.00")

    def test_recompute_is_idempotent(self, cashbook, inventory, expenses):
        cashbook.set_opening_balance(DAY1, "1000", actor="owner")
        sell(inventory, "500", DAY1)
        spend(expenses, "200", DAY1)

        first = cashbook.create_or_update_daily_record(DAY1)
        second = cashbook.create_or_update_daily_record(DAY1)

        for field in ("opening_balance", "total_cash_in", "total_cash_out", "expected_closing_balance"):
            assert getattr(first, field) == getattr(second, field)
        assert len(cashbook.get_all()) == 1

    def test_recompute_keeps_reconciliation(self, cashbook, inventory):
        cashbook.set_opening_balance(DAY1, "1000", actor="owner")
        sell(inventory, "500", DAY1)
        cashbook.reconcile_cash(DAY1, "1500", actor="cashier")

        # A late sale is entered after the count
        sell(inventory, "100", DAY1, hour=18)
        record = cashbook.create_or_update_daily_record(DAY1)

        assert record.is_reconciled
        assert record.expected_closing_balance == Decimal("1600.00")
        assert record.discrepancy == Decimal("-100.00")

    def test_reconcile_computes_missing_record(self, cashbook, inventory):
        sell(inventory, "300", DAY1)
        record = cashbook.reconcile_cash(DAY1, "300", actor="cashier")

        assert record.expected_closing_balance == Decimal("300.00")
        assert record.discrepancy == Decimal("0.00")
        assert record.status == "Balanced"

    def test_negative_count_rejected(self, cashbook):
        with pytest.raises(InvalidStateError):
            cashbook.reconcile_cash(DAY1, "-1", actor="cashier")
        assert cashbook.get_by_date(DAY1) is None

    def test_surplus_status(self, cashbook):
        cashbook.set_opening_balance(DAY1, "100", actor="owner")
        assert cashbook.reconcile_cash(DAY1, "120", actor="cashier").status == "Surplus"

    def test_accepts_datetime(self, cashbook):
        cashbook.set_opening_balance(datetime(2024, 6, 1, 8, 30), "100", actor="owner")
        assert cashbook.get_by_date(DAY1) is not None


class TestCashBookQueries:
    """Test cash book queries"""

    @pytest.fixture
    def populated(self, cashbook, inventory, expenses):
        cashbook.set_opening_balance(DAY1, "1000", actor="owner")
        sell(inventory, "500", DAY1)
        spend(expenses, "200", DAY1)
        cashbook.create_or_update_daily_record(DAY1)
        cashbook.reconcile_cash(DAY1, "1250", actor="cashier")
        sell(inventory, "100", DAY2)
        cashbook.create_or_update_daily_record(DAY2)
        return cashbook

    def test_latest_and_cash_in_hand(self, populated):
        assert populated.get_latest().date == DAY2
        assert populated.get_current_cash_in_hand() == Decimal("1350.00")

    def test_reconciliation_queries(self, populated):
        assert [r.date for r in populated.get_unreconciled_days()] == [DAY2]
        assert [r.date for r in populated.get_days_with_discrepancies()] == [DAY1]
        assert populated.get_total_discrepancy(DAY1, DAY2) == Decimal("-50.00")
        assert populated.get_total_discrepancy(DAY2, DAY2) == Decimal("0.00")

    def test_range_newest_first(self, populated):
        assert [r.date for r in populated.get_by_date_range(DAY1, DAY2)] == [DAY2, DAY1]

    def test_cash_flow_summary(self, populated):
        summary = populated.get_cash_flow_summary(DAY1, DAY2)

        assert summary.opening_balance == Decimal("1000.00")
        assert summary.total_cash_in == Decimal("600.00")
        assert summary.total_cash_out == Decimal("200.00")
        assert summary.expected_closing_balance == Decimal("1350.00")

    def test_cash_flow_summary_empty_range(self, populated):
        summary = populated.get_cash_flow_summary(date(2025, 1, 1), date(2025, 1, 31))
        assert summary.total_cash_in == Decimal("0.00")
        assert summary.expected_closing_balance == Decimal("0.00")

    def test_cash_flow_for_stored_date(self, populated):
        flow = populated.get_cash_flow_for_date(DAY1)
        assert flow.opening_balance == Decimal("1000.00")
        assert flow.expected_closing_balance == Decimal("1300.00")

    def test_cash_flow_preview(self, populated, inventory):
        day3 = date(2024, 6, 3)
        sell(inventory, "40", day3)

        flow = populated.get_cash_flow_for_date(day3)
        assert flow.opening_balance == Decimal("1350.00")
        assert flow.total_cash_in == Decimal("40.00")
        assert flow.expected_closing_balance == Decimal("1390.00")
        assert populated.get_expected_closing_balance(day3) == Decimal("1390.00")
        assert populated.get_by_date(day3) is None
