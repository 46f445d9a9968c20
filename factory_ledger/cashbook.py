"""
Cash Book Module

One CashBalance record per calendar day. A day's opening balance carries
forward from the previous day's closing (the counted cash once reconciled,
the expected figure before that); cash in and out come from the cash-flow
aggregator. Reconciliation records the physically counted cash and the
discrepancy against the expected closing balance.
"""

from decimal import Decimal
from datetime import datetime, timezone, date, timedelta
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .money import AmountLike, ZERO, round_money, sum_money, format_money
from .storage import StorageInterface, StorageRecord, EntityLocks
from .audit import AuditTrail, AuditEventType
from .cashflow import CashFlowAggregator, CashFlowSummary
from .exceptions import InvalidStateError
from .logging_config import get_logger, log_action


@dataclass
class CashBalance(StorageRecord):
    """Daily cash book record, stored under its ISO date"""
    date: date
    opening_balance: Decimal
    total_cash_in: Decimal
    total_cash_out: Decimal
    expected_closing_balance: Decimal
    actual_cash_counted: Optional[Decimal] = None
    discrepancy: Optional[Decimal] = None
    is_reconciled: bool = False
    reconciled_by: Optional[str] = None
    reconciled_at: Optional[datetime] = None
    discrepancy_reason: Optional[str] = None
    notes: str = ""

    @property
    def closing_balance(self) -> Decimal:
        """Counted cash once reconciled, otherwise the expected closing"""
        if self.is_reconciled and self.actual_cash_counted is not None:
            return self.actual_cash_counted
        return self.expected_closing_balance

    @property
    def state(self) -> str:
        return "Reconciled" if self.is_reconciled else "Computed"

    @property
    def status(self) -> str:
        if not self.is_reconciled:
            return "Pending"
        if not self.discrepancy:
            return "Balanced"
        if self.discrepancy > ZERO:
            return "Surplus"
        return "Shortage"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CashBalance':
        data = dict(data)
        data['date'] = date.fromisoformat(data['date'])
        for key in ('opening_balance', 'total_cash_in', 'total_cash_out', 'expected_closing_balance'):
            data[key] = Decimal(data[key])
        for key in ('actual_cash_counted', 'discrepancy'):
            if data.get(key) is not None:
                data[key] = Decimal(data[key])
        if data.get('reconciled_at'):
            data['reconciled_at'] = datetime.fromisoformat(data['reconciled_at'])
        return super().from_dict(data)


def _as_date(value) -> date:
    """Accept a date or a datetime and return the calendar date"""
    if isinstance(value, datetime):
        return value.date()
    return value


class CashBookManager:
    """
    Cash book reconciler

    Each date moves Uninitialized -> Computed -> Reconciled. Recomputing a
    reconciled day refreshes the figures and discrepancy but keeps it
    reconciled.
    """

    def __init__(
        self,
        storage: StorageInterface,
        aggregator: CashFlowAggregator,
        audit_trail: AuditTrail,
        locks: Optional[EntityLocks] = None
    ):
        self.storage = storage
        self.aggregator = aggregator
        self.audit_trail = audit_trail
        self.locks = locks or EntityLocks()
        self.logger = get_logger("factory_ledger.cashbook")

        self.table_name = "cash_balances"

    def set_opening_balance(
        self,
        day,
        opening_balance: AmountLike,
        actor: str,
        notes: str = ""
    ) -> CashBalance:
        """
        Initialize the cash book on a date with a counted opening balance

        Raises:
            InvalidStateError: a record already exists for the date
        """
        day = _as_date(day)
        opening = round_money(opening_balance)

        with self.storage.atomic(), self.locks.hold("cash_balance", day.isoformat()):
            if self.get_by_date(day):
                raise InvalidStateError(
                    f"Cash balance already exists for {day.isoformat()}",
                    {"date": day.isoformat()}
                )

            now = datetime.now(timezone.utc)
            record = CashBalance(
                id=day.isoformat(),
                created_at=now,
                updated_at=now,
                date=day,
                opening_balance=opening,
                total_cash_in=ZERO,
                total_cash_out=ZERO,
                expected_closing_balance=opening,
                notes=notes or "Opening balance entry"
            )
            self._save(record)

            self.audit_trail.log_event(
                event_type=AuditEventType.OPENING_BALANCE_SET,
                entity_type="cash_balance",
                entity_id=record.id,
                metadata={"opening_balance": opening},
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Cash book opened on {day.isoformat()}",
            actor=actor, action="set_opening_balance", resource=f"cash_balance:{record.id}",
            extra={"opening_balance": format_money(opening)}
        )
        return record

    def create_or_update_daily_record(self, day, actor: Optional[str] = None) -> CashBalance:
        """
        Compute (or recompute) a day's record from the cash-flow sources

        Running it twice with unchanged sources leaves the same figures.
        """
        day = _as_date(day)

        with self.storage.atomic(), self.locks.hold("cash_balance", day.isoformat()):
            existing = self.get_by_date(day)
            opening = self._opening_for(day, existing)
            flow = self.aggregator.compute_cash_flow(day)
            expected = round_money(opening + flow.total_cash_in - flow.total_cash_out)
            now = datetime.now(timezone.utc)

            if existing is None:
                record = CashBalance(
                    id=day.isoformat(),
                    created_at=now,
                    updated_at=now,
                    date=day,
                    opening_balance=opening,
                    total_cash_in=flow.total_cash_in,
                    total_cash_out=flow.total_cash_out,
                    expected_closing_balance=expected
                )
            else:
                record = existing
                record.opening_balance = opening
                record.total_cash_in = flow.total_cash_in
                record.total_cash_out = flow.total_cash_out
                record.expected_closing_balance = expected
                record.updated_at = now
                if record.is_reconciled and record.actual_cash_counted is not None:
                    record.discrepancy = round_money(record.actual_cash_counted - expected)

            self._save(record)

            self.audit_trail.log_event(
                event_type=AuditEventType.DAILY_RECORD_COMPUTED,
                entity_type="cash_balance",
                entity_id=record.id,
                metadata={
                    "opening_balance": opening,
                    "total_cash_in": flow.total_cash_in,
                    "total_cash_out": flow.total_cash_out,
                    "expected_closing_balance": expected
                },
                user_id=actor
            )

        self.logger.info(
            f"Cash book computed for {day.isoformat()}: expected closing {format_money(expected)}"
        )
        return record

    def reconcile_cash(
        self,
        day,
        actual_cash_counted: AmountLike,
        actor: str,
        discrepancy_reason: Optional[str] = None,
        notes: Optional[str] = None
    ) -> CashBalance:
        """
        Record the physically counted cash for a day

        Raises:
            InvalidStateError: counted cash is negative
        """
        day = _as_date(day)
        actual = round_money(actual_cash_counted)
        if actual < ZERO:
            raise InvalidStateError("Counted cash cannot be negative", {"actual_cash_counted": str(actual)})

        with self.storage.atomic(), self.locks.hold("cash_balance", day.isoformat()):
            record = self.get_by_date(day)
            if record is None:
                record = self.create_or_update_daily_record(day, actor)

            now = datetime.now(timezone.utc)
            record.actual_cash_counted = actual
            record.discrepancy = round_money(actual - record.expected_closing_balance)
            record.is_reconciled = True
            record.reconciled_by = actor
            record.reconciled_at = now
            record.discrepancy_reason = discrepancy_reason
            if notes:
                record.notes = notes
            record.updated_at = now
            self._save(record)

            self.audit_trail.log_event(
                event_type=AuditEventType.CASH_RECONCILED,
                entity_type="cash_balance",
                entity_id=record.id,
                metadata={
                    "actual_cash_counted": actual,
                    "expected_closing_balance": record.expected_closing_balance,
                    "discrepancy": record.discrepancy,
                    "discrepancy_reason": discrepancy_reason
                },
                user_id=actor
            )

        log_action(
            self.logger, "info" if record.discrepancy == ZERO else "warning",
            f"Cash reconciled for {day.isoformat()}: {record.status}",
            actor=actor, action="reconcile_cash", resource=f"cash_balance:{record.id}",
            extra={
                "actual_cash_counted": format_money(actual),
                "discrepancy": format_money(record.discrepancy)
            }
        )
        return record

    # Queries

    def get_by_date(self, day) -> Optional[CashBalance]:
        data = self.storage.load(self.table_name, _as_date(day).isoformat())
        if data:
            return CashBalance.from_dict(data)
        return None

    def get_all(self) -> List[CashBalance]:
        """All records, newest date first"""
        records = [CashBalance.from_dict(d) for d in self.storage.load_all(self.table_name)]
        records.sort(key=lambda r: r.date, reverse=True)
        return records

    def get_by_date_range(self, start, end) -> List[CashBalance]:
        """Records with start <= date <= end, newest first"""
        start, end = _as_date(start), _as_date(end)
        return [r for r in self.get_all() if start <= r.date <= end]

    def get_latest(self) -> Optional[CashBalance]:
        records = self.get_all()
        return records[0] if records else None

    def is_initialized(self) -> bool:
        return self.get_latest() is not None

    def get_cash_flow_for_date(self, day) -> CashFlowSummary:
        """Stored figures for the day, or a preview computed from the sources"""
        day = _as_date(day)
        record = self.get_by_date(day)
        if record:
            return CashFlowSummary(
                total_cash_in=record.total_cash_in,
                total_cash_out=record.total_cash_out,
                opening_balance=record.opening_balance,
                expected_closing_balance=record.expected_closing_balance
            )

        flow = self.aggregator.compute_cash_flow(day)
        previous = self.get_by_date(day - timedelta(days=1))
        return CashFlowSummary(
            total_cash_in=flow.total_cash_in,
            total_cash_out=flow.total_cash_out,
            opening_balance=previous.closing_balance if previous else ZERO
        )

    def get_expected_closing_balance(self, day) -> Decimal:
        return self.get_cash_flow_for_date(day).expected_closing_balance

    def get_cash_flow_summary(self, start, end) -> CashFlowSummary:
        """Opening of the earliest record, summed flows, expected closing of the latest"""
        records = self.get_by_date_range(start, end)
        if not records:
            return CashFlowSummary()
        earliest, latest = records[-1], records[0]
        return CashFlowSummary(
            total_cash_in=sum_money(r.total_cash_in for r in records),
            total_cash_out=sum_money(r.total_cash_out for r in records),
            opening_balance=earliest.opening_balance,
            expected_closing_balance=latest.expected_closing_balance
        )

    def get_current_cash_in_hand(self) -> Decimal:
        latest = self.get_latest()
        return latest.closing_balance if latest else ZERO

    def get_unreconciled_days(self) -> List[CashBalance]:
        return [r for r in self.get_all() if not r.is_reconciled]

    def get_days_with_discrepancies(self) -> List[CashBalance]:
        return [r for r in self.get_all() if r.is_reconciled and r.discrepancy]

    def get_total_discrepancy(self, start, end) -> Decimal:
        """Sum of discrepancies over reconciled days in [start, end]"""
        return sum_money(
            r.discrepancy or ZERO for r in self.get_by_date_range(start, end) if r.is_reconciled
        )

    def _opening_for(self, day: date, existing: Optional[CashBalance]) -> Decimal:
        previous = self.get_by_date(day - timedelta(days=1))
        if previous:
            return previous.closing_balance

        earlier = [r for r in self.get_all() if r.date < day]
        if earlier:
            return earlier[0].closing_balance

        if existing:
            return existing.opening_balance
        return ZERO

    def _save(self, record: CashBalance) -> None:
        self.storage.save(self.table_name, record.id, record.to_dict())
