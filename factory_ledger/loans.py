"""
Loan Module

Loan accounts with simple (non-compounding) interest, interest-first payment
allocation and status transitions. Every loan event is recorded as an
immutable FinancialTransaction; the effect each transaction type has on its
loan is written once as a forward/reverse pair so that deletion and replay
use the same arithmetic as the original posting.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from enum import Enum
import uuid

from .money import PaymentMode, AmountLike, ZERO, to_decimal, round_money, sum_money, format_money
from .storage import StorageInterface, StorageRecord, EntityLocks
from .audit import AuditTrail, AuditEventType
from .parties import PartyDirectory
from .cash_accounts import CashAccountManager
from .exceptions import NotFoundError, InvalidStateError, AlreadyDoneError
from .logging_config import get_logger, log_action


class LoanType(Enum):
    GIVEN = "Given"   # Factory lent money to the party
    TAKEN = "Taken"   # Factory borrowed money from the party


class LoanStatus(Enum):
    ACTIVE = "Active"
    PARTIALLY_PAID = "PartiallyPaid"
    OVERDUE = "Overdue"
    CLOSED = "Closed"


class FinancialTransactionType(Enum):
    LOAN_GIVEN = "LoanGiven"
    LOAN_TAKEN = "LoanTaken"
    LOAN_REPAYMENT = "LoanRepayment"      # Party repays a loan we gave
    LOAN_PAYMENT = "LoanPayment"          # We pay back a loan we took
    INTEREST_RECEIVED = "InterestReceived"
    INTEREST_PAID = "InterestPaid"


ISSUANCE_TYPES = frozenset({FinancialTransactionType.LOAN_GIVEN, FinancialTransactionType.LOAN_TAKEN})
INTEREST_TYPES = frozenset({FinancialTransactionType.INTEREST_RECEIVED, FinancialTransactionType.INTEREST_PAID})
PAYMENT_TYPES = frozenset({FinancialTransactionType.LOAN_REPAYMENT, FinancialTransactionType.LOAN_PAYMENT})

# Cash moves into the factory for these types, out of it for the rest
INFLOW_TYPES = frozenset({
    FinancialTransactionType.LOAN_TAKEN,
    FinancialTransactionType.LOAN_REPAYMENT,
    FinancialTransactionType.INTEREST_RECEIVED,
})

_TYPES_BY_LOAN = {
    LoanType.GIVEN: {
        "issuance": FinancialTransactionType.LOAN_GIVEN,
        "payment": FinancialTransactionType.LOAN_REPAYMENT,
        "interest": FinancialTransactionType.INTEREST_RECEIVED,
    },
    LoanType.TAKEN: {
        "issuance": FinancialTransactionType.LOAN_TAKEN,
        "payment": FinancialTransactionType.LOAN_PAYMENT,
        "interest": FinancialTransactionType.INTEREST_PAID,
    },
}


def _parse_optional_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value)


@dataclass
class FinancialTransaction(StorageRecord):
    """Immutable record of one loan or interest event"""
    transaction_type: FinancialTransactionType
    amount: Decimal
    transaction_date: datetime
    payment_mode: PaymentMode
    party_id: str
    party_name: str
    entered_by: str
    interest_rate: Optional[Decimal] = None
    interest_amount: Optional[Decimal] = None
    due_date: Optional[datetime] = None
    linked_loan_id: Optional[str] = None
    principal_portion: Optional[Decimal] = None
    interest_portion: Optional[Decimal] = None
    notes: str = ""

    @property
    def debit_credit(self) -> str:
        return "Credit" if self.transaction_type in INFLOW_TYPES else "Debit"

    @property
    def cash_sign(self) -> int:
        return 1 if self.transaction_type in INFLOW_TYPES else -1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FinancialTransaction':
        data = dict(data)
        data['transaction_type'] = FinancialTransactionType(data['transaction_type'])
        data['amount'] = Decimal(data['amount'])
        data['transaction_date'] = datetime.fromisoformat(data['transaction_date'])
        data['payment_mode'] = PaymentMode(data['payment_mode'])
        data['due_date'] = _parse_optional_datetime(data.get('due_date'))
        for key in ('interest_rate', 'interest_amount', 'principal_portion', 'interest_portion'):
            data[key] = _parse_optional_decimal(data.get(key))
        return super().from_dict(data)


@dataclass
class LoanAccount(StorageRecord):
    """Loan given to or taken from a party, with its outstanding amounts"""
    party_id: str
    party_name: str
    loan_type: LoanType
    original_amount: Decimal
    interest_rate: Decimal  # Annual percentage, simple interest
    start_date: datetime
    outstanding_principal: Decimal
    outstanding_interest: Decimal
    total_outstanding: Decimal
    status: LoanStatus
    created_by: str
    due_date: Optional[datetime] = None
    notes: str = ""

    def recompute_total(self) -> None:
        self.total_outstanding = round_money(self.outstanding_principal + self.outstanding_interest)

    def is_past_due(self, today: date) -> bool:
        return self.due_date is not None and self.due_date.date() < today

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanAccount':
        data = dict(data)
        data['loan_type'] = LoanType(data['loan_type'])
        data['status'] = LoanStatus(data['status'])
        data['start_date'] = datetime.fromisoformat(data['start_date'])
        data['due_date'] = _parse_optional_datetime(data.get('due_date'))
        for key in ('original_amount', 'interest_rate', 'outstanding_principal',
                    'outstanding_interest', 'total_outstanding'):
            data[key] = Decimal(data[key])
        return super().from_dict(data)


def derive_status(loan: LoanAccount, today: date) -> LoanStatus:
    """Status implied by the loan's outstanding amounts and due date"""
    if loan.total_outstanding <= ZERO:
        return LoanStatus.CLOSED
    if loan.total_outstanding < loan.original_amount:
        return LoanStatus.PARTIALLY_PAID
    if loan.is_past_due(today):
        return LoanStatus.OVERDUE
    return LoanStatus.ACTIVE


def calculate_simple_interest(principal: Decimal, annual_rate: Decimal, days: int,
                              days_in_year: int = 365) -> Decimal:
    """principal x rate% x days / days_in_year, rounded to cents"""
    return round_money(principal * annual_rate * Decimal(days) / (Decimal(days_in_year) * Decimal(100)))


# Loan effects, one forward/reverse pair per transaction type

def _apply_issuance(loan: LoanAccount, tx: FinancialTransaction, today: date) -> None:
    loan.outstanding_principal = tx.amount
    loan.outstanding_interest = ZERO
    loan.recompute_total()
    loan.status = LoanStatus.ACTIVE


def _reverse_issuance(loan: LoanAccount, tx: FinancialTransaction, today: date) -> None:
    raise InvalidStateError(
        "Loan issuance cannot be reversed on its own; delete the loan instead",
        {"transaction_id": tx.id, "loan_id": loan.id}
    )


def _apply_interest(loan: LoanAccount, tx: FinancialTransaction, today: date) -> None:
    loan.outstanding_interest = round_money(loan.outstanding_interest + (tx.interest_amount or ZERO))
    loan.recompute_total()
    if loan.status == LoanStatus.ACTIVE and loan.is_past_due(today):
        loan.status = LoanStatus.OVERDUE


def _reverse_interest(loan: LoanAccount, tx: FinancialTransaction, today: date) -> None:
    remaining = loan.outstanding_interest - (tx.interest_amount or ZERO)
    loan.outstanding_interest = round_money(max(remaining, ZERO))
    loan.recompute_total()
    loan.status = derive_status(loan, today)


def allocate_payment(loan: LoanAccount, amount: Decimal):
    """Split a payment into (interest_portion, principal_portion), interest first"""
    interest_portion = min(amount, loan.outstanding_interest) if loan.outstanding_interest > ZERO else ZERO
    return interest_portion, round_money(amount - interest_portion)


def _apply_payment(loan: LoanAccount, tx: FinancialTransaction, today: date) -> None:
    if tx.interest_portion is None or tx.principal_portion is None:
        tx.interest_portion, tx.principal_portion = allocate_payment(loan, tx.amount)

    loan.outstanding_interest = round_money(loan.outstanding_interest - tx.interest_portion)
    loan.outstanding_principal = round_money(loan.outstanding_principal - tx.principal_portion)
    loan.recompute_total()

    if loan.total_outstanding <= ZERO:
        loan.status = LoanStatus.CLOSED
    elif loan.total_outstanding < loan.original_amount:
        loan.status = LoanStatus.PARTIALLY_PAID


def _reverse_payment(loan: LoanAccount, tx: FinancialTransaction, today: date) -> None:
    if tx.interest_portion is None or tx.principal_portion is None:
        # Rows written without an allocation go back to principal
        interest_portion, principal_portion = ZERO, tx.amount
    else:
        interest_portion, principal_portion = tx.interest_portion, tx.principal_portion

    loan.outstanding_interest = round_money(loan.outstanding_interest + interest_portion)
    loan.outstanding_principal = round_money(loan.outstanding_principal + principal_portion)
    loan.recompute_total()
    loan.status = derive_status(loan, today)


EffectFn = Callable[[LoanAccount, FinancialTransaction, date], None]

apply_effect: Dict[FinancialTransactionType, EffectFn] = {
    FinancialTransactionType.LOAN_GIVEN: _apply_issuance,
    FinancialTransactionType.LOAN_TAKEN: _apply_issuance,
    FinancialTransactionType.INTEREST_RECEIVED: _apply_interest,
    FinancialTransactionType.INTEREST_PAID: _apply_interest,
    FinancialTransactionType.LOAN_REPAYMENT: _apply_payment,
    FinancialTransactionType.LOAN_PAYMENT: _apply_payment,
}

reverse_effect: Dict[FinancialTransactionType, EffectFn] = {
    FinancialTransactionType.LOAN_GIVEN: _reverse_issuance,
    FinancialTransactionType.LOAN_TAKEN: _reverse_issuance,
    FinancialTransactionType.INTEREST_RECEIVED: _reverse_interest,
    FinancialTransactionType.INTEREST_PAID: _reverse_interest,
    FinancialTransactionType.LOAN_REPAYMENT: _reverse_payment,
    FinancialTransactionType.LOAN_PAYMENT: _reverse_payment,
}


class LoanManager:
    """
    Loan accrual engine: issuance, interest accrual and payments
    """

    def __init__(
        self,
        storage: StorageInterface,
        parties: PartyDirectory,
        audit_trail: AuditTrail,
        cash_accounts: Optional[CashAccountManager] = None,
        locks: Optional[EntityLocks] = None,
        clock: Optional[Callable[[], datetime]] = None,
        days_in_year: int = 365
    ):
        self.storage = storage
        self.parties = parties
        self.audit_trail = audit_trail
        self.cash_accounts = cash_accounts
        self.locks = locks or EntityLocks()
        self.clock = clock or datetime.now
        self.days_in_year = days_in_year
        self.logger = get_logger("factory_ledger.loans")

        self.loans_table = "loan_accounts"
        self.transactions_table = "financial_transactions"

    def create_loan(
        self,
        party_id: str,
        loan_type: LoanType,
        original_amount: AmountLike,
        interest_rate: AmountLike,
        actor: str,
        start_date: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
        payment_mode: PaymentMode = PaymentMode.CASH,
        notes: str = ""
    ) -> LoanAccount:
        """
        Create a loan account and its issuance transaction

        Args:
            party_id: Counterparty
            loan_type: Given (we lend) or Taken (we borrow)
            original_amount: Principal, must be positive
            interest_rate: Annual simple interest rate in percent, not negative
            actor: User recording the loan
            start_date: Interest starts accruing from here (defaults to now)
            due_date: Optional repayment date
            payment_mode: How the principal changed hands
            notes: Free text

        Returns:
            Created LoanAccount

        Raises:
            NotFoundError: unknown party
            InvalidStateError: non-positive amount or negative rate
        """
        party_name = self.parties.get_party_name(party_id)
        if party_name is None:
            raise NotFoundError("Party", party_id)

        amount = round_money(original_amount)
        rate = to_decimal(interest_rate)
        if amount <= ZERO:
            raise InvalidStateError("Loan amount must be positive", {"amount": str(amount)})
        if rate < 0:
            raise InvalidStateError("Interest rate cannot be negative", {"interest_rate": str(rate)})

        now = datetime.now(timezone.utc)
        start_date = start_date or self.clock()

        loan = LoanAccount(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            party_id=party_id,
            party_name=party_name,
            loan_type=loan_type,
            original_amount=amount,
            interest_rate=rate,
            start_date=start_date,
            outstanding_principal=amount,
            outstanding_interest=ZERO,
            total_outstanding=amount,
            status=LoanStatus.ACTIVE,
            created_by=actor,
            due_date=due_date,
            notes=notes
        )

        issuance = self._new_transaction(
            loan, _TYPES_BY_LOAN[loan_type]["issuance"], amount, start_date,
            payment_mode, actor,
            interest_rate=rate,
            due_date=due_date,
            notes=notes or f"{loan_type.value} loan to/from {party_name}"
        )

        with self.storage.atomic(), self.locks.hold("loan", loan.id):
            self.save_loan(loan)
            self.save_transaction(issuance)
            if self.cash_accounts:
                self.cash_accounts.apply_transaction_effect(issuance, actor)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "party_id": party_id,
                    "loan_type": loan_type.value,
                    "original_amount": amount,
                    "interest_rate": rate,
                    "payment_mode": payment_mode.value,
                    "transaction_id": issuance.id
                },
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Loan created for {party_name}",
            actor=actor, action="create_loan", resource=f"loan:{loan.id}",
            extra={"loan_type": loan_type.value, "amount": format_money(amount)}
        )
        return loan

    def accrue_interest(self, loan_id: str, actor: str) -> FinancialTransaction:
        """
        Accrue simple interest from the last accrual (or start date) until now

        No compounding and no cap: a long gap accrues as one lump.

        Raises:
            NotFoundError: unknown loan
            AlreadyDoneError: no whole day has passed, or the interest is zero
            InvalidStateError: loan is closed
        """
        with self.storage.atomic(), self.locks.hold("loan", loan_id):
            loan = self._require_loan(loan_id)
            now = self.clock()

            last_accrual = self._last_interest_date(loan)
            days = (now - last_accrual).days
            if days <= 0:
                raise AlreadyDoneError(
                    "Interest already calculated for today",
                    {"loan_id": loan_id, "last_accrual": last_accrual.isoformat()}
                )
            if loan.status == LoanStatus.CLOSED:
                raise InvalidStateError("Cannot accrue interest on a closed loan", {"loan_id": loan_id})

            interest = calculate_simple_interest(
                loan.outstanding_principal, loan.interest_rate, days, self.days_in_year
            )
            if interest <= ZERO:
                raise AlreadyDoneError(
                    "No interest to calculate: principal or rate is zero",
                    {"loan_id": loan_id}
                )

            tx = self._new_transaction(
                loan, _TYPES_BY_LOAN[loan.loan_type]["interest"], ZERO, now,
                PaymentMode.LOAN, actor,
                interest_rate=loan.interest_rate,
                interest_amount=interest,
                notes=f"Interest accrued for {days} days"
            )
            apply_effect[tx.transaction_type](loan, tx, now.date())
            loan.updated_at = datetime.now(timezone.utc)

            self.save_loan(loan)
            self.save_transaction(tx)

            self.audit_trail.log_event(
                event_type=AuditEventType.INTEREST_ACCRUED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={"transaction_id": tx.id, "days": days, "interest": interest},
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Interest accrued on loan {loan_id}",
            actor=actor, action="accrue_interest", resource=f"loan:{loan_id}",
            extra={"days": days, "interest": format_money(interest)}
        )
        return tx

    def record_payment(
        self,
        loan_id: str,
        amount: AmountLike,
        payment_mode: PaymentMode,
        actor: str,
        notes: str = ""
    ) -> FinancialTransaction:
        """
        Record a repayment, allocating it to interest first and then principal

        Interest is accrued up to now before the payment is applied. If the
        payment is rejected the accrual is rolled back with it.

        Raises:
            NotFoundError: unknown loan
            InvalidStateError: closed loan, non-positive amount or overpayment
        """
        payment = round_money(amount)
        if payment <= ZERO:
            raise InvalidStateError("Payment amount must be positive", {"amount": str(payment)})

        with self.storage.atomic(), self.locks.hold("loan", loan_id):
            loan = self._require_loan(loan_id)
            if loan.status == LoanStatus.CLOSED:
                raise InvalidStateError("Cannot record payment on a closed loan", {"loan_id": loan_id})

            try:
                self.accrue_interest(loan_id, actor)
                loan = self._require_loan(loan_id)
            except AlreadyDoneError:
                pass

            if payment > loan.total_outstanding:
                raise InvalidStateError(
                    f"Payment amount ({format_money(payment)}) exceeds outstanding amount "
                    f"({format_money(loan.total_outstanding)})",
                    {"loan_id": loan_id, "amount": str(payment),
                     "total_outstanding": str(loan.total_outstanding)}
                )

            now = self.clock()
            tx = self._new_transaction(
                loan, _TYPES_BY_LOAN[loan.loan_type]["payment"], payment, now,
                payment_mode, actor,
                notes=notes or f"Payment on loan {loan.id}"
            )
            tx.interest_portion, tx.principal_portion = allocate_payment(loan, payment)
            apply_effect[tx.transaction_type](loan, tx, now.date())
            loan.updated_at = datetime.now(timezone.utc)

            self.save_loan(loan)
            self.save_transaction(tx)
            if self.cash_accounts:
                self.cash_accounts.apply_transaction_effect(tx, actor)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_PAYMENT_RECORDED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={
                    "transaction_id": tx.id,
                    "amount": payment,
                    "interest_portion": tx.interest_portion,
                    "principal_portion": tx.principal_portion,
                    "status": loan.status.value
                },
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Payment recorded on loan {loan_id}",
            actor=actor, action="record_payment", resource=f"loan:{loan_id}",
            extra={
                "amount": format_money(payment),
                "interest_portion": format_money(tx.interest_portion),
                "principal_portion": format_money(tx.principal_portion),
                "status": loan.status.value
            }
        )
        return tx

    # Queries

    def get_loan(self, loan_id: str) -> Optional[LoanAccount]:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return LoanAccount.from_dict(data)
        return None

    def get_loans(self) -> List[LoanAccount]:
        """All loans, newest start date first"""
        loans = [LoanAccount.from_dict(d) for d in self.storage.load_all(self.loans_table)]
        loans.sort(key=lambda l: l.start_date, reverse=True)
        return loans

    def get_loans_by_party(self, party_id: str) -> List[LoanAccount]:
        return [l for l in self.get_loans() if l.party_id == party_id]

    def get_loans_by_type(self, loan_type: LoanType) -> List[LoanAccount]:
        return [l for l in self.get_loans() if l.loan_type == loan_type]

    def get_loans_by_status(self, status: LoanStatus) -> List[LoanAccount]:
        return [l for l in self.get_loans() if l.status == status]

    def get_active_loans_by_party(self, party_id: str) -> List[LoanAccount]:
        return [l for l in self.get_loans_by_party(party_id) if l.status != LoanStatus.CLOSED]

    def get_overdue_loans(self) -> List[LoanAccount]:
        """Active loans whose due date is before today"""
        today = self.clock().date()
        return [l for l in self.get_loans_by_status(LoanStatus.ACTIVE) if l.is_past_due(today)]

    def get_transaction(self, transaction_id: str) -> Optional[FinancialTransaction]:
        data = self.storage.load(self.transactions_table, transaction_id)
        if data:
            return FinancialTransaction.from_dict(data)
        return None

    def get_transactions(self) -> List[FinancialTransaction]:
        """All financial transactions, newest first"""
        txs = [FinancialTransaction.from_dict(d) for d in self.storage.load_all(self.transactions_table)]
        txs.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return txs

    def get_transactions_by_loan(self, loan_id: str) -> List[FinancialTransaction]:
        """Transactions for one loan in posting order"""
        txs = [
            FinancialTransaction.from_dict(d)
            for d in self.storage.find(self.transactions_table, {"linked_loan_id": loan_id})
        ]
        txs.sort(key=lambda t: (t.transaction_date, t.created_at))
        return txs

    def get_transactions_by_party(self, party_id: str) -> List[FinancialTransaction]:
        return [t for t in self.get_transactions() if t.party_id == party_id]

    def get_transactions_by_type(self, transaction_type: FinancialTransactionType) -> List[FinancialTransaction]:
        return [t for t in self.get_transactions() if t.transaction_type == transaction_type]

    def get_transactions_between(self, start: datetime, end: datetime) -> List[FinancialTransaction]:
        """Transactions with start <= transaction_date < end"""
        return [t for t in self.get_transactions() if start <= t.transaction_date < end]

    def get_total_outstanding_by_type(self, loan_type: LoanType) -> Decimal:
        """Total outstanding over open (Active, PartiallyPaid, Overdue) loans of a type"""
        return sum_money(
            l.total_outstanding for l in self.get_loans_by_type(loan_type)
            if l.status != LoanStatus.CLOSED
        )

    def get_financial_summary(self) -> Dict[str, Decimal]:
        """Outstanding totals and interest receivable/payable over open loans"""
        open_given = [l for l in self.get_loans_by_type(LoanType.GIVEN) if l.status != LoanStatus.CLOSED]
        open_taken = [l for l in self.get_loans_by_type(LoanType.TAKEN) if l.status != LoanStatus.CLOSED]
        return {
            "total_loans_given": self.get_total_outstanding_by_type(LoanType.GIVEN),
            "total_loans_taken": self.get_total_outstanding_by_type(LoanType.TAKEN),
            "total_interest_receivable": sum_money(l.outstanding_interest for l in open_given),
            "total_interest_payable": sum_money(l.outstanding_interest for l in open_taken),
        }

    # Helpers shared with the reversal coordinator

    def _require_loan(self, loan_id: str) -> LoanAccount:
        loan = self.get_loan(loan_id)
        if not loan:
            raise NotFoundError("Loan", loan_id)
        return loan

    def _last_interest_date(self, loan: LoanAccount) -> datetime:
        accruals = [t for t in self.get_transactions_by_loan(loan.id) if t.transaction_type in INTEREST_TYPES]
        if not accruals:
            return loan.start_date
        return max(t.transaction_date for t in accruals)

    def _new_transaction(
        self,
        loan: LoanAccount,
        transaction_type: FinancialTransactionType,
        amount: Decimal,
        transaction_date: datetime,
        payment_mode: PaymentMode,
        actor: str,
        **kwargs
    ) -> FinancialTransaction:
        now = datetime.now(timezone.utc)
        return FinancialTransaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            transaction_type=transaction_type,
            amount=amount,
            transaction_date=transaction_date,
            payment_mode=payment_mode,
            party_id=loan.party_id,
            party_name=loan.party_name,
            entered_by=actor,
            linked_loan_id=loan.id,
            **kwargs
        )

    def save_loan(self, loan: LoanAccount) -> None:
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

    def save_transaction(self, tx: FinancialTransaction) -> None:
        self.storage.save(self.transactions_table, tx.id, tx.to_dict())
