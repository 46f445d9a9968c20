"""
Reversal and Restore Module

Deleting a ledger entry undoes its effect on the loan and on the cash
accounts before the row goes away; restoring re-inserts it under its
original id and replays the same forward effects. Loan arithmetic comes
from the forward/reverse pairs in ``loans`` so delete-then-restore lands on
identical figures.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import List

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .loans import (
    LoanManager, LoanAccount, LoanStatus, FinancialTransaction,
    ISSUANCE_TYPES, apply_effect, reverse_effect
)
from .cash_accounts import CashAccountManager
from .money import ZERO
from .exceptions import NotFoundError, InvalidStateError, AlreadyDoneError, IntegrityGuardError
from .logging_config import get_logger, log_action


@dataclass
class DeletedLoan:
    """Snapshot of a deleted loan and its transactions, enough to restore it"""
    loan: LoanAccount
    transactions: List[FinancialTransaction] = field(default_factory=list)


class ReversalCoordinator:
    """Deletes ledger entries with their exact inverse and restores them by replay"""

    def __init__(
        self,
        storage: StorageInterface,
        loan_manager: LoanManager,
        cash_accounts: CashAccountManager,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.loan_manager = loan_manager
        self.cash_accounts = cash_accounts
        self.audit_trail = audit_trail
        self.locks = loan_manager.locks
        self.logger = get_logger("factory_ledger.reversal")

    def delete_financial_transaction(self, transaction_id: str, actor: str) -> FinancialTransaction:
        """
        Delete a transaction after reversing its loan and cash effects

        Returns:
            The deleted transaction, suitable for ``restore_financial_transaction``

        Raises:
            NotFoundError: unknown transaction
            InvalidStateError: issuance transactions go with their loan
        """
        tx = self.loan_manager.get_transaction(transaction_id)
        if not tx:
            raise NotFoundError("Financial transaction", transaction_id)
        if tx.transaction_type in ISSUANCE_TYPES:
            raise InvalidStateError(
                "Loan issuance cannot be deleted on its own; delete the loan instead",
                {"transaction_id": transaction_id}
            )

        with self.storage.atomic(), self.locks.hold("loan", tx.linked_loan_id or transaction_id):
            loan = self.loan_manager.get_loan(tx.linked_loan_id) if tx.linked_loan_id else None
            if loan:
                reverse_effect[tx.transaction_type](loan, tx, self.loan_manager.clock().date())
                loan.updated_at = datetime.now(timezone.utc)
                self.loan_manager.save_loan(loan)

            self.cash_accounts.reverse_transaction_effect(
                tx.id, actor, f"Reversal of deleted {tx.transaction_type.value}"
            )
            self.storage.delete(self.loan_manager.transactions_table, tx.id)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_DELETED,
                entity_type="financial_transaction",
                entity_id=tx.id,
                metadata={
                    "transaction_type": tx.transaction_type.value,
                    "amount": tx.amount,
                    "interest_amount": tx.interest_amount,
                    "linked_loan_id": tx.linked_loan_id,
                    "loan_status": loan.status.value if loan else None
                },
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Financial transaction deleted: {tx.transaction_type.value}",
            actor=actor, action="delete_financial_transaction",
            resource=f"financial_transaction:{tx.id}",
            extra={"linked_loan_id": tx.linked_loan_id}
        )
        return tx

    def restore_financial_transaction(self, tx: FinancialTransaction, actor: str) -> FinancialTransaction:
        """
        Re-insert a deleted transaction under its original id and re-apply its effects

        Raises:
            NotFoundError: the transaction's loan no longer exists
            AlreadyDoneError: the transaction is already present
            InvalidStateError: issuance transactions are restored with their loan
        """
        if tx.transaction_type in ISSUANCE_TYPES:
            raise InvalidStateError(
                "Loan issuance is restored together with its loan",
                {"transaction_id": tx.id}
            )

        with self.storage.atomic(), self.locks.hold("loan", tx.linked_loan_id or tx.id):
            if self.storage.exists(self.loan_manager.transactions_table, tx.id):
                raise AlreadyDoneError("Transaction already exists", {"transaction_id": tx.id})

            loan = None
            if tx.linked_loan_id:
                loan = self.loan_manager.get_loan(tx.linked_loan_id)
                if not loan:
                    raise NotFoundError("Loan", tx.linked_loan_id)
                apply_effect[tx.transaction_type](loan, tx, tx.transaction_date.date())
                loan.updated_at = datetime.now(timezone.utc)
                self.loan_manager.save_loan(loan)

            self.loan_manager.save_transaction(tx)
            self.cash_accounts.apply_transaction_effect(tx, actor)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_RESTORED,
                entity_type="financial_transaction",
                entity_id=tx.id,
                metadata={
                    "transaction_type": tx.transaction_type.value,
                    "amount": tx.amount,
                    "linked_loan_id": tx.linked_loan_id,
                    "loan_status": loan.status.value if loan else None
                },
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Financial transaction restored: {tx.transaction_type.value}",
            actor=actor, action="restore_financial_transaction",
            resource=f"financial_transaction:{tx.id}"
        )
        return tx

    def delete_loan(self, loan_id: str, actor: str) -> DeletedLoan:
        """
        Delete a loan that has nothing but its issuance recorded

        The issuance's cash effect is reversed before the rows are removed.

        Raises:
            NotFoundError: unknown loan
            IntegrityGuardError: accruals or payments exist for the loan
        """
        with self.storage.atomic(), self.locks.hold("loan", loan_id):
            loan = self.loan_manager.get_loan(loan_id)
            if not loan:
                raise NotFoundError("Loan", loan_id)

            transactions = self.loan_manager.get_transactions_by_loan(loan_id)
            dependents = [t for t in transactions if t.transaction_type not in ISSUANCE_TYPES]
            if dependents:
                raise IntegrityGuardError(
                    f"Loan {loan_id} has {len(dependents)} transactions; delete them first",
                    {"loan_id": loan_id, "transaction_ids": [t.id for t in dependents]}
                )

            for tx in transactions:
                self.cash_accounts.reverse_transaction_effect(
                    tx.id, actor, f"Reversal of deleted loan {loan_id}"
                )
                self.storage.delete(self.loan_manager.transactions_table, tx.id)
            self.storage.delete(self.loan_manager.loans_table, loan_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_DELETED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={
                    "party_id": loan.party_id,
                    "original_amount": loan.original_amount,
                    "transaction_ids": [t.id for t in transactions]
                },
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Loan deleted: {loan_id}",
            actor=actor, action="delete_loan", resource=f"loan:{loan_id}"
        )
        return DeletedLoan(loan=loan, transactions=transactions)

    def restore_loan(
        self,
        loan: LoanAccount,
        transactions: List[FinancialTransaction],
        actor: str
    ) -> LoanAccount:
        """
        Recreate a deleted loan from its original terms and replay its transactions

        Transactions are replayed oldest first through the same forward
        effects used when they were first posted, so the outstanding amounts
        and status come out as they were.

        Raises:
            AlreadyDoneError: the loan still exists
        """
        with self.storage.atomic(), self.locks.hold("loan", loan.id):
            if self.loan_manager.get_loan(loan.id):
                raise AlreadyDoneError("Loan already exists", {"loan_id": loan.id})

            restored = LoanAccount(
                id=loan.id,
                created_at=loan.created_at,
                updated_at=datetime.now(timezone.utc),
                party_id=loan.party_id,
                party_name=loan.party_name,
                loan_type=loan.loan_type,
                original_amount=loan.original_amount,
                interest_rate=loan.interest_rate,
                start_date=loan.start_date,
                outstanding_principal=loan.original_amount,
                outstanding_interest=ZERO,
                total_outstanding=loan.original_amount,
                status=LoanStatus.ACTIVE,
                created_by=loan.created_by,
                due_date=loan.due_date,
                notes=loan.notes
            )

            replayed = sorted(transactions, key=lambda t: (t.transaction_date, t.created_at))
            for tx in replayed:
                apply_effect[tx.transaction_type](restored, tx, tx.transaction_date.date())
                self.loan_manager.save_transaction(tx)
                self.cash_accounts.apply_transaction_effect(tx, actor)

            self.loan_manager.save_loan(restored)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_RESTORED,
                entity_type="loan",
                entity_id=restored.id,
                metadata={
                    "transaction_ids": [t.id for t in replayed],
                    "total_outstanding": restored.total_outstanding,
                    "status": restored.status.value
                },
                user_id=actor
            )

        log_action(
            self.logger, "info", f"Loan restored: {restored.id}",
            actor=actor, action="restore_loan", resource=f"loan:{restored.id}",
            extra={"transactions": len(replayed)}
        )
        return restored

    def restore_deleted_loan(self, deleted: DeletedLoan, actor: str) -> LoanAccount:
        return self.restore_loan(deleted.loan, deleted.transactions, actor)
