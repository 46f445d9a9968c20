"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import (
    get_ledger_system, get_header_actor, resolve_actor, to_http_exception,
    parse_amount, parse_datetime
)
from .schemas import (
    CreateLoanRequest, LoanPaymentRequest, ActorRequest, RestoreLoanRequest,
    loan_to_dict, transaction_to_dict
)
from ..system import LedgerSystem
from ..loans import LoanAccount, LoanType, LoanStatus, FinancialTransaction
from ..money import PaymentMode
from ..exceptions import LedgerError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record a loan given or taken"""
    actor = resolve_actor(request.actor, header_actor)
    try:
        loan = system.loan_manager.create_loan(
            party_id=request.party_id,
            loan_type=LoanType(request.loan_type),
            original_amount=parse_amount(request.original_amount, "original_amount"),
            interest_rate=parse_amount(request.interest_rate, "interest_rate"),
            actor=actor,
            start_date=parse_datetime(request.start_date),
            due_date=parse_datetime(request.due_date),
            payment_mode=PaymentMode(request.payment_mode),
            notes=request.notes
        )
    except LedgerError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return loan_to_dict(loan)


@router.get("")
async def list_loans(
    party_id: Optional[str] = None,
    loan_type: Optional[str] = None,
    loan_status: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List loans, optionally filtered by party, type or status"""
    try:
        loans = system.loan_manager.get_loans()
        if party_id:
            loans = [l for l in loans if l.party_id == party_id]
        if loan_type:
            loans = [l for l in loans if l.loan_type == LoanType(loan_type)]
        if loan_status:
            loans = [l for l in loans if l.status == LoanStatus(loan_status)]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"loans": [loan_to_dict(l) for l in loans]}


@router.get("/overdue")
async def list_overdue_loans(system: LedgerSystem = Depends(get_ledger_system)):
    """Active loans past their due date"""
    return {"loans": [loan_to_dict(l) for l in system.loan_manager.get_overdue_loans()]}


@router.get("/summary")
async def get_financial_summary(system: LedgerSystem = Depends(get_ledger_system)):
    """Outstanding totals and interest receivable/payable"""
    summary = system.loan_manager.get_financial_summary()
    return {key: str(value) for key, value in summary.items()}


@router.post("/restore", status_code=status.HTTP_201_CREATED)
async def restore_loan(
    request: RestoreLoanRequest,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Restore a deleted loan from its snapshot"""
    actor = resolve_actor(request.actor, header_actor)
    try:
        loan = LoanAccount.from_dict(request.loan)
        transactions = [FinancialTransaction.from_dict(t) for t in request.transactions]
        restored = system.reversal.restore_loan(loan, transactions, actor)
    except LedgerError as e:
        raise to_http_exception(e)
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid loan snapshot: {e}")

    return loan_to_dict(restored)


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get loan details"""
    loan = system.loan_manager.get_loan(loan_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return loan_to_dict(loan)


@router.get("/{loan_id}/transactions")
async def get_loan_transactions(
    loan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Transactions recorded against a loan, oldest first"""
    if not system.loan_manager.get_loan(loan_id):
        raise HTTPException(status_code=404, detail="Loan not found")
    txs = system.loan_manager.get_transactions_by_loan(loan_id)
    return {"transactions": [transaction_to_dict(t) for t in txs]}


@router.post("/{loan_id}/accrue-interest")
async def accrue_interest(
    loan_id: str,
    request: Optional[ActorRequest] = None,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Accrue simple interest up to now"""
    actor = resolve_actor(request.actor if request else None, header_actor)
    try:
        tx = system.loan_manager.accrue_interest(loan_id, actor)
    except LedgerError as e:
        raise to_http_exception(e)

    return {
        "transaction": transaction_to_dict(tx),
        "loan": loan_to_dict(system.loan_manager.get_loan(loan_id))
    }


@router.post("/{loan_id}/payments")
async def record_payment(
    loan_id: str,
    request: LoanPaymentRequest,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record a repayment, interest first then principal"""
    actor = resolve_actor(request.actor, header_actor)
    try:
        tx = system.loan_manager.record_payment(
            loan_id=loan_id,
            amount=parse_amount(request.amount),
            payment_mode=PaymentMode(request.payment_mode),
            actor=actor,
            notes=request.notes
        )
    except LedgerError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "transaction": transaction_to_dict(tx),
        "loan": loan_to_dict(system.loan_manager.get_loan(loan_id))
    }


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete a loan that has only its issuance; returns the snapshot for restore"""
    actor = resolve_actor(None, header_actor)
    try:
        deleted = system.reversal.delete_loan(loan_id, actor)
    except LedgerError as e:
        raise to_http_exception(e)

    return {
        "loan": loan_to_dict(deleted.loan),
        "transactions": [t.to_dict() for t in deleted.transactions]
    }
