"""
Financial transaction endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends

from .dependencies import (
    get_ledger_system, get_header_actor, resolve_actor, to_http_exception, parse_datetime
)
from .schemas import RestoreTransactionRequest, transaction_to_dict
from ..system import LedgerSystem
from ..loans import FinancialTransaction, FinancialTransactionType
from ..exceptions import LedgerError


router = APIRouter()


@router.get("")
async def list_transactions(
    transaction_type: Optional[str] = None,
    party_id: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List financial transactions, newest first"""
    start_dt, end_dt = parse_datetime(start), parse_datetime(end)
    try:
        if start_dt and end_dt:
            txs = system.loan_manager.get_transactions_between(start_dt, end_dt)
        else:
            txs = system.loan_manager.get_transactions()
        if transaction_type:
            txs = [t for t in txs if t.transaction_type == FinancialTransactionType(transaction_type)]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if party_id:
        txs = [t for t in txs if t.party_id == party_id]

    return {"transactions": [transaction_to_dict(t) for t in txs]}


@router.post("/restore", status_code=201)
async def restore_transaction(
    request: RestoreTransactionRequest,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Re-insert a deleted transaction and re-apply its effects"""
    actor = resolve_actor(request.actor, header_actor)
    try:
        tx = FinancialTransaction.from_dict(request.transaction)
        restored = system.reversal.restore_financial_transaction(tx, actor)
    except LedgerError as e:
        raise to_http_exception(e)
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid transaction: {e}")

    return transaction_to_dict(restored)


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get transaction details"""
    tx = system.loan_manager.get_transaction(transaction_id)
    if not tx:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return transaction_to_dict(tx)


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete a transaction, reversing its loan and cash effects"""
    actor = resolve_actor(None, header_actor)
    try:
        tx = system.reversal.delete_financial_transaction(transaction_id, actor)
    except LedgerError as e:
        raise to_http_exception(e)

    return {"deleted": transaction_to_dict(tx)}
