"""
Cash and bank account endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import (
    get_ledger_system, get_header_actor, resolve_actor, to_http_exception,
    parse_amount, parse_datetime
)
from .schemas import (
    CreateCashAccountRequest, BalanceAdjustmentRequest, account_to_dict, history_to_dict
)
from ..system import LedgerSystem
from ..cash_accounts import AccountType, BalanceChangeType
from ..exceptions import LedgerError


router = APIRouter()

# Change types an operator may post by hand
_MANUAL_CHANGE_TYPES = {BalanceChangeType.MANUAL_ADJUSTMENT, BalanceChangeType.TRANSFER}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateCashAccountRequest,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create a cash or bank account"""
    actor = resolve_actor(request.actor, header_actor)
    try:
        account = system.cash_accounts.create_account(
            account_name=request.account_name,
            account_type=AccountType(request.account_type),
            opening_balance=parse_amount(request.opening_balance, "opening_balance"),
            actor=actor,
            opening_date=parse_datetime(request.opening_date),
            description=request.description
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return account_to_dict(account)


@router.get("")
async def list_accounts(system: LedgerSystem = Depends(get_ledger_system)):
    """Active accounts"""
    return {"accounts": [account_to_dict(a) for a in system.cash_accounts.get_active_accounts()]}


@router.get("/summary")
async def get_account_summary(system: LedgerSystem = Depends(get_ledger_system)):
    """Balance per account plus the total"""
    summary = system.cash_accounts.get_account_summary()
    return {name: str(balance) for name, balance in summary.items()}


@router.get("/recent-changes")
async def get_recent_changes(
    count: int = 10,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Most recent balance changes across all accounts"""
    changes = system.cash_accounts.get_recent_balance_changes(count)
    return {"changes": [history_to_dict(c) for c in changes]}


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get account details"""
    account = system.cash_accounts.get_account(account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account_to_dict(account)


@router.get("/{account_id}/history")
async def get_account_history(
    account_id: str,
    start: Optional[str] = None,
    end: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Balance history, newest first"""
    if not system.cash_accounts.get_account(account_id):
        raise HTTPException(status_code=404, detail="Account not found")
    history = system.cash_accounts.get_balance_history(
        account_id, parse_datetime(start), parse_datetime(end)
    )
    return {"history": [history_to_dict(h) for h in history]}


@router.get("/{account_id}/verify")
async def verify_account(
    account_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Check the balance against opening balance plus history"""
    try:
        valid = system.cash_accounts.verify_account_balance(account_id)
    except LedgerError as e:
        raise to_http_exception(e)
    return {"account_id": account_id, "valid": valid}


@router.post("/{account_id}/adjustments")
async def adjust_balance(
    account_id: str,
    request: BalanceAdjustmentRequest,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Post a manual adjustment or transfer to an account"""
    actor = resolve_actor(request.actor, header_actor)
    try:
        change_type = BalanceChangeType(request.change_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if change_type not in _MANUAL_CHANGE_TYPES:
        raise HTTPException(status_code=400, detail=f"{change_type.value} cannot be posted manually")

    try:
        entry = system.cash_accounts.update_balance(
            account_id,
            parse_amount(request.amount),
            change_type,
            request.notes,
            actor
        )
    except LedgerError as e:
        raise to_http_exception(e)

    return history_to_dict(entry)
