"""
Cash book endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import (
    get_ledger_system, get_header_actor, resolve_actor, to_http_exception,
    parse_amount, parse_date
)
from .schemas import (
    OpeningBalanceRequest, ReconcileRequest, ActorRequest, cash_balance_to_dict, cash_flow_to_dict
)
from ..system import LedgerSystem
from ..exceptions import LedgerError


router = APIRouter()


@router.post("/opening-balance", status_code=status.HTTP_201_CREATED)
async def set_opening_balance(
    request: OpeningBalanceRequest,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Initialize the cash book on a date"""
    actor = resolve_actor(request.actor, header_actor)
    try:
        record = system.cashbook.set_opening_balance(
            parse_date(request.date),
            parse_amount(request.opening_balance, "opening_balance"),
            actor,
            request.notes
        )
    except LedgerError as e:
        raise to_http_exception(e)
    return cash_balance_to_dict(record)


@router.get("")
async def list_records(
    start: Optional[str] = None,
    end: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Daily records, newest first, optionally within [start, end]"""
    if start and end:
        records = system.cashbook.get_by_date_range(parse_date(start), parse_date(end))
    else:
        records = system.cashbook.get_all()
    return {"records": [cash_balance_to_dict(r) for r in records]}


@router.get("/status")
async def get_status(system: LedgerSystem = Depends(get_ledger_system)):
    """Whether the cash book has been initialized and the current cash in hand"""
    return {
        "initialized": system.cashbook.is_initialized(),
        "cash_in_hand": str(system.cashbook.get_current_cash_in_hand())
    }


@router.get("/latest")
async def get_latest(system: LedgerSystem = Depends(get_ledger_system)):
    record = system.cashbook.get_latest()
    if not record:
        raise HTTPException(status_code=404, detail="Cash book is empty")
    return cash_balance_to_dict(record)


@router.get("/unreconciled")
async def get_unreconciled(system: LedgerSystem = Depends(get_ledger_system)):
    return {"records": [cash_balance_to_dict(r) for r in system.cashbook.get_unreconciled_days()]}


@router.get("/discrepancies")
async def get_discrepancies(system: LedgerSystem = Depends(get_ledger_system)):
    return {"records": [cash_balance_to_dict(r) for r in system.cashbook.get_days_with_discrepancies()]}


@router.get("/discrepancies/total")
async def get_total_discrepancy(
    start: str,
    end: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    total = system.cashbook.get_total_discrepancy(parse_date(start), parse_date(end))
    return {"start": start, "end": end, "total_discrepancy": str(total)}


@router.get("/summary")
async def get_cash_flow_summary(
    start: str,
    end: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Cash flow across stored records in [start, end]"""
    summary = system.cashbook.get_cash_flow_summary(parse_date(start), parse_date(end))
    return cash_flow_to_dict(summary)


@router.get("/{day}")
async def get_record(
    day: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    record = system.cashbook.get_by_date(parse_date(day))
    if not record:
        raise HTTPException(status_code=404, detail="No cash book record for date")
    return cash_balance_to_dict(record)


@router.get("/{day}/cash-flow")
async def get_cash_flow(
    day: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Stored figures for the day, or a preview when not yet computed"""
    return cash_flow_to_dict(system.cashbook.get_cash_flow_for_date(parse_date(day)))


@router.post("/{day}/compute")
async def compute_daily_record(
    day: str,
    request: Optional[ActorRequest] = None,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Compute or refresh the day's record from the cash sources"""
    actor = (request.actor if request else None) or header_actor
    record = system.cashbook.create_or_update_daily_record(parse_date(day), actor)
    return cash_balance_to_dict(record)


@router.post("/{day}/reconcile")
async def reconcile(
    day: str,
    request: ReconcileRequest,
    header_actor: Optional[str] = Depends(get_header_actor),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record counted cash for the day"""
    actor = resolve_actor(request.actor, header_actor)
    try:
        record = system.cashbook.reconcile_cash(
            parse_date(day),
            parse_amount(request.actual_cash_counted, "actual_cash_counted"),
            actor,
            request.discrepancy_reason,
            request.notes
        )
    except LedgerError as e:
        raise to_http_exception(e)
    return cash_balance_to_dict(record)
