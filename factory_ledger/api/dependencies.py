"""
Shared API dependencies and request helpers
"""

from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Optional

from fastapi import Header, HTTPException, status

from ..money import round_money
from ..exceptions import LedgerError, NotFoundError, InvalidStateError, AlreadyDoneError, IntegrityGuardError
from ..system import LedgerSystem


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Dependency returning the process-wide ledger system, created on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system


def get_header_actor(x_actor: Optional[str] = Header(None)) -> Optional[str]:
    return x_actor


def resolve_actor(body_actor: Optional[str], header_actor: Optional[str]) -> str:
    """The acting user comes from the request body or the X-Actor header"""
    actor = body_actor or header_actor
    if not actor:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Actor is required (request field 'actor' or X-Actor header)"
        )
    return actor


_STATUS_BY_ERROR = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_400_BAD_REQUEST,
    AlreadyDoneError: status.HTTP_409_CONFLICT,
    IntegrityGuardError: status.HTTP_409_CONFLICT,
}


def to_http_exception(error: LedgerError) -> HTTPException:
    """Map a ledger error onto an HTTPException carrying its code and details"""
    status_code = _STATUS_BY_ERROR.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=error.to_dict())


def parse_amount(value: str, field_name: str = "amount") -> Decimal:
    """Parse a decimal string that must round to a finite currency amount"""
    try:
        amount = Decimal(value)
        if not amount.is_finite():
            raise ValueError("not a finite number")
        # Values too large to quantize fail here instead of inside a service
        round_money(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid decimal for {field_name}: {value!r}")
    return amount


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp into a naive local datetime"""
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid ISO datetime: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid ISO date: {value!r}")
