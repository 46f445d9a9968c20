"""
Money Helpers

Single-currency amounts are plain Decimals rounded to the configured number
of places with ROUND_HALF_UP. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext
from enum import Enum
from typing import Iterable, Union

# High precision for intermediate interest arithmetic
getcontext().prec = 28

MONEY_PLACES = 2
ZERO = Decimal('0.00')

AmountLike = Union[Decimal, int, str, float]


class PaymentMode(Enum):
    """How a transaction settles"""
    CASH = "Cash"
    BANK = "Bank"
    LOAN = "Loan"  # Ledger-only entry, no immediate cash effect


def to_decimal(value: AmountLike) -> Decimal:
    """Coerce a value to a finite Decimal, going through str for floats"""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        result = Decimal(value)
    if not result.is_finite():
        raise ValueError(f"Amount must be a finite number, got {value!r}")
    return result


def round_money(value: AmountLike, places: int = MONEY_PLACES) -> Decimal:
    """Round to currency precision"""
    return to_decimal(value).quantize(Decimal('0.1') ** places, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[AmountLike]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return round_money(total)


def format_money(value: AmountLike) -> str:
    """Format for display/logging"""
    return f"{round_money(value):,.2f}"
