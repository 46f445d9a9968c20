"""
Ledger Exceptions

Typed error taxonomy for the ledger core. Every error carries a
machine-readable ``code`` so callers (and the HTTP layer) branch on type,
never on message text.

    LedgerError
    +-- NotFoundError        loan / account / transaction / party id unresolvable
    +-- InvalidStateError    closed loan payment, overpayment, duplicate opening
    |                        balance, negative counted cash
    +-- AlreadyDoneError     interest already accrued today
    +-- IntegrityGuardError  delete of a loan that still has transactions
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all ledger domain errors"""

    code: str = "LEDGER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(LedgerError):
    """Referenced entity does not exist"""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(
            f"{entity_type} {entity_id} not found",
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class InvalidStateError(LedgerError):
    """Operation is not allowed in the entity's current state"""

    code = "INVALID_STATE"


class AlreadyDoneError(LedgerError):
    """Operation was already performed for the period (e.g. today's accrual)"""

    code = "ALREADY_DONE"


class IntegrityGuardError(LedgerError):
    """Delete refused because dependent records still exist"""

    code = "INTEGRITY_GUARD"
