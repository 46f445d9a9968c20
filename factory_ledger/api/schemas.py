"""
Pydantic schemas for API requests and responses

Amounts travel as decimal strings so no precision is lost in JSON.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..loans import LoanAccount, FinancialTransaction
from ..cash_accounts import CashAccount, BalanceHistory
from ..cashbook import CashBalance
from ..cashflow import CashFlowSummary


# Loan schemas
class CreateLoanRequest(BaseModel):
    party_id: str
    loan_type: str = Field(..., description="Loan type (Given, Taken)")
    original_amount: str = Field(..., description="Decimal amount as string")
    interest_rate: str = Field(..., description="Annual simple interest rate in percent")
    start_date: Optional[str] = None  # ISO datetime string
    due_date: Optional[str] = None    # ISO datetime string
    payment_mode: str = Field("Cash", description="Payment mode (Cash, Bank, Loan)")
    notes: str = ""
    actor: Optional[str] = None


class LoanPaymentRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    payment_mode: str = Field("Cash", description="Payment mode (Cash, Bank, Loan)")
    notes: str = ""
    actor: Optional[str] = None


class ActorRequest(BaseModel):
    actor: Optional[str] = None


class RestoreLoanRequest(BaseModel):
    loan: Dict[str, Any]
    transactions: List[Dict[str, Any]] = []
    actor: Optional[str] = None


class RestoreTransactionRequest(BaseModel):
    transaction: Dict[str, Any]
    actor: Optional[str] = None


# Cash account schemas
class CreateCashAccountRequest(BaseModel):
    account_name: str
    account_type: str = Field(..., description="Account type (Cash, Bank)")
    opening_balance: str = Field(..., description="Decimal amount as string")
    opening_date: Optional[str] = None
    description: str = ""
    actor: Optional[str] = None


class BalanceAdjustmentRequest(BaseModel):
    amount: str = Field(..., description="Signed decimal amount as string")
    change_type: str = Field("ManualAdjustment", description="ManualAdjustment or Transfer")
    notes: str
    actor: Optional[str] = None


# Cash book schemas
class OpeningBalanceRequest(BaseModel):
    date: str  # ISO date string
    opening_balance: str
    notes: str = ""
    actor: Optional[str] = None


class ReconcileRequest(BaseModel):
    actual_cash_counted: str = Field(..., description="Decimal amount as string")
    discrepancy_reason: Optional[str] = None
    notes: Optional[str] = None
    actor: Optional[str] = None


# Response helpers
def loan_to_dict(loan: LoanAccount) -> Dict[str, Any]:
    return loan.to_dict()


def transaction_to_dict(tx: FinancialTransaction) -> Dict[str, Any]:
    data = tx.to_dict()
    data["debit_credit"] = tx.debit_credit
    return data


def account_to_dict(account: CashAccount) -> Dict[str, Any]:
    return account.to_dict()


def history_to_dict(entry: BalanceHistory) -> Dict[str, Any]:
    return entry.to_dict()


def cash_balance_to_dict(record: CashBalance) -> Dict[str, Any]:
    data = record.to_dict()
    data["closing_balance"] = str(record.closing_balance)
    data["state"] = record.state
    data["status"] = record.status
    return data


def cash_flow_to_dict(summary: CashFlowSummary) -> Dict[str, str]:
    return {
        "opening_balance": str(summary.opening_balance),
        "total_cash_in": str(summary.total_cash_in),
        "total_cash_out": str(summary.total_cash_out),
        "net_flow": str(summary.net_flow),
        "expected_closing_balance": str(summary.expected_closing_balance),
    }
