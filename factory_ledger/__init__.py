"""
Factory Ledger

Financial ledger core for a factory: loan accounts with simple interest,
cash and bank account balances with an append-only history, and a daily
cash book reconciled against counted cash. All money uses Decimal.
"""

__version__ = "1.0.0"
