"""
Ledger System Wiring

Composes every ledger service over a single storage backend, a shared
per-entity lock registry and one audit trail.
"""

from datetime import datetime
from typing import Callable, Optional

from .config import LedgerConfig, get_config
from .storage import StorageInterface, InMemoryStorage, SQLiteStorage, EntityLocks
from .audit import AuditTrail
from .parties import PartyDirectory, StoragePartyDirectory
from .feeds import InventoryFeed, WageFeed, ExpenseFeed
from .cash_accounts import CashAccountManager
from .loans import LoanManager
from .cashflow import CashFlowAggregator
from .cashbook import CashBookManager
from .reversal import ReversalCoordinator
from .logging_config import get_logger


class LedgerSystem:
    """Factory ledger with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        use_sqlite: Optional[bool] = None,
        parties: Optional[PartyDirectory] = None,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[LedgerConfig] = None
    ):
        self.config = config or get_config()
        self.logger = get_logger("factory_ledger.system")

        if use_sqlite is None:
            use_sqlite = self.config.use_sqlite

        # Initialize storage
        if storage is not None:
            self.storage = storage
        elif use_sqlite:
            self.storage = SQLiteStorage(self.config.database_path)
        else:
            self.storage = InMemoryStorage()

        self.locks = EntityLocks()
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.parties = parties or StoragePartyDirectory(self.storage)

        # Surrounding subsystems the cash book reads from
        self.inventory_feed = InventoryFeed(self.storage)
        self.wage_feed = WageFeed(self.storage)
        self.expense_feed = ExpenseFeed(self.storage)

        # Core components
        self.cash_accounts = CashAccountManager(self.storage, self.audit_trail, self.locks)
        self.loan_manager = LoanManager(
            self.storage, self.parties, self.audit_trail,
            cash_accounts=self.cash_accounts,
            locks=self.locks,
            clock=clock,
            days_in_year=self.config.days_in_year
        )
        self.aggregator = CashFlowAggregator(
            self.loan_manager, self.inventory_feed, self.wage_feed, self.expense_feed
        )
        self.cashbook = CashBookManager(self.storage, self.aggregator, self.audit_trail, self.locks)
        self.reversal = ReversalCoordinator(
            self.storage, self.loan_manager, self.cash_accounts, self.audit_trail
        )

        self.logger.info(f"Ledger system initialized with {type(self.storage).__name__}")

    def close(self) -> None:
        self.storage.close()
