"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection, integrity verification,
and that ledger mutations are recorded with their actor.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from factory_ledger.storage import InMemoryStorage
from factory_ledger.audit import AuditTrail, AuditEvent, AuditEventType
from factory_ledger.parties import InMemoryPartyDirectory
from factory_ledger.cash_accounts import CashAccountManager, AccountType
from factory_ledger.loans import LoanManager, LoanType
from factory_ledger.money import PaymentMode


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Decimals, datetimes and enums in metadata become JSON-safe values"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.BALANCE_CHANGED,
            entity_type="cash_account",
            entity_id="ACC001",
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal("1234.56"),
                "when": now,
                "kind": AuditEventType.ACCOUNT_CREATED,
                "nested": {"values": [Decimal("1.10")]}
            }
        )

        assert event.metadata["amount"] == "1234.56"
        assert event.metadata["when"] == now.isoformat()
        assert event.metadata["kind"] == "account_created"
        assert event.metadata["nested"]["values"] == ["1.10"]

    def test_hash_is_deterministic(self):
        now = datetime.now(timezone.utc)
        kwargs = dict(
            id="AUDIT002", created_at=now, updated_at=now,
            event_type=AuditEventType.LOAN_CREATED, entity_type="loan", entity_id="L1",
            previous_hash="abc", current_hash="", metadata={"amount": "10.00"}, sequence=1
        )
        assert AuditEvent(**kwargs).calculate_hash() == AuditEvent(**kwargs).calculate_hash()


class TestAuditTrail:
    """Test the hash chain"""

    def test_events_are_chained(self, audit_trail):
        first = audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1", {"a": 1}, user_id="alice")
        second = audit_trail.log_event(AuditEventType.INTEREST_ACCRUED, "loan", "L1", user_id="bob")

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert second.user_id == "bob"

    def test_verify_integrity_of_clean_chain(self, audit_trail):
        for i in range(5):
            audit_trail.log_event(AuditEventType.BALANCE_CHANGED, "cash_account", f"A{i}")

        result = audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_tampered_metadata_is_detected(self, storage, audit_trail):
        audit_trail.log_event(AuditEventType.BALANCE_CHANGED, "cash_account", "A1", {"change_amount": "100.00"})
        event = audit_trail.log_event(AuditEventType.BALANCE_CHANGED, "cash_account", "A1", {"change_amount": "5.00"})

        data = storage.load("audit_events", event.id)
        data["metadata"]["change_amount"] = "5000.00"
        storage.save("audit_events", event.id, data)

        result = audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_deleted_event_breaks_chain(self, storage, audit_trail):
        events = [audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", f"L{i}") for i in range(3)]
        storage.delete("audit_events", events[1].id)

        result = audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["chain_breaks"][0]["event_id"] == events[2].id

    def test_disabled_trail_logs_nothing(self, storage):
        trail = AuditTrail(storage, enabled=False)
        assert trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1") is None
        assert trail.count_events() == 0

    def test_queries(self, audit_trail):
        audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1")
        audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L2")
        audit_trail.log_event(AuditEventType.INTEREST_ACCRUED, "loan", "L1")

        assert len(audit_trail.get_events_for_entity("loan", "L1")) == 2
        assert len(audit_trail.get_events_for_entity("loan", "L1", limit=1)) == 1
        assert len(audit_trail.get_events_by_type(AuditEventType.LOAN_CREATED)) == 2
        assert audit_trail.count_events() == 3


class TestLedgerAuditing:
    """Ledger services record each mutation with its actor"""

    def test_loan_and_cash_events_carry_actor(self, storage, audit_trail):
        parties = InMemoryPartyDirectory({"P1": "Ravi Traders"})
        cash = CashAccountManager(storage, audit_trail)
        loans = LoanManager(storage, parties, audit_trail, cash_accounts=cash)

        account = cash.create_account("Main Cash", AccountType.CASH, "5000", actor="clerk")
        loan = loans.create_loan("P1", LoanType.GIVEN, "1000", "12", actor="manager",
                                 payment_mode=PaymentMode.CASH)

        loan_events = audit_trail.get_events_for_entity("loan", loan.id)
        assert [e.event_type for e in loan_events] == [AuditEventType.LOAN_CREATED]
        assert loan_events[0].user_id == "manager"

        account_events = audit_trail.get_events_for_entity("cash_account", account.id)
        assert [e.event_type for e in account_events] == [
            AuditEventType.ACCOUNT_CREATED, AuditEventType.BALANCE_CHANGED
        ]
        assert account_events[1].user_id == "manager"
        assert account_events[1].metadata["change_amount"] == "-1000.00"

        assert audit_trail.verify_integrity()["valid"]
