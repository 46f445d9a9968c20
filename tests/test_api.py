"""
Integration tests for the Factory Ledger API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from datetime import datetime
from fastapi.testclient import TestClient

from factory_ledger.api import app
from factory_ledger.api.dependencies import get_ledger_system
from factory_ledger.storage import InMemoryStorage
from factory_ledger.parties import InMemoryPartyDirectory
from factory_ledger.system import LedgerSystem
from factory_ledger.feeds import InventoryTransactionType
from factory_ledger.money import PaymentMode


NOW = datetime(2024, 6, 15, 10, 0, 0)
ACTOR = {"X-Actor": "clerk"}


@pytest.fixture
def system():
    parties = InMemoryPartyDirectory({"P1": "Ravi Traders", "P2": "Shree Bank"})
    return LedgerSystem(storage=InMemoryStorage(), parties=parties, clock=lambda: NOW)


@pytest.fixture
def client(system):
    """Test client wired to an in-memory ledger"""
    app.dependency_overrides[get_ledger_system] = lambda: system
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def cash_account(client):
    r = client.post("/accounts", json={
        "account_name": "Main Cash",
        "account_type": "Cash",
        "opening_balance": "50000",
        "actor": "owner"
    })
    assert r.status_code == 201
    return r.json()


@pytest.fixture
def loan(client, cash_account):
    """10,000 lent 73 days ago at 12%"""
    r = client.post("/loans", json={
        "party_id": "P1",
        "loan_type": "Given",
        "original_amount": "10000",
        "interest_rate": "12",
        "start_date": "2024-04-03T10:00:00",
        "payment_mode": "Cash"
    }, headers=ACTOR)
    assert r.status_code == 201
    return r.json()


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "cashbook" in r.json()["endpoints"]


class TestAccountEndpoints:
    def test_create_and_get_account(self, client, cash_account):
        assert cash_account["current_balance"] == "50000.00"

        r = client.get(f"/accounts/{cash_account['id']}")
        assert r.status_code == 200
        assert r.json()["account_name"] == "Main Cash"

    def test_manual_adjustment(self, client, cash_account):
        r = client.post(f"/accounts/{cash_account['id']}/adjustments", json={
            "amount": "-150.50",
            "notes": "Petty cash top-up",
        }, headers=ACTOR)
        assert r.status_code == 200
        assert r.json()["new_balance"] == "49849.50"

        r = client.get(f"/accounts/{cash_account['id']}/verify")
        assert r.json()["valid"] is True

        r = client.get(f"/accounts/{cash_account['id']}/history")
        assert len(r.json()["history"]) == 2

    def test_reversal_change_type_not_postable(self, client, cash_account):
        r = client.post(f"/accounts/{cash_account['id']}/adjustments", json={
            "amount": "10", "change_type": "Reversal", "notes": "x"
        }, headers=ACTOR)
        assert r.status_code == 400

    def test_unknown_account(self, client):
        assert client.get("/accounts/missing").status_code == 404
        r = client.post("/accounts/missing/adjustments", json={"amount": "10", "notes": "x"}, headers=ACTOR)
        assert r.status_code == 404
        assert r.json()["detail"]["code"] == "NOT_FOUND"

    def test_summary(self, client, cash_account):
        r = client.get("/accounts/summary")
        assert r.json() == {"Main Cash": "50000.00", "Total": "50000.00"}


class TestLoanEndpoints:
    """End-to-end loan flows"""

    def test_create_loan_posts_cash(self, client, loan, cash_account):
        assert loan["status"] == "Active"
        assert loan["total_outstanding"] == "10000.00"

        r = client.get(f"/accounts/{cash_account['id']}")
        assert r.json()["current_balance"] == "40000.00"

    def test_payment_accrues_then_allocates(self, client, loan):
        r = client.post(f"/loans/{loan['id']}/payments", json={"amount": "1000"}, headers=ACTOR)
        assert r.status_code == 200
        data = r.json()
        assert data["transaction"]["interest_portion"] == "240.00"
        assert data["transaction"]["principal_portion"] == "760.00"
        assert data["transaction"]["debit_credit"] == "Credit"
        assert data["loan"]["total_outstanding"] == "9240.00"
        assert data["loan"]["status"] == "PartiallyPaid"

        r = client.get(f"/loans/{loan['id']}/transactions")
        types = [t["transaction_type"] for t in r.json()["transactions"]]
        assert types == ["LoanGiven", "InterestReceived", "LoanRepayment"]

    def test_second_accrual_same_day_conflicts(self, client, loan):
        r = client.post(f"/loans/{loan['id']}/accrue-interest", json={"actor": "clerk"})
        assert r.status_code == 200
        assert r.json()["transaction"]["interest_amount"] == "240.00"

        r = client.post(f"/loans/{loan['id']}/accrue-interest", headers=ACTOR)
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "ALREADY_DONE"

    def test_overpayment_rejected(self, client, loan):
        r = client.post(f"/loans/{loan['id']}/payments", json={"amount": "20000"}, headers=ACTOR)
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "INVALID_STATE"

        r = client.get(f"/loans/{loan['id']}")
        assert r.json()["outstanding_interest"] == "0.00"

    def test_unknown_loan(self, client):
        assert client.get("/loans/missing").status_code == 404
        r = client.post("/loans/missing/payments", json={"amount": "10"}, headers=ACTOR)
        assert r.status_code == 404

    def test_actor_required(self, client, cash_account):
        r = client.post("/loans", json={
            "party_id": "P1", "loan_type": "Given", "original_amount": "100", "interest_rate": "5"
        })
        assert r.status_code == 400

    def test_unknown_party(self, client):
        r = client.post("/loans", json={
            "party_id": "P9", "loan_type": "Given", "original_amount": "100", "interest_rate": "5"
        }, headers=ACTOR)
        assert r.status_code == 404

    def test_invalid_amount(self, client):
        r = client.post("/loans", json={
            "party_id": "P1", "loan_type": "Given", "original_amount": "lots", "interest_rate": "5"
        }, headers=ACTOR)
        assert r.status_code == 400

    def test_filters_and_summary(self, client, loan):
        client.post("/loans", json={
            "party_id": "P2", "loan_type": "Taken", "original_amount": "5000",
            "interest_rate": "10", "payment_mode": "Bank"
        }, headers=ACTOR)

        r = client.get("/loans", params={"loan_type": "Taken"})
        assert [l["party_id"] for l in r.json()["loans"]] == ["P2"]

        r = client.get("/loans/summary")
        assert r.json()["total_loans_given"] == "10000.00"
        assert r.json()["total_loans_taken"] == "5000.00"

    def test_delete_guarded_loan(self, client, loan):
        client.post(f"/loans/{loan['id']}/accrue-interest", headers=ACTOR)

        r = client.delete(f"/loans/{loan['id']}", headers=ACTOR)
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "INTEGRITY_GUARD"

    def test_delete_and_restore_loan(self, client, loan, cash_account):
        r = client.delete(f"/loans/{loan['id']}", headers=ACTOR)
        assert r.status_code == 200
        snapshot = r.json()
        assert client.get(f"/loans/{loan['id']}").status_code == 404
        assert client.get(f"/accounts/{cash_account['id']}").json()["current_balance"] == "50000.00"

        r = client.post("/loans/restore", json=snapshot, headers=ACTOR)
        assert r.status_code == 201
        assert r.json()["total_outstanding"] == "10000.00"
        assert client.get(f"/accounts/{cash_account['id']}").json()["current_balance"] == "40000.00"


class TestTransactionEndpoints:
    def test_delete_and_restore_payment(self, client, loan, cash_account):
        payment = client.post(
            f"/loans/{loan['id']}/payments", json={"amount": "1000"}, headers=ACTOR
        ).json()["transaction"]

        r = client.delete(f"/transactions/{payment['id']}", headers=ACTOR)
        assert r.status_code == 200
        deleted = r.json()["deleted"]
        assert client.get(f"/loans/{loan['id']}").json()["total_outstanding"] == "10240.00"
        assert client.get(f"/transactions/{payment['id']}").status_code == 404

        r = client.post("/transactions/restore", json={"transaction": deleted}, headers=ACTOR)
        assert r.status_code == 201
        assert client.get(f"/loans/{loan['id']}").json()["total_outstanding"] == "9240.00"
        assert client.get(f"/accounts/{cash_account['id']}").json()["current_balance"] == "41000.00"

        r = client.post("/transactions/restore", json={"transaction": deleted}, headers=ACTOR)
        assert r.status_code == 409

    def test_issuance_delete_rejected(self, client, loan):
        txs = client.get(f"/loans/{loan['id']}/transactions").json()["transactions"]
        r = client.delete(f"/transactions/{txs[0]['id']}", headers=ACTOR)
        assert r.status_code == 400

    def test_delete_requires_actor(self, client, loan):
        txs = client.get(f"/loans/{loan['id']}/transactions").json()["transactions"]
        assert client.delete(f"/transactions/{txs[0]['id']}").status_code == 400

    def test_list_by_type(self, client, loan):
        r = client.get("/transactions", params={"transaction_type": "LoanGiven"})
        assert len(r.json()["transactions"]) == 1
        assert r.json()["transactions"][0]["debit_credit"] == "Debit"


class TestCashBookEndpoints:
    """Daily cash book flow"""

    def test_open_compute_reconcile(self, client, system):
        r = client.post("/cashbook/opening-balance", json={
            "date": "2024-06-01", "opening_balance": "1000"
        }, headers=ACTOR)
        assert r.status_code == 201

        system.inventory_feed.record(
            InventoryTransactionType.SELL, "500", PaymentMode.CASH, datetime(2024, 6, 1, 11)
        )
        system.expense_feed.record("Diesel", "200", PaymentMode.CASH, datetime(2024, 6, 1, 15))

        r = client.post("/cashbook/2024-06-01/compute")
        assert r.status_code == 200
        assert r.json()["expected_closing_balance"] == "1300.00"

        r = client.post("/cashbook/2024-06-01/reconcile", json={
            "actual_cash_counted": "1250", "discrepancy_reason": "Unrecorded tea"
        }, headers=ACTOR)
        assert r.status_code == 200
        assert r.json()["discrepancy"] == "-50.00"
        assert r.json()["status"] == "Shortage"

        r = client.get("/cashbook/2024-06-02/cash-flow")
        assert r.json()["opening_balance"] == "1250.00"

        r = client.get("/cashbook/status")
        assert r.json() == {"initialized": True, "cash_in_hand": "1250.00"}

        r = client.get("/cashbook/discrepancies/total", params={"start": "2024-06-01", "end": "2024-06-30"})
        assert r.json()["total_discrepancy"] == "-50.00"

    def test_duplicate_opening_balance(self, client):
        body = {"date": "2024-06-01", "opening_balance": "1000"}
        assert client.post("/cashbook/opening-balance", json=body, headers=ACTOR).status_code == 201
        assert client.post("/cashbook/opening-balance", json=body, headers=ACTOR).status_code == 400

    def test_negative_count_rejected(self, client):
        r = client.post("/cashbook/2024-06-01/reconcile", json={"actual_cash_counted": "-5"}, headers=ACTOR)
        assert r.status_code == 400

    def test_empty_cash_book(self, client):
        assert client.get("/cashbook/latest").status_code == 404
        assert client.get("/cashbook/2024-06-01").status_code == 404
        assert client.get("/cashbook/not-a-date").status_code == 400


NON_FINITE_AMOUNTS = ["NaN", "Infinity", "-Infinity", "sNaN", "1E+1000000"]


class TestNonFiniteAmounts:
    """Amounts that cannot be rounded to cents are rejected with 400"""

    @pytest.mark.parametrize("value", NON_FINITE_AMOUNTS)
    def test_payment(self, client, loan, value):
        r = client.post(f"/loans/{loan['id']}/payments", json={"amount": value}, headers=ACTOR)
        assert r.status_code == 400
        assert client.get(f"/loans/{loan['id']}").json()["total_outstanding"] == "10000.00"

    @pytest.mark.parametrize("value", NON_FINITE_AMOUNTS)
    def test_create_loan(self, client, value):
        for field in ("original_amount", "interest_rate"):
            body = {"party_id": "P1", "loan_type": "Given", "original_amount": "100", "interest_rate": "5"}
            body[field] = value
            r = client.post("/loans", json=body, headers=ACTOR)
            assert r.status_code == 400
            assert field in r.json()["detail"]

    @pytest.mark.parametrize("value", NON_FINITE_AMOUNTS)
    def test_create_account(self, client, value):
        r = client.post("/accounts", json={
            "account_name": "Main Cash", "account_type": "Cash", "opening_balance": value, "actor": "owner"
        })
        assert r.status_code == 400

    @pytest.mark.parametrize("value", NON_FINITE_AMOUNTS)
    def test_adjustment(self, client, cash_account, value):
        r = client.post(f"/accounts/{cash_account['id']}/adjustments", json={
            "amount": value, "notes": "x"
        }, headers=ACTOR)
        assert r.status_code == 400
        assert client.get(f"/accounts/{cash_account['id']}").json()["current_balance"] == "50000.00"

    @pytest.mark.parametrize("value", NON_FINITE_AMOUNTS)
    def test_opening_balance(self, client, value):
        r = client.post("/cashbook/opening-balance", json={
            "date": "2024-06-01", "opening_balance": value
        }, headers=ACTOR)
        assert r.status_code == 400
        assert client.get("/cashbook/2024-06-01").status_code == 404

    @pytest.mark.parametrize("value", NON_FINITE_AMOUNTS)
    def test_reconcile(self, client, value):
        r = client.post("/cashbook/2024-06-01/reconcile", json={"actual_cash_counted": value}, headers=ACTOR)
        assert r.status_code == 400
