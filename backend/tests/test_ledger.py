from decimal import Decimal

from conftest import register, upload_and_process

import ledger.services as ledger_services
from ledger.services import apply_debt_payment
from models.ledger_model import DebtPayment


LOAN_CSV = (
    "Date,Description,Amount\n"
    "2024-01-05,Whole Foods Market,-120.45\n"
    "2024-01-15,AUTO LOAN PAYMENT,-250.00\n"
    "2024-02-02,Whole Foods Market,-30.00\n"
)


def test_apply_debt_payment_never_goes_negative():
    assert apply_debt_payment(1000, 250) == Decimal("750.00")
    assert apply_debt_payment(100, 250) == Decimal("0.00")
    assert apply_debt_payment("10.10", "0.10") == Decimal("10.00")


def _create_debt(client, auth, **body):
    payload = {"name": "Car loan", "starting_balance": 1000}
    payload.update(body)
    resp = client.post("/debts", headers=auth, json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_manual_payment_with_principal(client, auth):
    debt = _create_debt(client, auth)
    resp = client.post(
        "/debts/payment",
        headers=auth,
        json={"debt_id": debt["id"], "amount": 300, "principal": 280, "interest": 20, "date": "2024-01-20"},
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["debt"]["balance"] == 720.0
    assert body["payment"]["principal"] == 280.0


def test_overpayment_clamps_to_zero(client, auth):
    debt = _create_debt(client, auth, starting_balance=100)
    resp = client.post(
        "/debts/payment",
        headers=auth,
        json={"debt_id": debt["id"], "amount": 500, "principal": 500, "date": "2024-01-20"},
    )
    assert resp.get_json()["debt"]["balance"] == 0.0


def test_payment_without_principal_keeps_balance(client, auth):
    debt = _create_debt(client, auth)
    resp = client.post(
        "/debts/payment",
        headers=auth,
        json={"debt_id": debt["id"], "amount": 50, "date": "2024-01-20"},
    )
    assert resp.status_code == 201
    assert resp.get_json()["debt"]["balance"] == 1000.0


def test_payment_on_someone_elses_debt(client, auth):
    debt = _create_debt(client, auth)
    other, _ = register(client, email="bo@example.com", name="Bo")
    resp = client.post(
        "/debts/payment",
        headers=other,
        json={"debt_id": debt["id"], "amount": 50, "principal": 50, "date": "2024-01-20"},
    )
    assert resp.status_code == 404


def test_bad_payment_date(client, auth):
    debt = _create_debt(client, auth)
    resp = client.post(
        "/debts/payment",
        headers=auth,
        json={"debt_id": debt["id"], "amount": 50, "date": "Jan 20"},
    )
    assert resp.status_code == 400


def test_statement_rows_pay_down_matching_debt(client, auth):
    _create_debt(client, auth, match_keyword="auto loan")
    sid, processed = upload_and_process(client, auth, LOAN_CSV)
    assert processed.get_json()["status"] == "COMPLETED"

    debts = client.get("/debts", headers=auth).get_json()["debts"]
    assert debts[0]["balance"] == 750.0

    # Reprocessing the same statement must not pay the debt twice.
    again = client.post(f"/statements/{sid}/reprocess", headers=auth)
    assert again.get_json()["status"] == "COMPLETED"
    debts = client.get("/debts", headers=auth).get_json()["debts"]
    assert debts[0]["balance"] == 750.0


def test_payment_linked_by_a_concurrent_run_is_skipped(client, auth, app, monkeypatch):
    _create_debt(client, auth, match_keyword="auto loan")
    sid, _ = upload_and_process(client, auth, LOAN_CSV)

    # This run reads the links before a concurrent one wrote the same row.
    monkeypatch.setattr(ledger_services, "_linked_transaction_ids", lambda user_id: set())
    again = client.post(f"/statements/{sid}/reprocess", headers=auth)
    assert again.status_code == 200
    assert again.get_json()["status"] == "COMPLETED"

    with app.app_context():
        assert DebtPayment.query.count() == 1
    debts = client.get("/debts", headers=auth).get_json()["debts"]
    assert debts[0]["balance"] == 750.0


def test_debt_created_after_import_links_existing_rows(client, auth):
    upload_and_process(client, auth, LOAN_CSV)
    debt = _create_debt(client, auth, match_keyword="Auto Loan")
    assert debt["balance"] == 750.0


def test_deleting_statement_restores_debt_balance(client, auth):
    _create_debt(client, auth, match_keyword="auto loan")
    sid, _ = upload_and_process(client, auth, LOAN_CSV)

    assert client.delete(f"/statements/{sid}", headers=auth).status_code == 200
    debts = client.get("/debts", headers=auth).get_json()["debts"]
    assert debts[0]["balance"] == 1000.0


def test_budget_spent_follows_transactions(client, auth):
    resp = client.post(
        "/budgets", headers=auth, json={"category": "Groceries", "month": 1, "year": 2024, "amount": 400}
    )
    assert resp.status_code == 201
    assert resp.get_json()["spent"] == 0.0

    upload_and_process(client, auth, LOAN_CSV)
    budgets = client.get("/budgets?month=1&year=2024", headers=auth).get_json()["budgets"]
    assert len(budgets) == 1
    assert budgets[0]["spent"] == 120.45
    assert budgets[0]["amount"] == 400.0


def test_budget_upsert_keeps_one_row(client, auth):
    body = {"category": "Dining", "month": 3, "year": 2024, "amount": 100}
    first = client.post("/budgets", headers=auth, json=body).get_json()
    body["amount"] = 150
    second = client.post("/budgets", headers=auth, json=body).get_json()
    assert first["id"] == second["id"]
    assert second["amount"] == 150.0
    assert len(client.get("/budgets", headers=auth).get_json()["budgets"]) == 1


def test_budget_scoped_to_profile(client, auth, profiles):
    resp = client.post(
        "/budgets",
        headers=auth,
        json={
            "category": "Groceries",
            "month": 1,
            "year": 2024,
            "amount": 400,
            "business_profile_id": profiles["BUSINESS"],
        },
    )
    assert resp.status_code == 201
    upload_and_process(client, auth, LOAN_CSV)
    budgets = client.get("/budgets", headers=auth).get_json()["budgets"]
    # The groceries were booked to the Personal profile.
    assert budgets[0]["spent"] == 0.0


def test_budget_validation(client, auth):
    resp = client.post(
        "/budgets", headers=auth, json={"category": "Groceries", "month": 13, "year": 2024, "amount": 1}
    )
    assert resp.status_code == 400
