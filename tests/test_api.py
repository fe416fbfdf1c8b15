from datetime import date
from decimal import Decimal

import pytest

from finanzas.models.schemas import AccountCreate, TransactionCreate
from finanzas.routers import auth as auth_routes
from finanzas.security import DUMMY_HASH
from finanzas.storage.base import StorageError

# Seeded demo data in MemStorage
ADMIN_ID = 1
CHECKING_ID = 1
SAVINGS_ID = 2

COOKIE = "finanzas-session"


def session_cookie(response) -> dict:
    """Builds a Cookie header from the session cookie set by the response."""
    raw = response.headers.get("set-cookie", "")
    name, _, token = raw.split(";", 1)[0].partition("=")
    assert name == COOKIE and token, f"No session cookie in {response.headers}"
    return {"Cookie": f"{COOKIE}={token}"}


# --- Auth ---
@pytest.mark.asyncio
async def test_login_me_logout(client):
    response = await client.post("/api/auth/login", json={"username": "admin", "password": "demo123"})
    assert response.status_code == 200, response.text
    assert response.json()["user"]["username"] == "admin"
    assert "password_hash" not in response.json()["user"]
    headers = session_cookie(response)

    me = await client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["user"]["id"] == ADMIN_ID

    logout = await client.post("/api/auth/logout", headers=headers)
    assert logout.status_code == 200

    after = await client.get("/api/auth/me", headers=headers)
    assert after.status_code == 401


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(client):
    unknown = await client.post("/api/auth/login", json={"username": "ghost", "password": "demo123"})
    wrong = await client.post("/api/auth/login", json={"username": "admin", "password": "nope"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json() == {"detail": "Invalid credentials"}


@pytest.mark.asyncio
async def test_register_logs_in_and_rejects_duplicates(client):
    payload = {"username": "lucia", "email": "lucia@empresa.com", "password": "secreto1", "full_name": "Lucía Pérez"}

    response = await client.post("/api/auth/register", json=payload)
    assert response.status_code == 201, response.text
    assert response.json()["user"]["role"] == "employee"

    me = await client.get("/api/auth/me", headers=session_cookie(response))
    assert me.json()["user"]["username"] == "lucia"

    duplicate = await client.post("/api/auth/register", json=payload)
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Username already exists"

    same_email = await client.post("/api/auth/register", json={**payload, "username": "lucia2"})
    assert same_email.status_code == 400
    assert same_email.json()["detail"] == "Email already exists"


@pytest.mark.asyncio
async def test_unknown_user_still_pays_for_a_hash_check(client, mocker):
    spy = mocker.spy(auth_routes, "verify_password")

    response = await client.post("/api/auth/login", json={"username": "ghost", "password": "demo123"})

    assert response.status_code == 401
    spy.assert_called_once_with("demo123", DUMMY_HASH)


@pytest.mark.asyncio
async def test_register_race_on_username_is_a_client_error(client, store, mocker):
    payload = {"username": "lucia", "email": "lucia@empresa.com", "password": "secreto1", "full_name": "Lucía Pérez"}
    first = await client.post("/api/auth/register", json=payload)
    winner = await store.get_user_by_username("lucia")

    # The duplicate passes the pre-checks, then loses the unique constraint
    mocker.patch.object(store, "get_user_by_username", side_effect=[None, winner])
    mocker.patch.object(store, "get_user_by_email", side_effect=[None])
    mocker.patch.object(store, "create_user", side_effect=StorageError("UNIQUE constraint failed: users.username"))

    response = await client.post("/api/auth/register", json={**payload, "email": "otra@empresa.com"})

    assert first.status_code == 201
    assert response.status_code == 400
    assert response.json()["detail"] == "Username already exists"


@pytest.mark.asyncio
async def test_protected_routes_require_session(client):
    for path in ("/api/accounts", "/api/transactions", "/api/categories", "/api/analytics/summary"):
        response = await client.get(path)
        assert response.status_code == 401, path
        assert response.json()["detail"] == "Authentication required"

    bogus = await client.get("/api/accounts", headers={"Cookie": f"{COOKIE}=not-a-session"})
    assert bogus.status_code == 401


@pytest.mark.asyncio
async def test_update_profile(client, mock_user_auth, store):
    await client.post(
        "/api/auth/register",
        json={"username": "pedro", "email": "pedro@empresa.com", "password": "secreto1", "full_name": "Pedro"},
    )

    taken = await client.patch("/api/users/me", json={"email": "pedro@empresa.com"})
    assert taken.status_code == 400

    response = await client.patch("/api/users/me", json={"full_name": "Admin Nuevo"})
    assert response.status_code == 200
    assert response.json()["user"]["full_name"] == "Admin Nuevo"
    assert (await store.get_user(ADMIN_ID)).username == "admin"


# --- Categories ---
@pytest.mark.asyncio
async def test_categories_crud(client, mock_user_auth):
    expenses = await client.get("/api/categories?type=expense")
    assert expenses.status_code == 200
    assert {c["type"] for c in expenses.json()} == {"expense"}
    assert "Suministros" in [c["name"] for c in expenses.json()]

    created = await client.post("/api/categories", json={"name": "Alquiler", "type": "expense"})
    assert created.status_code == 201
    cat_id = created.json()["id"]
    assert created.json()["color"] == "#1976D2"

    updated = await client.put(f"/api/categories/{cat_id}", json={"color": "#000000"})
    assert updated.json()["color"] == "#000000"

    assert (await client.delete(f"/api/categories/{cat_id}")).status_code == 200
    assert (await client.delete(f"/api/categories/{cat_id}")).status_code == 404


# --- Accounts ---
@pytest.mark.asyncio
async def test_accounts_are_scoped_to_owner(client, mock_user_auth, store):
    listed = await client.get("/api/accounts")
    assert [a["id"] for a in listed.json()] == [CHECKING_ID, SAVINGS_ID]
    assert listed.json()[0]["balance"] == "87450.30"

    foreign = await store.create_account(AccountCreate(name="Ajena", type="checking", balance="5"), user_id=99)

    assert (await client.put(f"/api/accounts/{foreign.id}", json={"name": "Mía"})).status_code == 404
    assert (await client.delete(f"/api/accounts/{foreign.id}")).status_code == 404

    posted = await client.post(
        "/api/transactions",
        json={"type": "expense", "amount": "1", "description": "x", "account_id": foreign.id, "transaction_date": "2024-05-01"},
    )
    assert posted.status_code == 404
    assert (await store.get_account(foreign.id)).balance == 5


@pytest.mark.asyncio
async def test_create_account(client, mock_user_auth):
    response = await client.post("/api/accounts", json={"name": "Préstamo Furgoneta", "type": "loan", "balance": 15000})

    assert response.status_code == 201
    assert response.json()["balance"] == "15000.00"
    assert response.json()["user_id"] == ADMIN_ID


# --- Transactions ---
@pytest.mark.asyncio
async def test_transaction_posts_to_account_balance(client, mock_user_auth):
    payload = {
        "type": "expense",
        "amount": 30,
        "description": "Papel de impresora",
        "category_id": 1,
        "account_id": CHECKING_ID,
        "transaction_date": "2024-05-10",
    }

    response = await client.post("/api/transactions", json=payload)
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["posting"] == "posted"
    assert data["transaction"]["amount"] == "30.00"
    assert data["transaction"]["transaction_date"].startswith("2024-05-10T12:00:00")

    accounts = (await client.get("/api/accounts")).json()
    assert accounts[0]["balance"] == "87420.30"

    tx_id = data["transaction"]["id"]
    updated = await client.put(f"/api/transactions/{tx_id}", json={"amount": "50.00"})
    assert updated.json()["posting"] == "posted"
    assert (await client.get("/api/accounts")).json()[0]["balance"] == "87400.30"

    assert (await client.delete(f"/api/transactions/{tx_id}")).status_code == 200
    assert (await client.get("/api/accounts")).json()[0]["balance"] == "87450.30"
    assert (await client.get(f"/api/transactions/{tx_id}")).status_code == 404


@pytest.mark.asyncio
async def test_transaction_listing_is_enriched_and_filtered(client, mock_user_auth):
    for day in ("2024-04-30", "2024-05-01", "2024-05-31"):
        await client.post(
            "/api/transactions",
            json={"type": "income", "amount": "10", "description": day, "category_id": 6, "account_id": SAVINGS_ID, "transaction_date": day},
        )

    everything = (await client.get("/api/transactions")).json()
    assert [t["description"] for t in everything] == ["2024-05-31", "2024-05-01", "2024-04-30"]
    assert everything[0]["category"]["name"] == "Ventas"
    assert everything[0]["account"]["name"] == "Cuenta de Ahorros"

    may = (await client.get("/api/transactions?start_date=2024-05-01&end_date=2024-05-31")).json()
    assert sorted(t["description"] for t in may) == ["2024-05-01", "2024-05-31"]


@pytest.mark.asyncio
async def test_transaction_with_missing_account_is_saved(client, mock_user_auth):
    response = await client.post(
        "/api/transactions",
        json={"type": "income", "amount": "5", "description": "Propina", "account_id": 999, "transaction_date": "2024-05-01"},
    )

    assert response.status_code == 201
    assert response.json()["posting"] == "account_missing"


@pytest.mark.asyncio
async def test_validation_errors(client, mock_user_auth):
    response = await client.post(
        "/api/transactions",
        json={"type": "refund", "amount": 0, "description": "", "transaction_date": "not-a-date"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Validation error"
    fields = {e["field"] for e in body["errors"]}
    assert {"type", "amount", "description", "transaction_date"} <= fields


@pytest.mark.asyncio
async def test_other_users_transactions_are_hidden(client, mock_user_auth, store):
    result = await store.create_transaction(
        TransactionCreate(type="expense", amount="9", description="Ajena", transaction_date="2024-05-01"), user_id=99
    )
    tx_id = result.transaction.id

    assert (await client.get(f"/api/transactions/{tx_id}")).status_code == 404
    assert (await client.put(f"/api/transactions/{tx_id}", json={"notes": "x"})).status_code == 404
    assert (await client.delete(f"/api/transactions/{tx_id}")).status_code == 404
    assert (await client.get("/api/transactions")).json() == []


# --- Transfers & Loan Payments ---
@pytest.mark.asyncio
async def test_transfer_endpoint(client, mock_user_auth):
    response = await client.post(
        "/api/transfers",
        json={"from_account_id": CHECKING_ID, "to_account_id": SAVINGS_ID, "amount": "450.30", "transaction_date": "2024-05-05"},
    )

    assert response.status_code == 201, response.text
    assert response.json()["outgoing"]["transaction"]["third_party"] == "Transferencia"
    balances = [a["balance"] for a in (await client.get("/api/accounts")).json()]
    assert balances == ["87000.00", "26131.05"]

    summary = (await client.get("/api/analytics/summary")).json()
    assert summary["monthly_income"] == summary["monthly_expense"] == "0.00"


@pytest.mark.asyncio
async def test_transfer_rejected_for_insufficient_funds(client, mock_user_auth):
    response = await client.post(
        "/api/transfers",
        json={"from_account_id": SAVINGS_ID, "to_account_id": CHECKING_ID, "amount": "99999", "transaction_date": "2024-05-05"},
    )

    assert response.status_code == 400
    assert response.json()["detail"].startswith("Insufficient funds")


@pytest.mark.asyncio
async def test_loan_payment_endpoint(client, mock_user_auth):
    loan = await client.post("/api/accounts", json={"name": "Furgoneta", "type": "loan", "balance": "1000"})
    loan_id = loan.json()["id"]

    response = await client.post(
        "/api/loan-payments",
        json={"from_account_id": CHECKING_ID, "to_account_id": loan_id, "amount": "400", "transaction_date": "2024-05-06"},
    )

    assert response.status_code == 201, response.text
    assert response.json()["loan"]["balance"] == "600.00"
    assert response.json()["payment"]["transaction"]["description"] == "Pago de préstamo: Furgoneta"

    not_a_loan = await client.post(
        "/api/loan-payments",
        json={"from_account_id": CHECKING_ID, "to_account_id": SAVINGS_ID, "amount": "1", "transaction_date": "2024-05-06"},
    )
    assert not_a_loan.status_code == 400


@pytest.mark.asyncio
async def test_loan_disbursement_endpoint(client, mock_user_auth):
    today = date.today().isoformat()
    before = (await client.get("/api/analytics/summary")).json()
    checking = next(a for a in (await client.get("/api/accounts")).json() if a["id"] == CHECKING_ID)

    response = await client.post(
        "/api/loan-disbursements",
        json={
            "name": "Furgoneta",
            "amount": "5000",
            "bank_name": "Banco Nacional",
            "destination_account_id": CHECKING_ID,
            "transaction_date": today,
        },
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["loan"]["type"] == "loan"
    assert body["loan"]["balance"] == "5000.00"
    assert body["disbursement"]["posting"] == "posted"
    assert body["disbursement"]["transaction"]["type"] == "income"

    accounts = {a["id"]: a for a in (await client.get("/api/accounts")).json()}
    assert Decimal(accounts[CHECKING_ID]["balance"]) == Decimal(checking["balance"]) + Decimal("5000.00")

    after = (await client.get("/api/analytics/summary")).json()
    assert after["monthly_income"] == before["monthly_income"]
    assert Decimal(after["pending_loans"]) == Decimal(before["pending_loans"]) + Decimal("5000.00")

    into_a_loan = await client.post(
        "/api/loan-disbursements",
        json={"name": "Otro", "amount": "10", "destination_account_id": body["loan"]["id"], "transaction_date": today},
    )
    assert into_a_loan.status_code == 400
    assert into_a_loan.json()["detail"] == "Destination account must be a bank account"


# --- Analytics ---
@pytest.mark.asyncio
async def test_analytics_endpoints(client, mock_user_auth):
    for payload in (
        {"type": "expense", "amount": "40", "description": "Comida", "category_id": 5},
        {"type": "expense", "amount": "25", "description": "Taxi", "category_id": 2},
        {"type": "expense", "amount": "10", "description": "Varios"},
        {"type": "income", "amount": "500", "description": "Factura", "category_id": 6},
    ):
        await client.post("/api/transactions", json={**payload, "transaction_date": "2024-05-10"})

    breakdown = await client.get("/api/analytics/expenses-by-category")
    assert breakdown.status_code == 200
    assert breakdown.json() == {"Alimentación": "40.00", "Transporte": "25.00", "Sin categoría": "10.00"}

    trends = await client.get("/api/analytics/monthly-trends")
    assert trends.json() == [{"month": "2024-05", "income": "500.00", "expense": "75.00", "net": "425.00"}]

    summary = await client.get("/api/analytics/summary")
    assert summary.status_code == 200
    assert summary.json()["total_balance"] == "113131.05"


# --- Bot Config ---
@pytest.mark.asyncio
async def test_bot_config(client, mock_user_auth):
    empty = await client.get("/api/bot/config")
    assert empty.json() == {"bot_token": "", "is_active": False}

    created = await client.post("/api/bot/config", json={"bot_token": "123:abc"})
    assert created.status_code == 201
    config_id = created.json()["id"]

    updated = await client.put(f"/api/bot/config/{config_id}", json={"is_active": False})
    assert updated.json()["is_active"] is False
    assert (await client.get("/api/bot/config")).json()["bot_token"] == "123:abc"

    assert (await client.put("/api/bot/config/999", json={"is_active": True})).status_code == 404


# --- Errors & Health ---
@pytest.mark.asyncio
async def test_storage_failure_returns_500(client, mock_user_auth, store, mocker):
    mocker.patch.object(store, "list_accounts_by_user", side_effect=StorageError("connection reset"))

    response = await client.get("/api/accounts")

    assert response.status_code == 500
    assert response.json()["detail"] == "Internal server error"


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
