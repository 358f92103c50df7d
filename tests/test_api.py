"""End-to-end tests of the HTTP surface through FastAPI's TestClient."""

from datetime import timedelta

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from api import create_app
from security import TokenService

from conftest import TEST_SECRET


def _register(client, email="a@b.com", password="secret1", name="A"):
    return client.post("/auth/register", json={"email": email, "password": password, "name": name})


def _create(client, **fields):
    response = client.post("/transactions", json=fields)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestPublic:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"message": "Personal Finance API is running"}

    def test_health_reports_backend(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["backend"] == "running"
        assert response.json()["database_name"] == "finance_test"


class TestAuth:
    def test_register_login_scenario(self, client):
        registered = _register(client)
        assert registered.status_code == 201
        body = registered.json()
        assert body["token"]
        assert "password" not in body["user"]
        user_id = body["user"]["id"]

        wrong = client.post("/auth/login", json={"email": "a@b.com", "password": "wrong"})
        assert wrong.status_code == 401
        assert wrong.headers["WWW-Authenticate"] == "Bearer"

        ok = client.post("/auth/login", json={"email": "a@b.com", "password": "secret1"})
        assert ok.status_code == 200
        assert ok.json()["user"]["id"] == user_id
        assert "password" not in ok.json()["user"]

    def test_user_payload_uses_camel_case_timestamp(self, client, auth_headers):
        user = client.get("/auth/me", headers=auth_headers).json()["user"]

        assert set(user) == {"id", "email", "name", "createdAt"}

    def test_unknown_email_looks_like_wrong_password(self, client):
        _register(client)

        wrong = client.post("/auth/login", json={"email": "a@b.com", "password": "wrong"})
        unknown = client.post("/auth/login", json={"email": "x@b.com", "password": "secret1"})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()

    def test_register_duplicate_email(self, client):
        _register(client)
        response = _register(client, name="Other")

        assert response.status_code == 409
        assert response.json()["success"] is False

    @pytest.mark.parametrize(
        "payload",
        [
            {"email": "a@b.com", "password": "secret1"},
            {"email": "", "password": "secret1", "name": "A"},
            {"email": "nope", "password": "secret1", "name": "A"},
            {"email": "a@b.com", "password": "123", "name": "A"},
        ],
    )
    def test_register_validation(self, client, payload):
        response = client.post("/auth/register", json=payload)

        assert response.status_code == 400
        assert response.json()["error"]

    def test_login_missing_fields(self, client):
        assert client.post("/auth/login", json={"email": "a@b.com"}).status_code == 400

    def test_body_must_be_an_object(self, client):
        response = client.post("/auth/login", json=["a@b.com", "secret1"])

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid request body"}

    def test_me(self, client, auth_headers):
        response = client.get("/auth/me", headers=auth_headers)

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["email"] == "owner@example.com"
        assert "password" not in user

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer garbage"}, {"Authorization": "Basic dXNlcjpwYXNz"}],
    )
    def test_me_rejects_bad_tokens(self, client, headers):
        response = client.get("/auth/me", headers=headers)

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_me_rejects_expired_token(self, client):
        user_id = _register(client).json()["user"]["id"]
        token = TokenService(TEST_SECRET).issue(user_id, "a@b.com", expires_delta=timedelta(seconds=-5))

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_me_for_deleted_user(self, client):
        token = TokenService(TEST_SECRET).issue(str(ObjectId()), "gone@b.com")

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 404


class TestTransactions:
    def test_create_list_and_summary_scenario(self, client):
        _create(client, type="income", amount=100, category="Salary", date="2024-02-01")
        _create(client, type="expense", amount=40, category="Food", date="2024-02-02")

        listed = client.get("/transactions")
        assert listed.status_code == 200
        assert [tx["category"] for tx in listed.json()["data"]] == ["Food", "Salary"]

        summary = client.get("/transactions/summary").json()["data"]
        assert summary == {"total_income": 100.0, "total_expenses": 40.0, "balance": 60.0, "count": 2}

    def test_transaction_payload_uses_camel_case_timestamps(self, client):
        data = _create(client, type="income", amount=5, category="Gift")

        assert "createdAt" in data and "updatedAt" in data
        assert "created_at" not in data and "updated_at" not in data

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "income", "amount": -1, "category": "Salary"},
            {"type": "bonus", "amount": 1, "category": "Salary"},
            {"type": "income", "category": "Salary"},
            {"amount": 1, "category": "Salary"},
        ],
    )
    def test_create_validation(self, client, payload):
        response = client.post("/transactions", json=payload)

        assert response.status_code == 400
        assert client.get("/transactions").json()["data"] == []

    def test_update(self, client):
        tx = _create(client, type="expense", amount=10, category="Food")

        response = client.put(f"/transactions/{tx['id']}", json={"amount": 12, "category": "Dining"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert (data["amount"], data["category"], data["type"]) == (12.0, "Dining", "expense")

    def test_update_validation_and_missing(self, client):
        tx = _create(client, type="expense", amount=10, category="Food")

        assert client.put(f"/transactions/{tx['id']}", json={"type": "other"}).status_code == 400
        assert client.put(f"/transactions/{ObjectId()}", json={"amount": 1}).status_code == 404

    def test_delete_one(self, client):
        tx = _create(client, type="expense", amount=10, category="Food")

        response = client.delete(f"/transactions/{tx['id']}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == tx["id"]
        assert client.get("/transactions").json()["data"] == []
        assert client.delete(f"/transactions/{tx['id']}").status_code == 404

    def test_delete_all(self, client):
        _create(client, type="expense", amount=10, category="Food")
        _create(client, type="income", amount=20, category="Salary")

        response = client.delete("/transactions")

        assert response.status_code == 200
        assert response.json()["deletedCount"] == 2
        assert client.get("/transactions").json()["data"] == []

    def test_delete_all_can_be_disabled(self, settings, store):
        settings.allow_delete_all = False
        client = TestClient(create_app(settings, store))

        assert client.delete("/transactions").status_code == 400

    def test_bulk_update(self, client):
        a = _create(client, type="expense", amount=10, category="Food")
        b = _create(client, type="expense", amount=20, category="Food")

        response = client.patch("/transactions", json={"ids": [a["id"], b["id"]], "update": {"category": "Groceries"}})

        assert response.status_code == 200
        assert response.json()["modifiedCount"] == 2
        assert {tx["category"] for tx in client.get("/transactions").json()["data"]} == {"Groceries"}

    @pytest.mark.parametrize(
        "payload",
        [
            {"update": {"category": "x"}},
            {"ids": "abc", "update": {"category": "x"}},
            {"ids": ["bogus"], "update": {"category": "x"}},
        ],
    )
    def test_bulk_update_bad_shape(self, client, payload):
        assert client.patch("/transactions", json=payload).status_code == 400

    def test_bulk_update_reports_modified_count(self, client):
        a = _create(client, type="expense", amount=10, category="Food")

        response = client.patch("/transactions", json={"ids": [a["id"]], "update": {"category": "Y"}})

        assert response.status_code == 200
        assert response.json()["modifiedCount"] == 1
        assert "modified_count" not in response.json()

    def test_bulk_update_with_no_ids(self, client):
        _create(client, type="expense", amount=10, category="Food")

        response = client.patch("/transactions", json={"ids": [], "update": {"category": "Y"}})

        assert response.status_code == 200
        assert response.json()["modifiedCount"] == 0
        assert client.get("/transactions").json()["data"][0]["category"] == "Food"

    def test_bulk_update_validates_patch(self, client):
        a = _create(client, type="expense", amount=10, category="Food")

        response = client.patch("/transactions", json={"ids": [a["id"]], "update": {"amount": -3}})

        assert response.status_code == 400
        assert client.get("/transactions").json()["data"][0]["amount"] == 10.0


def test_store_failure_is_internal_error(settings, store, monkeypatch):
    def unreachable(*args, **kwargs):
        raise ServerSelectionTimeoutError("mongo is down at 10.0.0.1")

    monkeypatch.setattr(store, "get_documents", unreachable)
    client = TestClient(create_app(settings, store))

    response = client.get("/transactions")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}
