"""Shared pytest fixtures. MongoDB is replaced by an in-process mongomock client."""

import mongomock
import pytest
from fastapi.testclient import TestClient

from api import create_app
from config import Settings
from database import DocumentStore
from repositories import TransactionRepository, UserRepository
from security import PasswordHasher, TokenService

TEST_SECRET = "test-secret-key"


@pytest.fixture
def settings():
    """Settings with a cheap bcrypt cost so tests stay fast."""
    return Settings(secret_key=TEST_SECRET, bcrypt_rounds=4, database_name="finance_test")


@pytest.fixture
def store(settings):
    store = DocumentStore.from_settings(settings, client_factory=mongomock.MongoClient)
    yield store
    store.close()


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens():
    return TokenService(TEST_SECRET)


@pytest.fixture
def user_repo(store, hasher):
    UserRepository.declare_indexes(store)
    return UserRepository(store, hasher)


@pytest.fixture
def transaction_repo(store):
    TransactionRepository.declare_indexes(store)
    return TransactionRepository(store)


@pytest.fixture
def client(settings, store):
    """In-process TestClient for the API backed by the mongomock store."""
    return TestClient(create_app(settings, store))


@pytest.fixture
def auth_headers(client):
    response = client.post(
        "/auth/register",
        json={"email": "owner@example.com", "password": "secret1", "name": "Owner"},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['token']}"}
