import os

os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("STORE_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient

from zokzz.auth.service import AccountService
from zokzz.chat.service import ConversationLog
from zokzz.core.dependencies import get_store
from zokzz.core.store import MemoryStore
from zokzz.friendship.service import FriendGraph
from zokzz.main import app


PASSWORD = "correct-horse-battery"


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def accounts(store):
    return AccountService(store)


@pytest.fixture
def graph(store):
    return FriendGraph(store)


@pytest.fixture
def log(store):
    return ConversationLog(store)


@pytest.fixture
def make_user(accounts):
    """Register a user and return its id."""

    def _make_user(username, email=None):
        result = accounts.register_user(email or f"{username}@example.com", username, PASSWORD)
        return result["user"]["id"]

    return _make_user


@pytest.fixture
def make_friends(graph):
    def _make_friends(user_a, user_b):
        sent = graph.send_request(user_a, user_b)
        graph.accept(sent.request_id, user_b)

    return _make_friends


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register through the API and return (user, auth headers)."""

    def _register(username, email=None):
        response = client.post(
            "/auth/register",
            json={
                "email": email or f"{username}@example.com",
                "username": username,
                "password": PASSWORD,
            },
        )
        assert response.status_code == 201, response.text
        body = response.json()
        return body["user"], {"Authorization": f"Bearer {body['token']}"}

    return _register
