from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from pegasus.api.deps import (
    AuthContext,
    get_current_user,
    get_moderation_service,
    get_token_service,
)
from pegasus.core.errors import InvalidRequestError, QuotaExceededError
from pegasus.core.security import create_access_token
from pegasus.main import app
from pegasus.models.user import UserTokenInfo

USER = AuthContext("user-1", email="u@example.com", name="User One")
ADMIN = AuthContext("admin-1", email="a@example.com", name="Ada", is_admin=True)


@pytest.fixture
def user_client():
    moderation = AsyncMock()
    tokens = AsyncMock()
    state = {"user": USER}

    async def override_moderation():
        return moderation

    async def override_tokens():
        return tokens

    app.dependency_overrides[get_moderation_service] = override_moderation
    app.dependency_overrides[get_token_service] = override_tokens
    app.dependency_overrides[get_current_user] = lambda: state["user"]

    def login(user):
        state["user"] = user

    client = TestClient(app)
    try:
        yield client, moderation, tokens, login
    finally:
        app.dependency_overrides.clear()


def test_bulk_action_requires_admin(user_client):
    client, moderation, _, _ = user_client

    response = client.post("/api/user/manage", json={"action": "ban", "userIds": ["u2"]})

    assert response.status_code == 403
    moderation.run_bulk_action.assert_not_called()


def test_bulk_action_partial_success_is_200(user_client):
    client, moderation, _, login = user_client
    login(ADMIN)
    moderation.run_bulk_action.return_value = {
        "success": True,
        "message": "Banned 1 out of 2 users",
        "affectedUsers": 1,
        "requestedUsers": 2,
        "errors": ["User ghost not found"],
    }

    response = client.post(
        "/api/user/manage",
        json={"action": "ban", "userIds": ["u2", "ghost"], "data": {"banReason": "spam"}},
    )

    assert response.status_code == 200
    assert response.json()["errors"] == ["User ghost not found"]
    moderation.run_bulk_action.assert_called_once_with("ban", ["u2", "ghost"], {"banReason": "spam"})


def test_bulk_action_malformed_request_is_400(user_client):
    client, moderation, _, login = user_client
    login(ADMIN)
    moderation.run_bulk_action.side_effect = InvalidRequestError("Invalid request data")

    response = client.post("/api/user/manage", json={"action": "ban", "userIds": []})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request data"}


def test_token_increment_over_limit_is_429(user_client):
    client, _, tokens, _ = user_client
    tokens.increment_usage.side_effect = QuotaExceededError(9000, 10000, 2000)

    response = client.patch("/api/user/tokens", json={"tokensToAdd": 2000})

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "Token limit exceeded"
    assert body["wouldExceedBy"] == 1000
    tokens.increment_usage.assert_called_once_with("user-1", 2000)


def test_token_increment_for_other_user_forbidden(user_client):
    client, _, tokens, _ = user_client

    response = client.patch("/api/user/tokens", json={"userId": "user-9", "tokensToAdd": 5})

    assert response.status_code == 403
    tokens.increment_usage.assert_not_called()


def test_token_increment_success(user_client):
    client, _, tokens, _ = user_client
    tokens.increment_usage.return_value = {"userId": "user-1", "newUsage": 9500, "tokensRemaining": 500}

    response = client.patch("/api/user/tokens", json={"tokensToAdd": 500})

    assert response.status_code == 200
    assert response.json()["data"]["tokensRemaining"] == 500


def test_get_own_token_info(user_client):
    client, _, tokens, _ = user_client
    tokens.get_user_token_info.return_value = UserTokenInfo(
        user_id="user-1",
        tokens_used=0,
        token_limit=100000,
        tokens_remaining=100000,
        usage_percentage=0,
        can_use_tokens=True,
    )

    response = client.get("/api/user/tokens")

    assert response.status_code == 200
    assert response.json()["canUseTokens"] is True
    tokens.get_user_token_info.assert_called_once_with("user-1")


def test_get_other_users_token_info_forbidden(user_client):
    client, _, _, _ = user_client

    assert client.get("/api/user/tokens", params={"userId": "user-2"}).status_code == 403


def test_token_admin_action_passes_parameters(user_client):
    client, _, tokens, login = user_client
    login(ADMIN)
    tokens.apply_admin_action.return_value = {"success": True, "message": "ok", "data": {"tokenLimit": 500}}

    response = client.post("/api/user/tokens", json={"userId": "u2", "action": "setLimit", "tokenLimit": 500})

    assert response.status_code == 200
    tokens.apply_admin_action.assert_called_once_with("setLimit", "u2", token_limit=500, tokens_used=None)


def test_set_ban_requires_fields(user_client):
    client, moderation, _, login = user_client
    login(ADMIN)

    assert client.post("/api/user/ban", json={"userId": "u2"}).status_code == 400
    moderation.set_ban_status.assert_not_called()


def test_set_admin_status(user_client):
    client, moderation, _, login = user_client
    login(ADMIN)
    moderation.set_admin_status.return_value = {"userId": "u2", "isAdmin": True}

    response = client.post("/api/user/admin", json={"userId": "u2", "isAdmin": True})

    assert response.status_code == 200
    assert response.json()["message"] == "User admin status updated to true"


def test_missing_bearer_token_is_unauthorized():
    client = TestClient(app)

    assert client.get("/api/user/tokens").status_code == 401


def test_bearer_token_resolves_auth_context(user_client):
    client, _, tokens, _ = user_client
    app.dependency_overrides.pop(get_current_user)
    tokens.get_user_token_info.return_value = None
    token = create_access_token({"sub": "user-77", "is_admin": False})

    response = client.get("/api/user/tokens", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 404
    tokens.get_user_token_info.assert_called_once_with("user-77")
