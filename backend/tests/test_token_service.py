"""
Tests for token accounting and quota administration
"""

import pytest
from bson import ObjectId
from unittest.mock import AsyncMock, MagicMock

from conftest import make_update_result
from pegasus.api.deps import get_token_service
from pegasus.core.config import get_settings
from pegasus.core.errors import InvalidRequestError, QuotaExceededError, UserNotFoundError
from pegasus.services.token_service import TokenService


def install_user(users_collection, user):
    async def find_one(query):
        if all(user.get(key) == value for key, value in query.items()):
            return user
        return None

    users_collection.find_one = AsyncMock(side_effect=find_one)


def install_usage(usage_collection, total_tokens):
    usage_collection.find_one = AsyncMock(return_value={"userId": "u1", "totalTokens": total_tokens})


@pytest.fixture
def tokens(users_collection, usage_collection):
    return TokenService(users_collection, usage_collection, default_token_limit=100000)


# =========================================================================
# Token info
# =========================================================================

@pytest.mark.asyncio
async def test_token_info_without_usage_record(tokens, users_collection):
    install_user(users_collection, {"id": "u1"})

    info = await tokens.get_user_token_info("u1")

    assert info.tokens_used == 0
    assert info.token_limit == 100000
    assert info.tokens_remaining == 100000
    assert info.usage_percentage == 0
    assert info.can_use_tokens is True


@pytest.mark.asyncio
async def test_token_info_for_banned_user(tokens, users_collection, usage_collection):
    install_user(users_collection, {"id": "u1", "tokenLimit": 1000, "isBanned": True})
    install_usage(usage_collection, 250)

    info = await tokens.get_user_token_info("u1")

    assert info.tokens_remaining == 750
    assert info.usage_percentage == 25.0
    assert info.can_use_tokens is False


@pytest.mark.asyncio
async def test_token_info_clamps_remaining_and_guards_zero_limit(tokens, users_collection, usage_collection):
    install_user(users_collection, {"id": "u1", "tokenLimit": 0})
    install_usage(usage_collection, 50)

    info = await tokens.get_user_token_info("u1")

    assert info.token_limit == 0
    assert info.tokens_remaining == 0
    assert info.usage_percentage == 0
    assert info.can_use_tokens is False


@pytest.mark.asyncio
async def test_token_info_with_fractional_figures(tokens, users_collection, usage_collection):
    install_user(users_collection, {"id": "u1", "tokenLimit": 1500.5})
    install_usage(usage_collection, 500.25)

    info = await tokens.get_user_token_info("u1")

    assert info.token_limit == 1500.5
    assert info.tokens_used == 500.25
    assert info.tokens_remaining == 1000.25
    assert info.to_response()["tokenLimit"] == 1500.5
    assert info.can_use_tokens is True


@pytest.mark.asyncio
async def test_token_info_unknown_user(tokens):
    assert await tokens.get_user_token_info(str(ObjectId())) is None


@pytest.mark.asyncio
async def test_usage_is_looked_up_by_string_id(tokens, users_collection, usage_collection):
    oid = ObjectId()
    install_user(users_collection, {"_id": oid})

    await tokens.get_user_token_info(str(oid))

    usage_collection.find_one.assert_called_once_with({"userId": str(oid)})


@pytest.mark.asyncio
async def test_check_user_permissions_reasons(tokens, users_collection, usage_collection):
    install_user(users_collection, {"id": "u1", "tokenLimit": 100, "isBanned": False})
    install_usage(usage_collection, 90)

    assert await tokens.check_user_permissions("u1") == (True, None)
    assert await tokens.check_user_permissions("u1", require_admin=True) == (False, "Admin access required")
    assert await tokens.check_user_permissions("u1", require_tokens=20) == (False, "Insufficient tokens")
    assert await tokens.check_user_permissions("ghost") == (False, "User not found")


@pytest.mark.asyncio
async def test_banned_user_permissions(tokens, users_collection):
    install_user(users_collection, {"id": "u1", "isBanned": True, "banReason": "spam"})

    assert await tokens.check_user_permissions("u1") == (False, "User is banned")
    assert (await tokens.check_user_permissions("u1", allow_banned=True))[0] is True

    ban_info = await tokens.get_user_ban_info("u1")
    assert ban_info["isBanned"] is True
    assert ban_info["banReason"] == "spam"


# =========================================================================
# Increment
# =========================================================================

@pytest.mark.asyncio
async def test_increment_rejected_when_over_limit(tokens, users_collection, usage_collection):
    install_user(users_collection, {"id": "u1", "tokenLimit": 10000})
    install_usage(usage_collection, 9000)

    with pytest.raises(QuotaExceededError) as exc_info:
        await tokens.increment_usage("u1", 2000)

    assert exc_info.value.status_code == 429
    assert exc_info.value.response_data["wouldExceedBy"] == 1000
    assert exc_info.value.response_data["currentUsage"] == 9000
    usage_collection.update_one.assert_not_called()


@pytest.mark.asyncio
async def test_increment_within_limit(tokens, users_collection, usage_collection):
    install_user(users_collection, {"id": "u1", "tokenLimit": 10000})
    install_usage(usage_collection, 9000)

    data = await tokens.increment_usage("u1", 500)

    assert data["previousUsage"] == 9000
    assert data["newUsage"] == 9500
    assert data["tokensRemaining"] == 500
    args, kwargs = usage_collection.update_one.call_args
    assert args[0] == {"userId": "u1"}
    assert args[1]["$set"]["totalTokens"] == 9500
    assert kwargs["upsert"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, None, "10"])
async def test_increment_rejects_non_positive_amounts(tokens, amount):
    with pytest.raises(InvalidRequestError):
        await tokens.increment_usage("u1", amount)


@pytest.mark.asyncio
async def test_increment_unknown_user(tokens):
    with pytest.raises(UserNotFoundError):
        await tokens.increment_usage("ghost", 10)


# =========================================================================
# Admin actions
# =========================================================================

@pytest.mark.asyncio
async def test_add_tokens_uses_default_when_limit_absent(tokens, users_collection):
    install_user(users_collection, {"id": "u1"})

    result = await tokens.apply_admin_action("addTokens", "u1", token_limit=5000)

    assert result["data"] == {"tokenLimit": 105000}
    assert result["message"] == "Added 5000 tokens to limit successfully"
    update = users_collection.update_one.call_args[0][1]
    assert update["$set"]["tokenLimit"] == 105000


@pytest.mark.asyncio
async def test_set_limit_for_missing_user(tokens, users_collection):
    users_collection.update_one = AsyncMock(return_value=make_update_result(0))

    with pytest.raises(UserNotFoundError):
        await tokens.apply_admin_action("setLimit", "ghost", token_limit=10)


@pytest.mark.asyncio
async def test_reset_usage_upserts_zero(tokens, usage_collection):
    result = await tokens.apply_admin_action("resetUsage", "u1")

    assert result["data"] == {"tokensUsed": 0}
    args, kwargs = usage_collection.update_one.call_args
    assert args[1]["$set"]["totalTokens"] == 0
    assert kwargs["upsert"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("action, kwargs", [
    ("setLimit", {"token_limit": -1}),
    ("setUsage", {}),
    ("addTokens", {"token_limit": 0}),
    ("explode", {}),
])
async def test_invalid_admin_actions(tokens, action, kwargs):
    with pytest.raises(InvalidRequestError, match="Invalid action or parameters"):
        await tokens.apply_admin_action(action, "u1", **kwargs)


@pytest.mark.asyncio
async def test_admin_action_requires_user_id(tokens):
    with pytest.raises(InvalidRequestError, match="User ID is required"):
        await tokens.apply_admin_action("resetUsage", None)


@pytest.mark.asyncio
async def test_token_service_dependency_reads_default_limit(users_collection, usage_collection):
    store = MagicMock(users=users_collection, token_usage=usage_collection)
    app_settings = get_settings().model_copy(update={"DEFAULT_TOKEN_LIMIT": 2500})

    service = await get_token_service(store, app_settings)

    assert service.default_token_limit == 2500
    assert service.token_limit_for({}) == 2500
