"""
Token Service - Per-user token accounting and quota administration

Limits live on the identity record (`tokenLimit`); usage lives in a separate
usage-tracking collection keyed by the string user id (`totalTokens`).
"""

from typing import Optional, Tuple, Dict, Any
import logging

from pegasus.core.config import settings
from pegasus.core.errors import InvalidRequestError, UserNotFoundError, QuotaExceededError
from pegasus.models.user import UserTokenInfo
from pegasus.services.user_identity import resolve_user, resolve_and_update_user
from pegasus.utils.helpers import utc_now, is_number

logger = logging.getLogger(__name__)


class TokenService:
    """Service for token limits and usage"""

    def __init__(self, users, token_usage, default_token_limit: Optional[int] = None):
        self.users = users
        self.token_usage = token_usage
        if default_token_limit is None:
            default_token_limit = settings.DEFAULT_TOKEN_LIMIT
        self.default_token_limit = default_token_limit

    def token_limit_for(self, user: dict) -> int:
        limit = user.get("tokenLimit")
        return self.default_token_limit if limit is None else limit

    async def get_tokens_used(self, user_id: str) -> int:
        usage = await self.token_usage.find_one({"userId": user_id})
        if not usage:
            return 0
        return usage.get("totalTokens") or 0

    async def get_user_token_info(self, user_id: str) -> Optional[UserTokenInfo]:
        """
        Join a user's limit with their recorded usage

        Returns:
            None when no identity record exists under either id form
        """
        user = await resolve_user(self.users, user_id)
        if not user:
            return None

        tokens_used = await self.get_tokens_used(user_id)
        token_limit = self.token_limit_for(user)
        tokens_remaining = max(0, token_limit - tokens_used)
        usage_percentage = (tokens_used / token_limit) * 100 if token_limit > 0 else 0.0

        return UserTokenInfo(
            user_id=user_id,
            tokens_used=tokens_used,
            token_limit=token_limit,
            tokens_remaining=tokens_remaining,
            usage_percentage=usage_percentage,
            can_use_tokens=tokens_remaining > 0 and not user.get("isBanned", False),
        )

    async def get_user_ban_info(self, user_id: str) -> Optional[dict]:
        user = await resolve_user(self.users, user_id)
        if not user:
            return None

        return {
            "userId": user_id,
            "isBanned": user.get("isBanned", False),
            "bannedAt": user.get("bannedAt"),
            "banReason": user.get("banReason"),
        }

    async def get_user_permissions(self, user_id: str) -> Optional[dict]:
        user = await resolve_user(self.users, user_id)
        if not user:
            return None

        token_info = await self.get_user_token_info(user_id)
        is_banned = user.get("isBanned", False)

        return {
            "userId": user_id,
            "isAdmin": user.get("isAdmin", False),
            "isBanned": is_banned,
            "canUseTokens": bool(token_info and token_info.can_use_tokens),
            "canAccessFeatures": not is_banned,
        }

    async def can_user_use_tokens(self, user_id: str, tokens_needed: int = 1) -> bool:
        token_info = await self.get_user_token_info(user_id)
        if not token_info:
            return False
        return token_info.can_use_tokens and token_info.tokens_remaining >= tokens_needed

    async def check_user_permissions(
        self,
        user_id: str,
        require_admin: bool = False,
        require_tokens: Optional[int] = None,
        allow_banned: bool = False
    ) -> Tuple[bool, Optional[str]]:
        """
        Check a user against a set of requirements

        Returns:
            (allowed, reason) - reason is None when allowed
        """
        permissions = await self.get_user_permissions(user_id)
        if not permissions:
            return False, "User not found"

        if require_admin and not permissions["isAdmin"]:
            return False, "Admin access required"

        if not allow_banned and permissions["isBanned"]:
            return False, "User is banned"

        if require_tokens and not await self.can_user_use_tokens(user_id, require_tokens):
            return False, "Insufficient tokens"

        return True, None

    # ------------------------------------------------------------ admin ops

    async def set_token_limit(self, user_id: str, token_limit: int) -> int:
        matched = await resolve_and_update_user(
            self.users,
            user_id,
            {"$set": {"tokenLimit": token_limit, "updatedAt": utc_now()}}
        )
        if not matched:
            raise UserNotFoundError(user_id)
        return token_limit

    async def add_tokens(self, user_id: str, amount: int) -> int:
        """Raise a user's limit by `amount`; returns the new limit"""
        user = await resolve_user(self.users, user_id)
        if not user:
            raise UserNotFoundError(user_id)

        new_limit = self.token_limit_for(user) + amount
        await resolve_and_update_user(
            self.users,
            user_id,
            {"$set": {"tokenLimit": new_limit, "updatedAt": utc_now()}}
        )
        return new_limit

    async def set_token_usage(self, user_id: str, tokens_used: int) -> int:
        await self.token_usage.update_one(
            {"userId": user_id},
            {"$set": {"totalTokens": tokens_used, "updatedAt": utc_now()}},
            upsert=True
        )
        return tokens_used

    async def reset_token_usage(self, user_id: str) -> int:
        return await self.set_token_usage(user_id, 0)

    async def apply_admin_action(
        self,
        action: Optional[str],
        user_id: Optional[str],
        token_limit: Any = None,
        tokens_used: Any = None
    ) -> Dict[str, Any]:
        """Dispatch an administrative token action"""
        if not user_id:
            raise InvalidRequestError("User ID is required")

        if action == "setLimit" and is_number(token_limit) and token_limit >= 0:
            await self.set_token_limit(user_id, token_limit)
            message = f"Token limit set to {token_limit} successfully"
            data = {"tokenLimit": token_limit}
        elif action == "setUsage" and is_number(tokens_used) and tokens_used >= 0:
            await self.set_token_usage(user_id, tokens_used)
            message = f"Token usage set to {tokens_used} successfully"
            data = {"tokensUsed": tokens_used}
        elif action == "resetUsage":
            await self.reset_token_usage(user_id)
            message = "Token usage reset successfully"
            data = {"tokensUsed": 0}
        elif action == "addTokens" and is_number(token_limit) and token_limit > 0:
            new_limit = await self.add_tokens(user_id, token_limit)
            message = f"Added {token_limit} tokens to limit successfully"
            data = {"tokenLimit": new_limit}
        else:
            raise InvalidRequestError("Invalid action or parameters")

        logger.info(f"Token action {action} applied to {user_id}")
        return {"success": True, "message": message, "data": data}

    # ------------------------------------------------------------ increment

    async def increment_usage(self, user_id: str, tokens_to_add: Any) -> Dict[str, Any]:
        """
        Record token consumption, enforcing the user's limit

        The limit check and the write are separate store calls; concurrent
        increments for the same user can both pass the check.

        Raises:
            InvalidRequestError: tokens_to_add is not a positive number
            UserNotFoundError: no identity record
            QuotaExceededError: usage would pass the limit
        """
        if not is_number(tokens_to_add) or tokens_to_add <= 0:
            raise InvalidRequestError("Invalid tokens to add")

        token_info = await self.get_user_token_info(user_id)
        if not token_info:
            raise UserNotFoundError(user_id)

        new_usage = token_info.tokens_used + tokens_to_add
        if new_usage > token_info.token_limit:
            logger.warning(
                f"Token limit exceeded for {user_id}: "
                f"{token_info.tokens_used} + {tokens_to_add} > {token_info.token_limit}"
            )
            raise QuotaExceededError(token_info.tokens_used, token_info.token_limit, tokens_to_add)

        await self.token_usage.update_one(
            {"userId": user_id},
            {"$set": {"totalTokens": new_usage, "updatedAt": utc_now()}},
            upsert=True
        )

        return {
            "userId": user_id,
            "previousUsage": token_info.tokens_used,
            "tokensAdded": tokens_to_add,
            "newUsage": new_usage,
            "tokenLimit": token_info.token_limit,
            "tokensRemaining": token_info.token_limit - new_usage,
        }
