"""
Moderation Service - Bulk and single-user administrative mutations

Bulk actions walk the requested identifiers one at a time, awaiting each
update before the next. A missing user or a failed write is recorded
against that identifier and the batch carries on.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Callable
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError
from bson.errors import InvalidId
import logging
import math
import re

from pegasus.core.errors import InvalidRequestError, UserNotFoundError
from pegasus.services.token_service import TokenService
from pegasus.services.user_identity import resolve_and_update_user
from pegasus.utils.helpers import utc_now, is_number

logger = logging.getLogger(__name__)


@dataclass
class BulkFailure:
    user_id: str
    reason: str


@dataclass
class BulkOutcome:
    """Accumulated result of a sequential bulk action"""
    succeeded: List[str] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)

    def record_success(self, user_id: str):
        self.succeeded.append(user_id)

    def record_failure(self, user_id: str, reason: str):
        self.failed.append(BulkFailure(user_id=user_id, reason=reason))

    @property
    def affected_users(self) -> int:
        return len(self.succeeded)

    @property
    def errors(self) -> List[str]:
        return [failure.reason for failure in self.failed]


@dataclass(frozen=True)
class BulkAction:
    """How one bulk action builds its update and describes itself"""
    build_fields: Callable[[Dict[str, Any]], Dict[str, Any]]
    error_verb: str
    summary: str


def _ban_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {"isBanned": True, "bannedAt": utc_now(), "banReason": data.get("banReason") or None}


def _token_limit_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    token_limit = data.get("tokenLimit")
    if not is_number(token_limit) or token_limit < 0:
        raise InvalidRequestError("Invalid token limit")
    return {"tokenLimit": token_limit}


BULK_ACTIONS: Dict[str, BulkAction] = {
    "ban": BulkAction(
        _ban_fields,
        "banning user",
        "Banned {affected} out of {requested} users",
    ),
    "unban": BulkAction(
        lambda data: {"isBanned": False, "bannedAt": None, "banReason": None},
        "unbanning user",
        "Unbanned {affected} out of {requested} users",
    ),
    "setAdmin": BulkAction(
        lambda data: {"isAdmin": True},
        "setting admin for user",
        "Set admin for {affected} out of {requested} users",
    ),
    "removeAdmin": BulkAction(
        lambda data: {"isAdmin": False},
        "removing admin for user",
        "Removed admin for {affected} out of {requested} users",
    ),
    "resetTokens": BulkAction(
        lambda data: {"tokensUsed": 0},
        "resetting tokens for user",
        "Reset tokens for {affected} out of {requested} users",
    ),
    "setTokenLimit": BulkAction(
        _token_limit_fields,
        "updating user",
        "Token limit updated for {affected} out of {requested} users",
    ),
}


def build_update(action: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Mongo update document for a bulk action

    Raises:
        InvalidRequestError: unknown action or invalid action data
    """
    bulk_action = BULK_ACTIONS.get(action)
    if bulk_action is None:
        raise InvalidRequestError("Invalid action")

    fields = bulk_action.build_fields(data or {})
    return {"$set": {**fields, "updatedAt": utc_now()}}


class ModerationService:
    """Service for user moderation against the identity collection"""

    def __init__(self, users, token_usage):
        self.users = users
        self.token_usage = token_usage

    async def run_bulk_action(
        self,
        action: Optional[str],
        user_ids: Optional[List[str]],
        data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Apply an action to each user in turn

        Returns:
            {success, message, affectedUsers, requestedUsers, errors?}
        """
        if not action or not user_ids:
            raise InvalidRequestError("Invalid request data")

        update = build_update(action, data)
        bulk_action = BULK_ACTIONS[action]
        outcome = BulkOutcome()

        for user_id in user_ids:
            try:
                matched = await resolve_and_update_user(self.users, user_id, update)
                if not matched:
                    outcome.record_failure(user_id, f"User {user_id} not found")
                    continue

                if action == "resetTokens":
                    await self.token_usage.update_one(
                        {"userId": user_id},
                        {"$set": {"totalTokens": 0, "updatedAt": utc_now()}},
                        upsert=True
                    )

                outcome.record_success(user_id)
            except ConnectionFailure:
                raise
            except (PyMongoError, InvalidId) as e:
                logger.error(f"Error {bulk_action.error_verb} {user_id}: {e}")
                outcome.record_failure(user_id, f"Error {bulk_action.error_verb} {user_id}: {e}")

        message = bulk_action.summary.format(
            affected=outcome.affected_users,
            requested=len(user_ids)
        )
        logger.info(f"Bulk {action}: {message}")

        response: Dict[str, Any] = {
            "success": True,
            "message": message,
            "affectedUsers": outcome.affected_users,
            "requestedUsers": len(user_ids),
        }
        if outcome.failed:
            response["errors"] = outcome.errors
        return response

    async def set_ban_status(
        self,
        user_id: str,
        is_banned: bool,
        ban_reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """Ban or unban a single user"""
        if is_banned:
            fields = {"isBanned": True, "bannedAt": utc_now(), "banReason": ban_reason or None}
        else:
            fields = {"isBanned": False, "bannedAt": None, "banReason": None}

        matched = await resolve_and_update_user(
            self.users,
            user_id,
            {"$set": {**fields, "updatedAt": utc_now()}}
        )
        if not matched:
            raise UserNotFoundError(user_id)

        logger.info(f"User {user_id} {'banned' if is_banned else 'unbanned'}")
        return {"userId": user_id, **fields}

    async def set_admin_status(self, user_id: str, is_admin: bool) -> Dict[str, Any]:
        matched = await resolve_and_update_user(
            self.users,
            user_id,
            {"$set": {"isAdmin": is_admin, "updatedAt": utc_now()}}
        )
        if not matched:
            raise UserNotFoundError(user_id)

        logger.info(f"User {user_id} admin status set to {is_admin}")
        return {"userId": user_id, "isAdmin": is_admin}

    async def list_users(
        self,
        token_service: TokenService,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc"
    ) -> Dict[str, Any]:
        """Admin dashboard listing with per-user token figures"""
        query: Dict[str, Any] = {}
        if search:
            pattern = re.escape(search)
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"email": {"$regex": pattern, "$options": "i"}},
            ]

        total_users = await self.users.count_documents(query)
        direction = DESCENDING if sort_order == "desc" else ASCENDING
        cursor = self.users.find(query).sort(sort_by, direction).skip((page - 1) * limit).limit(limit)
        users = await cursor.to_list(length=limit)

        formatted = []
        for user in users:
            user_id = user.get("id") or str(user["_id"])
            token_info = await token_service.get_user_token_info(user_id)

            formatted.append({
                "id": user_id,
                "name": user.get("name"),
                "email": user.get("email"),
                "isAdmin": user.get("isAdmin", False),
                "isBanned": user.get("isBanned", False),
                "bannedAt": user.get("bannedAt"),
                "banReason": user.get("banReason"),
                "tokensUsed": token_info.tokens_used if token_info else 0,
                "tokenLimit": token_info.token_limit if token_info else token_service.default_token_limit,
                "tokensRemaining": token_info.tokens_remaining if token_info else 0,
                "createdAt": user.get("createdAt"),
                "updatedAt": user.get("updatedAt"),
                "lastLoginAt": user.get("lastLoginAt"),
            })

        total_pages = math.ceil(total_users / limit)
        total_tokens_used = sum(u["tokensUsed"] for u in formatted)

        return {
            "users": formatted,
            "pagination": {
                "page": page,
                "limit": limit,
                "totalUsers": total_users,
                "totalPages": total_pages,
                "hasNext": page < total_pages,
                "hasPrev": page > 1,
            },
            "stats": {
                "totalUsers": total_users,
                "totalAdmins": len([u for u in formatted if u["isAdmin"]]),
                "totalBanned": len([u for u in formatted if u["isBanned"]]),
                "totalTokensUsed": total_tokens_used,
                "averageTokensUsed": total_tokens_used / len(formatted) if formatted else 0,
            },
        }
