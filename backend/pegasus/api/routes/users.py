"""
User Management Routes - Moderation and token administration
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from pegasus.api.deps import (
    AuthContext,
    get_current_user,
    require_admin,
    get_moderation_service,
    get_token_service,
)
from pegasus.models.user import (
    BulkUserActionRequest,
    TokenAdminRequest,
    TokenIncrementRequest,
    BanStatusRequest,
    AdminStatusRequest,
)
from pegasus.services.moderation_service import ModerationService
from pegasus.services.token_service import TokenService
from pegasus.utils.helpers import serialize_objectids

router = APIRouter(tags=["User Management"])


def resolve_target_user(auth: AuthContext, user_id: Optional[str]) -> str:
    """Callers may act on themselves; anyone else requires admin"""
    if user_id and user_id != auth.user_id and not auth.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden - Admin access required")
    return user_id or auth.user_id


@router.get("/manage")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    auth: AuthContext = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation_service),
    tokens: TokenService = Depends(get_token_service)
):
    """User management dashboard data (admin only)"""
    result = await moderation.list_users(
        tokens,
        page=page,
        limit=limit,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return serialize_objectids(result)


@router.post("/manage")
async def bulk_user_action(
    request: BulkUserActionRequest,
    auth: AuthContext = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation_service)
):
    """
    Apply a moderation action to many users

    Partial success is reported in the body, never as an error status.
    """
    return await moderation.run_bulk_action(request.action, request.user_ids, request.data)


@router.get("/tokens")
async def get_token_limits(
    user_id: Optional[str] = Query(None, alias="userId"),
    auth: AuthContext = Depends(get_current_user),
    tokens: TokenService = Depends(get_token_service)
):
    target_user_id = resolve_target_user(auth, user_id)

    token_info = await tokens.get_user_token_info(target_user_id)
    if not token_info:
        raise HTTPException(status_code=404, detail="User not found")

    return token_info.to_response()


@router.post("/tokens")
async def update_token_limits(
    request: TokenAdminRequest,
    auth: AuthContext = Depends(require_admin),
    tokens: TokenService = Depends(get_token_service)
):
    """Set limit / set usage / reset usage / add to limit (admin only)"""
    return await tokens.apply_admin_action(
        request.action,
        request.user_id,
        token_limit=request.token_limit,
        tokens_used=request.tokens_used,
    )


@router.patch("/tokens")
async def increment_token_usage(
    request: TokenIncrementRequest,
    auth: AuthContext = Depends(get_current_user),
    tokens: TokenService = Depends(get_token_service)
):
    """Record token consumption against the user's limit"""
    if request.user_id and request.user_id != auth.user_id and not auth.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden - Can only update your own token usage")

    data = await tokens.increment_usage(request.user_id or auth.user_id, request.tokens_to_add)
    return {
        "success": True,
        "message": "Token usage updated successfully",
        "data": data,
    }


@router.get("/ban")
async def get_ban_status(
    user_id: Optional[str] = Query(None, alias="userId"),
    auth: AuthContext = Depends(get_current_user),
    tokens: TokenService = Depends(get_token_service)
):
    target_user_id = resolve_target_user(auth, user_id)

    ban_info = await tokens.get_user_ban_info(target_user_id)
    if not ban_info:
        raise HTTPException(status_code=404, detail="User not found")

    return serialize_objectids(ban_info)


@router.post("/ban")
async def set_ban_status(
    request: BanStatusRequest,
    auth: AuthContext = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation_service)
):
    if not request.user_id or request.is_banned is None:
        raise HTTPException(status_code=400, detail="Invalid request data")

    result = await moderation.set_ban_status(request.user_id, request.is_banned, request.ban_reason)
    return {
        "success": True,
        "message": "User banned successfully" if request.is_banned else "User unbanned successfully",
        "data": serialize_objectids(result),
    }


@router.get("/admin")
async def get_admin_status(auth: AuthContext = Depends(get_current_user)):
    """Admin capabilities of the caller"""
    return {
        "userId": auth.user_id,
        "isAdmin": auth.is_admin,
        "canManageUsers": auth.is_admin,
        "canManageTokens": auth.is_admin,
        "canBanUsers": auth.is_admin,
    }


@router.post("/admin")
async def set_admin_status(
    request: AdminStatusRequest,
    auth: AuthContext = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation_service)
):
    if not request.user_id or request.is_admin is None:
        raise HTTPException(status_code=400, detail="Invalid request data")

    result = await moderation.set_admin_status(request.user_id, request.is_admin)
    return {
        "success": True,
        "message": f"User admin status updated to {str(request.is_admin).lower()}",
        "data": result,
    }
