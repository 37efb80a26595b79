"""
API Dependencies - Authentication, authorization and service providers
"""

from typing import Optional
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from pegasus.core.config import Settings, get_settings
from pegasus.core.database import MongoStore, get_store
from pegasus.core.security import verify_token
from pegasus.services.ticket_service import TicketService
from pegasus.services.moderation_service import ModerationService
from pegasus.services.token_service import TokenService

security = HTTPBearer(auto_error=False)


class AuthContext:
    """Authentication context for the calling user"""
    def __init__(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        is_admin: bool = False
    ):
        self.user_id = user_id
        self.email = email
        self.name = name
        self.is_admin = is_admin

    @property
    def role(self) -> str:
        """Author role used when this user writes ticket messages"""
        return "admin" if self.is_admin else "user"


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> AuthContext:
    """
    Get current user from a session JWT

    Headers required:
        - Authorization: Bearer <USER_JWT>
    """
    if not credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = verify_token(credentials.credentials)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    return AuthContext(
        user_id=user_id,
        email=payload.get("email"),
        name=payload.get("name"),
        is_admin=bool(payload.get("is_admin", False))
    )


async def require_admin(auth: AuthContext = Depends(get_current_user)) -> AuthContext:
    """Require admin permissions"""
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden - Admin access required")
    return auth


async def get_ticket_service(store: MongoStore = Depends(get_store)) -> TicketService:
    return TicketService(store.tickets_db)


async def get_token_service(
    store: MongoStore = Depends(get_store),
    app_settings: Settings = Depends(get_settings)
) -> TokenService:
    return TokenService(store.users, store.token_usage, default_token_limit=app_settings.DEFAULT_TOKEN_LIMIT)


async def get_moderation_service(store: MongoStore = Depends(get_store)) -> ModerationService:
    return ModerationService(store.users, store.token_usage)
