"""User moderation and token accounting models"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Union


class BulkUserActionRequest(BaseModel):
    """Bulk moderation request; validated by the moderation service"""
    action: Optional[str] = None
    user_ids: Optional[List[str]] = Field(None, alias="userIds")
    data: Optional[Dict[str, Any]] = None

    class Config:
        populate_by_name = True


class TokenAdminRequest(BaseModel):
    user_id: Optional[str] = Field(None, alias="userId")
    action: Optional[str] = None
    token_limit: Optional[int] = Field(None, alias="tokenLimit")
    tokens_used: Optional[int] = Field(None, alias="tokensUsed")

    class Config:
        populate_by_name = True


class TokenIncrementRequest(BaseModel):
    user_id: Optional[str] = Field(None, alias="userId")
    tokens_to_add: Optional[int] = Field(None, alias="tokensToAdd")

    class Config:
        populate_by_name = True


class BanStatusRequest(BaseModel):
    user_id: Optional[str] = Field(None, alias="userId")
    is_banned: Optional[bool] = Field(None, alias="isBanned")
    ban_reason: Optional[str] = Field(None, alias="banReason")

    class Config:
        populate_by_name = True


class AdminStatusRequest(BaseModel):
    user_id: Optional[str] = Field(None, alias="userId")
    is_admin: Optional[bool] = Field(None, alias="isAdmin")

    class Config:
        populate_by_name = True


class UserTokenInfo(BaseModel):
    """Identity record joined with its usage-tracking record"""
    user_id: str
    tokens_used: Union[int, float] = 0
    token_limit: Union[int, float]
    tokens_remaining: Union[int, float]
    usage_percentage: float = 0.0
    can_use_tokens: bool

    def to_response(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "tokensUsed": self.tokens_used,
            "tokenLimit": self.token_limit,
            "tokensRemaining": self.tokens_remaining,
            "usagePercentage": self.usage_percentage,
            "canUseTokens": self.can_use_tokens,
        }
