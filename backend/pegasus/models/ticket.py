"""Ticket domain constants and request models"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


TICKET_STATUSES = ("open", "in-progress", "pending-user", "resolved", "closed")
TICKET_PRIORITIES = ("low", "normal", "high", "urgent", "critical")
TICKET_CATEGORIES = ("bug", "feature-request", "support", "billing", "account", "technical", "other")
TICKET_TYPES = ("public", "internal", "escalated")
MESSAGE_AUTHOR_ROLES = ("user", "admin", "agent", "system")
NOTIFICATION_TYPES = ("new-ticket", "status-change", "new-message", "assignment", "escalation", "sla-breach")

# Authors whose replies notify the ticket owner rather than the assignee
STAFF_ROLES = ("admin", "agent")

# Statuses a ticket must be in before its owner can rate it
RATEABLE_STATUSES = ("resolved", "closed")


class TicketCreateRequest(BaseModel):
    """Create ticket request"""
    title: Optional[str] = None
    description: Optional[str] = None
    priority: str = "normal"
    category: str = "other"
    custom_fields: Optional[Dict[str, Any]] = Field(None, alias="customFields")

    class Config:
        populate_by_name = True


class TicketUpdateRequest(BaseModel):
    """Partial ticket update; unset fields are left untouched"""
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    assigned_to: Optional[str] = Field(None, alias="assignedTo")
    tags: Optional[List[str]] = None
    custom_fields: Optional[Dict[str, Any]] = Field(None, alias="customFields")

    class Config:
        populate_by_name = True

    def to_update(self) -> Dict[str, Any]:
        """Provided fields keyed by their stored (camelCase) names"""
        return self.model_dump(by_alias=True, exclude_none=True)


class TicketMessageRequest(BaseModel):
    """Add message request"""
    content: Optional[str] = None
    is_internal: bool = Field(False, alias="isInternal")

    class Config:
        populate_by_name = True


class DateRange(BaseModel):
    start: str = Field(alias="from")
    end: str = Field(alias="to")

    class Config:
        populate_by_name = True


class TicketFilter(BaseModel):
    """Search / stats filter; list fields match any of their values"""
    status: Optional[List[str]] = None
    priority: Optional[List[str]] = None
    category: Optional[List[str]] = None
    assigned_to: Optional[List[str]] = Field(None, alias="assignedTo")
    date_range: Optional[DateRange] = Field(None, alias="dateRange")
    search: Optional[str] = None
    user_id: Optional[str] = Field(None, alias="userId")

    class Config:
        populate_by_name = True


class AssignTicketRequest(BaseModel):
    assigned_to: Optional[str] = Field(None, alias="assignedTo")
    assigned_to_name: Optional[str] = Field(None, alias="assignedToName")

    class Config:
        populate_by_name = True


class EscalateTicketRequest(BaseModel):
    reason: Optional[str] = None


class RateTicketRequest(BaseModel):
    rating: int
    feedback: Optional[str] = None


class TicketTemplateCreate(BaseModel):
    """Admin-authored ticket preset"""
    name: str
    description: str = ""
    category: str = "other"
    title: str = ""
    content: str = ""
    tags: List[str] = []
    custom_fields: List[Dict[str, Any]] = Field([], alias="customFields")
    is_active: bool = Field(True, alias="isActive")
    created_by: Optional[str] = Field(None, alias="createdBy")

    class Config:
        populate_by_name = True


class TicketAutomationCreate(BaseModel):
    """Automation rule; conditions and actions are stored, never evaluated here"""
    name: str
    description: str = ""
    trigger: Dict[str, Any] = {}
    actions: List[Dict[str, Any]] = []
    is_active: bool = Field(True, alias="isActive")
    created_by: Optional[str] = Field(None, alias="createdBy")

    class Config:
        populate_by_name = True
