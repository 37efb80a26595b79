"""Pydantic models for request validation"""

from pegasus.models.ticket import (
    TICKET_STATUSES,
    TICKET_PRIORITIES,
    TICKET_CATEGORIES,
    TICKET_TYPES,
    MESSAGE_AUTHOR_ROLES,
    NOTIFICATION_TYPES,
    TicketCreateRequest,
    TicketUpdateRequest,
    TicketMessageRequest,
    TicketFilter,
)
from pegasus.models.user import BulkUserActionRequest, UserTokenInfo

__all__ = [
    "TICKET_STATUSES",
    "TICKET_PRIORITIES",
    "TICKET_CATEGORIES",
    "TICKET_TYPES",
    "MESSAGE_AUTHOR_ROLES",
    "NOTIFICATION_TYPES",
    "TicketCreateRequest",
    "TicketUpdateRequest",
    "TicketMessageRequest",
    "TicketFilter",
    "BulkUserActionRequest",
    "UserTokenInfo",
]
