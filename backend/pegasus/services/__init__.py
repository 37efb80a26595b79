"""
Services Package - Business logic layer
"""

from pegasus.services.ticket_service import TicketService
from pegasus.services.moderation_service import ModerationService
from pegasus.services.token_service import TokenService

__all__ = [
    "TicketService",
    "ModerationService",
    "TokenService",
]
