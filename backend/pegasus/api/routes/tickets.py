"""
Ticket Routes - Support ticket system

Authorization is decided here; TicketService trusts its callers.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from pegasus.api.deps import AuthContext, get_current_user, require_admin, get_ticket_service
from pegasus.models.ticket import (
    RATEABLE_STATUSES,
    TicketCreateRequest,
    TicketUpdateRequest,
    TicketMessageRequest,
    TicketFilter,
    AssignTicketRequest,
    EscalateTicketRequest,
    RateTicketRequest,
)
from pegasus.services.ticket_service import TicketService
from pegasus.utils.helpers import serialize_objectids, split_csv

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tickets"])

# Notification recipient shared by all admins
ADMIN_RECIPIENT = "admin"

ADMIN_UPDATE_FIELDS = (
    "title", "description", "status", "priority", "category", "assignedTo", "tags", "customFields"
)
OWNER_UPDATE_FIELDS = ("title", "description", "category", "customFields")


async def load_ticket(service: TicketService, ticket_id: str) -> dict:
    """Resolve a native id or ticket number, 404 when missing"""
    ticket = await service.get_ticket(ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


def ensure_ticket_access(ticket: dict, auth: AuthContext):
    """Owner or admin"""
    if ticket.get("userId") != auth.user_id and not auth.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")


@router.get("")
async def list_tickets(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    status: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    user_id: Optional[str] = Query(None, alias="userId"),
    auth: AuthContext = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    """Search tickets; non-admins only ever see their own"""
    ticket_filter = TicketFilter(
        status=split_csv(status) or None,
        priority=split_csv(priority) or None,
        category=split_csv(category) or None,
        assigned_to=split_csv(assigned_to) or None,
        search=search or None,
        user_id=user_id if auth.is_admin else auth.user_id,
    )

    result = await service.search_tickets(ticket_filter, page=page, page_size=page_size)
    return serialize_objectids(result)


@router.post("", status_code=201)
async def create_ticket(
    request: TicketCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    """Open a new ticket and notify admins"""
    if not request.title or not request.description:
        raise HTTPException(status_code=400, detail="Title and description are required")

    ticket = await service.create_ticket(request, auth.user_id, auth.email, auth.name)

    await service.create_notification({
        "ticketId": str(ticket["_id"]),
        "userId": ADMIN_RECIPIENT,
        "type": "new-ticket",
        "title": "New Ticket Created",
        "message": f"New ticket #{ticket['ticketNumber']}: {ticket['title']}",
        "read": False,
    })

    return serialize_objectids(ticket)


@router.get("/stats")
async def get_ticket_stats(
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    user_id: Optional[str] = Query(None, alias="userId"),
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    """Ticket statistics (admin only)"""
    ticket_filter = TicketFilter(
        assigned_to=split_csv(assigned_to) or None,
        user_id=user_id or None,
    )
    return await service.get_ticket_stats(ticket_filter)


@router.get("/notifications")
async def get_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    auth: AuthContext = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    """Notifications for the caller; admins read the shared admin feed"""
    recipient = ADMIN_RECIPIENT if auth.is_admin else auth.user_id
    return await service.get_notifications(recipient, unread_only=unread_only)


@router.patch("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    auth: AuthContext = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    if not await service.mark_notification_as_read(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: str,
    auth: AuthContext = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    """Get a ticket by id or ticket number"""
    ticket = await load_ticket(service, ticket_id)
    ensure_ticket_access(ticket, auth)

    await service.increment_view_count(str(ticket["_id"]))
    return serialize_objectids(ticket)


@router.patch("/{ticket_id}")
@router.put("/{ticket_id}")
async def update_ticket(
    ticket_id: str,
    request: TicketUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    """Partial update; admins may change workflow fields, owners only content"""
    existing = await load_ticket(service, ticket_id)
    ensure_ticket_access(existing, auth)

    allowed_fields = ADMIN_UPDATE_FIELDS if auth.is_admin else OWNER_UPDATE_FIELDS
    updates = {k: v for k, v in request.to_update().items() if k in allowed_fields}
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    updated = await service.update_ticket(str(existing["_id"]), updates)
    if not updated:
        raise HTTPException(status_code=404, detail="Ticket not found")

    new_status = updates.get("status")
    if new_status and new_status != existing.get("status"):
        await service.create_notification({
            "ticketId": str(existing["_id"]),
            "userId": existing.get("userId"),
            "type": "status-change",
            "title": "Ticket Status Updated",
            "message": f"Ticket #{updated.get('ticketNumber')} status changed to {new_status}",
            "read": False,
        })

    return serialize_objectids(updated)


@router.delete("/{ticket_id}")
async def delete_ticket(
    ticket_id: str,
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await load_ticket(service, ticket_id)
    if not await service.delete_ticket(str(ticket["_id"])):
        raise HTTPException(status_code=404, detail="Ticket not found")

    logger.info(f"Ticket {ticket.get('ticketNumber')} deleted by {auth.user_id}")
    return {"success": True}


@router.get("/{ticket_id}/messages")
async def get_messages(
    ticket_id: str,
    auth: AuthContext = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await load_ticket(service, ticket_id)
    ensure_ticket_access(ticket, auth)

    return await service.get_messages(str(ticket["_id"]), include_internal=auth.is_admin)


@router.post("/{ticket_id}/messages", status_code=201)
async def add_message(
    ticket_id: str,
    request: TicketMessageRequest,
    auth: AuthContext = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    """Reply on a ticket; internal notes are admin-only"""
    if not request.content:
        raise HTTPException(status_code=400, detail="Content is required")

    ticket = await load_ticket(service, ticket_id)
    ensure_ticket_access(ticket, auth)

    message = TicketMessageRequest(
        content=request.content,
        is_internal=request.is_internal and auth.is_admin,
    )

    return await service.add_message(
        str(ticket["_id"]),
        message,
        author_id=auth.user_id,
        author_name=auth.name,
        author_email=auth.email,
        author_role=auth.role,
    )


@router.post("/{ticket_id}/assign")
async def assign_ticket(
    ticket_id: str,
    request: AssignTicketRequest,
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    if not request.assigned_to or not request.assigned_to_name:
        raise HTTPException(status_code=400, detail="assignedTo and assignedToName are required")

    ticket = await load_ticket(service, ticket_id)
    assigned = await service.assign_ticket(
        str(ticket["_id"]),
        request.assigned_to,
        request.assigned_to_name,
        auth.user_id,
        auth.name,
    )
    if not assigned:
        raise HTTPException(status_code=500, detail="Failed to assign ticket")

    await service.create_notification({
        "ticketId": str(ticket["_id"]),
        "userId": request.assigned_to,
        "type": "assignment",
        "title": "Ticket Assigned",
        "message": f"You have been assigned to ticket #{ticket.get('ticketNumber')}",
        "read": False,
    })

    return {"success": True}


@router.delete("/{ticket_id}/assign")
async def unassign_ticket(
    ticket_id: str,
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await load_ticket(service, ticket_id)
    await service.unassign_ticket(str(ticket["_id"]))
    return {"success": True}


@router.post("/{ticket_id}/escalate")
async def escalate_ticket(
    ticket_id: str,
    request: EscalateTicketRequest,
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    if not request.reason:
        raise HTTPException(status_code=400, detail="Escalation reason is required")

    ticket = await load_ticket(service, ticket_id)
    if not await service.escalate_ticket(str(ticket["_id"]), auth.user_id, request.reason):
        raise HTTPException(status_code=500, detail="Failed to escalate ticket")

    await service.create_notification({
        "ticketId": str(ticket["_id"]),
        "userId": ADMIN_RECIPIENT,
        "type": "escalation",
        "title": "Ticket Escalated",
        "message": f"Ticket #{ticket.get('ticketNumber')} has been escalated: {request.reason}",
        "read": False,
    })

    return {"success": True}


@router.post("/{ticket_id}/rate")
async def rate_ticket(
    ticket_id: str,
    request: RateTicketRequest,
    auth: AuthContext = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    """Owner rates a resolved or closed ticket"""
    if request.rating < 1 or request.rating > 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")

    ticket = await load_ticket(service, ticket_id)
    if ticket.get("userId") != auth.user_id:
        raise HTTPException(status_code=403, detail="Forbidden")

    if ticket.get("status") not in RATEABLE_STATUSES:
        raise HTTPException(status_code=400, detail="Can only rate resolved or closed tickets")

    rated = await service.update_satisfaction_rating(
        str(ticket["_id"]), request.rating, request.feedback
    )
    if not rated:
        raise HTTPException(status_code=500, detail="Failed to update rating")

    return {"success": True}
