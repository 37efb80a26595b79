"""
Ticket Service - Support ticket, notification and preset management

All read/write access to the ticket-domain collections goes through here.
Methods return raw Mongo documents; "not found" is reported as None/False
rather than raised, except when appending a message to a ticket that
vanished mid-request.
"""

from typing import Optional, List, Dict, Any, Union
from bson import ObjectId
from pymongo import ReturnDocument
import asyncio
import logging
import math
import random
import re
import string
import time

from pegasus.core.config import settings
from pegasus.core.errors import TicketNotFoundError
from pegasus.models.ticket import (
    STAFF_ROLES,
    TICKET_STATUSES,
    TICKET_PRIORITIES,
    TICKET_CATEGORIES,
    TicketCreateRequest,
    TicketUpdateRequest,
    TicketMessageRequest,
    TicketFilter,
    TicketTemplateCreate,
    TicketAutomationCreate,
)
from pegasus.services.user_identity import is_object_id_string
from pegasus.utils.helpers import utc_now_iso

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3600000


def generate_ticket_number() -> str:
    """TKT- + last 6 digits of the epoch-ms clock + 4 random base-36 chars"""
    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = "".join(random.choices(string.digits + string.ascii_uppercase, k=4))
    return f"TKT-{timestamp}{suffix}"


def _custom_fields(values: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not values:
        return []
    return [
        {"id": key, "name": key, "type": "text", "value": value, "required": False}
        for key, value in values.items()
    ]


def _hours_between(field: str) -> Dict[str, Any]:
    """Aggregation expression: (field - createdAt) in hours"""
    return {
        "$divide": [
            {
                "$subtract": [
                    {"$dateFromString": {"dateString": f"${field}"}},
                    {"$dateFromString": {"dateString": "$createdAt"}}
                ]
            },
            MS_PER_HOUR
        ]
    }


class TicketService:
    """Service for ticket-domain collections in the tickets database"""

    def __init__(self, db):
        self.db = db

    # ---------------------------------------------------------------- tickets

    async def create_ticket(
        self,
        request: TicketCreateRequest,
        user_id: str,
        user_email: str,
        user_name: str
    ) -> dict:
        """Create a ticket in the open state. Priority and category are stored as given."""
        now = utc_now_iso()

        ticket = {
            "ticketNumber": generate_ticket_number(),
            "title": request.title,
            "description": request.description,
            "status": "open",
            "priority": request.priority,
            "category": request.category,
            "type": "public",
            "userId": user_id,
            "userEmail": user_email,
            "userName": user_name,
            "tags": [],
            "messages": [],
            "messageCount": 0,
            "attachments": [],
            "customFields": _custom_fields(request.custom_fields),
            "metadata": {"source": "web"},
            "isEscalated": False,
            "viewCount": 0,
            "timespent": 0,
            "sla": {"breached": False},
            "createdAt": now,
            "updatedAt": now,
        }

        result = await self.db.tickets.insert_one(ticket)
        ticket["_id"] = result.inserted_id

        logger.info(f"Ticket {ticket['ticketNumber']} created by {user_id}")
        return ticket

    async def get_ticket(self, ticket_id: str) -> Optional[dict]:
        """Find a ticket by native id or by ticket number"""
        clauses: List[Dict[str, Any]] = [{"ticketNumber": ticket_id}]
        if is_object_id_string(ticket_id):
            clauses.insert(0, {"_id": ObjectId(ticket_id)})

        return await self.db.tickets.find_one({"$or": clauses})

    async def update_ticket(
        self,
        ticket_id: str,
        request: Union[TicketUpdateRequest, Dict[str, Any]]
    ) -> Optional[dict]:
        """
        Shallow-merge fields into a ticket

        resolvedAt / closedAt are stamped on every transition into
        resolved / closed, so they reflect the most recent transition.
        Any status may move to any other status.
        """
        fields = request.to_update() if isinstance(request, TicketUpdateRequest) else dict(request)
        now = utc_now_iso()

        update_data = {**fields, "updatedAt": now}
        if fields.get("status") == "resolved":
            update_data["resolvedAt"] = now
        if fields.get("status") == "closed":
            update_data["closedAt"] = now

        return await self.db.tickets.find_one_and_update(
            {"_id": ObjectId(ticket_id)},
            {"$set": update_data},
            return_document=ReturnDocument.AFTER
        )

    async def delete_ticket(self, ticket_id: str) -> bool:
        """Hard delete. Notifications referencing the ticket are left in place."""
        result = await self.db.tickets.delete_one({"_id": ObjectId(ticket_id)})
        return result.deleted_count > 0

    # --------------------------------------------------------------- messages

    async def add_message(
        self,
        ticket_id: str,
        message: TicketMessageRequest,
        author_id: str,
        author_name: str,
        author_email: str,
        author_role: str = "user"
    ) -> dict:
        """
        Append a message to a ticket

        Raises:
            TicketNotFoundError: no ticket was modified
        """
        now = utc_now_iso()
        ticket_oid = ObjectId(ticket_id)

        new_message = {
            "id": str(ObjectId()),
            "ticketId": ticket_id,
            "authorId": author_id,
            "authorName": author_name,
            "authorEmail": author_email,
            "authorRole": author_role,
            "content": message.content,
            "isInternal": message.is_internal,
            "createdAt": now,
            "attachments": [],
            "metadata": {},
        }

        # Read before the append so the first admin reply is detected once
        ticket = await self.db.tickets.find_one({"_id": ticket_oid})
        is_first_admin_response = (
            author_role == "admin" and ticket is not None and not ticket.get("firstResponseAt")
        )

        set_fields = {
            "lastMessageAt": now,
            "lastMessageBy": author_id,
            "updatedAt": now,
        }
        if is_first_admin_response:
            set_fields["firstResponseAt"] = now

        result = await self.db.tickets.update_one(
            {"_id": ticket_oid},
            {
                "$push": {"messages": new_message},
                "$inc": {"messageCount": 1},
                "$set": set_fields,
            }
        )

        if result.modified_count == 0:
            raise TicketNotFoundError(ticket_id)

        if not new_message["isInternal"] and ticket:
            # Staff replies go to the owner; everyone else's go to the assignee
            if author_role in STAFF_ROLES:
                recipient_id = ticket.get("userId")
            else:
                recipient_id = ticket.get("assignedTo")

            if recipient_id and recipient_id != author_id:
                await self.create_notification({
                    "ticketId": ticket_id,
                    "userId": recipient_id,
                    "type": "new-message",
                    "title": f"New message on ticket #{ticket.get('ticketNumber')}",
                    "message": f"{author_name} has replied to your ticket: {ticket.get('title')}",
                    "read": False,
                })

        return new_message

    async def get_messages(self, ticket_id: str, include_internal: bool = False) -> List[dict]:
        """Embedded messages of a ticket; internal ones only when asked for"""
        ticket = await self.db.tickets.find_one({"_id": ObjectId(ticket_id)}, {"messages": 1})
        if not ticket:
            return []

        messages = ticket.get("messages", [])
        if include_internal:
            return messages
        return [m for m in messages if not m.get("isInternal")]

    # ----------------------------------------------------------------- search

    @staticmethod
    def build_search_query(ticket_filter: Optional[TicketFilter]) -> Dict[str, Any]:
        """Conjunctive Mongo query for a ticket filter"""
        query: Dict[str, Any] = {}
        if ticket_filter is None:
            return query

        if ticket_filter.status:
            query["status"] = {"$in": ticket_filter.status}
        if ticket_filter.priority:
            query["priority"] = {"$in": ticket_filter.priority}
        if ticket_filter.category:
            query["category"] = {"$in": ticket_filter.category}
        if ticket_filter.assigned_to:
            query["assignedTo"] = {"$in": ticket_filter.assigned_to}
        if ticket_filter.user_id:
            query["userId"] = ticket_filter.user_id

        if ticket_filter.search:
            pattern = re.escape(ticket_filter.search)
            query["$or"] = [
                {"title": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
                {"ticketNumber": {"$regex": pattern, "$options": "i"}},
            ]

        if ticket_filter.date_range:
            query["createdAt"] = {
                "$gte": ticket_filter.date_range.start,
                "$lte": ticket_filter.date_range.end,
            }

        return query

    async def search_tickets(
        self,
        ticket_filter: Optional[TicketFilter] = None,
        page: int = 1,
        page_size: int = 10
    ) -> dict:
        """Paginated search, newest first"""
        query = self.build_search_query(ticket_filter)
        skip = (page - 1) * page_size

        cursor = self.db.tickets.find(query).sort("createdAt", -1).skip(skip).limit(page_size)
        tickets, total = await asyncio.gather(
            cursor.to_list(length=page_size),
            self.db.tickets.count_documents(query)
        )

        return {
            "tickets": tickets,
            "total": total,
            "page": page,
            "pageSize": page_size,
            "totalPages": math.ceil(total / page_size),
        }

    # ------------------------------------------------------------- assignment

    async def assign_ticket(
        self,
        ticket_id: str,
        assigned_to: str,
        assigned_to_name: str,
        assigned_by: str,
        assigned_by_name: str
    ) -> bool:
        now = utc_now_iso()
        result = await self.db.tickets.update_one(
            {"_id": ObjectId(ticket_id)},
            {
                "$set": {
                    "assignedTo": assigned_to,
                    "assignedToName": assigned_to_name,
                    "assignment": {
                        "assignedTo": assigned_to,
                        "assignedBy": assigned_by,
                        "assignedAt": now,
                        "assignedToName": assigned_to_name,
                        "assignedByName": assigned_by_name,
                    },
                    "updatedAt": now,
                }
            }
        )

        if result.modified_count > 0:
            logger.info(f"Ticket {ticket_id} assigned to {assigned_to} by {assigned_by}")
        return result.modified_count > 0

    async def unassign_ticket(self, ticket_id: str) -> bool:
        """Remove the assignment fields entirely"""
        result = await self.db.tickets.update_one(
            {"_id": ObjectId(ticket_id)},
            {
                "$unset": {"assignedTo": "", "assignedToName": "", "assignment": ""},
                "$set": {"updatedAt": utc_now_iso()},
            }
        )
        return result.modified_count > 0

    # ------------------------------------------------------------------ stats

    async def get_ticket_stats(self, ticket_filter: Optional[TicketFilter] = None) -> dict:
        """
        Aggregate ticket statistics, optionally scoped to a user or assignees

        Averages are in hours; topAgents is not computed.
        """
        base_query: Dict[str, Any] = {}
        if ticket_filter is not None:
            if ticket_filter.user_id:
                base_query["userId"] = ticket_filter.user_id
            if ticket_filter.assigned_to:
                base_query["assignedTo"] = {"$in": ticket_filter.assigned_to}

        tickets = self.db.tickets

        def grouped(field: str) -> list:
            return [
                {"$match": base_query},
                {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
            ]

        def averaged(field: str, expression: Any) -> list:
            return [
                {"$match": {**base_query, field: {"$exists": True}}},
                {"$project": {"value": expression}},
                {"$group": {"_id": None, "avg": {"$avg": "$value"}}},
            ]

        (
            total,
            by_status,
            by_priority,
            by_category,
            resolution,
            first_response,
            satisfaction,
            sla_breaches,
        ) = await asyncio.gather(
            tickets.count_documents(base_query),
            tickets.aggregate(grouped("status")).to_list(length=None),
            tickets.aggregate(grouped("priority")).to_list(length=None),
            tickets.aggregate(grouped("category")).to_list(length=None),
            tickets.aggregate(averaged("resolvedAt", _hours_between("resolvedAt"))).to_list(length=None),
            tickets.aggregate(averaged("firstResponseAt", _hours_between("firstResponseAt"))).to_list(length=None),
            tickets.aggregate(averaged("satisfactionRating", "$satisfactionRating")).to_list(length=None),
            tickets.count_documents({**base_query, "sla.breached": True}),
        )

        def counted(rows: list, keys: tuple) -> Dict[str, int]:
            counts = dict.fromkeys(keys, 0)
            counts.update({row["_id"]: row["count"] for row in rows})
            return counts

        status_counts = counted(by_status, TICKET_STATUSES)

        def average(rows: list) -> float:
            return (rows[0].get("avg") or 0) if rows else 0

        return {
            "total": total,
            "open": status_counts["open"],
            "inProgress": status_counts["in-progress"],
            "pendingUser": status_counts["pending-user"],
            "resolved": status_counts["resolved"],
            "closed": status_counts["closed"],
            "byPriority": counted(by_priority, TICKET_PRIORITIES),
            "byCategory": counted(by_category, TICKET_CATEGORIES),
            "averageResolutionTime": average(resolution),
            "firstResponseTime": average(first_response),
            "satisfactionAverage": average(satisfaction),
            "slaBreaches": sla_breaches,
            "topAgents": [],
        }

    # ------------------------------------------------------------- escalation

    async def escalate_ticket(self, ticket_id: str, escalated_by: str, reason: str) -> bool:
        """Flag a ticket as escalated. Priority is always set to high."""
        now = utc_now_iso()
        result = await self.db.tickets.update_one(
            {"_id": ObjectId(ticket_id)},
            {
                "$set": {
                    "isEscalated": True,
                    "escalatedAt": now,
                    "escalatedBy": escalated_by,
                    "escalationReason": reason,
                    "priority": "high",
                    "updatedAt": now,
                }
            }
        )

        if result.modified_count > 0:
            logger.info(f"Ticket {ticket_id} escalated by {escalated_by}: {reason}")
        return result.modified_count > 0

    # ---------------------------------------------------------- notifications

    async def create_notification(self, notification: Dict[str, Any]) -> dict:
        notification_id = ObjectId()
        doc = {
            "read": False,
            **notification,
            "_id": notification_id,
            "id": str(notification_id),
            "createdAt": utc_now_iso(),
        }
        await self.db.notifications.insert_one(doc)
        return doc

    async def get_notifications(self, user_id: str, unread_only: bool = False) -> List[dict]:
        """Newest-first notifications for a recipient"""
        query: Dict[str, Any] = {"userId": user_id}
        if unread_only:
            query["read"] = False

        limit = settings.NOTIFICATION_LIST_LIMIT
        cursor = self.db.notifications.find(query).sort("createdAt", -1).limit(limit)
        notifications = await cursor.to_list(length=limit)

        return [
            {**{k: v for k, v in n.items() if k != "_id"}, "id": str(n["_id"])}
            for n in notifications
        ]

    async def mark_notification_as_read(self, notification_id: str) -> bool:
        result = await self.db.notifications.update_one(
            {"_id": ObjectId(notification_id)},
            {"$set": {"read": True}}
        )
        return result.modified_count > 0

    # -------------------------------------------------- templates/automations

    async def create_template(self, template: TicketTemplateCreate) -> dict:
        template_id = ObjectId()
        doc = {
            **template.model_dump(by_alias=True),
            "_id": template_id,
            "id": str(template_id),
            "createdAt": utc_now_iso(),
            "usage": 0,
        }
        await self.db.templates.insert_one(doc)
        return doc

    async def get_templates(self, is_active: bool = True) -> List[dict]:
        return await self.db.templates.find({"isActive": is_active}).to_list(length=None)

    async def record_template_usage(self, template_id: str) -> bool:
        result = await self.db.templates.update_one(
            {"_id": ObjectId(template_id)},
            {"$inc": {"usage": 1}}
        )
        return result.modified_count > 0

    async def create_automation(self, automation: TicketAutomationCreate) -> dict:
        automation_id = ObjectId()
        doc = {
            **automation.model_dump(by_alias=True),
            "_id": automation_id,
            "id": str(automation_id),
            "createdAt": utc_now_iso(),
            "triggerCount": 0,
        }
        await self.db.automations.insert_one(doc)
        return doc

    async def get_active_automations(self) -> List[dict]:
        return await self.db.automations.find({"isActive": True}).to_list(length=None)

    async def trigger_automation(self, automation_id: str) -> bool:
        """Record a trigger. Conditions and actions are not evaluated here."""
        result = await self.db.automations.update_one(
            {"_id": ObjectId(automation_id)},
            {
                "$set": {"lastTriggered": utc_now_iso()},
                "$inc": {"triggerCount": 1},
            }
        )
        return result.modified_count > 0

    # ------------------------------------------------------------------- misc

    async def increment_view_count(self, ticket_id: str) -> bool:
        result = await self.db.tickets.update_one(
            {"_id": ObjectId(ticket_id)},
            {
                "$inc": {"viewCount": 1},
                "$set": {"lastViewedAt": utc_now_iso()},
            }
        )
        return result.modified_count > 0

    async def update_satisfaction_rating(
        self,
        ticket_id: str,
        rating: int,
        feedback: Optional[str] = None
    ) -> bool:
        now = utc_now_iso()
        update_data: Dict[str, Any] = {
            "satisfactionRating": rating,
            "ratedAt": now,
            "updatedAt": now,
        }
        if feedback:
            update_data["satisfactionFeedback"] = feedback

        result = await self.db.tickets.update_one(
            {"_id": ObjectId(ticket_id)},
            {"$set": update_data}
        )
        return result.modified_count > 0
