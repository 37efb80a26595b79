"""
Ticket Preset Routes - Admin templates and automation rules
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from pegasus.api.deps import AuthContext, require_admin, get_ticket_service
from pegasus.models.ticket import TicketTemplateCreate, TicketAutomationCreate
from pegasus.services.ticket_service import TicketService
from pegasus.utils.helpers import serialize_objectids

router = APIRouter(tags=["Ticket Presets"])


@router.get("/templates")
async def list_templates(
    is_active: bool = Query(True, alias="isActive"),
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    templates = await service.get_templates(is_active=is_active)
    return serialize_objectids(templates)


@router.post("/templates", status_code=201)
async def create_template(
    request: TicketTemplateCreate,
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    if not request.created_by:
        request.created_by = auth.user_id

    template = await service.create_template(request)
    return serialize_objectids(template)


@router.post("/templates/{template_id}/use")
async def use_template(
    template_id: str,
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    if not await service.record_template_usage(template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    return {"success": True}


@router.get("/automations")
async def list_automations(
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    """Active automation rules"""
    automations = await service.get_active_automations()
    return serialize_objectids(automations)


@router.post("/automations", status_code=201)
async def create_automation(
    request: TicketAutomationCreate,
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    if not request.created_by:
        request.created_by = auth.user_id

    automation = await service.create_automation(request)
    return serialize_objectids(automation)


@router.post("/automations/{automation_id}/trigger")
async def trigger_automation(
    automation_id: str,
    auth: AuthContext = Depends(require_admin),
    service: TicketService = Depends(get_ticket_service)
):
    """Record a trigger of an automation rule"""
    if not await service.trigger_automation(automation_id):
        raise HTTPException(status_code=404, detail="Automation not found")
    return {"success": True}
