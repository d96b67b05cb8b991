"""
FastAPI route: Tourist-facing emergency endpoints.

    POST   /api/v1/emergency/trigger           — raise an SOS (alias: /sos)
    GET    /api/v1/emergency/contacts          — list emergency contacts
    POST   /api/v1/emergency/contacts          — add a contact (max 5)
    PUT    /api/v1/emergency/contacts/order    — reorder contacts
    PUT    /api/v1/emergency/contacts/{id}     — edit a contact
    DELETE /api/v1/emergency/contacts/{id}     — remove a contact
    GET    /api/v1/emergency/sos-history       — caller's recent alerts

All routes require a bearer token; the caller is the token subject.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from backend.app.alerts.directory import UserDirectory
from backend.app.alerts.dispatcher import SOSDispatcher
from backend.app.alerts.store import AlertStore
from backend.app.api.deps import (
    get_alert_store,
    get_app_settings,
    get_dispatcher,
    get_user_directory,
)
from backend.app.api.schemas import (
    ContactCreateRequest,
    ContactOrderRequest,
    ContactUpdateRequest,
    SOSTriggerRequest,
)
from backend.app.core.config import Settings
from backend.app.core.security import get_current_user_id

router = APIRouter(prefix="/api/v1/emergency", tags=["emergency"])


# ---------------------------------------------------------------------------
# SOS
# ---------------------------------------------------------------------------

@router.post("/trigger", summary="Trigger an SOS alert")
@router.post("/sos", include_in_schema=False)
async def trigger_sos(
    body: SOSTriggerRequest,
    user_id: str = Depends(get_current_user_id),
    dispatcher: SOSDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    """
    Notify every emergency contact and the police, then record the alert.

    Delivery failures are reported inside the stored record, not as an
    error response: the call succeeds once the alert is recorded.
    """
    summary = await dispatcher.trigger(
        user_id,
        body.latitude,
        body.longitude,
        address=body.address,
        alert_type=body.alert_type,
    )
    return {
        "success": True,
        "message": "SOS alert sent successfully",
        "alert": summary.to_dict(),
    }


@router.get("/sos-history", summary="Caller's most recent SOS alerts")
async def sos_history(
    user_id: str = Depends(get_current_user_id),
    store: AlertStore = Depends(get_alert_store),
    config: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    alerts, _ = await store.list_alerts(user_id=user_id, limit=config.SOS_HISTORY_LIMIT)
    return {"success": True, "alerts": [a.to_dict() for a in alerts]}


# ---------------------------------------------------------------------------
# Emergency contacts
# ---------------------------------------------------------------------------

@router.get("/contacts", summary="List emergency contacts")
async def list_contacts(
    user_id: str = Depends(get_current_user_id),
    directory: UserDirectory = Depends(get_user_directory),
) -> Dict[str, Any]:
    contacts = await directory.list_contacts(user_id)
    return {"success": True, "contacts": [c.to_dict() for c in contacts]}


@router.post("/contacts", summary="Add an emergency contact")
async def add_contact(
    body: ContactCreateRequest,
    user_id: str = Depends(get_current_user_id),
    directory: UserDirectory = Depends(get_user_directory),
) -> Dict[str, Any]:
    contact = await directory.add_contact(
        user_id,
        name=body.name,
        phone=body.phone,
        relationship=body.relationship,
        priority=body.priority,
    )
    contacts = await directory.list_contacts(user_id)
    return {
        "success": True,
        "message": "Emergency contact added successfully",
        "contact": contact.to_dict(),
        "contacts": [c.to_dict() for c in contacts],
    }


# Declared before /contacts/{contact_id} so "order" is not taken as an id
@router.put("/contacts/order", summary="Reorder emergency contacts")
async def reorder_contacts(
    body: ContactOrderRequest,
    user_id: str = Depends(get_current_user_id),
    directory: UserDirectory = Depends(get_user_directory),
) -> Dict[str, Any]:
    contacts = await directory.reorder_contacts(user_id, body.contact_ids)
    return {
        "success": True,
        "message": "Emergency contacts reordered",
        "contacts": [c.to_dict() for c in contacts],
    }


@router.put("/contacts/{contact_id}", summary="Update an emergency contact")
async def update_contact(
    contact_id: str,
    body: ContactUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    directory: UserDirectory = Depends(get_user_directory),
) -> Dict[str, Any]:
    contact = await directory.update_contact(
        user_id,
        contact_id,
        name=body.name,
        phone=body.phone,
        relationship=body.relationship,
        priority=body.priority,
    )
    return {
        "success": True,
        "message": "Emergency contact updated successfully",
        "contact": contact.to_dict(),
    }


@router.delete("/contacts/{contact_id}", summary="Remove an emergency contact")
async def delete_contact(
    contact_id: str,
    user_id: str = Depends(get_current_user_id),
    directory: UserDirectory = Depends(get_user_directory),
) -> Dict[str, Any]:
    await directory.remove_contact(user_id, contact_id)
    return {"success": True, "message": "Emergency contact deleted successfully"}
