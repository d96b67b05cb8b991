"""
FastAPI route: Admin console view of SOS alerts.

    GET      /api/v1/admin/alerts                 — filtered, paginated list
    GET      /api/v1/admin/alerts/stats           — dashboard counters
    GET      /api/v1/admin/alerts/{id}            — full record
    PUT      /api/v1/admin/alerts/{id}/resolve    — close (default: resolved)
    PUT|POST /api/v1/admin/alerts/{id}/update     — close with explicit status

Every route requires an admin token. The admin's username is stamped on
the record as ``resolved_by``.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from backend.app.alerts.directory import UserDirectory
from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.alerts.models import AlertStatus, SOSAlert
from backend.app.alerts.store import AlertStore
from backend.app.api.deps import get_alert_store, get_lifecycle, get_user_directory
from backend.app.api.schemas import AlertResolveRequest
from backend.app.core.errors import AlertNotFoundError, ValidationError
from backend.app.core.security import Principal, require_admin

router = APIRouter(
    prefix="/api/v1/admin/alerts",
    tags=["admin-alerts"],
    dependencies=[Depends(require_admin)],
)


def _parse_status_filter(value: Optional[str]) -> Optional[AlertStatus]:
    if not value or value == "all":
        return None
    try:
        return AlertStatus(value)
    except ValueError:
        raise ValidationError(
            f"Unknown alert status '{value}'",
            field="status",
            allowed=[s.value for s in AlertStatus],
        ) from None


def _resolution_response(alert: SOSAlert) -> Dict[str, Any]:
    return {
        "success": True,
        "message": f"SOS alert marked as {alert.status.value}",
        "alert": {
            "id": alert.alert_id,
            "status": alert.status.value,
            "resolvedAt": alert.resolved_at.isoformat() if alert.resolved_at else None,
            "resolvedBy": alert.resolved_by,
            "notes": alert.notes,
        },
    }


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

@router.get("", summary="List SOS alerts")
async def list_alerts(
    status: Optional[str] = Query(None, description="active | resolved | false_alarm | all"),
    on_date: Optional[date] = Query(None, alias="date", description="Creation day, YYYY-MM-DD (UTC)"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    store: AlertStore = Depends(get_alert_store),
) -> Dict[str, Any]:
    alerts, total = await store.list_alerts(
        status=_parse_status_filter(status),
        on_date=on_date,
        page=page,
        limit=limit,
    )
    return {
        "success": True,
        "alerts": [a.to_dict() for a in alerts],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }


@router.get("/stats", summary="Alert counters for the dashboard")
async def alert_stats(
    store: AlertStore = Depends(get_alert_store),
    directory: UserDirectory = Depends(get_user_directory),
) -> Dict[str, Any]:
    return {
        "success": True,
        "stats": {
            "activeAlerts": await store.count(status=AlertStatus.ACTIVE),
            "totalAlerts": await store.count(),
            "totalUsers": await directory.count_users(),
            "verifiedUsers": await directory.count_users(fully_verified=True),
        },
    }


@router.get("/{alert_id}", summary="Full SOS alert record")
async def get_alert(
    alert_id: str,
    store: AlertStore = Depends(get_alert_store),
) -> Dict[str, Any]:
    alert = await store.get(alert_id)
    if alert is None:
        raise AlertNotFoundError(alert_id)
    return {"success": True, "alert": alert.to_dict()}


# ---------------------------------------------------------------------------
# Resolve
# ---------------------------------------------------------------------------

@router.put("/{alert_id}/resolve", summary="Resolve an SOS alert")
async def resolve_alert(
    alert_id: str,
    body: Optional[AlertResolveRequest] = Body(None),
    admin: Principal = Depends(require_admin),
    lifecycle: AlertLifecycleManager = Depends(get_lifecycle),
) -> Dict[str, Any]:
    alert = await lifecycle.resolve(
        alert_id,
        status=(body.status if body and body.status else AlertStatus.RESOLVED),
        actor=admin.display_name,
        notes=body.notes if body else None,
    )
    return _resolution_response(alert)


@router.api_route("/{alert_id}/update", methods=["PUT", "POST"], summary="Set an SOS alert's final status")
async def update_alert_status(
    alert_id: str,
    body: AlertResolveRequest,
    admin: Principal = Depends(require_admin),
    lifecycle: AlertLifecycleManager = Depends(get_lifecycle),
) -> Dict[str, Any]:
    alert = await lifecycle.resolve(
        alert_id,
        status=body.status,
        actor=admin.display_name,
        notes=body.notes,
    )
    return _resolution_response(alert)
