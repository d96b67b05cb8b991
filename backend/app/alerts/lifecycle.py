"""
lifecycle.py — Admin-driven status transitions for SOS alerts.

    active ──▶ resolved | false_alarm

Resolving an already-terminal alert with the same status is a no-op;
asking for the other terminal status is a conflict. Resolution never
sends notifications.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from backend.app.alerts.models import TERMINAL_STATUSES, AlertStatus, SOSAlert
from backend.app.alerts.store import AlertStore
from backend.app.core.errors import (
    AlertNotFoundError,
    AlertTransitionError,
    InvalidStatusError,
)

logger = logging.getLogger(__name__)


def parse_terminal_status(value: Union[AlertStatus, str, None]) -> AlertStatus:
    allowed = [s.value for s in TERMINAL_STATUSES]
    try:
        status = AlertStatus(value)
    except ValueError:
        raise InvalidStatusError(str(value), allowed) from None
    if not status.is_terminal:
        raise InvalidStatusError(status.value, allowed)
    return status


class AlertLifecycleManager:

    def __init__(self, store: AlertStore):
        self.store = store

    async def resolve(
        self,
        alert_id: str,
        *,
        status: Union[AlertStatus, str],
        actor: str,
        notes: Optional[str] = None,
    ) -> SOSAlert:
        """
        Move an active alert to ``status`` on behalf of ``actor``.

        Raises InvalidStatusError, AlertNotFoundError or AlertTransitionError.
        """
        target = parse_terminal_status(status)

        alert = await self.store.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)

        if alert.status.is_terminal:
            if alert.status == target:
                logger.info(
                    "Alert %s already %s; nothing to do", alert_id, target.value,
                    extra={"alert_id": alert_id},
                )
                return alert
            raise AlertTransitionError(alert_id, alert.status.value, target.value)

        alert.status = target
        alert.resolved_at = datetime.now(timezone.utc)
        alert.resolved_by = actor
        if notes is not None:
            alert.notes = notes

        updated = await self.store.update(alert)
        logger.info(
            "Alert %s marked %s by %s", alert_id, target.value, actor,
            extra={"alert_id": alert_id, "user_id": alert.user_id},
        )
        return updated
