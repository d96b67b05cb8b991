"""
store.py — Durable storage for SOS alert records.

Records are written once by the dispatcher (``create``) and afterwards
only their status / resolution fields are rewritten by the lifecycle
manager (``update``). Concurrent updates are last-writer-wins.

Implementations:
    InMemoryAlertStore     — dict-backed (tests, demo)
    SqlAlchemyAlertStore   — ``sos_alerts`` + ``sos_contact_notifications``
"""

from __future__ import annotations

import abc
import asyncio
import copy
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.alerts.models import (
    AlertStatus,
    AlertType,
    ContactNotification,
    GeoLocation,
    NotificationStatus,
    SOSAlert,
)
from backend.app.alerts.tables import ContactNotificationRow, SOSAlertRow
from backend.app.core.errors import AlertNotFoundError

logger = logging.getLogger(__name__)


def _day_bounds(on_date: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(on_date, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class AlertStore(abc.ABC):
    """Persistence contract used by the dispatcher and lifecycle manager."""

    @abc.abstractmethod
    async def create(self, alert: SOSAlert) -> SOSAlert:
        ...

    @abc.abstractmethod
    async def get(self, alert_id: str) -> Optional[SOSAlert]:
        ...

    @abc.abstractmethod
    async def update(self, alert: SOSAlert) -> SOSAlert:
        """Persist status, resolved_at, resolved_by and notes only."""

    @abc.abstractmethod
    async def list_alerts(
        self,
        *,
        status: Optional[AlertStatus] = None,
        on_date: Optional[date] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[SOSAlert], int]:
        """Return one page (newest first) and the total matching count."""

    @abc.abstractmethod
    async def count(self, *, status: Optional[AlertStatus] = None) -> int:
        ...


# ═══════════════════════════════════════════════════════════════════════════
# In-memory
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryAlertStore(AlertStore):
    """Copies on the way in and out so callers never share state with the store."""

    def __init__(self):
        self._alerts: Dict[str, SOSAlert] = {}
        self._lock = asyncio.Lock()

    async def create(self, alert: SOSAlert) -> SOSAlert:
        async with self._lock:
            self._alerts[alert.alert_id] = copy.deepcopy(alert)
        return alert

    async def get(self, alert_id: str) -> Optional[SOSAlert]:
        alert = self._alerts.get(alert_id)
        return copy.deepcopy(alert) if alert else None

    async def update(self, alert: SOSAlert) -> SOSAlert:
        async with self._lock:
            stored = self._alerts.get(alert.alert_id)
            if stored is None:
                raise AlertNotFoundError(alert.alert_id)
            stored.status = alert.status
            stored.resolved_at = alert.resolved_at
            stored.resolved_by = alert.resolved_by
            stored.notes = alert.notes
            return copy.deepcopy(stored)

    async def list_alerts(
        self,
        *,
        status: Optional[AlertStatus] = None,
        on_date: Optional[date] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[SOSAlert], int]:
        matches = list(self._alerts.values())
        if status is not None:
            matches = [a for a in matches if a.status == status]
        if user_id is not None:
            matches = [a for a in matches if a.user_id == user_id]
        if on_date is not None:
            start, end = _day_bounds(on_date)
            matches = [a for a in matches if start <= a.created_at < end]

        matches.sort(key=lambda a: a.created_at, reverse=True)
        offset = (max(page, 1) - 1) * limit
        return [copy.deepcopy(a) for a in matches[offset:offset + limit]], len(matches)

    async def count(self, *, status: Optional[AlertStatus] = None) -> int:
        if status is None:
            return len(self._alerts)
        return sum(1 for a in self._alerts.values() if a.status == status)


# ═══════════════════════════════════════════════════════════════════════════
# SQLAlchemy
# ═══════════════════════════════════════════════════════════════════════════

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _alert_from_row(row: SOSAlertRow) -> SOSAlert:
    return SOSAlert(
        alert_id=row.id,
        user_id=row.user_id,
        location=GeoLocation(
            latitude=row.latitude, longitude=row.longitude, address=row.address,
        ),
        alert_type=AlertType(row.alert_type),
        status=AlertStatus(row.status),
        contacts_notified=[
            ContactNotification(
                name=n.name,
                phone=n.phone,
                notification_status=NotificationStatus(n.notification_status),
                sent_at=_as_utc(n.sent_at),
            )
            for n in row.notifications
        ],
        police_notified=row.police_notified,
        police_notification_status=NotificationStatus(row.police_notification_status),
        resolved_at=_as_utc(row.resolved_at),
        resolved_by=row.resolved_by,
        notes=row.notes,
        created_at=_as_utc(row.created_at),
    )


def _row_from_alert(alert: SOSAlert) -> SOSAlertRow:
    return SOSAlertRow(
        id=alert.alert_id,
        user_id=alert.user_id,
        latitude=alert.location.latitude,
        longitude=alert.location.longitude,
        address=alert.location.address,
        alert_type=alert.alert_type.value,
        status=alert.status.value,
        police_notified=alert.police_notified,
        police_notification_status=alert.police_notification_status.value,
        resolved_at=alert.resolved_at,
        resolved_by=alert.resolved_by,
        notes=alert.notes,
        created_at=alert.created_at,
        notifications=[
            ContactNotificationRow(
                position=i,
                name=n.name,
                phone=n.phone,
                notification_status=n.notification_status.value,
                sent_at=n.sent_at,
            )
            for i, n in enumerate(alert.contacts_notified)
        ],
    )


class SqlAlchemyAlertStore(AlertStore):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, alert: SOSAlert) -> SOSAlert:
        async with self._session_factory() as session, session.begin():
            session.add(_row_from_alert(alert))
        logger.debug("Alert %s stored", alert.alert_id, extra={"alert_id": alert.alert_id})
        return alert

    async def get(self, alert_id: str) -> Optional[SOSAlert]:
        async with self._session_factory() as session:
            row = await session.get(SOSAlertRow, alert_id)
            return _alert_from_row(row) if row else None

    async def update(self, alert: SOSAlert) -> SOSAlert:
        async with self._session_factory() as session, session.begin():
            row = await session.get(SOSAlertRow, alert.alert_id)
            if row is None:
                raise AlertNotFoundError(alert.alert_id)
            row.status = alert.status.value
            row.resolved_at = alert.resolved_at
            row.resolved_by = alert.resolved_by
            row.notes = alert.notes
            await session.flush()
            return _alert_from_row(row)

    async def list_alerts(
        self,
        *,
        status: Optional[AlertStatus] = None,
        on_date: Optional[date] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[SOSAlert], int]:
        conditions = []
        if status is not None:
            conditions.append(SOSAlertRow.status == status.value)
        if user_id is not None:
            conditions.append(SOSAlertRow.user_id == user_id)
        if on_date is not None:
            start, end = _day_bounds(on_date)
            conditions.append(SOSAlertRow.created_at >= start)
            conditions.append(SOSAlertRow.created_at < end)

        page_stmt = (
            select(SOSAlertRow)
            .where(*conditions)
            .order_by(SOSAlertRow.created_at.desc())
            .offset((max(page, 1) - 1) * limit)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(SOSAlertRow).where(*conditions)

        async with self._session_factory() as session:
            rows = (await session.execute(page_stmt)).scalars().all()
            total = (await session.execute(count_stmt)).scalar_one()
            return [_alert_from_row(r) for r in rows], int(total)

    async def count(self, *, status: Optional[AlertStatus] = None) -> int:
        stmt = select(func.count()).select_from(SOSAlertRow)
        if status is not None:
            stmt = stmt.where(SOSAlertRow.status == status.value)
        async with self._session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())
