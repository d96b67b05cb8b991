"""
models.py — Shared data structures for the SOS alert pipeline.

Defines:
    • AlertType / AlertStatus / NotificationStatus — closed vocabularies
    • EmergencyContact  — one entry in a user's contact directory
    • UserProfile       — the verification flags + contacts the dispatcher reads
    • GeoLocation       — trigger coordinates
    • SendOutcome       — result of one channel send
    • ContactNotification — per-contact outcome stored on the alert
    • SOSAlert          — the durable alert record
    • DispatchSummary   — what the trigger endpoint returns

═══════════════════════════════════════════════════════════════════════════
ALERT STATUS MACHINE
═══════════════════════════════════════════════════════════════════════════

              resolve(status=resolved)
    active ─────────────────────────────▶ resolved      (terminal)
       │
       └────────────────────────────────▶ false_alarm   (terminal)
              resolve(status=false_alarm)

No edge leaves a terminal state. Notification outcomes on the record are
written once, at creation, and never change afterwards.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_ADDRESS = "Location not specified"


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class AlertType(str, Enum):
    EMERGENCY = "emergency"
    PANIC     = "panic"
    MEDICAL   = "medical"
    SECURITY  = "security"


class AlertStatus(str, Enum):
    ACTIVE      = "active"
    RESOLVED    = "resolved"
    FALSE_ALARM = "false_alarm"

    @property
    def is_terminal(self) -> bool:
        return self is not AlertStatus.ACTIVE


TERMINAL_STATUSES = (AlertStatus.RESOLVED, AlertStatus.FALSE_ALARM)


class NotificationStatus(str, Enum):
    """Per-recipient delivery outcome."""
    SENT    = "sent"
    FAILED  = "failed"
    PENDING = "pending"   # schema default; never written by the dispatcher


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _generate_alert_id() -> str:
    return f"SOS-{uuid.uuid4().hex[:12].upper()}"


def _generate_contact_id() -> str:
    return uuid.uuid4().hex[:12]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════════════════
# Contact directory
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EmergencyContact:
    """
    One emergency contact.

    Attributes
    ----------
    name, phone, relationship : str
        Phone is stored normalised (E.164, +91 prefix for local numbers).
    priority : int
        1 (highest) to 3. Informational; list order decides send order.
    """
    name: str
    phone: str
    relationship: str
    priority: int = 1
    contact_id: str = field(default_factory=_generate_contact_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.contact_id,
            "name": self.name,
            "phone": self.phone,
            "relationship": self.relationship,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class UserProfile:
    """Read model of a user as seen by the SOS core."""
    user_id: str
    name: str
    phone: str
    email: Optional[str] = None
    phone_verified: bool = False
    document_verified: bool = False
    emergency_contacts: Tuple[EmergencyContact, ...] = ()

    @property
    def is_fully_verified(self) -> bool:
        return self.phone_verified and self.document_verified

    def with_contacts(self, contacts: List[EmergencyContact]) -> "UserProfile":
        return replace(self, emergency_contacts=tuple(contacts))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "phoneVerified": self.phone_verified,
            "documentVerified": self.document_verified,
            "isFullyVerified": self.is_fully_verified,
        }


# ═══════════════════════════════════════════════════════════════════════════
# Alert record
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GeoLocation:
    latitude: float
    longitude: float
    address: str = DEFAULT_ADDRESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
        }


@dataclass(frozen=True)
class SendOutcome:
    """Result of a single NotificationChannel.send call."""
    status: NotificationStatus
    completed_at: datetime = field(default_factory=_now)
    error: Optional[str] = None
    provider_message_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == NotificationStatus.SENT

    @classmethod
    def sent(cls, provider_message_id: Optional[str] = None) -> "SendOutcome":
        return cls(NotificationStatus.SENT, provider_message_id=provider_message_id)

    @classmethod
    def failed(cls, error: str) -> "SendOutcome":
        return cls(NotificationStatus.FAILED, error=error)


@dataclass(frozen=True)
class ContactNotification:
    """Outcome of the authoritative send to one contact."""
    name: str
    phone: str
    notification_status: NotificationStatus = NotificationStatus.PENDING
    sent_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "phone": self.phone,
            "notificationStatus": self.notification_status.value,
            "sentAt": _iso(self.sent_at),
        }


@dataclass
class SOSAlert:
    """
    Durable record of one SOS trigger.

    Only ``status``, ``resolved_at``, ``resolved_by`` and ``notes`` are
    mutable after creation, and only through the lifecycle manager.
    """
    user_id: str
    location: GeoLocation
    alert_type: AlertType = AlertType.EMERGENCY
    status: AlertStatus = AlertStatus.ACTIVE
    contacts_notified: List[ContactNotification] = field(default_factory=list)
    police_notified: bool = False
    police_notification_status: NotificationStatus = NotificationStatus.PENDING
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    alert_id: str = field(default_factory=_generate_alert_id)

    @property
    def contacts_sent_count(self) -> int:
        return sum(
            1 for c in self.contacts_notified
            if c.notification_status == NotificationStatus.SENT
        )

    @property
    def delivery_state(self) -> str:
        """complete / partial / failed, counting police as a recipient."""
        total = len(self.contacts_notified) + 1  # + police
        sent = self.contacts_sent_count + (1 if self.police_notified else 0)
        if sent == total:
            return "complete"
        if sent == 0:
            return "failed"
        return "partial"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.alert_id,
            "userId": self.user_id,
            "location": self.location.to_dict(),
            "alertType": self.alert_type.value,
            "status": self.status.value,
            "contactsNotified": [c.to_dict() for c in self.contacts_notified],
            "policeNotified": self.police_notified,
            "policeNotificationStatus": self.police_notification_status.value,
            "deliveryState": self.delivery_state,
            "resolvedAt": _iso(self.resolved_at),
            "resolvedBy": self.resolved_by,
            "notes": self.notes,
            "createdAt": _iso(self.created_at),
        }


@dataclass(frozen=True)
class DispatchSummary:
    """Synchronous result of a successful trigger."""
    alert_id: str
    alert_type: AlertType
    location: GeoLocation
    contacts_notified_count: int
    police_notified: bool
    created_at: datetime

    @classmethod
    def from_alert(cls, alert: SOSAlert) -> "DispatchSummary":
        return cls(
            alert_id=alert.alert_id,
            alert_type=alert.alert_type,
            location=alert.location,
            contacts_notified_count=len(alert.contacts_notified),
            police_notified=alert.police_notified,
            created_at=alert.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alertId": self.alert_id,
            "alertType": self.alert_type.value,
            "location": self.location.to_dict(),
            "contactsNotifiedCount": self.contacts_notified_count,
            "policeNotified": self.police_notified,
            "createdAt": _iso(self.created_at),
        }
