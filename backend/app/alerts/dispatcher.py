"""
dispatcher.py — SOS trigger orchestration.

Turns one SOS trigger into SMS notifications for the user's emergency
contacts and the police number, then writes a single auditable record.

═══════════════════════════════════════════════════════════════════════════
DISPATCH FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  1. Validate        │  latitude / longitude present and in range
    │     request         │  alert_type in the closed vocabulary
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  2. Load user +     │  unknown user       → 404
    │     verification    │  not fully verified → 403, nothing sent
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  3. Fan-out         │  one task per contact + one for police,
    │                     │  each bounded by SMS_SEND_TIMEOUT_SECONDS
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  4. Record          │  one SOSAlert with every outcome, status=active
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  5. Repeats         │  live channel only: copies 2..N per contact,
    │     (background)    │  spaced apart, logged but never recorded
    └─────────────────────┘

Delivery failures (partial or total) never fail the request: the record
is the source of truth for who was reached. Storage failure is the only
error raised once the verification gate has been passed.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import List, Optional, Sequence, Set, Union

from backend.app.alerts.channels.base import NotificationChannel
from backend.app.alerts.directory import UserDirectory
from backend.app.alerts.models import (
    DEFAULT_ADDRESS,
    AlertType,
    ContactNotification,
    DispatchSummary,
    EmergencyContact,
    GeoLocation,
    NotificationStatus,
    SendOutcome,
    SOSAlert,
    UserProfile,
)
from backend.app.alerts.store import AlertStore
from backend.app.core.config import Settings
from backend.app.core.errors import (
    MissingLocationError,
    NotFullyVerifiedError,
    PersistenceError,
    UserNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAPS_BASE_URL = "https://maps.google.com/maps"


# ═══════════════════════════════════════════════════════════════════════════
# Message building
# ═══════════════════════════════════════════════════════════════════════════

def maps_link(latitude: float, longitude: float, base_url: str = DEFAULT_MAPS_BASE_URL) -> str:
    return f"{base_url}?q={latitude},{longitude}"


def build_alert_message(
    user: UserProfile,
    latitude: float,
    longitude: float,
    *,
    maps_base_url: str = DEFAULT_MAPS_BASE_URL,
) -> str:
    return (
        "SOS! I need help.\n"
        f"Name: {user.name}\n"
        f"Phone: {user.phone}\n"
        f"Location: {maps_link(latitude, longitude, maps_base_url)}"
    )


def _repeat_suffix(index: int, total: int) -> str:
    return f" (Alert {index}/{total})"


# ═══════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════

def _coordinate(value, name: str, bound: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number", field=name, value=repr(value))
    if not math.isfinite(value) or not -bound <= value <= bound:
        raise ValidationError(
            f"{name} must be between {-bound:g} and {bound:g}", field=name, value=value,
        )
    return float(value)


def validate_location(
    latitude: Optional[float],
    longitude: Optional[float],
    address: Optional[str] = None,
) -> GeoLocation:
    """Presence first (0.0 is a real coordinate), then type and range."""
    missing = [
        name for name, value in (("latitude", latitude), ("longitude", longitude))
        if value is None
    ]
    if missing:
        raise MissingLocationError(missing)
    return GeoLocation(
        latitude=_coordinate(latitude, "latitude", 90.0),
        longitude=_coordinate(longitude, "longitude", 180.0),
        address=(address or "").strip() or DEFAULT_ADDRESS,
    )


def parse_alert_type(value: Union[AlertType, str, None]) -> AlertType:
    if value is None or value == "":
        return AlertType.EMERGENCY
    try:
        return AlertType(value)
    except ValueError:
        raise ValidationError(
            f"Unknown alert type '{value}'",
            field="alertType",
            allowed=[t.value for t in AlertType],
        ) from None


# ═══════════════════════════════════════════════════════════════════════════
# Dispatcher
# ═══════════════════════════════════════════════════════════════════════════

class SOSDispatcher:
    """
    Orchestrates SOS triggers.

    Parameters
    ----------
    channel : NotificationChannel
        Injected once at startup; live or demo.
    directory : UserDirectory
        User lookup (verification flags + contacts).
    store : AlertStore
        Destination of the alert record.
    police_number : str
        Fixed police recipient; always gets a single send.
    from_identity : str
        Sender number passed to the channel.
    send_timeout : float
        Upper bound, in seconds, on each individual send.
    repeat_count, repeat_spacing : int, float
        Copies per contact on a live channel and the gap between them.
        Copy 1 is recorded; the rest run in the background.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        directory: UserDirectory,
        store: AlertStore,
        *,
        police_number: str,
        from_identity: str = "",
        send_timeout: float = 8.0,
        repeat_count: int = 3,
        repeat_spacing: float = 2.0,
        maps_base_url: str = DEFAULT_MAPS_BASE_URL,
    ):
        self.channel = channel
        self.directory = directory
        self.store = store
        self.police_number = police_number
        self.from_identity = from_identity
        self.send_timeout = send_timeout
        self.repeat_count = max(1, repeat_count)
        self.repeat_spacing = max(0.0, repeat_spacing)
        self.maps_base_url = maps_base_url
        self._dispatches: Set[asyncio.Task] = set()
        self._background: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        channel: NotificationChannel,
        directory: UserDirectory,
        store: AlertStore,
    ) -> "SOSDispatcher":
        return cls(
            channel,
            directory,
            store,
            police_number=config.POLICE_PHONE_NUMBER,
            from_identity=config.TWILIO_PHONE_NUMBER_SOS or "",
            send_timeout=config.SMS_SEND_TIMEOUT_SECONDS,
            repeat_count=config.SOS_REPEAT_COUNT,
            repeat_spacing=config.SOS_REPEAT_SPACING_SECONDS,
            maps_base_url=config.MAPS_BASE_URL,
        )

    @property
    def repeats_enabled(self) -> bool:
        return self.channel.is_live and self.repeat_count > 1

    @property
    def pending_repeats(self) -> int:
        return len(self._background)

    # ── Public API ──────────────────────────────────────────────────────

    async def trigger(
        self,
        user_id: str,
        latitude: Optional[float],
        longitude: Optional[float],
        address: Optional[str] = None,
        alert_type: Union[AlertType, str, None] = None,
    ) -> DispatchSummary:
        """
        Validate, notify, record.

        Raises
        ------
        MissingLocationError / ValidationError
            Before any lookup or side effect.
        UserNotFoundError, NotFullyVerifiedError
            Before any notification or record.
        PersistenceError
            Notifications went out but the record could not be stored.

        Once the gate has passed, fan-out and record run in their own task:
        cancelling the caller does not cancel in-flight sends or skip the
        record.
        """
        location = validate_location(latitude, longitude, address)
        kind = parse_alert_type(alert_type)

        user = await self.directory.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if not user.is_fully_verified:
            logger.warning(
                "SOS refused for unverified user %s", user_id, extra={"user_id": user_id},
            )
            raise NotFullyVerifiedError(
                user_id,
                phone_verified=user.phone_verified,
                document_verified=user.document_verified,
            )

        contacts = tuple(user.emergency_contacts)
        message = build_alert_message(
            user, location.latitude, location.longitude, maps_base_url=self.maps_base_url,
        )
        logger.warning(
            "SOS triggered by user %s (%s) at %.5f,%.5f, notifying %d contact(s) + police",
            user_id, kind.value, location.latitude, location.longitude, len(contacts),
            extra={"user_id": user_id, "contact_count": len(contacts), "channel": self.channel.name},
        )

        task = asyncio.ensure_future(self._dispatch(user_id, location, kind, message, contacts))
        self._dispatches.add(task)
        task.add_done_callback(self._dispatches.discard)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for in-flight dispatches and background repeat sends to finish."""
        while self._dispatches or self._background:
            await asyncio.gather(
                *list(self._dispatches), *list(self._background), return_exceptions=True,
            )

    # ── Dispatch ────────────────────────────────────────────────────────

    async def _dispatch(
        self,
        user_id: str,
        location: GeoLocation,
        kind: AlertType,
        message: str,
        contacts: Sequence[EmergencyContact],
    ) -> DispatchSummary:
        started = time.perf_counter()
        contact_outcomes, police_outcome = await self._fan_out(message, contacts)

        alert = SOSAlert(
            user_id=user_id,
            location=location,
            alert_type=kind,
            contacts_notified=[
                ContactNotification(
                    name=contact.name,
                    phone=contact.phone,
                    notification_status=outcome.status,
                    sent_at=outcome.completed_at,
                )
                for contact, outcome in zip(contacts, contact_outcomes)
            ],
            police_notified=police_outcome.ok,
            police_notification_status=(
                NotificationStatus.SENT if police_outcome.ok else NotificationStatus.FAILED
            ),
        )

        try:
            await self.store.create(alert)
        except Exception as exc:
            logger.error(
                "SOS alert %s could not be stored after notifying: %s", alert.alert_id, exc,
                extra={"alert_id": alert.alert_id, "user_id": user_id},
                exc_info=True,
            )
            raise PersistenceError(alert.alert_id, "Failed to store SOS alert") from exc

        if self.repeats_enabled and contacts:
            self._schedule_repeats(alert.alert_id, message, contacts)

        logger.info(
            "SOS alert %s recorded: %d/%d contacts reached, police %s (%.0f ms)",
            alert.alert_id,
            alert.contacts_sent_count,
            len(contacts),
            alert.police_notification_status.value,
            (time.perf_counter() - started) * 1000,
            extra={
                "alert_id": alert.alert_id,
                "user_id": user_id,
                "contact_count": len(contacts),
                "channel": self.channel.name,
            },
        )
        return DispatchSummary.from_alert(alert)

    # ── Fan-out ─────────────────────────────────────────────────────────

    async def _fan_out(
        self,
        message: str,
        contacts: Sequence[EmergencyContact],
    ):
        if self.repeats_enabled:
            contact_message = message + _repeat_suffix(1, self.repeat_count)
        else:
            contact_message = message

        # Tasks are created in directory order, police last
        tasks = [
            asyncio.ensure_future(self._send_guarded(contact_message, c.phone))
            for c in contacts
        ]
        tasks.append(asyncio.ensure_future(self._send_guarded(message, self.police_number)))
        outcomes: List[SendOutcome] = await asyncio.gather(*tasks)
        return outcomes[:-1], outcomes[-1]

    async def _send_guarded(self, message: str, to_phone: str) -> SendOutcome:
        try:
            outcome = await asyncio.wait_for(
                self.channel.send(message, self.from_identity, to_phone),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError:
            outcome = SendOutcome.failed(f"timed out after {self.send_timeout:g}s")
        except Exception as exc:
            outcome = SendOutcome.failed(f"{type(exc).__name__}: {exc}")

        if not outcome.ok:
            logger.warning(
                "SMS to %s failed: %s", to_phone, outcome.error,
                extra={
                    "recipient": to_phone,
                    "channel": self.channel.name,
                    "notification_status": outcome.status.value,
                },
            )
        return outcome

    # ── Repeats ─────────────────────────────────────────────────────────

    def _schedule_repeats(
        self,
        alert_id: str,
        message: str,
        contacts: Sequence[EmergencyContact],
    ) -> None:
        for contact in contacts:
            task = asyncio.create_task(self._repeat_to_contact(alert_id, message, contact))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _repeat_to_contact(
        self,
        alert_id: str,
        message: str,
        contact: EmergencyContact,
    ) -> None:
        for index in range(2, self.repeat_count + 1):
            await asyncio.sleep(self.repeat_spacing)
            outcome = await self._send_guarded(
                message + _repeat_suffix(index, self.repeat_count), contact.phone,
            )
            logger.info(
                "Repeat %d/%d for alert %s to %s: %s",
                index, self.repeat_count, alert_id, contact.phone, outcome.status.value,
                extra={
                    "alert_id": alert_id,
                    "recipient": contact.phone,
                    "notification_status": outcome.status.value,
                },
            )
