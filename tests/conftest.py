"""
Shared fixtures for the SOS backend test suite.

Everything runs without a database or network: users and alerts live in
the in-memory directory / store, and SMS goes through ``ScriptedChannel``
whose per-number behaviour is set by each test.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence, Set, Tuple

import pytest
from fastapi.testclient import TestClient

from backend.app.alerts.channels.base import NotificationChannel
from backend.app.alerts.directory import InMemoryUserDirectory
from backend.app.alerts.dispatcher import SOSDispatcher
from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.alerts.models import EmergencyContact, SendOutcome, UserProfile
from backend.app.alerts.store import InMemoryAlertStore
from backend.app.core.config import Settings
from backend.app.core.security import create_access_token
from backend.app.main import create_app

POLICE_NUMBER = "+91807643514"

# India Gate, New Delhi
DELHI_LAT = 28.6
DELHI_LON = 77.2


class ScriptedChannel(NotificationChannel):
    """Channel double: records every send and fails / raises / hangs on demand."""

    name = "scripted"

    def __init__(
        self,
        *,
        fail_for: Sequence[str] = (),
        raise_for: Sequence[str] = (),
        hang_for: Sequence[str] = (),
        fail_all: bool = False,
        live: bool = False,
        delay: float = 0.0,
    ):
        self.fail_for: Set[str] = set(fail_for)
        self.raise_for: Set[str] = set(raise_for)
        self.hang_for: Set[str] = set(hang_for)
        self.fail_all = fail_all
        self.is_live = live
        self.delay = delay
        self.calls: List[Tuple[str, str, str]] = []

    async def send(self, message: str, from_identity: str, to_phone: str) -> SendOutcome:
        self.calls.append((message, from_identity, to_phone))
        if self.delay:
            await asyncio.sleep(self.delay)
        if to_phone in self.hang_for:
            await asyncio.sleep(3600)
        if to_phone in self.raise_for:
            raise RuntimeError(f"carrier exploded for {to_phone}")
        if self.fail_all or to_phone in self.fail_for:
            return SendOutcome.failed("carrier rejected")
        return SendOutcome.sent(provider_message_id=f"SM{len(self.calls):04d}")

    def recipients(self) -> List[str]:
        return [to for _, _, to in self.calls]


def make_contact(name: str, phone: str, priority: int = 1, relationship: str = "friend") -> EmergencyContact:
    return EmergencyContact(name=name, phone=phone, relationship=relationship, priority=priority)


def make_user(
    user_id: str = "user-1",
    *,
    name: str = "Ravi Kumar",
    phone: str = "+919812345678",
    phone_verified: bool = True,
    document_verified: bool = True,
    contacts: Sequence[EmergencyContact] = (),
) -> UserProfile:
    return UserProfile(
        user_id=user_id,
        name=name,
        phone=phone,
        email=f"{user_id}@example.com",
        phone_verified=phone_verified,
        document_verified=document_verified,
        emergency_contacts=tuple(contacts),
    )


def make_settings(**overrides) -> Settings:
    values = dict(
        ENVIRONMENT="testing",
        JWT_SECRET="test-secret",
        POLICE_PHONE_NUMBER=POLICE_NUMBER,
        TWILIO_ACCOUNT_SID_SOS=None,
        TWILIO_AUTH_TOKEN_SOS=None,
        TWILIO_PHONE_NUMBER_SOS=None,
        SOS_REPEAT_SPACING_SECONDS=0.0,
        SMS_SEND_TIMEOUT_SECONDS=0.5,
    )
    values.update(overrides)
    return Settings(**values)


def make_dispatcher(
    channel: NotificationChannel,
    directory: InMemoryUserDirectory,
    store: InMemoryAlertStore,
    **kwargs,
) -> SOSDispatcher:
    kwargs.setdefault("police_number", POLICE_NUMBER)
    kwargs.setdefault("send_timeout", 0.5)
    kwargs.setdefault("repeat_spacing", 0.0)
    return SOSDispatcher(channel, directory, store, **kwargs)


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def channel() -> ScriptedChannel:
    return ScriptedChannel()


@pytest.fixture
def directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory()


@pytest.fixture
def store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def lifecycle(store) -> AlertLifecycleManager:
    return AlertLifecycleManager(store)


@pytest.fixture
def app(settings, channel, directory, store):
    return create_app(settings, alert_store=store, user_directory=directory, channel=channel)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def user_headers(settings):
    def _headers(user_id: str = "user-1") -> dict:
        token = create_access_token(user_id, settings)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def admin_headers(settings) -> dict:
    token = create_access_token("admin-1", settings, role="admin", username="control-room")
    return {"Authorization": f"Bearer {token}"}


def run(coro):
    """Drive a coroutine to completion from a sync test."""
    return asyncio.run(coro)


def seeded_directory(*users: UserProfile, limit: Optional[int] = None) -> InMemoryUserDirectory:
    kwargs = {"contact_limit": limit} if limit else {}
    return InMemoryUserDirectory(users, **kwargs)
