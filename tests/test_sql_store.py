"""
test_sql_store.py — SQLAlchemy alert store and user directory.

Runs against an in-memory SQLite database (aiosqlite) so the ORM mapping
is exercised without PostgreSQL.

Covers:
    • Alert create → get round-trip (location, type, contact ordering)
    • update writes resolution fields only
    • list_alerts filters, ordering and pagination; count
    • Directory contact storage and ordering; concurrent adds

Run with:
    pytest tests/test_sql_store.py -v
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.app.alerts.directory import SqlAlchemyUserDirectory
from backend.app.alerts.dispatcher import SOSDispatcher
from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.alerts.models import (
    AlertStatus,
    AlertType,
    ContactNotification,
    GeoLocation,
    NotificationStatus,
    SOSAlert,
)
from backend.app.alerts.store import SqlAlchemyAlertStore
from backend.app.core.database import init_db
from backend.app.core.errors import AlertNotFoundError, ContactLimitError
from tests.conftest import POLICE_NUMBER, ScriptedChannel, make_contact, make_user, run


async def _with_database(scenario):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    try:
        await init_db(engine)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        directory = SqlAlchemyUserDirectory(factory)
        await directory.save_user(make_user("u1"))
        await directory.save_user(make_user("u2"))
        return await scenario(SqlAlchemyAlertStore(factory), directory)
    finally:
        await engine.dispose()


def _alert(user_id="u1", *, created_at=None, status=AlertStatus.ACTIVE, names=("Asha", "Bilal")) -> SOSAlert:
    now = datetime.now(timezone.utc)
    return SOSAlert(
        user_id=user_id,
        location=GeoLocation(28.6, 77.2, "Connaught Place"),
        alert_type=AlertType.PANIC,
        status=status,
        contacts_notified=[
            ContactNotification(
                name,
                f"+9198000000{i:02d}",
                NotificationStatus.SENT if i % 2 == 0 else NotificationStatus.FAILED,
                now,
            )
            for i, name in enumerate(names)
        ],
        police_notified=True,
        police_notification_status=NotificationStatus.SENT,
        created_at=created_at or now,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Alert store
# ═══════════════════════════════════════════════════════════════════════════

class TestSqlAlertStore:

    def test_round_trip(self):
        original = _alert(names=("Chitra", "Asha", "Bilal"))

        async def scenario(store, _):
            await store.create(original)
            return await store.get(original.alert_id)

        loaded = run(_with_database(scenario))
        assert loaded.location == original.location
        assert loaded.alert_type == AlertType.PANIC
        assert [c.name for c in loaded.contacts_notified] == ["Chitra", "Asha", "Bilal"]
        assert [c.notification_status for c in loaded.contacts_notified] == [
            c.notification_status for c in original.contacts_notified
        ]
        assert loaded.police_notification_status == NotificationStatus.SENT
        assert loaded.created_at == original.created_at

    def test_get_missing(self):
        async def scenario(store, _):
            return await store.get("SOS-NOPE")

        assert run(_with_database(scenario)) is None

    def test_update_only_resolution_fields(self):
        original = _alert()

        async def scenario(store, _):
            await store.create(original)
            changed = await store.get(original.alert_id)
            changed.status = AlertStatus.RESOLVED
            changed.resolved_by = "control-room"
            changed.resolved_at = datetime.now(timezone.utc)
            changed.notes = "reached hotel"
            changed.police_notified = False          # must not be written
            changed.contacts_notified = []           # must not be written
            await store.update(changed)
            return await store.get(original.alert_id)

        loaded = run(_with_database(scenario))
        assert loaded.status == AlertStatus.RESOLVED
        assert loaded.resolved_by == "control-room"
        assert loaded.notes == "reached hotel"
        assert loaded.police_notified is True
        assert len(loaded.contacts_notified) == 2

    def test_update_missing(self):
        async def scenario(store, _):
            await store.update(_alert())

        with pytest.raises(AlertNotFoundError):
            run(_with_database(scenario))

    def test_list_filters_and_pagination(self):
        base = datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc)
        alerts = [
            _alert(created_at=base),
            _alert(created_at=base + timedelta(hours=1), status=AlertStatus.RESOLVED),
            _alert(created_at=base + timedelta(hours=2)),
            _alert("u2", created_at=base + timedelta(days=1)),
        ]

        async def scenario(store, _):
            for a in alerts:
                await store.create(a)
            return {
                "all": await store.list_alerts(),
                "active": await store.list_alerts(status=AlertStatus.ACTIVE),
                "day": await store.list_alerts(on_date=date(2026, 3, 14)),
                "user": await store.list_alerts(user_id="u2"),
                "page2": await store.list_alerts(page=2, limit=3),
                "count": await store.count(),
                "count_active": await store.count(status=AlertStatus.ACTIVE),
            }

        out = run(_with_database(scenario))
        everything, total = out["all"]
        assert total == 4
        assert [a.alert_id for a in everything] == [a.alert_id for a in reversed(alerts)]
        assert out["active"][1] == 3
        assert out["day"][1] == 3
        assert [a.user_id for a in out["user"][0]] == ["u2"]
        page2, page_total = out["page2"]
        assert page_total == 4
        assert [a.alert_id for a in page2] == [alerts[0].alert_id]
        assert out["count"] == 4
        assert out["count_active"] == 3


# ═══════════════════════════════════════════════════════════════════════════
# Directory
# ═══════════════════════════════════════════════════════════════════════════

class TestSqlDirectory:

    def test_contacts_crud_and_order(self):
        async def scenario(_, directory):
            a = await directory.add_contact("u1", name="Asha", phone="9800000001", relationship="sister")
            b = await directory.add_contact("u1", name="Bilal", phone="9800000002", relationship="friend")
            await directory.update_contact("u1", a.contact_id, priority=3)
            await directory.reorder_contacts("u1", [b.contact_id, a.contact_id])
            reordered = await directory.list_contacts("u1")
            await directory.remove_contact("u1", b.contact_id)
            return reordered, await directory.list_contacts("u1")

        reordered, remaining = run(_with_database(scenario))
        assert [c.name for c in reordered] == ["Bilal", "Asha"]
        assert reordered[1].priority == 3
        assert reordered[0].phone == "+919800000002"
        assert [c.name for c in remaining] == ["Asha"]

    def test_concurrent_adds_are_all_kept(self):
        async def scenario(_, directory):
            await asyncio.gather(*(
                directory.add_contact("u2", name=name, phone=f"980000001{i}", relationship="friend")
                for i, name in enumerate(("Asha", "Bilal", "Chitra"))
            ))
            return await directory.list_contacts("u2")

        stored = run(_with_database(scenario))
        assert sorted(c.name for c in stored) == ["Asha", "Bilal", "Chitra"]

    def test_concurrent_adds_respect_limit(self):
        async def scenario(_, directory):
            directory.contact_limit = 2
            results = await asyncio.gather(
                *(
                    directory.add_contact("u2", name=f"C{i}", phone=f"980000002{i}", relationship="friend")
                    for i in range(3)
                ),
                return_exceptions=True,
            )
            return results, await directory.list_contacts("u2")

        results, stored = run(_with_database(scenario))
        assert len(stored) == 2
        assert [type(r) for r in results].count(ContactLimitError) == 1

    def test_count_users(self):
        async def scenario(_, directory):
            await directory.save_user(make_user("u3", document_verified=False))
            return await directory.count_users(), await directory.count_users(fully_verified=True)

        assert run(_with_database(scenario)) == (3, 2)


# ═══════════════════════════════════════════════════════════════════════════
# End to end over SQL
# ═══════════════════════════════════════════════════════════════════════════

class TestSqlPipeline:

    def test_trigger_then_resolve(self):
        channel = ScriptedChannel(fail_for=["+919800000002"])

        async def scenario(store, directory):
            await directory.save_user(make_user("u9", contacts=[
                make_contact("Asha", "+919800000001"),
                make_contact("Bilal", "+919800000002", priority=2),
            ]))
            dispatcher = SOSDispatcher(
                channel, directory, store,
                police_number=POLICE_NUMBER, send_timeout=1.0, repeat_spacing=0.0,
            )
            summary = await dispatcher.trigger("u9", 28.6, 77.2)
            resolved = await AlertLifecycleManager(store).resolve(
                summary.alert_id, status="false_alarm", actor="control-room", notes="test page",
            )
            return await store.get(summary.alert_id), resolved

        stored, resolved = run(_with_database(scenario))
        assert [(c.name, c.notification_status) for c in stored.contacts_notified] == [
            ("Asha", NotificationStatus.SENT),
            ("Bilal", NotificationStatus.FAILED),
        ]
        assert stored.status == AlertStatus.FALSE_ALARM
        assert stored.resolved_by == "control-room"
        assert stored.notes == "test page"
        assert resolved.resolved_at is not None
