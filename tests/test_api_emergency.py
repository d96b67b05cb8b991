"""
test_api_emergency.py — HTTP surface of the SOS backend.

Covers:
    • Authentication (missing / bad token, non-admin on admin routes)
    • POST /trigger and /sos: success shape, error codes, no side effects
    • Contact management endpoints
    • SOS history
    • Admin listing, stats, detail, resolve / update
    • Root and health probes

Run with:
    pytest tests/test_api_emergency.py -v
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend.app.alerts.models import AlertStatus, NotificationStatus
from tests.conftest import (
    DELHI_LAT,
    DELHI_LON,
    POLICE_NUMBER,
    make_contact,
    make_user,
    run,
)

TRIGGER = "/api/v1/emergency/trigger"
CONTACTS = "/api/v1/emergency/contacts"
ADMIN = "/api/v1/admin/alerts"

ASHA = make_contact("Asha", "+919800000001")
BILAL = make_contact("Bilal", "+919800000002", priority=2)


@pytest.fixture(autouse=True)
def _seed_users(directory):
    directory.put(make_user("user-1", contacts=[ASHA, BILAL]))
    directory.put(make_user("user-2", document_verified=False, contacts=[ASHA]))
    directory.put(make_user("user-3"))


def _trigger(client, headers, **body):
    payload = {"latitude": DELHI_LAT, "longitude": DELHI_LON}
    payload.update(body)
    return client.post(TRIGGER, json=payload, headers=headers)


# ═══════════════════════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════════════════════

class TestAuthentication:

    def test_missing_token(self, client):
        resp = client.post(TRIGGER, json={"latitude": DELHI_LAT, "longitude": DELHI_LON})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "AUTHENTICATION_FAILED"
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_bad_token(self, client):
        resp = client.get(CONTACTS, headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_user_token_on_admin_route(self, client, user_headers):
        resp = client.get(ADMIN, headers=user_headers())
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ADMIN_REQUIRED"


# ═══════════════════════════════════════════════════════════════════════════
# SOS trigger
# ═══════════════════════════════════════════════════════════════════════════

class TestTrigger:

    def test_success_shape(self, client, user_headers, channel, store):
        resp = _trigger(client, user_headers(), address="India Gate", alertType="panic")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "SOS alert sent successfully"
        alert = body["alert"]
        assert alert["alertId"].startswith("SOS-")
        assert alert["alertType"] == "panic"
        assert alert["location"] == {"latitude": DELHI_LAT, "longitude": DELHI_LON, "address": "India Gate"}
        assert alert["contactsNotifiedCount"] == 2
        assert alert["policeNotified"] is True
        assert alert["createdAt"]
        assert channel.recipients() == [ASHA.phone, BILAL.phone, POLICE_NUMBER]
        assert run(store.count()) == 1

    def test_sos_alias(self, client, user_headers):
        resp = client.post(
            "/api/v1/emergency/sos",
            json={"latitude": DELHI_LAT, "longitude": DELHI_LON},
            headers=user_headers(),
        )
        assert resp.status_code == 200
        assert resp.json()["alert"]["alertType"] == "emergency"

    def test_partial_failure_is_still_success(self, client, user_headers, channel, store):
        channel.fail_for.add(BILAL.phone)
        resp = _trigger(client, user_headers())
        assert resp.status_code == 200
        stored = run(store.get(resp.json()["alert"]["alertId"]))
        assert [c.notification_status for c in stored.contacts_notified] == [
            NotificationStatus.SENT, NotificationStatus.FAILED,
        ]

    def test_missing_location(self, client, user_headers, channel, store):
        resp = client.post(TRIGGER, json={"latitude": DELHI_LAT}, headers=user_headers())
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "MISSING_LOCATION"
        assert error["details"]["missing"] == ["longitude"]
        assert channel.calls == []
        assert run(store.count()) == 0

    def test_out_of_range_latitude(self, client, user_headers):
        resp = _trigger(client, user_headers(), latitude=123.0)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_non_numeric_latitude_uses_error_envelope(self, client, user_headers, channel):
        resp = _trigger(client, user_headers(), latitude="abc")
        assert resp.status_code == 422
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert [e["field"] for e in body["error"]["details"]["errors"]] == ["latitude"]
        assert channel.calls == []

    def test_unknown_alert_type(self, client, user_headers):
        resp = _trigger(client, user_headers(), alertType="alien")
        assert resp.status_code == 422
        assert resp.json()["error"]["details"]["field"] == "alertType"

    def test_unverified_user(self, client, user_headers, channel, store):
        resp = _trigger(client, user_headers("user-2"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "NOT_FULLY_VERIFIED"
        assert channel.calls == []
        assert run(store.count()) == 0

    def test_unknown_user(self, client, user_headers):
        resp = _trigger(client, user_headers("ghost"))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "USER_NOT_FOUND"

    def test_history_lists_own_alerts_newest_first(self, client, user_headers):
        first = _trigger(client, user_headers()).json()["alert"]["alertId"]
        second = _trigger(client, user_headers()).json()["alert"]["alertId"]
        _trigger(client, user_headers("user-3"))

        resp = client.get("/api/v1/emergency/sos-history", headers=user_headers())
        assert resp.status_code == 200
        ids = [a["id"] for a in resp.json()["alerts"]]
        assert ids == [second, first]


# ═══════════════════════════════════════════════════════════════════════════
# Contacts
# ═══════════════════════════════════════════════════════════════════════════

class TestContacts:

    def test_list(self, client, user_headers):
        resp = client.get(CONTACTS, headers=user_headers())
        assert [c["name"] for c in resp.json()["contacts"]] == ["Asha", "Bilal"]

    def test_add_normalises_phone(self, client, user_headers):
        resp = client.post(
            CONTACTS,
            json={"name": "Chitra", "phone": "9800000003", "relationship": "cousin", "priority": 7},
            headers=user_headers("user-3"),
        )
        assert resp.status_code == 200
        contact = resp.json()["contact"]
        assert contact["phone"] == "+919800000003"
        assert contact["priority"] == 3

    def test_add_requires_fields(self, client, user_headers):
        resp = client.post(CONTACTS, json={"name": "Chitra"}, headers=user_headers("user-3"))
        assert resp.status_code == 422
        assert resp.json()["error"]["details"]["field"] == "phone"

    def test_limit(self, client, user_headers):
        headers = user_headers("user-3")
        for i in range(5):
            ok = client.post(
                CONTACTS,
                json={"name": f"C{i}", "phone": f"980000001{i}", "relationship": "friend"},
                headers=headers,
            )
            assert ok.status_code == 200
        resp = client.post(
            CONTACTS,
            json={"name": "Sixth", "phone": "9800000020", "relationship": "friend"},
            headers=headers,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "CONTACT_LIMIT_REACHED"

    def test_update_and_delete(self, client, user_headers):
        headers = user_headers()
        resp = client.put(f"{CONTACTS}/{BILAL.contact_id}", json={"relationship": "colleague"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["contact"]["relationship"] == "colleague"

        resp = client.delete(f"{CONTACTS}/{ASHA.contact_id}", headers=headers)
        assert resp.status_code == 200
        names = [c["name"] for c in client.get(CONTACTS, headers=headers).json()["contacts"]]
        assert names == ["Bilal"]

    def test_missing_contact(self, client, user_headers):
        resp = client.delete(f"{CONTACTS}/nope", headers=user_headers())
        assert resp.status_code == 404

    def test_reorder(self, client, user_headers, channel):
        headers = user_headers()
        resp = client.put(
            f"{CONTACTS}/order",
            json={"contactIds": [BILAL.contact_id, ASHA.contact_id]},
            headers=headers,
        )
        assert resp.status_code == 200
        assert [c["name"] for c in resp.json()["contacts"]] == ["Bilal", "Asha"]

        _trigger(client, headers)
        assert channel.recipients()[:2] == [BILAL.phone, ASHA.phone]

    def test_reorder_rejects_partial_list(self, client, user_headers):
        resp = client.put(f"{CONTACTS}/order", json={"contactIds": [ASHA.contact_id]}, headers=user_headers())
        assert resp.status_code == 422


# ═══════════════════════════════════════════════════════════════════════════
# Admin
# ═══════════════════════════════════════════════════════════════════════════

class TestAdminAlerts:

    def test_list_with_filters(self, client, user_headers, admin_headers):
        a = _trigger(client, user_headers()).json()["alert"]["alertId"]
        _trigger(client, user_headers("user-3"))
        client.put(f"{ADMIN}/{a}/resolve", json={}, headers=admin_headers)

        resp = client.get(ADMIN, headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["pagination"] == {"page": 1, "limit": 50, "total": 2, "pages": 1}

        active = client.get(ADMIN, params={"status": "active"}, headers=admin_headers).json()
        assert [x["userId"] for x in active["alerts"]] == ["user-3"]

        today = datetime.now(timezone.utc).date().isoformat()
        dated = client.get(ADMIN, params={"date": today}, headers=admin_headers).json()
        assert dated["pagination"]["total"] == 2
        empty = client.get(ADMIN, params={"date": "2001-01-01"}, headers=admin_headers).json()
        assert empty["pagination"]["total"] == 0

    def test_list_rejects_unknown_status(self, client, admin_headers):
        resp = client.get(ADMIN, params={"status": "bogus"}, headers=admin_headers)
        assert resp.status_code == 422

    def test_stats(self, client, user_headers, admin_headers):
        a = _trigger(client, user_headers()).json()["alert"]["alertId"]
        _trigger(client, user_headers())
        client.put(f"{ADMIN}/{a}/resolve", headers=admin_headers)

        stats = client.get(f"{ADMIN}/stats", headers=admin_headers).json()["stats"]
        assert stats["activeAlerts"] == 1
        assert stats["totalAlerts"] == 2
        assert stats["totalUsers"] == 3
        assert stats["verifiedUsers"] == 2

    def test_detail(self, client, user_headers, admin_headers):
        a = _trigger(client, user_headers()).json()["alert"]["alertId"]
        resp = client.get(f"{ADMIN}/{a}", headers=admin_headers)
        assert resp.status_code == 200
        alert = resp.json()["alert"]
        assert alert["status"] == "active"
        assert [c["name"] for c in alert["contactsNotified"]] == ["Asha", "Bilal"]
        assert alert["policeNotificationStatus"] == "sent"

    def test_detail_missing(self, client, admin_headers):
        resp = client.get(f"{ADMIN}/SOS-NOPE", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "ALERT_NOT_FOUND"

    def test_resolve_defaults_to_resolved(self, client, user_headers, admin_headers, store):
        a = _trigger(client, user_headers()).json()["alert"]["alertId"]
        resp = client.put(f"{ADMIN}/{a}/resolve", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()["alert"]
        assert body["status"] == "resolved"
        assert body["resolvedBy"] == "control-room"
        assert run(store.get(a)).status == AlertStatus.RESOLVED

    def test_update_false_alarm_with_notes(self, client, user_headers, admin_headers, store):
        a = _trigger(client, user_headers()).json()["alert"]["alertId"]
        resp = client.post(
            f"{ADMIN}/{a}/update",
            json={"status": "false_alarm", "notes": "test page"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        stored = run(store.get(a))
        assert stored.status == AlertStatus.FALSE_ALARM
        assert stored.notes == "test page"
        assert stored.resolved_by == "control-room"
        assert stored.resolved_at is not None

    def test_update_conflict_and_invalid(self, client, user_headers, admin_headers):
        a = _trigger(client, user_headers()).json()["alert"]["alertId"]
        client.put(f"{ADMIN}/{a}/update", json={"status": "resolved"}, headers=admin_headers)

        again = client.put(f"{ADMIN}/{a}/update", json={"status": "resolved"}, headers=admin_headers)
        assert again.status_code == 200

        conflict = client.put(f"{ADMIN}/{a}/update", json={"status": "false_alarm"}, headers=admin_headers)
        assert conflict.status_code == 409
        assert conflict.json()["error"]["code"] == "INVALID_TRANSITION"

        invalid = client.put(f"{ADMIN}/{a}/update", json={"status": "active"}, headers=admin_headers)
        assert invalid.status_code == 422
        assert invalid.json()["error"]["code"] == "INVALID_STATUS"


# ═══════════════════════════════════════════════════════════════════════════
# Root & health
# ═══════════════════════════════════════════════════════════════════════════

class TestRootAndHealth:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["sms_mode"] == "demo"
        assert "sos-dispatch" in body["modules"]

    def test_liveness(self, client):
        resp = client.get("/health/live")
        assert resp.status_code == 200
        assert resp.json() == {"status": "alive"}

    def test_readiness_in_memory(self, client):
        resp = client.get("/health/ready")
        assert resp.status_code == 200
        names = {c["name"] for c in resp.json()["components"]}
        assert {"alert_storage", "sms_channel", "disk_space"} <= names

    def test_request_id_header(self, client):
        resp = client.get("/health/live")
        assert "X-Request-ID" in resp.headers
