"""
demo.py — Demo-mode SMS channel.

Used when no SOS carrier credentials are configured. Nothing leaves the
process: the message is logged and the send is reported as delivered, so
the full trigger → record flow can be exercised end to end.
"""

from __future__ import annotations

import logging
import uuid

from backend.app.alerts.channels.base import NotificationChannel
from backend.app.alerts.models import SendOutcome

logger = logging.getLogger(__name__)


class DemoSMSChannel(NotificationChannel):
    name = "demo"
    is_live = False

    async def send(self, message: str, from_identity: str, to_phone: str) -> SendOutcome:
        logger.info(
            "[SMS/demo] %s → %s: %s",
            from_identity or "-",
            to_phone,
            message.replace("\n", " | "),
            extra={"channel": self.name, "recipient": to_phone},
        )
        return SendOutcome.sent(provider_message_id=f"DEMO-{uuid.uuid4().hex[:10]}")
