"""
channels — SMS delivery backends for the SOS dispatcher.

Every channel implements ``NotificationChannel.send(message, from_identity,
to_phone) → SendOutcome`` and never raises past that boundary.

    TwilioSMSChannel   live carrier delivery (sms_gateway.py)
    DemoSMSChannel     logs the message, always reports "sent" (demo.py)

``build_channel`` picks one at startup from configuration presence.
"""

from __future__ import annotations

import logging

from backend.app.alerts.channels.base import NotificationChannel
from backend.app.alerts.channels.demo import DemoSMSChannel
from backend.app.alerts.channels.sms_gateway import TwilioSMSChannel
from backend.app.core.config import Settings

logger = logging.getLogger(__name__)

__all__ = ["NotificationChannel", "DemoSMSChannel", "TwilioSMSChannel", "build_channel"]


def build_channel(config: Settings) -> NotificationChannel:
    """Live Twilio channel when SOS credentials are real, demo otherwise."""
    if config.sms_live_configured:
        logger.info("SOS SMS channel: live (Twilio)")
        return TwilioSMSChannel(
            account_sid=config.TWILIO_ACCOUNT_SID_SOS,
            auth_token=config.TWILIO_AUTH_TOKEN_SOS,
            api_base_url=config.TWILIO_API_BASE_URL,
            timeout_seconds=config.SMS_SEND_TIMEOUT_SECONDS,
        )
    logger.warning("SOS SMS channel: demo mode (Twilio SOS credentials not configured)")
    return DemoSMSChannel()
