"""
sms_gateway.py — Live SMS delivery through the Twilio REST API.

═══════════════════════════════════════════════════════════════════════════
GATEWAY CALL
═══════════════════════════════════════════════════════════════════════════

    Dispatcher  →  POST {base}/Accounts/{SID}/Messages.json  →  Carrier
                     basic auth (SID, token)
                     form: From, To, Body

    2xx             → sent   (provider message SID recorded)
    non-2xx         → failed (Twilio error message recorded)
    transport error → failed

The channel never raises: every failure becomes a failed SendOutcome so
one bad recipient cannot disturb the rest of the fan-out.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from backend.app.alerts.channels.base import NotificationChannel
from backend.app.alerts.models import SendOutcome

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.twilio.com/2010-04-01"


class TwilioSMSChannel(NotificationChannel):
    name = "twilio"
    is_live = True

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        api_base_url: str = DEFAULT_API_BASE_URL,
        timeout_seconds: float = 8.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self._messages_url = f"{api_base_url.rstrip('/')}/Accounts/{account_sid}/Messages.json"
        self._auth = httpx.BasicAuth(account_sid, auth_token)
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    async def send(self, message: str, from_identity: str, to_phone: str) -> SendOutcome:
        try:
            response = await self._client.post(
                self._messages_url,
                data={"From": from_identity, "To": to_phone, "Body": message},
                auth=self._auth,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "[SMS/Twilio] Transport error for %s: %s", to_phone, exc,
                extra={"channel": self.name, "recipient": to_phone},
            )
            return SendOutcome.failed(f"transport error: {exc}")

        if response.is_success:
            sid = _json_field(response, "sid")
            logger.info(
                "[SMS/Twilio] Sent to %s (sid=%s)", to_phone, sid,
                extra={"channel": self.name, "recipient": to_phone},
            )
            return SendOutcome.sent(provider_message_id=sid)

        detail = _json_field(response, "message") or response.text[:200]
        logger.warning(
            "[SMS/Twilio] HTTP %d for %s: %s", response.status_code, to_phone, detail,
            extra={"channel": self.name, "recipient": to_phone, "status_code": response.status_code},
        )
        return SendOutcome.failed(f"HTTP {response.status_code}: {detail}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _json_field(response: httpx.Response, key: str) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    value = body.get(key) if isinstance(body, dict) else None
    return str(value) if value is not None else None
