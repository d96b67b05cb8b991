"""Channel contract shared by the live and demo SMS backends."""

from __future__ import annotations

import abc

from backend.app.alerts.models import SendOutcome


class NotificationChannel(abc.ABC):
    """
    Deliver one text message to one phone number.

    Implementations must convert every provider or transport error into a
    failed ``SendOutcome``; the dispatcher still guards each call with a
    timeout and a catch-all.
    """

    name: str = "channel"
    is_live: bool = False

    @abc.abstractmethod
    async def send(self, message: str, from_identity: str, to_phone: str) -> SendOutcome:
        ...

    async def aclose(self) -> None:
        """Release network resources, if any."""
