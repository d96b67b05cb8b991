"""
directory.py — User lookup and emergency-contact storage.

The SOS core only needs ``get_user``; the contact management methods back
the tourist-facing contact endpoints. Every mutation goes through the
rules in ``contacts`` so both implementations behave identically.

Contact edits are read-check-write: the current list is read, the rule is
applied and the result written as one step. Writers are serialised in
process, and the SQL directory also locks the user row
(``SELECT ... FOR UPDATE``) so concurrent adds cannot overwrite each other
or slip past the contact limit.

Implementations:
    InMemoryUserDirectory    — dict-backed (tests, demo)
    SqlAlchemyUserDirectory  — ``users`` / ``emergency_contacts`` tables
"""

from __future__ import annotations

import abc
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.alerts import contacts as rules
from backend.app.alerts.models import EmergencyContact, UserProfile
from backend.app.alerts.tables import EmergencyContactRow, UserRow
from backend.app.core.errors import UserNotFoundError

logger = logging.getLogger(__name__)

ContactChange = Callable[[List[EmergencyContact]], List[EmergencyContact]]


class UserDirectory(abc.ABC):
    """Read users; edit their ordered contact lists."""

    def __init__(self, *, contact_limit: int = rules.MAX_EMERGENCY_CONTACTS):
        self.contact_limit = contact_limit
        self._write_lock = asyncio.Lock()

    @abc.abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        ...

    @abc.abstractmethod
    async def _apply_contacts(self, user_id: str, change: ContactChange) -> List[EmergencyContact]:
        """Read the user's contacts, write ``change(current)`` atomically, return it."""

    @abc.abstractmethod
    async def count_users(self, *, fully_verified: Optional[bool] = None) -> int:
        ...

    async def _mutate(self, user_id: str, change: ContactChange) -> List[EmergencyContact]:
        async with self._write_lock:
            return await self._apply_contacts(user_id, change)

    async def list_contacts(self, user_id: str) -> List[EmergencyContact]:
        user = await self.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return list(user.emergency_contacts)

    async def add_contact(
        self,
        user_id: str,
        *,
        name: Optional[str],
        phone: Optional[str],
        relationship: Optional[str],
        priority: Optional[int] = None,
    ) -> EmergencyContact:
        contact = rules.new_contact(name, phone, relationship, priority)
        await self._mutate(
            user_id, lambda current: rules.append_contact(current, contact, limit=self.contact_limit),
        )
        logger.info("Emergency contact added for user %s", user_id, extra={"user_id": user_id})
        return contact

    async def update_contact(self, user_id: str, contact_id: str, **changes) -> EmergencyContact:
        updated = await self._mutate(
            user_id, lambda current: rules.edit_contact(current, contact_id, **changes),
        )
        return rules.find_contact(updated, contact_id)

    async def remove_contact(self, user_id: str, contact_id: str) -> None:
        await self._mutate(user_id, lambda current: rules.drop_contact(current, contact_id))

    async def reorder_contacts(self, user_id: str, ordered_ids: Sequence[str]) -> List[EmergencyContact]:
        return await self._mutate(user_id, lambda current: rules.reorder(current, ordered_ids))


# ═══════════════════════════════════════════════════════════════════════════
# In-memory
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryUserDirectory(UserDirectory):

    def __init__(self, users: Sequence[UserProfile] = (), **kwargs):
        super().__init__(**kwargs)
        self._users: Dict[str, UserProfile] = {u.user_id: u for u in users}

    def put(self, user: UserProfile) -> None:
        self._users[user.user_id] = user

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        return self._users.get(user_id)

    async def _apply_contacts(self, user_id: str, change: ContactChange) -> List[EmergencyContact]:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        contacts = change(list(user.emergency_contacts))
        self._users[user_id] = user.with_contacts(contacts)
        return contacts

    async def count_users(self, *, fully_verified: Optional[bool] = None) -> int:
        users = self._users.values()
        if fully_verified is None:
            return len(users)
        return sum(1 for u in users if u.is_fully_verified == fully_verified)


# ═══════════════════════════════════════════════════════════════════════════
# SQLAlchemy
# ═══════════════════════════════════════════════════════════════════════════

def _profile_from_row(row: UserRow) -> UserProfile:
    return UserProfile(
        user_id=row.id,
        name=row.name,
        phone=row.phone,
        email=row.email,
        phone_verified=row.phone_verified,
        document_verified=row.document_verified,
        emergency_contacts=tuple(
            EmergencyContact(
                name=c.name,
                phone=c.phone,
                relationship=c.relation,
                priority=c.priority,
                contact_id=c.id,
            )
            for c in row.contacts
        ),
    )


class SqlAlchemyUserDirectory(UserDirectory):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], **kwargs):
        super().__init__(**kwargs)
        self._session_factory = session_factory

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        async with self._session_factory() as session:
            row = await session.get(UserRow, user_id)
            return _profile_from_row(row) if row else None

    async def save_user(self, user: UserProfile) -> None:
        """Upsert a user and its contacts (seeding / account-service sync)."""
        async with self._session_factory() as session, session.begin():
            row = await session.get(UserRow, user.user_id)
            if row is None:
                row = UserRow(id=user.user_id, created_at=datetime.now(timezone.utc))
                session.add(row)
            row.name = user.name
            row.email = user.email
            row.phone = user.phone
            row.phone_verified = user.phone_verified
            row.document_verified = user.document_verified
            row.contacts = _contact_rows(row, user.emergency_contacts)

    async def _apply_contacts(self, user_id: str, change: ContactChange) -> List[EmergencyContact]:
        stmt = select(UserRow).where(UserRow.id == user_id).with_for_update()
        async with self._session_factory() as session, session.begin():
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                raise UserNotFoundError(user_id)
            contacts = change(list(_profile_from_row(row).emergency_contacts))
            row.contacts = _contact_rows(row, contacts)
            return contacts

    async def count_users(self, *, fully_verified: Optional[bool] = None) -> int:
        stmt = select(func.count()).select_from(UserRow)
        if fully_verified is True:
            stmt = stmt.where(UserRow.phone_verified.is_(True), UserRow.document_verified.is_(True))
        elif fully_verified is False:
            stmt = stmt.where(
                (UserRow.phone_verified.is_(False)) | (UserRow.document_verified.is_(False))
            )
        async with self._session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())


def _contact_rows(user: UserRow, contacts: Sequence[EmergencyContact]) -> List[EmergencyContactRow]:
    """Rows in list order; existing rows are updated in place by id."""
    existing = {r.id: r for r in user.contacts}
    rows = []
    for position, contact in enumerate(contacts):
        row = existing.get(contact.contact_id) or EmergencyContactRow(
            id=contact.contact_id, user_id=user.id,
        )
        row.position = position
        row.name = contact.name
        row.phone = contact.phone
        row.relation = contact.relationship
        row.priority = contact.priority
        rows.append(row)
    return rows
