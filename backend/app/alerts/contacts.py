"""
contacts.py — Emergency contact directory rules.

Pure functions that validate and edit a user's ordered contact list.
Storage lives in ``directory``; these helpers never touch it, so both the
in-memory and SQL directories apply exactly the same rules.

Rules:
    • At most ``MAX_EMERGENCY_CONTACTS`` (5) contacts per user
    • name, phone and relationship are required
    • 10-digit local numbers are prefixed with +91
    • priority is clamped into [1, 3]
    • list order is notification order; it only changes on an explicit
      reorder, never as a side effect of priority edits
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence

from backend.app.alerts.models import EmergencyContact
from backend.app.core.errors import ContactLimitError, NotFoundError, ValidationError

MAX_EMERGENCY_CONTACTS = 5
MIN_PRIORITY = 1
MAX_PRIORITY = 3

_DEFAULT_COUNTRY_PREFIX = "+91"
_SEPARATORS = re.compile(r"[\s\-\(\)]+")


def normalize_phone(phone: str) -> str:
    """Strip separators; prefix bare 10-digit numbers with +91."""
    cleaned = _SEPARATORS.sub("", (phone or "").strip())
    if not cleaned:
        raise ValidationError("Phone number is required", field="phone")
    if not cleaned.startswith(_DEFAULT_COUNTRY_PREFIX) and len(cleaned) == 10:
        cleaned = _DEFAULT_COUNTRY_PREFIX + cleaned
    return cleaned


def clamp_priority(priority: Optional[int]) -> int:
    if priority is None:
        return MIN_PRIORITY
    return min(max(int(priority), MIN_PRIORITY), MAX_PRIORITY)


def _require(value: Optional[str], field_name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field_name.capitalize()} is required", field=field_name)
    return text


def new_contact(
    name: Optional[str],
    phone: Optional[str],
    relationship: Optional[str],
    priority: Optional[int] = None,
) -> EmergencyContact:
    """Validate raw input and build a contact."""
    return EmergencyContact(
        name=_require(name, "name"),
        phone=normalize_phone(_require(phone, "phone")),
        relationship=_require(relationship, "relationship"),
        priority=clamp_priority(priority),
    )


def append_contact(
    contacts: Sequence[EmergencyContact],
    contact: EmergencyContact,
    *,
    limit: int = MAX_EMERGENCY_CONTACTS,
) -> List[EmergencyContact]:
    if len(contacts) >= limit:
        raise ContactLimitError(limit)
    return [*contacts, contact]


def find_contact(contacts: Iterable[EmergencyContact], contact_id: str) -> EmergencyContact:
    for contact in contacts:
        if contact.contact_id == contact_id:
            return contact
    raise NotFoundError("Contact", contact_id=contact_id)


def edit_contact(
    contacts: Sequence[EmergencyContact],
    contact_id: str,
    *,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    relationship: Optional[str] = None,
    priority: Optional[int] = None,
) -> List[EmergencyContact]:
    """Apply a partial update in place of the matching entry."""
    current = find_contact(contacts, contact_id)
    updated = EmergencyContact(
        name=name.strip() if name and name.strip() else current.name,
        phone=normalize_phone(phone) if phone else current.phone,
        relationship=(
            relationship.strip()
            if relationship and relationship.strip() else current.relationship
        ),
        priority=clamp_priority(priority) if priority is not None else current.priority,
        contact_id=current.contact_id,
    )
    return [updated if c.contact_id == contact_id else c for c in contacts]


def drop_contact(
    contacts: Sequence[EmergencyContact],
    contact_id: str,
) -> List[EmergencyContact]:
    find_contact(contacts, contact_id)
    return [c for c in contacts if c.contact_id != contact_id]


def reorder(
    contacts: Sequence[EmergencyContact],
    ordered_ids: Sequence[str],
) -> List[EmergencyContact]:
    """Explicit reprioritisation; ``ordered_ids`` must be a permutation."""
    by_id = {c.contact_id: c for c in contacts}
    if len(ordered_ids) != len(by_id) or set(ordered_ids) != set(by_id):
        raise ValidationError(
            "Contact order must list every existing contact exactly once",
            field="contactIds",
            expected=sorted(by_id),
        )
    return [by_id[cid] for cid in ordered_ids]
