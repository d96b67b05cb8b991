"""
ORM tables backing the user directory and the alert record store.

═══════════════════════════════════════════════════════════════════════════
SCHEMA
═══════════════════════════════════════════════════════════════════════════

    users ──< emergency_contacts          (ordered by position)
      │
      └──< sos_alerts ──< sos_contact_notifications   (ordered by position)

Contact outcomes are a child table rather than a JSON column so that the
admin console can query "alerts where any contact failed" directly.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.database import Base


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    phone_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    document_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    contacts: Mapped[List["EmergencyContactRow"]] = relationship(
        back_populates="user",
        order_by="EmergencyContactRow.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class EmergencyContactRow(Base):
    __tablename__ = "emergency_contacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    relation: Mapped[str] = mapped_column("relationship", String(60), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    user: Mapped[UserRow] = relationship(back_populates="contacts")


class SOSAlertRow(Base):
    __tablename__ = "sos_alerts"

    id: Mapped[str] = mapped_column(String(24), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), index=True, nullable=False,
    )
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    alert_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    police_notified: Mapped[bool] = mapped_column(Boolean, nullable=False)
    police_notification_status: Mapped[str] = mapped_column(String(10), nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    resolved_by: Mapped[Optional[str]] = mapped_column(String(120))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True, nullable=False,
    )

    notifications: Mapped[List["ContactNotificationRow"]] = relationship(
        back_populates="alert",
        order_by="ContactNotificationRow.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ContactNotificationRow(Base):
    __tablename__ = "sos_contact_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_id: Mapped[str] = mapped_column(
        ForeignKey("sos_alerts.id", ondelete="CASCADE"), index=True, nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    notification_status: Mapped[str] = mapped_column(String(10), nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    alert: Mapped[SOSAlertRow] = relationship(back_populates="notifications")
