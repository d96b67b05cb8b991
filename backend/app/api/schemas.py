"""
Pydantic request schemas for the emergency and admin routes.

Kept apart from the route handlers so tests and tooling can build
payloads without importing FastAPI routers. Field names are snake_case
in Python and camelCase on the wire (both accepted on input).
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Emergency (tourist-facing)
# ---------------------------------------------------------------------------

class SOSTriggerRequest(_CamelModel):
    """
    Coordinates are optional at the schema level so that a missing value
    produces the MISSING_LOCATION error rather than a generic 422.
    """
    latitude: Optional[float] = Field(None, examples=[28.6139])
    longitude: Optional[float] = Field(None, examples=[77.2090])
    address: Optional[str] = Field(None, max_length=500, examples=["India Gate, New Delhi"])
    alert_type: Optional[str] = Field(None, examples=["emergency"])


class ContactCreateRequest(_CamelModel):
    name: Optional[str] = Field(None, max_length=120, examples=["Asha"])
    phone: Optional[str] = Field(None, max_length=20, examples=["9876543210"])
    relationship: Optional[str] = Field(None, max_length=60, examples=["sister"])
    priority: Optional[int] = Field(None, examples=[1])


class ContactUpdateRequest(_CamelModel):
    name: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=20)
    relationship: Optional[str] = Field(None, max_length=60)
    priority: Optional[int] = None


class ContactOrderRequest(_CamelModel):
    contact_ids: List[str] = Field(..., description="Every contact id, in the new notification order")


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

class AlertResolveRequest(_CamelModel):
    status: Optional[str] = Field(None, examples=["resolved", "false_alarm"])
    notes: Optional[str] = Field(None, max_length=2000, examples=["Tourist reached safely"])
