"""
Outbound Conversions API payload models.

Serialise with `to_wire()`: absent values are omitted entirely rather
than sent as null. PII fields (em, ph, fn, ln) only ever hold SHA-256
digests.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

ACTION_SOURCE_WEBSITE = "website"


class ProviderUserData(BaseModel):
    """Hashed and pass-through user matching keys."""

    em: Optional[str] = Field(default=None, description="SHA-256 of email")
    ph: Optional[str] = Field(default=None, description="SHA-256 of phone")
    fn: Optional[str] = Field(default=None, description="SHA-256 of first name")
    ln: Optional[str] = Field(default=None, description="SHA-256 of last name")
    fbp: Optional[str] = None
    fbc: Optional[str] = None
    client_ip_address: Optional[str] = None
    client_user_agent: Optional[str] = None


class ProviderEvent(BaseModel):
    """One server event record."""

    event_name: str
    event_time: int
    event_id: str
    event_source_url: str
    action_source: str = ACTION_SOURCE_WEBSITE
    user_data: ProviderUserData
    custom_data: Optional[Dict[str, Any]] = None


class ProviderPayload(BaseModel):
    """Request body for POST /{api_version}/{pixel_id}/events."""

    data: List[ProviderEvent]
    test_event_code: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        wire = self.model_dump(exclude_none=True)
        # custom_data is free-form and goes out verbatim, nulls included
        for record, event in zip(wire["data"], self.data):
            if event.custom_data:
                record["custom_data"] = event.custom_data
        return wire
