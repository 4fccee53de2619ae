"""
Pydantic data models package.

Contains all data validation models for:
- Inbound conversion events
- Outbound Conversions API payloads
- API responses
"""

from .event import EnrichedUserData, InboundEvent, UserData, parse_inbound_event
from .payload import ProviderEvent, ProviderPayload, ProviderUserData
from .responses import ErrorResponse, PingResponse, TrackResponse

__all__ = [
    # Inbound models
    "InboundEvent",
    "UserData",
    "EnrichedUserData",
    "parse_inbound_event",

    # Outbound models
    "ProviderPayload",
    "ProviderEvent",
    "ProviderUserData",

    # Responses
    "TrackResponse",
    "PingResponse",
    "ErrorResponse",
]
