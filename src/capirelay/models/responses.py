"""
API response models.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TrackResponse(BaseModel):
    """
    Response from the track endpoint.

    202 Accepted: acknowledges receipt, not delivery to the provider.
    """

    success: bool = True
    message: str = Field(description="Response message")
    event_id: str = Field(alias="eventId", description="Echo of the de-duplication ID")

    model_config = ConfigDict(populate_by_name=True)


class PingResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    success: bool = False
    error: str = Field(description="Human-readable error message")
    requested_url: Optional[str] = Field(
        default=None,
        alias="requestedUrl",
        description="Path that did not match any route (404 only)"
    )

    model_config = ConfigDict(populate_by_name=True)

    def to_content(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
