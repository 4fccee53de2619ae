"""
Inbound event data models and validation.

- Required fields: eventName, eventId, eventSourceUrl
- Optional: eventTime (unix seconds), userData, customData
- userData holds raw, un-hashed PII; it is hashed by the forwarder
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ValidationError

REQUIRED_FIELDS = ("eventName", "eventId", "eventSourceUrl")

MISSING_FIELDS_MESSAGE = (
    "Missing required fields: eventName, eventId, and eventSourceUrl are required."
)


class UserData(BaseModel):
    """
    Raw user data as sent by the browser.

    Phone numbers frequently arrive as JSON numbers, so numbers are
    coerced to strings. Unknown keys are ignored.
    """

    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    fbp: Optional[str] = Field(default=None, description="_fbp browser cookie")
    fbc: Optional[str] = Field(default=None, description="_fbc click ID cookie")

    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    @property
    def has_identifiers(self) -> bool:
        """True if any PII or browser identifier is present."""
        return any([self.email, self.phone, self.first_name, self.last_name, self.fbp, self.fbc])


class EnrichedUserData(UserData):
    """User data plus the request-derived client fields."""

    client_ip_address: Optional[str] = None
    client_user_agent: Optional[str] = None

    @classmethod
    def from_request(
        cls,
        user_data: UserData,
        client_ip_address: Optional[str],
        client_user_agent: Optional[str],
    ) -> "EnrichedUserData":
        return cls(
            **user_data.model_dump(),
            client_ip_address=client_ip_address,
            client_user_agent=client_user_agent,
        )


class InboundEvent(BaseModel):
    """
    Conversion event received from the client.

    eventId is the de-duplication key the provider uses to reconcile
    browser and server reports of the same action.
    """

    event_name: str = Field(alias="eventName", min_length=1)
    event_id: str = Field(alias="eventId", min_length=1)
    event_source_url: str = Field(alias="eventSourceUrl", min_length=1)
    event_time: Optional[int] = Field(default=None, alias="eventTime", description="Unix seconds")
    user_data: UserData = Field(default_factory=UserData, alias="userData")
    custom_data: Dict[str, Any] = Field(default_factory=dict, alias="customData")

    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


def _missing_required(body: Dict[str, Any]) -> List[str]:
    return [name for name in REQUIRED_FIELDS if not body.get(name)]


def parse_inbound_event(body: Any) -> InboundEvent:
    """
    Parse and validate a request body into an InboundEvent.

    Raises:
        ValidationError: if the body is not an object, a required field is
            missing or empty, or a field has the wrong type.
    """
    if not isinstance(body, dict):
        raise ValidationError(
            "Request body must be a JSON object.",
            details={"received_type": type(body).__name__},
        )

    missing = _missing_required(body)
    if missing:
        raise ValidationError(MISSING_FIELDS_MESSAGE, details={"missing_fields": missing})

    # null userData / customData behave like absent ones
    cleaned = {key: value for key, value in body.items() if value is not None}

    try:
        return InboundEvent.model_validate(cleaned)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid event payload.",
            details={
                "errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ]
            },
        ) from e
