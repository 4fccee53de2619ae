"""
Forwarder for sending conversion events to the Facebook Conversions API.

Features:
- Hashes PII before it leaves the service
- Builds the Conversions API payload from an inbound event
- One POST per event, no retry
- Never raises: every outcome becomes a ForwardResult
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
import structlog

from ..config import FacebookSettings
from ..models.event import EnrichedUserData, InboundEvent
from ..models.payload import ProviderEvent, ProviderPayload, ProviderUserData
from .hashing import hash_value

logger = structlog.get_logger(__name__)

PAYLOAD_OMITTED = "Payload omitted outside development"


@dataclass
class ForwardResult:
    """Result of forwarding one event."""
    success: bool
    data: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None


class CapiForwarder:
    """
    Sends events to the Conversions API.

    Handles:
    - Required-field and configuration checks
    - Payload assembly
    - The outbound HTTP call and its error mapping
    """

    def __init__(self, settings: FacebookSettings, include_payload_in_logs: bool = False):
        self.settings = settings
        self.include_payload_in_logs = include_payload_in_logs
        self.session: Optional[aiohttp.ClientSession] = None

        logger.info(
            "CAPI Forwarder initialized",
            pixel_id=settings.pixel_id or None,
            api_version=settings.api_version or None,
            test_event_code=settings.test_event_code,
        )

    async def start(self) -> None:
        """Open the HTTP session."""
        if self.session is not None:
            return

        if self.settings.timeout_seconds:
            timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)
        else:
            self.session = aiohttp.ClientSession()

        logger.info("CAPI Forwarder started")

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

        logger.info("CAPI Forwarder stopped")

    def build_payload(
        self,
        event: InboundEvent,
        user_data: EnrichedUserData,
        event_time: int,
    ) -> ProviderPayload:
        """Map an inbound event onto the Conversions API wire structure."""
        provider_user_data = ProviderUserData(
            em=hash_value(user_data.email),
            ph=hash_value(user_data.phone),
            fn=hash_value(user_data.first_name),
            ln=hash_value(user_data.last_name),
            fbp=user_data.fbp or None,
            fbc=user_data.fbc or None,
            client_ip_address=user_data.client_ip_address or None,
            client_user_agent=user_data.client_user_agent or None,
        )

        provider_event = ProviderEvent(
            event_name=event.event_name,
            event_time=event_time,
            event_id=event.event_id,
            event_source_url=event.event_source_url,
            user_data=provider_user_data,
            custom_data=event.custom_data or None,
        )

        return ProviderPayload(
            data=[provider_event],
            test_event_code=self.settings.test_event_code,
        )

    async def forward(
        self,
        event: Optional[InboundEvent],
        user_data: Optional[EnrichedUserData],
    ) -> ForwardResult:
        """
        Forward a single event to the Conversions API.

        Args:
            event: The validated inbound event
            user_data: Raw user data enriched with client IP and user agent

        Returns:
            ForwardResult with the provider response or error details
        """
        invalid = self._check_required(event, user_data)
        if invalid is not None:
            return invalid

        try:
            return await self._send(event, user_data)
        except Exception as e:
            logger.error(
                "Unexpected error while forwarding event",
                event_id=event.event_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return ForwardResult(
                success=False,
                error={"message": str(e), "code": type(e).__name__, "status": None, "responseData": None},
            )

    async def _send(self, event: InboundEvent, user_data: EnrichedUserData) -> ForwardResult:
        log = logger.bind(event_name=event.event_name, event_id=event.event_id)
        log.info("Preparing to send event to Facebook CAPI")

        event_time = event.event_time or int(time.time())

        if not user_data.has_identifiers:
            log.warning("No PII or browser ID (fbp/fbc) data provided for CAPI event")

        payload = self.build_payload(event, user_data, event_time).to_wire()

        if self.settings.test_event_code:
            log.info("Using test_event_code", test_event_code=self.settings.test_event_code)

        if not self.session:
            log.error("CAPI Forwarder not started")
            return ForwardResult(
                success=False,
                error={"message": "Forwarder not started", "code": None, "status": None, "responseData": None},
            )

        url = self.settings.events_url
        log.info("Sending POST request to Facebook CAPI", url=url)
        log.debug(
            "Facebook CAPI payload",
            payload=payload if self.include_payload_in_logs else PAYLOAD_OMITTED,
        )

        try:
            async with self.session.post(
                url,
                params={"access_token": self.settings.access_token},
                json=payload,
                headers={"Content-Type": "application/json"},
            ) as response:
                status = response.status
                response_data = await self._read_body(response)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            error = {
                "message": str(e) or type(e).__name__,
                "code": type(e).__name__,
                "status": None,
                "responseData": None,
            }
            self._log_failure(log, error, payload, url)
            return ForwardResult(success=False, error=error)

        if 200 <= status < 300:
            log.info("Event sent successfully to Facebook CAPI", fb_response=response_data)
            return ForwardResult(success=True, data=response_data)

        error = {
            "message": f"Request failed with status code {status}",
            "code": "ERR_BAD_REQUEST" if 400 <= status < 500 else "ERR_BAD_RESPONSE",
            "status": status,
            "responseData": response_data,
        }
        self._log_failure(log, error, payload, url)
        return ForwardResult(success=False, error=error)

    def _check_required(
        self,
        event: Optional[InboundEvent],
        user_data: Optional[EnrichedUserData],
    ) -> Optional[ForwardResult]:
        """Return a failed result if the event or configuration is incomplete."""
        missing = {
            "eventName": bool(event and event.event_name),
            "eventId": bool(event and event.event_id),
            "eventSourceUrl": bool(event and event.event_source_url),
            "userData": user_data is not None,
        }
        missing_fields = [name for name, present in missing.items() if not present]

        if missing_fields:
            details = f"Validation Error: Missing required parameters: {', '.join(missing_fields)}"
            logger.error(
                "Validation Error: missing required event details",
                missing_fields=missing_fields,
                event_id=event.event_id if event else None,
            )
            return ForwardResult(
                success=False,
                error={"message": "Missing required event details for CAPI.", "details": details},
            )

        if not self.settings.is_configured:
            details = f"Facebook CAPI is not configured: {', '.join(self.settings.missing_fields)}"
            logger.error(
                "Validation Error: CAPI settings incomplete",
                missing_settings=self.settings.missing_fields,
                event_id=event.event_id if event else None,
            )
            return ForwardResult(
                success=False,
                error={"message": "Facebook CAPI is not configured.", "details": details},
            )

        return None

    async def _read_body(self, response: aiohttp.ClientResponse) -> Any:
        """Decode a provider response as JSON, falling back to text."""
        text = await response.text()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    def _log_failure(self, log: Any, error: Dict[str, Any], payload: Dict[str, Any], url: str) -> None:
        log.error(
            "Error sending event to Facebook CAPI",
            error_message=error["message"],
            error_code=error["code"],
            status=error["status"],
            response_data=error["responseData"],
            request_payload=payload if self.include_payload_in_logs else PAYLOAD_OMITTED,
            url=url,
        )
