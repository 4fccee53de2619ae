"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

import json
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.capirelay.api.analytics import get_forwarder
from src.capirelay.config import CORSSettings, FacebookSettings, Settings
from src.capirelay.core.dispatch import InlineDispatcher
from src.capirelay.core.forwarder import CapiForwarder, ForwardResult
from src.capirelay.main import create_app


def make_mock_session(
    status: int = 200,
    json_data: Optional[Any] = None,
    text: Optional[str] = None,
    error: Optional[BaseException] = None,
) -> MagicMock:
    """Mock aiohttp.ClientSession whose post() yields a canned response."""
    response = MagicMock()
    response.status = status
    if text is None:
        text = json.dumps(json_data if json_data is not None else {})
    response.text = AsyncMock(return_value=text)

    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=None)

    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = ctx
    session.close = AsyncMock()
    return session


class RecordingForwarder:
    """Stands in for CapiForwarder and records what it was asked to send."""

    def __init__(self, result: Optional[ForwardResult] = None) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.result = result or ForwardResult(success=True, data={"events_received": 1})

    async def forward(self, event: Any, user_data: Any) -> ForwardResult:
        self.calls.append({"event": event, "user_data": user_data})
        return self.result


@pytest.fixture
def facebook_settings() -> FacebookSettings:
    """Complete Conversions API configuration."""
    return FacebookSettings(
        pixel_id="1234567890",
        access_token="test_access_token_abc",
        api_version="v19.0",
        test_event_code=None,
        graph_base_url="https://graph.facebook.test",
    )


@pytest.fixture
def test_settings(facebook_settings: FacebookSettings) -> Settings:
    """Application settings built without reading the environment."""
    return Settings(
        host="127.0.0.1",
        port=3002,
        debug=False,
        log_level="DEBUG",
        app_env="test",
        cors=CORSSettings(allowed_origins="https://shop.example.test"),
        facebook=facebook_settings,
    )


@pytest.fixture
def inline_dispatcher() -> InlineDispatcher:
    return InlineDispatcher()


@pytest.fixture
def recording_forwarder() -> RecordingForwarder:
    return RecordingForwarder()


@pytest.fixture
def capi_forwarder(facebook_settings: FacebookSettings) -> CapiForwarder:
    """Real forwarder wired to a mocked HTTP session returning 200."""
    forwarder = CapiForwarder(facebook_settings)
    forwarder.session = make_mock_session(200, {"events_received": 1, "fbtrace_id": "trace123"})
    return forwarder


@pytest.fixture
def test_client(
    test_settings: Settings,
    inline_dispatcher: InlineDispatcher,
    recording_forwarder: RecordingForwarder,
) -> Generator[TestClient, None, None]:
    """FastAPI test client with inline dispatch and a recording forwarder."""
    app = create_app(test_settings, dispatcher_factory=lambda: inline_dispatcher)
    app.dependency_overrides[get_forwarder] = lambda: recording_forwarder

    with TestClient(app) as client:
        yield client


@pytest.fixture
def valid_event() -> Dict[str, Any]:
    """Sample valid inbound event."""
    return {
        "eventName": "Lead",
        "eventId": "abc123",
        "eventSourceUrl": "https://x.test/",
        "userData": {
            "email": "A@B.com",
            "phone": "+1 555 0100",
            "firstName": "Jane",
            "lastName": "Doe",
            "fbp": "fb.1.1700000000000.123456789",
            "fbc": "fb.1.1700000000000.AbCdEf",
        },
        "customData": {"value": 49.99, "currency": "USD"},
    }


@pytest.fixture
def mock_session_factory():
    """Factory for mocked aiohttp sessions."""
    return make_mock_session
