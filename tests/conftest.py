"""
Shared fixtures for the astrology chat tests.

Every gateway is replaced by an AsyncMock so tests can assert on call counts
without touching OpenCage, Prokerala or Gemini.
"""

import pytest
import httpx
from unittest.mock import AsyncMock

from astrologer.core.context import ContextAssembler
from astrologer.core.session_store import InMemorySessionStore
from astrologer.gateways.geocode import Place
from astrologer.orchestrator import ChatOrchestrator
from config.settings import Settings


CHART = {
    "status": "ok",
    "data": {
        "nakshatra": {"name": "Rohini", "pada": 2},
        "chandra_rasi": {"name": "Vrishabha"},
        "soorya_rasi": {"name": "Makara"},
    },
}

BIRTH_DETAILS = {
    "date": "1990-01-15",
    "time": "10:30",
    "location": {"lat": 40.7128, "lon": -74.006},
}


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: marks tests that exercise the HTTP app end to end"
    )


# =============================================================================
# Gateway Fixtures
# =============================================================================

@pytest.fixture
def birth_details():
    return {**BIRTH_DETAILS, "location": dict(BIRTH_DETAILS["location"])}


@pytest.fixture
def mock_geocoder():
    mock = AsyncMock()
    mock.timezone_for = AsyncMock(return_value="America/New_York")
    mock.search = AsyncMock(return_value=[
        Place(formatted="Paris, TX 75460, United States", lat=33.6609, lon=-95.5555),
        Place(formatted="Paris, TN 38242, United States", lat=36.302, lon=-88.3267),
    ])
    return mock


@pytest.fixture
def mock_charts():
    mock = AsyncMock()
    mock.birth_chart = AsyncMock(return_value=CHART)
    return mock


@pytest.fixture
def mock_model():
    mock = AsyncMock()
    mock.generate = AsyncMock(return_value="Your Moon in Rohini favours steady growth.")
    return mock


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def orchestrator(store, mock_geocoder, mock_charts, mock_model):
    return ChatOrchestrator(
        store=store,
        geocoder=mock_geocoder,
        charts=mock_charts,
        model=mock_model,
        assembler=ContextAssembler(22),
    )


@pytest.fixture
def test_settings():
    settings = Settings()
    settings.google_api_key = "test-google-key"
    settings.opencage_api_key = "test-opencage-key"
    settings.opencage_url = "https://geocode.test/geocode/v1/json"
    settings.astrology_client_id = "client-id"
    settings.astrology_client_secret = "client-secret"
    settings.prokerala_base_url = "https://astro.test"
    settings.geocode_country_code = "us"
    settings.geocode_limit = 5
    settings.model_timeout_seconds = 30
    return settings


@pytest.fixture
def http_error():
    """Factory for httpx status errors, as raised by raise_for_status()."""
    def _make(status: int) -> httpx.HTTPStatusError:
        request = httpx.Request("POST", "https://provider.test/v1")
        response = httpx.Response(status, request=request)
        return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)
    return _make
