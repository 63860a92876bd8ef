import os
import sys
import pytest
from typing import Any, Dict, List
from unittest.mock import AsyncMock
import httpx

# Add package directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from hass_companion.hass import EntityGateway


def _build_response(status_code: int, method: str, url: str, json: Any = None) -> httpx.Response:
    """Build a real httpx response bound to a request, so raise_for_status works."""
    request = httpx.Request(method, url)
    if json is None:
        return httpx.Response(status_code, request=request)
    return httpx.Response(status_code, json=json, request=request)


@pytest.fixture
def make_response():
    """Factory for httpx responses."""
    return _build_response


# Mock config
@pytest.fixture
def mock_config():
    """Create a mock configuration."""
    return {
        "hass_url": "http://localhost",
        "hass_port": "8123",
        "hass_token": "mock_token",
        "address": "http://localhost:8123",
    }


# Mock httpx client
@pytest.fixture
def mock_httpx_client(mock_config):
    """Create a mock httpx client for testing."""
    mock_client = AsyncMock(spec=httpx.AsyncClient)

    mock_client.get = AsyncMock(
        return_value=_build_response(200, "GET", f"{mock_config['address']}/api/config", json={})
    )
    mock_client.post = AsyncMock(
        return_value=_build_response(200, "POST", f"{mock_config['address']}/api/services", json=[])
    )
    mock_client.aclose = AsyncMock()
    return mock_client


@pytest.fixture
def emitted() -> List[Dict[str, Any]]:
    """Messages emitted by the gateway, as they would appear on the wire."""
    return []


@pytest.fixture
def emit(emitted):
    async def _emit(message):
        emitted.append(message.model_dump(exclude_none=True))
    return _emit


@pytest.fixture
def gateway(emit, mock_httpx_client, mock_config):
    """A configured gateway in force update mode using the mock client."""
    gw = EntityGateway(emit=emit, client=mock_httpx_client)
    gw.configure(mock_config["hass_url"], mock_config["hass_port"], mock_config["hass_token"], True)
    return gw


@pytest.fixture
def send():
    """Mock channel send for the device store."""
    return AsyncMock()
