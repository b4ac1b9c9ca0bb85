"""Test fixtures for Dynatrace Platform MCP Server tests."""

import json
import pytest
from dynatrace_platform_mcp_server.client import ApiResponse
from dynatrace_platform_mcp_server.config import Config
from unittest.mock import AsyncMock


@pytest.fixture
def make_response():
    """Factory for ApiResponse objects with a JSON or raw body."""

    def _make(status_code: int = 200, body=None) -> ApiResponse:
        if body is None:
            raw = b''
        elif isinstance(body, bytes):
            raw = body
        elif isinstance(body, str):
            raw = body.encode()
        else:
            raw = json.dumps(body).encode()
        return ApiResponse(status_code=status_code, body=raw)

    return _make


@pytest.fixture
def sample_slo():
    """SLO document as returned by the platform."""
    return {
        'id': 'slo-1',
        'name': 'checkout-latency',
        'description': 'Checkout p95 latency',
        'version': 'v1',
        'customSli': {'indicator': 'timeseries sli=avg(dt.service.request.response_time)'},
        'criteria': [{'timeframeFrom': 'now-7d', 'timeframeTo': 'now', 'target': 99.5}],
        'tags': ['team:payments'],
    }


@pytest.fixture
def template_slo():
    """SLO document that uses an objective template."""
    return {
        'id': 'slo-2',
        'name': 'service-availability',
        'version': 'a1',
        'sliReference': {
            'templateId': 'dGVtcGxhdGUvYXZhaWxhYmlsaXR5==',
            'variables': [{'name': 'services', 'value': 'SERVICE-1234'}],
        },
        'criteria': [{'timeframeFrom': 'now-30d', 'timeframeTo': 'now', 'target': 99.9}],
        'tags': [],
    }


@pytest.fixture
def mock_client():
    """Platform client double; each HTTP verb is an AsyncMock."""
    return AsyncMock()


@pytest.fixture
def config():
    """Valid server configuration."""
    return Config(base_url='https://abc123.live.dynatrace.com', platform_token='dt0s16.TOKEN')
