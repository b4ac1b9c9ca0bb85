"""Tests for tool dispatch and error mapping."""

import json
import pytest
from dynatrace_platform_mcp_server.config import Config, SLOPolicy
from dynatrace_platform_mcp_server.errors import (
    ConflictError,
    EvaluationTimeoutError,
    InvalidTokenError,
    TransportError,
    ValidationError,
)
from dynatrace_platform_mcp_server.server import (
    READ_ONLY_TOOLS,
    WRITE_TOOLS,
    ToolHandler,
    call_tool,
    create_dynatrace_server,
    create_error_response,
    create_success_response,
    get_tool_definitions,
)
from mcp.types import (
    CallToolRequest,
    CallToolRequestParams,
    CallToolResult,
    ListToolsRequest,
    ListToolsResult,
    TextContent,
)
from typing import cast
from unittest.mock import AsyncMock, Mock, patch


CRITERIA = [{'timeframeFrom': 'now-7d', 'timeframeTo': 'now', 'target': 99.5}]


def _payload(result):
    return json.loads(result[0].text)


class TestToolDefinitions:
    """Test the advertised tool set."""

    def test_every_tool_is_categorized(self):
        """Each tool is either read-only or a write."""
        names = {tool.name for tool in get_tool_definitions()}
        assert len(names) == 11
        assert names == READ_ONLY_TOOLS | WRITE_TOOLS
        assert not READ_ONLY_TOOLS & WRITE_TOOLS

    def test_update_requires_only_id(self):
        """Update inputs are partial."""
        update = next(t for t in get_tool_definitions() if t.name == 'dt_slo_update')
        assert update.inputSchema['required'] == ['id']

    def test_evaluation_start_exposes_timeout(self):
        """Only the raw start tool accepts a timeout hint."""
        tools = {t.name: t for t in get_tool_definitions()}
        assert 'timeout_ms' in tools['dt_slo_evaluation_start'].inputSchema['properties']
        assert 'timeout_ms' not in tools['dt_slo_evaluate'].inputSchema['properties']


class TestResponses:
    """Test response helpers."""

    def test_error_response(self):
        """Errors carry type, message and status."""
        result = create_error_response('gone', 'not_found', 404)
        assert _payload(result) == {
            'error': True,
            'type': 'not_found',
            'message': 'gone',
            'status_code': 404,
        }

    def test_success_response_text(self):
        """Strings are passed through."""
        assert create_success_response('plain')[0].text == 'plain'

    def test_success_response_json(self):
        """Other values are JSON encoded."""
        assert _payload(create_success_response({'a': 1})) == {'a': 1}


class TestToolHandler:
    """Test dispatch to SLO operations."""

    @pytest.fixture
    def handler(self, mock_client):
        """Handler over a mocked client."""
        return ToolHandler(mock_client)

    async def test_list(self, handler, mock_client):
        """List forwards pagination hints."""
        mock_client.request_json.return_value = {'slos': [], 'totalCount': 0}

        result = await handler.handle_tool('dt_slos_list', {'page_size': 10})

        assert _payload(result) == {'slos': [], 'totalCount': 0}
        assert mock_client.request_json.call_args.kwargs['params'] == {'page-size': 10}

    async def test_get(self, handler, mock_client, make_response, sample_slo):
        """Get returns the SLO document."""
        mock_client.get.return_value = make_response(200, sample_slo)

        result = await handler.handle_tool('dt_slo_get', {'id': 'slo-1'})

        assert _payload(result)['version'] == 'v1'

    async def test_create(self, handler, mock_client):
        """Create posts a validated payload."""
        mock_client.request_json.return_value = {'id': 'slo-9'}

        result = await handler.handle_tool(
            'dt_slo_create',
            {'name': 'x', 'criteria': CRITERIA, 'customSli': {'indicator': 'q'}},
        )

        assert _payload(result) == {'id': 'slo-9'}

    async def test_create_invalid_sends_nothing(self, handler, mock_client):
        """Invalid input fails before any request."""
        with pytest.raises(ValidationError):
            await handler.handle_tool('dt_slo_create', {'name': 'x', 'criteria': CRITERIA})

        mock_client.request_json.assert_not_called()

    async def test_delete(self, handler, mock_client, make_response, sample_slo):
        """Delete goes through the mutator."""
        mock_client.get.return_value = make_response(200, sample_slo)
        mock_client.delete.return_value = make_response(204)

        result = await handler.handle_tool('dt_slo_delete', {'id': 'slo-1'})

        assert _payload(result)['status'] == 'deleted'

    async def test_template_get(self, handler, mock_client):
        """Template ids are escaped."""
        mock_client.request_json.return_value = {'id': 'a/b'}

        await handler.handle_tool('dt_slo_template_get', {'id': 'a/b'})

        assert mock_client.request_json.call_args.args[1].endswith('/a%2Fb')

    async def test_evaluation_poll(self, handler, mock_client, make_response):
        """Poll returns the raw poll body."""
        mock_client.get.return_value = make_response(200, {'status': 'IN_PROGRESS'})

        result = await handler.handle_tool('dt_slo_evaluation_poll', {'evaluation_token': 't'})

        assert _payload(result) == {'status': 'IN_PROGRESS'}

    async def test_evaluation_cancel(self, handler, mock_client, make_response):
        """Cancel reports the outcome."""
        mock_client.post.return_value = make_response(410)

        result = await handler.handle_tool('dt_slo_evaluation_cancel', {'evaluation_token': 't'})

        assert _payload(result)['status'] == 'already_completed'

    async def test_unknown_tool(self, handler):
        """Unknown tools are rejected."""
        with pytest.raises(ValueError, match='Unknown tool: dt_nope'):
            await handler.handle_tool('dt_nope', {})

    def test_policy_is_applied(self, mock_client):
        """Policy values reach the mutator and orchestrator."""
        policy = SLOPolicy(
            max_attempts=4, poll_interval=0.5, max_poll_time=10, default_timeout_ms=7
        )

        handler = ToolHandler(mock_client, policy=policy)

        assert handler.mutator.max_attempts == 4
        assert handler.evaluations.poll_interval == 0.5
        assert handler.evaluations.max_poll_time == 10
        assert handler.evaluations.default_timeout_ms == 7


class TestReadOnlyMode:
    """Test write protection."""

    def test_write_tools_hidden(self, mock_client):
        """Write tools are not listed in read-only mode."""
        handler = ToolHandler(mock_client, read_only=True)

        names = {tool.name for tool in handler.available_tools()}

        assert names == READ_ONLY_TOOLS

    async def test_write_tool_rejected(self, mock_client):
        """Write tools raise in read-only mode."""
        handler = ToolHandler(mock_client, read_only=True)

        with pytest.raises(ValueError, match='read-only mode'):
            await handler.handle_tool('dt_slo_delete', {'id': 'slo-1'})

        mock_client.delete.assert_not_called()

    async def test_read_only_violation_response(self, mock_client):
        """Violations are reported with a dedicated error type."""
        handler = ToolHandler(mock_client, read_only=True)

        result = await call_tool(handler, 'dt_slo_update', {'id': 'slo-1'})

        assert _payload(result)['type'] == 'read_only_violation'


class TestToolToggles:
    """Test tools disabled by configuration."""

    def test_disabled_tools_hidden(self, mock_client):
        """Disabled tools are neither listed nor dispatched."""
        config = Config(tools={'dt_slo_delete': False, 'dt_slo_evaluate': False})

        handler = ToolHandler(mock_client, is_enabled=config.is_enabled)

        names = {tool.name for tool in handler.available_tools()}
        assert 'dt_slo_delete' not in names
        assert 'dt_slo_evaluate' not in names
        assert len(names) == 9

    async def test_disabled_tool_call(self, mock_client):
        """Calling a disabled tool is an unknown tool."""
        handler = ToolHandler(mock_client, is_enabled=lambda name: name != 'dt_slo_get')

        with pytest.raises(ValueError, match='Unknown tool'):
            await handler.handle_tool('dt_slo_get', {'id': 'slo-1'})


class TestCallToolErrors:
    """Test mapping of failures to error responses."""

    @pytest.fixture
    def handler(self, mock_client):
        """Handler over a mocked client."""
        return ToolHandler(mock_client)

    async def test_validation_error(self, handler):
        """Input errors map to validation_error."""
        result = await call_tool(handler, 'dt_slo_get', {})

        payload = _payload(result)
        assert payload['type'] == 'validation_error'
        assert 'id' in payload['message']

    async def test_conflict(self, handler):
        """Exhausted retries map to conflict with the status code."""
        handler.mutator.update = AsyncMock(
            side_effect=ConflictError('Update failed after 2 attempts', 409, '')
        )

        result = await call_tool(handler, 'dt_slo_update', {'id': 'slo-1'})

        payload = _payload(result)
        assert payload['type'] == 'conflict'
        assert payload['status_code'] == 409

    async def test_not_found(self, handler, mock_client, make_response):
        """404 maps to not_found."""
        mock_client.get.return_value = make_response(404, 'missing')

        result = await call_tool(handler, 'dt_slo_get', {'id': 'missing'})

        payload = _payload(result)
        assert payload['type'] == 'not_found'
        assert payload['status_code'] == 404

    async def test_invalid_token(self, handler):
        """Unknown evaluation tokens map to invalid_token."""
        handler.evaluations.poll = AsyncMock(
            side_effect=InvalidTokenError('evaluation token not found or invalid', 404, '')
        )

        result = await call_tool(handler, 'dt_slo_evaluation_poll', {'evaluation_token': 't'})

        assert _payload(result)['type'] == 'invalid_token'

    async def test_timeout(self, handler):
        """Evaluation timeouts map to timeout."""
        handler.evaluations.evaluate = AsyncMock(side_effect=EvaluationTimeoutError(61.0, 60.0))

        result = await call_tool(handler, 'dt_slo_evaluate', {'id': 'slo-1'})

        payload = _payload(result)
        assert payload['type'] == 'timeout'
        assert 'status_code' not in payload

    async def test_transport_error(self, handler, mock_client):
        """Network failures map to transport_error."""
        mock_client.request_json.side_effect = TransportError('GET failed: refused')

        result = await call_tool(handler, 'dt_slos_list', {})

        assert _payload(result)['type'] == 'transport_error'

    async def test_unexpected_error(self, handler, mock_client):
        """Anything else is a server error without internals."""
        mock_client.request_json.side_effect = RuntimeError('secret detail')

        result = await call_tool(handler, 'dt_slos_list', {})

        payload = _payload(result)
        assert payload == {
            'error': True,
            'type': 'server_error',
            'message': 'Internal server error',
        }


class TestMCPHandlers:
    """Test the registered MCP request handlers."""

    async def test_list_tools(self, config):
        """All tools are listed by default."""
        server = create_dynatrace_server(config)
        list_tools_handler = server.request_handlers[ListToolsRequest]

        response = await list_tools_handler(ListToolsRequest(method='tools/list'))
        result = cast(ListToolsResult, response.root)

        assert len(result.tools) == 11
        assert result.tools[0].name == 'dt_slos_list'

    async def test_list_tools_read_only(self, config):
        """Read-only servers list no write tools."""
        server = create_dynatrace_server(config, read_only=True)
        list_tools_handler = server.request_handlers[ListToolsRequest]

        response = await list_tools_handler(ListToolsRequest(method='tools/list'))
        result = cast(ListToolsResult, response.root)

        assert {tool.name for tool in result.tools} == READ_ONLY_TOOLS

    async def test_call_tool(self, config):
        """Tool calls are dispatched through the platform client."""
        with patch('dynatrace_platform_mcp_server.server.PlatformClient') as mock_client_class:
            mock_client = Mock()
            mock_client.request_json = AsyncMock(return_value={'slos': []})
            mock_client_class.return_value = mock_client

            server = create_dynatrace_server(config)
            call_tool_handler = server.request_handlers[CallToolRequest]

            response = await call_tool_handler(
                CallToolRequest(
                    method='tools/call',
                    params=CallToolRequestParams(name='dt_slos_list', arguments={}),
                )
            )
            result = cast(CallToolResult, response.root)

        content_text = cast(TextContent, result.content[0]).text
        assert json.loads(content_text) == {'slos': []}
        mock_client_class.assert_called_once_with(config)


class TestCheckoutLatencyScenario:
    """Create an SLO, then rename it while another writer bumps its version."""

    async def test_create_then_update_through_conflict(
        self, mock_client, make_response, sample_slo
    ):
        """The rename lands on the second attempt at the new version."""
        handler = ToolHandler(mock_client)
        mock_client.request_json.return_value = sample_slo

        created = await handler.handle_tool(
            'dt_slo_create',
            {
                'name': 'checkout-latency',
                'criteria': sample_slo['criteria'],
                'customSli': sample_slo['customSli'],
            },
        )
        assert _payload(created)['version'] == 'v1'

        mock_client.get.side_effect = [
            make_response(200, sample_slo),
            make_response(200, {**sample_slo, 'version': 'v2'}),
            make_response(200, {**sample_slo, 'version': 'v3', 'name': 'checkout-latency-v2'}),
        ]
        mock_client.put.side_effect = [make_response(409, 'version mismatch'), make_response(200)]

        updated = await call_tool(
            handler, 'dt_slo_update', {'id': 'slo-1', 'name': 'checkout-latency-v2'}
        )

        payload = _payload(updated)
        assert payload['name'] == 'checkout-latency-v2'
        assert payload['version'] == 'v3'
        versions = [
            c.kwargs['params']['optimistic-locking-version']
            for c in mock_client.put.call_args_list
        ]
        assert versions == ['v1', 'v2']
