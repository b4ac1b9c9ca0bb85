# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Dynatrace Platform MCP Server implementation (SLO tools)."""

import json
from .client import PlatformClient
from .config import Config, SLOPolicy
from .errors import PlatformError, RemoteError
from .models import (
    CreateSLORequest,
    EvaluationRequest,
    EvaluationTokenRequest,
    ListRequest,
    ResourceIdRequest,
    UpdateSLORequest,
    parse_arguments,
)
from .slo_evaluation import EvaluationOrchestrator
from .slo_mutator import SLOMutator
from .slo_repository import SLORepository
from loguru import logger
from mcp.server import Server
from mcp.types import TextContent, Tool
from typing import Any, Callable, Dict, List, Optional, Sequence


# Tool categories for read-only mode
READ_ONLY_TOOLS = {
    'dt_slos_list',
    'dt_slo_get',
    'dt_slo_templates_list',
    'dt_slo_template_get',
    'dt_slo_evaluate',
    'dt_slo_evaluation_start',
    'dt_slo_evaluation_poll',
}

WRITE_TOOLS = {
    'dt_slo_create',
    'dt_slo_update',
    'dt_slo_delete',
    'dt_slo_evaluation_cancel',
}

_CUSTOM_SLI_SCHEMA = {
    'type': 'object',
    'description': 'Custom SLI using DQL query. Mutually exclusive with sliReference.',
    'properties': {
        'indicator': {
            'type': 'string',
            'description': "DQL query that outputs a 'sli' field with value 0-100. Example: 'timeseries sli=avg(dt.host.cpu.idle)'",
        },
    },
    'required': ['indicator'],
}

_SLI_REFERENCE_SCHEMA = {
    'type': 'object',
    'description': 'SLI template reference. Mutually exclusive with customSli.',
    'properties': {
        'templateId': {
            'type': 'string',
            'description': 'SLI template ID from dt_slo_templates_list',
        },
        'variables': {
            'type': 'array',
            'description': 'Template variables (name/value pairs)',
            'items': {
                'type': 'object',
                'properties': {'name': {'type': 'string'}, 'value': {'type': 'string'}},
                'required': ['name', 'value'],
            },
        },
    },
    'required': ['templateId'],
}

_CRITERIA_SCHEMA = {
    'type': 'array',
    'description': 'SLO criteria',
    'items': {
        'type': 'object',
        'properties': {
            'timeframeFrom': {
                'type': 'string',
                'description': "Start of timeframe (e.g., 'now-7d')",
            },
            'timeframeTo': {'type': 'string', 'description': "End of timeframe (e.g., 'now')"},
            'target': {'type': 'number', 'description': 'Target percentage (0-100)'},
            'warning': {
                'type': 'number',
                'description': 'Warning threshold percentage (0-100)',
            },
        },
        'required': ['target'],
    },
}

_TAGS_SCHEMA = {
    'type': 'array',
    'description': "Tags for the SLO (e.g., 'Stage:DEV')",
    'items': {'type': 'string'},
}

_TOKEN_SCHEMA = {
    'type': 'object',
    'properties': {
        'evaluation_token': {
            'type': 'string',
            'description': 'Evaluation token from dt_slo_evaluation_start',
        },
    },
    'required': ['evaluation_token'],
}


def _evaluation_schema(with_timeout: bool) -> Dict[str, Any]:
    properties: Dict[str, Any] = {
        'id': {'type': 'string', 'description': 'SLO ID to evaluate'},
        'timeframe_from': {
            'type': 'string',
            'description': "Start of custom timeframe (e.g., 'now-30d'). If not provided, uses the SLO's criteria timeframe.",
        },
        'timeframe_to': {
            'type': 'string',
            'description': "End of custom timeframe (e.g., 'now'). If not provided, uses the SLO's criteria timeframe.",
        },
    }
    if with_timeout:
        properties['timeout_ms'] = {
            'type': 'integer',
            'description': 'Request timeout in milliseconds. Lower values increase the chance of an async response. Default: 1000',
            'minimum': 1,
        }
    return {'type': 'object', 'properties': properties, 'required': ['id']}


def get_tool_definitions() -> List[Tool]:
    """All SLO tools, in registration order."""
    return [
        Tool(
            name='dt_slos_list',
            description='List Service Level Objectives (SLOs) with pagination support. Returns SLO definitions including their IDs and versions for subsequent operations.',
            inputSchema={
                'type': 'object',
                'properties': {
                    'page_size': {
                        'type': 'integer',
                        'description': 'Number of SLOs per page (max 100, default 100)',
                    },
                    'page_key': {
                        'type': 'string',
                        'description': 'Page key from a previous response to fetch the next page',
                    },
                    'filter': {'type': 'string', 'description': 'SLO filter expression'},
                    'sort': {'type': 'string', 'description': "Sort field (e.g., 'name')"},
                },
            },
        ),
        Tool(
            name='dt_slo_get',
            description='Get details of a specific SLO by ID. Returns the full SLO definition including the current version required for updates and deletes.',
            inputSchema={
                'type': 'object',
                'properties': {'id': {'type': 'string', 'description': 'SLO ID'}},
                'required': ['id'],
            },
        ),
        Tool(
            name='dt_slo_create',
            description='Create a new SLO. Use either customSli (DQL-based indicator) OR sliReference (built-in template), not both. Returns the created SLO with its ID and version.',
            inputSchema={
                'type': 'object',
                'properties': {
                    'name': {'type': 'string', 'description': 'SLO name'},
                    'description': {'type': 'string', 'description': 'SLO description'},
                    'customSli': _CUSTOM_SLI_SCHEMA,
                    'sliReference': _SLI_REFERENCE_SCHEMA,
                    'criteria': _CRITERIA_SCHEMA,
                    'tags': _TAGS_SCHEMA,
                },
                'required': ['name', 'criteria'],
            },
        ),
        Tool(
            name='dt_slo_update',
            description='Update an existing SLO. Fetches the current version, applies the supplied changes, and retries once automatically on a version conflict (409).',
            inputSchema={
                'type': 'object',
                'properties': {
                    'id': {'type': 'string', 'description': 'SLO ID'},
                    'name': {'type': 'string', 'description': 'Updated SLO name'},
                    'description': {
                        'type': 'string',
                        'description': 'Updated SLO description (an empty string keeps the current one)',
                    },
                    'customSli': _CUSTOM_SLI_SCHEMA,
                    'sliReference': _SLI_REFERENCE_SCHEMA,
                    'criteria': _CRITERIA_SCHEMA,
                    'tags': _TAGS_SCHEMA,
                },
                'required': ['id'],
            },
        ),
        Tool(
            name='dt_slo_delete',
            description='Delete an SLO by ID. Fetches the current version before deletion to satisfy optimistic locking.',
            inputSchema={
                'type': 'object',
                'properties': {'id': {'type': 'string', 'description': 'SLO ID'}},
                'required': ['id'],
            },
        ),
        Tool(
            name='dt_slo_templates_list',
            description='List built-in SLO objective templates (e.g., Service Availability, Service Performance, Host CPU). Use template IDs with the sliReference parameter of dt_slo_create instead of writing custom DQL.',
            inputSchema={
                'type': 'object',
                'properties': {
                    'page_size': {
                        'type': 'integer',
                        'description': 'Number of templates per page (max 400)',
                    },
                },
            },
        ),
        Tool(
            name='dt_slo_template_get',
            description='Get a specific SLO objective template by ID, including the variables it requires.',
            inputSchema={
                'type': 'object',
                'properties': {
                    'id': {
                        'type': 'string',
                        'description': 'Template ID (Base64 encoded, from dt_slo_templates_list)',
                    },
                },
                'required': ['id'],
            },
        ),
        Tool(
            name='dt_slo_evaluate',
            description='Evaluate an SLO and return its current status. Starts the evaluation, polls for completion if the platform answers asynchronously, and returns the final result.',
            inputSchema=_evaluation_schema(with_timeout=False),
        ),
        Tool(
            name='dt_slo_evaluation_start',
            description='Start an SLO evaluation. May return results immediately or an evaluation token for polling. Prefer dt_slo_evaluate for a single-call evaluation.',
            inputSchema=_evaluation_schema(with_timeout=True),
        ),
        Tool(
            name='dt_slo_evaluation_poll',
            description='Poll an asynchronous SLO evaluation. Returns IN_PROGRESS with a progress percentage, or COMPLETED with results.',
            inputSchema=_TOKEN_SCHEMA,
        ),
        Tool(
            name='dt_slo_evaluation_cancel',
            description='Cancel a running SLO evaluation. An evaluation that already finished is reported as such, not as an error.',
            inputSchema=_TOKEN_SCHEMA,
        ),
    ]


def create_error_response(
    message: str, error_type: str = 'error', status_code: Optional[int] = None
) -> List[TextContent]:
    """Create standardized error response."""
    error: Dict[str, Any] = {'error': True, 'type': error_type, 'message': message}
    if status_code is not None:
        error['status_code'] = status_code
    return [TextContent(type='text', text=json.dumps(error, indent=2))]


def create_success_response(data: Any) -> List[TextContent]:
    """Create standardized success response."""
    if isinstance(data, str):
        return [TextContent(type='text', text=data)]
    return [TextContent(type='text', text=json.dumps(data, indent=2))]


class ToolHandler:
    """Handles tool dispatch and execution."""

    def __init__(
        self,
        client: PlatformClient,
        policy: Optional[SLOPolicy] = None,
        read_only: bool = False,
        is_enabled: Optional[Callable[[str], bool]] = None,
    ):
        """Initialize tool handler with the platform client and tool filters."""
        policy = policy or SLOPolicy()
        self.read_only = read_only
        self.repository = SLORepository(client)
        self.mutator = SLOMutator(client, self.repository, max_attempts=policy.max_attempts)
        self.evaluations = EvaluationOrchestrator(
            client,
            poll_interval=policy.poll_interval,
            max_poll_time=policy.max_poll_time,
            default_timeout_ms=policy.default_timeout_ms,
        )

        all_handlers = {
            'dt_slos_list': self._handle_list,
            'dt_slo_get': self._handle_get,
            'dt_slo_create': self._handle_create,
            'dt_slo_update': self._handle_update,
            'dt_slo_delete': self._handle_delete,
            'dt_slo_templates_list': self._handle_list_templates,
            'dt_slo_template_get': self._handle_get_template,
            'dt_slo_evaluate': self._handle_evaluate,
            'dt_slo_evaluation_start': self._handle_evaluation_start,
            'dt_slo_evaluation_poll': self._handle_evaluation_poll,
            'dt_slo_evaluation_cancel': self._handle_evaluation_cancel,
        }

        enabled = is_enabled or (lambda name: True)
        self.handlers = {
            name: handler
            for name, handler in all_handlers.items()
            if enabled(name) and not (read_only and name in WRITE_TOOLS)
        }

    def available_tools(self) -> List[Tool]:
        """Tool definitions for the handlers this instance serves."""
        return [tool for tool in get_tool_definitions() if tool.name in self.handlers]

    async def handle_tool(self, name: str, arguments: Dict[str, Any]) -> List[TextContent]:
        """Dispatch tool call to appropriate handler with read-only safety check."""
        if name not in self.handlers:
            if self.read_only and name in WRITE_TOOLS:
                raise ValueError(f'Tool {name} not available in read-only mode')
            raise ValueError(f'Unknown tool: {name}')

        handler = self.handlers[name]
        result = await handler(arguments or {})
        return create_success_response(result)

    async def _handle_list(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(ListRequest, args)
        return await self.repository.list_slos(
            page_size=request.page_size,
            page_key=request.page_key,
            filter=request.filter,
            sort=request.sort,
        )

    async def _handle_get(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(ResourceIdRequest, args)
        slo = await self.repository.fetch(request.id)
        return slo.model_dump(exclude_none=True)

    async def _handle_create(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(CreateSLORequest, args)
        return await self.repository.create_from_request(request)

    async def _handle_update(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(UpdateSLORequest, args)
        return await self.mutator.update(request)

    async def _handle_delete(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(ResourceIdRequest, args)
        return await self.mutator.delete(request.id)

    async def _handle_list_templates(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(ListRequest, args)
        return await self.repository.list_templates(page_size=request.page_size)

    async def _handle_get_template(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(ResourceIdRequest, args)
        return await self.repository.get_template(request.id)

    async def _handle_evaluate(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(EvaluationRequest, args)
        return await self.evaluations.evaluate(request)

    async def _handle_evaluation_start(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(EvaluationRequest, args)
        return await self.evaluations.start(request)

    async def _handle_evaluation_poll(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(EvaluationTokenRequest, args)
        return await self.evaluations.poll(request.evaluation_token)

    async def _handle_evaluation_cancel(self, args: Dict[str, Any]) -> Any:
        request = parse_arguments(EvaluationTokenRequest, args)
        return await self.evaluations.cancel(request.evaluation_token)


async def call_tool(
    tool_handler: ToolHandler, name: str, arguments: Dict[str, Any]
) -> List[TextContent]:
    """Run a tool and turn any failure into an error response."""
    try:
        return await tool_handler.handle_tool(name, arguments)
    except ValueError as e:
        if 'read-only mode' in str(e):
            logger.warning(f'Read-only mode violation attempt: {name}')
            return create_error_response(
                f'Operation {name} not available in read-only mode. '
                'Remove --readonly flag to enable write operations.',
                'read_only_violation',
            )
        logger.warning(f'Invalid tool call {name}: {e}')
        return create_error_response(str(e), 'validation_error')
    except RemoteError as e:
        logger.error(f'Platform error in {name}: {e}')
        return create_error_response(str(e), e.error_type, e.status_code)
    except PlatformError as e:
        logger.warning(f'{type(e).__name__} in {name}: {e}')
        return create_error_response(str(e), e.error_type)
    except Exception:
        logger.exception('Unexpected error in tool call', tool=name)
        return create_error_response('Internal server error', 'server_error')


def create_dynatrace_server(config: Config, read_only: bool = False) -> Server:
    """Create and configure the Dynatrace Platform MCP server."""
    server = Server('dynatrace-platform-mcp-server')
    client = PlatformClient(config)
    tool_handler = ToolHandler(
        client, policy=config.policy, read_only=read_only, is_enabled=config.is_enabled
    )

    @server.list_tools()
    async def handle_list_tools() -> List[Tool]:
        """List the SLO tools enabled for this server."""
        return tool_handler.available_tools()

    @server.call_tool()
    async def handle_call_tool(name: str, arguments: Dict[str, Any]) -> Sequence[TextContent]:
        """Handle tool calls using dispatch pattern."""
        return await call_tool(tool_handler, name, arguments)

    return server
