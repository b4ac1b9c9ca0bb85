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

"""HTTP client for Dynatrace Platform APIs."""

import httpx
import json
from . import __user_agent__
from .config import Config
from .consts import HTTP_TIMEOUT_SECONDS
from .errors import NotFoundError, ParseError, RemoteError, TransportError
from dataclasses import dataclass
from loguru import logger
from typing import Any, Dict, Optional, Union


class BearerAuth(httpx.Auth):
    """Platform token authentication for httpx."""

    def __init__(self, token: str):
        """Initialize with the platform token."""
        self.token = token

    def auth_flow(self, request):
        """Attach the bearer token to the request."""
        request.headers['Authorization'] = f'Bearer {self.token}'
        yield request


@dataclass
class ApiResponse:
    """Status code and raw body of a platform API response."""

    status_code: int
    body: bytes = b''

    @property
    def is_success(self) -> bool:
        """True for 2xx responses."""
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        """Body decoded as UTF-8."""
        return self.body.decode('utf-8', errors='replace')

    def json(self) -> Any:
        """Decode the body as JSON."""
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise ParseError(f'Could not decode response body as JSON: {e}') from e

    def format_error(self) -> str:
        """Human-readable error summary."""
        return f'API error {self.status_code}: {self.text}'

    def raise_for_status(self) -> None:
        """Raise NotFoundError for 404 and RemoteError for any other non-2xx."""
        if self.is_success:
            return
        if self.status_code == 404:
            raise NotFoundError(self.format_error(), self.status_code, self.text)
        raise RemoteError(self.format_error(), self.status_code, self.text)


class PlatformClient:
    """Authenticated client for the Dynatrace Platform REST API."""

    def __init__(self, config: Config, timeout: float = HTTP_TIMEOUT_SECONDS):
        """Initialize the client from validated configuration."""
        self.base_url = config.apps_url
        self.auth = BearerAuth(config.platform_token)
        self.timeout = timeout

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
            'User-Agent': __user_agent__,
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        content: Optional[Union[str, bytes]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ApiResponse:
        """Perform one request and return its status and body.

        Query parameters with empty values are dropped. Transport failures raise
        TransportError; non-2xx responses are returned, not raised.
        """
        query = {k: str(v) for k, v in (params or {}).items() if v is not None and v != ''}
        url = f'{self.base_url}{path}'

        kwargs: Dict[str, Any] = {
            'params': query,
            'headers': self._headers(headers),
            'auth': self.auth,
        }
        if content is not None:
            kwargs['content'] = content
        elif json_body is not None:
            kwargs['json'] = json_body

        logger.debug(f'{method} {path} params={query}')

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f'Transport error on {method} {path}: {e}')
            raise TransportError(f'{method} {path} failed: {e}') from e

        logger.debug(f'{method} {path} -> {response.status_code}')
        return ApiResponse(status_code=response.status_code, body=response.content)

    async def get(self, path: str, **kwargs) -> ApiResponse:
        """Perform a GET request."""
        return await self.request('GET', path, **kwargs)

    async def post(self, path: str, json_body: Any = None, **kwargs) -> ApiResponse:
        """Perform a POST request."""
        return await self.request('POST', path, json_body=json_body, **kwargs)

    async def put(self, path: str, json_body: Any = None, **kwargs) -> ApiResponse:
        """Perform a PUT request."""
        return await self.request('PUT', path, json_body=json_body, **kwargs)

    async def delete(self, path: str, **kwargs) -> ApiResponse:
        """Perform a DELETE request."""
        return await self.request('DELETE', path, **kwargs)

    async def request_json(self, method: str, path: str, **kwargs) -> Any:
        """Forward a request and return the decoded body of a successful response.

        Bodies that are not JSON are returned as text. Error responses raise.
        """
        response = await self.request(method, path, **kwargs)
        response.raise_for_status()
        if not response.body:
            return {}
        try:
            return response.json()
        except ParseError:
            return response.text
