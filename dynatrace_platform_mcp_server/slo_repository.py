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

"""Read and create operations for SLO documents and objective templates."""

from .client import PlatformClient
from .consts import PAGE_KEY_PARAM, PAGE_SIZE_PARAM, SLO_BASE_PATH, SLO_TEMPLATE_PATH
from .errors import ParseError
from .models import CreateSLORequest, SLOResource, describe_validation_error, parse_arguments
from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from typing import Any, Dict, List, Optional
from urllib.parse import quote


def slo_path(slo_id: str) -> str:
    """Path of a single SLO document."""
    return f'{SLO_BASE_PATH}/{quote(slo_id, safe="")}'


def _list_params(
    page_size: Optional[int] = None,
    page_key: Optional[str] = None,
    filter: Optional[str] = None,
    sort: Optional[str] = None,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if page_size is not None and page_size > 0:
        params[PAGE_SIZE_PARAM] = page_size
    if page_key:
        params[PAGE_KEY_PARAM] = page_key
    if filter:
        params['filter'] = filter
    if sort:
        params['sort'] = sort
    return params


class SLORepository:
    """Fetch, list and create SLOs."""

    def __init__(self, client: PlatformClient):
        """Initialize the repository with a platform client."""
        self.client = client

    async def fetch(self, slo_id: str) -> SLOResource:
        """Fetch one SLO, including its current optimistic-locking version.

        Raises:
            NotFoundError: the SLO does not exist
            RemoteError: any other non-2xx response
            TransportError: the request could not be sent
            ParseError: the body is not an SLO document
        """
        response = await self.client.get(slo_path(slo_id))
        response.raise_for_status()

        data = response.json()
        try:
            return SLOResource.model_validate(data)
        except PydanticValidationError as e:
            raise ParseError(f'Unexpected SLO document: {describe_validation_error(e)}') from e

    async def list_slos(
        self,
        page_size: Optional[int] = None,
        page_key: Optional[str] = None,
        filter: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> Any:
        """List SLOs. The paginated payload is returned as received."""
        params = _list_params(page_size, page_key, filter, sort)
        return await self.client.request_json('GET', SLO_BASE_PATH, params=params)

    async def create(
        self,
        name: str,
        criteria: List[Dict[str, Any]],
        description: Optional[str] = None,
        custom_sli: Optional[Dict[str, Any]] = None,
        sli_reference: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
    ) -> Any:
        """Create an SLO from exactly one of `custom_sli` and `sli_reference`.

        Input is validated locally; a ValidationError means no request was sent.
        """
        arguments: Dict[str, Any] = {
            'name': name,
            'criteria': criteria,
            'description': description,
            'customSli': custom_sli,
            'sliReference': sli_reference,
        }
        if tags is not None:
            arguments['tags'] = tags
        request = parse_arguments(CreateSLORequest, arguments)
        return await self.create_from_request(request)

    async def create_from_request(self, request: CreateSLORequest) -> Any:
        """Create an SLO from validated arguments."""
        payload = request.to_payload()
        created = await self.client.request_json('POST', SLO_BASE_PATH, json_body=payload)
        logger.info(f'Created SLO {request.name!r}')
        return created

    async def list_templates(self, page_size: Optional[int] = None) -> Any:
        """List built-in objective templates."""
        params = _list_params(page_size)
        return await self.client.request_json('GET', SLO_TEMPLATE_PATH, params=params)

    async def get_template(self, template_id: str) -> Any:
        """Get one objective template.

        Template IDs are Base64 and may contain `/` and `=`, so the ID is
        percent-encoded as a single path segment.
        """
        path = f'{SLO_TEMPLATE_PATH}/{quote(template_id, safe="")}'
        return await self.client.request_json('GET', path)
