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

"""Update and delete SLOs under optimistic locking.

Every write carries the version read immediately before it. A 409 means another
writer got there first; the document is fetched again and the write is retried,
up to `max_attempts` writes in total.
"""

from .client import ApiResponse, PlatformClient
from .consts import DEFAULT_MAX_ATTEMPTS, OPTIMISTIC_LOCKING_VERSION_PARAM
from .errors import ConflictError, NotFoundError, PlatformError, RemoteError
from .models import UpdateSLORequest
from .slo_payload import build_update_payload
from .slo_repository import SLORepository, slo_path
from loguru import logger
from typing import Any, Dict


HTTP_CONFLICT = 409


class SLOMutator:
    """Fetch-then-conditional-write for SLO updates and deletes."""

    def __init__(
        self,
        client: PlatformClient,
        repository: SLORepository,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """Initialize the mutator with a client, repository and retry budget."""
        self.client = client
        self.repository = repository
        self.max_attempts = max(1, max_attempts)

    async def update(self, changes: UpdateSLORequest) -> Dict[str, Any]:
        """Apply `changes` to the current version of the SLO.

        Fields the caller did not supply are taken from the document fetched on
        each attempt. Returns the SLO as stored after the update.
        """
        slo_id = changes.id
        response = None
        for attempt in range(1, self.max_attempts + 1):
            current = await self.repository.fetch(slo_id)
            payload = build_update_payload(current, changes)

            logger.debug(f'Updating SLO {slo_id} at version {current.version} (attempt {attempt})')
            response = await self.client.put(
                slo_path(slo_id),
                json_body=payload,
                params={OPTIMISTIC_LOCKING_VERSION_PARAM: current.version},
            )

            if response.is_success:
                logger.info(f'Updated SLO {slo_id}')
                return await self._fetch_after_update(slo_id)

            if response.status_code == HTTP_CONFLICT and attempt < self.max_attempts:
                logger.warning(f'Version conflict updating SLO {slo_id}, retrying')
                continue
            break

        raise self._write_error(response, 'update', slo_id)

    async def delete(self, slo_id: str) -> Dict[str, Any]:
        """Delete the SLO at its current version."""
        response = None
        for attempt in range(1, self.max_attempts + 1):
            current = await self.repository.fetch(slo_id)

            logger.debug(f'Deleting SLO {slo_id} at version {current.version} (attempt {attempt})')
            response = await self.client.delete(
                slo_path(slo_id),
                params={OPTIMISTIC_LOCKING_VERSION_PARAM: current.version},
            )

            if response.is_success:
                logger.info(f'Deleted SLO {slo_id}')
                return {
                    'status': 'deleted',
                    'id': slo_id,
                    'message': f'SLO {slo_id} deleted successfully',
                }

            if response.status_code == HTTP_CONFLICT and attempt < self.max_attempts:
                logger.warning(f'Version conflict deleting SLO {slo_id}, retrying')
                continue
            break

        raise self._write_error(response, 'delete', slo_id)

    async def _fetch_after_update(self, slo_id: str) -> Dict[str, Any]:
        # The PUT response has no body; the write is durable even if this read fails.
        try:
            updated = await self.repository.fetch(slo_id)
        except PlatformError as e:
            logger.warning(f'SLO {slo_id} updated but re-fetch failed: {e}')
            return {
                'status': 'updated',
                'id': slo_id,
                'message': f'SLO {slo_id} updated successfully (new version available)',
            }
        return updated.model_dump(exclude_none=True)

    def _write_error(self, response: ApiResponse, operation: str, slo_id: str) -> RemoteError:
        if response.status_code == HTTP_CONFLICT:
            logger.error(
                f'Giving up on {operation} of SLO {slo_id} after {self.max_attempts} attempts'
            )
            return ConflictError(
                f'{operation.capitalize()} failed after {self.max_attempts} attempts due to '
                f'concurrent modifications: {response.format_error()}',
                response.status_code,
                response.text,
            )
        logger.error(f'Failed to {operation} SLO {slo_id}: {response.format_error()}')
        if response.status_code == 404:
            return NotFoundError(response.format_error(), response.status_code, response.text)
        return RemoteError(response.format_error(), response.status_code, response.text)
