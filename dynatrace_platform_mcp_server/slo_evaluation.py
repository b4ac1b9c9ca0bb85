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

"""SLO evaluation: start, poll and cancel.

`evaluation:start` either answers synchronously with `evaluationResults` or
hands back an `evaluationToken` for an asynchronous job. `evaluate` hides the
difference by polling the token until the job completes, fails, or exceeds the
poll ceiling, in which case the job is cancelled.
"""

import asyncio
from .client import PlatformClient
from .consts import (
    DEFAULT_EVAL_MAX_POLL_TIME,
    DEFAULT_EVAL_POLL_INTERVAL,
    DEFAULT_EVAL_TIMEOUT_MS,
    EVALUATION_STATUS_COMPLETED,
    EVALUATION_STATUS_IN_PROGRESS,
    EVALUATION_TOKEN_PARAM,
    SLO_EVALUATION_CANCEL_PATH,
    SLO_EVALUATION_POLL_PATH,
    SLO_EVALUATION_START_PATH,
)
from .errors import (
    EvaluationFailedError,
    EvaluationTimeoutError,
    InvalidTokenError,
    ParseError,
    PlatformError,
    ProtocolError,
    RemoteError,
)
from .models import EvaluationPollResponse, EvaluationRequest, EvaluationStartResponse
from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from time import monotonic
from typing import Any, Dict


class EvaluationOrchestrator:
    """Drives SLO evaluations against the platform."""

    def __init__(
        self,
        client: PlatformClient,
        poll_interval: float = DEFAULT_EVAL_POLL_INTERVAL,
        max_poll_time: float = DEFAULT_EVAL_MAX_POLL_TIME,
        default_timeout_ms: int = DEFAULT_EVAL_TIMEOUT_MS,
    ):
        """Initialize the orchestrator.

        Args:
            client: Platform API client
            poll_interval: Seconds to wait before each poll
            max_poll_time: Seconds after which polling stops and the job is cancelled
            default_timeout_ms: `requestTimeoutMilliseconds` sent when the caller gives none
        """
        self.client = client
        self.poll_interval = poll_interval
        self.max_poll_time = max_poll_time
        self.default_timeout_ms = default_timeout_ms

    def _start_payload(self, request: EvaluationRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'id': request.id,
            'requestTimeoutMilliseconds': request.timeout_ms or self.default_timeout_ms,
        }
        timeframe = request.custom_timeframe()
        if timeframe:
            payload['customTimeframe'] = timeframe
        return payload

    async def start(self, request: EvaluationRequest) -> Dict[str, Any]:
        """Start an evaluation and return the raw start response."""
        return await self.client.request_json(
            'POST', SLO_EVALUATION_START_PATH, json_body=self._start_payload(request)
        )

    async def evaluate(self, request: EvaluationRequest) -> Dict[str, Any]:
        """Start an evaluation and wait for its results."""
        body = await self.start(request)

        try:
            start_response = EvaluationStartResponse.model_validate(body)
        except PydanticValidationError as e:
            raise ParseError(f'parse evaluation response: {e}') from e

        if start_response.evaluationResults:
            logger.info(f'Evaluation of SLO {request.id} completed synchronously')
            return body

        if not start_response.evaluationToken:
            raise ProtocolError('unexpected response: no results and no evaluation token')

        logger.info(f'Evaluation of SLO {request.id} is running asynchronously, polling')
        return await self.wait_for_completion(start_response.evaluationToken)

    async def wait_for_completion(self, token: str) -> Dict[str, Any]:
        """Poll `token` until the evaluation reaches a terminal state.

        The poll ceiling is measured from the moment the token is received.

        Raises:
            EvaluationFailedError: the platform reported a status other than
                IN_PROGRESS or COMPLETED
            EvaluationTimeoutError: `max_poll_time` elapsed; the job was cancelled
        """
        started_at = monotonic()
        polls = 0
        while True:
            elapsed = monotonic() - started_at
            if elapsed > self.max_poll_time:
                await self._cancel_quietly(token)
                raise EvaluationTimeoutError(elapsed, self.max_poll_time)

            await asyncio.sleep(self.poll_interval)

            body = await self.poll(token)
            polls += 1
            try:
                status = EvaluationPollResponse.model_validate(body).status
            except PydanticValidationError as e:
                raise ParseError(f'parse poll response: {e}') from e

            if status == EVALUATION_STATUS_COMPLETED:
                logger.info(f'Evaluation completed after {polls} poll(s)')
                return body
            if status != EVALUATION_STATUS_IN_PROGRESS:
                logger.error(f'Evaluation failed with status {status!r}')
                raise EvaluationFailedError(status or '')

    async def poll(self, token: str) -> Dict[str, Any]:
        """Fetch the current state of an asynchronous evaluation."""
        response = await self.client.get(
            SLO_EVALUATION_POLL_PATH, params={EVALUATION_TOKEN_PARAM: token}
        )
        if response.status_code == 404:
            raise InvalidTokenError(
                'evaluation token not found or invalid', response.status_code, response.text
            )
        response.raise_for_status()
        return response.json()

    async def cancel(self, token: str) -> Dict[str, Any]:
        """Cancel a running evaluation.

        A job that already finished (410) counts as success.
        """
        response = await self.client.post(
            SLO_EVALUATION_CANCEL_PATH, params={EVALUATION_TOKEN_PARAM: token}
        )

        if response.status_code == 204:
            return {'status': 'cancelled', 'message': 'Evaluation cancelled successfully'}
        if response.status_code == 410:
            return {
                'status': 'already_completed',
                'message': 'Evaluation already completed before cancellation',
            }
        if response.status_code == 404:
            raise InvalidTokenError(
                'evaluation token not found or invalid', response.status_code, response.text
            )
        if not response.is_success:
            raise RemoteError(response.format_error(), response.status_code, response.text)
        return {'status': 'cancelled', 'message': 'Evaluation cancelled'}

    async def _cancel_quietly(self, token: str) -> None:
        # Best effort; the timeout is what gets reported.
        try:
            await self.cancel(token)
        except PlatformError as e:
            logger.warning(f'Cancelling timed out evaluation failed: {e}')
