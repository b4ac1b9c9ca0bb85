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

"""Error types raised by the Dynatrace platform client and SLO operations."""

from typing import Optional


class PlatformError(Exception):
    """Base class for errors reported back to the MCP caller."""

    error_type = 'error'


class ConfigurationError(PlatformError):
    """Missing or invalid server configuration."""

    error_type = 'configuration_error'


class ValidationError(PlatformError):
    """Malformed or missing input, detected before any network call."""

    error_type = 'validation_error'


class TransportError(PlatformError):
    """The HTTP request could not be executed (DNS, connection, timeout)."""

    error_type = 'transport_error'


class ParseError(PlatformError):
    """A response body could not be decoded into the expected shape."""

    error_type = 'parse_error'


class RemoteError(PlatformError):
    """Non-2xx response from the platform API."""

    error_type = 'remote_error'

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ''):
        """Initialize remote error with the response status and body."""
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class NotFoundError(RemoteError):
    """The resource, template or evaluation does not exist."""

    error_type = 'not_found'


class ConflictError(RemoteError):
    """Optimistic-locking version mismatch that outlasted the retry budget."""

    error_type = 'conflict'


class InvalidTokenError(NotFoundError):
    """The evaluation token is unknown to the platform."""

    error_type = 'invalid_token'


class ProtocolError(PlatformError):
    """Evaluation response carried neither results nor a token."""

    error_type = 'protocol_error'


class EvaluationFailedError(PlatformError):
    """The platform reported a terminal, non-successful evaluation status."""

    error_type = 'evaluation_failed'

    def __init__(self, status: str):
        """Initialize with the status reported by the poll endpoint."""
        self.status = status
        super().__init__(f'Evaluation failed with status: {status}')


class EvaluationTimeoutError(PlatformError):
    """The poll loop exceeded its wall-clock ceiling."""

    error_type = 'timeout'

    def __init__(self, elapsed: float, ceiling: float):
        """Initialize with the elapsed time and the configured ceiling."""
        self.elapsed = elapsed
        self.ceiling = ceiling
        super().__init__(f'Evaluation timed out after {ceiling:g} seconds')
