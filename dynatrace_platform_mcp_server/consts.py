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

"""Defines constants used across the server."""

import math
import os
from loguru import logger
from typing import Callable, TypeVar


T = TypeVar('T', int, float)

# Environment variables
BASE_URL_ENV = 'DT_BASE_URL'
BASE_URL_FALLBACK_ENV = 'DYNATRACE_BASE_URL'
PLATFORM_TOKEN_ENV = 'DT_PLATFORM_TOKEN'
PLATFORM_TOKEN_FALLBACK_ENV = 'DYNATRACE_PLATFORM_TOKEN'
DEBUG_ENV = 'DT_DEBUG'
CONFIG_FILE_ENV = 'DYNATRACE_CONFIG_FILE'
LOG_LEVEL_ENV = 'MCP_LOG_LEVEL'
MAX_ATTEMPTS_ENV = 'DT_SLO_MAX_ATTEMPTS'
EVAL_POLL_INTERVAL_ENV = 'DT_SLO_EVAL_POLL_INTERVAL'
EVAL_MAX_POLL_TIME_ENV = 'DT_SLO_EVAL_MAX_POLL_TIME'
EVAL_DEFAULT_TIMEOUT_MS_ENV = 'DT_SLO_EVAL_DEFAULT_TIMEOUT_MS'

DEFAULT_CONFIG_FILE = 'config.yaml'
DEFAULT_LOG_LEVEL = 'WARNING'

# HTTP
HTTP_TIMEOUT_SECONDS = 120.0
LIVE_DOMAIN = '.live.dynatrace.com'
APPS_DOMAIN = '.apps.dynatrace.com'

# SLO API paths
SLO_BASE_PATH = '/platform/slo/v1/slos'
SLO_TEMPLATE_PATH = '/platform/slo/v1/objective-templates'
SLO_EVALUATION_START_PATH = f'{SLO_BASE_PATH}/evaluation:start'
SLO_EVALUATION_POLL_PATH = f'{SLO_BASE_PATH}/evaluation:poll'
SLO_EVALUATION_CANCEL_PATH = f'{SLO_BASE_PATH}/evaluation:cancel'

# Query parameter names
PAGE_SIZE_PARAM = 'page-size'
PAGE_KEY_PARAM = 'page-key'
OPTIMISTIC_LOCKING_VERSION_PARAM = 'optimistic-locking-version'
EVALUATION_TOKEN_PARAM = 'evaluation-token'

# Evaluation poll statuses
EVALUATION_STATUS_IN_PROGRESS = 'IN_PROGRESS'
EVALUATION_STATUS_COMPLETED = 'COMPLETED'

# Policy defaults
DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_EVAL_POLL_INTERVAL = 1.0  # seconds between polls
DEFAULT_EVAL_MAX_POLL_TIME = 60.0  # seconds before the poll loop gives up
DEFAULT_EVAL_TIMEOUT_MS = 1000  # server-side hint for evaluation:start


def _positive_from_env(name: str, default: T, cast: Callable[[str], T]) -> T:
    """Read a positive number from the environment, falling back to the default."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning(
            f'Invalid value for {name} environment variable: {raw!r}. Using default: {default}'
        )
        return default
    if not math.isfinite(value) or value <= 0:
        logger.warning(
            f'{name} must be a positive finite number, got {value}. Using default: {default}'
        )
        return default
    return value


def get_max_attempts() -> int:
    """Total write attempts for optimistic-locking mutations."""
    return _positive_from_env(MAX_ATTEMPTS_ENV, DEFAULT_MAX_ATTEMPTS, int)


def get_eval_poll_interval() -> float:
    """Seconds to wait before each evaluation poll."""
    return _positive_from_env(EVAL_POLL_INTERVAL_ENV, DEFAULT_EVAL_POLL_INTERVAL, float)


def get_eval_max_poll_time() -> float:
    """Wall-clock ceiling in seconds for the evaluation poll loop."""
    return _positive_from_env(EVAL_MAX_POLL_TIME_ENV, DEFAULT_EVAL_MAX_POLL_TIME, float)


def get_eval_default_timeout_ms() -> int:
    """Default request timeout hint sent with evaluation:start."""
    return _positive_from_env(EVAL_DEFAULT_TIMEOUT_MS_ENV, DEFAULT_EVAL_TIMEOUT_MS, int)
