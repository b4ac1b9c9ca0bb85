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

"""Configuration loading for the Dynatrace Platform MCP server."""

import os
import yaml
from .consts import (
    APPS_DOMAIN,
    BASE_URL_ENV,
    BASE_URL_FALLBACK_ENV,
    CONFIG_FILE_ENV,
    DEBUG_ENV,
    DEFAULT_CONFIG_FILE,
    DEFAULT_EVAL_MAX_POLL_TIME,
    DEFAULT_EVAL_POLL_INTERVAL,
    DEFAULT_EVAL_TIMEOUT_MS,
    DEFAULT_MAX_ATTEMPTS,
    LIVE_DOMAIN,
    PLATFORM_TOKEN_ENV,
    PLATFORM_TOKEN_FALLBACK_ENV,
    get_eval_default_timeout_ms,
    get_eval_max_poll_time,
    get_eval_poll_interval,
    get_max_attempts,
)
from .errors import ConfigurationError
from dataclasses import dataclass, field
from loguru import logger
from typing import Dict, Optional


@dataclass
class SLOPolicy:
    """Tuning knobs for the SLO retry and evaluation loops."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    poll_interval: float = DEFAULT_EVAL_POLL_INTERVAL
    max_poll_time: float = DEFAULT_EVAL_MAX_POLL_TIME
    default_timeout_ms: int = DEFAULT_EVAL_TIMEOUT_MS

    @classmethod
    def from_env(cls) -> 'SLOPolicy':
        """Build the policy from environment overrides."""
        return cls(
            max_attempts=get_max_attempts(),
            poll_interval=get_eval_poll_interval(),
            max_poll_time=get_eval_max_poll_time(),
            default_timeout_ms=get_eval_default_timeout_ms(),
        )


@dataclass
class Config:
    """Server configuration."""

    base_url: str = ''
    platform_token: str = ''
    debug: bool = False
    tools: Dict[str, bool] = field(default_factory=dict)
    policy: SLOPolicy = field(default_factory=SLOPolicy)

    @property
    def apps_url(self) -> str:
        """Base URL for platform APIs, which are served from the apps domain."""
        if APPS_DOMAIN in self.base_url:
            return self.base_url
        return self.base_url.replace(LIVE_DOMAIN, APPS_DOMAIN, 1)

    def is_enabled(self, tool_name: str) -> bool:
        """Tools absent from the config file default to enabled."""
        return self.tools.get(tool_name, True)

    def validate(self) -> None:
        """Validate and normalize the configuration."""
        if not self.base_url:
            raise ConfigurationError(
                f'{BASE_URL_ENV} or {BASE_URL_FALLBACK_ENV} environment variable is required'
            )
        if not self.platform_token:
            raise ConfigurationError(
                f'{PLATFORM_TOKEN_ENV} or {PLATFORM_TOKEN_FALLBACK_ENV} environment variable is required'
            )

        self.base_url = self.base_url.rstrip('/')

        if not self.base_url.startswith('https://'):
            raise ConfigurationError(f'Base URL must start with https://: {self.base_url}')


def load_tool_settings(path: str) -> Dict[str, bool]:
    """Read tool enable/disable flags from a YAML file.

    The file looks like::

        tools:
          dt_slo_delete:
            enabled: false

    A missing file is not an error; every tool is then enabled.
    """
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.debug(f'No tool config file at {path}, all tools enabled')
        return {}
    except OSError as e:
        raise ConfigurationError(f'Reading config file {path!r}: {e}') from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f'Parsing config file {path!r}: {e}') from e

    if not data:
        return {}
    if not isinstance(data, dict) or not isinstance(data.get('tools') or {}, dict):
        raise ConfigurationError(f'Parsing config file {path!r}: expected a "tools" mapping')

    settings = {}
    for name, tool_config in (data.get('tools') or {}).items():
        if not isinstance(tool_config, dict):
            continue
        enabled = tool_config.get('enabled')
        if enabled is None:
            continue
        settings[str(name)] = bool(enabled)
    return settings


def load_config(config_file: Optional[str] = None) -> Config:
    """Load configuration from environment variables and the optional YAML file."""
    base_url = os.environ.get(BASE_URL_ENV) or os.environ.get(BASE_URL_FALLBACK_ENV, '')
    token = os.environ.get(PLATFORM_TOKEN_ENV) or os.environ.get(PLATFORM_TOKEN_FALLBACK_ENV, '')

    path = config_file or os.environ.get(CONFIG_FILE_ENV) or DEFAULT_CONFIG_FILE

    return Config(
        base_url=base_url,
        platform_token=token,
        debug=os.environ.get(DEBUG_ENV, '').lower() == 'true',
        tools=load_tool_settings(path),
        policy=SLOPolicy.from_env(),
    )
