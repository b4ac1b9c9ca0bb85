#!/usr/bin/env python3
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

"""Main entry point for the Dynatrace Platform MCP server."""

import argparse
import asyncio
import os
import sys
from .config import load_config
from .consts import DEFAULT_LOG_LEVEL, LOG_LEVEL_ENV
from .server import create_dynatrace_server
from loguru import logger
from mcp.server.stdio import stdio_server


# Configure logging
logger.remove()
logger.add(sys.stderr, level=os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL))


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Dynatrace Platform MCP Server')
    parser.add_argument(
        '--readonly',
        action='store_true',
        help='Run server in read-only mode (prevents all mutating operations)',
    )
    parser.add_argument(
        '--config',
        default=None,
        help='Path to the YAML tool configuration file (overrides DYNATRACE_CONFIG_FILE)',
    )
    return parser.parse_args()


async def main() -> None:
    """Main entry point for the server."""
    try:
        args = parse_args()

        config = load_config(args.config)
        config.validate()

        if config.debug:
            logger.remove()
            logger.add(sys.stderr, level='DEBUG')

        server = create_dynatrace_server(config, read_only=args.readonly)

        if args.readonly:
            logger.info('Server started in READ-ONLY mode - mutating operations disabled')
        else:
            logger.info('Server started in FULL ACCESS mode')

        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    except Exception as e:
        logger.error(f'Server error: {e}')
        raise


def sync_main() -> None:
    """Synchronous wrapper for the main function."""
    asyncio.run(main())


if __name__ == '__main__':
    sync_main()
