from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import AppConfig, load_config, setup_logging
from .errors import ConfigError
from .mcp_server import main as mcp_main
from .openrouter import VisionClient

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="visionmcp",
        description="MCP server for image analysis with OpenRouter vision models.",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser(
        "serve",
        help="Run the MCP server over stdio (default when no command is given).",
    )
    subparsers.add_parser(
        "check",
        help="Check API connectivity and that the configured model is available.",
    )
    return parser


async def _check(config: AppConfig) -> bool:
    client = VisionClient(config.api_key, config.model, config.base_url)
    try:
        connected = await client.test_connection()
        print(f"connection: {'ok' if connected else 'FAILED'} ({config.base_url})")
        if not connected:
            return False
        valid = await client.validate_model(config.model)
        print(f"model: {'ok' if valid else 'NOT FOUND'} ({config.model})")
        return valid
    finally:
        await client.aclose()


def check_command(config: AppConfig) -> int:
    setup_logging(config.log_level)
    return 0 if asyncio.run(_check(config)) else 1


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    try:
        config = load_config()
    except ConfigError as exc:
        setup_logging()
        log.error("Failed to start server: %s", exc)
        sys.exit(1)
    if args.command in (None, "serve"):
        mcp_main(config)
        return
    if args.command == "check":
        sys.exit(check_command(config))
    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
