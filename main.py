# =============================================================================
# main.py  -  Entry Point for the Personio MCP Server
# =============================================================================
#
# HOW TO RUN:
#   uv run python main.py          (or the `personio-mcp` console script)
#
# WHAT HAPPENS:
#   1. Loads .env (PERSONIO_API_KEY or PERSONIO_CLIENT_ID/SECRET, ...)
#   2. Builds and validates PersonioConfig from the environment
#   3. Creates the PersonioContext (HTTP client, auth, cache, throttle)
#   4. Builds the FastMCP server and serves it over stdio
#
# A bad configuration stops the process with exit code 1 before anything
# connects to Personio.
# =============================================================================

import logging
import os
import sys

from dotenv import load_dotenv

from personio.config import PersonioConfig
from personio.context import PersonioContext
from personio.errors import ConfigurationError
from personio_mcp.server import configure_logging, create_server

logger = logging.getLogger("personio_mcp")


def main() -> None:
    # Must run before from_env() so .env values are visible
    load_dotenv()
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    try:
        config = PersonioConfig.from_env()
    except ConfigurationError as exc:
        logger.error(f"Invalid configuration: {exc}")
        logger.error("Please create a .env file based on .env.example")
        sys.exit(1)

    mode = "static API key" if config.uses_static_key else "OAuth client credentials"
    logger.info(f"Starting Personio MCP server ({mode}, {config.api_base_url})")

    context = PersonioContext(config)
    mcp = create_server(context)
    mcp.run()


# =============================================================================
# Script entry point
# =============================================================================
if __name__ == "__main__":
    main()
