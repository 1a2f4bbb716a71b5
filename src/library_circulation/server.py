"""Library circulation server - FastMCP entry point.

Startup builds, in order: configuration, logging, observability, the
database manager, the consistency coordinator and the circulation service.
The service is then handed to the tool builders and every tool is
registered with FastMCP. Shutdown disposes the database engine.
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .config import ServerConfig, get_config
from .database.coordinator import ConsistencyCoordinator
from .database.session import DatabaseManager
from .observability import initialize_observability
from .service import CirculationService
from .tools import build_all_tools

logger = logging.getLogger(__name__)

FASTMCP_TRANSPORTS = {"stdio": "stdio", "streamable_http": "streamable-http"}


def configure_logging(config: ServerConfig) -> None:
    logging.basicConfig(
        level=logging.DEBUG if config.debug else getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr)
        ],  # stdout carries the stdio transport
    )
    if not config.is_development:
        logging.getLogger("fastmcp").setLevel(logging.WARNING)


def create_server(
    config: ServerConfig | None = None, db_manager: DatabaseManager | None = None
) -> tuple[FastMCP, DatabaseManager]:
    """
    Build the FastMCP server and the database manager it depends on.

    Args:
        config: Server settings; defaults to the process-wide configuration
        db_manager: Pre-built database manager, mainly for tests

    Returns:
        The server with every circulation tool registered, and the database
        manager the caller must close on shutdown
    """
    config = config or get_config()
    db_manager = db_manager or DatabaseManager(config=config)
    db_manager.init_database()

    service = CirculationService(db_manager, ConsistencyCoordinator(db_manager, config), config)

    mcp = FastMCP(
        name=config.server_name,
        version=config.server_version,
        instructions=(
            "Library circulation server. Reserve, borrow, return and cancel loans, "
            "pay fines, and manage wishlists and reviews. Every tool takes the "
            "caller's verified requester_id and requester_role."
        ),
    )

    tools = build_all_tools(service)
    for tool in tools:
        logger.debug("Registering tool: %s", tool["name"])
        mcp.tool(name=tool["name"], description=tool["description"])(tool["handler"])
    logger.info("Registered %d tools", len(tools))

    return mcp, db_manager


def main() -> None:
    """Main entry point for the ``library-circulation`` command."""
    config = get_config()
    configure_logging(config)
    initialize_observability()

    mcp, db_manager = create_server(config)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info(
        "Starting %s v%s on %s transport",
        config.server_name,
        config.server_version,
        config.transport,
    )
    try:
        mcp.run(transport=FASTMCP_TRANSPORTS[config.transport])
    except Exception:
        logger.exception("Fatal error in circulation server")
        sys.exit(1)
    finally:
        db_manager.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
