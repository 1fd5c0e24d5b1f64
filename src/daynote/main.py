#!/usr/bin/env python
"""Main entry point for the day journal MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path

from daynote.app import JournalApp
from daynote.config import config
from daynote.exceptions import StorageInitError
from daynote.observability import configure_logging
from daynote.server.mcp_server import JournalMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Day journal MCP server")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("DAYNOTE_DATABASE_PATH"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("DAYNOTE_LOG_LEVEL", "INFO"),
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files (default: ~/.daynote/logs)",
        type=str,
        default=os.environ.get("DAYNOTE_LOG_DIR"),
    )
    parser.add_argument(
        "--no-backfill",
        help="Skip the background embedding backfill at startup",
        action="store_true",
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.no_backfill:
        config.backfill_on_startup = False


def main(argv=None):
    """Run the day journal MCP server."""
    args = parse_args(argv)
    update_config(args)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=args.log_dir, level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    # Initialize storage; the journal cannot run without it
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        app = JournalApp(config)
        app.startup()
    except StorageInitError as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting day journal MCP server")
        server = JournalMcpServer(app)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
