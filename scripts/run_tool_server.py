"""Serve the directory tools over stdin/stdout, one JSON message per line.

Logs go to stderr; stdout carries protocol frames only.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from business_directory.config import configure_logging, load_config
from business_directory.db import Database
from business_directory.tools import ToolDispatcher

logger = logging.getLogger("run_tool_server")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the directory tool server on stdio")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    config = load_config()
    configure_logging(args.log_level or config.log_level)
    database = Database.from_config(config)
    dispatcher = ToolDispatcher(database, rating_sort=config.rating_sort_mode)
    logger.info("Tool server ready with %d tools", len(dispatcher.tools))
    try:
        dispatcher.serve(sys.stdin, sys.stdout)
    finally:
        database.dispose()


if __name__ == "__main__":
    main()
