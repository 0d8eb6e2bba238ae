#!/usr/bin/env python3
"""
Festival medal board server.
Serves the public scoreboard and the admin JSON API over HTTP.
"""

import argparse
import asyncio
import os
from pathlib import Path

from medalboard.config import BoardConfig
from medalboard.logger import configure_logging, get_logger
from medalboard.scoreboard import ScoreboardSystem

log = get_logger("app")


async def main():
    """Main function with command line interface."""

    parser = argparse.ArgumentParser(
        description="Festival medal board server with web interface and JSON API",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--web-port",
        type=int,
        default=int(os.getenv("WEB_PORT", "8081")),
        help="Web interface port (env: WEB_PORT)"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (env: HOST)"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "medalboard.json"),
        help="Configuration file path (env: CONFIG_PATH)"
    )
    parser.add_argument(
        "--storage",
        choices=["memory", "sqlite"],
        default=None,
        help="Storage backend, overrides the config file"
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database file path, overrides the config file"
    )

    args = parser.parse_args()

    config_path = Path(args.config)

    if config_path.exists() and not config_path.is_file():
        print(f"Error: {args.config} exists but is not a file")
        return

    config = BoardConfig(args.config)
    if args.storage:
        config.config["storage"]["backend"] = args.storage
    if args.db:
        config.config["storage"]["db_path"] = args.db

    configure_logging(config.get("logging", "level"), config.get("logging", "file"))

    system = ScoreboardSystem(
        host=args.host,
        web_port=args.web_port,
        config=config,
    )

    runner = await system.start_web_server()
    log.info("%s running, press Ctrl+C to stop", config.get("festival_name"))

    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nServer interrupted")
