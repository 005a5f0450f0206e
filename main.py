#!/usr/bin/env python3
"""
Bastion - Entry Point
=====================

Guild protection bot: audit-log driven anti-nuke modules, invite
tracking and membership logging.

Usage:
    python main.py                         # run
    python main.py --publish               # run and sync commands globally
    python main.py --publish 123 456       # run and sync commands to guilds
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from dotenv import load_dotenv

from bastion.core.logger import logger
from bastion.core.config import ConfigValidationError, get_config, validate_and_log_config


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Bastion guild protection bot.")
    parser.add_argument(
        "--publish",
        nargs="*",
        type=int,
        metavar="GUILD_ID",
        help="Sync slash commands; globally with no IDs, else to each listed guild",
    )
    return parser.parse_args(argv)


async def main(publish_guild_ids: Optional[List[int]] = None) -> None:
    """
    Validate configuration, then run the bot until it disconnects.

    Raises:
        SystemExit: If configuration is invalid.
    """
    try:
        validate_and_log_config()
    except ConfigValidationError as e:
        logger.error("Configuration Invalid", [("Error", str(e))])
        sys.exit(1)

    from bastion.bot import BastionBot

    logger.tree("BASTION STARTING", [
        ("Publish", "No" if publish_guild_ids is None else (
            ", ".join(map(str, publish_guild_ids)) or "Global"
        )),
    ], emoji="🛡️")

    async with BastionBot(publish_guild_ids=publish_guild_ids) as bot:
        await bot.start(get_config().discord_token)


if __name__ == "__main__":
    load_dotenv()
    args = parse_args()

    try:
        asyncio.run(main(args.publish))
    except KeyboardInterrupt:
        logger.info("Bot stopped by user (Ctrl+C)")
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}")
        sys.exit(1)
