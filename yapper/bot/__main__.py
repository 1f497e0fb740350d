"""
yapper.bot.__main__ — Entry point for ``python -m yapper.bot``
==============================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Create the Redis client that holds the XP buffers.
5. Create the YapperBot and hand it config + engine + Redis.
6. Start the bot (blocking — runs the asyncio event loop).

Run with::

    python -m yapper.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv
from redis.asyncio import Redis

from yapper.bot.core import YapperBot
from yapper.config import load_config
from yapper.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("yapper")

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def main() -> None:
    """Bootstrap and run the Yapper bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Soft configuration.
    cfg = load_config()
    logger.info(
        "Config loaded — %s (XP sync every %.0fs)",
        cfg.community_name, cfg.xp.sync_interval_seconds,
    )

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Redis (XP write buffer).
    redis_url = os.getenv("REDIS_URL", DEFAULT_REDIS_URL)
    redis = Redis.from_url(redis_url, decode_responses=True, socket_timeout=5)
    logger.info("Redis client configured → %s", redis_url.rsplit("@", 1)[-1])

    # 5. Bot.
    bot = YapperBot(cfg=cfg, engine=engine, redis=redis)

    # 6. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting Yapper bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
