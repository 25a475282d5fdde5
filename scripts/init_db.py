"""
Create all database tables.

Usage:
    python -m scripts.init_db
"""

import asyncio
import logging

from core.database import engine, init_models
from core.logging import setup_logging

logger = logging.getLogger(__name__)


async def init_database():
    logger.info("Connecting to database...")
    try:
        await init_models()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
