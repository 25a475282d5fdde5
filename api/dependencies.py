"""
FastAPI dependencies
"""

from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, settings
from core.database import async_session_maker
from ingestion.notifier import LoggingStatusNotifier, StatusNotifier
from ingestion.runner import SyncRunner


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session per request"""
    async with async_session_maker() as session:
        yield session


def get_settings() -> Settings:
    return settings


def get_notifier() -> StatusNotifier:
    return LoggingStatusNotifier()


async def get_sync_runner(
    db: AsyncSession = Depends(get_db),
    config: Settings = Depends(get_settings),
    notifier: StatusNotifier = Depends(get_notifier),
) -> SyncRunner:
    return SyncRunner(db, config=config, notifier=notifier)
