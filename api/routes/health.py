"""
Health check endpoint with database and feed sync status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, FeedStateInfo
from models.source_sync_state import SourceSyncState
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Conditional-fetch state of every known feed
    """

    db_connected = False
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection failed: {str(e)}")

    feeds = []
    if db_connected:
        try:
            result = await db.execute(
                select(SourceSyncState).order_by(SourceSyncState.file_kind, SourceSyncState.year.desc())
            )
            feeds = [FeedStateInfo.model_validate(state) for state in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch feed sync states: {str(e)}")

    return HealthCheckResponse(
        database_connected=db_connected,
        feeds=feeds,
        total_feeds=len(feeds),
        failing_feeds=sum(1 for feed in feeds if feed.last_error),
    )
