"""
On-demand Terviseamet sync trigger
"""

from typing import Optional
import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from api.dependencies import get_settings, get_sync_runner
from core.config import Settings
from core.exceptions import SyncAlreadyRunningError
from ingestion.runner import SyncRunner
from schemas.api import ErrorResponse, SyncSummary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/water-quality", tags=["Water Quality"])


def verify_sync_token(
    x_sync_token: Optional[str] = Header(None, alias="X-Sync-Token"),
    config: Settings = Depends(get_settings),
) -> None:
    """
    Require ``X-Sync-Token`` to match ``SYNC_API_TOKEN``.

    Without a configured token the endpoint is open only when
    ``ALLOW_UNAUTHENTICATED_SYNC`` is set outside production.
    """
    expected = config.SYNC_API_TOKEN
    if expected:
        if x_sync_token and hmac.compare_digest(x_sync_token.encode("utf-8"), expected.encode("utf-8")):
            return
        logger.warning("Rejected sync trigger with missing or invalid token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid sync token")

    if config.ALLOW_UNAUTHENTICATED_SYNC and not config.is_production:
        return

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sync token is not configured")


@router.post(
    "/sync",
    response_model=SyncSummary,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_sync_token)],
    responses={401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def trigger_sync(
    force: bool = Query(True, description="Bypass per-feed refresh intervals"),
    runner: SyncRunner = Depends(get_sync_runner),
):
    """
    Run a Terviseamet sync now and return its summary.

    Returns 409 while another run (scheduled or manual) is in progress.
    """
    try:
        return await runner.sync_from_terviseamet(force=force)
    except SyncAlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
