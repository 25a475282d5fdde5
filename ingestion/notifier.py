"""
Notification collaborator for status changes.

Delivery (web push, e-mail) lives outside the sync pipeline; the runner
only needs something that accepts one call per subscribed user.
"""

from abc import ABC, abstractmethod
import logging

from models.base import QualityStatus

logger = logging.getLogger(__name__)


class StatusNotifier(ABC):
    """Receives one call per subscriber when a place's status transitions."""

    @abstractmethod
    async def notify_status_change(
        self,
        user_id: str,
        place_id: int,
        place_name: str,
        previous_status: QualityStatus,
        current_status: QualityStatus,
    ) -> None:
        """Queue an alert; fire-and-forget from the caller's perspective."""


class LoggingStatusNotifier(StatusNotifier):
    """Default notifier: records the alert in the application log."""

    async def notify_status_change(
        self,
        user_id: str,
        place_id: int,
        place_name: str,
        previous_status: QualityStatus,
        current_status: QualityStatus,
    ) -> None:
        logger.info(
            f"Queueing status alert for user={user_id}, place={place_id} ({place_name}), "
            f"{QualityStatus(previous_status).value}->{QualityStatus(current_status).value}"
        )
