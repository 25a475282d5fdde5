from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, UniqueConstraint
from models.base import Base, UTCDateTime, utcnow


class NotificationPreference(Base):
    """A user's subscription to status alerts for one place."""
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    place_id = Column(Integer, ForeignKey("places.id", ondelete="CASCADE"), nullable=False, index=True)

    enabled = Column(Boolean, nullable=False, default=True)
    quality_change_alert = Column(Boolean, nullable=False, default=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "place_id", name="uq_notification_user_place"),
    )
