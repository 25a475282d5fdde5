from sqlalchemy import Column, Integer, String, Text, UniqueConstraint
from models.base import Base, FeedKindColumn, UTCDateTime, utcnow


class SourceSyncState(Base):
    """
    Conditional-fetch bookkeeping per feed instance.

    Purpose:
    - Carry HTTP validators (ETag, Last-Modified) between runs
    - Detect content changes via a body hash when validators are missing
    - Gate checks by interval using ``last_checked_at``

    Design:
    - One row per (file_kind, year); year is 0 for non-yearly feeds
    - Written once per check whatever the outcome, except interval skips
    - ``last_changed_at`` only advances when ``content_hash`` changes
    """
    __tablename__ = "source_sync_states"

    id = Column(Integer, primary_key=True, autoincrement=True)

    file_kind = Column(FeedKindColumn, nullable=False)
    year = Column(Integer, nullable=False, default=0)
    url = Column(Text, nullable=False)

    # HTTP validators and content fingerprint
    etag = Column(String(255), nullable=True)
    last_modified = Column(String(64), nullable=True)
    content_hash = Column(String(64), nullable=True)
    content_length = Column(Integer, nullable=True)

    # Last check
    last_status_code = Column(Integer, nullable=True)
    last_checked_at = Column(UTCDateTime, nullable=True, index=True)
    last_changed_at = Column(UTCDateTime, nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("file_kind", "year", name="uq_source_sync_state_kind_year"),
    )
