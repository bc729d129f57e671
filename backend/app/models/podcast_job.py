from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, Text
from sqlalchemy.types import JSON # Using generic JSON type for SQLite compatibility

from app.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PodcastJob(Base):
    """
    SQLAlchemy model for the 'podcast_jobs' table.

    One row tracks a single podcast through script generation and, later,
    audio generation. The script and options are stored as JSON documents.
    'estimated_duration' comes from the script text; 'duration' is measured
    on the stitched audio and is only set together with 'audio_url'.
    """
    __tablename__ = "podcast_jobs"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    content_id = Column(String, nullable=True, index=True)
    status = Column(String, nullable=False, default="pending", index=True)
    progress = Column(Integer, nullable=False, default=0)
    options = Column(JSON, nullable=False)
    script = Column(JSON, nullable=True)
    estimated_duration = Column(Integer, nullable=True)
    audio_url = Column(String, nullable=True)
    duration = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
