"""Location unlock audit log — one row per reveal decision, manual or scheduled."""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text, Enum as SAEnum

from app.database import Base


class UnlockAction(str, enum.Enum):
    unlocked = "unlocked"
    skipped = "skipped"
    error = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocationUnlockLog(Base):
    __tablename__ = "location_unlock_logs"

    log_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), nullable=False, index=True)
    event_title = Column(String(255), nullable=True)
    action = Column(SAEnum(UnlockAction), nullable=False)
    details = Column(Text, nullable=True)
    logged_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
