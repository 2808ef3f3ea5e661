"""Event ORM model — host-owned, capacity-limited gathering."""
import uuid
from datetime import datetime, timezone
from typing import Optional

import pytz
from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Integer, String, Time
from sqlalchemy.orm import relationship

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (CheckConstraint("capacity >= 0", name="ck_events_capacity_non_negative"),)

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    host_user_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    capacity = Column(Integer, nullable=False, default=0)
    event_date = Column("date", Date, nullable=False)
    event_time = Column("time", Time, nullable=False)
    timezone = Column(String(50), nullable=False, default="UTC")  # IANA tz of date/time
    place_hint = Column(String(255), nullable=True)
    place_exact = Column(String(500), nullable=True)
    exact_location_visible = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    attendees = relationship("Attendee", back_populates="event", cascade="all, delete-orphan")
    join_requests = relationship("JoinRequest", back_populates="event", cascade="all, delete-orphan")

    def starts_at_utc(self) -> datetime:
        """Localise the stored date+time in the event's timezone and convert to UTC."""
        tz = pytz.timezone(self.timezone or "UTC")
        local = tz.localize(datetime.combine(self.event_date, self.event_time))
        return local.astimezone(pytz.utc)

    def has_started(self, now: Optional[datetime] = None) -> bool:
        return self.starts_at_utc() <= (now or _utcnow())

    def starts_at_label(self) -> str:
        """Human-readable local start used in notice copy, e.g. 'Sat, Nov 14 2026 19:30'."""
        return datetime.combine(self.event_date, self.event_time).strftime("%a, %b %d %Y %H:%M")
