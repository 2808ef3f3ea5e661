"""Notification queue and delivery log ORM models.

The queue is an append-only audit trail: rows are never deleted by normal
flow, only their status/attempts/last_error move.
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text, Enum as SAEnum

from app.database import Base


class NotificationKind(str, enum.Enum):
    request_created = "request_created"
    approved = "approved"
    rejected = "rejected"
    location_unlocked = "location_unlocked"


class QueueStatus(str, enum.Enum):
    queued = "queued"
    processing = "processing"
    sent = "sent"
    failed = "failed"


class DeliveryStatus(str, enum.Enum):
    sent = "sent"
    failed = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationQueueItem(Base):
    __tablename__ = "notifications_queue"

    queue_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(SAEnum(NotificationKind), nullable=False)
    event_id = Column(String(36), nullable=False, index=True)
    join_request_id = Column(String(36), nullable=True)
    requester_id = Column(String(36), nullable=True)
    user_id = Column(String(36), nullable=True)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(SAEnum(QueueStatus), nullable=False, default=QueueStatus.queued, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class NotificationLog(Base):
    __tablename__ = "notifications_log"

    log_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    queue_id = Column(String(36), nullable=True, index=True)
    kind = Column(SAEnum(NotificationKind), nullable=False)
    event_id = Column(String(36), nullable=True)
    recipient_user_id = Column(String(36), nullable=True)
    recipient_email = Column(String(320), nullable=True)
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=True)
    ai_used = Column(Boolean, nullable=False, default=False)
    provider = Column(String(32), nullable=False, default="resend")
    provider_message_id = Column(String(255), nullable=True)
    status = Column(SAEnum(DeliveryStatus), nullable=False)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
