"""Pydantic schemas for the notification queue and its admin actions."""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.notification import NotificationKind, QueueStatus


class NotificationEnqueue(BaseModel):
    """Accepts both snake_case and camelCase references."""

    model_config = ConfigDict(populate_by_name=True)

    kind: NotificationKind
    event_id: str = Field(alias="eventId", min_length=1)
    join_request_id: Optional[str] = Field(None, alias="joinRequestId")
    requester_id: Optional[str] = Field(None, alias="requesterId")
    user_id: Optional[str] = Field(None, alias="userId")
    payload: dict[str, Any] = Field(default_factory=dict)


class QueueAdminAction(BaseModel):
    action: Literal["peek", "requeue_failed", "requeue_one"]
    limit: Optional[int] = None
    kind: Optional[NotificationKind] = None
    event_id: Optional[str] = None
    since_hours: Optional[int] = None
    reset_attempts: bool = False
    queue_id: Optional[str] = None


class QueueItemOut(BaseModel):
    queue_id: str
    kind: NotificationKind
    event_id: str
    join_request_id: Optional[str] = None
    requester_id: Optional[str] = None
    user_id: Optional[str] = None
    payload: dict[str, Any]
    status: QueueStatus
    attempts: int
    last_error: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
