"""Pydantic schemas for join requests."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.join_request import RequestStatus


class JoinRequestSubmit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Optional so a missing id maps to MISSING_EVENT_ID rather than a generic validation error
    event_id: Optional[str] = Field(None, alias="eventId")
    message: Optional[str] = Field(None, max_length=2000)


class JoinRequestDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    request_id: Optional[str] = Field(None, alias="requestId")
    note: Optional[str] = Field(None, max_length=2000)


class JoinRequestOut(BaseModel):
    request_id: str
    event_id: str
    requester_id: str
    status: RequestStatus
    message: Optional[str] = None
    rejection_note: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
