"""Pydantic schemas for event location unlock."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LocationUnlock(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: Optional[str] = Field(None, alias="eventId")
