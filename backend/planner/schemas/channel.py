from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import Field, model_validator

from planner.models.channel import ChannelVisibility
from planner.schemas.common import CamelModel

HEX_COLOR_PATTERN = r"^#(?:[0-9a-fA-F]{3}){1,2}$"


class CreateChannelRequest(CamelModel):
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    visibility: ChannelVisibility = ChannelVisibility.PRIVATE
    target_calendar_id: Optional[str] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)


class UpdateChannelRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    visibility: Optional[ChannelVisibility] = None
    target_calendar_id: Optional[str] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)

    @model_validator(mode="after")
    def check_changes(self):
        if not self.model_fields_set:
            raise ValueError("No changes provided")
        return self


class ChannelResponse(CamelModel):
    id: UUID
    user_id: UUID
    name: str
    visibility: str
    target_calendar_id: Optional[str] = None
    color: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
