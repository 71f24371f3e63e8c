from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class QueueSlotCreateBody(BaseModel):
    dayOfWeek: int = Field(ge=1, le=7)  # 1=Mon .. 7=Sun
    time: str = Field(pattern=r"^([01]\d|2[0-3]):([0-5]\d)$")
    platform: Optional[str] = None
    capacity: int = Field(default=1, ge=1)
    isActive: bool = True


class QueueSlotUpdateBody(BaseModel):
    dayOfWeek: Optional[int] = Field(None, ge=1, le=7)
    time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):([0-5]\d)$")
    platform: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)
    isActive: Optional[bool] = None


class QueueSlotResponse(BaseModel):
    id: UUID
    workspaceId: UUID = Field(alias="workspace_id", serialization_alias="workspaceId")
    dayOfWeek: int = Field(alias="day_of_week", serialization_alias="dayOfWeek")
    time: str
    platform: Optional[str] = None
    capacity: int
    isActive: bool = Field(alias="is_active", serialization_alias="isActive")

    model_config = {"from_attributes": True, "populate_by_name": True}


class GenerateDefaultSlotsBody(BaseModel):
    times: list[str] = Field(min_length=1)
    days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    platform: Optional[str] = None


class PreviewQueueBody(BaseModel):
    platform: Optional[str] = None
    from_: Optional[datetime] = Field(None, alias="from")
    days: int = Field(default=30, ge=1, le=90)
    count: int = Field(default=10, ge=1, le=50)

    model_config = {"populate_by_name": True}


class SlotPreviewResponse(BaseModel):
    timezone: str
    results: list[datetime]
