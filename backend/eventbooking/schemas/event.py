"""
Pydantic schemas for event-related input and cached read models.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=2000)
    venue_info: str = Field("", max_length=255)
    price_minor: int = Field(..., ge=0)
    capacity: int = Field(..., gt=0, le=1_000_000)
    is_active: bool = True
    category_id: Optional[int] = None
    tag_ids: list[int] = Field(default_factory=list)


class EventUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    venue_info: Optional[str] = Field(None, max_length=255)
    price_minor: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    category_id: Optional[int] = None
    tag_ids: Optional[list[int]] = None


class EventResponse(BaseModel):
    id: int
    name: str
    description: str
    venue_info: str
    price_minor: int
    capacity: int
    available_tickets: int
    is_active: bool
    version: int
    category_id: Optional[int]
    tag_ids: list[int]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
