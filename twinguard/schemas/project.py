"""Schemas for portfolio projects."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

# Fields screened for injection signatures before a project is created
TRACKED_PROJECT_FIELDS = ("title", "description", "icon", "items")


class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1, max_length=5000)
    icon: Optional[str] = Field(default=None, max_length=100)
    items: List[str] = Field(default_factory=list, max_length=50)


class ProjectResponse(BaseModel):
    id: int
    title: str
    description: str
    icon: Optional[str] = None
    items: List[str] = []
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
