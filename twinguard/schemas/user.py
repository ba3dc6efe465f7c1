"""Schemas for users and role management."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserRoleUpdate(BaseModel):
    """Request schema for changing a user's role. Checked inside the action, after the admin guard."""
    email: Optional[str] = None
    role: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    external_id: Optional[str] = None
    email: str
    name: Optional[str] = None
    role: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
