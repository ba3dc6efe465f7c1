"""Schemas for newsletter subscription."""
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

# Public form fields screened for injection signatures
TRACKED_NEWSLETTER_FIELDS = ("email", "name")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class NewsletterSubscribe(BaseModel):
    email: str = Field(..., max_length=255)
    name: Optional[str] = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError("Please enter a valid email address")
        return v

    @field_validator("name")
    @classmethod
    def blank_name_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class SubscriberResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
