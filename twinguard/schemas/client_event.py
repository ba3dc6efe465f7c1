"""Schemas for client-side security events."""
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ClientEventRequest(BaseModel):
    type: Optional[Any] = None  # e.g. "DEVTOOLS_DETECTED"; normalized by the logger
    metadata: Optional[Dict[str, Any]] = None


class ClientEventResponse(BaseModel):
    success: bool
