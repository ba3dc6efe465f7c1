"""
Result envelope returned by audited actions.
"""
from typing import Any, Dict, Literal, Optional

from fastapi import status
from pydantic import BaseModel


class ActionCode:
    """Machine-readable error codes carried on failed action results."""
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    INJECTION_BLOCKED = "INJECTION_BLOCKED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    VALIDATION = "VALIDATION"
    INTERNAL = "INTERNAL"


ACTION_CODE_STATUS: Dict[str, int] = {
    ActionCode.NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
    ActionCode.INJECTION_BLOCKED: status.HTTP_403_FORBIDDEN,
    ActionCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ActionCode.CONFLICT: status.HTTP_409_CONFLICT,
    ActionCode.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ActionCode.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ActionResult(BaseModel):
    status: Literal["success", "error"]
    message: str
    data: Optional[Any] = None
    code: Optional[str] = None
    reference_id: Optional[str] = None  # set on sanitized internal failures

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ActionResult":
        return cls(status="success", message=message, data=data)

    @classmethod
    def error(cls, message: str, code: str, reference_id: Optional[str] = None) -> "ActionResult":
        return cls(status="error", message=message, code=code, reference_id=reference_id)

    @property
    def http_status(self) -> int:
        if self.status == "success":
            return status.HTTP_200_OK
        return ACTION_CODE_STATUS.get(self.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
