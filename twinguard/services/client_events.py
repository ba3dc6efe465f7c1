"""
Client-side security event logging (devtools, copy, view-source, ...).

Events are deterrence telemetry from the browser. They are appended straight
to the attack log with no geo lookup so the call returns immediately, and the
call never fails the caller: the page keeps working even if logging breaks.
"""
import logging
import re
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from twinguard.services.attack_store import AttackRecordStore

logger = logging.getLogger(__name__)

CLIENT_PREFIX = "CLIENT"
DEFAULT_CLIENT_SEVERITY = 3
MAX_EVENT_TYPE_LENGTH = 64

CLIENT_EVENT_SEVERITY: Dict[str, int] = {
    "DEVTOOLS_DETECTED": 5,
    "COPY_ATTEMPT": 4,
    "VIEW_SOURCE_ATTEMPT": 5,
    "SAVE_PAGE_ATTEMPT": 5,
    "KEYBOARD_SHORTCUT_BLOCKED": 4,
    "RIGHT_CLICK_BLOCKED": 3,
}

_INVALID_CHARS = re.compile(r"[^A-Z0-9_]")


def normalize_event_type(event_type: Any) -> str:
    """Upper-case, strip to [A-Z0-9_] and cap the length; empty becomes UNKNOWN."""
    cleaned = _INVALID_CHARS.sub("", str(event_type or "").strip().upper().replace("-", "_"))
    return cleaned[:MAX_EVENT_TYPE_LENGTH] or "UNKNOWN"


def client_event_severity(event_type: str) -> int:
    return CLIENT_EVENT_SEVERITY.get(event_type, DEFAULT_CLIENT_SEVERITY)


def log_client_event(
    db: Session,
    event_type: Any,
    metadata: Optional[Dict[str, Any]] = None,
    ip: Optional[str] = None,
) -> Dict[str, bool]:
    """
    Record one client security event as a ``CLIENT:<type>`` attack record.

    Returns:
        {"success": True} if the record was written, {"success": False} otherwise.
    """
    try:
        normalized = normalize_event_type(event_type)
        severity = client_event_severity(normalized)
        AttackRecordStore(db).insert(ip, f"{CLIENT_PREFIX}:{normalized}", severity)
        logger.info(
            f"[CLIENT_SECURITY] Logged: {normalized} from {ip or 'unknown'} (severity: {severity})"
            + (f" metadata keys={sorted(metadata)}" if metadata else "")
        )
        return {"success": True}
    except Exception as e:
        logger.error(f"[CLIENT_SECURITY] Failed to log event {event_type!r}: {e}")
        return {"success": False}
