"""
Signature screening for tracked form fields submitted to privileged actions.
"""
import logging
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from twinguard.core.errors import InjectionBlocked
from twinguard.services.attack_store import AttackRecordStore
from twinguard.services.pattern_detector import PatternMatch, detect

logger = logging.getLogger(__name__)

# Called with (record_id, ip) after an attack record is committed
GeoCallback = Callable[[int, str], None]


def _flatten(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _flatten(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _flatten(item)


def first_match(fields: Mapping[str, Any], tracked: Iterable[str]) -> Optional[Tuple[str, PatternMatch]]:
    """(field name, PatternMatch) for the first tracked field that matches."""
    for name in tracked:
        for text in _flatten(fields.get(name)):
            match = detect(text)
            if match is not None:
                return name, match
    return None


def screen_tracked_fields(
    db: Session,
    fields: Mapping[str, Any],
    tracked: Iterable[str],
    ip: Optional[str],
    on_recorded: Optional[GeoCallback] = None,
) -> None:
    """
    Scan tracked fields and record the first hit as an attack.

    The attack record is committed before this raises, so it is visible to
    the dashboard whatever the caller does next.

    Raises:
        InjectionBlocked: carrying the matched type, severity and record id
        StorageError: if the attack record could not be written
    """
    hit = first_match(fields, tracked)
    if hit is None:
        return

    field_name, match = hit
    record_id = AttackRecordStore(db).insert(ip, match.type, match.severity)
    logger.warning(f"[INPUT_GUARD] {match.type} in field '{field_name}' from {ip} (record {record_id})")

    if on_recorded is not None:
        on_recorded(record_id, ip or "unknown")

    raise InjectionBlocked(match.type, match.severity, record_id, field=field_name)
