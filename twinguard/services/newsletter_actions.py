"""
Public newsletter subscription.

No identity is required, so this is the form an anonymous visitor reaches
first. Email and name are screened for injection signatures before anything
else; a hit becomes an attack record on the dashboard and the attempt is
refused. Every attempt leaves one NEWSLETTER_SUBSCRIBE audit entry.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.orm import Session

from twinguard.core import error_codes
from twinguard.core.errors import InjectionBlocked
from twinguard.models.subscriber import Subscriber
from twinguard.schemas.action import ActionCode, ActionResult
from twinguard.schemas.newsletter import TRACKED_NEWSLETTER_FIELDS, NewsletterSubscribe, SubscriberResponse
from twinguard.services.audit_store import ANONYMOUS_ACTOR, AuditAction, AuditActor, RequestContext, ResourceType
from twinguard.services.input_guard import GeoCallback, screen_tracked_fields
from twinguard.services.privileged import AuditedAttempt

logger = logging.getLogger(__name__)


def _error_message(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    message = str(error.get("msg", "Invalid input data"))
    return message.removeprefix("Value error, ")


def subscribe(
    db: Session,
    payload: Dict[str, Any],
    context: Optional[RequestContext] = None,
    on_attack_recorded: Optional[GeoCallback] = None,
) -> ActionResult:
    """
    Subscribe an email address to the newsletter.

    Args:
        payload: Raw form data (email, optional name)
        on_attack_recorded: Called with (record_id, ip) when an injection
            attempt is logged, used to schedule geo enrichment
    """
    attempt = AuditedAttempt(db, ANONYMOUS_ACTOR, AuditAction.NEWSLETTER_SUBSCRIBE, ResourceType.NEWSLETTER, context)
    payload = payload if isinstance(payload, dict) else {}

    try:
        try:
            screen_tracked_fields(
                db, payload, TRACKED_NEWSLETTER_FIELDS, attempt.context.ip_address, on_recorded=on_attack_recorded,
            )
        except InjectionBlocked as blocked:
            return attempt.failed(
                error_codes.MSG_BLOCKED, ActionCode.INJECTION_BLOCKED,
                reason="Injection attempt blocked",
                metadata={
                    "attackType": blocked.attack_type,
                    "severity": blocked.severity,
                    "field": blocked.field,
                    "attackRecordId": blocked.record_id,
                },
            )

        try:
            data = NewsletterSubscribe.model_validate(payload)
        except PydanticValidationError as e:
            return attempt.failed(
                _error_message(e), ActionCode.VALIDATION,
                reason="Validation error", metadata={"errorCount": e.error_count()},
            )

        attempt.actor = AuditActor(user_id=None, user_email=data.email)
        existing = db.query(Subscriber).filter(func.lower(Subscriber.email) == data.email).first()
        if existing is not None:
            return attempt.failed(
                "You are already subscribed to our newsletter", ActionCode.CONFLICT,
                reason="Already subscribed", resource_id=existing.id, metadata={"email": data.email},
            )

        subscriber = Subscriber(email=data.email, name=data.name)
        db.add(subscriber)
        db.flush()
        db.refresh(subscriber)

        logger.info(f"Newsletter subscription {subscriber.id} from {attempt.context.ip_address}")
        return attempt.success(
            "Thank you for subscribing to our newsletter!",
            data=SubscriberResponse.model_validate(subscriber).model_dump(mode="json"),
            resource_id=subscriber.id,
            metadata={"email": data.email, "hasName": data.name is not None},
        )
    except Exception as e:
        return attempt.unexpected(e, "NEWS_001")
