"""
Shared flow for audited actions.

Every privileged action runs the same sequence: revalidate the admin session,
validate input, do the work, then write exactly one audit entry for the path
taken (success, failed or denied). AuditedAttempt carries the actor and the
action tag so each branch is a single call; AdminSession is the attempt of a
revalidated admin. A mutation is flushed, not committed, so that it becomes
durable in the same commit as its success entry.
"""
import logging
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from twinguard.core import error_codes
from twinguard.core.auth import IdentityClaim, actor_from, require_admin_session
from twinguard.core.errors import AuthorizationError, StorageError
from twinguard.models.user import User
from twinguard.schemas.action import ActionCode, ActionResult
from twinguard.services.audit_store import AuditActor, AuditLogStore, AuditStatus, RequestContext
from twinguard.services.error_sanitizer import error_response

logger = logging.getLogger(__name__)


class AuditedAttempt:
    """One audited attempt at an action; each outcome method writes its single entry."""

    def __init__(
        self,
        db: Session,
        actor: AuditActor,
        action: str,
        resource_type: Optional[str],
        context: Optional[RequestContext],
    ):
        self.db = db
        self.actor = actor
        self.action = action
        self.resource_type = resource_type
        self.context = context or RequestContext()
        self.audit = AuditLogStore(db)

    def _append(self, status: str, resource_id: Any, metadata: Optional[Dict[str, Any]]) -> None:
        self.audit.append(
            self.actor,
            self.action,
            status,
            resource_type=self.resource_type,
            resource_id=resource_id,
            metadata=metadata,
            context=self.context,
        )

    def success(
        self,
        message: str,
        data: Any = None,
        resource_id: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        self._append(AuditStatus.SUCCESS, resource_id, metadata)
        return ActionResult.ok(message, data)

    def failed(
        self,
        message: str,
        code: str,
        reason: str,
        resource_id: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        """Expected failure whose message is safe to show (validation, not found)."""
        self._append(AuditStatus.FAILED, resource_id, {"reason": reason, **(metadata or {})})
        return ActionResult.error(message, code)

    def unexpected(
        self,
        error: BaseException,
        internal_code: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        """Sanitize an unexpected failure and record it as failed."""
        self.db.rollback()
        result = error_response(error, internal_code)
        try:
            self._append(
                AuditStatus.FAILED,
                None,
                {
                    "reason": "Internal error",
                    "errorCode": internal_code,
                    "referenceId": result.reference_id,
                    **(metadata or {}),
                },
            )
        except StorageError as e:
            logger.error(f"[AUDIT] Could not record failed {self.action} ({result.reference_id}): {e}")
        return result


class AdminSession(AuditedAttempt):
    """A revalidated admin bound to one audited action attempt."""

    def __init__(
        self,
        db: Session,
        user: User,
        action: str,
        resource_type: Optional[str],
        context: Optional[RequestContext],
    ):
        super().__init__(db, actor_from(None, user), action, resource_type, context)
        self.user = user


def begin_admin_action(
    db: Session,
    claim: Optional[IdentityClaim],
    action: str,
    resource_type: Optional[str] = None,
    context: Optional[RequestContext] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Union[AdminSession, ActionResult]:
    """
    Revalidate the caller and open an audited action.

    Returns an AdminSession on success. Otherwise the attempt has already been
    recorded (denied, or failed if the check itself broke) and the returned
    ActionResult is what the caller should get.
    """
    context = context or RequestContext()
    try:
        user = require_admin_session(db, claim)
    except AuthorizationError as e:
        actor = actor_from(claim)
        logger.warning(f"[AUDIT] {action} denied for {actor.user_email}: {e.message}")
        try:
            AuditLogStore(db).append(
                actor,
                action,
                AuditStatus.DENIED,
                resource_type=resource_type,
                metadata={"reason": e.message, "errorCode": e.code, **(metadata or {})},
                context=context,
            )
        except StorageError as storage_error:
            logger.error(f"[AUDIT] Could not record denied {action}: {storage_error}")
        return ActionResult.error(error_codes.MSG_NOT_AUTHORIZED, ActionCode.NOT_AUTHORIZED)
    except Exception as e:
        db.rollback()
        result = error_response(e, "DB_001")
        try:
            AuditLogStore(db).append(
                actor_from(claim),
                action,
                AuditStatus.FAILED,
                resource_type=resource_type,
                metadata={"reason": "Session check failed", "referenceId": result.reference_id},
                context=context,
            )
        except StorageError as storage_error:
            logger.error(f"[AUDIT] Could not record failed {action}: {storage_error}")
        return result

    return AdminSession(db, user, action, resource_type, context)
