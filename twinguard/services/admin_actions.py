"""
Admin actions on users and attack log maintenance.

Each action returns an ActionResult and never raises; every attempt leaves
exactly one audit entry.
"""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from twinguard.core.auth import IdentityClaim
from twinguard.core.errors import ValidationError
from twinguard.core.roles import VALID_ROLES
from twinguard.models.user import User
from twinguard.schemas.action import ActionCode, ActionResult
from twinguard.schemas.attack import PurgeResult, StorageStats
from twinguard.schemas.user import UserResponse
from twinguard.services.attack_store import AttackRecordStore
from twinguard.services.audit_store import AuditAction, RequestContext, ResourceType
from twinguard.services.privileged import AdminSession, begin_admin_action

logger = logging.getLogger(__name__)


def set_user_role(
    db: Session,
    claim: Optional[IdentityClaim],
    email: Optional[str],
    role: Optional[str],
    context: Optional[RequestContext] = None,
) -> ActionResult:
    """Change a user's role in the system of record."""
    session = begin_admin_action(
        db, claim, AuditAction.USER_ROLE_UPDATE, ResourceType.USER, context,
        metadata={"targetEmail": email},
    )
    if not isinstance(session, AdminSession):
        return session

    try:
        email = (email or "").strip()
        role = (role or "").strip()
        if not email or not role:
            return session.failed(
                "Email and role are required", ActionCode.VALIDATION,
                reason="Missing email or role", metadata={"targetEmail": email},
            )
        if role not in VALID_ROLES:
            return session.failed(
                "Role must be 'admin' or 'user'", ActionCode.VALIDATION,
                reason="Invalid role", metadata={"targetEmail": email, "attemptedRole": role},
            )

        user = db.query(User).filter(func.lower(User.email) == email.lower()).first()
        if user is None:
            return session.failed(
                "User not found", ActionCode.NOT_FOUND,
                reason="User not found", metadata={"targetEmail": email},
            )

        old_role = user.role
        user.role = role
        # Committed together with the audit entry by session.success
        db.flush()

        logger.info(f"Role for {user.email} changed {old_role} -> {role} by {session.actor.user_email}")
        return session.success(
            f"User role updated to {role}",
            resource_id=user.id,
            metadata={"targetEmail": user.email, "oldRole": old_role, "newRole": role, "targetUserId": user.id},
        )
    except Exception as e:
        return session.unexpected(e, "USER_002", metadata={"targetEmail": email})


def list_users(
    db: Session,
    claim: Optional[IdentityClaim],
    context: Optional[RequestContext] = None,
) -> ActionResult:
    session = begin_admin_action(db, claim, AuditAction.USER_LIST_READ, ResourceType.USER, context)
    if not isinstance(session, AdminSession):
        return session

    try:
        users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
        data = [UserResponse.model_validate(u).model_dump(mode="json") for u in users]
        return session.success(
            "Users retrieved successfully", data=data, metadata={"resultCount": len(data)},
        )
    except Exception as e:
        return session.unexpected(e, "USER_001")


def get_attack_log_storage(
    db: Session,
    claim: Optional[IdentityClaim],
    context: Optional[RequestContext] = None,
) -> ActionResult:
    session = begin_admin_action(
        db, claim, AuditAction.VIEW_ATTACK_LOG_STORAGE, ResourceType.ATTACK_LOGS, context,
    )
    if not isinstance(session, AdminSession):
        return session

    try:
        stats = StorageStats(**AttackRecordStore(db).storage_stats())
        return session.success(
            "Storage statistics retrieved",
            data=stats.model_dump(mode="json"),
            metadata={"totalLogs": stats.total_logs},
        )
    except Exception as e:
        return session.unexpected(e, "ATTACK_001")


def purge_attack_logs(
    db: Session,
    claim: Optional[IdentityClaim],
    retention_days: Optional[int] = None,
    country: Optional[str] = None,
    context: Optional[RequestContext] = None,
) -> ActionResult:
    """
    Delete attack records older than ``retention_days`` and/or from ``country``.

    Purging is the only way attack records are ever removed.
    """
    criteria = {"retentionDays": retention_days, "country": country}
    session = begin_admin_action(
        db, claim, AuditAction.ATTACK_LOG_PURGE, ResourceType.ATTACK_LOGS, context, metadata=criteria,
    )
    if not isinstance(session, AdminSession):
        return session

    store = AttackRecordStore(db)
    try:
        try:
            # The delete commits together with the audit entry
            deleted = store.purge(retention_days=retention_days, country=country, commit=False)
        except ValidationError as e:
            return session.failed(e.message, ActionCode.VALIDATION, reason=e.message, metadata=criteria)

        result = PurgeResult(
            deleted_count=deleted,
            retention_days=retention_days,
            country=country,
            remaining_logs=store.count(),
        )
        if deleted == 0:
            message = "No attack logs matched the purge criteria"
        else:
            message = f"Deleted {deleted} attack logs"
        return session.success(
            message, data=result.model_dump(mode="json"), metadata={**criteria, "deletedCount": deleted},
        )
    except Exception as e:
        return session.unexpected(e, "ATTACK_002", metadata=criteria)
