"""
Portfolio project actions.

Project fields are free text typed into the admin form, so they are screened
for injection signatures before validation. A hit is recorded as an attack and
the create is refused.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from twinguard.core import error_codes
from twinguard.core.auth import IdentityClaim
from twinguard.core.errors import InjectionBlocked
from twinguard.models.project import Project
from twinguard.schemas.action import ActionCode, ActionResult
from twinguard.schemas.project import TRACKED_PROJECT_FIELDS, ProjectCreate, ProjectResponse
from twinguard.services.audit_store import AuditAction, RequestContext, ResourceType
from twinguard.services.input_guard import GeoCallback, screen_tracked_fields
from twinguard.services.privileged import AdminSession, begin_admin_action

logger = logging.getLogger(__name__)


def _first_error(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg')}" if location else str(error.get("msg"))


def create_project(
    db: Session,
    claim: Optional[IdentityClaim],
    payload: Dict[str, Any],
    context: Optional[RequestContext] = None,
    on_attack_recorded: Optional[GeoCallback] = None,
) -> ActionResult:
    """
    Create a portfolio project.

    Args:
        payload: Raw form data (title, description, icon, items)
        on_attack_recorded: Called with (record_id, ip) when an injection
            attempt is logged, used to schedule geo enrichment
    """
    session = begin_admin_action(db, claim, AuditAction.PROJECT_CREATE, ResourceType.PROJECT, context)
    if not isinstance(session, AdminSession):
        return session

    payload = payload if isinstance(payload, dict) else {}
    title = payload.get("title")
    try:
        try:
            screen_tracked_fields(
                db, payload, TRACKED_PROJECT_FIELDS, session.context.ip_address, on_recorded=on_attack_recorded,
            )
        except InjectionBlocked as blocked:
            return session.failed(
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
            data = ProjectCreate.model_validate(payload)
        except PydanticValidationError as e:
            return session.failed(
                f"Validation error: {_first_error(e)}", ActionCode.VALIDATION,
                reason="Validation error", metadata={"errorCount": e.error_count()},
            )

        project = Project(
            title=data.title,
            description=data.description,
            icon=data.icon,
            items=data.items,
        )
        db.add(project)
        # Committed together with the audit entry by session.success
        db.flush()
        db.refresh(project)

        logger.info(f"Project {project.id} '{project.title}' created by {session.actor.user_email}")
        return session.success(
            "Project created successfully!",
            data=ProjectResponse.model_validate(project).model_dump(mode="json"),
            resource_id=project.id,
            metadata={"projectTitle": project.title, "projectId": project.id},
        )
    except Exception as e:
        metadata = {"projectTitle": title} if isinstance(title, str) else None
        return session.unexpected(e, "PROJ_001", metadata=metadata)


def list_projects(db: Session) -> List[Project]:
    """Public project list, newest first."""
    return db.query(Project).order_by(Project.created_at.desc(), Project.id.desc()).all()
