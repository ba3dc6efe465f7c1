"""
User role management endpoints. Admin only.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from twinguard.api.deps import action_response
from twinguard.core.auth import IdentityClaim, get_identity_claim, get_request_context
from twinguard.core.database import get_db
from twinguard.schemas.user import UserRoleUpdate
from twinguard.services import admin_actions
from twinguard.services.audit_store import RequestContext

router = APIRouter()


@router.get("")
def list_users(
    claim: Optional[IdentityClaim] = Depends(get_identity_claim),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    return action_response(admin_actions.list_users(db, claim, context=context))


@router.put("/role")
def update_user_role(
    payload: Optional[UserRoleUpdate] = Body(None),
    claim: Optional[IdentityClaim] = Depends(get_identity_claim),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Set a user's role to 'admin' or 'user'."""
    payload = payload or UserRoleUpdate()
    return action_response(
        admin_actions.set_user_role(db, claim, payload.email, payload.role, context=context)
    )
