"""
Identity claims and admin session revalidation for privileged actions.

The identity provider only says who the caller is. Whether they are an admin
is decided by the users table, re-read on every privileged call, so a role
change or a deleted user takes effect immediately even while the identity
provider session is still valid.
"""
import logging
import secrets
from dataclasses import dataclass
from typing import Optional, Protocol

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from twinguard.core.config import settings
from twinguard.core.errors import AuthorizationError
from twinguard.core.roles import Role, has_permission
from twinguard.models.user import User
from twinguard.services.audit_store import ANONYMOUS_ACTOR, AuditActor, RequestContext
from twinguard.utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-auth-user-id"
USER_EMAIL_HEADER = "x-auth-user-email"
PROXY_SECRET_HEADER = "x-auth-proxy-secret"


@dataclass(frozen=True)
class IdentityClaim:
    """What the identity provider asserts about the caller."""
    subject: Optional[str]
    email: Optional[str]


class IdentityProvider(Protocol):
    def get_claim(self, request: Request) -> Optional[IdentityClaim]:
        ...


class ProxyHeaderIdentityProvider:
    """
    Reads the claim forwarded by the authenticating proxy.

    Identity headers are only believed alongside the matching
    X-Auth-Proxy-Secret header. Without a configured secret no request
    carries a claim and every privileged action is denied.
    """

    def __init__(self, proxy_secret: Optional[str] = None):
        self.proxy_secret = proxy_secret

    def get_claim(self, request: Request) -> Optional[IdentityClaim]:
        if not self.proxy_secret:
            return None

        presented = request.headers.get(PROXY_SECRET_HEADER, "")
        if not secrets.compare_digest(presented.encode(), self.proxy_secret.encode()):
            if presented:
                logger.warning("Identity headers rejected: proxy secret mismatch")
            return None

        subject = (request.headers.get(USER_ID_HEADER) or "").strip() or None
        email = (request.headers.get(USER_EMAIL_HEADER) or "").strip().lower() or None
        if not subject and not email:
            return None
        return IdentityClaim(subject=subject, email=email)


def _find_user(db: Session, claim: IdentityClaim) -> Optional[User]:
    if claim.subject:
        user = db.query(User).filter(User.external_id == claim.subject).first()
        if user:
            return user
    if claim.email:
        return db.query(User).filter(func.lower(User.email) == claim.email.lower()).first()
    return None


def require_admin_session(db: Session, claim: Optional[IdentityClaim]) -> User:
    """
    Revalidate that the claimed identity is still an admin in the users table.

    Never writes audit entries; the calling action records the denial.

    Raises:
        AuthorizationError: no claim, user no longer exists, or role is not admin
    """
    if claim is None:
        raise AuthorizationError("No identity provider session", code="AUTH_001")

    user = _find_user(db, claim)
    if user is None:
        logger.warning(f"Admin check failed: no users row for {claim.email or claim.subject}")
        raise AuthorizationError("User not found in users table", code="AUTH_002")

    if not has_permission(user.role, Role.ADMIN.value):
        logger.warning(f"Admin check failed: {user.email} has role '{user.role}'")
        raise AuthorizationError("Admin role required", code="PERM_001")

    return user


def actor_from(claim: Optional[IdentityClaim], user: Optional[User] = None) -> AuditActor:
    """Audit actor for a caller, preferring the revalidated users row."""
    if user is not None:
        return AuditActor(user_id=user.external_id or str(user.id), user_email=user.email)
    if claim is not None:
        return AuditActor(user_id=claim.subject, user_email=claim.email or "unknown")
    return ANONYMOUS_ACTOR


def get_identity_claim(request: Request) -> Optional[IdentityClaim]:
    """FastAPI dependency: claim from the application's identity provider."""
    provider = getattr(request.app.state, "identity_provider", None)
    if provider is None:
        provider = ProxyHeaderIdentityProvider(settings.AUTH_PROXY_SECRET)
    return provider.get_claim(request)


def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency: IP and user agent recorded with audit entries."""
    return RequestContext(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
