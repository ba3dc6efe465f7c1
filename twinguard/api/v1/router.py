"""
API v1 router.
"""
from fastapi import APIRouter

from twinguard.api.v1.endpoints import attack_logs, audit_logs, health, newsletter, projects, security, users

api_router = APIRouter()

# Health check endpoint (no prefix, so it's /api/v1/health)
api_router.include_router(health.router, tags=["health"])

api_router.include_router(attack_logs.router, tags=["attack-logs"])
api_router.include_router(audit_logs.router, tags=["audit-logs"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(newsletter.router, prefix="/newsletter", tags=["newsletter"])
api_router.include_router(security.router, prefix="/security", tags=["security"])
