"""
Exception taxonomy.

Messages on ValidationError are safe to show to callers by construction.
Everything else goes through the error sanitizer before leaving the service.
"""
from typing import Optional


class TwinGuardError(Exception):
    """Base class for all application errors."""

    status_code = 500

    def __init__(self, message: str = "", *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(TwinGuardError):
    """Malformed or missing input the caller can correct."""
    status_code = 400


class AuthorizationError(TwinGuardError):
    """Caller is not authenticated or not an admin in the system of record."""
    status_code = 403


class NotFoundError(TwinGuardError):
    """Target resource is absent."""
    status_code = 404


class StorageError(TwinGuardError):
    """Underlying persistence failure."""
    status_code = 500


class UpstreamError(TwinGuardError):
    """WAF or geolocation collaborator unreachable or erroring."""
    status_code = 502


class InjectionBlocked(TwinGuardError):
    """A tracked input matched an attack signature."""
    status_code = 403

    def __init__(
        self,
        attack_type: str,
        severity: int,
        record_id: Optional[int] = None,
        field: Optional[str] = None,
    ):
        super().__init__(f"Blocked input matching {attack_type}", code="INJECTION_BLOCKED")
        self.field = field
        self.attack_type = attack_type
        self.severity = severity
        self.record_id = record_id
