"""
Error sanitizer.

Single chokepoint between internal failures and anything a caller sees:
callers get a message from the fixed vocabulary in error_codes, the server log
gets the full exception under a reference id.
"""
import logging
import uuid
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from twinguard.core import error_codes
from twinguard.core.errors import (
    AuthorizationError,
    NotFoundError,
    StorageError,
    UpstreamError,
    ValidationError,
)
from twinguard.schemas.action import ActionCode, ActionResult

logger = logging.getLogger(__name__)


class SanitizedError(BaseModel):
    """Caller-safe view of a failure."""
    public_message: str
    internal_code: Optional[str] = None
    reference_id: str


def _category_message(error: BaseException) -> str:
    if isinstance(error, AuthorizationError):
        return error_codes.MSG_NOT_AUTHORIZED
    if isinstance(error, NotFoundError):
        return error_codes.MSG_NOT_FOUND
    if isinstance(error, ValidationError):
        return error_codes.MSG_INVALID_INPUT
    if isinstance(error, (StorageError, SQLAlchemyError)):
        return error_codes.MSG_STORAGE
    if isinstance(error, UpstreamError):
        return error_codes.MSG_UPSTREAM
    return error_codes.MSG_GENERIC


def sanitize(error: BaseException, internal_code: Optional[str] = None) -> SanitizedError:
    """
    Map any exception to a public message plus an operator correlation code.

    Args:
        error: The exception caught by the caller
        internal_code: Error code from error_codes.ERROR_CODES identifying the failing operation

    Returns:
        SanitizedError whose public_message never contains exception text
    """
    reference_id = str(uuid.uuid4())
    definition = error_codes.get_error_code(internal_code)

    logger.error(
        f"[SERVER_ERROR] [{reference_id}] code={internal_code} "
        f"{type(error).__name__}: {error}"
        + (f" ({definition.internal_description})" if definition else ""),
        exc_info=(type(error), error, error.__traceback__),
    )

    # Authorization and not-found outcomes keep their category message even
    # when the operation's code points at a storage failure
    if isinstance(error, (AuthorizationError, NotFoundError, ValidationError)) or definition is None:
        public_message = _category_message(error)
    else:
        public_message = definition.public_message

    return SanitizedError(
        public_message=public_message,
        internal_code=internal_code,
        reference_id=reference_id,
    )


def error_response(error: BaseException, internal_code: Optional[str] = None) -> ActionResult:
    """Sanitize ``error`` into a failed ActionResult carrying the reference id."""
    sanitized = sanitize(error, internal_code)
    if isinstance(error, AuthorizationError):
        code = ActionCode.NOT_AUTHORIZED
    elif isinstance(error, NotFoundError):
        code = ActionCode.NOT_FOUND
    elif isinstance(error, ValidationError):
        code = ActionCode.VALIDATION
    else:
        code = ActionCode.INTERNAL
    return ActionResult.error(sanitized.public_message, code, reference_id=sanitized.reference_id)
