"""
Error code dictionary.

Format: PREFIX_NNN. The public message is the only part that ever reaches a
caller; the internal description is for operators reading the server log.
"""
from typing import Dict, NamedTuple, Optional


class ErrorCode(NamedTuple):
    code: str
    category: str
    public_message: str
    internal_description: str


# Fixed public vocabulary
MSG_GENERIC = "An unexpected error occurred. Please try again."
MSG_STORAGE = "Unable to complete the operation. Please try again later."
MSG_NOT_AUTHORIZED = "You are not authorized to perform this action."
MSG_NOT_FOUND = "The requested resource was not found."
MSG_INVALID_INPUT = "Invalid input. Please check your request."
MSG_UPSTREAM = "A dependent service is unavailable. Please try again later."
MSG_BLOCKED = "Request blocked by security policy"


ERROR_CODES: Dict[str, ErrorCode] = {
    c.code: c
    for c in [
        ErrorCode("DB_001", "DATABASE", MSG_STORAGE,
                  "Database connection failed - check DATABASE_URL and database availability"),
        ErrorCode("DB_002", "DATABASE", MSG_STORAGE,
                  "Database query failed or timed out"),
        ErrorCode("DB_003", "DATABASE", MSG_STORAGE,
                  "Constraint violation - check unique keys and column sizes"),
        ErrorCode("AUTH_001", "AUTHENTICATION", MSG_NOT_AUTHORIZED,
                  "No identity provider session on the request"),
        ErrorCode("AUTH_002", "AUTHENTICATION", MSG_NOT_AUTHORIZED,
                  "Identity provider session valid but user missing from the users table"),
        ErrorCode("PERM_001", "AUTHORIZATION", MSG_NOT_AUTHORIZED,
                  "User lacks the admin role in the system of record"),
        ErrorCode("VAL_001", "VALIDATION", MSG_INVALID_INPUT,
                  "Request payload failed validation"),
        ErrorCode("USER_001", "DATABASE", MSG_STORAGE,
                  "Listing users failed"),
        ErrorCode("USER_002", "DATABASE", MSG_STORAGE,
                  "Updating a user role failed"),
        ErrorCode("PROJ_001", "DATABASE", MSG_STORAGE,
                  "Creating a project failed"),
        ErrorCode("NEWS_001", "DATABASE", MSG_STORAGE,
                  "Newsletter subscription failed"),
        ErrorCode("AUDIT_001", "DATABASE", MSG_STORAGE,
                  "Reading audit logs failed"),
        ErrorCode("AUDIT_002", "DATABASE", MSG_STORAGE,
                  "Aggregating audit statistics failed"),
        ErrorCode("ATTACK_001", "DATABASE", MSG_STORAGE,
                  "Reading attack logs failed"),
        ErrorCode("ATTACK_002", "DATABASE", MSG_STORAGE,
                  "Purging attack logs failed"),
        ErrorCode("WAF_001", "UPSTREAM", MSG_UPSTREAM,
                  "WAF decision engine unreachable and WAF_FAIL_CLOSED is set"),
        ErrorCode("SYS_001", "SYSTEM", MSG_GENERIC,
                  "Unhandled exception reached the global handler"),
    ]
}


def get_error_code(code: Optional[str]) -> Optional[ErrorCode]:
    """Look up an error code definition."""
    if not code:
        return None
    return ERROR_CODES.get(code)
