# api/utils.py
"""
Utility functions for the API.
"""
import re
import hashlib
import logging
from typing import Optional, Union
from fastapi import HTTPException
from postgrest.exceptions import APIError

logger = logging.getLogger("auth-sync.utils")

# Loose shape check only; the edge function does the real validation.
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_email_for_logging(email: str) -> str:
    """
    Hash an email for privacy-preserving logging.

    Args:
        email: The email to hash (case-insensitive)

    Returns:
        First 8 characters of SHA-256 hash
    """
    return hashlib.sha256(email.strip().lower().encode()).hexdigest()[:8]


def mask_email(email: Optional[str]) -> str:
    """'jane.doe@example.com' -> 'ja***@example.com'"""
    if not email:
        return "<none>"
    local, sep, domain = email.partition("@")
    if not sep:
        return local[:2] + "***"
    return f"{local[:2]}***@{domain}"


def mask_key(key: Optional[str]) -> str:
    if not key:
        return "(not set)"
    if len(key) <= 10:
        return f"{key[:2]}... len={len(key)}"
    return f"{key[:5]}...{key[-5:]}"


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value.strip()))


def validate_email_or_400(value: Optional[str], param_name: str = "email") -> str:
    """
    Validates that a string looks like an email address.

    Returns:
        The stripped value if valid

    Raises:
        HTTPException: 400 Bad Request if the value is blank or malformed
    """
    if value is None or not value.strip():
        raise HTTPException(status_code=400, detail=f"{param_name} must not be blank")
    value = value.strip()
    if not is_valid_email(value):
        raise HTTPException(status_code=400, detail=f"Invalid email format for {param_name}: {value}")
    return value


def handle_postgrest_error(e: Union[APIError, Exception], email: str) -> None:
    """
    Handles PostgREST API errors raised while reading user records.

    Maps 401/403 to the matching HTTPException and everything else to 500.

    Raises:
        HTTPException: 401, 403, or 500 depending on the error
    """
    error_msg = str(e)
    error_code = getattr(e, "code", None) if isinstance(e, APIError) else None

    if error_code == '401' or '401' in error_msg:
        logger.error(f"PostgREST Auth Error (401) for email={mask_email(email)}: {e}")
        raise HTTPException(
            status_code=401,
            detail="Unauthorized: Database access denied. Check API configuration."
        )

    if error_code == '403' or '403' in error_msg:
        logger.error(f"PostgREST Permission Error (403) for email={mask_email(email)}: {e}")
        raise HTTPException(
            status_code=403,
            detail="Forbidden: Insufficient permissions for this operation."
        )

    logger.exception(f"PostgREST APIError for email={mask_email(email)}: {e}")

    detail = "Database error"
    if getattr(e, 'details', None):
        detail = f"Database error: {e.details}"
    elif getattr(e, 'message', None):
        detail = f"Database error: {e.message}"

    raise HTTPException(status_code=500, detail=detail)
