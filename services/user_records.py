"""
Read-only queries against the `users` table.

Used after a sync to confirm that the edge function actually wrote
`auth_user_id` back. Nothing here writes.

Requires a service-role client (or a session allowed to read `users`).
"""
import logging
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import Client

from api.schemas.account_sync import ReconciliationResult, UserAuthStatus, UserRecord
from api.utils import mask_email

logger = logging.getLogger("auth-sync.user_records")

USERS_TABLE = "users"
USER_COLUMNS = "id, email, full_name, first_name, last_name, auth_user_id, invited, order_submitted"


class UserRecordReadError(Exception):
    """A `users` query failed."""

    def __init__(self, message: str, email: Optional[str] = None):
        super().__init__(message)
        self.email = email


def get_user_auth_status(client: Client, email: str) -> Optional[UserAuthStatus]:
    """Return email/auth_user_id for one user, or None when no row matches."""
    try:
        response = (
            client.table(USERS_TABLE)
            .select("email, auth_user_id")
            .eq("email", email)
            .limit(1)
            .execute()
        )
    except APIError as e:
        logger.error("Failed to read user %s: %s", mask_email(email), e)
        raise UserRecordReadError(f"Failed to read user {email}: {e}", email=email) from e

    rows = response.data or []
    if not rows:
        logger.info("No users row for %s", mask_email(email))
        return None
    return UserAuthStatus.model_validate(rows[0])


def list_users_missing_auth(client: Client, invited_only: bool = True) -> List[UserRecord]:
    """Users whose auth_user_id is still null, ordered by email."""
    query = client.table(USERS_TABLE).select(USER_COLUMNS).is_("auth_user_id", "null")
    if invited_only:
        query = query.eq("invited", True)
    try:
        response = query.order("email").execute()
    except APIError as e:
        logger.error("Failed to list users missing auth: %s", e)
        raise UserRecordReadError(f"Failed to list users missing auth: {e}") from e

    users = [UserRecord.model_validate(row) for row in (response.data or [])]
    logger.info("Found %d user(s) without auth accounts", len(users))
    return users


def verify_outcomes(client: Client, result: ReconciliationResult) -> List[UserAuthStatus]:
    """
    Re-read every email in `result` and report its current auth_user_id.

    Emails with no matching row come back with auth_user_id=None.
    """
    statuses = []
    for outcome in result.results:
        status = get_user_auth_status(client, outcome.email)
        statuses.append(status or UserAuthStatus(email=outcome.email))
    return statuses


def summarize_invited_users(client: Client) -> Dict[str, Any]:
    """Totals of invited users with and without an identity."""
    try:
        response = (
            client.table(USERS_TABLE)
            .select("email, auth_user_id, invited, order_submitted")
            .eq("invited", True)
            .execute()
        )
    except APIError as e:
        logger.error("Failed to summarize invited users: %s", e)
        raise UserRecordReadError(f"Failed to summarize invited users: {e}") from e

    rows = [UserRecord.model_validate(row) for row in (response.data or [])]
    with_auth = [u for u in rows if u.auth_user_id]
    without_auth = [u for u in rows if not u.auth_user_id]
    return {
        "total_invited": len(rows),
        "with_auth": len(with_auth),
        "without_auth": len(without_auth),
        "ordered_with_auth": sum(1 for u in with_auth if u.order_submitted),
        "not_ordered_with_auth": sum(1 for u in with_auth if not u.order_submitted),
        "missing_emails": [u.email for u in without_auth],
    }


__all__ = [
    "UserRecordReadError",
    "get_user_auth_status",
    "list_users_missing_auth",
    "verify_outcomes",
    "summarize_invited_users",
]
