"""
Admin role lookup through the `get_admin_role` database function.
"""
import logging
from enum import Enum

from supabase import Client

logger = logging.getLogger("auth-sync.admin_role")

ROLE_RPC = "get_admin_role"


class AdminRole(str, Enum):
    ADMIN = "admin"
    VIEW_ONLY = "view_only"
    NONE = "none"

    @classmethod
    def parse(cls, value) -> "AdminRole":
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                logger.warning("Unknown admin role %r, treating as none", value)
        return cls.NONE

    @property
    def is_admin(self) -> bool:
        return self is AdminRole.ADMIN

    @property
    def is_view_only(self) -> bool:
        return self is AdminRole.VIEW_ONLY

    @property
    def has_admin_access(self) -> bool:
        return self in (AdminRole.ADMIN, AdminRole.VIEW_ONLY)


def fetch_admin_role(client: Client) -> AdminRole:
    """
    Ask the database which admin role the client's session holds.

    The RPC resolves the role from the JWT the client carries, so pass a
    client authenticated as the user in question. Errors and empty answers
    both mean AdminRole.NONE.
    """
    try:
        response = client.rpc(ROLE_RPC).execute()
    except Exception as e:
        logger.error("Error fetching admin role: %s", str(e)[:200])
        return AdminRole.NONE

    data = getattr(response, "data", None)
    # PostgREST wraps scalar returns inconsistently across versions
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict):
        data = data.get(ROLE_RPC)
    return AdminRole.parse(data)


__all__ = ["AdminRole", "fetch_admin_role", "ROLE_RPC"]
