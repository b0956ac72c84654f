"""Pydantic schemas for API models."""
from .account_sync import (
    ActionKind,
    classify_action,
    ReconciliationRequest,
    PerUserOutcome,
    ReconciliationResult,
    SyncRequest,
    SyncResponse,
    UserAuthStatus,
    UserAuthStatusResponse,
    UserRecord,
    PendingUsersResponse,
    RoleResponse,
)


__all__ = [
    "ActionKind",
    "classify_action",
    "ReconciliationRequest",
    "PerUserOutcome",
    "ReconciliationResult",
    "SyncRequest",
    "SyncResponse",
    "UserAuthStatus",
    "UserAuthStatusResponse",
    "UserRecord",
    "PendingUsersResponse",
    "RoleResponse",
]
