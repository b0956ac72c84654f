"""
Admin endpoints for auth account reconciliation.

Every route needs a Bearer token; the caller's role comes from the
get_admin_role RPC (or the ADMIN_EMAILS allow-list).
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from supabase import Client

from api.dependencies import (
    get_account_sync_invoker,
    get_current_admin_role,
    get_supabase_service,
    require_admin,
    require_admin_access,
)
from api.middleware import add_request_metrics
from api.rate_limiter import limiter, SYNC_RATE_LIMIT
from api.schemas.account_sync import (
    PendingUsersResponse,
    RoleResponse,
    SyncRequest,
    SyncResponse,
    UserAuthStatusResponse,
)
from api.utils import handle_postgrest_error, mask_email, validate_email_or_400
from services.account_sync import AccountSyncInvoker, DecodeError, TransportError
from services.admin_role import AdminRole
from services.user_records import (
    UserRecordReadError,
    get_user_auth_status,
    list_users_missing_auth,
)

logger = logging.getLogger("auth-sync.admin")
router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _transport_detail(e: TransportError) -> Dict[str, Any]:
    detail: Dict[str, Any] = {
        "error": "edge_function_failed",
        "message": str(e),
        "status_code": e.status_code,
    }
    payload = getattr(e, "payload", None)
    if payload is not None:
        detail["body"] = payload
    elif e.body_text:
        detail["raw_body"] = e.body_text
    return detail


@router.get("/role", response_model=RoleResponse)
async def get_role(role: AdminRole = Depends(get_current_admin_role)) -> Dict[str, Any]:
    return {
        "role": role.value,
        "is_admin": role.is_admin,
        "is_view_only": role.is_view_only,
        "has_admin_access": role.has_admin_access,
    }


# ----------------------------------------------------------------------
# Reconciliation
# ----------------------------------------------------------------------
@router.post("/auth-accounts/sync", response_model=SyncResponse)
@limiter.limit(SYNC_RATE_LIMIT)
def sync_auth_accounts(
    request: Request,
    sync_request: Optional[SyncRequest] = None,
    invoker: AccountSyncInvoker = Depends(get_account_sync_invoker),
    role: AdminRole = Depends(require_admin),
) -> SyncResponse:
    """
    Ensure auth accounts exist for pending users, or for one email.

    Idempotent: repeating a call never creates a second identity for a user.
    Per-user failures are returned in `results`; only transport and decode
    failures turn into 502.
    """
    single_email = None
    if sync_request is not None and sync_request.single_email is not None:
        single_email = validate_email_or_400(sync_request.single_email, "single_email")

    logger.info("[AuthSync] start scope=%s", mask_email(single_email) if single_email else "all-pending")

    try:
        result = invoker.sync(single_email=single_email)
    except TransportError as e:
        logger.error("[AuthSync] transport failure status=%s: %s", e.status_code, e)
        raise HTTPException(status_code=502, detail=_transport_detail(e))
    except DecodeError as e:
        logger.error("[AuthSync] undecodable response: %s", e)
        raise HTTPException(
            status_code=502,
            detail={
                "error": "edge_function_bad_response",
                "message": str(e),
                "status_code": e.status_code,
                "raw_body": e.raw_text,
            },
        )

    add_request_metrics(
        request,
        processed=result.processed,
        successful=result.successful,
        errors=result.errors,
    )
    logger.info(
        "[AuthSync] done processed=%d successful=%d errors=%d",
        result.processed, result.successful, result.errors,
    )
    return SyncResponse.from_result(result)


# ----------------------------------------------------------------------
# Verification (read-only)
# ----------------------------------------------------------------------
@router.get("/auth-accounts/pending", response_model=PendingUsersResponse)
def list_pending_auth_accounts(
    invited_only: bool = Query(True),
    supabase: Client = Depends(get_supabase_service),
    role: AdminRole = Depends(require_admin_access),
) -> Dict[str, Any]:
    try:
        users = list_users_missing_auth(supabase, invited_only=invited_only)
    except UserRecordReadError as e:
        handle_postgrest_error(e.__cause__ or e, "all-pending")
    return {"users": users, "total": len(users)}


@router.get("/auth-accounts/status", response_model=UserAuthStatusResponse)
def get_auth_account_status(
    email: str = Query(...),
    supabase: Client = Depends(get_supabase_service),
    role: AdminRole = Depends(require_admin_access),
) -> UserAuthStatusResponse:
    email = validate_email_or_400(email)
    try:
        status = get_user_auth_status(supabase, email)
    except UserRecordReadError as e:
        handle_postgrest_error(e.__cause__ or e, email)

    if status is None:
        raise HTTPException(status_code=404, detail=f"User not found: {email}")
    return UserAuthStatusResponse.from_status(status)
